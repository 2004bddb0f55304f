from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.db import get_db_session
from certisure.core.verification import PublicCertificate, VerificationService
from certisure.schemas.verification import (
    DownloadRequest,
    DownloadResponse,
    FindCertificatesRequest,
    PublicCertificateResponse,
)

router = APIRouter(prefix="/verify", tags=["verify"])


def _to_response(certificate: PublicCertificate) -> PublicCertificateResponse:
    return PublicCertificateResponse(
        certificate_id=certificate.certificate_id,
        recipient_name=certificate.recipient_name,
        course_name=certificate.course_name,
        certificate_type=certificate.certificate_type,
        status=certificate.status,
        is_valid=certificate.is_valid,
        issue_date=certificate.issue_date,
        expiry_date=certificate.expiry_date,
        batch_name=certificate.batch_name,
        verification_url=certificate.verification_url,
        organization_name=certificate.organization_name,
        organization_logo=certificate.organization_logo,
        organization_website=certificate.organization_website,
    )


@router.get("/{certificate_id}", response_model=PublicCertificateResponse)
async def verify_certificate(
    certificate_id: str,
    session: AsyncSession = Depends(get_db_session),
) -> PublicCertificateResponse:
    return _to_response(await VerificationService(session).verify(certificate_id))


@router.post("/download", response_model=DownloadResponse)
async def download_certificate(
    payload: DownloadRequest,
    session: AsyncSession = Depends(get_db_session),
) -> DownloadResponse:
    certificate = await VerificationService(session).authorize_download(
        payload.certificate_id,
        payload.recipient_name,
        payload.organization_name,
    )
    return DownloadResponse(**_to_response(certificate).model_dump(), render_data=certificate.render_data)


@router.post("/find", response_model=list[PublicCertificateResponse])
async def find_certificates(
    payload: FindCertificatesRequest,
    session: AsyncSession = Depends(get_db_session),
) -> list[PublicCertificateResponse]:
    matches = await VerificationService(session).find_by_recipient(payload.recipient_name, payload.organization_name)
    return [_to_response(certificate) for certificate in matches]
