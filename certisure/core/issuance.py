"""Certificate issuance.

Single and bulk issuance share one pipeline: capabilities, account gates,
quota, template resolution, materialization, id allocation, persistence.
Audit and recipient notification run after the commit and never fail the
request.
"""

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from certisure.core.audit import ENTITY_CERTIFICATE, Actor, AuditSink
from certisure.core.config import settings
from certisure.core.elements import ElementTree
from certisure.core.entitlements import (
    CapabilitySet,
    capabilities_for,
    require_active_account,
    require_current_subscription,
)
from certisure.core.errors import ConflictError, ForbiddenError, InternalError, ValidationError
from certisure.core.materialize import MergeFields, materialize, placeholder_values, substitute
from certisure.core.notifications import DEFAULT_BODY, DEFAULT_SUBJECT, CertificateMessage, NotificationDispatcher
from certisure.core.plans import PlanRegistry
from certisure.core.quota import QuotaTracker
from certisure.core.repositories.certificate_templates import CertificateTemplateRepository
from certisure.core.repositories.certificates import CertificateRepository
from certisure.core.repositories.email_templates import EmailTemplateRepository
from certisure.core.security.crypto import EncryptionError, SecurityCipher
from certisure.core.templates import TemplateResolver
from certisure.core.tenancy import TenantScope
from certisure.core.verification import qr_data_url, verification_url
from certisure.models.base import utcnow
from certisure.models.certificate import CERTIFICATE_TYPES, STATUS_ACTIVE, Certificate
from certisure.models.organization import Organization

logger = logging.getLogger(__name__)

ID_ALPHABET = string.ascii_uppercase + string.digits
ID_RANDOM_LENGTH = 8
REQUIRED_FIELDS = ("recipient_name", "recipient_email", "course_name")
CERTIFICATE_ID_CONSTRAINT = "ix_certificates_certificate_id"


@dataclass(slots=True)
class IssueFields:
    recipient_name: str
    recipient_email: str
    course_name: str
    certificate_type: str | None = None
    template_id: UUID | None = None
    batch_name: str | None = None
    issue_date: datetime | None = None
    expiry_date: datetime | None = None
    certificate_prefix: str | None = None

    def missing(self) -> list[str]:
        return [name for name in REQUIRED_FIELDS if not (getattr(self, name) or "").strip()]


@dataclass(slots=True)
class PreparedCertificate:
    values: dict[str, object]
    message: CertificateMessage | None = None


@dataclass(slots=True)
class _BatchState:
    taken_ids: set[str] = field(default_factory=set)
    trees: dict[tuple[UUID | None, str | None], tuple[ElementTree, UUID | None]] = field(default_factory=dict)


def generate_certificate_id(prefix: str, year: int, length: int = ID_RANDOM_LENGTH) -> str:
    suffix = "".join(secrets.choice(ID_ALPHABET) for _ in range(length))
    return f"{prefix}-{year}-{suffix}"


def resolve_prefix(organization: Organization, requested: str | None) -> str:
    prefixes = [value.upper() for value in (organization.certificate_prefixes or [])]
    if requested:
        candidate = requested.strip().upper()
        if prefixes and candidate not in prefixes:
            raise ValidationError(
                f"Certificate prefix '{candidate}' is not configured for your organization",
                prefix=candidate,
            )
        return candidate
    if organization.default_certificate_prefix:
        return organization.default_certificate_prefix.upper()
    if prefixes:
        return prefixes[0]
    return settings.default_certificate_prefix


def _require_issuer(user_id: UUID | None) -> None:
    # issued_by is NOT NULL; tokens without a user record cannot issue.
    if user_id is None:
        raise ForbiddenError("Issuing certificates requires a user account")


class IssuanceService:
    def __init__(
        self,
        session: AsyncSession,
        scope: TenantScope,
        *,
        cipher: SecurityCipher,
        plans: PlanRegistry | None = None,
        certificates: CertificateRepository | None = None,
        templates: CertificateTemplateRepository | None = None,
        email_templates: EmailTemplateRepository | None = None,
        audit: AuditSink | None = None,
        notifier: NotificationDispatcher | None = None,
        qr_renderer: Callable[[str], str] = qr_data_url,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session = session
        self.scope = scope
        self.cipher = cipher
        self.plans = plans or PlanRegistry(session)
        self.certificates = certificates or CertificateRepository(session, scope)
        self.templates = templates or CertificateTemplateRepository(session, scope)
        self.email_templates = email_templates or EmailTemplateRepository(session, scope)
        self.resolver = TemplateResolver(self.templates, cipher)
        self.quota = QuotaTracker(self.certificates)
        self.audit = audit
        self.notifier = notifier
        self.qr_renderer = qr_renderer
        self.clock = clock

    async def capabilities_for(self, organization: Organization) -> CapabilitySet:
        return await capabilities_for(organization, self.plans)

    def _check_organization(self, organization: Organization) -> None:
        if not self.scope.is_super_admin and organization.id != self.scope.require_org_id():
            raise ForbiddenError("Organization does not match the authenticated context")

    async def _gate(self, organization: Organization) -> CapabilitySet:
        self._check_organization(organization)
        capabilities = await self.capabilities_for(organization)
        require_active_account(organization)
        require_current_subscription(organization, self.clock())
        return capabilities

    @staticmethod
    def _check_certificate_type(fields: IssueFields, capabilities: CapabilitySet) -> None:
        if capabilities.is_free and not fields.certificate_type:
            raise ValidationError(
                "certificate_type is required on the FREE plan",
                field="certificate_type",
                plan=capabilities.tier,
            )
        if fields.certificate_type and fields.certificate_type not in CERTIFICATE_TYPES:
            raise ValidationError(
                f"certificate_type must be one of {', '.join(CERTIFICATE_TYPES)}",
                field="certificate_type",
            )

    async def _allocate_id(self, prefix: str, year: int, taken: set[str]) -> str:
        for _ in range(settings.certificate_id_max_attempts):
            candidate = generate_certificate_id(prefix, year)
            if candidate in taken:
                continue
            if not await self.certificates.certificate_id_taken(candidate):
                taken.add(candidate)
                return candidate
        raise ConflictError("Failed to generate a unique certificate ID. Please try again.")

    async def _tree_for(
        self,
        organization: Organization,
        fields: IssueFields,
        capabilities: CapabilitySet,
        state: _BatchState,
    ) -> tuple[ElementTree, UUID | None]:
        cache_key = (None if capabilities.is_free else fields.template_id, fields.certificate_type)
        if cache_key not in state.trees:
            state.trees[cache_key] = await self.resolver.resolve(
                organization,
                fields.template_id,
                capabilities,
                certificate_type=fields.certificate_type,
            )
        return state.trees[cache_key]

    async def _message_for(
        self,
        organization: Organization,
        fields: IssueFields,
        merge: MergeFields,
        url: str,
        capabilities: CapabilitySet,
    ) -> CertificateMessage | None:
        if self.notifier is None or not self.notifier.enabled:
            return None

        subject, body = DEFAULT_SUBJECT, DEFAULT_BODY
        if capabilities.allows("email_templates"):
            template = await self.email_templates.find_default_for(fields.certificate_type)
            if template is not None:
                try:
                    body = template.html_body.open(self.cipher).plaintext
                    subject = template.subject
                except EncryptionError:
                    logger.warning("Email template could not be decrypted template=%s", template.id)

        values = {**placeholder_values(organization, merge), "verification_url": url}
        return CertificateMessage(
            recipient_email=fields.recipient_email.strip().lower(),
            subject=substitute(subject, values),
            html=substitute(body, values),
            certificate_id=merge.certificate_id,
            verification_url=url,
        )

    async def _prepare(
        self,
        organization: Organization,
        user_id: UUID,
        fields: IssueFields,
        capabilities: CapabilitySet,
        state: _BatchState,
    ) -> PreparedCertificate:
        now = self.clock()
        issue_date = fields.issue_date or now
        prefix = resolve_prefix(organization, fields.certificate_prefix)
        certificate_id = await self._allocate_id(prefix, now.year, state.taken_ids)
        url = verification_url(certificate_id)

        tree, template_id = await self._tree_for(organization, fields, capabilities, state)
        merge = MergeFields(
            recipient_name=fields.recipient_name.strip(),
            course_name=fields.course_name.strip(),
            issue_date=issue_date,
            certificate_id=certificate_id,
            certificate_type=fields.certificate_type,
            qr_image=self.qr_renderer(url),
        )
        render_data = materialize(tree, organization, merge).to_render_data()

        values: dict[str, object] = {
            "issued_by": user_id,
            "template_id": template_id,
            "recipient_name": merge.recipient_name,
            "recipient_email": fields.recipient_email.strip().lower(),
            "course_name": merge.course_name,
            "batch_name": None if capabilities.is_free else (fields.batch_name or None),
            "issue_date": issue_date,
            "expiry_date": fields.expiry_date,
            "certificate_id": certificate_id,
            "status": STATUS_ACTIVE,
            "certificate_type": fields.certificate_type or "Completion",
            "verification_url": url,
            "render_data": render_data,
        }
        message = await self._message_for(organization, fields, merge, url, capabilities)
        return PreparedCertificate(values=values, message=message)

    async def _persist(self, prepared: list[PreparedCertificate]) -> list[Certificate]:
        try:
            created = await self.certificates.add_many([item.values for item in prepared])
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            if CERTIFICATE_ID_CONSTRAINT in str(exc.orig):
                logger.warning("Certificate insert rejected by a uniqueness constraint: %s", exc.orig)
                raise ConflictError("Certificate with this ID already exists") from exc
            logger.error("Certificate insert failed: %s", exc.orig)
            raise InternalError("Certificate could not be saved") from exc
        return created

    async def _after_commit(self, prepared: list[PreparedCertificate]) -> None:
        if self.notifier is None:
            return
        for item in prepared:
            if item.message is not None:
                await self.notifier.notify_certificate_issued(item.message)

    async def issue(
        self,
        organization: Organization,
        user_id: UUID | None,
        fields: IssueFields,
        *,
        actor: Actor | None = None,
    ) -> Certificate:
        _require_issuer(user_id)
        missing = fields.missing()
        if missing:
            raise ValidationError(
                f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required",
                missing=missing,
            )

        capabilities = await self._gate(organization)

        if fields.batch_name and not capabilities.allows("bulk_issuance"):
            raise ForbiddenError(
                "Batch categorization is not available on your current plan. Please upgrade.",
                feature="bulk_issuance",
                plan=capabilities.tier,
            )
        self._check_certificate_type(fields, capabilities)

        await self.quota.enforce(capabilities.max_certificates_per_month, plan=capabilities.tier, now=self.clock())

        prepared = await self._prepare(organization, user_id, fields, capabilities, _BatchState())
        [certificate] = await self._persist([prepared])

        logger.info(
            "Certificate issued org=%s certificate=%s plan=%s",
            organization.id,
            certificate.certificate_id,
            capabilities.tier,
        )
        if self.audit is not None:
            await self.audit.record(
                (actor or Actor(user_id=user_id)).event(
                    "CERTIFICATE_ISSUED",
                    ENTITY_CERTIFICATE,
                    org_id=organization.id,
                    entity_id=certificate.id,
                    details={
                        "recipient_email": certificate.recipient_email,
                        "course_name": certificate.course_name,
                        "certificate_id": certificate.certificate_id,
                    },
                )
            )
        await self._after_commit([prepared])
        return certificate

    async def issue_many(
        self,
        organization: Organization,
        user_id: UUID | None,
        rows: list[IssueFields],
        *,
        actor: Actor | None = None,
    ) -> list[Certificate]:
        _require_issuer(user_id)
        capabilities = await self._gate(organization)
        if not capabilities.allows("bulk_issuance"):
            raise ForbiddenError(
                f"Bulk issuance is not available on your current plan ({capabilities.tier}). Please upgrade.",
                feature="bulk_issuance",
                plan=capabilities.tier,
            )

        if not rows:
            raise ValidationError("certificates must be a non-empty list")

        problems = [
            {"index": index, "missing": missing}
            for index, row in enumerate(rows)
            if (missing := row.missing())
        ]
        if problems:
            raise ValidationError(
                "Each certificate must have recipient_name, recipient_email and course_name",
                rows=problems,
            )
        for row in rows:
            self._check_certificate_type(row, capabilities)

        await self.quota.enforce(
            capabilities.max_certificates_per_month,
            plan=capabilities.tier,
            requested=len(rows),
            now=self.clock(),
        )

        state = _BatchState()
        prepared = [
            await self._prepare(organization, user_id, row, capabilities, state)
            for row in rows
        ]
        created = await self._persist(prepared)

        logger.info(
            "Bulk issuance org=%s count=%s plan=%s",
            organization.id,
            len(created),
            capabilities.tier,
        )
        if self.audit is not None:
            await self.audit.record(
                (actor or Actor(user_id=user_id)).event(
                    "BULK_CERTIFICATES_ISSUED",
                    ENTITY_CERTIFICATE,
                    org_id=organization.id,
                    details={"count": len(created), "batch_name": rows[0].batch_name},
                )
            )
        await self._after_commit(prepared)
        return created
