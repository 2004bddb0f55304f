from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime

from certisure.core.elements import ElementTree, LogoElement, QrCodeElement, TextElement
from certisure.models.organization import Organization

PLACEHOLDER_PATTERN = re.compile(r"\{\{(\w+)\}\}")
ORGANIZATION_NAME_FALLBACK = "Our Academy"
DEFAULT_CERTIFICATE_TYPE = "Completion"


@dataclass(frozen=True, slots=True)
class MergeFields:
    recipient_name: str
    course_name: str
    issue_date: date | datetime
    certificate_id: str
    certificate_type: str | None = None
    qr_image: str | None = None


def format_issue_date(value: date | datetime) -> str:
    return f"{value.month}/{value.day}/{value.year}"


def placeholder_values(organization: Organization, fields: MergeFields) -> dict[str, str]:
    return {
        "recipient_name": fields.recipient_name,
        "course_name": fields.course_name,
        "issue_date": format_issue_date(fields.issue_date),
        "organization_name": organization.name or ORGANIZATION_NAME_FALLBACK,
        "certificate_id": fields.certificate_id,
        "certificate_type": fields.certificate_type or DEFAULT_CERTIFICATE_TYPE,
    }


def substitute(text: str, values: dict[str, str]) -> str:
    # Single pass: substituted values are never rescanned, unknown tokens stay as written.
    return PLACEHOLDER_PATTERN.sub(lambda match: values.get(match.group(1), match.group(0)), text)


def _merge_logo(tree: ElementTree, logo_url: str) -> None:
    existing = tree.first(LogoElement)
    if existing is not None:
        existing.image_url = logo_url
        return
    tree.elements.append(LogoElement(id="org-logo", x=15, y=15, width=80, height=80, image_url=logo_url))


def _merge_qr(tree: ElementTree, qr_image: str) -> None:
    existing = tree.first(QrCodeElement)
    if existing is not None:
        existing.image_url = qr_image
        existing.placeholder = False
        return
    tree.elements.append(QrCodeElement(id="qr-code", x=85, y=85, width=80, height=80, image_url=qr_image))


def materialize(tree: ElementTree, organization: Organization, fields: MergeFields) -> ElementTree:
    """Apply org branding, placeholder values and the QR image to a copy of ``tree``."""
    merged = tree.model_copy(deep=True)

    if organization.logo:
        _merge_logo(merged, organization.logo)

    values = placeholder_values(organization, fields)
    for element in merged.of_type(TextElement):
        if element.content:
            element.content = substitute(element.content, values)

    if fields.qr_image:
        _merge_qr(merged, fields.qr_image)

    return merged
