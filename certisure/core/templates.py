"""Template resolution and the editor capability gate."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from certisure.core.elements import (
    ElementTree,
    LogoElement,
    QrCodeElement,
    ShapeElement,
    SignatureElement,
    TextElement,
    parse_tree_or_empty,
)
from certisure.core.entitlements import CapabilitySet
from certisure.core.errors import ForbiddenError, NotFoundError
from certisure.core.security.crypto import EncryptionError, SecurityCipher
from certisure.models.certificate_template import CertificateTemplate
from certisure.models.organization import Organization

logger = logging.getLogger(__name__)

WATERMARK_TEXT = "Issued via Certisure (Free Plan)"
DEFAULT_BACKGROUND_COLORS = frozenset({"#ffffff", "#fff"})
CANONICAL_SIZES = frozenset({(297.0, 210.0, "landscape"), (210.0, 297.0, "portrait")})


def builtin_layout(certificate_type: str | None, *, watermark: bool) -> ElementTree:
    title = f"CERTIFICATE OF {(certificate_type or '').upper() or 'COMPLETION'}"
    elements = [
        ShapeElement(
            id="border",
            shape_type="rectangle",
            x=50,
            y=50,
            width=95,
            height=95,
            color="#b8860b",
            fill_color="transparent",
            stroke_width=5,
        ),
        TextElement(
            id="title",
            content=title,
            x=50,
            y=25,
            font_size=32,
            font_weight="bold",
            font_family="serif",
            color="#1a1a1a",
            align="center",
        ),
        TextElement(id="text1", content="This is to certify that", x=50, y=38, font_size=18, align="center"),
        TextElement(
            id="recipient",
            content="{{recipient_name}}",
            x=50,
            y=50,
            font_size=42,
            font_weight="bold",
            font_family="serif",
            color="#b8860b",
            align="center",
        ),
        TextElement(id="text2", content="has successfully completed", x=50, y=62, font_size=18, align="center"),
        TextElement(
            id="course",
            content="{{course_name}}",
            x=50,
            y=72,
            font_size=24,
            font_weight="bold",
            align="center",
        ),
        TextElement(id="org", content="{{organization_name}}", x=50, y=80, font_size=16, align="center"),
        TextElement(id="date", content="Issued on {{issue_date}}", x=50, y=85, font_size=14, align="center"),
    ]
    if watermark:
        elements.append(
            TextElement(
                id="watermark",
                content=WATERMARK_TEXT,
                x=50,
                y=95,
                font_size=10,
                color="#999999",
                align="center",
                opacity=0.6,
            )
        )
    return ElementTree(elements=elements, backgroundColor="#ffffff", orientation="landscape")


@dataclass(frozen=True, slots=True)
class StarterTemplate:
    template_name: str
    tree: ElementTree
    width: float = 297
    height: float = 210
    orientation: str = "landscape"


STARTER_TEMPLATES: tuple[StarterTemplate, ...] = (
    StarterTemplate(
        template_name="Classic Completion Certificate",
        tree=ElementTree(
            elements=[
                TextElement(id="txt-1", content="CERTIFICATE", x=148, y=40, font_size=40, font_weight="bold", align="center", color="#1a1a1a"),
                TextElement(id="txt-2", content="OF COMPLETION", x=148, y=60, font_size=20, align="center", color="#444"),
                TextElement(id="txt-3", content="This is to certify that", x=148, y=90, font_size=16, align="center"),
                TextElement(id="txt-4", content="{{recipient_name}}", x=148, y=110, font_size=32, font_weight="bold", align="center", color="#000"),
                LogoElement(id="logo-1", x=133, y=10, width=30, height=30, placeholder=True),
                SignatureElement(id="sig-1", x=123, y=160, width=50, height=25, placeholder=True),
            ]
        ),
    ),
    StarterTemplate(
        template_name="Professional Achievement",
        tree=ElementTree(
            elements=[
                TextElement(id="txt-1", content="ACHIEVEMENT", x=148, y=45, font_size=36, font_weight="bold", align="center", color="#0c4a6e"),
                TextElement(id="txt-2", content="PROUDLY PRESENTED TO", x=148, y=75, font_size=14, align="center", color="#64748b"),
                TextElement(id="txt-3", content="{{recipient_name}}", x=148, y=105, font_size=36, font_weight="bold", align="center", color="#0f172a"),
                LogoElement(id="logo-1", x=20, y=20, width=40, height=40, placeholder=True),
                SignatureElement(id="sig-1", x=220, y=160, width=50, height=25, placeholder=True),
            ]
        ),
    ),
)


@dataclass(frozen=True, slots=True)
class TemplateDraft:
    tree: ElementTree
    width: float = 297
    height: float = 210
    orientation: str = "landscape"
    background_color: str | None = "#ffffff"
    background_image: str | None = None


@dataclass(frozen=True, slots=True)
class GateViolation:
    feature: str
    message: str


def _edited_text_elements(tree: ElementTree, baseline: ElementTree | None) -> list[TextElement]:
    stored = {}
    if baseline is not None:
        stored = {element.id: element.model_dump() for element in baseline.of_type(TextElement)}
    return [
        element
        for element in tree.of_type(TextElement)
        if stored.get(element.id) != element.model_dump()
    ]


def gate_violations(
    draft: TemplateDraft,
    capabilities: CapabilitySet,
    baseline: ElementTree | None = None,
) -> list[GateViolation]:
    """Every editor capability the draft needs but the plan lacks.

    ``baseline`` is the stored canvas on update; text elements that are
    unchanged from it are not treated as text editing.
    """
    violations: list[GateViolation] = []

    if draft.tree.of_type(QrCodeElement) and not capabilities.allows("qr_code"):
        violations.append(
            GateViolation("qr_code", "QR code elements are not available on your plan. Upgrade to add QR codes.")
        )

    if _edited_text_elements(draft.tree, baseline) and not capabilities.allows("text_editing"):
        violations.append(
            GateViolation("text_editing", "Text editing is not available on your plan. Upgrade to edit text.")
        )

    if draft.tree.of_type(ShapeElement) and not capabilities.allows("shapes"):
        violations.append(
            GateViolation("shapes", "Shapes are not available on your plan. Upgrade to add shapes.")
        )

    if (draft.background_image or "").strip() and not capabilities.allows("background_image"):
        violations.append(
            GateViolation(
                "background_image",
                "Background images are not available on your plan. Upgrade to use background images.",
            )
        )

    color = (draft.background_color or "#ffffff").strip().lower()
    if color not in DEFAULT_BACKGROUND_COLORS and not capabilities.allows("background_color"):
        violations.append(
            GateViolation(
                "background_color",
                "Custom background colors are not available on your plan. Upgrade to change the background.",
            )
        )

    size = (float(draft.width), float(draft.height), (draft.orientation or "").lower())
    if size not in CANONICAL_SIZES and not capabilities.allows("size_control"):
        violations.append(
            GateViolation(
                "size_control",
                "Custom sizes are not available on your plan. Use A4 landscape (297x210) or portrait (210x297).",
            )
        )

    return violations


def enforce_template_gate(
    draft: TemplateDraft,
    capabilities: CapabilitySet,
    baseline: ElementTree | None = None,
) -> None:
    violations = gate_violations(draft, capabilities, baseline)
    if violations:
        raise ForbiddenError(
            " ".join(violation.message for violation in violations),
            plan=capabilities.tier,
            features=[violation.feature for violation in violations],
        )


class TemplateLookup(Protocol):
    async def get(self, entity_id: UUID) -> CertificateTemplate | None: ...


def open_canvas(template: CertificateTemplate, cipher: SecurityCipher) -> ElementTree:
    try:
        plaintext = template.canvas.open(cipher).plaintext
    except EncryptionError:
        logger.warning("Template canvas could not be decrypted template=%s", template.id)
        return ElementTree()
    return parse_tree_or_empty(plaintext)


class TemplateResolver:
    def __init__(self, templates: TemplateLookup, cipher: SecurityCipher) -> None:
        self.templates = templates
        self.cipher = cipher

    async def resolve(
        self,
        organization: Organization,
        template_id: UUID | None,
        capabilities: CapabilitySet,
        *,
        certificate_type: str | None = None,
    ) -> tuple[ElementTree, UUID | None]:
        """Return the element tree to render and the id of the template it came from."""
        if template_id is None or capabilities.is_free or not capabilities.allows("custom_templates"):
            return builtin_layout(certificate_type, watermark=capabilities.is_free), None

        template = await self.templates.get(template_id)
        if template is None or template.org_id != organization.id:
            raise NotFoundError("Certificate template not found or access denied", template_id=str(template_id))

        return open_canvas(template, self.cipher), template.id
