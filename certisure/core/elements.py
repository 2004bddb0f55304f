"""Canvas element tree.

Elements are a tagged union on ``type``. Field names follow the editor's
camelCase JSON; unknown attributes are carried through untouched so a stored
canvas round-trips without loss.
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class CanvasModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class ElementBase(CanvasModel):
    id: str
    x: float = 0
    y: float = 0
    width: float | None = None
    height: float | None = None
    opacity: float | None = None


class TextElement(ElementBase):
    type: Literal["text"] = "text"
    content: str = ""
    font_size: float | None = None
    font_weight: str | None = None
    font_family: str | None = None
    font_style: str | None = None
    color: str | None = None
    align: str | None = None


class ShapeElement(ElementBase):
    type: Literal["shape"] = "shape"
    shape_type: str = "rectangle"
    color: str | None = None
    fill_color: str | None = None
    stroke_width: float | None = None


class LogoElement(ElementBase):
    type: Literal["logo"] = "logo"
    image_url: str | None = None
    placeholder: bool | None = None


class SignatureElement(ElementBase):
    type: Literal["signature"] = "signature"
    image_url: str | None = None
    placeholder: bool | None = None


class QrCodeElement(ElementBase):
    type: Literal["qrcode"] = "qrcode"
    image_url: str | None = None
    placeholder: bool | None = None


Element = Annotated[
    Union[TextElement, ShapeElement, LogoElement, SignatureElement, QrCodeElement],
    Field(discriminator="type"),
]


class ElementTree(CanvasModel):
    elements: list[Element] = Field(default_factory=list)

    def of_type(self, element_type: type[ElementBase]) -> list[ElementBase]:
        return [element for element in self.elements if isinstance(element, element_type)]

    def first(self, element_type: type[ElementBase]) -> ElementBase | None:
        return next((element for element in self.elements if isinstance(element, element_type)), None)

    def to_render_data(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class CanvasParseError(ValueError):
    pass


def parse_tree(raw: str | dict[str, Any]) -> ElementTree:
    """Parse a canvas strictly; raises ``CanvasParseError`` on malformed input."""
    try:
        data = json.loads(raw) if isinstance(raw, str) else raw
        if isinstance(data, list):
            data = {"elements": data}
        return ElementTree.model_validate(data)
    except (json.JSONDecodeError, PydanticValidationError, TypeError) as exc:
        raise CanvasParseError("Invalid canvas JSON") from exc


def parse_tree_or_empty(raw: str | dict[str, Any]) -> ElementTree:
    try:
        return parse_tree(raw)
    except CanvasParseError:
        logger.warning("Stored canvas could not be parsed; using an empty element list")
        return ElementTree()
