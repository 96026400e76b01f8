"""Typed view of a remote document snapshot.

The remote API returns the document as loosely structured JSON. It is decoded
once, here, into a small tree of block nodes (``Paragraph`` or ``Table``) so the
outline and inventory passes never touch raw dictionaries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Union

logger = logging.getLogger(__name__)

# Nested tables deeper than this are ignored.
MAX_TABLE_DEPTH = 32

EMU_PER_POINT = 12700.0

HEADING_STYLES: dict[str, int] = {
    "HEADING_1": 1,
    "HEADING_2": 2,
    "HEADING_3": 3,
    "HEADING_4": 4,
    "HEADING_5": 5,
    "HEADING_6": 6,
}


class DocumentDecodeError(ValueError):
    """Raised when a snapshot cannot be interpreted as a document."""


@dataclass(slots=True)
class ParagraphElement:
    start: int
    end: int
    text: str = ""
    inline_object_id: str | None = None


@dataclass(slots=True)
class Paragraph:
    start: int
    end: int
    style: str | None = None
    elements: list[ParagraphElement] = field(default_factory=list)
    positioned_object_ids: list[str] = field(default_factory=list)

    @property
    def heading_level(self) -> int:
        return HEADING_STYLES.get(self.style or "", 0)

    @property
    def text(self) -> str:
        return "".join(element.text for element in self.elements).strip()


@dataclass(slots=True)
class TableCell:
    content: list["Block"] = field(default_factory=list)


@dataclass(slots=True)
class Table:
    start: int
    end: int
    rows: list[list[TableCell]] = field(default_factory=list)

    def iter_cells(self):
        for row in self.rows:
            yield from row


Block = Union[Paragraph, Table]


@dataclass(slots=True)
class EmbeddedObject:
    object_id: str
    content_uri: str | None
    width: float | None
    height: float | None


@dataclass(slots=True)
class Document:
    document_id: str
    title: str
    body: list[Block]
    end_offset: int
    inline_objects: dict[str, EmbeddedObject] = field(default_factory=dict)
    positioned_objects: dict[str, EmbeddedObject] = field(default_factory=dict)


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _magnitude(dimension: Any) -> float | None:
    if not isinstance(dimension, Mapping):
        return None
    magnitude = dimension.get("magnitude")
    if magnitude is None:
        return None
    value = float(magnitude)
    if str(dimension.get("unit", "PT")).upper() == "EMU":
        value /= EMU_PER_POINT
    return value


def _decode_embedded(object_id: str, payload: Any, properties_key: str) -> EmbeddedObject:
    embedded: Mapping[str, Any] = {}
    if isinstance(payload, Mapping):
        props = payload.get(properties_key)
        if isinstance(props, Mapping) and isinstance(props.get("embeddedObject"), Mapping):
            embedded = props["embeddedObject"]
    image = embedded.get("imageProperties")
    size = embedded.get("size")
    uri = image.get("contentUri") if isinstance(image, Mapping) else None
    width = _magnitude(size.get("width")) if isinstance(size, Mapping) else None
    height = _magnitude(size.get("height")) if isinstance(size, Mapping) else None
    return EmbeddedObject(object_id=object_id, content_uri=uri or None, width=width, height=height)


def _decode_paragraph(start: int, end: int, payload: Mapping[str, Any]) -> Paragraph:
    elements: list[ParagraphElement] = []
    for raw in payload.get("elements") or []:
        if not isinstance(raw, Mapping):
            continue
        text_run = raw.get("textRun")
        inline = raw.get("inlineObjectElement")
        elements.append(
            ParagraphElement(
                start=_int(raw.get("startIndex")),
                end=_int(raw.get("endIndex")),
                text=str(text_run.get("content") or "") if isinstance(text_run, Mapping) else "",
                inline_object_id=inline.get("inlineObjectId") if isinstance(inline, Mapping) else None,
            )
        )
    style = payload.get("paragraphStyle")
    return Paragraph(
        start=start,
        end=end,
        style=style.get("namedStyleType") if isinstance(style, Mapping) else None,
        elements=elements,
        positioned_object_ids=[str(item) for item in payload.get("positionedObjectIds") or []],
    )


def _decode_table(start: int, end: int, payload: Mapping[str, Any], depth: int) -> Table:
    rows: list[list[TableCell]] = []
    for raw_row in payload.get("tableRows") or []:
        if not isinstance(raw_row, Mapping):
            continue
        cells = []
        for raw_cell in raw_row.get("tableCells") or []:
            content = raw_cell.get("content") if isinstance(raw_cell, Mapping) else None
            cells.append(TableCell(content=decode_blocks(content or [], depth=depth + 1)))
        rows.append(cells)
    return Table(start=start, end=end, rows=rows)


def decode_blocks(content: list[Any], *, depth: int = 0) -> list[Block]:
    """Decode a list of structural elements, keeping paragraphs and tables."""
    if depth > MAX_TABLE_DEPTH:
        logger.warning("Table nesting exceeds %d levels, ignoring deeper content", MAX_TABLE_DEPTH)
        return []
    blocks: list[Block] = []
    for raw in content:
        if not isinstance(raw, Mapping):
            continue
        start = _int(raw.get("startIndex"))
        end = _int(raw.get("endIndex"))
        if isinstance(raw.get("paragraph"), Mapping):
            blocks.append(_decode_paragraph(start, end, raw["paragraph"]))
        elif isinstance(raw.get("table"), Mapping):
            blocks.append(_decode_table(start, end, raw["table"], depth))
    return blocks


def decode_document(raw: Any) -> Document:
    if not isinstance(raw, Mapping):
        raise DocumentDecodeError("Document snapshot must be a JSON object")
    body = raw.get("body") or {}
    if not isinstance(body, Mapping):
        raise DocumentDecodeError("Document body must be a JSON object")
    content = body.get("content") or []
    if not isinstance(content, list):
        raise DocumentDecodeError("Document body content must be a list")

    end_offset = 0
    if content and isinstance(content[-1], Mapping):
        end_offset = _int(content[-1].get("endIndex"))

    inline_raw = raw.get("inlineObjects") or {}
    positioned_raw = raw.get("positionedObjects") or {}
    return Document(
        document_id=str(raw.get("documentId") or ""),
        title=str(raw.get("title") or "Untitled Document"),
        body=decode_blocks(content),
        end_offset=end_offset,
        inline_objects={
            str(key): _decode_embedded(str(key), value, "inlineObjectProperties")
            for key, value in inline_raw.items()
        },
        positioned_objects={
            str(key): _decode_embedded(str(key), value, "positionedObjectProperties")
            for key, value in positioned_raw.items()
        },
    )


__all__ = [
    "Block",
    "Document",
    "DocumentDecodeError",
    "EmbeddedObject",
    "HEADING_STYLES",
    "MAX_TABLE_DEPTH",
    "Paragraph",
    "ParagraphElement",
    "Table",
    "TableCell",
    "decode_blocks",
    "decode_document",
]
