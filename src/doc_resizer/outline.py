"""Outline extraction, image inventory and scope assignment."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Sequence

from .document import Block, Document, Paragraph, Table


class ImageKind(str, Enum):
    INLINE = "inline"
    FLOATING = "floating"


@dataclass(slots=True)
class OutlineNode:
    id: str
    title: str
    level: int
    start_offset: int
    end_offset: int
    scope_end_offset: int = 0

    def contains(self, offset: int) -> bool:
        return self.start_offset <= offset < self.scope_end_offset


@dataclass(frozen=True, slots=True)
class ImageRef:
    id: str
    kind: ImageKind
    anchor_offset: int
    source_uri: str
    width: float | None = None
    height: float | None = None


@dataclass(slots=True)
class OutlineEntry:
    """A heading together with every image anchored inside its scope."""

    node: OutlineNode
    images: list[ImageRef] = field(default_factory=list)

    @property
    def image_count(self) -> int:
        return len(self.images)


@dataclass(slots=True)
class DocumentStructure:
    title: str
    items: list[OutlineEntry]
    images: list[ImageRef]
    assignments: dict[str, str | None]

    @property
    def unscoped_images(self) -> list[ImageRef]:
        return [image for image in self.images if self.assignments.get(image.id) is None]

    def to_payload(self) -> dict[str, object]:
        return {
            "title": self.title,
            "items": [
                {
                    "id": entry.node.id,
                    "title": entry.node.title,
                    "level": entry.node.level,
                    "start_index": entry.node.start_offset,
                    "end_index": entry.node.end_offset,
                    "scope_end_index": entry.node.scope_end_offset,
                    "image_count": entry.image_count,
                    "images": [_image_payload(image) for image in entry.images],
                }
                for entry in self.items
            ],
            "images": [_image_payload(image) for image in self.images],
            "unscoped_image_ids": [image.id for image in self.unscoped_images],
            "assignments": dict(self.assignments),
        }


def _image_payload(image: ImageRef) -> dict[str, object]:
    return {
        "id": image.id,
        "type": image.kind.value,
        "start_index": image.anchor_offset,
        "uri": image.source_uri,
        "width": image.width,
        "height": image.height,
    }


def extract_outline(document: Document) -> list[OutlineNode]:
    """Return top-level headings in document order with their scope ranges."""
    outline: list[OutlineNode] = []
    for block in document.body:
        if not isinstance(block, Paragraph):
            continue
        level = block.heading_level
        if level <= 0:
            continue
        title = block.text
        if not title:
            continue
        outline.append(
            OutlineNode(
                id=f"heading-{block.start}",
                title=title,
                level=level,
                start_offset=block.start,
                end_offset=block.end,
            )
        )
    compute_scopes(outline, document.end_offset)
    return outline


def compute_scopes(outline: Sequence[OutlineNode], document_end: int) -> None:
    """Set each node's scope end to the next same-or-shallower heading, or document end."""
    for index, node in enumerate(outline):
        boundary = document_end
        for later in outline[index + 1 :]:
            if later.level <= node.level:
                boundary = later.start_offset
                break
        node.scope_end_offset = boundary


def _iter_paragraphs(blocks: Sequence[Block]) -> Iterator[Paragraph]:
    for block in blocks:
        if isinstance(block, Paragraph):
            yield block
        elif isinstance(block, Table):
            for cell in block.iter_cells():
                yield from _iter_paragraphs(cell.content)


def collect_images(document: Document) -> list[ImageRef]:
    """Flatten every inline and floating image, descending into table cells.

    Objects without a content URI are skipped since they cannot be reinserted.
    """
    images: list[ImageRef] = []
    for paragraph in _iter_paragraphs(document.body):
        for element in paragraph.elements:
            if not element.inline_object_id:
                continue
            embedded = document.inline_objects.get(element.inline_object_id)
            if embedded is None or not embedded.content_uri:
                continue
            images.append(
                ImageRef(
                    id=embedded.object_id,
                    kind=ImageKind.INLINE,
                    anchor_offset=element.start,
                    source_uri=embedded.content_uri,
                    width=embedded.width,
                    height=embedded.height,
                )
            )
        for object_id in paragraph.positioned_object_ids:
            embedded = document.positioned_objects.get(object_id)
            if embedded is None or not embedded.content_uri:
                continue
            images.append(
                ImageRef(
                    id=embedded.object_id,
                    kind=ImageKind.FLOATING,
                    anchor_offset=paragraph.start,
                    source_uri=embedded.content_uri,
                    width=embedded.width,
                    height=embedded.height,
                )
            )
    return images


def deepest_scope(outline: Sequence[OutlineNode], offset: int) -> OutlineNode | None:
    best: OutlineNode | None = None
    for node in outline:
        if node.contains(offset) and (best is None or node.level > best.level):
            best = node
    return best


def assign_scopes(outline: Sequence[OutlineNode], images: Sequence[ImageRef]) -> dict[str, str | None]:
    """Bind each image id to the id of the innermost heading containing its anchor."""
    assignments: dict[str, str | None] = {}
    for image in images:
        node = deepest_scope(outline, image.anchor_offset)
        assignments[image.id] = node.id if node is not None else None
    return assignments


def build_structure(document: Document) -> DocumentStructure:
    outline = extract_outline(document)
    images = collect_images(document)
    items = [
        OutlineEntry(node=node, images=[image for image in images if node.contains(image.anchor_offset)])
        for node in outline
    ]
    return DocumentStructure(
        title=document.title,
        items=items,
        images=images,
        assignments=assign_scopes(outline, images),
    )


def find_image(document: Document, object_id: str) -> ImageRef | None:
    """Locate a single image by object id in the current snapshot."""
    for image in collect_images(document):
        if image.id == object_id:
            return image
    return None


__all__ = [
    "DocumentStructure",
    "ImageKind",
    "ImageRef",
    "OutlineEntry",
    "OutlineNode",
    "assign_scopes",
    "build_structure",
    "collect_images",
    "compute_scopes",
    "deepest_scope",
    "extract_outline",
    "find_image",
]
