"""Resize planning: selection, proportional sizing and offset-safe ordering."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Literal, Sequence, Union
from urllib.parse import quote

from .constants import POINTS_PER_CM
from .outline import ImageKind, ImageRef

logger = logging.getLogger(__name__)

UriRewriter = Callable[[ImageRef], str]


@dataclass(frozen=True, slots=True)
class AllImages:
    pass


@dataclass(frozen=True, slots=True)
class ImageIdSelection:
    ids: frozenset[str]


@dataclass(frozen=True, slots=True)
class ScopeRangeSelection:
    ranges: tuple[tuple[int, int], ...]

    def contains(self, offset: int) -> bool:
        return any(start <= offset < end for start, end in self.ranges)


ScopeSelection = Union[AllImages, ImageIdSelection, ScopeRangeSelection]

ALL_IMAGES = AllImages()


def selection_from_request(
    image_ids: Iterable[str] | None = None,
    scopes: Iterable[tuple[int, int]] | None = None,
    *,
    default: Literal["all", "none"] = "all",
) -> ScopeSelection:
    """Pick the selection a request describes.

    Explicit ids take precedence over scope ranges. ``None`` means the caller
    did not provide that filter; an empty collection selects nothing.
    """
    if image_ids is not None:
        return ImageIdSelection(frozenset(str(item) for item in image_ids))
    if scopes is not None:
        return ScopeRangeSelection(tuple((int(start), int(end)) for start, end in scopes))
    if default == "none":
        return ImageIdSelection(frozenset())
    return ALL_IMAGES


def select_images(images: Sequence[ImageRef], selection: ScopeSelection) -> list[ImageRef]:
    if isinstance(selection, AllImages):
        return list(images)
    if isinstance(selection, ImageIdSelection):
        return [image for image in images if image.id in selection.ids]
    if isinstance(selection, ScopeRangeSelection):
        return [image for image in images if selection.contains(image.anchor_offset)]
    raise TypeError(f"Unsupported selection: {selection!r}")


class ActionKind(str, Enum):
    DELETE_INSERT = "delete_insert"
    DELETE_POSITIONED_INSERT = "delete_positioned_insert"
    PROPERTY_UPDATE = "property_update"


@dataclass(frozen=True, slots=True)
class DeleteInsert:
    """Remove an inline placeholder and insert the resized image at the same offset."""

    image_id: str
    anchor_offset: int
    new_uri: str
    target_width: float
    target_height: float | None

    kind = ActionKind.DELETE_INSERT
    operation_count = 2


@dataclass(frozen=True, slots=True)
class DeletePositionedInsert:
    """Remove a floating object and insert it inline at its anchor paragraph."""

    image_id: str
    anchor_offset: int
    new_uri: str
    target_width: float
    target_height: float | None

    kind = ActionKind.DELETE_POSITIONED_INSERT
    operation_count = 2


@dataclass(frozen=True, slots=True)
class PropertyUpdate:
    image_id: str
    anchor_offset: int
    target_width: float
    target_height: float | None

    kind = ActionKind.PROPERTY_UPDATE
    operation_count = 1


MutationAction = Union[DeleteInsert, DeletePositionedInsert, PropertyUpdate]


@dataclass(slots=True)
class ResizePlan:
    target_width_pt: float
    actions: list[MutationAction] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.actions)


def cm_to_points(value_cm: float) -> float:
    return value_cm * POINTS_PER_CM


def target_size(image: ImageRef, target_width_pt: float) -> tuple[float, float | None, bool]:
    """Return ``(width, height, fell_back)`` for an image scaled to the target width.

    Missing or zero width falls back to a 1:1 scale so nothing is divided by zero.
    """
    current_width = image.width
    fell_back = False
    if not current_width:
        current_width = target_width_pt
        fell_back = True
    scale = target_width_pt / current_width
    height = image.height * scale if image.height is not None else None
    if height is None:
        fell_back = True
    return target_width_pt, height, fell_back


def relay_rewriter(template: str) -> UriRewriter:
    """Build a rewriter that embeds the URL-encoded source URI into ``template``."""
    if "{uri}" not in template:
        raise ValueError("relay template must contain a {uri} placeholder")

    def _rewrite(image: ImageRef) -> str:
        return template.replace("{uri}", quote(image.source_uri, safe=""))

    return _rewrite


def plan_resizes(
    images: Sequence[ImageRef],
    target_width_cm: float,
    selection: ScopeSelection = ALL_IMAGES,
    *,
    in_place: bool = False,
    uri_rewriter: UriRewriter | None = None,
) -> ResizePlan:
    if target_width_cm <= 0:
        raise ValueError("target width must be positive")
    plan = ResizePlan(target_width_pt=cm_to_points(target_width_cm))
    for image in select_images(images, selection):
        width, height, fell_back = target_size(image, plan.target_width_pt)
        if fell_back:
            logger.warning("Image %s has incomplete geometry, using 1:1 scale fallback", image.id)
            plan.warnings.append(f"MISSING_GEOMETRY:{image.id}")
        plan.actions.append(_build_action(image, width, height, in_place, uri_rewriter))
    plan.actions = sort_actions(plan.actions)
    return plan


def _build_action(
    image: ImageRef,
    width: float,
    height: float | None,
    in_place: bool,
    uri_rewriter: UriRewriter | None,
) -> MutationAction:
    if in_place:
        return PropertyUpdate(
            image_id=image.id,
            anchor_offset=image.anchor_offset,
            target_width=width,
            target_height=height,
        )
    uri = uri_rewriter(image) if uri_rewriter is not None else image.source_uri
    if image.kind is ImageKind.FLOATING:
        return DeletePositionedInsert(
            image_id=image.id,
            anchor_offset=image.anchor_offset,
            new_uri=uri,
            target_width=width,
            target_height=height,
        )
    return DeleteInsert(
        image_id=image.id,
        anchor_offset=image.anchor_offset,
        new_uri=uri,
        target_width=width,
        target_height=height,
    )


def _sort_key(action: MutationAction) -> tuple[int, int]:
    rank = 0 if isinstance(action, DeletePositionedInsert) else 1
    return (-action.anchor_offset, rank)


def sort_actions(actions: Iterable[MutationAction]) -> list[MutationAction]:
    """Order actions from the highest anchor offset to the lowest.

    At equal offsets floating-object actions come first.
    """
    return sorted(actions, key=_sort_key)


__all__ = [
    "ALL_IMAGES",
    "ActionKind",
    "AllImages",
    "DeleteInsert",
    "DeletePositionedInsert",
    "ImageIdSelection",
    "MutationAction",
    "PropertyUpdate",
    "ResizePlan",
    "ScopeRangeSelection",
    "ScopeSelection",
    "UriRewriter",
    "cm_to_points",
    "plan_resizes",
    "relay_rewriter",
    "select_images",
    "selection_from_request",
    "sort_actions",
    "target_size",
]
