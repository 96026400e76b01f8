import pytest

from doc_resizer.constants import POINTS_PER_CM
from doc_resizer.outline import ImageKind, ImageRef
from doc_resizer.planner import (
    ALL_IMAGES,
    DeleteInsert,
    DeletePositionedInsert,
    ImageIdSelection,
    PropertyUpdate,
    ScopeRangeSelection,
    plan_resizes,
    relay_rewriter,
    selection_from_request,
    sort_actions,
)


def image(image_id: str, offset: int, kind: ImageKind = ImageKind.INLINE, width=500.0, height=300.0) -> ImageRef:
    return ImageRef(
        id=image_id,
        kind=kind,
        anchor_offset=offset,
        source_uri=f"https://images.example/{image_id}",
        width=width,
        height=height,
    )


def test_single_inline_image_scaled_to_ten_centimeters():
    plan = plan_resizes([image("kix.1", 12)], 10)
    assert plan.target_width_pt == pytest.approx(283.465)
    (action,) = plan.actions
    assert isinstance(action, DeleteInsert)
    assert action.target_width == pytest.approx(283.465)
    assert action.target_height == pytest.approx(170.079)
    assert action.new_uri == "https://images.example/kix.1"


def test_aspect_ratio_is_preserved():
    images = [image(f"kix.{n}", n * 10, width=100.0 + n * 37, height=40.0 + n * 11) for n in range(1, 8)]
    plan = plan_resizes(images, 7.5)
    originals = {img.id: img for img in images}
    for action in plan.actions:
        original = originals[action.image_id]
        assert action.target_height / action.target_width == pytest.approx(original.height / original.width)


def test_already_target_width_is_unchanged():
    width = 10 * POINTS_PER_CM
    plan = plan_resizes([image("kix.1", 5, width=width, height=123.4)], 10)
    assert plan.actions[0].target_height == pytest.approx(123.4)


def test_missing_width_falls_back_to_unit_scale():
    plan = plan_resizes([image("kix.1", 5, width=None, height=80.0)], 4)
    action = plan.actions[0]
    assert action.target_width == pytest.approx(4 * POINTS_PER_CM)
    assert action.target_height == pytest.approx(80.0)
    assert plan.warnings == ["MISSING_GEOMETRY:kix.1"]


def test_explicit_id_selection_ignores_scope():
    images = [image(f"kix.{n}", n * 10) for n in range(10)]
    plan = plan_resizes(images, 5, ImageIdSelection(frozenset({"kix.2", "kix.7"})))
    assert sorted(action.image_id for action in plan.actions) == ["kix.2", "kix.7"]


def test_scope_ranges_select_by_anchor():
    images = [image("kix.a", 5), image("kix.b", 50), image("kix.c", 99), image("kix.d", 100)]
    plan = plan_resizes(images, 5, ScopeRangeSelection(((40, 100),)))
    assert {action.image_id for action in plan.actions} == {"kix.b", "kix.c"}


def test_no_matching_images_is_an_empty_plan():
    plan = plan_resizes([image("kix.a", 5)], 5, ScopeRangeSelection(((500, 600),)))
    assert plan.total == 0
    assert plan.actions == []


def test_floating_images_become_positioned_actions():
    plan = plan_resizes([image("kix.f", 30, kind=ImageKind.FLOATING)], 5)
    assert isinstance(plan.actions[0], DeletePositionedInsert)


def test_in_place_strategy_emits_property_updates():
    plan = plan_resizes([image("kix.a", 5), image("kix.f", 9, kind=ImageKind.FLOATING)], 5, in_place=True)
    assert all(isinstance(action, PropertyUpdate) for action in plan.actions)


def test_actions_sorted_from_highest_offset():
    images = [image(f"kix.{offset}", offset) for offset in (15, 300, 42, 120, 7)]
    plan = plan_resizes(images, 5)
    offsets = [action.anchor_offset for action in plan.actions]
    assert all(first >= second for first, second in zip(offsets, offsets[1:]))


def test_floating_sorted_before_inline_at_same_offset():
    inline = DeleteInsert("kix.i", 120, "u", 10.0, 5.0)
    floating = DeletePositionedInsert("kix.f", 120, "u", 10.0, 5.0)
    lower = DeleteInsert("kix.low", 60, "u", 10.0, 5.0)
    assert sort_actions([lower, inline, floating]) == [floating, inline, lower]


def test_selection_precedence():
    assert selection_from_request(["a"], [(0, 10)]) == ImageIdSelection(frozenset({"a"}))
    assert selection_from_request(None, [(0, 10)]) == ScopeRangeSelection(((0, 10),))
    assert selection_from_request() is ALL_IMAGES
    assert selection_from_request(default="none") == ImageIdSelection(frozenset())
    assert selection_from_request(None, []) == ScopeRangeSelection(())


def test_relay_rewriter_encodes_source():
    rewrite = relay_rewriter("https://relay.example/img?src={uri}")
    plan = plan_resizes([image("kix.a", 5)], 5, uri_rewriter=rewrite)
    assert plan.actions[0].new_uri == "https://relay.example/img?src=https%3A%2F%2Fimages.example%2Fkix.a"


def test_non_positive_width_rejected():
    with pytest.raises(ValueError):
        plan_resizes([image("kix.a", 5)], 0)
