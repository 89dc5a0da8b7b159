"""Tests for the fishbone layout engine."""

import math

import pytest

from fishbone_mcp.geometry import horizontal_projection
from fishbone_mcp.layout import FishboneLayout, compute_layout
from fishbone_mcp.metrics import MeasurementCache, StaticTextMetrics
from fishbone_mcp.models import Cause, Diagram

EPS = 1e-6
COS45 = math.cos(math.pi / 4)


def _diagram(*cause_lists) -> Diagram:
    diagram = Diagram(problem_statement="Problem")
    for i, texts in enumerate(cause_lists):
        category = diagram.add_category(f"Category {i}")
        for text in texts:
            diagram.add_cause(category.id, text)
    return diagram


def _heavy_diagram() -> Diagram:
    return _diagram(
        ["Short"] * 7,
        ["A cause with a fairly long description attached to it", "b", "c"],
        [],
        ["x" * 60, "y" * 200, "z"],
        ["one", "two"],
        ["Lonely cause on the last pair, written out long enough to wrap twice"],
        ["p", "q", "r", "s"],
    )


@pytest.fixture(params=["seeded", "busy", "heavy"])
def diagram(request, seeded_diagram, busy_diagram):
    return {
        "seeded": seeded_diagram,
        "busy": busy_diagram,
        "heavy": _heavy_diagram(),
    }[request.param]


# --- Bones ---

def test_bone_length_grows_with_causes():
    engine = FishboneLayout(_diagram([], ["a"], ["a", "b", "c", "d"]))
    assert engine.bone_length(0) == 80
    assert engine.bone_length(1) == 80
    assert engine.bone_length(2) == 80 + 3 * 28


def test_sides_alternate():
    engine = FishboneLayout(_diagram([], [], [], []))
    engine.recompute_category_x_map()
    assert [engine.is_top_side(i) for i in range(4)] == [True, False, True, False]
    assert engine.bone_end(0).y < 0 < engine.bone_end(1).y
    assert engine.bone_end(0).y == pytest.approx(-80 * COS45)


def test_title_anchor_sits_outward_of_bone_end():
    engine = FishboneLayout(_diagram([], []))
    engine.recompute_category_x_map()
    assert engine.title_anchor(0).y == pytest.approx(engine.bone_end(0).y - 20)
    assert engine.title_anchor(1).y == pytest.approx(engine.bone_end(1).y + 20)


# --- Connection points ---

def test_single_cause_attaches_at_bone_midpoint():
    engine = FishboneLayout(_diagram(["only"]))
    engine.recompute_category_x_map()
    start, end = engine.bone_start(0), engine.bone_end(0)
    point = engine.connection_point(0, 0)
    assert point.x == pytest.approx((start.x + end.x) / 2)
    assert point.y == pytest.approx((start.y + end.y) / 2)


def test_connection_points_inset_from_bone_ends():
    engine = FishboneLayout(_diagram([], ["a", "b", "c"]))
    engine.recompute_category_x_map()
    assert [engine.connection_ratio(1, j) for j in range(3)] == pytest.approx([0.1, 0.5, 0.9])
    projection = horizontal_projection(45, engine.bone_length(1))
    for j, ratio in enumerate([0.1, 0.5, 0.9]):
        point = engine.connection_point(1, j)
        assert point.x == pytest.approx(engine.category_x(1) + ratio * projection)
        assert point.y == pytest.approx(ratio * projection)
        assert point.y > 0


# --- Bone limit ---

def test_bone_limit_samples_every_bone():
    engine = FishboneLayout(_diagram([], []))
    engine.recompute_category_x_map()
    x0 = engine.category_x(0)
    assert engine.bone_limit(x0 + 10, x0 + 20, True) == pytest.approx(-20)
    assert engine.bone_limit(x0 + 10, x0 + 20, False) == pytest.approx(20)


def test_bone_limit_clamps_outside_bone_extent():
    engine = FishboneLayout(_diagram([], []))
    engine.recompute_category_x_map()
    x0 = engine.category_x(0)
    assert engine.bone_limit(0, 10, True) == pytest.approx(0)
    assert engine.bone_limit(x0 + 500, x0 + 600, True) == pytest.approx(-80 * COS45)


# --- Label placement ---

def test_measured_width_overrides_heuristic():
    diagram = _diagram(["x" * 50])
    cause = diagram.categories[0].causes[0]
    engine = FishboneLayout(diagram, measurements=MeasurementCache({cause.id: 250}))
    assert engine.label_width(0, 0) == 250
    assert FishboneLayout(diagram).label_width(0, 0) == 300


def test_label_center_y_matches_stack():
    engine = FishboneLayout(_diagram(["a", "b" * 80, "c", "d"]))
    engine.recompute_category_x_map()
    stacked = engine.stacked_center_ys(0)
    assert [engine.label_center_y(0, j) for j in range(4)] == pytest.approx(stacked)


def test_label_center_y_previews_an_edit():
    engine = FishboneLayout(_diagram(["Short cause"]))
    engine.recompute_category_x_map()
    committed = engine.label_center_y(0, 0)
    preview = engine.label_center_y(0, 0, "x" * 200)
    # a taller, wider label has to sit further from the spine
    assert preview < committed
    assert engine.label_center_y(0, 0) == committed


def test_connector_path_shape(seeded_diagram):
    engine = FishboneLayout(seeded_diagram)
    layout = engine.compute()
    for geo in layout.causes:
        first, shelf_end, anchor = geo.connector_path
        _, _, right, _ = geo.label_box
        assert first.x == pytest.approx(right)
        assert first.y == pytest.approx(geo.label_center_y)
        assert shelf_end.y == pytest.approx(first.y)
        assert first.x - shelf_end.x == pytest.approx(8)
        assert anchor == geo.connection_point
        # the last segment is a true diagonal
        assert anchor.x - shelf_end.x == pytest.approx(16)
        assert anchor.y != pytest.approx(shelf_end.y)


def test_clamped_flag_for_overflowing_labels():
    layout = compute_layout(_diagram(["short", "y" * 200]))
    assert [geo.clamped for geo in layout.causes] == [False, True]


def test_sub_causes_do_not_affect_layout(seeded_diagram):
    before = compute_layout(seeded_diagram).to_dict()
    seeded_diagram.categories[0].causes[0].sub_causes.append(Cause(text="nested " * 20))
    after = compute_layout(seeded_diagram).to_dict()
    assert before == after


# --- Properties over whole diagrams ---

def test_labels_in_a_category_never_overlap(diagram):
    layout = compute_layout(diagram)
    for category in layout.categories:
        geos = sorted(layout.causes_for(category.category_id), key=lambda g: g.index)
        for prev, cur in zip(geos, geos[1:]):
            _, prev_top, _, prev_bottom = prev.label_box
            _, cur_top, _, cur_bottom = cur.label_box
            if category.top_side:
                assert cur_bottom + 8 <= prev_top + EPS
            else:
                assert cur_top >= prev_bottom + 8 - EPS


def test_labels_keep_clear_of_every_bone(diagram):
    engine = FishboneLayout(diagram)
    layout = engine.compute()
    for geo in layout.causes:
        left, top, right, bottom = geo.label_box
        own = layout.category(geo.category_id)
        for k, other in enumerate(layout.categories):
            if other.top_side != own.top_side:
                continue
            for x in (left, right):
                bone_y = engine.bone_y_at(k, x) + layout.spine_y
                if own.top_side:
                    assert bottom <= bone_y - 24 + EPS
                else:
                    assert top >= bone_y + 24 - EPS


def test_category_pairs_share_x_and_move_right(diagram):
    engine = FishboneLayout(diagram)
    layout = engine.compute()
    xs = [geo.start.x for geo in layout.categories]
    for i in range(0, len(xs) - 1, 2):
        assert xs[i] == xs[i + 1]

    pair_xs, _ = engine.sweep_pairs(20)
    for p in range(len(pair_xs) - 1):
        reach = max(
            horizontal_projection(45, engine.bone_length(i)) + 20
            for i in (2 * p, 2 * p + 1)
            if i < len(diagram.categories)
        )
        assert pair_xs[p + 1] >= pair_xs[p] + reach + 110 - EPS


def test_everything_fits_on_canvas(diagram):
    layout = compute_layout(diagram)
    w, h = layout.canvas_width, layout.canvas_height

    def inside(x, y):
        return -EPS <= x <= w + EPS and -EPS <= y <= h + EPS

    for geo in layout.causes:
        left, top, right, bottom = geo.label_box
        assert inside(left, top) and inside(right, bottom)
    for geo in layout.categories:
        assert inside(*geo.end)
        assert inside(*geo.title_anchor)
    assert inside(*layout.problem_anchor)
    assert layout.spine_y == pytest.approx(h / 2)


def test_layout_is_deterministic(diagram):
    first = FishboneLayout(diagram).compute().to_dict()
    second = FishboneLayout(diagram).compute().to_dict()
    assert first == second


def test_height_never_below_stack_estimate(busy_diagram):
    engine = FishboneLayout(busy_diagram)
    layout = engine.compute()
    assert layout.canvas_height >= engine.canvas_height()
    assert layout.canvas_height >= 360


# --- Scenarios ---

def test_empty_diagram_uses_canvas_floor():
    layout = compute_layout(Diagram())
    assert layout.canvas_width == 520
    assert layout.canvas_height == 360
    assert layout.categories == []
    assert layout.causes == []


def test_single_empty_category():
    engine = FishboneLayout(_diagram([]))
    layout = engine.compute()
    assert engine.bone_length(0) == 80
    assert engine.category_x(0) == pytest.approx(80 + 110 + 120 + 16)
    assert layout.canvas_height == 360
    # the first pair's reach already exceeds the 520px floor
    assert layout.canvas_width == pytest.approx(326 + 80 * COS45 + 28 + 260)
    assert layout.spine_end_x == pytest.approx(layout.canvas_width - 250)


def test_mixed_label_widths_in_one_category():
    engine = FishboneLayout(_diagram(["x" * 5, "x" * 50, "x" * 5]))
    layout = engine.compute()
    assert [geo.label_size[0] for geo in layout.causes] == [120, 300, 120]
    assert engine.category_x(0) == pytest.approx(80 + 110 + 300 + 16)
    centers = [geo.label_center_y for geo in layout.causes]
    assert centers[1] < centers[0] and centers[2] < centers[1]


def test_six_categories_form_three_pairs(seeded_diagram):
    layout = compute_layout(seeded_diagram)
    xs = [geo.start.x for geo in layout.categories]
    assert xs[0] == xs[1] < xs[2] == xs[3] < xs[4] == xs[5]
    for geo in layout.categories:
        if geo.top_side:
            assert geo.end.y < layout.spine_y
        else:
            assert geo.end.y > layout.spine_y


def test_removing_the_only_cause_shrinks_height():
    diagram = _diagram(["cause"] * 12)
    category = diagram.categories[0]
    engine = FishboneLayout(diagram)
    tall = engine.compute().canvas_height
    assert tall > 360

    for cause in list(category.causes[1:]):
        diagram.remove_cause(category.id, cause.id)
    one = engine.compute().canvas_height
    assert one <= tall

    diagram.remove_cause(category.id, category.causes[0].id)
    layout = engine.compute()
    assert layout.canvas_height == 360
    assert engine.side_depth(True) == 24 + 16 + 30


def test_wide_labels_push_the_next_pair_right():
    diagram = _diagram([], ["a", "b", "x" * 50, "c", "d", "e"], [], [])
    engine = FishboneLayout(diagram)
    engine.compute()
    x0 = engine.category_x(0)
    assert x0 == pytest.approx(80 + 110 + 300 + 16)
    reach = (80 + 5 * 28) * COS45 + 20
    assert engine.category_x(2) == pytest.approx(x0 + reach + 110 + 120 + 16)


# --- Caches ---

def test_placeholder_positions_before_sweep(seeded_diagram):
    engine = FishboneLayout(seeded_diagram)
    layout = engine.compute(refresh=False)
    assert engine.category_x_map == {}
    spacing = (engine.spine_end_x() - 80) / 4
    assert layout.categories[0].start.x == pytest.approx(80 + spacing)
    assert layout.categories[3].start.x == pytest.approx(80 + 2 * spacing)

    engine.compute()
    assert set(engine.category_x_map) == {c.id for c in seeded_diagram.categories}


def test_measure_feeds_layout():
    diagram = _diagram(["a", "b"])
    first, second = diagram.categories[0].causes
    engine = FishboneLayout(diagram)
    assert engine.measure(StaticTextMetrics({first.id: 222})) == 1
    layout = engine.compute()
    assert layout.cause(first.id).label_size[0] == 222
    assert layout.cause(second.id).label_size[0] == 120


def test_to_dict_is_plain_data(busy_diagram):
    data = compute_layout(busy_diagram).to_dict()
    assert set(data) >= {"canvas_width", "canvas_height", "spine_y", "categories", "causes"}
    assert len(data["causes"]) == len(busy_diagram.all_causes())
