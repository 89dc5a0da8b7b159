"""
Geometric layout engine for Fishbone-MCP.

Given only a diagram's logical content — problem statement, ordered
categories, ordered causes and their texts — the engine computes every
coordinate the rendering surface needs:

  1. Bone geometry — each category's bone start, length, end and title anchor
  2. Connection points — where each cause's connector meets its bone
  3. Bone limit — how close to the spine a label may reach over a span
  4. Label stacking — non-overlapping vertical centers for each label
  5. Category x sweep — left-to-right column placement of category pairs
  6. Canvas size — the extent of everything above, plus margins
  7. Connector paths — shelf + diagonal from each label to its bone

Conventions
-----------
Categories alternate sides by index: even indices sit above the spine
(bone angle -45°), odd indices below (+45°).  Indices ``2k`` and ``2k+1``
form a pair sharing one x-coordinate.

All vertical coordinates inside the engine are **spine-relative**: the spine
is y = 0 and negative y is above it.  ``compute()`` converts to canvas
coordinates by adding ``spine_y`` (half the canvas height), which keeps the
placement math independent of the canvas size it feeds.

Placement is a deterministic forward sweep.  Earlier causes are placed
first and never moved by later ones; earlier category pairs are placed first
and never moved by later pairs.  There is no relaxation and no search for a
minimum-area packing — only a correct, non-overlapping one.

Only depth-1 causes are placed.  ``Cause.sub_causes`` is ignored here and
extending placement to nested causes means revisiting the stacking
invariant in ``stacked_center_ys``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Optional

from .geometry import (
    Point,
    horizontal_projection,
    point_along,
    polar_offset,
    y_at_x_clamped,
)
from .metrics import (
    LABEL_MIN_WIDTH,
    MeasurementCache,
    TextMetrics,
    heuristic_width,
    label_height,
    needs_clamp,
)
from .models import Cause, Category, Diagram

logger = logging.getLogger(__name__)


# --- Horizontal placement ---

SPINE_START_X = 80
INITIAL_X = 140         # first pair never starts left of spine start + this
SAFE_MARGIN = 110       # clearance between consecutive pair footprints
LABEL_LEFT_PADDING = 16
TIP_PAD = 20            # room right of a bone tip for the add-cause button
CANVAS_TIP_PAD = 28
TRAILING_MARGIN = 260   # problem statement area right of the last pair
SPINE_END_INSET = 250

# --- Vertical placement ---

LABEL_BASE_OFFSET = 24
LABEL_HEIGHT = 20
MIN_GAP = 8
LABEL_OFFSET = 6        # zig-zag offset of a label from its connection point
BONE_CLEARANCE = 24     # minimum distance between a label edge and any bone
STACK_PAD = 16
HEIGHT_MARGIN = 30
HEIGHT_SLACK = 20
TITLE_OFFSET = 20
ADD_BUTTON_RADIUS = 10

# --- Bones and connectors ---

BONE_BASE_LENGTH = 80
BONE_ANGLE = 45
CONNECTOR_SHELF = 8
CONNECTOR_GAP = 8

# --- Canvas floor ---

MIN_CANVAS_WIDTH = 520
MIN_CANVAS_HEIGHT = 360

PROBLEM_BOX_GAP = 20
PROBLEM_BOX_WIDTH = 200
PROBLEM_TEXT_RISE = 10


@dataclass
class LayoutOptions:
    """Tunable constants for the layout engine."""
    spine_start_x: float = SPINE_START_X
    initial_x: float = INITIAL_X
    safe_margin: float = SAFE_MARGIN
    label_left_padding: float = LABEL_LEFT_PADDING
    tip_pad: float = TIP_PAD
    canvas_tip_pad: float = CANVAS_TIP_PAD
    trailing_margin: float = TRAILING_MARGIN
    spine_end_inset: float = SPINE_END_INSET
    label_base_offset: float = LABEL_BASE_OFFSET
    label_height: float = LABEL_HEIGHT
    min_gap: float = MIN_GAP
    label_offset: float = LABEL_OFFSET
    bone_clearance: float = BONE_CLEARANCE
    stack_pad: float = STACK_PAD
    height_margin: float = HEIGHT_MARGIN
    height_slack: float = HEIGHT_SLACK
    title_offset: float = TITLE_OFFSET
    add_button_radius: float = ADD_BUTTON_RADIUS
    bone_base_length: float = BONE_BASE_LENGTH
    bone_angle: float = BONE_ANGLE
    connector_shelf: float = CONNECTOR_SHELF
    connector_gap: float = CONNECTOR_GAP
    min_width: float = MIN_CANVAS_WIDTH
    min_height: float = MIN_CANVAS_HEIGHT


# ---------------------------------------------------------------------------
# Layout output
# ---------------------------------------------------------------------------

@dataclass
class CategoryGeometry:
    """Computed geometry for one category bone (canvas coordinates)."""
    category_id: str
    index: int
    top_side: bool
    start: Point
    end: Point
    length: float
    title_anchor: Point


@dataclass
class CauseGeometry:
    """Computed geometry for one cause label (canvas coordinates).

    ``connector_path`` starts at the label's right edge, runs a short
    horizontal shelf back under the label, then a diagonal to
    ``connection_point`` on the bone.
    ``clamped`` marks labels whose text overflows the three visible lines.
    """
    cause_id: str
    category_id: str
    index: int
    connection_point: Point
    label_top_left: Point
    label_size: tuple[float, float]
    label_center_y: float
    connector_path: list[Point]
    clamped: bool = False

    @property
    def label_box(self) -> tuple[float, float, float, float]:
        x, y = self.label_top_left
        w, h = self.label_size
        return (x, y, x + w, y + h)


@dataclass
class DiagramLayout:
    """The complete coordinate set handed to the rendering surface."""
    canvas_width: float
    canvas_height: float
    spine_y: float
    spine_start_x: float
    spine_end_x: float
    problem_anchor: Point
    categories: list[CategoryGeometry] = field(default_factory=list)
    causes: list[CauseGeometry] = field(default_factory=list)

    def category(self, category_id: str) -> Optional[CategoryGeometry]:
        for geo in self.categories:
            if geo.category_id == category_id:
                return geo
        return None

    def cause(self, cause_id: str) -> Optional[CauseGeometry]:
        for geo in self.causes:
            if geo.cause_id == cause_id:
                return geo
        return None

    def causes_for(self, category_id: str) -> list[CauseGeometry]:
        return [geo for geo in self.causes if geo.category_id == category_id]

    def to_dict(self) -> dict:
        return asdict(self)


def _shift(p: Point, dy: float) -> Point:
    return Point(p.x, p.y + dy)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class FishboneLayout:
    """Layout engine bound to one diagram.

    The engine holds two caches, both keyed by id and both safe to discard:

    - ``measurements`` — measured label widths (cause id → px)
    - ``category_x_map`` — swept pair positions (category id → x)

    Missing entries fall back to heuristics: the character-count width for
    labels and uniform spacing along the spine for categories.  The diagram
    is read, never written.
    """

    def __init__(
        self,
        diagram: Diagram,
        measurements: Optional[MeasurementCache] = None,
        options: Optional[LayoutOptions] = None,
    ):
        self.diagram = diagram
        self.measurements = measurements if measurements is not None else MeasurementCache()
        self.options = options or LayoutOptions()
        self.category_x_map: dict[str, float] = {}

    # --- Content helpers ---

    @property
    def category_count(self) -> int:
        return len(self.diagram.categories)

    def _category(self, index: int) -> Category:
        return self.diagram.categories[index]

    def _cause_text(self, category_index: int, cause_index: int, text: Optional[str]) -> str:
        if text is not None:
            return text
        return self._category(category_index).causes[cause_index].text

    def is_top_side(self, index: int) -> bool:
        return index % 2 == 0

    def _outward(self, index: int) -> int:
        """-1 for bones above the spine, +1 below."""
        return -1 if self.is_top_side(index) else 1

    # --- Label sizes ---

    def label_width(self, category_index: int, cause_index: int, text: Optional[str] = None) -> float:
        cause = self._category(category_index).causes[cause_index]
        measured = self.measurements.get(cause.id)
        if measured is not None:
            return measured
        return heuristic_width(self._cause_text(category_index, cause_index, text))

    def label_height(self, category_index: int, cause_index: int, text: Optional[str] = None) -> float:
        t = self._cause_text(category_index, cause_index, text)
        return label_height(t, self.label_width(category_index, cause_index, t))

    def needs_clamp(self, category_index: int, cause_index: int) -> bool:
        t = self._cause_text(category_index, cause_index, None)
        return needs_clamp(t, self.label_width(category_index, cause_index))

    def max_label_width(self, category_index: int) -> float:
        """Widest label in a category; never below the minimum label width."""
        widest = float(LABEL_MIN_WIDTH)
        for cause in self._category(category_index).causes:
            widest = max(widest, self.measurements.width_for(cause))
        return widest

    # ------------------------------------------------------------------
    # Bone geometry
    # ------------------------------------------------------------------

    def anti_collision_step(self) -> float:
        return self.options.label_height + self.options.min_gap

    def bone_length(self, index: int) -> float:
        """Bone length grows by one label step per cause beyond the first."""
        base = self.options.bone_base_length
        causes = len(self._category(index).causes)
        extra = (causes - 1) * self.anti_collision_step() if causes > 0 else 0
        return max(base, base + extra)

    def bone_angle(self, index: int) -> float:
        angle = self.options.bone_angle
        return -angle if self.is_top_side(index) else angle

    def bone_start(self, index: int) -> Point:
        return Point(self.category_x(index), 0.0)

    def bone_end(self, index: int) -> Point:
        return polar_offset(self.bone_start(index), self.bone_angle(index), self.bone_length(index))

    def title_anchor(self, index: int) -> Point:
        end = self.bone_end(index)
        return Point(end.x, end.y + self._outward(index) * self.options.title_offset)

    # ------------------------------------------------------------------
    # Connection points
    # ------------------------------------------------------------------

    def connection_ratio(self, category_index: int, cause_index: int) -> float:
        total = len(self._category(category_index).causes)
        if total <= 1:
            return 0.5
        return 0.1 + (cause_index / (total - 1)) * 0.8

    def connection_point(self, category_index: int, cause_index: int) -> Point:
        """Attachment point of a cause on its bone, inset 10% from each end.

        The y is kept strictly on the bone's side of the spine.
        """
        ratio = self.connection_ratio(category_index, cause_index)
        p = point_along(self.bone_start(category_index), self.bone_end(category_index), ratio)
        if self.is_top_side(category_index):
            y = min(p.y, -1.0)
        else:
            y = max(p.y, 1.0)
        return Point(p.x, y)

    # ------------------------------------------------------------------
    # Global bone limit
    # ------------------------------------------------------------------

    def bone_y_at(self, index: int, x: float) -> float:
        """Bone y at ``x``, sampling the nearest endpoint outside the bone."""
        return y_at_x_clamped(self.bone_start(index), self.bone_end(index), x)

    def bone_limit(self, left: float, right: float, top_side: bool) -> float:
        """Nearest-to-spine y any bone occupies over ``[left, right]``.

        Both edges of the span are sampled on every bone, since a diagonal
        bone can cross a span without touching either of its corners.
        Returns the minimum sample for the top side and the maximum for the
        bottom side.
        """
        limit = math.inf if top_side else -math.inf
        for k in range(self.category_count):
            sample_l = self.bone_y_at(k, left)
            sample_r = self.bone_y_at(k, right)
            if top_side:
                limit = min(limit, sample_l, sample_r)
            else:
                limit = max(limit, sample_l, sample_r)
        return limit

    # ------------------------------------------------------------------
    # Label stacking
    # ------------------------------------------------------------------

    def label_span(self, category_index: int, cause_index: int, text: Optional[str] = None) -> tuple[float, float]:
        """Horizontal extent of a label, which sits left of its connection point."""
        ax = self.connection_point(category_index, cause_index).x
        w = self.label_width(category_index, cause_index, text)
        return (ax - (self.options.connector_shelf + w), ax - self.options.connector_gap)

    def raw_center_y(self, category_index: int, cause_index: int, text: Optional[str] = None) -> float:
        """Label center before stacking: zig-zag offset, then bone clearance."""
        o = self.options
        top = self.is_top_side(category_index)
        outward = self._outward(category_index)
        anchor = self.connection_point(category_index, cause_index)
        h = self.label_height(category_index, cause_index, text)

        parity = -1 if cause_index % 2 == 0 else 1
        center = anchor.y + parity * outward * (h / 2 + o.label_offset)

        left, right = self.label_span(category_index, cause_index, text)
        limiting = self.bone_limit(left, right, top)
        if top:
            center = min(center, limiting - o.bone_clearance - h / 2)
        else:
            center = max(center, limiting + o.bone_clearance + h / 2)
        return center

    def _stack(self, category_index: int, count: int, override: Optional[str] = None) -> list[float]:
        o = self.options
        top = self.is_top_side(category_index)
        centers: list[float] = []
        prev_h = 0.0
        for k in range(count):
            text = override if (override is not None and k == count - 1) else None
            y = self.raw_center_y(category_index, k, text)
            h = self.label_height(category_index, k, text)
            if centers:
                required = prev_h / 2 + o.min_gap + h / 2
                if top:
                    y = min(y, centers[-1] - required)
                else:
                    y = max(y, centers[-1] + required)
            centers.append(y)
            prev_h = h
        return centers

    def stacked_center_ys(self, category_index: int) -> list[float]:
        """Final label centers for every cause of a category, in order.

        Each label keeps at least ``min_gap`` between its edge and its
        predecessor's, moving away from the spine when it would not.
        """
        return self._stack(category_index, len(self._category(category_index).causes))

    def label_center_y(self, category_index: int, cause_index: int, text: Optional[str] = None) -> float:
        """Stacked center of one label, replaying causes ``0..cause_index``.

        ``text`` substitutes the text of ``cause_index`` itself, which lets a
        caller preview an edit before committing it.
        """
        return self._stack(category_index, cause_index + 1, text)[-1]

    # ------------------------------------------------------------------
    # Category x sweep
    # ------------------------------------------------------------------

    def _left_extent(self, index: int) -> float:
        if index >= self.category_count:
            return 0.0
        return self.max_label_width(index) + self.options.label_left_padding

    def _right_extent(self, index: int, tip_pad: float) -> float:
        if index >= self.category_count:
            return 0.0
        return horizontal_projection(self.options.bone_angle, self.bone_length(index)) + tip_pad

    def sweep_pairs(self, tip_pad: float, pairs: Optional[int] = None) -> tuple[list[float], float]:
        """Place category pairs left to right.

        Returns the x of every pair and the right edge of the last footprint.
        A pair sits right of the previous footprint by the safe margin plus
        the wider of its two label columns, and never left of the running
        baseline.
        """
        o = self.options
        if pairs is None:
            pairs = math.ceil(self.category_count / 2)
        prev_right = o.spine_start_x
        baseline = o.spine_start_x + o.initial_x
        xs: list[float] = []

        for p in range(pairs):
            top_idx = p * 2
            bottom_idx = top_idx + 1
            max_left = max(self._left_extent(top_idx), self._left_extent(bottom_idx))
            max_right = max(
                self._right_extent(top_idx, tip_pad),
                self._right_extent(bottom_idx, tip_pad),
            )
            x = max(baseline, prev_right + o.safe_margin + max_left)
            xs.append(x)
            prev_right = x + max_right
            baseline = prev_right

        return xs, prev_right

    def recompute_category_x_map(self) -> dict[str, float]:
        """Rebuild ``category_x_map`` from a full sweep."""
        xs, _ = self.sweep_pairs(self.options.tip_pad)
        new_map: dict[str, float] = {}
        for index, category in enumerate(self.diagram.categories):
            new_map[category.id] = xs[index // 2]
        self.category_x_map = new_map
        return new_map

    def category_x(self, index: int) -> float:
        """Swept x of a category, or an even-spacing placeholder."""
        category_id = self._category(index).id
        if category_id in self.category_x_map:
            return self.category_x_map[category_id]
        start = self.options.spine_start_x
        available = self.spine_end_x() - start
        pairs = math.ceil(self.category_count / 2)
        spacing = available / (pairs + 1)
        return start + (index // 2 + 1) * spacing

    # ------------------------------------------------------------------
    # Canvas size
    # ------------------------------------------------------------------

    def canvas_width(self) -> float:
        o = self.options
        pairs = math.ceil(max(self.category_count, 2) / 2)
        _, right = self.sweep_pairs(o.canvas_tip_pad, pairs)
        return max(o.min_width, right + o.trailing_margin)

    def spine_end_x(self) -> float:
        return self.canvas_width() - self.options.spine_end_inset

    def side_depth(self, top_side: bool) -> float:
        o = self.options
        depth = o.label_base_offset
        for i, category in enumerate(self.diagram.categories):
            if self.is_top_side(i) != top_side:
                continue
            stack = 0.0
            for j in range(len(category.causes)):
                stack += self.label_height(i, j) + (o.min_gap if j > 0 else 0)
            depth = max(depth, o.label_base_offset + stack + o.stack_pad)
        return depth + o.height_margin

    def canvas_height(self) -> float:
        """Height estimate from the label stacks on each side."""
        o = self.options
        return max(o.min_height, self.side_depth(True) + self.side_depth(False) + o.height_slack)

    # ------------------------------------------------------------------
    # Connectors
    # ------------------------------------------------------------------

    def connector_path(
        self,
        category_index: int,
        cause_index: int,
        text: Optional[str] = None,
        center_y: Optional[float] = None,
    ) -> list[Point]:
        anchor = self.connection_point(category_index, cause_index)
        if center_y is None:
            center_y = self.label_center_y(category_index, cause_index, text)
        _, right = self.label_span(category_index, cause_index, text)
        shelf_end = right - self.options.connector_shelf
        return [Point(right, center_y), Point(shelf_end, center_y), anchor]

    # ------------------------------------------------------------------
    # Full pass
    # ------------------------------------------------------------------

    def measure(self, metrics: TextMetrics) -> int:
        """Refresh the measurement cache for every cause in the diagram."""
        return self.measurements.rebuild(self.diagram.all_causes(), metrics)

    def compute(self, refresh: bool = True) -> DiagramLayout:
        """Compute the complete layout.

        Args:
            refresh: Re-sweep ``category_x_map`` first.  Pass False to see
                     the placeholder positions used before a sweep.
        """
        o = self.options
        if refresh:
            self.recompute_category_x_map()

        width = self.canvas_width()
        extent = 0.0

        categories: list[CategoryGeometry] = []
        causes: list[CauseGeometry] = []

        for i, category in enumerate(self.diagram.categories):
            end = self.bone_end(i)
            title = self.title_anchor(i)
            extent = max(extent, abs(end.y) + o.add_button_radius, abs(title.y))
            categories.append(CategoryGeometry(
                category_id=category.id,
                index=i,
                top_side=self.is_top_side(i),
                start=self.bone_start(i),
                end=end,
                length=self.bone_length(i),
                title_anchor=title,
            ))

            centers = self.stacked_center_ys(i)
            for j, cause in enumerate(category.causes):
                causes.append(self._cause_geometry(i, j, category, cause, centers[j]))
                _, h = causes[-1].label_size
                extent = max(extent, abs(centers[j] - h / 2), abs(centers[j] + h / 2))

        # Grow past the stack estimate if anything reaches further out.
        height = max(self.canvas_height(), 2 * (extent + o.height_margin))
        spine_y = height / 2

        for geo in categories:
            geo.start = _shift(geo.start, spine_y)
            geo.end = _shift(geo.end, spine_y)
            geo.title_anchor = _shift(geo.title_anchor, spine_y)
        for geo in causes:
            geo.connection_point = _shift(geo.connection_point, spine_y)
            geo.label_top_left = _shift(geo.label_top_left, spine_y)
            geo.label_center_y += spine_y
            geo.connector_path = [_shift(p, spine_y) for p in geo.connector_path]

        spine_end = width - o.spine_end_inset
        problem_anchor = Point(
            spine_end + PROBLEM_BOX_GAP + PROBLEM_BOX_WIDTH / 2,
            spine_y - PROBLEM_TEXT_RISE,
        )

        logger.debug(
            f"Layout: {len(categories)} categories, {len(causes)} causes, "
            f"canvas {width:.0f}x{height:.0f}"
        )

        return DiagramLayout(
            canvas_width=width,
            canvas_height=height,
            spine_y=spine_y,
            spine_start_x=o.spine_start_x,
            spine_end_x=spine_end,
            problem_anchor=problem_anchor,
            categories=categories,
            causes=causes,
        )

    def _cause_geometry(
        self,
        category_index: int,
        cause_index: int,
        category: Category,
        cause: Cause,
        center_y: float,
    ) -> CauseGeometry:
        w = self.label_width(category_index, cause_index)
        h = self.label_height(category_index, cause_index)
        left, _ = self.label_span(category_index, cause_index)
        return CauseGeometry(
            cause_id=cause.id,
            category_id=category.id,
            index=cause_index,
            connection_point=self.connection_point(category_index, cause_index),
            label_top_left=Point(left, center_y - h / 2),
            label_size=(w, h),
            label_center_y=center_y,
            connector_path=self.connector_path(category_index, cause_index, center_y=center_y),
            clamped=self.needs_clamp(category_index, cause_index),
        )


def compute_layout(
    diagram: Diagram,
    metrics: Optional[TextMetrics] = None,
    options: Optional[LayoutOptions] = None,
) -> DiagramLayout:
    """Measure (when an adapter is given), sweep and lay out a diagram."""
    engine = FishboneLayout(diagram, options=options)
    if metrics is not None:
        engine.measure(metrics)
    return engine.compute()
