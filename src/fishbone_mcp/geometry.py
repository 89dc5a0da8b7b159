"""Geometry and color primitives shared by the layout engine and the renderer."""

from __future__ import annotations

import math
from typing import NamedTuple


class Point(NamedTuple):
    x: float
    y: float


# --- Trig helpers ---

def radians(degrees: float) -> float:
    return degrees * math.pi / 180


def polar_offset(origin: Point, angle_deg: float, length: float) -> Point:
    """Return the point ``length`` away from ``origin`` along ``angle_deg``.

    Screen convention: positive angles point down (y grows downward).
    """
    a = radians(angle_deg)
    return Point(origin.x + math.cos(a) * length, origin.y + math.sin(a) * length)


def horizontal_projection(angle_deg: float, length: float) -> float:
    """Width covered by a segment of ``length`` at ``angle_deg``."""
    return abs(math.cos(radians(angle_deg)) * length)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def point_along(start: Point, end: Point, t: float) -> Point:
    """Point at fraction ``t`` of the segment ``start → end``."""
    return Point(lerp(start.x, end.x, t), lerp(start.y, end.y, t))


def y_at_x(start: Point, end: Point, x: float) -> float:
    """Y of the line through ``start`` and ``end`` at ``x``.

    A vertical segment has no single answer; its end y is returned.
    """
    if end.x == start.x:
        return end.y
    t = (x - start.x) / (end.x - start.x)
    return start.y + t * (end.y - start.y)


def y_at_x_clamped(start: Point, end: Point, x: float) -> float:
    """Like ``y_at_x`` but never extrapolates past the segment's endpoints."""
    lo = min(start.x, end.x)
    hi = max(start.x, end.x)
    return y_at_x(start, end, clamp(x, lo, hi))


# --- Color helpers ---

def hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    """Convert hex color to RGB tuple. Supports both 3-char and 6-char hex."""
    hex_color = hex_color.lstrip("#")
    if len(hex_color) == 3:
        hex_color = hex_color[0]*2 + hex_color[1]*2 + hex_color[2]*2
    return tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))


def rgb_to_hex(rgb: tuple[int, int, int]) -> str:
    r, g, b = rgb
    return f"#{r:02x}{g:02x}{b:02x}"


def blend(hex_color: str, alpha: float, background: str = "#ffffff") -> str:
    """Flatten ``hex_color`` at ``alpha`` opacity onto ``background``."""
    fr, fg, fb = hex_to_rgb(hex_color)
    br, bg, bb = hex_to_rgb(background)
    alpha = clamp(alpha, 0.0, 1.0)
    return rgb_to_hex((
        round(br + (fr - br) * alpha),
        round(bg + (fg - bg) * alpha),
        round(bb + (fb - bb) * alpha),
    ))
