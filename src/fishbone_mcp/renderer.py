"""Fishbone renderer using Pillow — draws a computed layout to PNG or JPEG."""

from __future__ import annotations

import logging
import textwrap
from io import BytesIO
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from .geometry import Point, blend, hex_to_rgb
from .layout import CauseGeometry, DiagramLayout, FishboneLayout, LayoutOptions
from .metrics import (
    COLLAPSED_LINES,
    LABEL_FONT_SIZE,
    LINE_HEIGHT,
    PillowTextMetrics,
    load_bold_font,
    load_font,
    text_width,
)
from .models import Diagram
from .themes import ThemePalette, get_theme

logger = logging.getLogger(__name__)

FONT = ImageFont.FreeTypeFont | ImageFont.ImageFont


def _wrap_text(text: str, font: FONT, max_width: float) -> list[str]:
    """Word-wrap text to fit within max_width pixels."""
    words = text.split()
    lines = []
    current = ""

    for word in words:
        test = f"{current} {word}".strip() if current else word
        if text_width(font, test) <= max_width:
            current = test
        else:
            if current:
                lines.append(current)
            # If single word is too long, force-wrap it
            if text_width(font, word) > max_width:
                for chunk in textwrap.wrap(word, width=max(1, int(max_width // 6))):
                    lines.append(chunk)
                current = ""
            else:
                current = word

    if current:
        lines.append(current)

    return lines if lines else [""]


def _ellipsize(line: str, font: FONT, max_width: float) -> str:
    """Trim ``line`` until it fits with a trailing ellipsis."""
    while line and text_width(font, line + "…") > max_width:
        line = line[:-1]
    return line + "…"


class FishboneRenderer:
    """Renders a diagram (or a precomputed layout) to a raster image."""

    GRID_SIZE = 20
    SPINE_WIDTH = 4
    BONE_WIDTH = 2.5
    CONNECTOR_WIDTH = 1.5
    ADD_BUTTON_RADIUS = 10
    LABEL_RADIUS = 8
    LABEL_STRIP = 4
    LABEL_PAD_X = 8
    LABEL_PAD_Y = 6
    FOCUS_DIM = 0.15
    JPEG_QUALITY = 95

    def __init__(self, scale: float = 1.0, theme: str = "light"):
        self.scale = scale
        self.theme: ThemePalette = get_theme(theme)
        self.font_problem = load_bold_font(int(18 * scale))
        self.font_title = load_bold_font(int(12 * scale))
        self.font_label = load_font(int(LABEL_FONT_SIZE * scale))
        self.metrics = PillowTextMetrics()

    def layout(self, diagram: Diagram, options: Optional[LayoutOptions] = None) -> DiagramLayout:
        """Measure every label with the label font, then lay out."""
        engine = FishboneLayout(diagram, options=options)
        engine.measure(self.metrics)
        return engine.compute()

    def render(
        self,
        diagram: Diagram,
        output_path: Optional[str] = None,
        fmt: str = "PNG",
        show_grid: bool = False,
        focus_category_id: Optional[str] = None,
        layout: Optional[DiagramLayout] = None,
    ) -> bytes:
        """Render the diagram to image bytes. Optionally save to file.

        Args:
            diagram: The diagram to render.
            output_path: Optional path to save the image.
            fmt: "PNG" or "JPEG".
            show_grid: Draw the 20px background grid.
            focus_category_id: Draw every other category faded.
            layout: A precomputed layout; computed here when omitted.
        """
        fmt = fmt.upper()
        if fmt == "JPG":
            fmt = "JPEG"
        if fmt not in ("PNG", "JPEG"):
            raise ValueError(f"Unsupported image format '{fmt}'. Use PNG or JPEG.")

        if layout is None:
            layout = self.layout(diagram)
        img = self.draw(diagram, layout, show_grid=show_grid, focus_category_id=focus_category_id)

        buf = BytesIO()
        if fmt == "JPEG":
            img.convert("RGB").save(buf, format="JPEG", quality=self.JPEG_QUALITY)
        else:
            img.save(buf, format="PNG", optimize=True)
        data = buf.getvalue()

        if output_path:
            Path(output_path).write_bytes(data)
            logger.info(f"Rendered {fmt} to {output_path} ({len(data)} bytes)")

        return data

    def draw(
        self,
        diagram: Diagram,
        layout: DiagramLayout,
        show_grid: bool = False,
        focus_category_id: Optional[str] = None,
    ) -> Image.Image:
        """Draw a layout onto a new image."""
        s = self.scale
        width = int(round(layout.canvas_width * s))
        height = int(round(layout.canvas_height * s))
        img = Image.new("RGBA", (width, height), hex_to_rgb(self.theme.background) + (255,))
        draw = ImageDraw.Draw(img)

        if show_grid:
            self._draw_grid(draw, width, height)

        # Spine
        draw.line(
            [self._xy(Point(layout.spine_start_x, layout.spine_y)),
             self._xy(Point(layout.spine_end_x, layout.spine_y))],
            fill=self.theme.spine_color,
            width=self._px(self.SPINE_WIDTH),
        )
        problem = diagram.problem_statement or "Add Problem Statement"
        self._draw_text(draw, layout.problem_anchor, problem, self.font_problem,
                        self.theme.problem_text_color, valign="bottom")

        # Bones, titles and connectors; labels go on top in a second pass
        for category, geo in zip(diagram.categories, layout.categories):
            faded = focus_category_id is not None and focus_category_id != category.id
            color = self._fade(category.color, faded)

            draw.line([self._xy(geo.start), self._xy(geo.end)], fill=color, width=self._px(self.BONE_WIDTH))
            self._draw_text(draw, geo.title_anchor, category.title, self.font_title,
                            self._fade(self.theme.title_color, faded))
            self._draw_add_button(draw, geo.end, category.color, faded)

            connector = self._fade(self.theme.connector_color, faded)
            for cause_geo in layout.causes_for(category.id):
                draw.line([self._xy(p) for p in cause_geo.connector_path],
                          fill=connector, width=self._px(self.CONNECTOR_WIDTH), joint="curve")

        for category in diagram.categories:
            faded = focus_category_id is not None and focus_category_id != category.id
            for cause in category.causes:
                cause_geo = layout.cause(cause.id)
                if cause_geo is not None:
                    self._draw_label(draw, cause_geo, cause.text, cause.get_color(), faded)

        return img

    # --- Helpers ---

    def _px(self, value: float) -> int:
        return max(1, int(round(value * self.scale)))

    def _xy(self, p: Point) -> tuple[float, float]:
        return (p.x * self.scale, p.y * self.scale)

    def _fade(self, color: str, faded: bool) -> str:
        if not faded:
            return color
        return blend(color, self.FOCUS_DIM, self.theme.background)

    def _draw_grid(self, draw: ImageDraw.ImageDraw, width: int, height: int):
        step = self.GRID_SIZE * self.scale
        x = 0.0
        while x < width:
            draw.line([(x, 0), (x, height)], fill=self.theme.grid_color, width=1)
            x += step
        y = 0.0
        while y < height:
            draw.line([(0, y), (width, y)], fill=self.theme.grid_color, width=1)
            y += step

    def _draw_text(
        self,
        draw: ImageDraw.ImageDraw,
        anchor: Point,
        text: str,
        font: FONT,
        fill: str,
        valign: str = "middle",
    ):
        """Draw text centered horizontally on ``anchor``.

        ``valign`` "middle" centers vertically; "bottom" sits the text on
        the anchor.
        """
        bbox = font.getbbox(text)
        tw = bbox[2] - bbox[0]
        th = bbox[3] - bbox[1]
        x, y = self._xy(anchor)
        top = y - th / 2 if valign == "middle" else y - th
        draw.text((x - tw / 2 - bbox[0], top - bbox[1]), text, fill=fill, font=font)

    def _draw_add_button(self, draw: ImageDraw.ImageDraw, center: Point, color: str, faded: bool):
        cx, cy = self._xy(center)
        r = self.ADD_BUTTON_RADIUS * self.scale
        arm = 4 * self.scale
        fill = blend(color, self.theme.add_button_alpha * (self.FOCUS_DIM if faded else 1), self.theme.background)
        stroke = self._fade(color, faded)
        draw.ellipse([cx - r, cy - r, cx + r, cy + r], fill=fill, outline=stroke, width=self._px(1.5))
        draw.line([(cx, cy - arm), (cx, cy + arm)], fill=stroke, width=self._px(2))
        draw.line([(cx - arm, cy), (cx + arm, cy)], fill=stroke, width=self._px(2))

    def _draw_label(
        self,
        draw: ImageDraw.ImageDraw,
        geo: CauseGeometry,
        text: str,
        priority_color: str,
        faded: bool,
    ):
        s = self.scale
        x1, y1, x2, y2 = (v * s for v in geo.label_box)
        draw.rounded_rectangle(
            [x1, y1, x2, y2],
            radius=int(self.LABEL_RADIUS * s),
            fill=self._fade(self.theme.label_fill, faded),
            outline=self._fade(self.theme.label_border, faded),
            width=1,
        )
        draw.rectangle([x1, y1 + 1, x1 + self.LABEL_STRIP * s, y2 - 1], fill=self._fade(priority_color, faded))

        text_x = x1 + (self.LABEL_STRIP + self.LABEL_PAD_X) * s
        max_width = x2 - text_x - self.LABEL_PAD_X * s
        lines = _wrap_text(text, self.font_label, max_width)
        if len(lines) > COLLAPSED_LINES:
            lines = lines[:COLLAPSED_LINES]
            lines[-1] = _ellipsize(lines[-1], self.font_label, max_width)

        fill = self._fade(self.theme.label_text_color, faded)
        for i, line in enumerate(lines):
            draw.text(
                (text_x, y1 + (self.LABEL_PAD_Y + i * LINE_HEIGHT) * s),
                line,
                fill=fill,
                font=self.font_label,
            )
