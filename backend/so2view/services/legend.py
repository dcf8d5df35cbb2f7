"""Colorbar legend layout and PNG rendering.

The layout mirrors the browser canvas painter: `steps` stacked rectangles
drawn bottom to top (lowest value first), each bar_height / steps tall, with
the stop value labelled at the vertical center of its rectangle.
"""

from __future__ import annotations

import io
from dataclasses import asdict, dataclass
from typing import Any

from PIL import Image, ImageDraw, ImageFont

from .color_stops import ColorScale, ColorStop

DEFAULT_BAR_HEIGHT = 200
DEFAULT_BAR_WIDTH = 20
LABEL_GUTTER = 6
LABEL_WIDTH = 44
TITLE_HEIGHT = 18


@dataclass(frozen=True)
class LegendSegment:
    value: float
    label: str
    color: list
    css: str
    y: float
    height: float
    label_y: float


@dataclass(frozen=True)
class LegendLayout:
    bar_width: int
    bar_height: int
    segment_height: float
    segments: tuple[LegendSegment, ...]
    scale: ColorScale

    def as_dict(self) -> dict[str, Any]:
        return {
            "bar_width": self.bar_width,
            "bar_height": self.bar_height,
            "segment_height": self.segment_height,
            "scale": self.scale.as_dict(),
            "segments": [asdict(segment) for segment in self.segments],
        }


def format_label(value: float) -> str:
    return f"{value:g}"


def _segment(stop: ColorStop, i: int, *, bar_height: int, segment_height: float) -> LegendSegment:
    y = bar_height - (i + 1) * segment_height
    return LegendSegment(
        value=stop.value,
        label=format_label(stop.value),
        color=list(stop.color),
        css=stop.css(),
        y=y,
        height=segment_height,
        label_y=y + segment_height / 2,
    )


def legend_layout(
    scale: ColorScale,
    *,
    bar_height: int = DEFAULT_BAR_HEIGHT,
    bar_width: int = DEFAULT_BAR_WIDTH,
) -> LegendLayout:
    if bar_height <= 0 or bar_width <= 0:
        raise ValueError(f"legend bar must have positive size, got {bar_width}x{bar_height}")
    stops = scale.stops()
    segment_height = bar_height / len(stops)
    segments = tuple(
        _segment(stop, i, bar_height=bar_height, segment_height=segment_height)
        for i, stop in enumerate(stops)
    )
    return LegendLayout(
        bar_width=bar_width,
        bar_height=bar_height,
        segment_height=segment_height,
        segments=segments,
        scale=scale,
    )


def render_legend_png(layout: LegendLayout, *, title: str | None = None) -> bytes:
    """Paint the layout onto a transparent RGBA canvas and encode it as PNG."""
    top = TITLE_HEIGHT if title else 0
    width = layout.bar_width + LABEL_GUTTER + LABEL_WIDTH
    height = layout.bar_height + top + 1

    image = Image.new("RGBA", (width, height), (0, 0, 0, 0))
    draw = ImageDraw.Draw(image)
    font = ImageFont.load_default()

    if title:
        draw.text((0, 2), title, fill=(0, 0, 0, 255), font=font)

    for segment in layout.segments:
        r, g, b, a = segment.color
        y0 = int(round(top + segment.y))
        y1 = int(round(top + segment.y + segment.height))
        draw.rectangle(
            (0, y0, layout.bar_width - 1, max(y0, y1 - 1)),
            fill=(int(r), int(g), int(b), int(round(float(a) * 255))),
        )

        left, upper, _right, lower = draw.textbbox((0, 0), segment.label, font=font)
        text_y = top + segment.label_y - (lower - upper) / 2 - upper
        draw.text(
            (layout.bar_width + LABEL_GUTTER - left, text_y),
            segment.label,
            fill=(0, 0, 0, 255),
            font=font,
        )

    buf = io.BytesIO()
    image.save(buf, format="PNG", optimize=True)
    return buf.getvalue()
