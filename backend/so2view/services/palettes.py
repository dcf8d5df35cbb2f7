"""Named color ramps for the SO2 column-mass overlay.

Each palette is a list of (position, hex color) anchors over [0, 1]. Every
anchor is pinned to a shade index and the shades between two anchors are
stepped linearly, so a palette needs at least as many shades as it has anchors.
"""

from __future__ import annotations

import numpy as np

RGBA = tuple[int, int, int, float]

PALETTE_ANCHORS: dict[str, list[tuple[float, str]]] = {
    # Diverging blue -> grey -> red ramp.
    "rdbu": [
        (0.0, "#050aac"),
        (0.35, "#6a89f7"),
        (0.5, "#bebebe"),
        (0.6, "#dcaa84"),
        (0.7, "#e6915a"),
        (1.0, "#b20a1c"),
    ],
    "jet": [
        (0.0, "#000083"),
        (0.125, "#003caa"),
        (0.375, "#05ffff"),
        (0.625, "#ffff00"),
        (0.875, "#fa0000"),
        (1.0, "#800000"),
    ],
    "hot": [
        (0.0, "#000000"),
        (0.3, "#e60000"),
        (0.6, "#ffd200"),
        (1.0, "#ffffff"),
    ],
    "greys": [
        (0.0, "#000000"),
        (1.0, "#ffffff"),
    ],
    "bluered": [
        (0.0, "#0000ff"),
        (1.0, "#ff0000"),
    ],
}

PALETTE_LABELS = {
    "rdbu": "RdBu",
    "jet": "jet",
    "hot": "hot",
    "greys": "greys",
    "bluered": "bluered",
}


class UnknownPaletteError(KeyError):
    pass


def _hex_to_rgb(hex_color: str) -> np.ndarray:
    hex_str = hex_color.strip().lstrip("#")
    if len(hex_str) != 6:
        raise ValueError(f"Invalid hex color: {hex_color}")
    return np.array(
        [
            int(hex_str[0:2], 16),
            int(hex_str[2:4], 16),
            int(hex_str[4:6], 16),
        ],
        dtype=np.float64,
    )


def normalize_palette_name(name: str) -> str:
    return str(name or "").strip().lower()


def list_palettes() -> list[str]:
    return [PALETTE_LABELS[key] for key in sorted(PALETTE_ANCHORS)]


def _round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(values + 0.5)


def palette_rgb(name: str, nshades: int) -> np.ndarray:
    """Return an (nshades, 3) array of integer-valued RGB shades.

    Each anchor is pinned to shade index round(position * (nshades - 1)); the
    shades between two anchors step linearly from the first toward the second,
    and the last anchor closes the ramp.
    """
    key = normalize_palette_name(name)
    anchors = PALETTE_ANCHORS.get(key)
    if anchors is None:
        raise UnknownPaletteError(f"Unknown palette: {name!r}")
    if nshades < len(anchors):
        raise ValueError(f"palette {name!r} requires at least {len(anchors)} shades, got {nshades}")

    indices = [int(_round_half_up(np.float64(pos * (nshades - 1)))) for pos, _ in anchors]
    colors = [_hex_to_rgb(color) for _, color in anchors]

    shades: list[np.ndarray] = []
    for i in range(len(anchors) - 1):
        nsteps = indices[i + 1] - indices[i]
        start, end = colors[i], colors[i + 1]
        for j in range(nsteps):
            amt = j / nsteps
            shades.append(_round_half_up(start * (1 - amt) + end * amt))
    shades.append(colors[-1])
    return np.stack(shades, axis=0)


def palette_rgba(name: str, nshades: int, alpha: float = 1.0) -> list[RGBA]:
    """Return nshades RGBA colors: integer channels plus a float alpha."""
    rgb = np.clip(palette_rgb(name, nshades), 0, 255).astype(np.uint8)
    return [(int(r), int(g), int(b), float(alpha)) for r, g, b in rgb.tolist()]
