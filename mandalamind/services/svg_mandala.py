"""
Procedural SVG mandalas used when no image model is available.

Output is deterministic: the same prompt and brainwave levels always render
the same picture, while different inputs vary palette, petal counts, ring
counts and dot placement.
"""
import base64
import colorsys
import math
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional

from mandalamind.schemas.brainwave import BrainwaveData

SIZE = 512
LCG_MODULUS = 2147483647  # 2**31 - 1

Random = Callable[[], float]


@dataclass
class Palette:
    center: str
    outer: str
    dots: str
    accent: str
    secondary: str
    tertiary: str
    gradient: List[str] = field(default_factory=list)


DEFAULT_PALETTE = Palette(
    center="#ffffff", outer="#1a237e", dots="#e3f2fd", accent="#3949ab",
    secondary="#26c6da", tertiary="#42a5f5",
    gradient=["#e3f2fd", "#bbdefb", "#90caf9", "#64b5f6", "#42a5f5", "#2196f3", "#1976d2", "#1565c0"],
)
RAINBOW_PALETTE = Palette(
    center="#ffffff", outer="#9c27b0", dots="#e91e63", accent="#ff9800",
    secondary="#4caf50", tertiary="#2196f3",
    gradient=["#e91e63", "#9c27b0", "#673ab7", "#3f51b5", "#2196f3", "#00bcd4", "#009688",
              "#4caf50", "#8bc34a", "#cddc39", "#ffeb3b", "#ffc107", "#ff9800"],
)
OCEAN_PALETTE = Palette(
    center="#ffffff", outer="#004d40", dots="#b2dfdb", accent="#00897b",
    secondary="#26a69a", tertiary="#4db6ac",
    gradient=["#e0f2f1", "#b2dfdb", "#80cbc4", "#4db6ac", "#26a69a", "#009688", "#00796b", "#00695c"],
)
ENERGY_PALETTE = Palette(
    center="#fff3e0", outer="#e65100", dots="#ffffff", accent="#ff5722",
    secondary="#ff7043", tertiary="#ff8a65",
    gradient=["#fff3e0", "#ffe0b2", "#ffcc80", "#ffb74d", "#ffa726", "#ff9800", "#fb8c00",
              "#f57400", "#ef6c00", "#e65100"],
)
HEALING_PALETTE = Palette(
    center="#e8f5e8", outer="#1b5e20", dots="#c8e6c9", accent="#388e3c",
    secondary="#43a047", tertiary="#66bb6a",
    gradient=["#e8f5e8", "#c8e6c9", "#a5d6a7", "#81c784", "#66bb6a", "#4caf50", "#43a047",
              "#388e3c", "#2e7d32", "#1b5e20"],
)


def seed_from_input(prompt: str, brainwave: Optional[BrainwaveData] = None) -> int:
    """32-bit string hash of the prompt and levels (``h = h*31 + c``)."""
    seed_string = prompt.lower().strip()
    if brainwave is not None:
        seed_string += f"|{brainwave.attention}|{brainwave.meditation}|{brainwave.signalQuality}"

    h = 0
    for ch in seed_string:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def seeded_random(seed: int) -> Random:
    """Park-Miller minimal standard generator yielding floats in [0, 1)."""
    state = seed % LCG_MODULUS
    if state <= 0:
        state += LCG_MODULUS - 1

    def next_value() -> float:
        nonlocal state
        state = state * 16807 % LCG_MODULUS
        return (state - 1) / (LCG_MODULUS - 1)

    return next_value


def determine_style(prompt: str) -> str:
    lower = prompt.lower()
    if "dot" in lower or "aboriginal" in lower:
        return "dotpainting"
    if "geometric" in lower or "sacred" in lower:
        return "sacred"
    if "flower" in lower or "petal" in lower:
        return "floral"
    return "geometric"


def palette_from_prompt(prompt: str) -> Palette:
    lower = prompt.lower()
    palette = replace(DEFAULT_PALETTE, gradient=list(DEFAULT_PALETTE.gradient))

    if any(w in lower for w in ("rainbow", "colorful", "vibrant")):
        palette = replace(RAINBOW_PALETTE, gradient=list(RAINBOW_PALETTE.gradient))
    if any(w in lower for w in ("ocean", "water", "teal")):
        palette = replace(OCEAN_PALETTE, gradient=list(OCEAN_PALETTE.gradient))
    if any(w in lower for w in ("peace", "calm", "meditation")):
        palette.outer = "#0d47a1"
        palette.accent = "#1976d2"
        palette.secondary = "#1e88e5"
        palette.gradient = ["#f3e5f5", "#e1bee7", "#ce93d8", "#ba68c8", "#ab47bc", "#9c27b0",
                            "#8e24aa", "#7b1fa2"]
    if any(w in lower for w in ("energy", "power", "strength")):
        palette = replace(ENERGY_PALETTE, gradient=list(ENERGY_PALETTE.gradient))
    if any(w in lower for w in ("healing", "balance", "nature")):
        palette = replace(HEALING_PALETTE, gradient=list(HEALING_PALETTE.gradient))
    return palette


def adjust_color_hsl(hex_color: str, hue_shift: float, sat_shift: float, light_shift: float) -> str:
    value = hex_color.lstrip("#")
    r, g, b = (int(value[i:i + 2], 16) / 255 for i in (0, 2, 4))
    h, l, s = colorsys.rgb_to_hls(r, g, b)

    h = ((h * 360 + hue_shift) % 360) / 360
    s = max(0.0, min(1.0, s + sat_shift))
    l = max(0.0, min(1.0, l + light_shift))

    r, g, b = colorsys.hls_to_rgb(h, l, s)
    return "#" + "".join(f"{int(round(c * 255)):02x}" for c in (r, g, b))


def vary_palette(palette: Palette, rnd: Random) -> Palette:
    hue = (rnd() - 0.5) * 80        # +/-40 degrees
    sat = (rnd() - 0.5) * 0.4
    light = (rnd() - 0.5) * 0.3

    def shift(color: str, hf: float, sf: float, lf: float) -> str:
        return adjust_color_hsl(color, hue * hf, sat * sf, light * lf)

    return Palette(
        center=shift(palette.center, 0.2, 0.3, 0.2),
        outer=shift(palette.outer, 0.4, 0.4, 0.3),
        dots=shift(palette.dots, 0.3, 0.3, 0.2),
        accent=shift(palette.accent, 0.5, 0.5, 0.25),
        secondary=shift(palette.secondary, 0.3, 0.3, 0.2),
        tertiary=shift(palette.tertiary, 0.4, 0.4, 0.25),
        gradient=[shift(c, 0.3, 0.3, 0.2) for c in palette.gradient],
    )


def _n(value: float) -> str:
    """Compact number formatting for attributes."""
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


def _half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class MandalaRenderer:
    """Renders one mandala; create a new instance per image."""

    def __init__(self, prompt: str, brainwave: Optional[BrainwaveData] = None):
        self.prompt = prompt
        self.brainwave = brainwave
        self.rnd = seeded_random(seed_from_input(prompt, brainwave))
        self.style = determine_style(prompt)
        self.colors = vary_palette(palette_from_prompt(prompt), self.rnd)

    # --- defs ---

    def gradients(self) -> str:
        c, bw = self.colors, self.brainwave
        center_opacity = 0.9
        outer_opacity = 1.0
        petal_intensity = 0.8
        if bw is not None:
            center_opacity = max(0.7, min(1.0, 0.8 + (bw.meditation / 100) * 0.2))
            outer_opacity = max(0.8, min(1.0, 0.9 + (bw.meditation / 100) * 0.1))
            petal_intensity = max(0.5, min(1.0, 0.7 + (bw.attention / 100) * 0.3))

        stops = "".join(
            f'<stop offset="{_n(i * 100 / max(len(c.gradient) - 1, 1))}%" '
            f'style="stop-color:{color};stop-opacity:0.8"/>'
            for i, color in enumerate(c.gradient)
        )
        return (
            f'<radialGradient id="bgGradient" cx="50%" cy="50%" r="50%">'
            f'<stop offset="0%" style="stop-color:{c.center};stop-opacity:{_n(center_opacity)}"/>'
            f'<stop offset="100%" style="stop-color:{c.outer};stop-opacity:{_n(outer_opacity)}"/>'
            f'</radialGradient>'
            f'<radialGradient id="petalGrad" cx="50%" cy="50%" r="50%">'
            f'<stop offset="0%" style="stop-color:{c.accent};stop-opacity:{_n(petal_intensity)}"/>'
            f'<stop offset="100%" style="stop-color:{c.secondary};stop-opacity:{_n(petal_intensity * 0.6)}"/>'
            f'</radialGradient>'
            f'<linearGradient id="rainbowGrad" x1="0%" y1="0%" x2="100%" y2="100%">{stops}</linearGradient>'
        )

    def patterns(self) -> str:
        bw, rnd = self.brainwave, self.rnd
        base_size = 8.0
        dot_radius = 1.5
        opacity = 0.7
        if bw is not None:
            base_size = max(6, min(12, 8 + (bw.attention / 100) * 4))
            dot_radius = max(1, min(3, 1.5 + (bw.attention / 100) * 1.5))
            opacity = max(0.4, min(0.9, 0.5 + (bw.signalQuality / 100) * 0.4))
        size = base_size + rnd() * 2
        radius = dot_radius + rnd() * 0.5
        return (
            f'<pattern id="dots" patternUnits="userSpaceOnUse" width="{_n(size)}" height="{_n(size)}">'
            f'<circle cx="{_n(size / 2)}" cy="{_n(size / 2)}" r="{_n(radius)}" '
            f'fill="{self.colors.dots}" opacity="{_n(opacity)}"/></pattern>'
        )

    def filters(self) -> str:
        bw = self.brainwave
        glow = 3.0 if bw is None else max(1, min(5, 3 + (bw.meditation / 100) * 2))
        return (
            f'<filter id="glow" x="-50%" y="-50%" width="200%" height="200%">'
            f'<feGaussianBlur stdDeviation="{_n(glow)}" result="coloredBlur"/>'
            f'<feMerge><feMergeNode in="coloredBlur"/><feMergeNode in="SourceGraphic"/></feMerge>'
            f'</filter>'
        )

    # --- layers ---

    def outer_ring(self) -> str:
        c, bw, rnd = self.colors, self.brainwave, self.rnd
        base = _half_up(8 + (bw.attention / 100) * 16) if bw is not None else 12
        count = max(6, min(24, base + math.floor((rnd() - 0.5) * 4)))
        flowing = bw is not None and bw.meditation > 50

        parts = []
        for i in range(count):
            angle = 360 / count * i
            radius = 170 + rnd() * 20
            size = 6 + rnd() * 6
            inner_radius = radius - 20 + rnd() * 10
            inner_size = 2 + rnd() * 4
            if flowing:
                parts.append(
                    f'<g transform="rotate({_n(angle)})">'
                    f'<ellipse cx="0" cy="-{_n(radius)}" rx="{_n(size * 0.8)}" ry="{_n(size * 1.5)}" '
                    f'fill="{c.accent}" opacity="{_n(0.6 + rnd() * 0.3)}"/>'
                    f'<ellipse cx="0" cy="-{_n(inner_radius)}" rx="{_n(inner_size * 0.6)}" '
                    f'ry="{_n(inner_size * 1.2)}" fill="{c.dots}" opacity="{_n(0.7 + rnd() * 0.3)}"/></g>'
                )
            else:
                parts.append(
                    f'<g transform="rotate({_n(angle)})">'
                    f'<polygon points="0,-{_n(radius + size)} -{_n(size * 0.6)},-{_n(radius - size)} '
                    f'{_n(size * 0.6)},-{_n(radius - size)}" fill="{c.accent}" '
                    f'opacity="{_n(0.6 + rnd() * 0.3)}"/>'
                    f'<circle cx="0" cy="-{_n(inner_radius)}" r="{_n(inner_size)}" fill="{c.dots}" '
                    f'opacity="{_n(0.7 + rnd() * 0.3)}"/></g>'
                )
        return "".join(parts)

    def middle_rings(self) -> str:
        c, bw, rnd = self.colors, self.brainwave, self.rnd
        ring_count = _half_up(2 + (bw.meditation / 100) * 3) if bw is not None else 3
        solid = bw is not None and bw.attention > 70

        parts = []
        for i in range(ring_count):
            radius = 120 - i * 25 + (rnd() - 0.5) * 10
            stroke_width = 1 + rnd() * 2
            opacity = 0.4 + rnd() * 0.4
            dash = "" if solid else f' stroke-dasharray="{_n(2 + rnd() * 3)} {_n(1 + rnd() * 2)}"'
            color = c.accent if i % 2 == 0 else c.secondary
            parts.append(
                f'<circle r="{_n(radius)}" fill="none" stroke="{color}" '
                f'stroke-width="{_n(stroke_width)}" opacity="{_n(opacity)}"{dash}/>'
            )
        return "".join(parts)

    def inner_patterns(self) -> str:
        c, bw, rnd = self.colors, self.brainwave, self.rnd
        r1 = 55 + rnd() * 10
        r2 = 35 + rnd() * 10
        parts = [
            f'<circle r="{_n(r1)}" fill="none" stroke="{c.tertiary}" stroke-width="{_n(1 + rnd())}" '
            f'opacity="{_n(0.6 + rnd() * 0.3)}"/>',
            f'<circle r="{_n(r2)}" fill="none" stroke="{c.dots}" stroke-width="{_n(0.5 + rnd())}" '
            f'opacity="{_n(0.7 + rnd() * 0.3)}"/>',
        ]

        count = _half_up(3 + (bw.signalQuality / 100) * 5) if bw is not None else 4
        precise = bw is not None and bw.attention > 60
        for i in range(count):
            angle = 360 / count * i
            radius = 25 + rnd() * 15
            size = 2 + rnd() * 3
            if precise:
                parts.append(
                    f'<g transform="rotate({_n(angle)})"><rect x="-{_n(size / 2)}" '
                    f'y="-{_n(radius + size / 2)}" width="{_n(size)}" height="{_n(size)}" '
                    f'fill="{c.accent}" opacity="{_n(0.5 + rnd() * 0.3)}" transform="rotate(45)"/></g>'
                )
            else:
                parts.append(
                    f'<g transform="rotate({_n(angle)})"><circle cx="0" cy="-{_n(radius)}" '
                    f'r="{_n(size)}" fill="{c.secondary}" opacity="{_n(0.5 + rnd() * 0.3)}"/></g>'
                )
        return "".join(parts)

    def detailed_petals(self) -> str:
        if self.style == "floral":
            return self.floral_petals()

        c, bw, rnd = self.colors, self.brainwave, self.rnd
        base = _half_up(6 + (bw.meditation / 100) * 6) if bw is not None else 8
        count = max(4, min(16, base + math.floor((rnd() - 0.5) * 4)))
        parts = []
        for i in range(count):
            angle = 360 / count * i
            radius = 45 + rnd() * 15
            size = 4 + rnd() * 6
            parts.append(
                f'<g transform="rotate({_n(angle)})"><circle cx="0" cy="-{_n(radius)}" '
                f'r="{_n(size)}" fill="{c.accent}" opacity="{_n(0.5 + rnd() * 0.4)}"/></g>'
            )
        return "".join(parts)

    def floral_petals(self) -> str:
        c = self.colors
        petal_sets = [(8, 35, 8, 20), (16, 25, 4, 12), (24, 15, 2, 8)]
        parts = []
        for index, (count, radius, rx, ry) in enumerate(petal_sets):
            color = c.gradient[index % len(c.gradient)] if c.gradient else c.accent
            for i in range(count):
                angle = 360 / count * i
                parts.append(
                    f'<g transform="rotate({_n(angle)})">'
                    f'<ellipse cx="0" cy="-{radius}" rx="{rx}" ry="{ry}" fill="{color}" opacity="0.8"/>'
                    f'<ellipse cx="0" cy="-{radius}" rx="{_n(rx * 0.6)}" ry="{_n(ry * 0.8)}" '
                    f'fill="{c.center}" opacity="0.6"/>'
                    f'<line x1="0" y1="-{_n(radius - ry * 0.8)}" x2="0" y2="-{_n(radius + ry * 0.8)}" '
                    f'stroke="{c.secondary}" stroke-width="0.5" opacity="0.7"/></g>'
                )
        return "".join(parts)

    def sacred_geometry(self) -> str:
        c, rnd = self.colors, self.rnd
        parts = [
            f'<circle r="{_n(28 + rnd() * 8)}" fill="none" stroke="{c.dots}" '
            f'stroke-width="{_n(0.5 + rnd())}" opacity="{_n(0.4 + rnd() * 0.3)}"/>'
        ]
        for i in range(6):
            angle = 60 * i
            size = 6 + rnd() * 4
            radius = 70 + rnd() * 15
            parts.append(
                f'<g transform="rotate({_n(angle)})"><polygon points="0,-{_n(radius + size)} '
                f'-{_n(size * 0.866)},-{_n(radius - size / 2)} {_n(size * 0.866)},-{_n(radius - size / 2)}" '
                f'fill="none" stroke="{c.tertiary}" stroke-width="1" opacity="{_n(0.3 + rnd() * 0.3)}"/></g>'
            )
        if self.style == "sacred":
            parts.append(self.flower_of_life())
            parts.append(self.seed_of_life())
        return "".join(parts)

    def flower_of_life(self) -> str:
        radius = 20
        centers = [(0.0, 0.0)] + [
            (radius * math.cos(k * math.pi / 3), radius * math.sin(k * math.pi / 3)) for k in range(6)
        ]
        circles = "".join(
            f'<circle cx="{_n(x)}" cy="{_n(y)}" r="{radius}" fill="none" '
            f'stroke="{self.colors.dots}" stroke-width="1"/>'
            for x, y in centers
        )
        return f'<g opacity="0.6">{circles}</g>'

    def seed_of_life(self) -> str:
        radius = 12
        accent = self.colors.accent
        circles = [f'<circle cx="0" cy="0" r="{radius}" fill="none" stroke="{accent}" stroke-width="1"/>']
        for k in range(6):
            angle = k * math.pi / 3
            circles.append(
                f'<circle cx="{_n(math.cos(angle) * radius)}" cy="{_n(math.sin(angle) * radius)}" '
                f'r="{radius}" fill="none" stroke="{accent}" stroke-width="1"/>'
            )
        return f'<g opacity="0.4">{"".join(circles)}</g>'

    def dot_patterns(self) -> str:
        c, bw, rnd = self.colors, self.brainwave, self.rnd
        ring_count = _half_up(2 + (bw.signalQuality / 100) * 3) if bw is not None else 3
        parts = []
        for ring in range(ring_count):
            radius = 20 + ring * 15 + rnd() * 5
            dot_count = int(radius // 3) + int(rnd() * 4)
            for i in range(dot_count):
                angle = math.radians(360 / dot_count * i + rnd() * 5)
                parts.append(
                    f'<circle cx="{_n(math.cos(angle) * radius)}" cy="{_n(math.sin(angle) * radius)}" '
                    f'r="{_n(1.5 + rnd() * 1.5)}" fill="{c.dots}" opacity="{_n(0.6 + rnd() * 0.3)}"/>'
                )
        if self.style == "dotpainting":
            parts.append(self.dot_painting_ring(180, 220))
            parts.append(self.dot_painting_ring(120, 160))
        return "".join(parts)

    def dot_painting_ring(self, inner_radius: int, outer_radius: int) -> str:
        c, rnd = self.colors, self.rnd
        parts = []
        for radius in range(inner_radius, outer_radius + 1, 4):
            dot_count = int(2 * math.pi * radius // 8)
            for i in range(dot_count):
                angle = math.radians(360 / dot_count * i)
                x, y = math.cos(angle) * radius, math.sin(angle) * radius
                size = 1 + rnd() * 2
                opacity = 0.6 + rnd() * 0.4
                color = c.secondary if rnd() > 0.7 else c.dots
                parts.append(
                    f'<circle cx="{_n(x)}" cy="{_n(y)}" r="{_n(size)}" fill="{color}" opacity="{_n(opacity)}"/>'
                )
                if rnd() > 0.8:
                    parts.append(f'<circle cx="{_n(x)}" cy="{_n(y)}" r="0.5" fill="{c.center}" opacity="0.9"/>')
        return "".join(parts)

    def center_motif(self) -> str:
        c, rnd = self.colors, self.rnd
        outer = 12 + rnd() * 8
        return (
            f'<circle r="{_n(outer)}" fill="{c.center}" opacity="{_n(0.8 + rnd() * 0.2)}"/>'
            f'<circle r="{_n(outer * 0.65)}" fill="{c.accent}" opacity="{_n(0.7 + rnd() * 0.3)}"/>'
            f'<circle r="{_n(outer * 0.3)}" fill="{c.dots}" opacity="{_n(0.9 + rnd() * 0.1)}"/>'
        )

    def render(self) -> str:
        c = self.colors
        # Order matters: every layer draws from the same seeded stream
        defs = self.gradients() + self.patterns() + self.filters()
        layers = [
            self.outer_ring(),
            self.middle_rings(),
            self.inner_patterns(),
            self.detailed_petals(),
            self.sacred_geometry(),
            self.dot_patterns(),
            self.center_motif(),
            f'<g opacity="0.7">{self.outer_ring()}</g>',
            f'<g opacity="0.5" transform="rotate(45)">{self.detailed_petals()}</g>',
        ]
        return (
            f'<svg width="{SIZE}" height="{SIZE}" viewBox="0 0 {SIZE} {SIZE}" '
            f'xmlns="http://www.w3.org/2000/svg">'
            f'<defs>{defs}</defs>'
            f'<rect width="{SIZE}" height="{SIZE}" fill="url(#bgGradient)"/>'
            f'<g transform="translate({SIZE // 2},{SIZE // 2})">{"".join(layers)}</g>'
            f'<circle cx="{SIZE // 2}" cy="{SIZE // 2}" r="250" fill="none" stroke="{c.dots}" '
            f'stroke-width="1" opacity="0.3"/>'
            f'<circle cx="{SIZE // 2}" cy="{SIZE // 2}" r="200" fill="none" stroke="{c.accent}" '
            f'stroke-width="0.5" opacity="0.5"/>'
            f'</svg>'
        )


def create_svg_mandala(prompt: str, brainwave: Optional[BrainwaveData] = None) -> str:
    return MandalaRenderer(prompt, brainwave).render()


def svg_data_url(svg: str) -> str:
    encoded = base64.b64encode(svg.encode("utf-8")).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"
