"""
Color space conversions and per-color metadata.

Every derived value of an ExtractedColor (hex, HSL, LAB, contrast,
temperature, emotion) is computed here from its RGB triple.
"""
import math
import re
from typing import Optional, Sequence, Tuple, Union
from smart_palette.schemas.color_palette import ExtractedColor, HSL, LAB, RGB

RGBTuple = Tuple[int, int, int]
ColorLike = Union[RGB, Sequence[int]]

WHITE: RGBTuple = (255, 255, 255)
BLACK: RGBTuple = (0, 0, 0)

_HEX_PATTERN = re.compile(r"^#?([0-9a-f]{6}|[0-9a-f]{3})$", re.IGNORECASE)


def round_half_up(value: float) -> int:
    """Round .5 away from negative infinity, as CSS and JavaScript do."""
    return int(math.floor(value + 0.5))


def _as_tuple(color: ColorLike) -> RGBTuple:
    if isinstance(color, RGB):
        return color.as_tuple()
    r, g, b = color[0], color[1], color[2]
    return (int(r), int(g), int(b))


def rgb_to_hex(r: int, g: int, b: int) -> str:
    """Format an RGB triple as lowercase #rrggbb."""
    return f"#{r:02x}{g:02x}{b:02x}"


def hex_to_rgb(value: str) -> Optional[RGBTuple]:
    """
    Parse a #rrggbb or #rgb string.

    Returns:
        The RGB triple, or None when the string is not a hex color
    """
    match = _HEX_PATTERN.match(value.strip())
    if not match:
        return None
    digits = match.group(1)
    if len(digits) == 3:
        digits = "".join(ch * 2 for ch in digits)
    return (int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16))


def rgb_to_hsl(r: int, g: int, b: int) -> Tuple[float, float, float]:
    """
    Convert RGB to unrounded HSL.

    Returns:
        (hue in [0, 360), saturation in [0, 100], lightness in [0, 100])
    """
    rn, gn, bn = r / 255, g / 255, b / 255
    high = max(rn, gn, bn)
    low = min(rn, gn, bn)
    diff = high - low
    total = high + low
    lightness = total / 2

    hue = 0.0
    saturation = 0.0
    if diff != 0:
        saturation = diff / total if lightness < 0.5 else diff / (2 - total)
        if high == rn:
            hue = (gn - bn) / diff + (6 if gn < bn else 0)
        elif high == gn:
            hue = (bn - rn) / diff + 2
        else:
            hue = (rn - gn) / diff + 4
        hue /= 6

    return (hue * 360) % 360, saturation * 100, lightness * 100


def to_hsl(r: int, g: int, b: int) -> HSL:
    """Rounded HSL as stored on an ExtractedColor."""
    h, s, l = rgb_to_hsl(r, g, b)
    return HSL(h=round_half_up(h) % 360, s=round_half_up(s), l=round_half_up(l))


def hsl_to_rgb(h: float, s: float, l: float) -> RGBTuple:
    """Convert HSL (degrees, percent, percent) back to an RGB triple."""
    h_norm = (h % 360) / 360
    s_norm = s / 100
    l_norm = l / 100

    c = (1 - abs(2 * l_norm - 1)) * s_norm
    x = c * (1 - abs((h_norm * 6) % 2 - 1))
    m = l_norm - c / 2

    sector = int(h_norm * 6)
    r, g, b = [
        (c, x, 0),
        (x, c, 0),
        (0, c, x),
        (0, x, c),
        (x, 0, c),
        (c, 0, x),
    ][min(sector, 5)]

    def channel(value: float) -> int:
        return max(0, min(255, round_half_up((value + m) * 255)))

    return channel(r), channel(g), channel(b)


def hsl_to_hex(h: float, s: float, l: float) -> str:
    return rgb_to_hex(*hsl_to_rgb(h, s, l))


def rgb_to_lab(r: int, g: int, b: int) -> LAB:
    """
    Simplified lightness/chroma approximation.

    Not CIE LAB: lightness is the Rec. 601 luma scaled to 0-100 and the
    a/b axes are plain channel differences.
    """
    lightness = (0.299 * r + 0.587 * g + 0.114 * b) / 255 * 100
    a = (r - g) / 255 * 100
    b_val = (g - b) / 255 * 100
    return LAB(l=round_half_up(lightness), a=round_half_up(a), b=round_half_up(b_val))


def relative_luminance(color: ColorLike) -> float:
    """WCAG relative luminance of an sRGB color."""
    def linear(channel: int) -> float:
        value = channel / 255
        return value / 12.92 if value <= 0.03928 else ((value + 0.055) / 1.055) ** 2.4

    r, g, b = _as_tuple(color)
    return 0.2126 * linear(r) + 0.7152 * linear(g) + 0.0722 * linear(b)


def contrast_ratio(first: ColorLike, second: ColorLike) -> float:
    """WCAG contrast ratio between two colors, from 1.0 to 21.0."""
    l1 = relative_luminance(first)
    l2 = relative_luminance(second)
    lighter = max(l1, l2)
    darker = min(l1, l2)
    return (lighter + 0.05) / (darker + 0.05)


def color_temperature(hue: int) -> str:
    if 0 <= hue <= 60:
        return "warm"
    if 60 < hue <= 120:
        return "neutral"
    if 120 < hue <= 300:
        return "cool"
    return "warm"


def color_emotion(hue: int, saturation: int, lightness: int) -> str:
    """Map HSL buckets to a descriptive label."""
    # Low saturation reads as neutral regardless of hue
    if saturation < 20:
        if lightness < 30:
            return "sophisticated"
        if lightness > 70:
            return "clean"
        return "balanced"

    if hue < 30:
        return "passionate"
    if hue < 60:
        return "energetic"
    if hue < 90:
        return "optimistic"
    if hue < 150:
        return "natural"
    if hue < 210:
        return "calming"
    if hue < 270:
        return "trustworthy"
    if hue < 330:
        return "creative"
    return "romantic"


def to_extracted_color(rgb: ColorLike, weight: float, emotion: Optional[str] = None) -> ExtractedColor:
    """
    Build an ExtractedColor with all metadata derived from one RGB triple.

    Args:
        rgb: Source color
        weight: Prominence of the color among sampled pixels
        emotion: Label override, otherwise derived from HSL

    Returns:
        ExtractedColor: The color with hex, HSL, LAB, contrast, temperature and emotion
    """
    r, g, b = _as_tuple(rgb)
    hsl = to_hsl(r, g, b)
    return ExtractedColor(
        hex=rgb_to_hex(r, g, b),
        rgb=RGB(r=r, g=g, b=b),
        hsl=hsl,
        lab=rgb_to_lab(r, g, b),
        weight=weight,
        contrast=contrast_ratio((r, g, b), WHITE),
        temperature=color_temperature(hsl.h),
        emotion=emotion or color_emotion(hsl.h, hsl.s, hsl.l),
    )
