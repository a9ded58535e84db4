"""
Palette synthesis from clustered colors.
"""
from typing import List, Optional, Sequence
from smart_palette.schemas.color_palette import (
    ColorExtractionOptions,
    ColorPalette,
    ExtractedColor,
    PaletteAccessibility,
    PaletteGradients,
)
from smart_palette.utils.color_conversion import (
    BLACK,
    contrast_ratio,
    hsl_to_rgb,
    to_extracted_color,
)

# WCAG minimum contrast per conformance level
CONTRAST_RATIOS = {
    "A": 3.0,
    "AA": 4.5,
    "AAA": 7.0,
}

DEFAULT_COLOR_RGB = (59, 130, 246)  # #3b82f6
ACCENT_MIN_HUE_DISTANCE = 60
ACCENT_MIN_CONTRAST = 3.0
MESH_POSITIONS = [
    "circle at 20% 20%",
    "circle at 80% 20%",
    "circle at 20% 80%",
    "circle at 80% 80%",
]


def hue_distance(first: int, second: int) -> int:
    """Circular distance between two hues in degrees."""
    diff = abs(first - second)
    return min(diff, 360 - diff)


def complementary_color(color: ExtractedColor) -> ExtractedColor:
    """Rotate a color's hue by 180 degrees, keeping saturation and lightness."""
    rgb = hsl_to_rgb((color.hsl.h + 180) % 360, color.hsl.s, color.hsl.l)
    return to_extracted_color(rgb, 0.0, emotion="complementary")


def find_accent_color(colors: Sequence[ExtractedColor], primary: ExtractedColor) -> ExtractedColor:
    """
    Pick the first color with a clearly different hue and enough contrast against primary.

    Falls back to the complement of primary when no color qualifies.
    """
    for color in colors:
        if color is primary:
            continue
        if (
            hue_distance(color.hsl.h, primary.hsl.h) > ACCENT_MIN_HUE_DISTANCE
            and contrast_ratio(color.rgb, primary.rgb) > ACCENT_MIN_CONTRAST
        ):
            return color
    return complementary_color(primary)


def generate_mesh_gradient(colors: Sequence[ExtractedColor]) -> str:
    """Layer up to four radial gradients at the corners of the box."""
    if not colors:
        return default_color().hex
    if len(colors) < 2:
        return colors[0].hex

    return ", ".join(
        f"radial-gradient({position}, {color.hex} 0%, transparent 50%)"
        for position, color in zip(MESH_POSITIONS, colors[:4])
    )


def generate_accessibility_colors(
    colors: Sequence[ExtractedColor],
    level: str = "AA",
) -> PaletteAccessibility:
    """
    Choose text colors readable on white and on black, plus fill-safe backgrounds.

    Args:
        colors: Colors sorted by descending weight
        level: WCAG level deciding the minimum text contrast

    Returns:
        PaletteAccessibility: Picks, each falling back to the most prominent color
    """
    threshold = CONTRAST_RATIOS[level]
    fallback = colors[0]

    text_on_light = next((c for c in colors if c.contrast >= threshold), fallback)
    text_on_dark = next((c for c in colors if contrast_ratio(c.rgb, BLACK) >= threshold), fallback)
    backgrounds = [c for c in colors if c.hsl.l > 85 or c.hsl.l < 15]

    return PaletteAccessibility(
        text_on_light=text_on_light,
        text_on_dark=text_on_dark,
        backgrounds=backgrounds or [fallback],
    )


def default_color() -> ExtractedColor:
    return to_extracted_color(DEFAULT_COLOR_RGB, 1.0)


def default_palette() -> ColorPalette:
    """Palette returned when no colors could be extracted."""
    color = default_color()
    return ColorPalette(
        primary=color,
        secondary=color,
        accent=color,
        dominant=[color],
        supporting=[],
        gradients=PaletteGradients(primary=color.hex, secondary=color.hex, mesh=color.hex),
        accessibility=PaletteAccessibility(
            text_on_light=color,
            text_on_dark=color,
            backgrounds=[color],
        ),
    )


def generate_palette(
    colors: Sequence[ExtractedColor],
    options: Optional[ColorExtractionOptions] = None,
) -> ColorPalette:
    """
    Synthesize a palette from clustered colors.

    Args:
        colors: Clustered colors in any order
        options: Extraction options (gradients, accessibility, contrast level)

    Returns:
        ColorPalette: The synthesized palette, or the default palette for empty input
    """
    options = options or ColorExtractionOptions()
    if not colors:
        return default_palette()

    ranked: List[ExtractedColor] = sorted(colors, key=lambda c: c.weight, reverse=True)

    primary = ranked[0]
    secondary = ranked[1] if len(ranked) > 1 else primary
    accent = find_accent_color(ranked, primary)

    if options.generate_gradients:
        gradients = PaletteGradients(
            primary=f"linear-gradient(135deg, {primary.hex}, {secondary.hex})",
            secondary=f"linear-gradient(45deg, {secondary.hex}, {accent.hex})",
            mesh=generate_mesh_gradient(ranked[:4]),
        )
    else:
        gradients = PaletteGradients(primary=primary.hex, secondary=secondary.hex, mesh=primary.hex)

    if options.ensure_accessibility:
        accessibility = generate_accessibility_colors(ranked, options.contrast_level)
    else:
        accessibility = PaletteAccessibility(
            text_on_light=primary,
            text_on_dark=primary,
            backgrounds=[primary],
        )

    return ColorPalette(
        primary=primary,
        secondary=secondary,
        accent=accent,
        dominant=ranked[:3],
        supporting=ranked[3:8],
        gradients=gradients,
        accessibility=accessibility,
    )
