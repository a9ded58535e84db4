"""
Pixel sampling for color extraction.

Reduces a raster buffer to the opaque, non-excluded RGB triples that feed
clustering.
"""
import numpy as np
from smart_palette.core.logging import logger
from smart_palette.schemas.color_palette import ColorExtractionOptions

# Pixels skipped between samples, per quality level
SAMPLE_STEP = {
    "fast": 10,
    "balanced": 5,
    "precise": 2,
}

MIN_ALPHA = 125  # ~49% opacity
WHITE_FLOOR = 240
BLACK_CEILING = 15


def _hsl_percentages(pixels: np.ndarray):
    """Vectorized saturation and lightness (0-100) for an N x 3 array."""
    rgb = pixels.astype(np.float64) / 255.0
    high = rgb.max(axis=1)
    low = rgb.min(axis=1)
    diff = high - low
    total = high + low
    lightness = total / 2

    with np.errstate(divide="ignore", invalid="ignore"):
        saturation = np.where(lightness < 0.5, diff / total, diff / (2 - total))
    saturation = np.where(diff == 0, 0.0, saturation)
    return saturation * 100, lightness * 100


def sample_pixels(buffer: np.ndarray, options: ColorExtractionOptions) -> np.ndarray:
    """
    Walk a pixel buffer at a quality-dependent stride and drop excluded pixels.

    Args:
        buffer: RGB or RGBA pixel data, either H x W x C or N x C
        options: Extraction options (quality, white/black and HSL exclusions)

    Returns:
        np.ndarray: N x 3 int array of sampled RGB triples, possibly empty
    """
    data = np.asarray(buffer)
    if data.size == 0:
        return np.empty((0, 3), dtype=np.int64)

    channels = data.shape[-1]
    flat = data.reshape(-1, channels)
    step = SAMPLE_STEP.get(options.quality, SAMPLE_STEP["balanced"])
    sampled = flat[::step]

    keep = np.ones(len(sampled), dtype=bool)
    if channels == 4:
        keep &= sampled[:, 3] >= MIN_ALPHA

    rgb = sampled[:, :3].astype(np.int64)
    if options.ignore_white:
        keep &= ~np.all(rgb > WHITE_FLOOR, axis=1)
    if options.ignore_black:
        keep &= ~np.all(rgb < BLACK_CEILING, axis=1)

    if (
        options.min_saturation is not None
        or options.min_lightness is not None
        or options.max_lightness is not None
    ):
        saturation, lightness = _hsl_percentages(rgb)
        if options.min_saturation is not None:
            keep &= saturation >= options.min_saturation
        if options.min_lightness is not None:
            keep &= lightness >= options.min_lightness
        if options.max_lightness is not None:
            keep &= lightness <= options.max_lightness

    result = rgb[keep]
    logger.debug(f"Sampled {len(result)} of {len(flat)} pixels (step {step})")
    return result
