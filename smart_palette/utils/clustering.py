"""
Clustering strategies that reduce sampled pixels to weighted representative colors.
"""
import random
from typing import Dict, List, Optional, Sequence
import numpy as np
from PIL import Image
from smart_palette.core.logging import logger
from smart_palette.schemas.color_palette import ColorExtractionOptions, ExtractedColor
from smart_palette.utils.color_conversion import hex_to_rgb, rgb_to_hex, to_extracted_color

MAX_KMEANS_ITERATIONS = 20
CONVERGENCE_DISTANCE = 5.0  # RGB units
MIN_CLUSTER_WEIGHT = 0.01
MEDIAN_CUT_STEP = 8
MERGE_STEP = 16


def _nearest_centroid(pixels: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Index of the nearest centroid per pixel (squared Euclidean, first wins ties)."""
    distances = (
        (pixels ** 2).sum(axis=1)[:, None]
        - 2 * pixels @ centroids.T
        + (centroids ** 2).sum(axis=1)[None, :]
    )
    return distances.argmin(axis=1)


def kmeans_cluster(pixels: np.ndarray, k: int, rng: Optional[random.Random] = None) -> List[ExtractedColor]:
    """
    Cluster pixels with k-means in RGB space.

    Centroids start as uniform random draws from the pixels, so results vary
    between runs unless a seeded rng is supplied.

    Args:
        pixels: N x 3 array of RGB triples
        k: Number of centroids
        rng: Random source for the initial draws

    Returns:
        List[ExtractedColor]: One color per centroid holding more than 1% of pixels
    """
    if len(pixels) == 0:
        return []

    rng = rng or random.Random()
    points = np.asarray(pixels, dtype=np.int64)
    centroids = np.array([points[rng.randrange(len(points))] for _ in range(k)], dtype=np.int64)

    for iteration in range(MAX_KMEANS_ITERATIONS):
        labels = _nearest_centroid(points, centroids)
        updated = centroids.copy()
        for index in range(k):
            members = points[labels == index]
            # Empty clusters keep their previous centroid
            if len(members):
                updated[index] = np.floor(members.mean(axis=0) + 0.5).astype(np.int64)

        shift = np.sqrt(((updated - centroids) ** 2).sum(axis=1))
        centroids = updated
        if np.all(shift < CONVERGENCE_DISTANCE):
            logger.debug(f"k-means converged after {iteration + 1} iterations")
            break

    labels = _nearest_centroid(points, centroids)
    counts = np.bincount(labels, minlength=k)
    total = len(points)

    colors = []
    for index in range(k):
        weight = float(counts[index]) / total
        if weight > MIN_CLUSTER_WEIGHT:
            colors.append(to_extracted_color(centroids[index].tolist(), weight))
    return colors


def median_cut_cluster(pixels: np.ndarray, max_colors: int) -> List[ExtractedColor]:
    """
    Bucket pixels by channel values floored to multiples of 8 and rank buckets by size.

    The first pixel seen in a bucket represents it. Ties in bucket size keep
    first-appearance order, so the result is deterministic.

    Args:
        pixels: N x 3 array of RGB triples
        max_colors: Number of buckets to keep

    Returns:
        List[ExtractedColor]: Colors sorted by descending weight
    """
    if len(pixels) == 0:
        return []

    points = np.asarray(pixels, dtype=np.int64)
    buckets = (points // MEDIAN_CUT_STEP) * MEDIAN_CUT_STEP
    keys = (buckets[:, 0] << 16) | (buckets[:, 1] << 8) | buckets[:, 2]
    _, first_index, counts = np.unique(keys, return_index=True, return_counts=True)

    order = np.lexsort((first_index, -counts))[:max_colors]
    total = len(points)
    return [
        to_extracted_color(points[first_index[i]].tolist(), float(counts[i]) / total)
        for i in order
    ]


def octree_cluster(pixels: np.ndarray, max_colors: int) -> List[ExtractedColor]:
    """
    Quantize pixels with Pillow's fast octree and weight each palette entry by its pixel count.

    Args:
        pixels: N x 3 array of RGB triples
        max_colors: Maximum palette size (at most 256)

    Returns:
        List[ExtractedColor]: Colors sorted by descending weight
    """
    if len(pixels) == 0:
        return []

    strip = np.asarray(pixels, dtype=np.uint8).reshape(1, -1, 3)
    image = Image.fromarray(strip)
    quantized = image.quantize(colors=min(max_colors, 256), method=Image.Quantize.FASTOCTREE)

    palette = quantized.getpalette() or []
    entries = quantized.getcolors(maxcolors=256) or []
    entries.sort(key=lambda entry: (-entry[0], entry[1]))

    total = len(strip[0])
    colors = []
    for count, index in entries[:max_colors]:
        rgb = palette[index * 3:index * 3 + 3]
        colors.append(to_extracted_color(rgb, count / total))
    return colors


def cluster_pixels(pixels: np.ndarray, options: ColorExtractionOptions) -> List[ExtractedColor]:
    """
    Run the clustering strategy selected by the options.

    Args:
        pixels: N x 3 array of sampled RGB triples
        options: Extraction options (clustering, max_colors, seed)

    Returns:
        List[ExtractedColor]: Clustered colors, empty when no pixels were sampled
    """
    if options.clustering == "kmeans":
        colors = kmeans_cluster(pixels, options.max_colors, random.Random(options.seed))
    elif options.clustering == "octree":
        colors = octree_cluster(pixels, options.max_colors)
    else:
        colors = median_cut_cluster(pixels, options.max_colors)

    logger.debug(f"{options.clustering} clustering produced {len(colors)} colors from {len(pixels)} pixels")
    return colors


def quantize_hex(value: str, step: int = MERGE_STEP) -> str:
    """Floor each channel of a hex color to a multiple of step."""
    rgb = hex_to_rgb(value)
    if rgb is None:
        return value
    return rgb_to_hex(*[(channel // step) * step for channel in rgb])


def merge_colors(color_sets: Sequence[Sequence[ExtractedColor]]) -> List[ExtractedColor]:
    """
    Combine colors from several clustering passes into one weighted list.

    Colors are grouped by their hex quantized to 16-unit buckets and the
    first color seen in a bucket represents it. Weights in a bucket are
    summed and divided by the number of passes so they remain fractions.

    Args:
        color_sets: One color list per clustering pass, e.g. per video frame

    Returns:
        List[ExtractedColor]: Merged colors sorted by descending weight
    """
    merged: Dict[str, ExtractedColor] = {}
    for colors in color_sets:
        for color in colors:
            key = quantize_hex(color.hex)
            existing = merged.get(key)
            if existing is None:
                merged[key] = color
            else:
                merged[key] = existing.model_copy(update={"weight": existing.weight + color.weight})

    passes = max(len(color_sets), 1)
    result = [color.model_copy(update={"weight": color.weight / passes}) for color in merged.values()]
    return sorted(result, key=lambda color: color.weight, reverse=True)
