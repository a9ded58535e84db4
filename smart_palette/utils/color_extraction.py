"""
Color palette extraction service.

SmartColorExtractor runs the pipeline (pixel source -> sampling -> clustering
-> palette synthesis) and memoizes palettes per source in its own cache.
"""
import hashlib
import os
from typing import Dict, Optional, Union
import httpx
from PIL import Image
from smart_palette.core.config import settings
from smart_palette.core.logging import logger
from smart_palette.schemas.color_palette import (
    CacheStats,
    ColorExtractionOptions,
    ColorPalette,
    ElementStyles,
    VideoExtractionOptions,
)
from smart_palette.utils.clustering import cluster_pixels, merge_colors
from smart_palette.utils.palette import generate_palette
from smart_palette.utils.pixel_sources import (
    ImageSource,
    extract_element_colors,
    iter_video_frames,
    load_image,
    open_video_source,
    plan_frame_times,
    rasterize_image,
)
from smart_palette.utils.sampling import sample_pixels


def image_cache_key(source: ImageSource) -> str:
    """
    Derive the cache key for an image source.

    Strings and paths key by themselves, bytes by content hash and PIL
    images by their filename when they have one.
    """
    if isinstance(source, Image.Image):
        filename = getattr(source, "filename", "")
        return filename or f"image:{id(source)}"
    if isinstance(source, (bytes, bytearray)):
        return f"sha256:{hashlib.sha256(source).hexdigest()}"
    return os.fspath(source)


def video_cache_key(video) -> str:
    if isinstance(video, (str, os.PathLike)):
        return f"video:{os.fspath(video)}"
    # Identity key: an object whose content changes in place keeps its key
    return f"video:{id(video)}"


def identity_anchor(key: str, source) -> Optional[object]:
    """The source itself when key was derived from its id, else None."""
    if key in (f"image:{id(source)}", f"video:{id(source)}"):
        return source
    return None


def element_cache_key(element: ElementStyles) -> str:
    digest = hashlib.sha256(element.model_dump_json().encode("utf-8")).hexdigest()
    return f"element:{digest}"


class PaletteCache:
    """
    In-memory palette store keyed by source. Entries live until removed.

    Sources keyed by object identity are held as anchors next to their entry,
    so their id cannot be reused by another object while the entry exists.
    """

    def __init__(self):
        self._entries: Dict[str, ColorPalette] = {}
        self._anchors: Dict[str, object] = {}

    def get(self, key: str) -> Optional[ColorPalette]:
        return self._entries.get(key)

    def set(self, key: str, palette: ColorPalette, anchor: Optional[object] = None) -> None:
        self._entries[key] = palette
        if anchor is not None:
            self._anchors[key] = anchor
        else:
            self._anchors.pop(key, None)

    def invalidate(self, key: str) -> bool:
        """Drop one entry. Returns True if it was present."""
        self._anchors.pop(key, None)
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()
        self._anchors.clear()

    def stats(self) -> CacheStats:
        return CacheStats(size=len(self._entries), keys=list(self._entries.keys()))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


class SmartColorExtractor:
    """Extracts color palettes from images, videos and element styles."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[PaletteCache] = None,
        seek_timeout: Optional[float] = None,
        open_timeout: Optional[float] = None,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=settings.IMAGE_FETCH_TIMEOUT)
        self.cache = cache if cache is not None else PaletteCache()
        self.seek_timeout = seek_timeout or settings.VIDEO_SEEK_TIMEOUT
        self.open_timeout = open_timeout or settings.VIDEO_OPEN_TIMEOUT

    async def extract_from_image(
        self,
        source: ImageSource,
        options: Optional[ColorExtractionOptions] = None,
        cache_key: Optional[str] = None,
    ) -> ColorPalette:
        """
        Extract a palette from an image.

        Args:
            source: PIL image, raw bytes, local path or http(s) URL
            options: Extraction options, defaults when omitted
            cache_key: Explicit cache key overriding the derived one

        Returns:
            ColorPalette: The cached or newly synthesized palette

        Raises:
            LoadError: If the image cannot be fetched or decoded
            DecodeBlockedError: If pixel access to the source is refused
        """
        options = options or ColorExtractionOptions()
        key = cache_key or image_cache_key(source)

        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"Palette cache hit for {key}")
            return cached

        logger.info(f"Extracting up to {options.max_colors} colors from image {key}")
        image = await load_image(source, self.client)
        raster = rasterize_image(image, options.quality)
        pixels = sample_pixels(raster, options)
        colors = cluster_pixels(pixels, options)
        palette = generate_palette(colors, options)

        self.cache.set(key, palette, anchor=identity_anchor(key, source))
        logger.info(f"Extracted {len(colors)} colors from image {key}, primary {palette.primary.hex}")
        return palette

    async def extract_from_video(
        self,
        video,
        options: Optional[ColorExtractionOptions] = None,
        cache_key: Optional[str] = None,
    ) -> ColorPalette:
        """
        Extract a palette from evenly spaced frames of a video.

        Frames are read one at a time in increasing time order. Each frame is
        sampled and clustered on its own and the per-frame colors are merged
        once every frame has been visited.

        Args:
            video: Path, URL, cv2.VideoCapture or any object with
                `duration` and `read_frame(timestamp)`
            options: Extraction options; frame_interval_ms applies when given
                VideoExtractionOptions
            cache_key: Explicit cache key overriding the derived one

        Returns:
            ColorPalette: The cached or newly synthesized palette

        Raises:
            DecodeBlockedError: If settings forbid reading the path or URL
            LoadError: If OpenCV cannot open the video
            VideoOpenTimeoutError: If the video does not open in time
            SeekTimeoutError: If a frame seek does not complete in time
        """
        if options is None:
            options = VideoExtractionOptions()
        elif not isinstance(options, VideoExtractionOptions):
            options = VideoExtractionOptions(**options.model_dump())
        key = cache_key or video_cache_key(video)

        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"Palette cache hit for {key}")
            return cached

        source = await open_video_source(video, self.open_timeout)
        frame_colors = []
        try:
            timestamps = plan_frame_times(source.duration, options.frame_interval_ms)
            logger.info(f"Sampling {len(timestamps)} frames from {key}")
            async for timestamp, frame in iter_video_frames(source, timestamps, self.seek_timeout):
                pixels = sample_pixels(frame, options)
                frame_colors.append(cluster_pixels(pixels, options))
                logger.debug(f"Frame at {timestamp:.2f}s yielded {len(frame_colors[-1])} colors")
        finally:
            # Only sources opened here are released here
            if source is not video:
                source.release()

        colors = merge_colors(frame_colors)
        palette = generate_palette(colors, options)

        self.cache.set(key, palette, anchor=identity_anchor(key, video))
        logger.info(f"Extracted {len(colors)} colors from {len(frame_colors)} frames of {key}")
        return palette

    async def extract_from_element(
        self,
        element: Union[ElementStyles, dict],
        options: Optional[ColorExtractionOptions] = None,
        cache_key: Optional[str] = None,
    ) -> ColorPalette:
        """
        Build a palette from the color literals in an element's computed styles.

        Best effort: missing or malformed styles give the default palette.
        """
        if not isinstance(element, ElementStyles):
            element = ElementStyles.model_validate(element)
        options = options or ColorExtractionOptions()
        key = cache_key or element_cache_key(element)

        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"Palette cache hit for {key}")
            return cached

        colors = extract_element_colors(element)
        palette = generate_palette(colors, options)

        self.cache.set(key, palette)
        logger.info(f"Extracted {len(colors)} style colors from element {key}")
        return palette

    def clear_cache(self) -> None:
        """Drop every cached palette."""
        logger.info(f"Clearing {len(self.cache)} cached palettes")
        self.cache.clear()

    def invalidate(self, key: str) -> bool:
        """Drop the cached palette for one source key."""
        return self.cache.invalidate(key)

    def get_cache_stats(self) -> CacheStats:
        """Entry count and keys, for diagnostics."""
        return self.cache.stats()

    async def close(self):
        """Close the HTTP client if this extractor created it."""
        if self._owns_client:
            await self.client.aclose()
