"""
Utility functions for turning images, video frames and element styles into pixel data.
"""
import asyncio
import math
import os
import re
import threading
from io import BytesIO
from pathlib import Path
from typing import AsyncIterator, List, Optional, Tuple, Union
from urllib.parse import urlparse
import cv2
import httpx
import numpy as np
from PIL import Image, UnidentifiedImageError
from smart_palette.core.config import settings
from smart_palette.core.exceptions import (
    DecodeBlockedError,
    LoadError,
    SeekTimeoutError,
    VideoOpenTimeoutError,
)
from smart_palette.core.logging import logger
from smart_palette.schemas.color_palette import ElementStyles, ExtractedColor
from smart_palette.utils.color_conversion import hex_to_rgb, to_extracted_color

ImageSource = Union[Image.Image, bytes, bytearray, str, os.PathLike]

# Longer edge of the analysis raster, per quality level
RASTER_SIZE = {
    "fast": 50,
    "balanced": 100,
    "precise": 200,
}

MAX_VIDEO_FRAMES = 10
MAX_REDIRECTS = 5

STYLE_PROPERTIES = {
    "color": "color",
    "backgroundColor": "background-color",
    "borderColor": "border-color",
    "boxShadow": "box-shadow",
    "textShadow": "text-shadow",
}

RGB_FUNCTION_PATTERN = re.compile(
    r"rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)\s*(?:,\s*[\d.]+%?\s*)?\)",
    re.IGNORECASE,
)
HEX_LITERAL_PATTERN = re.compile(r"#([0-9a-fA-F]{6}|[0-9a-fA-F]{3})")


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def check_source_access(location: str) -> None:
    """
    Apply the host allowlist to URLs and the local-file switch to everything else.

    Raises:
        DecodeBlockedError: If settings forbid reading from location
    """
    if is_url(location):
        host = urlparse(location).hostname or ""
        if settings.ALLOWED_IMAGE_HOSTS and host not in settings.ALLOWED_IMAGE_HOSTS:
            logger.error(f"Refusing to read {location}: host {host} is not allowed")
            raise DecodeBlockedError(location, f"host {host} is not in ALLOWED_IMAGE_HOSTS")
    elif not settings.ALLOW_LOCAL_FILES:
        logger.error(f"Local file access is disabled, refusing {location}")
        raise DecodeBlockedError(location, "local file access is disabled")


async def fetch_image_bytes(url: str, client: httpx.AsyncClient) -> bytes:
    """
    Download image bytes from a URL.

    Redirects are followed one hop at a time and every target is checked
    against the host allowlist before it is requested.

    Args:
        url: http(s) URL of the image
        client: HTTP client used for the request

    Returns:
        bytes: The response body

    Raises:
        DecodeBlockedError: If a host is not allowed or the server refuses access
        LoadError: If the request fails, redirects too often or returns an error status
    """
    logger.info(f"Downloading image from {url}")
    current = url
    for _ in range(MAX_REDIRECTS + 1):
        check_source_access(current)
        try:
            response = await client.get(current, follow_redirects=False)
        except httpx.HTTPError as e:
            logger.error(f"Error downloading image from {current}: {str(e)}")
            raise LoadError(url, str(e)) from e

        if not response.is_redirect:
            break

        target = str(response.url.join(response.headers["location"]))
        if not is_url(target):
            logger.error(f"Refusing redirect from {current} to {target}")
            raise DecodeBlockedError(url, f"redirect to non-http location {target}")
        logger.info(f"Following redirect from {current} to {target}")
        current = target
    else:
        logger.error(f"Too many redirects fetching {url}")
        raise LoadError(url, f"more than {MAX_REDIRECTS} redirects")

    if response.status_code in (401, 403):
        logger.error(f"Access to {url} refused with status {response.status_code}")
        raise DecodeBlockedError(url, f"HTTP {response.status_code}")

    try:
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        logger.error(f"HTTP error downloading {url}: {e.response.status_code}")
        raise LoadError(url, f"HTTP {e.response.status_code}") from e

    return response.content


def decode_image(data: bytes, source: str) -> Image.Image:
    """
    Decode image bytes, rejecting oversized images before their pixels are loaded.

    Raises:
        LoadError: If the bytes are not a readable image or exceed MAX_IMAGE_PIXELS
    """
    try:
        image = Image.open(BytesIO(data))
        width, height = image.size
        if width * height > settings.MAX_IMAGE_PIXELS:
            raise LoadError(source, f"image is {width}x{height}, above {settings.MAX_IMAGE_PIXELS} pixels")
        image.load()
    except LoadError:
        logger.error(f"Rejected oversized image from {source}")
        raise
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        logger.error(f"Error decoding image from {source}: {str(e)}")
        raise LoadError(source, str(e)) from e
    return image


async def load_image(source: ImageSource, client: httpx.AsyncClient) -> Image.Image:
    """
    Resolve an image source into a decoded PIL image.

    Args:
        source: A PIL image, raw bytes, a local path or an http(s) URL
        client: HTTP client used for URL sources

    Returns:
        Image.Image: The decoded image
    """
    if isinstance(source, Image.Image):
        return source

    if isinstance(source, (bytes, bytearray)):
        return decode_image(bytes(source), "<bytes>")

    location = os.fspath(source)
    if is_url(location):
        data = await fetch_image_bytes(location, client)
        return decode_image(data, location)

    check_source_access(location)
    if not os.path.exists(location):
        logger.error(f"Local image file does not exist: {location}")
        raise LoadError(location, "file does not exist")

    return decode_image(Path(location).read_bytes(), location)


def optimal_size(width: int, height: int, max_size: int) -> Tuple[int, int]:
    """Scale dimensions so the longer edge equals max_size, keeping the aspect ratio."""
    aspect_ratio = width / height
    if width > height:
        return max_size, max(1, round(max_size / aspect_ratio))
    return max(1, round(max_size * aspect_ratio)), max_size


def rasterize_image(image: Image.Image, quality: str = "balanced") -> np.ndarray:
    """
    Resize an image to the quality cap and return its RGBA pixels.

    Each call renders into its own buffer.

    Returns:
        np.ndarray: H x W x 4 uint8 array
    """
    max_size = RASTER_SIZE.get(quality, RASTER_SIZE["balanced"])
    width, height = optimal_size(image.width, image.height, max_size)
    raster = image.convert("RGBA").resize((width, height), Image.Resampling.BILINEAR)
    return np.asarray(raster)


class OpenCVVideoSource:
    """
    Seekable frame reader backed by cv2.VideoCapture.

    Frame rate and length are read once when the source is created, so
    constructing it belongs in a worker thread. release() may be called
    while a read is still running in another thread; the capture is then
    released as soon as that read returns.
    """

    def __init__(self, capture: "cv2.VideoCapture", owned: bool = False):
        self.capture = capture
        self._owned = owned
        self._lock = threading.Lock()
        self._reading = False
        self._release_pending = False
        self._released = False

        self.fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
        frame_count = capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0
        # Length in seconds, 0 when unknown
        self.duration = frame_count / self.fps if self.fps > 0 and frame_count > 0 else 0.0

    @classmethod
    def open(cls, location: str) -> "OpenCVVideoSource":
        """
        Open a video file or stream. The returned source owns its capture.

        Raises:
            LoadError: If OpenCV cannot open the location
        """
        capture = cv2.VideoCapture(location)
        if not capture.isOpened():
            capture.release()
            logger.error(f"Could not open video {location}")
            raise LoadError(location, "video could not be opened")
        return cls(capture, owned=True)

    def read_frame(self, timestamp: float) -> Optional[np.ndarray]:
        """Seek to a timestamp (seconds) and decode that frame as RGB."""
        with self._lock:
            if self._released or self._release_pending:
                return None
            self._reading = True

        ok, frame = False, None
        try:
            if self.fps > 0:
                self.capture.set(cv2.CAP_PROP_POS_FRAMES, int(round(timestamp * self.fps)))
            else:
                self.capture.set(cv2.CAP_PROP_POS_MSEC, timestamp * 1000)
            ok, frame = self.capture.read()
        finally:
            with self._lock:
                self._reading = False
                release_now = self._release_pending
            if release_now:
                self._release_capture()

        if release_now or not ok or frame is None:
            return None
        return cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)

    def release(self):
        """Release the capture if this source owns it, once no read is in flight."""
        if not self._owned:
            return
        with self._lock:
            if self._reading:
                self._release_pending = True
                logger.debug("Capture is busy, release deferred until the read returns")
                return
        self._release_capture()

    def _release_capture(self):
        with self._lock:
            if self._released:
                return
            self._released = True
        self.capture.release()


async def _open_in_worker(open_source, location: str, timeout: float) -> OpenCVVideoSource:
    """
    Run a blocking open in a worker thread, bounded by timeout.

    A source that finishes opening after the timeout is released instead of leaked.
    """
    lock = threading.Lock()
    state = {"abandoned": False, "source": None}

    def run():
        source = open_source()
        with lock:
            abandoned = state["abandoned"]
            if not abandoned:
                state["source"] = source
        if abandoned:
            logger.warning(f"Releasing {location}, which opened after its timeout")
            source.release()
        return source

    try:
        return await asyncio.wait_for(asyncio.to_thread(run), timeout=timeout)
    except asyncio.TimeoutError:
        with lock:
            state["abandoned"] = True
            late = state["source"]
        if late is not None:
            late.release()
        logger.error(f"Opening {location} timed out after {timeout}s")
        raise VideoOpenTimeoutError(location, timeout) from None


async def open_video_source(video, timeout: float):
    """
    Resolve a video handle into a frame source without blocking the event loop.

    Paths and URLs pass the same access checks as images and are opened in
    a worker thread. cv2.VideoCapture objects are wrapped without taking
    ownership. Any object that already has `duration` and `read_frame` is
    used as is.

    Args:
        video: Path, URL, cv2.VideoCapture or duck-typed frame source
        timeout: Seconds to wait for the video to open

    Returns:
        A frame source; OpenCVVideoSource instances created here must be released

    Raises:
        DecodeBlockedError: If settings forbid reading from the location
        LoadError: If OpenCV cannot open the location
        VideoOpenTimeoutError: If opening takes longer than timeout
    """
    if hasattr(video, "duration") and hasattr(video, "read_frame"):
        return video
    if isinstance(video, (str, os.PathLike)):
        location = os.fspath(video)
        check_source_access(location)
        logger.info(f"Opening video {location}")
        return await _open_in_worker(lambda: OpenCVVideoSource.open(location), location, timeout)
    if isinstance(video, cv2.VideoCapture):
        return await _open_in_worker(lambda: OpenCVVideoSource(video), "<capture>", timeout)
    raise TypeError(f"Unsupported video source: {type(video).__name__}")


def plan_frame_times(duration: float, frame_interval_ms: int) -> List[float]:
    """
    Evenly spaced sample timestamps (seconds) across a video.

    One frame per interval, capped at MAX_VIDEO_FRAMES.
    """
    frame_count = min(MAX_VIDEO_FRAMES, math.floor(duration * 1000 / frame_interval_ms))
    if frame_count <= 0:
        return []
    return [(i / frame_count) * duration for i in range(frame_count)]


async def iter_video_frames(
    source,
    timestamps: List[float],
    seek_timeout: float,
) -> AsyncIterator[Tuple[float, np.ndarray]]:
    """
    Seek to each timestamp in order and yield the decoded frames.

    Seeks run one at a time in a worker thread so the shared capture
    position is never raced.

    Raises:
        SeekTimeoutError: If a seek does not complete within seek_timeout seconds
    """
    for timestamp in sorted(timestamps):
        try:
            frame = await asyncio.wait_for(
                asyncio.to_thread(source.read_frame, timestamp),
                timeout=seek_timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"Seek to {timestamp:.2f}s timed out after {seek_timeout}s")
            raise SeekTimeoutError(timestamp, seek_timeout) from None

        if frame is None:
            logger.warning(f"Could not decode frame at {timestamp:.2f}s, skipping")
            continue
        yield timestamp, frame


def parse_css_colors(value: str) -> List[Tuple[int, int, int]]:
    """
    Pull rgb()/rgba() and hex color literals out of a CSS value.

    Literals with out-of-range channels are skipped.
    """
    if not value:
        return []

    colors = []
    for match in RGB_FUNCTION_PATTERN.finditer(value):
        channels = tuple(int(group) for group in match.groups())
        if all(channel <= 255 for channel in channels):
            colors.append(channels)

    for match in HEX_LITERAL_PATTERN.finditer(value):
        rgb = hex_to_rgb(match.group(0))
        if rgb:
            colors.append(rgb)

    return colors


def extract_element_colors(element: ElementStyles) -> List[ExtractedColor]:
    """
    Collect the literal colors used in an element's computed styles.

    Args:
        element: Bounding box and computed style values of the element

    Returns:
        List[ExtractedColor]: Unique colors by hex, each with weight 1
    """
    logger.debug(f"Reading styles of {element.width:.0f}x{element.height:.0f} element")

    colors = []
    seen = set()
    for camel_name, kebab_name in STYLE_PROPERTIES.items():
        value = element.styles.get(camel_name) or element.styles.get(kebab_name) or ""
        for rgb in parse_css_colors(value):
            color = to_extracted_color(rgb, 1.0)
            if color.hex not in seen:
                seen.add(color.hex)
                colors.append(color)
    return colors
