"""Tests for image loading, rasterizing, video frame planning and style parsing."""

import asyncio
import time

import numpy as np
import pytest
from PIL import Image

from smart_palette.core.config import settings
from smart_palette.core.exceptions import (
    DecodeBlockedError,
    LoadError,
    SeekTimeoutError,
    VideoOpenTimeoutError,
)
from smart_palette.schemas.color_palette import ElementStyles
from smart_palette.utils.pixel_sources import (
    OpenCVVideoSource,
    extract_element_colors,
    iter_video_frames,
    load_image,
    open_video_source,
    optimal_size,
    parse_css_colors,
    plan_frame_times,
    rasterize_image,
)


class TestRasterize:
    """Test raster sizing per quality level."""

    @pytest.mark.unit
    def test_optimal_size(self):
        assert optimal_size(400, 200, 100) == (100, 50)
        assert optimal_size(200, 400, 100) == (50, 100)
        assert optimal_size(100, 100, 50) == (50, 50)

    @pytest.mark.unit
    def test_extreme_aspect_keeps_one_pixel(self):
        assert optimal_size(10000, 10, 50) == (50, 1)

    @pytest.mark.unit
    def test_rasterize_shape(self):
        image = Image.new("RGB", (400, 200), (255, 0, 0))
        raster = rasterize_image(image, "fast")
        assert raster.shape == (25, 50, 4)
        assert np.all(raster[..., 3] == 255)

    @pytest.mark.unit
    def test_rasterize_calls_are_independent(self):
        red = rasterize_image(Image.new("RGB", (100, 100), (255, 0, 0)), "fast")
        blue = rasterize_image(Image.new("RGB", (100, 100), (0, 0, 255)), "fast")
        assert red[0, 0, 0] == 255
        assert blue[0, 0, 2] == 255


class TestLoadImage:
    """Test resolving URLs, paths and bytes into images."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_url(self, http_client):
        image = await load_image("http://images.test/red.png", http_client)
        assert image.size == (100, 100)
        assert image.convert("RGB").getpixel((0, 0)) == (255, 0, 0)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_not_found(self, http_client):
        with pytest.raises(LoadError):
            await load_image("http://images.test/missing.png", http_client)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_forbidden_is_blocked(self, http_client):
        with pytest.raises(DecodeBlockedError):
            await load_image("http://images.test/private.png", http_client)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_connection_error(self, http_client):
        with pytest.raises(LoadError):
            await load_image("http://images.test/down.png", http_client)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_not_an_image(self, http_client):
        with pytest.raises(LoadError):
            await load_image("http://images.test/garbage.png", http_client)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_host_allowlist(self, http_client, monkeypatch):
        monkeypatch.setattr(settings, "ALLOWED_IMAGE_HOSTS", ["cdn.example.com"])
        with pytest.raises(DecodeBlockedError):
            await load_image("http://images.test/red.png", http_client)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_redirect_to_disallowed_host(self, redirecting_client, monkeypatch):
        """Test that every redirect hop is checked against the allowlist."""
        monkeypatch.setattr(settings, "ALLOWED_IMAGE_HOSTS", ["cdn.allowed.test"])
        with pytest.raises(DecodeBlockedError):
            await load_image("http://cdn.allowed.test/other-host.png", redirecting_client)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_redirect_within_allowed_host(self, redirecting_client, monkeypatch):
        monkeypatch.setattr(settings, "ALLOWED_IMAGE_HOSTS", ["cdn.allowed.test"])
        image = await load_image("http://cdn.allowed.test/same-host.png", redirecting_client)
        assert image.size == (100, 100)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_redirect_followed_without_allowlist(self, redirecting_client):
        image = await load_image("http://cdn.allowed.test/other-host.png", redirecting_client)
        assert image.size == (100, 100)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_redirect_to_file_url(self, redirecting_client):
        with pytest.raises(DecodeBlockedError):
            await load_image("http://cdn.allowed.test/file.png", redirecting_client)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_redirect_loop(self, redirecting_client):
        with pytest.raises(LoadError):
            await load_image("http://cdn.allowed.test/loop.png", redirecting_client)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_bytes(self, http_client, png_factory):
        image = await load_image(png_factory((0, 255, 0), size=(8, 4)), http_client)
        assert image.size == (8, 4)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_pil_image_passthrough(self, http_client):
        image = Image.new("RGB", (3, 3))
        assert await load_image(image, http_client) is image

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_local_file(self, http_client, temp_dir, red_png):
        path = temp_dir / "red.png"
        path.write_bytes(red_png)
        image = await load_image(str(path), http_client)
        assert image.size == (100, 100)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_local_file(self, http_client, temp_dir):
        with pytest.raises(LoadError):
            await load_image(temp_dir / "nope.png", http_client)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_local_files_disabled(self, http_client, temp_dir, red_png, monkeypatch):
        path = temp_dir / "red.png"
        path.write_bytes(red_png)
        monkeypatch.setattr(settings, "ALLOW_LOCAL_FILES", False)
        with pytest.raises(DecodeBlockedError):
            await load_image(path, http_client)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_oversized_image(self, http_client, red_png, monkeypatch):
        monkeypatch.setattr(settings, "MAX_IMAGE_PIXELS", 100)
        with pytest.raises(LoadError) as exc_info:
            await load_image(red_png, http_client)
        assert "100x100" in exc_info.value.technical_message


class TestVideoFrames:
    """Test frame planning and sequential seeking."""

    @pytest.mark.unit
    def test_plan_five_seconds(self):
        assert plan_frame_times(5.0, 1000) == pytest.approx([0.0, 1.0, 2.0, 3.0, 4.0])

    @pytest.mark.unit
    def test_plan_caps_at_ten_frames(self):
        times = plan_frame_times(60.0, 1000)
        assert len(times) == 10
        assert times[1] == pytest.approx(6.0)

    @pytest.mark.unit
    def test_plan_short_video(self):
        assert plan_frame_times(0.5, 1000) == []
        assert plan_frame_times(0.0, 1000) == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_duck_typed_source_passes_through(self, fake_video_factory):
        video = fake_video_factory(1.0, lambda t: (0, 0, 0))
        assert await open_video_source(video, 1.0) is video

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unsupported_source(self):
        with pytest.raises(TypeError):
            await open_video_source(42, 1.0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_frames_in_order(self, fake_video_factory):
        video = fake_video_factory(3.0, lambda t: (255, 0, 0))
        frames = [item async for item in iter_video_frames(video, [2.0, 0.0, 1.0], 1.0)]
        assert [t for t, _ in frames] == [0.0, 1.0, 2.0]
        assert video.seeks == [0.0, 1.0, 2.0]
        assert frames[0][1].shape == (20, 20, 3)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_undecodable_frame_skipped(self, fake_video_factory):
        video = fake_video_factory(3.0, lambda t: (255, 0, 0), fail_at=[1.0])
        frames = [t async for t, _ in iter_video_frames(video, [0.0, 1.0, 2.0], 1.0)]
        assert frames == [0.0, 2.0]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_seek_timeout(self, fake_video_factory):
        class StuckVideo(fake_video_factory):
            def read_frame(self, timestamp):
                time.sleep(0.5)
                return super().read_frame(timestamp)

        video = StuckVideo(3.0, lambda t: (255, 0, 0))
        with pytest.raises(SeekTimeoutError) as exc_info:
            async for _ in iter_video_frames(video, [0.0, 1.0], 0.05):
                pass
        assert exc_info.value.recoverable
        # Let the worker thread finish before the loop closes
        await asyncio.sleep(0.5)


async def wait_until(condition, timeout=2.0):
    """Poll condition from the event loop until it holds or timeout passes."""
    for _ in range(int(timeout / 0.01)):
        if condition():
            return True
        await asyncio.sleep(0.01)
    return condition()


class TestVideoOpen:
    """Test access checks, open timeouts and capture release."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_local_video_blocked(self, temp_dir, monkeypatch):
        monkeypatch.setattr(settings, "ALLOW_LOCAL_FILES", False)
        with pytest.raises(DecodeBlockedError):
            await open_video_source(str(temp_dir / "clip.avi"), 1.0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_video_host_allowlist(self, monkeypatch):
        monkeypatch.setattr(settings, "ALLOWED_IMAGE_HOSTS", ["cdn.allowed.test"])
        with pytest.raises(DecodeBlockedError):
            await open_video_source("http://internal.blocked.test/clip.mp4", 1.0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_video(self, temp_dir):
        with pytest.raises(LoadError):
            await open_video_source(temp_dir / "missing.mp4", 5.0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_open_runs_off_the_event_loop(self, blocking_capture, monkeypatch):
        """Test that a slow open times out and the late capture is released."""
        def slow_open(cls, location):
            time.sleep(0.3)
            return cls(blocking_capture, owned=True)

        monkeypatch.setattr(OpenCVVideoSource, "open", classmethod(slow_open))
        with pytest.raises(VideoOpenTimeoutError):
            await open_video_source("clip.mp4", 0.05)
        assert not blocking_capture.released
        assert await wait_until(lambda: blocking_capture.released)

    @pytest.mark.unit
    def test_capture_properties(self, blocking_capture):
        source = OpenCVVideoSource(blocking_capture)
        assert source.fps == 10.0
        assert source.duration == pytest.approx(3.0)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_release_waits_for_pending_read(self, blocking_capture):
        source = OpenCVVideoSource(blocking_capture, owned=True)
        with pytest.raises(SeekTimeoutError):
            async for _ in iter_video_frames(source, [0.0], 0.05):
                pass

        source.release()
        assert not blocking_capture.released

        blocking_capture.unblock.set()
        assert await wait_until(lambda: blocking_capture.released)
        assert not blocking_capture.released_during_read
        assert source.read_frame(1.0) is None

    @pytest.mark.unit
    def test_release_when_idle(self, blocking_capture):
        source = OpenCVVideoSource(blocking_capture, owned=True)
        source.release()
        source.release()
        assert blocking_capture.released

    @pytest.mark.unit
    def test_borrowed_capture_not_released(self, blocking_capture):
        source = OpenCVVideoSource(blocking_capture)
        source.release()
        assert not blocking_capture.released


class TestElementStyles:
    """Test reading color literals from computed styles."""

    @pytest.mark.unit
    def test_rgb_functions(self):
        assert parse_css_colors("rgb(17, 24, 39)") == [(17, 24, 39)]
        assert parse_css_colors("0 4px 30px rgba(59, 130, 246, 0.4)") == [(59, 130, 246)]

    @pytest.mark.unit
    def test_hex_literals(self):
        assert parse_css_colors("0 0 4px #f97316") == [(249, 115, 22)]
        assert parse_css_colors("#fff") == [(255, 255, 255)]

    @pytest.mark.unit
    def test_rgb_before_hex(self):
        assert parse_css_colors("#000000, rgb(1, 2, 3)") == [(1, 2, 3), (0, 0, 0)]

    @pytest.mark.unit
    def test_out_of_range_and_empty(self):
        assert parse_css_colors("rgb(300, 0, 0)") == []
        assert parse_css_colors("none") == []
        assert parse_css_colors("") == []

    @pytest.mark.unit
    def test_element_colors_deduplicated(self):
        element = ElementStyles(
            width=100,
            height=40,
            styles={
                "color": "rgb(255, 0, 0)",
                "background-color": "#ff0000",
                "boxShadow": "0 0 4px #00f",
            },
        )
        colors = extract_element_colors(element)
        assert [c.hex for c in colors] == ["#ff0000", "#0000ff"]
        assert all(c.weight == 1.0 for c in colors)

    @pytest.mark.unit
    def test_element_without_styles(self):
        assert extract_element_colors(ElementStyles()) == []
