"""Pytest fixtures for tests."""

import os

# Keep test runs from writing log files
os.environ["LOG_TO_FILE"] = "false"

from io import BytesIO
from pathlib import Path
from tempfile import TemporaryDirectory
import threading

import cv2
import httpx
import numpy as np
import pytest
from PIL import Image


def image_bytes(color, size=(100, 100), mode="RGB", fmt="PNG") -> bytes:
    """Encode a solid-color image."""
    buffer = BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()


class FakeVideo:
    """Frame source that serves solid frames and records seeks."""

    def __init__(self, duration, color_at, size=(20, 20), fail_at=()):
        self.duration = duration
        self.color_at = color_at
        self.size = size
        self.fail_at = set(fail_at)
        self.seeks = []

    def read_frame(self, timestamp):
        self.seeks.append(timestamp)
        if timestamp in self.fail_at:
            return None
        frame = np.zeros((self.size[1], self.size[0], 3), dtype=np.uint8)
        frame[:, :] = self.color_at(timestamp)
        return frame


class BlockingCapture:
    """cv2.VideoCapture stand-in whose read() waits until the test unblocks it."""

    def __init__(self, fps=10.0, frame_count=30):
        self.props = {cv2.CAP_PROP_FPS: fps, cv2.CAP_PROP_FRAME_COUNT: frame_count}
        self.unblock = threading.Event()
        self.reading = False
        self.released = False
        self.released_during_read = False

    def isOpened(self):
        return True

    def get(self, prop):
        return self.props.get(prop, 0.0)

    def set(self, prop, value):
        return True

    def read(self):
        self.reading = True
        self.unblock.wait(5)
        self.reading = False
        return True, np.zeros((4, 4, 3), dtype=np.uint8)

    def release(self):
        if self.reading:
            self.released_during_read = True
        self.released = True


@pytest.fixture
def temp_dir():
    """Create a temporary directory that gets cleaned up."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def red_png():
    return image_bytes((255, 0, 0))


@pytest.fixture
def white_png():
    return image_bytes((255, 255, 255))


@pytest.fixture
def image_server(red_png, white_png):
    """
    Mock HTTP transport serving a few images.

    Returns the route table and a list of requested URLs so tests can add
    routes and count fetches.
    """
    routes = {
        "http://images.test/red.png": (200, red_png),
        "http://images.test/white.png": (200, white_png),
        "http://images.test/missing.png": (404, b"not found"),
        "http://images.test/private.png": (403, b"forbidden"),
        "http://images.test/garbage.png": (200, b"definitely not an image"),
    }
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        requested.append(url)
        if url == "http://images.test/down.png":
            raise httpx.ConnectError("connection refused", request=request)
        status, body = routes.get(url, (404, b""))
        return httpx.Response(status, content=body)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client, routes, requested


@pytest.fixture
def http_client(image_server):
    client, _, _ = image_server
    return client


@pytest.fixture
def fake_video_factory():
    return FakeVideo


@pytest.fixture
def png_factory():
    return image_bytes


@pytest.fixture
def blocking_capture():
    capture = BlockingCapture()
    yield capture
    capture.unblock.set()


@pytest.fixture
def redirecting_client(red_png):
    """
    Mock HTTP transport with redirects.

    cdn.allowed.test redirects to itself, to another host, to a file URL and
    in a loop. internal.blocked.test serves the red image directly.
    """
    redirects = {
        "/same-host.png": "/red.png",
        "/other-host.png": "http://internal.blocked.test/red.png",
        "/file.png": "file:///etc/passwd",
        "/loop.png": "/loop.png",
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "cdn.allowed.test" and request.url.path in redirects:
            return httpx.Response(302, headers={"location": redirects[request.url.path]})
        return httpx.Response(200, content=red_png)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
