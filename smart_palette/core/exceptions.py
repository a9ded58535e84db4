"""
Exception types raised by the palette extraction pipeline.

Only the pixel source stage raises. Sampling, clustering and palette
synthesis always succeed and fall back to defaults on empty input.
"""
from typing import Optional


class PaletteExtractionError(Exception):
    """
    Base exception for all Smart Palette errors.

    Attributes:
        user_message: Human-friendly message for API responses
        technical_message: Detailed message for logs
        recoverable: Whether retrying the same call could succeed
        recovery_hint: Optional hint for how to fix the issue
    """

    def __init__(
        self,
        user_message: str,
        technical_message: Optional[str] = None,
        recoverable: bool = False,
        recovery_hint: Optional[str] = None,
    ):
        super().__init__(user_message)
        self.user_message = user_message
        self.technical_message = technical_message or user_message
        self.recoverable = recoverable
        self.recovery_hint = recovery_hint

    def __str__(self) -> str:
        return self.user_message

    def get_full_message(self) -> str:
        """Get complete error message with recovery hint."""
        msg = self.user_message
        if self.recovery_hint:
            msg += f" Suggestion: {self.recovery_hint}"
        return msg


class LoadError(PaletteExtractionError):
    """Image could not be fetched, read or decoded."""

    def __init__(self, source: str, reason: str):
        super().__init__(
            user_message=f"Could not load image from {source}",
            technical_message=f"Loading {source} failed: {reason}",
            recovery_hint="Check that the source exists and is a supported image format",
        )
        self.source = source
        self.reason = reason


class DecodeBlockedError(PaletteExtractionError):
    """Pixel access was refused by the source or by the host allowlist."""

    def __init__(self, source: str, reason: str):
        super().__init__(
            user_message=f"Pixel access to {source} is blocked",
            technical_message=f"Reading pixels from {source} was blocked: {reason}",
            recovery_hint="Serve the image from an allowed host that permits access",
        )
        self.source = source
        self.reason = reason


class SeekTimeoutError(PaletteExtractionError):
    """A video seek did not complete within the configured timeout."""

    def __init__(self, timestamp: float, timeout: float):
        super().__init__(
            user_message=f"Video seek to {timestamp:.2f}s did not complete",
            technical_message=f"Seek to {timestamp:.3f}s exceeded {timeout:.1f}s timeout",
            recoverable=True,
            recovery_hint="Try a shorter video or a larger frame interval",
        )
        self.timestamp = timestamp
        self.timeout = timeout


class VideoOpenTimeoutError(PaletteExtractionError):
    """A video could not be opened within the configured timeout."""

    def __init__(self, source: str, timeout: float):
        super().__init__(
            user_message=f"Opening video {source} did not complete",
            technical_message=f"Opening {source} exceeded {timeout:.1f}s timeout",
            recoverable=True,
            recovery_hint="Check that the video host is reachable and responsive",
        )
        self.source = source
        self.timeout = timeout
