"""
API endpoints for color palette extraction.
"""
from fastapi import APIRouter, Depends, File, HTTPException, Query, Response, UploadFile
from smart_palette.api.deps import get_extraction_options, get_extractor
from smart_palette.core.exceptions import (
    DecodeBlockedError,
    LoadError,
    PaletteExtractionError,
    SeekTimeoutError,
    VideoOpenTimeoutError,
)
from smart_palette.core.logging import logger
from smart_palette.schemas.color_palette import (
    CacheStats,
    ColorExtractionOptions,
    ColorPalette,
    ElementStyles,
    VideoExtractionOptions,
)
from smart_palette.utils.color_extraction import SmartColorExtractor

router = APIRouter()

# HTTP status per extraction error type
ERROR_STATUS = {
    LoadError: 422,
    DecodeBlockedError: 403,
    SeekTimeoutError: 504,
    VideoOpenTimeoutError: 504,
}


def to_http_exception(error: PaletteExtractionError) -> HTTPException:
    """Translate an extraction error into an HTTP error response."""
    status_code = ERROR_STATUS.get(type(error), 500)
    return HTTPException(status_code=status_code, detail=error.get_full_message())


@router.get("/extract", response_model=ColorPalette)
async def extract_colors(
    image_source: str = Query(..., description="URL or path of the image to extract colors from"),
    options: ColorExtractionOptions = Depends(get_extraction_options),
    extractor: SmartColorExtractor = Depends(get_extractor),
) -> ColorPalette:
    """
    Extract color palette from an image.

    Args:
        image_source: URL or path of the image to extract colors from
        options: Extraction options from query parameters

    Returns:
        ColorPalette: The extracted palette
    """
    logger.info(f"Color extraction requested for {image_source}")
    try:
        return await extractor.extract_from_image(image_source, options)
    except PaletteExtractionError as e:
        logger.error(f"Error in color extraction API: {e.technical_message}")
        raise to_http_exception(e)


@router.post("/extract/upload", response_model=ColorPalette)
async def extract_colors_from_upload(
    file: UploadFile = File(..., description="Image file to extract colors from"),
    options: ColorExtractionOptions = Depends(get_extraction_options),
    extractor: SmartColorExtractor = Depends(get_extractor),
) -> ColorPalette:
    """
    Extract color palette from an uploaded image. Uploads are cached by content hash.
    """
    content = await file.read()
    logger.info(f"Color extraction requested for upload {file.filename} ({len(content)} bytes)")
    try:
        return await extractor.extract_from_image(content, options)
    except PaletteExtractionError as e:
        logger.error(f"Error extracting colors from upload {file.filename}: {e.technical_message}")
        raise to_http_exception(e)


@router.get("/extract/video", response_model=ColorPalette)
async def extract_colors_from_video(
    video_source: str = Query(..., description="URL or path of the video"),
    frame_interval_ms: int = Query(1000, gt=0, description="Milliseconds between sampled frames"),
    options: ColorExtractionOptions = Depends(get_extraction_options),
    extractor: SmartColorExtractor = Depends(get_extractor),
) -> ColorPalette:
    """
    Extract color palette from up to ten evenly spaced video frames.
    """
    video_options = VideoExtractionOptions(**options.model_dump(), frame_interval_ms=frame_interval_ms)
    logger.info(f"Video color extraction requested for {video_source}")
    try:
        return await extractor.extract_from_video(video_source, video_options)
    except PaletteExtractionError as e:
        logger.error(f"Error extracting colors from video {video_source}: {e.technical_message}")
        raise to_http_exception(e)


@router.post("/extract/element", response_model=ColorPalette)
async def extract_colors_from_element(
    element: ElementStyles,
    options: ColorExtractionOptions = Depends(get_extraction_options),
    extractor: SmartColorExtractor = Depends(get_extractor),
) -> ColorPalette:
    """
    Build a color palette from an element's computed style values.
    """
    return await extractor.extract_from_element(element, options)


@router.get("/cache/stats", response_model=CacheStats)
async def cache_stats(extractor: SmartColorExtractor = Depends(get_extractor)) -> CacheStats:
    """Number of cached palettes and their source keys."""
    return extractor.get_cache_stats()


@router.delete("/cache", status_code=204)
async def clear_cache(extractor: SmartColorExtractor = Depends(get_extractor)) -> Response:
    """Drop every cached palette."""
    extractor.clear_cache()
    return Response(status_code=204)
