"""
Dependency functions for API endpoints.
"""
from typing import Optional
from fastapi import HTTPException, Query, Request
from smart_palette.schemas.color_palette import Clustering, ColorExtractionOptions, Quality
from smart_palette.utils.color_extraction import SmartColorExtractor


def get_extractor(request: Request) -> SmartColorExtractor:
    """
    Get the extractor created for this application at startup.

    Raises:
        HTTPException: If the application has not been started through its lifespan
    """
    extractor = getattr(request.app.state, "extractor", None)
    if extractor is None:
        raise HTTPException(status_code=503, detail="Color extractor is not ready")
    return extractor


def get_extraction_options(
    max_colors: int = Query(8, ge=1, le=64, description="Maximum number of colors to extract"),
    quality: Quality = Query("balanced", description="fast, balanced or precise"),
    clustering: Clustering = Query("median-cut", description="kmeans, median-cut or octree"),
    ignore_white: bool = Query(False, description="Skip near-white pixels"),
    ignore_black: bool = Query(False, description="Skip near-black pixels"),
    generate_gradients: bool = Query(True, description="Build CSS gradients"),
    seed: Optional[int] = Query(None, description="Seed for k-means initialization"),
) -> ColorExtractionOptions:
    """Collect extraction options from query parameters."""
    return ColorExtractionOptions(
        max_colors=max_colors,
        quality=quality,
        clustering=clustering,
        ignore_white=ignore_white,
        ignore_black=ignore_black,
        generate_gradients=generate_gradients,
        seed=seed,
    )
