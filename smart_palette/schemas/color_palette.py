"""
Schema definitions for color palette extraction.
"""
from typing import Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

Quality = Literal["fast", "balanced", "precise"]
Clustering = Literal["kmeans", "median-cut", "octree"]
Temperature = Literal["warm", "cool", "neutral"]
ContrastLevel = Literal["A", "AA", "AAA"]


class CamelModel(BaseModel):
    """Base model that serializes field names as camelCase"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FrozenCamelModel(CamelModel):
    """Immutable camelCase model"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class RGB(FrozenCamelModel):
    """Schema for an sRGB triple"""
    r: int = Field(..., ge=0, le=255, description="Red channel")
    g: int = Field(..., ge=0, le=255, description="Green channel")
    b: int = Field(..., ge=0, le=255, description="Blue channel")

    def as_tuple(self):
        return (self.r, self.g, self.b)


class HSL(FrozenCamelModel):
    """Schema for a rounded HSL triple"""
    h: int = Field(..., ge=0, lt=360, description="Hue in degrees")
    s: int = Field(..., ge=0, le=100, description="Saturation percentage")
    l: int = Field(..., ge=0, le=100, description="Lightness percentage")


class LAB(FrozenCamelModel):
    """Schema for the simplified lightness/chroma approximation"""
    l: int = Field(..., description="Perceived lightness (0-100)")
    a: int = Field(..., description="Red-green axis")
    b: int = Field(..., description="Green-blue axis")


class ExtractedColor(FrozenCamelModel):
    """Schema for a single extracted color and its derived metadata"""
    hex: str = Field(..., pattern=r"^#[0-9a-f]{6}$", description="Canonical #rrggbb value")
    rgb: RGB
    hsl: HSL
    lab: LAB
    weight: float = Field(..., ge=0, description="Prominence among sampled pixels")
    contrast: float = Field(..., ge=1, description="WCAG contrast ratio against white")
    temperature: Temperature
    emotion: str = Field(..., description="Descriptive label derived from HSL")


class PaletteGradients(FrozenCamelModel):
    """Schema for the generated CSS gradients"""
    primary: str
    secondary: str
    mesh: str


class PaletteAccessibility(FrozenCamelModel):
    """Schema for accessible text and background picks"""
    text_on_light: ExtractedColor
    text_on_dark: ExtractedColor
    backgrounds: List[ExtractedColor]


class ColorPalette(FrozenCamelModel):
    """Response schema for a synthesized color palette"""
    primary: ExtractedColor
    secondary: ExtractedColor
    accent: ExtractedColor
    dominant: List[ExtractedColor] = Field(..., description="Top colors by weight")
    supporting: List[ExtractedColor] = Field(..., description="Next colors by weight")
    gradients: PaletteGradients
    accessibility: PaletteAccessibility


class ColorExtractionOptions(CamelModel):
    """Options controlling sampling, clustering and palette synthesis"""
    max_colors: int = Field(8, ge=1, le=64, description="Maximum number of clustered colors")
    quality: Quality = Field("balanced", description="Raster size and sampling stride")
    ignore_white: bool = Field(False, description="Drop pixels with every channel above 240")
    ignore_black: bool = Field(False, description="Drop pixels with every channel below 15")
    min_saturation: Optional[float] = Field(None, ge=0, le=100)
    min_lightness: Optional[float] = Field(None, ge=0, le=100)
    max_lightness: Optional[float] = Field(None, ge=0, le=100)
    clustering: Clustering = Field("median-cut", description="Clustering strategy")
    generate_gradients: bool = True
    ensure_accessibility: bool = True
    contrast_level: ContrastLevel = Field("AA", description="WCAG level used for text picks")
    seed: Optional[int] = Field(None, description="Seed for k-means initialization")

    @model_validator(mode="after")
    def check_lightness_bounds(self):
        if (
            self.min_lightness is not None
            and self.max_lightness is not None
            and self.min_lightness > self.max_lightness
        ):
            raise ValueError("min_lightness must not exceed max_lightness")
        return self


class VideoExtractionOptions(ColorExtractionOptions):
    """Options for multi-frame video extraction"""
    frame_interval_ms: int = Field(1000, gt=0, description="Milliseconds between sampled frames")


class ElementStyles(CamelModel):
    """Snapshot of an element's bounding box and computed style properties"""
    width: float = Field(0, ge=0, description="Bounding box width")
    height: float = Field(0, ge=0, description="Bounding box height")
    styles: Dict[str, str] = Field(default_factory=dict, description="Computed style values by property name")


class CacheStats(CamelModel):
    """Response schema for cache diagnostics"""
    size: int
    keys: List[str]
