import os
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from imagegen.constants import (
    DEFAULT_ASPECT_RATIO,
    DEFAULT_MEGAPIXELS,
    DEFAULT_NUM_INFERENCE_STEPS,
    DEFAULT_NUM_OUTPUTS,
    DEFAULT_OUTPUT_FORMAT,
    DEFAULT_OUTPUT_QUALITY,
    MAX_INFERENCE_STEPS,
    MAX_NUM_OUTPUTS,
    MAX_OUTPUT_QUALITY,
    MIN_INFERENCE_STEPS,
    MIN_NUM_OUTPUTS,
    MIN_OUTPUT_QUALITY,
)
from imagegen.enums import AspectRatio, Megapixels, OutputFormat


class ProviderInput(BaseModel):
    """Payload handed to the generation provider.

    Attributes:
        prompt (str): Text description of the image.
        go_fast (bool): Trade quality for speed.
        megapixels (Megapixels): Resolution class.
        num_outputs (int): Number of images to generate.
        aspect_ratio (AspectRatio): Width/height ratio.
        num_inference_steps (int): Denoising steps; more is slower and sharper.
        output_format (OutputFormat): Encoding of the returned assets.
        output_quality (int): Compression quality of the returned assets.
    """

    model_config = ConfigDict(frozen=True)

    prompt: str
    go_fast: bool
    megapixels: Megapixels
    num_outputs: int
    aspect_ratio: AspectRatio
    num_inference_steps: int
    output_format: OutputFormat
    output_quality: int


class NormalizedRequest(BaseModel):
    """A request with every default resolved and the output directory made safe.

    Two requests that are semantically identical produce equal normalized
    requests, whichever optional fields the caller spelled out.
    """

    model_config = ConfigDict(frozen=True)

    prompt: str
    output_dir: str
    filename: Optional[str]
    go_fast: bool
    megapixels: Megapixels
    num_outputs: int
    aspect_ratio: AspectRatio
    output_format: OutputFormat
    output_quality: int
    num_inference_steps: int

    def provider_input(self) -> ProviderInput:
        return ProviderInput(
            prompt=self.prompt,
            go_fast=self.go_fast,
            megapixels=self.megapixels,
            num_outputs=self.num_outputs,
            aspect_ratio=self.aspect_ratio,
            num_inference_steps=self.num_inference_steps,
            output_format=self.output_format,
            output_quality=self.output_quality,
        )


class GenerationRequest(BaseModel):
    """Caller-facing request for the ``generate-image`` operation.

    Attributes:
        prompt (str): Text prompt describing the image, must be non-empty.
        output_dir (str): Directory to save into. With ``use_relative_path``
            it is interpreted relative to the configured output root.
        filename (Optional[str]): Base filename; numbered when several images
            are generated.
        go_fast (Optional[bool]): Faster, possibly lower quality generation.
        megapixels (Optional[Megapixels]): Resolution class (default "1").
        num_outputs (Optional[int]): Number of images, 1-4 (default 1).
        aspect_ratio (Optional[AspectRatio]): Image aspect ratio (default "1:1").
        output_format (Optional[OutputFormat]): File format (default "webp").
        output_quality (Optional[int]): Compression quality 1-100 (default 80).
        num_inference_steps (Optional[int]): Inference steps 4-20 (default 4).
        use_relative_path (Optional[bool]): Anchor ``output_dir`` under the
            output root.
    """

    prompt: str = Field(min_length=1)
    output_dir: str
    filename: Optional[str] = None
    go_fast: Optional[bool] = None
    megapixels: Optional[Megapixels] = None
    num_outputs: Optional[int] = Field(
        default=None, ge=MIN_NUM_OUTPUTS, le=MAX_NUM_OUTPUTS
    )
    aspect_ratio: Optional[AspectRatio] = None
    output_format: Optional[OutputFormat] = None
    output_quality: Optional[int] = Field(
        default=None, ge=MIN_OUTPUT_QUALITY, le=MAX_OUTPUT_QUALITY
    )
    num_inference_steps: Optional[int] = Field(
        default=None, ge=MIN_INFERENCE_STEPS, le=MAX_INFERENCE_STEPS
    )
    use_relative_path: Optional[bool] = None

    @field_validator("filename")
    @classmethod
    def validate_filename(cls, v: Optional[str]) -> Optional[str]:
        """Allow only a bare base name; directory parts would escape ``output_dir``."""
        if v is None:
            return v
        if "/" in v or "\\" in v or os.path.isabs(v):
            raise ValueError("filename must not contain path separators")
        if v.strip() in (".", ".."):
            raise ValueError("filename must not be a relative path reference")
        return v

    def normalize(self, resolved_output_dir: str) -> NormalizedRequest:
        """Resolve every optional field to its default."""
        return NormalizedRequest(
            prompt=self.prompt,
            output_dir=resolved_output_dir,
            filename=self.filename or None,
            go_fast=self.go_fast if self.go_fast is not None else False,
            megapixels=self.megapixels or Megapixels(DEFAULT_MEGAPIXELS),
            num_outputs=self.num_outputs or DEFAULT_NUM_OUTPUTS,
            aspect_ratio=self.aspect_ratio or AspectRatio(DEFAULT_ASPECT_RATIO),
            output_format=self.output_format or OutputFormat(DEFAULT_OUTPUT_FORMAT),
            output_quality=self.output_quality or DEFAULT_OUTPUT_QUALITY,
            num_inference_steps=self.num_inference_steps
            or DEFAULT_NUM_INFERENCE_STEPS,
        )


class GenerationMetadata(BaseModel):
    """Metadata attached to every generation response.

    Attributes:
        model (str): Provider model identifier.
        inference_time_ms (int): End-to-end elapsed time of the generation.
        cache_hit (bool): Whether the paths came from the response cache.
    """

    model_config = ConfigDict(frozen=True)

    model: str
    inference_time_ms: int
    cache_hit: bool = False


class GenerationResponse(BaseModel):
    """Saved image paths, in provider output order, plus metadata."""

    model_config = ConfigDict(frozen=True)

    image_paths: List[str]
    metadata: GenerationMetadata

    def as_cache_hit(self) -> "GenerationResponse":
        """Shallow copy with the cache-hit flag set."""
        return self.model_copy(
            update={"metadata": self.metadata.model_copy(update={"cache_hit": True})}
        )

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
