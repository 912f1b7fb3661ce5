"""MCP tool definitions for image generation."""

from typing import Annotated, Any, Dict, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import Field, ValidationError

from ...application.pipeline import GenerationPipeline
from ...domain.exceptions import ImageGenException
from ...domain.models import GenerationRequest
from ...logging import error, warning, LogRecord, LogEvent

GENERATE_IMAGE_TOOL = "generate-image"

GENERATE_IMAGE_DESCRIPTION = (
    "Generate images from a text prompt and save them to a local directory. "
    "Returns the saved file paths. Identical requests are served from cache "
    "while the files still exist."
)


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(loc) for loc in err.get("loc", ())) or "request"
        parts.append(f"{location}: {err.get('msg')}")
    return "; ".join(parts)


async def run_generate_image(
    pipeline: GenerationPipeline, arguments: Dict[str, Any]
) -> str:
    """Validate tool arguments, run the pipeline and render the outcome as text.

    Unset arguments are dropped so the request defaults apply.
    """
    payload = {k: v for k, v in arguments.items() if v is not None}
    try:
        request = GenerationRequest.model_validate(payload)
    except ValidationError as e:
        message = _format_validation_error(e)
        warning(
            LogRecord(
                event=LogEvent.REQUEST_VALIDATION_FAILURE.value,
                message="Invalid generate-image request",
                data={"errors": message},
            )
        )
        return f"Error: Invalid request: {message}"

    try:
        response = await pipeline.generate(request)
    except ImageGenException as e:
        return f"Error: {e.message}"
    except Exception as e:
        error(
            LogRecord(
                event=LogEvent.GENERATION_FAILURE.value,
                message="Unhandled error in generate-image",
            ),
            exc=e,
        )
        return f"Error: {e}"

    return response.model_dump_json(indent=2)


def register_generation_tools(mcp: FastMCP, pipeline: GenerationPipeline) -> None:
    """Register the ``generate-image`` tool on ``mcp``."""

    @mcp.tool(name=GENERATE_IMAGE_TOOL, description=GENERATE_IMAGE_DESCRIPTION)
    async def generate_image(
        prompt: Annotated[str, Field(description="Prompt for generated image")],
        output_dir: Annotated[
            str,
            Field(
                description=(
                    "Directory to save the images in. Relative to the host data "
                    "directory when use_relative_path is true."
                )
            ),
        ],
        filename: Annotated[
            Optional[str],
            Field(
                description="Base filename; numbered when several images are generated"
            ),
        ] = None,
        go_fast: Annotated[
            Optional[bool],
            Field(description="Run faster predictions at some cost in quality"),
        ] = None,
        megapixels: Annotated[
            Optional[str],
            Field(description='Approximate megapixels: "1" or "0.25"'),
        ] = None,
        num_outputs: Annotated[
            Optional[int], Field(description="Number of images to generate (1-4)")
        ] = None,
        aspect_ratio: Annotated[
            Optional[str],
            Field(description='Aspect ratio: "1:1", "4:3" or "16:9"'),
        ] = None,
        output_format: Annotated[
            Optional[str],
            Field(description='Image format: "webp", "png" or "jpeg"'),
        ] = None,
        output_quality: Annotated[
            Optional[int], Field(description="Output quality (1-100)")
        ] = None,
        num_inference_steps: Annotated[
            Optional[int], Field(description="Number of inference steps (4-20)")
        ] = None,
        use_relative_path: Annotated[
            Optional[bool],
            Field(description="Resolve output_dir under the host data directory"),
        ] = None,
    ) -> str:
        return await run_generate_image(
            pipeline,
            {
                "prompt": prompt,
                "output_dir": output_dir,
                "filename": filename,
                "go_fast": go_fast,
                "megapixels": megapixels,
                "num_outputs": num_outputs,
                "aspect_ratio": aspect_ratio,
                "output_format": output_format,
                "output_quality": output_quality,
                "num_inference_steps": num_inference_steps,
                "use_relative_path": use_relative_path,
            },
        )
