"""
Generation pipeline: path resolution, cache lookup, provider call, persistence.
"""

import os
import time
from typing import Optional

import httpx

from .cache import CacheEntry, CacheStore, compute_cache_key
from .path_resolver import PathResolver
from ..domain.exceptions import (
    ImageGenException,
    InternalError,
    PersistError,
    UpstreamError,
)
from ..domain.models import (
    GenerationMetadata,
    GenerationRequest,
    GenerationResponse,
    NormalizedRequest,
)
from ..infrastructure.assets.persister import BatchPersister
from ..infrastructure.providers.base import ImageProvider
from ..logging import debug, error, info, LogRecord, LogEvent


class GenerationPipeline:
    """
    Façade composing the generation steps for one request.

    A request whose normalized form was generated before, and whose files are
    all still on disk, is answered from the cache without calling the
    provider. Otherwise the provider is called, its outputs are downloaded
    and saved, and the response is cached.
    """

    def __init__(
        self,
        path_resolver: PathResolver,
        cache: CacheStore,
        provider: ImageProvider,
        persister: BatchPersister,
    ):
        self._path_resolver = path_resolver
        self._cache = cache
        self._provider = provider
        self._persister = persister

    @property
    def cache(self) -> CacheStore:
        return self._cache

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """
        Produce images for ``request`` or return a still-valid cached result.

        Raises:
            UpstreamError: The provider call failed
            InternalError: Saving the images failed or something unexpected
                happened
        """
        start_time = time.monotonic()

        output_dir = self._path_resolver.resolve(
            request.output_dir, bool(request.use_relative_path)
        )
        normalized = request.normalize(output_dir)
        cache_key = compute_cache_key(normalized)

        info(
            LogRecord(
                event=LogEvent.GENERATION_START.value,
                message="Generating images",
                data={
                    "output_dir": output_dir,
                    "num_outputs": normalized.num_outputs,
                    "output_format": normalized.output_format,
                },
            )
        )

        cached = await self._lookup(cache_key)
        if cached is not None:
            return cached

        try:
            response = await self._generate_fresh(normalized, start_time)
        except ImageGenException as e:
            error(
                LogRecord(
                    event=LogEvent.GENERATION_FAILURE.value,
                    message=e.message,
                    data=e.to_dict(),
                ),
                exc=e,
            )
            raise

        await self._cache.put(cache_key, response)

        info(
            LogRecord(
                event=LogEvent.GENERATION_COMPLETED.value,
                message="Images generated",
                data={
                    "image_count": len(response.image_paths),
                    "inference_time_ms": response.metadata.inference_time_ms,
                },
            )
        )
        return response

    async def _lookup(self, cache_key: str) -> Optional[GenerationResponse]:
        entry = await self._cache.get(cache_key, validate=_files_present)
        if entry is None:
            return None
        return entry.response.as_cache_hit()

    async def _generate_fresh(
        self, normalized: NormalizedRequest, start_time: float
    ) -> GenerationResponse:
        try:
            urls = await self._provider.run(normalized.provider_input())
        except UpstreamError:
            raise
        except httpx.HTTPStatusError as e:
            raise UpstreamError(
                f"Image generation failed: {e}",
                status_code=e.response.status_code,
            ) from e
        except Exception as e:
            raise UpstreamError(f"Image generation failed: {e}") from e

        if len(urls) != normalized.num_outputs:
            raise UpstreamError(
                f"Provider returned {len(urls)} images, expected {normalized.num_outputs}",
                details={"expected": normalized.num_outputs, "received": len(urls)},
            )

        try:
            image_paths = await self._persister.persist(
                urls,
                normalized.output_dir,
                normalized.output_format.value,
                normalized.output_quality,
                base_filename=normalized.filename,
            )
        except PersistError as e:
            raise InternalError(
                f"Failed to save images: {e.message}", cause=e, details=dict(e.details)
            ) from e
        except Exception as e:
            raise InternalError(f"Unexpected error saving images: {e}", cause=e) from e

        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        return GenerationResponse(
            image_paths=image_paths,
            metadata=GenerationMetadata(
                model=self._provider.model,
                inference_time_ms=elapsed_ms,
                cache_hit=False,
            ),
        )


def _files_present(entry: CacheEntry) -> bool:
    missing = [p for p in entry.response.image_paths if not os.path.exists(p)]
    if missing:
        debug(
            LogRecord(
                event=LogEvent.CACHE_EVENT.value,
                message="Cached image files missing",
                data={"missing": missing},
            )
        )
    return not missing
