"""Tests for the generation pipeline façade."""

import os
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from imagegen.application.cache import CacheStore, compute_cache_key
from imagegen.application.path_resolver import PathResolver
from imagegen.application.pipeline import GenerationPipeline
from imagegen.domain.exceptions import (
    DownloadError,
    InternalError,
    PersistError,
    UpstreamError,
)
from pydantic import ValidationError

from imagegen.domain.models import GenerationRequest
from imagegen.enums import ErrorKind
from imagegen.infrastructure.assets.persister import BatchPersister

MODEL = "black-forest-labs/flux-schnell"


class FakeFetcher:
    async def fetch(self, url: str) -> bytes:
        return url.encode()


@pytest.fixture
def provider() -> MagicMock:
    provider = MagicMock()
    provider.model = MODEL
    provider.run = AsyncMock(
        return_value=["https://cdn.example.com/0", "https://cdn.example.com/1"]
    )
    return provider


@pytest.fixture
def cache() -> CacheStore:
    return CacheStore(ttl_seconds=3600)


@pytest.fixture
def pipeline(tmp_path, cache, provider) -> GenerationPipeline:
    return GenerationPipeline(
        path_resolver=PathResolver(str(tmp_path / "host_data")),
        cache=cache,
        provider=provider,
        persister=BatchPersister(FakeFetcher()),
    )


@pytest.fixture
def request_model() -> GenerationRequest:
    return GenerationRequest(
        prompt="a lighthouse at dusk",
        output_dir="shots",
        num_outputs=2,
        use_relative_path=True,
    )


@pytest.mark.anyio
async def test_fresh_generation(pipeline, provider, tmp_path, request_model):
    response = await pipeline.generate(request_model)

    output_dir = os.path.join(str(tmp_path / "host_data"), "shots")
    assert response.image_paths == [
        os.path.join(output_dir, "output_0.webp"),
        os.path.join(output_dir, "output_1.webp"),
    ]
    assert all(os.path.isfile(p) for p in response.image_paths)
    assert response.metadata.model == MODEL
    assert response.metadata.cache_hit is False
    assert response.metadata.inference_time_ms >= 0

    provider_input = provider.run.await_args.args[0]
    assert provider_input.prompt == "a lighthouse at dusk"
    assert provider_input.num_outputs == 2


@pytest.mark.anyio
async def test_repeat_request_is_served_from_cache(pipeline, provider, request_model):
    first = await pipeline.generate(request_model)
    second = await pipeline.generate(
        GenerationRequest(
            prompt="a lighthouse at dusk",
            output_dir="shots",
            num_outputs=2,
            use_relative_path=True,
            output_format="webp",
            num_inference_steps=4,
        )
    )

    assert provider.run.await_count == 1
    assert second.metadata.cache_hit is True
    assert second.image_paths == first.image_paths
    assert first.metadata.cache_hit is False


@pytest.mark.anyio
async def test_missing_file_invalidates_entry(
    pipeline, provider, cache, tmp_path, request_model
):
    first = await pipeline.generate(request_model)
    os.remove(first.image_paths[1])

    output_dir = os.path.join(str(tmp_path / "host_data"), "shots")
    key = compute_cache_key(request_model.normalize(output_dir))

    provider.run.side_effect = UpstreamError("provider down", status_code=503)
    with pytest.raises(UpstreamError):
        await pipeline.generate(request_model)

    assert key not in cache
    assert cache.get_stats()["invalidations"] == 1


@pytest.mark.anyio
async def test_invalidated_entry_counts_as_miss(pipeline, provider, cache, request_model):
    first = await pipeline.generate(request_model)
    os.remove(first.image_paths[0])

    await pipeline.generate(request_model)

    stats = cache.get_stats()
    assert stats["cache_hits"] == 0
    assert stats["cache_misses"] == 2
    assert stats["invalidations"] == 1
    assert stats["hit_rate"] == 0.0


@pytest.mark.anyio
async def test_regenerates_after_invalidation(pipeline, provider, request_model):
    first = await pipeline.generate(request_model)
    os.remove(first.image_paths[0])

    second = await pipeline.generate(request_model)

    assert provider.run.await_count == 2
    assert second.metadata.cache_hit is False
    assert all(os.path.isfile(p) for p in second.image_paths)


@pytest.mark.anyio
async def test_upstream_error_passes_through(pipeline, provider, cache, request_model):
    provider.run.side_effect = UpstreamError("rate limited", status_code=429)

    with pytest.raises(UpstreamError) as exc_info:
        await pipeline.generate(request_model)

    assert exc_info.value.status_code == 429
    assert len(cache) == 0


@pytest.mark.anyio
async def test_http_status_error_classified_as_upstream(pipeline, provider, request_model):
    request = httpx.Request("POST", "https://api.example.com/predictions")
    response = httpx.Response(401, request=request)
    provider.run.side_effect = httpx.HTTPStatusError(
        "unauthorized", request=request, response=response
    )

    with pytest.raises(UpstreamError) as exc_info:
        await pipeline.generate(request_model)

    assert exc_info.value.status_code == 401
    assert exc_info.value.kind == ErrorKind.Upstream


@pytest.mark.anyio
async def test_unexpected_provider_error_classified_as_upstream(
    pipeline, provider, request_model
):
    provider.run.side_effect = RuntimeError("socket closed")

    with pytest.raises(UpstreamError) as exc_info:
        await pipeline.generate(request_model)

    assert exc_info.value.status_code is None
    assert isinstance(exc_info.value.__cause__, RuntimeError)


@pytest.mark.anyio
async def test_persist_failure_becomes_internal_error(cache, provider, tmp_path, request_model):
    persister = MagicMock()
    failure = PersistError(
        "Failed to save image 1",
        index=1,
        cause=DownloadError("gone", url="https://cdn.example.com/1", attempts=3),
    )
    persister.persist = AsyncMock(side_effect=failure)
    pipeline = GenerationPipeline(
        PathResolver(str(tmp_path)), cache, provider, persister
    )

    with pytest.raises(InternalError) as exc_info:
        await pipeline.generate(request_model)

    assert exc_info.value.cause is failure
    assert exc_info.value.details["index"] == 1
    assert len(cache) == 0


@pytest.mark.anyio
async def test_unexpected_persist_error_becomes_internal_error(
    cache, provider, tmp_path, request_model
):
    persister = MagicMock()
    persister.persist = AsyncMock(side_effect=KeyError("boom"))
    pipeline = GenerationPipeline(
        PathResolver(str(tmp_path)), cache, provider, persister
    )

    with pytest.raises(InternalError) as exc_info:
        await pipeline.generate(request_model)

    assert exc_info.value.kind == ErrorKind.Internal


@pytest.mark.anyio
async def test_persist_receives_normalized_options(cache, provider, tmp_path):
    persister = MagicMock()
    persister.persist = AsyncMock(
        return_value=[str(tmp_path / "cat_1.png"), str(tmp_path / "cat_2.png")]
    )
    pipeline = GenerationPipeline(
        PathResolver(str(tmp_path)), cache, provider, persister
    )

    await pipeline.generate(
        GenerationRequest(
            prompt="cat",
            output_dir=str(tmp_path),
            filename="cat",
            num_outputs=2,
            output_format="png",
            output_quality=95,
        )
    )

    persister.persist.assert_awaited_once_with(
        provider.run.return_value,
        str(tmp_path),
        "png",
        95,
        base_filename="cat",
    )


@pytest.mark.anyio
@pytest.mark.parametrize("returned", [1, 3])
async def test_output_count_mismatch_is_upstream_error(
    pipeline, provider, cache, tmp_path, request_model, returned
):
    provider.run.return_value = [
        f"https://cdn.example.com/{i}" for i in range(returned)
    ]

    with pytest.raises(UpstreamError) as exc_info:
        await pipeline.generate(request_model)

    assert exc_info.value.details == {"expected": 2, "received": returned}
    assert len(cache) == 0
    assert not (tmp_path / "host_data" / "shots").exists()


@pytest.mark.parametrize(
    "filename", ["../../escaped", "../escaped", "sub/name", "..\\escaped", "..", "."]
)
def test_filename_with_directory_parts_rejected(filename):
    with pytest.raises(ValidationError):
        GenerationRequest(prompt="cat", output_dir="out", filename=filename)


def test_absolute_filename_rejected(tmp_path):
    with pytest.raises(ValidationError):
        GenerationRequest(
            prompt="cat", output_dir="out", filename=str(tmp_path / "escaped")
        )


@pytest.mark.anyio
async def test_generated_files_stay_under_output_dir(pipeline, tmp_path):
    response = await pipeline.generate(
        GenerationRequest(
            prompt="cat",
            output_dir="shots",
            use_relative_path=True,
            filename="..cat",
            num_outputs=2,
        )
    )

    output_dir = os.path.join(str(tmp_path / "host_data"), "shots")
    assert [os.path.dirname(p) for p in response.image_paths] == [output_dir] * 2
    assert sorted(os.listdir(tmp_path)) == ["host_data"]
