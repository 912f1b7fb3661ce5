"""Tests for the Replicate predictions client."""

import json

import httpx
import pytest
import respx

from imagegen.domain.exceptions import UpstreamError
from imagegen.domain.models import GenerationRequest
from imagegen.infrastructure.providers.replicate_provider import ReplicateProvider

BASE_URL = "https://api.replicate.test/v1"
MODEL = "black-forest-labs/flux-schnell"
PREDICTIONS_URL = f"{BASE_URL}/models/{MODEL}/predictions"
POLL_URL = f"{BASE_URL}/predictions/abc123"


@pytest.fixture
async def client():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def provider(client) -> ReplicateProvider:
    return ReplicateProvider(
        client,
        api_token="r8_test",
        model=MODEL,
        base_url=BASE_URL + "/",
        poll_interval_seconds=0,
        timeout_seconds=5,
    )


@pytest.fixture
def provider_input():
    return (
        GenerationRequest(prompt="a red fox", output_dir="out", num_outputs=2)
        .normalize("/data/out")
        .provider_input()
    )


def _prediction(status, output=None, error=None):
    return {
        "id": "abc123",
        "status": status,
        "output": output,
        "error": error,
        "urls": {"get": POLL_URL},
    }


@pytest.mark.anyio
async def test_immediate_success(provider, provider_input):
    with respx.mock:
        route = respx.post(PREDICTIONS_URL).mock(
            return_value=httpx.Response(
                201, json=_prediction("succeeded", ["https://cdn/0.webp", "https://cdn/1.webp"])
            )
        )

        urls = await provider.run(provider_input)

    assert urls == ["https://cdn/0.webp", "https://cdn/1.webp"]
    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer r8_test"
    assert request.headers["Prefer"] == "wait"
    body = json.loads(request.content)
    assert body["input"]["prompt"] == "a red fox"
    assert body["input"]["num_outputs"] == 2
    assert body["input"]["output_format"] == "webp"
    assert body["input"]["num_inference_steps"] == 4


@pytest.mark.anyio
async def test_polls_until_terminal(provider, provider_input):
    with respx.mock:
        respx.post(PREDICTIONS_URL).mock(
            return_value=httpx.Response(201, json=_prediction("starting"))
        )
        poll = respx.get(POLL_URL).mock(
            side_effect=[
                httpx.Response(200, json=_prediction("processing")),
                httpx.Response(200, json=_prediction("succeeded", "https://cdn/0.webp")),
            ]
        )

        urls = await provider.run(provider_input)

    assert urls == ["https://cdn/0.webp"]
    assert poll.call_count == 2
    assert "Prefer" not in poll.calls.last.request.headers


@pytest.mark.anyio
async def test_http_error_carries_status(provider, provider_input):
    with respx.mock:
        respx.post(PREDICTIONS_URL).mock(
            return_value=httpx.Response(
                422, json={"title": "Invalid input", "detail": "prompt is required"}
            )
        )

        with pytest.raises(UpstreamError) as exc_info:
            await provider.run(provider_input)

    assert exc_info.value.status_code == 422
    assert exc_info.value.message == "prompt is required"


@pytest.mark.anyio
async def test_http_error_without_json_body(provider, provider_input):
    with respx.mock:
        respx.post(PREDICTIONS_URL).mock(return_value=httpx.Response(500, text=""))

        with pytest.raises(UpstreamError) as exc_info:
            await provider.run(provider_input)

    assert exc_info.value.status_code == 500


@pytest.mark.anyio
async def test_transport_error(provider, provider_input):
    with respx.mock:
        respx.post(PREDICTIONS_URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(UpstreamError) as exc_info:
            await provider.run(provider_input)

    assert exc_info.value.status_code is None


@pytest.mark.anyio
@pytest.mark.parametrize("status", ["failed", "canceled"])
async def test_unsuccessful_prediction(provider, provider_input, status):
    with respx.mock:
        respx.post(PREDICTIONS_URL).mock(
            return_value=httpx.Response(201, json=_prediction(status, error="NSFW content"))
        )

        with pytest.raises(UpstreamError, match="NSFW content"):
            await provider.run(provider_input)


@pytest.mark.anyio
@pytest.mark.parametrize("output", [None, [], [42], {"url": "x"}])
async def test_malformed_output(provider, provider_input, output):
    with respx.mock:
        respx.post(PREDICTIONS_URL).mock(
            return_value=httpx.Response(201, json=_prediction("succeeded", output))
        )

        with pytest.raises(UpstreamError, match="no image URLs"):
            await provider.run(provider_input)


@pytest.mark.anyio
async def test_timeout_while_polling(client, provider_input):
    provider = ReplicateProvider(
        client,
        api_token="r8_test",
        model=MODEL,
        base_url=BASE_URL,
        poll_interval_seconds=0.01,
        timeout_seconds=0.05,
    )
    with respx.mock:
        respx.post(PREDICTIONS_URL).mock(
            return_value=httpx.Response(201, json=_prediction("starting"))
        )
        respx.get(POLL_URL).mock(
            return_value=httpx.Response(200, json=_prediction("processing"))
        )

        with pytest.raises(UpstreamError, match="did not finish"):
            await provider.run(provider_input)


@pytest.mark.anyio
async def test_predictions_url_strips_trailing_slash(provider):
    assert provider.predictions_url == PREDICTIONS_URL
    assert provider.model == MODEL
