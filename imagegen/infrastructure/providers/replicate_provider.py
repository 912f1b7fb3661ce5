"""
Replicate predictions API client.
Creates a prediction for the configured model and waits for its output URLs.
"""

import time
from typing import Any, Dict, List, Optional

import anyio
import httpx

from .base import ImageProvider
from ...config import Settings
from ...constants import (
    DEFAULT_REPLICATE_BASE_URL,
    DEFAULT_REPLICATE_MODEL,
    PREDICTION_SUCCEEDED,
    PREDICTION_TERMINAL_STATES,
)
from ...domain.exceptions import UpstreamError
from ...domain.models import ProviderInput
from ...logging import debug, info, warning, LogRecord, LogEvent


class ReplicateProvider(ImageProvider):
    """
    Generation provider backed by the Replicate HTTP API.

    The prediction is created with ``Prefer: wait`` so fast models usually
    finish within the first response; otherwise the prediction is polled
    until it reaches a terminal state or ``timeout_seconds`` elapses.
    Failures are raised as :class:`UpstreamError`, never retried here.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_token: str,
        model: str = DEFAULT_REPLICATE_MODEL,
        base_url: str = DEFAULT_REPLICATE_BASE_URL,
        poll_interval_seconds: float = 1.0,
        timeout_seconds: float = 300.0,
    ):
        self._client = client
        self._api_token = api_token
        self.model = model
        self._base_url = base_url.rstrip("/")
        self._poll_interval = poll_interval_seconds
        self._timeout = timeout_seconds

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient
    ) -> "ReplicateProvider":
        return cls(
            client=client,
            api_token=settings.replicate_api_token,
            model=settings.replicate_model,
            base_url=settings.replicate_base_url,
            poll_interval_seconds=settings.provider_poll_interval_seconds,
            timeout_seconds=settings.provider_timeout_seconds,
        )

    @property
    def predictions_url(self) -> str:
        return f"{self._base_url}/models/{self.model}/predictions"

    def _headers(self, wait: bool = False) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self._api_token}"}
        if wait:
            headers["Prefer"] = "wait"
        return headers

    async def run(self, provider_input: ProviderInput) -> List[str]:
        """
        Generate images and return their remote URLs in output order.

        Args:
            provider_input: Prompt and generation options

        Returns:
            Remote asset locations

        Raises:
            UpstreamError: If the API rejects the request, the prediction
                fails, or it does not finish in time
        """
        request_start = time.monotonic()
        payload = {"input": provider_input.model_dump(mode="json")}

        debug(
            LogRecord(
                event=LogEvent.PROVIDER_REQUEST.value,
                message="Creating prediction",
                data={"model": self.model, "input": payload["input"]},
            )
        )

        prediction = await self._request(
            "POST", self.predictions_url, json=payload, headers=self._headers(wait=True)
        )

        try:
            with anyio.fail_after(self._timeout):
                while prediction.get("status") not in PREDICTION_TERMINAL_STATES:
                    await anyio.sleep(self._poll_interval)
                    prediction = await self._request(
                        "GET", self._poll_url(prediction), headers=self._headers()
                    )
        except TimeoutError as e:
            raise UpstreamError(
                f"Prediction did not finish within {self._timeout:g}s",
                details={"prediction_id": prediction.get("id")},
            ) from e

        output = self._extract_output(prediction)

        info(
            LogRecord(
                event=LogEvent.PROVIDER_RESPONSE.value,
                message="Prediction succeeded",
                data={
                    "model": self.model,
                    "prediction_id": prediction.get("id"),
                    "output_count": len(output),
                    "duration_ms": int((time.monotonic() - request_start) * 1000),
                },
            )
        )
        return output

    async def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Request to provider failed: {e}") from e

        if response.is_error:
            message = self._error_message(response)
            warning(
                LogRecord(
                    event=LogEvent.PROVIDER_ERROR_DETAILS.value,
                    message=message,
                    data={"status": response.status_code, "url": url},
                )
            )
            raise UpstreamError(message, status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise UpstreamError(
                "Provider returned a non-JSON response",
                status_code=response.status_code,
            ) from e
        if not isinstance(body, dict):
            raise UpstreamError("Provider returned an unexpected response shape")
        return body

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        detail: Optional[str] = None
        try:
            body = response.json()
            if isinstance(body, dict):
                detail = body.get("detail") or body.get("title")
        except ValueError:
            detail = response.text or None
        return detail or f"Provider request failed with status {response.status_code}"

    def _poll_url(self, prediction: Dict[str, Any]) -> str:
        urls = prediction.get("urls") or {}
        url = urls.get("get")
        if url:
            return url
        prediction_id = prediction.get("id")
        if not prediction_id:
            raise UpstreamError("Provider response has neither a poll URL nor an id")
        return f"{self._base_url}/predictions/{prediction_id}"

    @staticmethod
    def _extract_output(prediction: Dict[str, Any]) -> List[str]:
        status = prediction.get("status")
        if status != PREDICTION_SUCCEEDED:
            reason = prediction.get("error") or f"Prediction {status}"
            raise UpstreamError(
                str(reason), details={"prediction_id": prediction.get("id")}
            )

        output = prediction.get("output")
        if isinstance(output, str):
            output = [output]
        if (
            not isinstance(output, list)
            or not output
            or not all(isinstance(item, str) for item in output)
        ):
            raise UpstreamError(
                "Provider returned no image URLs",
                details={"prediction_id": prediction.get("id")},
            )
        return output
