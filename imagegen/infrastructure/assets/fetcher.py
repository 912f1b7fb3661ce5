"""Single-asset download with retry."""

from typing import Optional

import httpx

from .retry import RetryHandler
from ...domain.exceptions import DownloadError
from ...logging import warning, LogRecord, LogEvent


class Fetcher:
    """Downloads one remote asset fully into memory.

    Non-success statuses and transport errors are retried by the
    :class:`RetryHandler`; every attempt re-downloads the whole payload.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        retry_handler: Optional[RetryHandler] = None,
    ):
        self._client = client
        self._retry = retry_handler or RetryHandler(retry_on=(httpx.HTTPError,))

    @property
    def max_attempts(self) -> int:
        return self._retry.max_attempts

    async def fetch(self, url: str) -> bytes:
        """Return the body of ``url``.

        Raises:
            DownloadError: When every attempt failed.
        """

        def log_retry(attempt: int, exc: BaseException, delay: float) -> None:
            warning(
                LogRecord(
                    event=LogEvent.DOWNLOAD_RETRY.value,
                    message=f"Download failed, retrying in {delay:.2f}s",
                    data={
                        "url": url,
                        "attempt": attempt,
                        "max_attempts": self._retry.max_attempts,
                        "error": str(exc),
                    },
                )
            )

        try:
            return await self._retry.execute_with_retry(
                self._download, url, on_retry=log_retry
            )
        except httpx.HTTPError as e:
            warning(
                LogRecord(
                    event=LogEvent.DOWNLOAD_FAILURE.value,
                    message="Download failed after all attempts",
                    data={"url": url, "attempts": self._retry.max_attempts},
                ),
                exc=e,
            )
            raise DownloadError(
                f"Failed to download image: {e}",
                url=url,
                attempts=self._retry.max_attempts,
            ) from e

    async def _download(self, url: str) -> bytes:
        response = await self._client.get(url)
        response.raise_for_status()
        return response.content
