"""Concurrent fetch-and-persist of generated image assets."""

import contextlib
import os
from typing import List, Optional, Protocol, Sequence

import anyio
from asyncer import asyncify

from ...constants import (
    DEFAULT_DOWNLOAD_CONCURRENCY,
    DEFAULT_FILENAME_PREFIX,
    TEMP_FILE_SUFFIX,
)
from ...domain.exceptions import PersistError
from ...logging import debug, error, info, LogRecord, LogEvent


class AssetFetcher(Protocol):
    async def fetch(self, url: str) -> bytes: ...


def build_filename(
    index: int, count: int, output_format: str, base_filename: Optional[str] = None
) -> str:
    """Name of the ``index``-th of ``count`` outputs.

    A base filename gets a 1-based suffix when there are several outputs and
    none for a single one; without a base the 0-based ``output_{index}`` is used.
    """
    if base_filename:
        if count > 1:
            return f"{base_filename}_{index + 1}.{output_format}"
        return f"{base_filename}.{output_format}"
    return f"{DEFAULT_FILENAME_PREFIX}_{index}.{output_format}"


def write_atomic(path: str, data: bytes) -> None:
    """Write ``data`` to a temporary sibling and rename it onto ``path``.

    Readers never observe a partially written file at ``path``.
    """
    temp_path = f"{path}{TEMP_FILE_SUFFIX}"
    try:
        with open(temp_path, "wb") as handle:
            handle.write(data)
        os.replace(temp_path, path)
    except OSError:
        with contextlib.suppress(OSError):
            os.unlink(temp_path)
        raise


class BatchPersister:
    """
    Downloads a batch of remote assets and writes them under one directory.

    Assets are processed in fixed-size windows: every fetch+write in a window
    runs concurrently and the whole window completes before the next starts.
    Output order always matches input order. The first failing item fails
    the batch with a :class:`PersistError`; files already written by
    completed items are left in place.
    """

    def __init__(
        self,
        fetcher: AssetFetcher,
        window_size: int = DEFAULT_DOWNLOAD_CONCURRENCY,
    ):
        if window_size < 1:
            raise ValueError(f"window_size must be at least 1, got {window_size}")
        self._fetcher = fetcher
        self.window_size = window_size

    async def persist(
        self,
        urls: Sequence[str],
        output_dir: str,
        output_format: str,
        output_quality: int,
        base_filename: Optional[str] = None,
    ) -> List[str]:
        """
        Fetch every URL and save it under ``output_dir``.

        Args:
            urls: Remote asset locations, in output order
            output_dir: Destination directory, created if missing
            output_format: File extension for every output
            output_quality: Compression quality the assets were produced with
            base_filename: Optional base name, see :func:`build_filename`

        Returns:
            Paths of the written files, index-aligned with ``urls``

        Raises:
            PersistError: If the directory cannot be created or any item fails
        """
        count = len(urls)
        paths = [
            self._contained_path(
                output_dir, build_filename(i, count, output_format, base_filename)
            )
            for i in range(count)
        ]
        await self._ensure_directory(output_dir)
        results: List[Optional[str]] = [None] * count

        debug(
            LogRecord(
                event=LogEvent.PERSIST_EVENT.value,
                message="Persisting image batch",
                data={
                    "output_dir": output_dir,
                    "count": count,
                    "window_size": self.window_size,
                    "output_format": output_format,
                    "output_quality": output_quality,
                },
            )
        )

        for start in range(0, count, self.window_size):
            window = range(start, min(start + self.window_size, count))
            try:
                async with anyio.create_task_group() as tg:
                    for index in window:
                        tg.start_soon(
                            self._persist_one, index, urls[index], paths[index], results
                        )
            except BaseExceptionGroup as group:
                failure = self._first_failure(group)
                if failure is None:
                    raise
                raise failure

        info(
            LogRecord(
                event=LogEvent.PERSIST_EVENT.value,
                message="Image batch persisted",
                data={"output_dir": output_dir, "count": count},
            )
        )
        return [path for path in results if path is not None]

    @staticmethod
    def _contained_path(output_dir: str, filename: str) -> str:
        """Join ``filename`` onto ``output_dir``, refusing anything that leaves it."""
        directory = os.path.abspath(output_dir)
        path = os.path.abspath(os.path.join(directory, filename))
        if os.path.dirname(path) != directory:
            raise PersistError(
                f"Filename {filename!r} resolves outside {output_dir}",
                path=path,
            )
        return os.path.join(output_dir, filename)

    async def _ensure_directory(self, output_dir: str) -> None:
        try:
            await asyncify(os.makedirs)(output_dir, exist_ok=True)
        except OSError as e:
            error(
                LogRecord(
                    event=LogEvent.PERSIST_EVENT.value,
                    message="Failed to create output directory",
                    data={"output_dir": output_dir},
                ),
                exc=e,
            )
            raise PersistError(
                f"Failed to create output directory {output_dir}: {e}",
                path=output_dir,
                cause=e,
            ) from e

    async def _persist_one(
        self, index: int, url: str, path: str, results: List[Optional[str]]
    ) -> None:
        try:
            data = await self._fetcher.fetch(url)
            await asyncify(write_atomic)(path, data)
        except Exception as e:
            error(
                LogRecord(
                    event=LogEvent.PERSIST_EVENT.value,
                    message=f"Failed to save image {index}",
                    data={"index": index, "url": url, "path": path},
                ),
                exc=e,
            )
            raise PersistError(
                f"Failed to save image {index}: {e}",
                index=index,
                path=path,
                cause=e,
            ) from e
        results[index] = path

    @staticmethod
    def _first_failure(group: BaseExceptionGroup) -> Optional[PersistError]:
        """Lowest-index failure from a window, in case several failed together."""
        failures = [exc for exc in _flatten(group) if isinstance(exc, PersistError)]
        if not failures:
            return None
        return min(
            failures, key=lambda exc: exc.index if exc.index is not None else -1
        )


def _flatten(group: BaseExceptionGroup) -> List[BaseException]:
    flat: List[BaseException] = []
    for exc in group.exceptions:
        if isinstance(exc, BaseExceptionGroup):
            flat.extend(_flatten(exc))
        else:
            flat.append(exc)
    return flat
