"""
FastMCP server wiring for the image generator.
Builds the pipeline from settings and exposes it over MCP stdio.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from .tools import register_generation_tools
from ...application.cache import CacheStore
from ...application.path_resolver import PathResolver
from ...application.pipeline import GenerationPipeline
from ...config import Settings
from ...domain.exceptions import ConfigurationError
from ...infrastructure.assets.fetcher import Fetcher
from ...infrastructure.assets.persister import BatchPersister
from ...infrastructure.assets.retry import RetryHandler
from ...infrastructure.providers.http_client_factory import HttpClientFactory
from ...infrastructure.providers.replicate_provider import ReplicateProvider
from ...logging import info, init_logging, shutdown_logging, LogRecord, LogEvent


def build_pipeline(
    settings: Settings, client: httpx.AsyncClient
) -> GenerationPipeline:
    """Assemble the generation pipeline around a shared HTTP client."""
    retry_handler = RetryHandler(
        max_attempts=settings.download_max_retries,
        base_delay=settings.download_retry_base_delay,
        retry_on=(httpx.HTTPError,),
    )
    fetcher = Fetcher(client, retry_handler)
    return GenerationPipeline(
        path_resolver=PathResolver(settings.output_root),
        cache=CacheStore(
            ttl_seconds=settings.cache_ttl_seconds,
            sweep_interval_seconds=settings.effective_sweep_interval,
        ),
        provider=ReplicateProvider.from_settings(settings, client),
        persister=BatchPersister(fetcher, window_size=settings.download_concurrency),
    )


def create_server(settings: Settings) -> FastMCP:
    """Create and configure the FastMCP server instance."""
    init_logging(settings)

    client = HttpClientFactory.create_client(settings)
    pipeline = build_pipeline(settings, client)

    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[None]:
        async with pipeline.cache.running():
            info(
                LogRecord(
                    event=LogEvent.SERVER_EVENT.value,
                    message="Server started",
                    data={
                        "name": settings.app_name,
                        "version": settings.app_version,
                        "model": settings.replicate_model,
                    },
                )
            )
            try:
                yield
            finally:
                await HttpClientFactory.close_client(client)
                info(
                    LogRecord(
                        event=LogEvent.SERVER_EVENT.value,
                        message="Server stopped",
                        data={"cache": pipeline.cache.get_stats()},
                    )
                )

    mcp = FastMCP(name=settings.app_name, lifespan=lifespan)
    register_generation_tools(mcp, pipeline)

    logging.info(f"Server created: {settings.app_name} v{settings.app_version}")
    return mcp


def main(settings: Optional[Settings] = None) -> None:
    """Entry point for the image generation MCP server."""
    load_dotenv()

    if settings is None:
        try:
            settings = Settings()
        except ConfigurationError as e:
            print(f"\nConfiguration Error:\n{e}", file=sys.stderr)
            sys.exit(1)
        except Exception as e:
            print(f"\nUnexpected error during configuration: {e}", file=sys.stderr)
            sys.exit(1)

    try:
        server = create_server(settings)
    except Exception as e:
        print(f"\nFailed to initialize server: {e}", file=sys.stderr)
        raise SystemExit(1)

    info(
        LogRecord(
            event=LogEvent.SERVER_EVENT.value,
            message="Starting image generator",
            data={"host_data_dir": settings.output_root},
        )
    )
    try:
        server.run(transport="stdio")
    except KeyboardInterrupt:
        logging.info("Server shutdown requested")
    finally:
        shutdown_logging()
