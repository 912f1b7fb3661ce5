"""
HTTP client factory for the provider and asset downloads.
Handles configuration and initialization of the shared httpx client.
"""

import logging
import os
from typing import Any, Dict, Optional

import httpx

from ...config import Settings


class HttpClientFactory:
    """Factory for creating the configured async HTTP client."""

    @staticmethod
    def create_client(settings: Settings) -> httpx.AsyncClient:
        """
        Create an httpx client with pool limits and timeouts from settings.

        Args:
            settings: Application settings

        Returns:
            Configured httpx client
        """
        client = httpx.AsyncClient(**HttpClientFactory.build_config(settings))
        logging.info(
            f"HTTP client configuration: {HttpClientFactory.describe(settings)}"
        )
        return client

    @staticmethod
    def build_config(settings: Settings) -> Dict[str, Any]:
        """Build httpx client configuration."""
        return {
            "limits": httpx.Limits(
                max_keepalive_connections=settings.pool_max_keepalive_connections,
                max_connections=settings.pool_max_connections,
                keepalive_expiry=settings.pool_keepalive_expiry,
            ),
            "timeout": httpx.Timeout(
                connect=settings.http_connect_timeout,
                read=settings.http_read_timeout,
                write=settings.http_write_timeout,
                pool=settings.http_pool_timeout,
            ),
            "verify": os.getenv("SSL_CERT_FILE", True),
            "follow_redirects": True,
            "headers": HttpClientFactory.get_default_headers(settings),
        }

    @staticmethod
    async def close_client(client: Optional[httpx.AsyncClient]) -> None:
        """
        Properly close an HTTP client to avoid resource leaks.

        Args:
            client: HTTP client to close
        """
        if not client:
            return

        try:
            await client.aclose()
        except Exception as e:
            logging.warning(f"Error closing HTTP client: {e}")

    @staticmethod
    def get_default_headers(settings: Settings) -> Dict[str, str]:
        return {"User-Agent": f"{settings.app_name}/{settings.app_version}"}

    @staticmethod
    def describe(settings: Settings) -> Dict[str, Any]:
        return {
            "pool_max_keepalive": settings.pool_max_keepalive_connections,
            "pool_max_connections": settings.pool_max_connections,
            "connect_timeout": settings.http_connect_timeout,
            "read_timeout": settings.http_read_timeout,
        }
