"""
Base API client with common functionality for all external API providers
"""

import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from core.config import get_settings
from core.exceptions import ExternalAPIError, RateLimitError
from core.logging import get_logger


class BaseAPIClient(ABC):
    """Abstract base class for all external API clients"""

    def __init__(
        self,
        provider: str,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.provider = provider
        self.settings = get_settings()
        self.logger = get_logger(f"gateway.{provider}", domain="d0")

        self.api_key = api_key
        self.base_url = base_url or self._get_base_url()

        # HTTP client with proper timeouts
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout or float(self.settings.request_timeout)),
            headers=self._get_headers(),
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    @abstractmethod
    def _get_base_url(self) -> str:
        """Get the base URL for this provider"""

    @abstractmethod
    def _get_headers(self) -> dict[str, str]:
        """Get authentication headers for this provider"""

    async def make_request(self, method: str, endpoint: str, **kwargs) -> dict[str, Any]:
        """
        Make an authenticated API request

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            **kwargs: Additional arguments passed to httpx

        Returns:
            Dict containing the API response

        Raises:
            RateLimitError: When the provider answers 429
            ExternalAPIError: When the API returns an error or the transport fails
        """
        operation = f"{method}:{endpoint}"
        start_time = time.time()

        try:
            url = f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"
            response = await self.client.request(method, url, **kwargs)

            if response.status_code == 429:
                retry_after = response.headers.get("retry-after")
                raise RateLimitError(
                    provider=self.provider,
                    retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
                )

            if response.status_code >= 400:
                error_msg = f"HTTP {response.status_code}"
                try:
                    error_data = response.json()
                    error = error_data.get("error")
                    if isinstance(error, dict):
                        error_msg = error.get("message", error_msg)
                    else:
                        error_msg = error_data.get("message", error_msg)
                except ValueError:
                    error_msg = response.text or error_msg

                raise ExternalAPIError(
                    provider=self.provider,
                    message=error_msg,
                    status_code=response.status_code,
                    response_body=response.text,
                )

            return response.json()

        except ExternalAPIError:
            raise
        except httpx.HTTPError as e:
            raise ExternalAPIError(provider=self.provider, message=str(e) or type(e).__name__) from e
        except ValueError as e:
            raise ExternalAPIError(provider=self.provider, message=f"Invalid JSON response: {e}") from e

        finally:
            duration = time.time() - start_time
            self.logger.debug(f"{operation} completed in {duration:.2f}s")
