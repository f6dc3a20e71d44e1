"""
Ethos API Client

Thin authenticated wrapper around httpx for the Ethos learning platform.
Every transport failure and non-2xx response is normalized into an
EthosApiError carrying status, method, url and the parsed response body.

Usage:
    async with EthosClient(base_url, api_key, context_token) as client:
        data = await client.get("/v1/learning_item_enrollments", params={"itemsPerPage": 50})
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

MERGE_PATCH_HEADERS = {"Content-Type": "application/merge-patch+json"}

Params = dict[str, Any] | list[tuple[str, Any]] | None


class EthosApiError(Exception):
    """Uniform error for failed Ethos API calls."""

    def __init__(
        self,
        message: str,
        status: int | None = None,
        method: str | None = None,
        url: str | None = None,
        data: Any = None,
    ):
        super().__init__(message)
        self.status = status
        self.method = method
        self.url = url
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        """Serialize for reports."""
        return {
            "error": str(self),
            "status": self.status,
            "request": {"method": self.method, "url": self.url} if self.method and self.url else None,
            "details": self.data,
        }


def _error_message(data: Any, fallback: str | None) -> str:
    if isinstance(data, dict):
        for key in ("hydra:description", "message", "detail"):
            if data.get(key):
                return str(data[key])
    return fallback or "Ethos API request failed"


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _request_url(error: httpx.RequestError, fallback: str) -> str:
    # .request raises RuntimeError when the error was built without one
    try:
        return str(error.request.url)
    except RuntimeError:
        return fallback


class EthosClient:
    """
    HTTP client for the Ethos API.

    Handles:
    - Bearer + context token headers
    - Repeated query parameters (pass params as a list of tuples)
    - Error normalization to EthosApiError

    No retries happen here; retry policy belongs to the caller.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        context_token: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "X-Context-Token": context_token,
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings) -> EthosClient:
        """Build a client from application settings."""
        return cls(
            base_url=settings.ethos_base_url,
            api_key=settings.ethos_api_key,
            context_token=settings.ethos_context_token,
            timeout=settings.ethos_timeout_seconds,
        )

    async def __aenter__(self) -> EthosClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Params = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        kwargs: dict[str, Any] = {}
        if json is not None:
            kwargs["json"] = json
        if params:
            kwargs["params"] = params
        if headers:
            kwargs["headers"] = headers
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            data = _parse_body(e.response)
            error = EthosApiError(
                _error_message(data, str(e)),
                status=e.response.status_code,
                method=method,
                url=str(e.request.url),
                data=data,
            )
            logger.debug(f"Ethos {method} {path} failed with {error.status}: {error}")
            raise error from e
        except httpx.RequestError as e:
            logger.debug(f"Ethos {method} {path} transport error: {e}")
            raise EthosApiError(
                _error_message(None, str(e)),
                method=method,
                url=_request_url(e, path),
            ) from e

        return _parse_body(response)

    async def get(
        self,
        path: str,
        params: Params = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        return await self._request("GET", path, params=params, headers=headers, timeout=timeout)

    async def post(
        self,
        path: str,
        body: Any = None,
        params: Params = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        return await self._request(
            "POST", path, json=body if body is not None else {}, params=params, headers=headers, timeout=timeout
        )

    async def patch(
        self,
        path: str,
        body: Any = None,
        params: Params = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Any:
        return await self._request(
            "PATCH", path, json=body if body is not None else {}, params=params, headers=headers, timeout=timeout
        )
