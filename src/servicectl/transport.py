"""HTTP transport consumed by generated HTTP commands and the OpenAPI source.

Handlers never talk to httpx directly; they go through ``HttpTransport`` so a
caller can supply its own implementation on ``CommandContext.transport``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, Field

from .errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class HttpResponse(BaseModel):
    status_code: int
    headers: Dict[str, str] = Field(default_factory=dict)
    data: Any = None
    text: str = ""

    @property
    def ok(self) -> bool:
        return self.status_code < 400


@runtime_checkable
class HttpTransport(Protocol):
    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        json_body: Any = None,
    ) -> HttpResponse:
        ...


class HttpxTransport:
    """``HttpTransport`` backed by ``httpx.AsyncClient``.

    A fresh client is opened per request unless one is injected (tests pass a
    client built on ``httpx.MockTransport``).
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        headers: Optional[Mapping[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self.headers = dict(headers or {})
        self._client = client

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        json_body: Any = None,
    ) -> HttpResponse:
        merged_headers = {**self.headers, **(headers or {})}
        logger.debug(f"{method.upper()} {url}")

        try:
            if self._client is not None:
                response = await self._send(self._client, method, url, params, merged_headers, json_body)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._send(client, method, url, params, merged_headers, json_body)
        except httpx.TimeoutException as exc:
            raise TransportError(f"Request to {url} timed out", cause=exc) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Request to {url} failed: {exc}", cause=exc) from exc

        return _to_response(response)

    @staticmethod
    async def _send(client, method, url, params, headers, json_body) -> httpx.Response:
        kwargs: Dict[str, Any] = {"params": dict(params or {}), "headers": headers}
        if json_body is not None:
            kwargs["json"] = json_body
        return await client.request(method.upper(), url, **kwargs)


def _to_response(response: httpx.Response) -> HttpResponse:
    text = response.text
    data: Any = None
    content_type = response.headers.get("content-type", "")
    if "json" in content_type and text:
        try:
            data = response.json()
        except ValueError:
            data = None
    return HttpResponse(
        status_code=response.status_code,
        headers=dict(response.headers),
        data=data,
        text=text,
    )
