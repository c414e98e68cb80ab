"""HTTP transport for the JSON:API store.

The transport owns its ``httpx.AsyncClient`` and the per-client auth data
(extra headers and query parameters). It never interprets status codes;
that is the store's job.
"""
from __future__ import annotations

import json
from typing import Any

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from elide_client.config import CONFIG, ClientConfig
from elide_client.logging import get_logger

logger = get_logger(__name__)

JSONAPI_MIME_TYPE = "application/vnd.api+json"
JSONPATCH_MIME_TYPE = "application/vnd.api+json; ext=jsonpatch"


class HttpTransport:
    """Thin async wrapper around httpx.

    Example:
        async with HttpTransport("https://api.example.com") as transport:
            response = await transport.submit("GET", "/book/1")
    """

    def __init__(
        self,
        base_url: str,
        config: ClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or CONFIG
        self.base_url = base_url.rstrip("/")
        self.headers: dict[str, str] = {}
        self.query_parameters: dict[str, str] = {}
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    async def __aenter__(self) -> HttpTransport:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.config.timeout,
                transport=self._transport,
                headers={"User-Agent": self.config.user_agent},
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # Auth data
    def add_query_parameter(self, key: str, value: str) -> None:
        self.query_parameters[key] = value

    def add_request_header(self, key: str, value: str) -> None:
        self.headers[key] = value

    def clear_auth_data(self) -> None:
        self.headers = {}
        self.query_parameters = {}

    def absolute_url(self, path: str) -> str:
        """Full URL for ``path`` including auth query parameters."""
        url = httpx.URL(f"{self.base_url}{path}")
        if self.query_parameters:
            url = url.copy_merge_params(self.query_parameters)
        return str(url)

    async def submit(
        self,
        method: str,
        path: str,
        params: list[tuple[str, str]] | None = None,
        body: Any = None,
        content_type: str = JSONAPI_MIME_TYPE,
        accept: str | None = None,
    ) -> httpx.Response:
        """Send one request and return the raw response.

        GET requests are retried on transport errors when
        ``config.retry_attempts`` is greater than one.
        """
        query = list(self.query_parameters.items()) + list(params or [])
        headers = {"Content-Type": content_type, "Accept": accept or content_type, **self.headers}
        content = json.dumps(body) if body is not None else None

        async def _do() -> httpx.Response:
            return await self._client().request(
                method, path, params=query, content=content, headers=headers
            )

        logger.debug("http_request", method=method, path=path)
        if method != "GET" or self.config.retry_attempts <= 1:
            return await _do()

        retrying = retry(
            reraise=True,
            stop=stop_after_attempt(self.config.retry_attempts),
            wait=wait_exponential_jitter(initial=0.5, max=4.0),
            retry=retry_if_exception_type(httpx.TransportError),
        )
        return await retrying(_do)()
