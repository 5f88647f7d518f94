import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import httpx

from .errors import HydraClientError, HydraHTTPError, HydraParseError
from .models import HydraResponse, MultipartBody, RequestBody
from .observability import log_event

JSONLD_MEDIA_TYPE = "application/ld+json"


@dataclass(frozen=True)
class RetryConfig:
    max_retries: int = 0  # total extra attempts; GET only
    backoff_base_seconds: float = 0.3  # 0.3, 0.6, 1.2...
    retry_statuses: frozenset[int] = frozenset({502, 503, 504})


class HydraClient:
    """
    Default HTTP transport for the data provider.
    - Sends/accepts JSON-LD, forwards an optional bearer token
    - Returns HydraResponse(json, headers, status_code)
    - Raises HydraHTTPError with Hydra error details on non-2xx
    """

    def __init__(
        self,
        *,
        bearer_token: Optional[str] = None,
        timeout_seconds: float = 10.0,
        retry: Optional[RetryConfig] = None,
        logger: Optional[logging.Logger] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        self.bearer_token = bearer_token or None
        self.timeout_seconds = timeout_seconds
        self.retry = retry if retry is not None else RetryConfig()
        self.log = logger or logging.getLogger("hydra_provider.client")

        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(
            headers={"Accept": JSONLD_MEDIA_TYPE},
            timeout=timeout_seconds,
        )

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> "HydraClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def __call__(
        self,
        url: Union[str, httpx.URL],
        *,
        method: str = "GET",
        body: Optional[RequestBody] = None,
    ) -> HydraResponse:
        return await self.fetch(url, method=method, body=body)

    def _build_kwargs(self, body: Optional[RequestBody]) -> Dict[str, Any]:
        headers = {"Accept": JSONLD_MEDIA_TYPE}
        if self.bearer_token:
            headers["Authorization"] = f"Bearer {self.bearer_token}"

        kwargs: Dict[str, Any] = {"headers": headers}
        if isinstance(body, MultipartBody):
            # httpx sets the multipart boundary itself
            kwargs["files"] = body.parts
        elif body is not None:
            headers["Content-Type"] = JSONLD_MEDIA_TYPE
            kwargs["content"] = body
        return kwargs

    async def fetch(
        self,
        url: Union[str, httpx.URL],
        *,
        method: str = "GET",
        body: Optional[RequestBody] = None,
    ) -> HydraResponse:
        """
        Perform one request.
        - Retries GETs on transient failures only when RetryConfig allows it
        - Raises HydraHTTPError on non-2xx HTTP responses
        - Raises HydraClientError on network/timeout errors
        - Raises HydraParseError if a non-empty body isn't valid JSON
        """
        method = method.upper()
        retries_allowed = self.retry.max_retries if method == "GET" else 0
        kwargs = self._build_kwargs(body)
        start = time.perf_counter()
        attempt = 0

        while True:
            try:
                resp = await self.http.request(method, url, **kwargs)
            except (httpx.ConnectError, httpx.ReadTimeout, httpx.ConnectTimeout) as exc:
                if attempt < retries_allowed:
                    await asyncio.sleep(self.retry.backoff_base_seconds * (2**attempt))
                    attempt += 1
                    continue
                self._log_call(method, url, start, attempt, status="exception", exc=exc)
                raise HydraClientError(
                    f"Network/timeout error calling {method} {url}: {exc}"
                ) from exc
            except httpx.HTTPError as exc:
                self._log_call(method, url, start, attempt, status="exception", exc=exc)
                raise HydraClientError(
                    f"HTTPX error calling {method} {url}: {exc}"
                ) from exc

            self._log_call(method, url, start, attempt, status=resp.status_code)

            if resp.status_code in self.retry.retry_statuses and attempt < retries_allowed:
                await asyncio.sleep(self.retry.backoff_base_seconds * (2**attempt))
                attempt += 1
                continue

            if resp.status_code < 200 or resp.status_code >= 300:
                raise self._to_http_error(resp, method=method)

            return HydraResponse(
                json=self._safe_json(resp),
                headers=resp.headers,
                status_code=resp.status_code,
            )

    def _log_call(
        self,
        method: str,
        url: Union[str, httpx.URL],
        start: float,
        attempt: int,
        *,
        status: Union[int, str],
        exc: Optional[BaseException] = None,
    ) -> None:
        fields: Dict[str, Any] = {
            "method": method,
            "endpoint": str(url),
            "status": status,
            "duration_ms": int((time.perf_counter() - start) * 1000),
            "attempt": attempt,
        }
        if exc is not None:
            fields["error_type"] = type(exc).__name__
        log_event("hydra_request", self.log, level=logging.DEBUG, **fields)

    def _safe_json(self, resp: httpx.Response) -> Any:
        # Handle empty responses (204 No Content, etc.)
        if not resp.content:
            return {}

        try:
            return resp.json()
        except ValueError as exc:
            snippet = (resp.text or "")[:500]
            raise HydraParseError(
                f"Expected JSON from {resp.request.method} "
                f"{resp.request.url}, got non-JSON body snippet: "
                f"{snippet!r}"
            ) from exc

    def _to_http_error(self, resp: httpx.Response, *, method: str) -> HydraHTTPError:
        url = str(resp.request.url)
        response_json: Optional[Dict[str, Any]] = None
        response_text: Optional[str] = None
        violations: Dict[str, str] = {}
        message = resp.reason_phrase or "request failed"

        try:
            parsed = resp.json()
        except ValueError:
            parsed = None
            response_text = (resp.text or "")[:500]

        if isinstance(parsed, dict):
            response_json = parsed
            message = (
                parsed.get("hydra:description")
                or parsed.get("description")
                or parsed.get("detail")
                or parsed.get("hydra:title")
                or parsed.get("title")
                or parsed.get("message")
                or message
            )
            for violation in parsed.get("violations") or []:
                if isinstance(violation, dict) and violation.get("propertyPath"):
                    violations[violation["propertyPath"]] = violation.get("message", "")

        return HydraHTTPError(
            status_code=resp.status_code,
            method=method,
            url=url,
            message=message,
            response_json=response_json,
            response_text=response_text,
            violations=violations,
        )


__all__ = ["HydraClient", "RetryConfig", "JSONLD_MEDIA_TYPE"]
