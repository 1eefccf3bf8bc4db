"""HTTP transport for upstream AI calls."""

import logging
from time import perf_counter

import httpx

from assistant_gateway.metrics import record_upstream_call
from assistant_gateway.upstream.base import UpstreamRequest, UpstreamUnavailableError

logger = logging.getLogger("aigw.upstream")


class UpstreamClient:
    """Sends built requests with a bearer token; responses are left open for streaming."""

    def __init__(self, http_client: httpx.AsyncClient) -> None:
        self._http = http_client

    async def send(self, upstream: UpstreamRequest, token: str) -> httpx.Response:
        request = self._http.build_request(
            "POST",
            upstream.url,
            json=upstream.body,
            headers=upstream.headers(token),
        )
        started = perf_counter()
        try:
            response = await self._http.send(request, stream=True)
        except httpx.TimeoutException as exc:
            raise UpstreamUnavailableError(
                status_code=503,
                code="upstream_timeout",
                message=f"AI request failed: upstream timed out: {exc}",
            ) from exc
        except httpx.ConnectError as exc:
            raise UpstreamUnavailableError(
                status_code=502,
                code="upstream_connection_error",
                message=f"AI request failed: cannot connect to upstream: {exc}",
            ) from exc

        latency_s = perf_counter() - started
        record_upstream_call(
            upstream.backend.value, upstream.mode.value, response.status_code, latency_s
        )
        logger.info(
            "upstream_response",
            extra={
                "backend": upstream.backend.value,
                "mode": upstream.mode.value,
                "status_code": response.status_code,
                "latency_ms": int(latency_s * 1000),
            },
        )
        return response

    async def aclose(self) -> None:
        await self._http.aclose()
