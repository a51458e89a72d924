"""
Shared plumbing for every external HTTP service.

Each client (workflow webhooks, completion API, vision, drug references)
sends through ``UpstreamClient.request``, which:
- runs the call under that upstream's circuit breaker
- records latency / error metrics
- maps transport failures to ``NetworkUnavailable`` and non-2xx answers to
  ``UpstreamError`` so tiers only ever see the package error taxonomy

No retries happen here: a failed call is a failed tier.
"""
import time
from typing import Any, Dict, Optional

import httpx

from pharmassist.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenError,
    get_circuit_breaker,
)
from pharmassist.core.errors import NetworkUnavailable, UpstreamError
from pharmassist.core.logging import get_logger
from pharmassist.core.metrics import record_upstream_error, record_upstream_request

logger = get_logger(__name__)


class UpstreamClient:
    """Base async HTTP client for one named upstream."""

    upstream = "upstream"

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self.circuit_breaker = circuit_breaker or get_circuit_breaker(self.upstream)

    def _headers(self) -> Dict[str, str]:
        return {}

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            response = await client.request(method, url, headers=self._headers(), **kwargs)
        # Counted as a breaker failure, so 5xx storms open the circuit.
        if response.status_code >= 500:
            raise UpstreamError(response.status_code, response.text, upstream=self.upstream)
        return response

    async def request(self, operation: str, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """
        Send one request and return a 2xx response.

        Raises:
            NetworkUnavailable: connect/DNS/timeout failure or open circuit
            UpstreamError: non-2xx status
        """
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        start = time.time()
        try:
            response: httpx.Response = await self.circuit_breaker.call_async(
                self._send, method, url, **kwargs
            )
        except CircuitBreakerOpenError as exc:
            record_upstream_error(self.upstream, operation, "circuit_open")
            logger.warning("upstream_circuit_open", upstream=self.upstream, operation=operation)
            raise NetworkUnavailable(self.upstream, "circuit open") from exc
        except httpx.TimeoutException as exc:
            record_upstream_error(self.upstream, operation, "timeout")
            logger.warning(
                "upstream_timeout",
                upstream=self.upstream,
                operation=operation,
                error=str(exc),
            )
            raise NetworkUnavailable(self.upstream, "timeout") from exc
        except httpx.TransportError as exc:
            record_upstream_error(self.upstream, operation, "transport")
            logger.warning(
                "upstream_unreachable",
                upstream=self.upstream,
                operation=operation,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise NetworkUnavailable(self.upstream, str(exc) or type(exc).__name__) from exc
        except UpstreamError:
            record_upstream_error(self.upstream, operation, "server_error")
            raise
        finally:
            record_upstream_request(self.upstream, operation, time.time() - start)

        if response.status_code >= 400:
            record_upstream_error(self.upstream, operation, f"http_{response.status_code}")
            logger.warning(
                "upstream_http_error",
                upstream=self.upstream,
                operation=operation,
                status_code=response.status_code,
            )
            raise UpstreamError(response.status_code, response.text, upstream=self.upstream)
        return response
