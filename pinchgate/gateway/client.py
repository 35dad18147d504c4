from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..core.errors import UnavailableError, UpstreamFailureError
from ..resilience.circuit_breaker import CircuitBreaker

MAX_REPLY_CHARS = 4000


class GatewayClient:
    """
    Thin async HTTP client for the AI gateway's agent hook.

    Every ``send`` consults the circuit breaker first and reports the outcome
    after the response (or transport error) arrives, so no call site can skip
    the guard. The breaker lock is never held during the HTTP request.

    Failure mapping:
    - breaker refuses, or no gateway configured -> ``UnavailableError``
    - transport error or non-2xx status -> ``UpstreamFailureError`` (recorded as a breaker failure)
    """

    def __init__(
        self,
        base_url: Optional[str],
        *,
        breaker: CircuitBreaker,
        auth_token: Optional[str] = None,
        session_key: str = "pinchgate",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") if base_url else None
        self.auth_token = auth_token
        self.session_key = session_key
        self.timeout = timeout
        self._breaker = breaker
        self._http = client or httpx.AsyncClient(timeout=timeout, follow_redirects=False)
        self._logger = logging.getLogger(__name__)

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def _headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    @staticmethod
    def _reply_text(response: httpx.Response) -> str:
        try:
            data: Any = response.json()
        except ValueError:
            return response.text[:MAX_REPLY_CHARS]
        if isinstance(data, dict):
            for key in ("response", "message"):
                if isinstance(data.get(key), str):
                    return data[key][:MAX_REPLY_CHARS]
        return response.text[:MAX_REPLY_CHARS]

    async def send(self, prompt: str, session_key: Optional[str] = None) -> str:
        """Send one prompt to the gateway and return its reply text.

        Args:
            prompt: The message for the agent.
            session_key: Conversation key; defaults to the configured one.

        Returns:
            The reply text (``response`` or ``message`` field, else the raw body).

        Raises:
            UnavailableError: No gateway is configured or the circuit is open.
            UpstreamFailureError: Transport failure or non-2xx response.
        """
        if not self.base_url:
            raise UnavailableError("The AI gateway is not configured.")

        if not await self._breaker.is_available():
            retry = await self._breaker.retry_after()
            self._logger.debug("GatewayClient.send: refused by circuit breaker (retry in %ss)", retry)
            raise UnavailableError(
                f"The AI gateway is temporarily unavailable. Please try again in {max(1, retry)} seconds.",
                retry_after=max(1, retry),
            )

        url = f"{self.base_url}/hooks/agent"
        payload = {
            "message": prompt,
            "name": "pinchgate",
            "sessionKey": session_key or self.session_key,
            "wakeMode": "now",
        }
        self._logger.debug("GatewayClient.send: POST %s session=%s", url, payload["sessionKey"])
        try:
            r = await self._http.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
        except httpx.HTTPError as e:
            await self._breaker.record_failure()
            self._logger.warning("GatewayClient.send: transport error: %s", e)
            raise UpstreamFailureError("Unable to reach the AI gateway. Please try again later.", details=str(e)) from e

        if not r.is_success:
            await self._breaker.record_failure()
            self._logger.warning("GatewayClient.send: gateway returned HTTP %s", r.status_code)
            raise UpstreamFailureError(
                f"AI gateway returned HTTP {r.status_code}.",
                status_code=r.status_code,
                details=r.text[:500],
            )

        await self._breaker.record_success()
        return self._reply_text(r)

    async def status(self) -> Dict[str, Any]:
        """Report configuration and breaker state for status displays."""
        snap = await self._breaker.snapshot()
        return {
            "configured": self.configured,
            "gateway_url": self.base_url,
            "circuit_state": snap.state.value,
            "consecutive_failures": snap.consecutive_failures,
            "opened_at": snap.opened_at.isoformat() if snap.opened_at else None,
            "retry_after": await self._breaker.retry_after(),
        }

    async def aclose(self) -> None:
        await self._http.aclose()
