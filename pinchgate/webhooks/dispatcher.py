"""Single-shot outbound webhook delivery.

``WebhookDispatcher.dispatch`` performs one JSON POST with a bounded timeout
and reports the outcome as a boolean. There is no retry loop: the next
scheduled governance run (or the next ability outcome) is the retry boundary.
Transport exceptions never reach callers.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from ..audit.log import AuditLog
from ..core.errors import DeliveryFailureError
from ..schemas.domain import AuditEventType, AuditSource

logger = logging.getLogger(__name__)

RATE_WINDOW_SECONDS = 60.0


class WebhookDispatcher:
    """
    POST event notifications to the configured webhook endpoint.

    Args:
        url: Endpoint URL; dispatch is a no-op returning False when unset.
        auth_token: Optional Bearer token.
        channel: Optional delivery channel name forwarded in the payload.
        session_key: Session key forwarded in the payload.
        timeout: Request timeout in seconds.
        rate_limit_per_minute: Dispatches allowed per fixed 60 second window.
        client: Optional pre-built ``httpx.AsyncClient`` (tests inject a mock transport).
        monotonic: Clock for the rate window; injectable for tests.
        audit: Optional audit log; dispatches dropped by the rate limit are recorded there.
    """

    def __init__(
        self,
        url: Optional[str],
        *,
        auth_token: Optional[str] = None,
        channel: Optional[str] = None,
        session_key: str = "pinchgate-webhooks",
        timeout: float = 5.0,
        rate_limit_per_minute: int = 30,
        client: Optional[httpx.AsyncClient] = None,
        monotonic: Callable[[], float] = time.monotonic,
        audit: Optional[AuditLog] = None,
    ) -> None:
        self.url = url
        self.auth_token = auth_token
        self.channel = channel
        self.session_key = session_key
        self.timeout = timeout
        self.rate_limit_per_minute = rate_limit_per_minute
        self._http = client or httpx.AsyncClient(timeout=timeout, follow_redirects=False)
        self._monotonic = monotonic
        self._audit = audit
        self._window_start = 0.0
        self._window_count = 0

    def _headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    def _take_rate_slot(self) -> bool:
        # Check-and-increment has no await in between, so it is atomic on the event loop.
        now = self._monotonic()
        if now - self._window_start >= RATE_WINDOW_SECONDS:
            self._window_start = now
            self._window_count = 0
        if self._window_count >= self.rate_limit_per_minute:
            return False
        self._window_count += 1
        return True

    def build_payload(self, event_type: str, message: str, context: Mapping[str, Any]) -> Dict[str, Any]:
        """Build the JSON body for one event."""
        payload: Dict[str, Any] = {
            "event_type": event_type,
            "message": f"[pinchgate – {event_type}] {message}",
            "context": dict(context),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "sessionKey": self.session_key,
            "wakeMode": "now",
        }
        if self.channel:
            payload["channel"] = self.channel
        return payload

    async def _post(self, payload: Dict[str, Any]) -> None:
        r = await self._http.post(self.url, json=payload, headers=self._headers(), timeout=self.timeout)
        if not r.is_success:
            raise DeliveryFailureError(
                f"Webhook endpoint returned HTTP {r.status_code}",
                details={"status_code": r.status_code, "body": r.text[:200]},
            )

    async def dispatch(self, event_type: str, message: str, context: Optional[Mapping[str, Any]] = None) -> bool:
        """
        Deliver one event.

        Args:
            event_type: Event name, e.g. ``governance_finding``.
            message: Human-readable summary.
            context: JSON-serializable details.

        Returns:
            True only when the endpoint answered with a 2xx status.
        """
        if not self.url:
            logger.debug(f"Webhook '{event_type}' not sent: no endpoint configured")
            return False
        if not self._take_rate_slot():
            logger.warning(f"Webhook '{event_type}' dropped: rate limit of {self.rate_limit_per_minute}/min exceeded")
            if self._audit is not None:
                await self._audit.record(
                    AuditEventType.webhook_rate_limited,
                    AuditSource.system,
                    f"Webhook '{event_type}' dropped: rate limit of {self.rate_limit_per_minute}/min exceeded.",
                    {"event_type": event_type, "rate_limit_per_minute": self.rate_limit_per_minute},
                )
            return False

        try:
            payload = self.build_payload(event_type, message, context or {})
            await self._post(payload)
        except DeliveryFailureError as e:
            logger.warning(f"Webhook '{event_type}' failed: {e}")
            return False
        except httpx.HTTPError as e:
            logger.warning(f"Webhook '{event_type}' transport error: {e}")
            return False
        except (TypeError, ValueError) as e:
            logger.error(f"Webhook '{event_type}' payload could not be encoded: {e}")
            return False

        logger.info(f"Webhook '{event_type}' delivered")
        return True

    async def aclose(self) -> None:
        await self._http.aclose()
