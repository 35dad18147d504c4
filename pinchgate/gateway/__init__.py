"""Circuit-gated client for the external AI gateway."""

from .client import GatewayClient

__all__ = ["GatewayClient"]
