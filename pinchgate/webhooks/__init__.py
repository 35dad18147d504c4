"""Outbound webhook delivery."""

from .dispatcher import WebhookDispatcher

__all__ = ["WebhookDispatcher"]
