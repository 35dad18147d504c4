"""Resilience primitives guarding calls to external dependencies."""

from .circuit_breaker import CircuitBreaker

__all__ = ["CircuitBreaker"]
