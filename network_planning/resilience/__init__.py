"""Resilience helpers for calls to unstable dependencies."""

from .circuit_breaker import CircuitBreaker, CircuitState, create_database_breaker

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "create_database_breaker",
]
