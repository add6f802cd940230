# dlm_agent/resilience/__init__.py

"""Resilience patterns for the chunk pipeline."""

from .circuit_breaker import CircuitBreaker, CircuitState

__all__ = ["CircuitBreaker", "CircuitState"]
