"""Captcha handling module.

This module holds the captcha challenge lifecycle and everything needed to
get a challenge solved by an external OCR recognition service.

Main components:
- UnsubmittedChallenge / SubmittedChallenge / SolvedChallenge: challenge states
- IRecognitionService: Base interface for OCR recognition backends
- NopechaRecognizer: NopeCHA text-captcha implementation
- CircuitBreaker: Stops every stage from calling the service once its quota is gone
"""

# Challenge lifecycle
from .challenge import (
    ChallengeState,
    EntityIdentifier,
    SolvedChallenge,
    SubmittedChallenge,
    UnsubmittedChallenge,
)

# Circuit breaker pattern for the shared recognition quota
from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerOpen, CircuitState

# Base interface for recognition service implementations
from .interfaces import IRecognitionService

# Concrete recognition service
from .solvers import NopechaRecognizer

# Public API exports
__all__ = [
    # Challenge lifecycle
    "ChallengeState",
    "EntityIdentifier",
    "SolvedChallenge",
    "SubmittedChallenge",
    "UnsubmittedChallenge",
    # Circuit breaker components
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerOpen",
    "CircuitState",
    # Base interface
    "IRecognitionService",
    # Concrete implementation
    "NopechaRecognizer",
]
