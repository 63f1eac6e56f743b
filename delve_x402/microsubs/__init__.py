"""
Microsub registry, list client and error classification
"""

from delve_x402.microsubs.models import Microsub, MicrosubList, InvalidReason
from delve_x402.microsubs.classifier import (
    MicrosubErrorInfo,
    is_microsub_error,
    microsub_error_message,
    should_fallback_to_payment,
)
from delve_x402.microsubs.client import MicrosubClient
from delve_x402.microsubs.registry import (
    MicrosubRegistry,
    RegistrySnapshot,
    RegistryState,
    ReadyState,
    ValidationResult,
)

__all__ = [
    "Microsub",
    "MicrosubList",
    "InvalidReason",
    "MicrosubErrorInfo",
    "is_microsub_error",
    "microsub_error_message",
    "should_fallback_to_payment",
    "MicrosubClient",
    "MicrosubRegistry",
    "RegistrySnapshot",
    "RegistryState",
    "ReadyState",
    "ValidationResult",
]
