"""licensebill Exception Hierarchy.

This module provides the exception hierarchy for the billing engine with rich
error context for debugging, monitoring, and the lenient UI-facing wrappers.

Exception Hierarchy:
    BillingException (base)
    ├── CalculationError
    │   ├── MissingRequiredField
    │   ├── UnknownBillingModel
    │   └── InvalidDateRange
    ├── LedgerError
    └── ConfigurationError

All exceptions include rich context:
- error_code: Unique error identifier
- client_id: Client the failing calculation was about (optional)
- context: Dictionary with error-specific details
- timestamp: When the error occurred
- traceback: Stack at the point the error was created

Example:
    >>> from licensebill.exceptions import UnknownBillingModel
    >>> raise UnknownBillingModel("leasing", client_id="c-17")

Author: licensebill Team
Date: October 2026
Status: Production Ready
"""

from typing import Any, Dict, Optional
from datetime import datetime
import traceback as tb
import json
import re


# ==============================================================================
# Base Exception
# ==============================================================================

class BillingException(Exception):
    """Base exception for all billing engine errors.

    Attributes:
        message: Human-readable error message
        error_code: Unique error identifier (e.g., "LB_CALC_UNKNOWN_BILLING_MODEL")
        client_id: Client the error relates to (optional)
        context: Dictionary with error-specific details
        timestamp: When the error occurred
        traceback_str: Stack trace for debugging
    """

    ERROR_PREFIX = "LB"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        client_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize billing exception with rich context.

        Args:
            message: Human-readable error message
            error_code: Unique error identifier (auto-generated if not provided)
            client_id: Client the error relates to
            context: Dictionary with error-specific details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.client_id = client_id
        self.context = context or {}
        self.timestamp = datetime.now()
        self.traceback_str = "".join(tb.format_stack()[:-1])

    def _generate_error_code(self) -> str:
        """Generate error code based on exception class.

        Returns:
            Error code like "LB_CALC_MISSING_REQUIRED_FIELD"
        """
        class_name = self.__class__.__name__
        error_type = re.sub(r'(?<!^)(?=[A-Z])', '_', class_name).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization.

        Returns:
            Dictionary with all error details
        """
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "client_id": self.client_id,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "traceback": self.traceback_str,
        }

    def to_json(self) -> str:
        """Convert exception to JSON string."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def __str__(self) -> str:
        """String representation with error code and message."""
        parts = [f"[{self.error_code}]"]
        if self.client_id:
            parts.append(f"Client: {self.client_id}")
        parts.append(self.message)
        return " - ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}', "
            f"client_id='{self.client_id}')"
        )


# ==============================================================================
# Calculation Exceptions
# ==============================================================================

class CalculationError(BillingException):
    """Base exception for errors raised by the strict calculation engine.

    The lenient entry points catch this family and fall back to zero.
    """
    ERROR_PREFIX = "LB_CALC"


class MissingRequiredField(CalculationError):
    """A billing model needs a field the client record does not carry.

    Example:
        >>> raise MissingRequiredField("deal_start_date", client_id="c-1")
    """

    def __init__(
        self,
        field_name: str,
        client_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        context["field_name"] = field_name
        super().__init__(
            f"Missing required field: {field_name}",
            client_id=client_id,
            context=context,
        )
        self.field_name = field_name


class UnknownBillingModel(CalculationError):
    """The client's billing model is not one of the supported models."""

    def __init__(
        self,
        model: Any,
        client_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        context["billing_model"] = str(model)
        super().__init__(
            f"Unknown billing model: {model!r}",
            client_id=client_id,
            context=context,
        )
        self.model = model


class InvalidDateRange(CalculationError):
    """A month, anniversary or date window is outside its valid range.

    Example:
        >>> raise InvalidDateRange(
        ...     "Month must be between 1 and 12",
        ...     context={"month": 13},
        ... )
    """


# ==============================================================================
# Ledger and Configuration Exceptions
# ==============================================================================

class LedgerError(BillingException):
    """A license event cannot be recorded."""
    ERROR_PREFIX = "LB_LEDGER"


class ConfigurationError(BillingException):
    """Billing configuration is invalid or cannot be loaded."""
    ERROR_PREFIX = "LB_CONFIG"


__all__ = [
    "BillingException",
    "CalculationError",
    "MissingRequiredField",
    "UnknownBillingModel",
    "InvalidDateRange",
    "LedgerError",
    "ConfigurationError",
]
