"""
Atelier Exception Hierarchy

All exceptions include code, message, and details so routers can translate
them into HTTP responses and the audit log keeps the carrier's own wording.

Exception Hierarchy:
    AtelierBaseError
    └── ShippingError
        ├── ShippingConfigurationError   missing token, customer, postal code
        ├── ShippingNotFoundError        task or shipment does not exist
        ├── ShippingStateError           operation not allowed in current status
        └── CarrierAPIError              carrier call failed or answered garbage
"""
import logging
from typing import Optional, Dict, Any

logger = logging.getLogger(__name__)


class AtelierBaseError(Exception):
    """
    Base exception for all Atelier custom errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
    """

    default_code: str = "ATELIER_ERROR"
    default_severity: str = "P2"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


# =============================================================================
# SHIPPING ERRORS
# =============================================================================

class ShippingError(AtelierBaseError):
    """Base exception for shipping-related errors."""
    default_code = "SHIPPING_ERROR"
    default_severity = "P1"


class ShippingConfigurationError(ShippingError):
    """Required data is missing; raised before any carrier call is made."""
    default_code = "SHIPPING_NOT_CONFIGURED"
    default_severity = "P2"


class ShippingNotFoundError(ShippingError):
    """Task or shipment record not found."""
    default_code = "NOT_FOUND"
    default_severity = "P3"


class ShippingStateError(ShippingError):
    """Operation is not allowed for the shipment's current status."""
    default_code = "INVALID_SHIPMENT_STATE"
    default_severity = "P3"


class CarrierAPIError(ShippingError):
    """
    The carrier API failed, was unreachable, or returned an unusable body.

    details["status"] holds the HTTP status (when there was one) and
    details["response"] the carrier's raw text.
    """
    default_code = "CARRIER_API_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_text: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status"] = status_code
        if response_text is not None:
            details["response"] = response_text
        super().__init__(message, details=details, **kwargs)

    @property
    def status_code(self) -> Optional[int]:
        return self.details.get("status")
