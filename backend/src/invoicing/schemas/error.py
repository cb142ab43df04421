"""Structured error response schemas."""
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(default=None, description="Field that caused the error (for validation errors)")
    value: Any | None = Field(default=None, description="Invalid value (for validation errors)")


class ErrorResponse(BaseModel):
    """Standard error response structure.

    Every failure the API returns carries:
    - an error type and a message fit for direct display
    - machine-readable detail codes
    - a remediation hint where one exists
    - the request id for tracing
    """

    error: str = Field(..., description="Error type (e.g., 'ValidationError', 'NotFound')")
    message: str = Field(..., description="Primary error message")
    details: list[ErrorDetail] | None = Field(
        default=None, description="Detailed error information (for validation errors)"
    )
    remediation: str | None = Field(default=None, description="Suggestion for fixing the error")
    request_id: str | None = Field(default=None, description="Request ID for tracing")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Error timestamp")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "BusinessRuleViolation",
                "message": "Payment amount exceeds remaining balance (₹236.00)",
                "details": [
                    {
                        "code": "business_rule_violation",
                        "message": "Payment amount exceeds remaining balance (₹236.00)",
                    }
                ],
                "remediation": "Record a payment no larger than the remaining balance.",
                "request_id": "req_1234567890",
                "timestamp": "2024-01-15T10:30:00Z",
            }
        }
    )


# Error codes enum for consistency
class ErrorCode:
    """Standard error codes used across the API."""

    # Validation errors (400 / 422)
    VALIDATION_ERROR = "validation_error"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    BUSINESS_RULE_VIOLATION = "business_rule_violation"
    DUPLICATE_INVOICE_NUMBER = "duplicate_invoice_number"

    # Not found errors (404)
    NOT_FOUND = "not_found"
    INVOICE_NOT_FOUND = "invoice_not_found"
    PAYMENT_NOT_FOUND = "payment_not_found"

    # Authorization errors (401)
    AUTHENTICATION_REQUIRED = "authentication_required"

    # Infrastructure errors (503)
    DATABASE_ERROR = "database_error"

    # Internal errors (500)
    INTERNAL_ERROR = "internal_error"


# Remediation hints for common errors
REMEDIATION_HINTS = {
    ErrorCode.INVOICE_NOT_FOUND: "Verify the invoice number is correct; draft invoices change number when finalized.",
    ErrorCode.PAYMENT_NOT_FOUND: "Verify the payment ID is correct and the payment was not deleted.",
    ErrorCode.DUPLICATE_INVOICE_NUMBER: "Fetch the next invoice number and submit again.",
    ErrorCode.DATABASE_ERROR: "Database temporarily unavailable. Please try again in a few moments.",
}
