"""
Common schemas for API responses and error handling.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ErrorDetail(BaseModel):
    """Schema for detailed error information."""

    error_code: str = Field(..., description="Error code for programmatic handling")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error context")
    suggestions: Optional[List[str]] = Field(None, description="Helpful suggestions for resolving the error")
    retry_after: Optional[int] = Field(None, description="Seconds to wait before retrying")


class ErrorResponse(BaseModel):
    """Schema for API error responses."""

    error: ErrorDetail
    error_id: str
    timestamp: str

    model_config = ConfigDict(json_schema_extra={
        "examples": [
            {
                "error": {
                    "error_code": "CAPACITY_EXCEEDED",
                    "message": "Event is full: requested 2 seats, 0 remaining",
                    "details": {
                        "requested": 2,
                        "available": 0,
                        "event_id": "123e4567-e89b-12d3-a456-426614174000"
                    },
                    "suggestions": ["Try registering for fewer seats", "Check other events"]
                },
                "error_id": "3f0f4a1e-7a55-4d43-9a59-4c2f4b6f0f1d",
                "timestamp": "2026-05-01T12:00:00+00:00"
            },
            {
                "error": {
                    "error_code": "ALREADY_CHECKED_IN",
                    "message": "Ticket RP-LZ4K2J1A-9F3B2C1D already checked in",
                    "details": {"ticket_code": "RP-LZ4K2J1A-9F3B2C1D"}
                },
                "error_id": "6b8f0d7c-1c2e-4e0b-8f6a-0d6c9b7e2a11",
                "timestamp": "2026-05-01T18:03:11+00:00"
            }
        ]
    })


class SuccessResponse(BaseModel):
    """Schema for simple success responses."""

    message: str = Field(..., description="Success message")
    data: Optional[Dict[str, Any]] = Field(None, description="Additional response data")
