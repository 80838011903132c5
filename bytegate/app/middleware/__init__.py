"""Middleware package for the gateway."""

from bytegate.app.middleware.rate_limit import (
    AdmissionController,
    get_admission_controller,
    rate_limit_headers,
)
from bytegate.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "AdmissionController",
    "get_admission_controller",
    "rate_limit_headers",
    "RequestIdMiddleware",
    "get_request_id",
]
