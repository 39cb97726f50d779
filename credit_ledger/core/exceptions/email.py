"""
Email delivery exceptions
"""

from typing import Any, Optional

from .billing import ErrorCode, LedgerError

EMAIL_ERROR_CODES = (
    "CONFIG_ERROR",
    "INIT_ERROR",
    "INVALID_EMAIL",
    "DATA_ERROR",
    "TEMPLATE_ERROR",
    "SEND_ERROR",
)


class EmailServiceError(LedgerError):
    """Email failure; `code` says which stage failed"""

    code = ErrorCode.EMAIL_ERROR

    def __init__(self, message: str, code: str, details: Any = None):
        if code not in EMAIL_ERROR_CODES:
            raise ValueError(f"Unknown email error code: {code}")
        super().__init__(message, {"email_code": code, "info": details})
        # instance attribute shadows the class-level ErrorCode
        self.code = code
        self.email_details = details
