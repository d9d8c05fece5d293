"""Exceptions raised by the EPay client.

Every error carries a numeric ``code`` so callers can tell configuration,
validation, signature, gateway and network failures apart.
"""

from __future__ import annotations

ERR_CODE_INVALID_CONFIG = 1001
ERR_CODE_SIGN_FAILED = 1002
ERR_CODE_VERIFY_FAILED = 1003
ERR_CODE_API_ERROR = 1004
ERR_CODE_NETWORK_ERROR = 1005
ERR_CODE_INVALID_RESPONSE = 1006
ERR_CODE_INVALID_PARAM = 1007

MSG_INVALID_PID = "invalid PID: must be greater than 0"
MSG_INVALID_KEY = "invalid Key: must not be empty"
MSG_INVALID_API_URL = "invalid APIBaseURL: must not be empty"

MSG_MISSING_OUT_TRADE_NO = "out_trade_no is required"
MSG_MISSING_NOTIFY_URL = "notify_url is required"
MSG_MISSING_NAME = "name is required"
MSG_INVALID_MONEY = "money must be greater than 0"
MSG_MISSING_TRADE_NO = "trade_no or out_trade_no is required"

MSG_MISSING_SIGN = "missing sign parameter"
MSG_SIGN_VERIFY_FAILED = "signature verification failed"


class EPayError(Exception):
    code = 0

    def __init__(self, message: str, cause: BaseException | None = None, code: int | None = None):
        if code is not None:
            self.code = code
        self.message = message
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        text = f"epay error [{self.code}]: {self.message}"
        if self.cause is not None:
            text += f", caused by: {self.cause}"
        return text


class ConfigError(EPayError):
    code = ERR_CODE_INVALID_CONFIG


class ValidationError(EPayError):
    """A request failed a business rule before anything was signed."""

    code = ERR_CODE_INVALID_PARAM


class SignatureError(EPayError):
    """A notification was unsigned or its signature did not match."""

    code = ERR_CODE_VERIFY_FAILED


class APIError(EPayError):
    code = ERR_CODE_API_ERROR


class NetworkError(EPayError):
    code = ERR_CODE_NETWORK_ERROR


class ResponseError(EPayError):
    code = ERR_CODE_INVALID_RESPONSE


__all__ = [
    "APIError",
    "ConfigError",
    "EPayError",
    "NetworkError",
    "ResponseError",
    "SignatureError",
    "ValidationError",
]
