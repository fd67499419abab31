# kickbook/app/errors.py
from __future__ import annotations

import enum

from fastapi import HTTPException


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    POLICY_VIOLATION = "policy_violation"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    INVALID_AMOUNT = "invalid_amount"
    EXTERNAL_SERVICE_FAILURE = "external_service_failure"


_HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.POLICY_VIOLATION: 400,
    ErrorKind.INSUFFICIENT_BALANCE: 402,
    ErrorKind.INVALID_AMOUNT: 400,
    ErrorKind.EXTERNAL_SERVICE_FAILURE: 502,
}


def http_status_for(kind: ErrorKind | None) -> int:
    if kind is None:
        return 500
    return _HTTP_STATUS.get(kind, 500)


class ServiceError(Exception):
    """Domain failure carrying a closed error kind callers can branch on."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_http(self) -> HTTPException:
        return HTTPException(status_code=http_status_for(self.kind), detail=self.message)


class LedgerError(ServiceError):
    pass


class ExternalServiceError(ServiceError):
    def __init__(self, message: str):
        super().__init__(ErrorKind.EXTERNAL_SERVICE_FAILURE, message)
