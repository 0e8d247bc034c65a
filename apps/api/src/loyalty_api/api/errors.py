"""Translate ledger errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from loyalty_api.services.ledger.errors import (
    CustomerAlreadyExistsError,
    CustomerNotFoundError,
    LedgerError,
    LedgerRejection,
    LedgerValidationError,
)

GENERIC_FAILURE_DETAIL = "Transaction failed"


def ledger_http_error(exc: LedgerError) -> HTTPException:
    if isinstance(exc, CustomerNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message)
    if isinstance(exc, CustomerAlreadyExistsError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": exc.code, "message": exc.message, "customerId": exc.customer_id},
        )
    if isinstance(exc, LedgerValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
    if isinstance(exc, LedgerRejection):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"code": exc.code, "message": exc.message},
        )
    # Consistency violations and storage failures are not exposed to callers.
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=GENERIC_FAILURE_DETAIL)


__all__ = ["GENERIC_FAILURE_DETAIL", "ledger_http_error"]
