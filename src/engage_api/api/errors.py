"""Translate reward engine failures into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from engage_api.services.rewards.errors import (
    ConsistencyError,
    IneligibleError,
    IssuanceConflictError,
    LedgerError,
    RewardEngineError,
    RewardNotFoundError,
    RewardValidationError,
)


def http_error(error: RewardEngineError) -> HTTPException:
    if isinstance(error, RewardNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, RewardValidationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(error), "errors": error.errors},
        )
    if isinstance(error, LedgerError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, IssuanceConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, ConsistencyError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(error),
                "storedBalance": error.stored_balance,
                "replayedBalance": error.replayed_balance,
                "storedTotalEarned": error.stored_total_earned,
                "replayedTotalEarned": error.replayed_total_earned,
            },
        )
    if isinstance(error, IneligibleError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=error.reason.value)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
