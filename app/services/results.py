"""
Outcome types returned by the callable operations.

Services return one of these instead of raising; `unwrap` is the single
place where they become HTTP status codes.
"""
from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from fastapi import HTTPException, status

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class NotFound:
    message: str


@dataclass(frozen=True)
class PermissionDenied:
    message: str


@dataclass(frozen=True)
class InvalidArgument:
    message: str


@dataclass(frozen=True)
class Internal:
    message: str


Outcome = Union[Ok[Any], NotFound, PermissionDenied, InvalidArgument, Internal]

STATUS_CODES = {
    NotFound: status.HTTP_404_NOT_FOUND,
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    InvalidArgument: status.HTTP_400_BAD_REQUEST,
    Internal: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def unwrap(outcome: Outcome) -> Any:
    if isinstance(outcome, Ok):
        return outcome.value
    raise HTTPException(status_code=STATUS_CODES[type(outcome)], detail=outcome.message)
