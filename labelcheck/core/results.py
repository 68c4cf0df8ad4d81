"""
Typed results returned at external boundaries

A capability call is decoded exactly once into one of three shapes:
``Ok`` carries the decoded value, ``ParseError`` means the capability answered
but the payload could not be interpreted, ``TransportError`` means the
capability could not be reached or did not answer.
"""
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successfully decoded payload"""
    value: T


@dataclass(frozen=True)
class ParseError:
    """Payload received but not interpretable"""
    raw: str
    reason: str


@dataclass(frozen=True)
class TransportError:
    """Capability unreachable, failed or timed out"""
    cause: str
    timed_out: bool = False


CallResult = Union[Ok[T], ParseError, TransportError]
