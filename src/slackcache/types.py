"""
Shared data types for slackcache.

Messages and search results arrive from the Slack Web API as plain
dictionaries and are passed through untouched; only the fields read by the
relevance scorer are listed in ``SlackMessage``.

Service boundaries return tagged results instead of raising:

    >>> result = scorer.calculate_relevance_service({"messages": [], "query": "x"})
    >>> if result.success:
    ...     print(result.data)
    ... else:
    ...     print(result.status, result.error)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Literal, TypedDict, TypeVar, Union

T = TypeVar("T")


class SlackMessage(TypedDict, total=False):
    """Subset of a Slack message payload consumed by ranking."""

    ts: str
    text: str
    user: str
    channel: str
    reactions: list[dict[str, Any]]
    reply_count: int
    thread_ts: str


@dataclass(frozen=True)
class ServiceSuccess(Generic[T]):
    data: T
    success: Literal[True] = True
    status: int = 200


@dataclass(frozen=True)
class ServiceError:
    error: str
    status: int = 500
    success: Literal[False] = False
    details: dict[str, Any] = field(default_factory=dict)


ServiceResult = Union[ServiceSuccess[T], ServiceError]
