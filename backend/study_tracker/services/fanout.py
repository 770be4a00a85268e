"""Result bookkeeping for actions issued once per target."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class FanOutSuccess:
    target: str
    result: Any = None


@dataclass
class FanOutFailure:
    target: str
    error: str


@dataclass
class FanOutReport:
    """Outcome of a sequential fan-out.

    Each success keeps whatever the per-target call returned (a meeting
    id, an uploaded media item, ...). Failed targets keep the error
    message; earlier successes are never rolled back.
    """

    succeeded: list[FanOutSuccess] = field(default_factory=list)
    failed: list[FanOutFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def results(self) -> list[Any]:
        return [s.result for s in self.succeeded]

    def record_success(self, target: str, result: Any) -> None:
        self.succeeded.append(FanOutSuccess(target=target, result=result))

    def record_failure(self, target: str, error: BaseException) -> None:
        self.failed.append(FanOutFailure(target=target, error=str(error)))
