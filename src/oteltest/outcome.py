"""Typed results of running a test body."""

from __future__ import annotations

import enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from oteltest.errors import TestFailure


class OutcomeKind(str, enum.Enum):
    SUCCESS = "success"
    BODY_ERROR = "body_error"
    ABNORMAL = "abnormal"


class TestOutcome(BaseModel):
    """What the host framework gets told about a finished body."""

    __test__: ClassVar[bool] = False

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: OutcomeKind
    message: str = ""
    error: BaseException | None = Field(default=None, exclude=True, repr=False)

    @classmethod
    def success(cls) -> TestOutcome:
        return cls(kind=OutcomeKind.SUCCESS)

    @classmethod
    def body_error(cls, message: str, error: BaseException | None = None) -> TestOutcome:
        return cls(kind=OutcomeKind.BODY_ERROR, message=message, error=error)

    @classmethod
    def abnormal(cls, message: str, error: BaseException | None = None) -> TestOutcome:
        return cls(kind=OutcomeKind.ABNORMAL, message=message, error=error)

    @property
    def failed(self) -> bool:
        return self.kind is not OutcomeKind.SUCCESS

    def raise_for_failure(self) -> None:
        """Re-signal a failed outcome as ``TestFailure`` chained to the original error."""
        if self.failed:
            raise TestFailure(self) from self.error


class BodyResultKind(str, enum.Enum):
    OK = "ok"
    ERR = "err"
    ABORTED = "aborted"


class BodyResult(BaseModel):
    """Join result of the isolated unit of work that ran a body."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: BodyResultKind
    value: Any = None
    error: BaseException | None = None

    @classmethod
    def ok(cls, value: Any = None) -> BodyResult:
        return cls(kind=BodyResultKind.OK, value=value)

    @classmethod
    def err(cls, error: BaseException) -> BodyResult:
        return cls(kind=BodyResultKind.ERR, error=error)

    @classmethod
    def aborted(cls, error: BaseException) -> BodyResult:
        return cls(kind=BodyResultKind.ABORTED, error=error)

    @property
    def message(self) -> str:
        if self.error is None:
            return ""
        return describe_exception(self.error)

    def to_outcome(self) -> TestOutcome:
        if self.kind is BodyResultKind.ERR:
            return TestOutcome.body_error(self.message, self.error)
        if self.kind is BodyResultKind.ABORTED:
            return TestOutcome.abnormal(self.message, self.error)
        return TestOutcome.success()


def describe_exception(exc: BaseException) -> str:
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__
