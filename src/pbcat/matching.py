"""Field predicate and output cap applied to the decoded message stream."""

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import Any

from pbcat.exceptions import FieldNotFoundError, InvalidMatchExpressionError
from pbcat.registry import MessageCodec

logger = logging.getLogger(__name__)


def _field_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", "replace")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    raise TypeError(f"cannot match against a value of type {type(value).__name__}")


@dataclass(frozen=True)
class MatchExpr:
    """``FieldName=regex`` predicate on a single scalar field."""

    field: str
    pattern: re.Pattern[str]

    @classmethod
    def parse(cls, expression: str) -> "MatchExpr":
        field, sep, pattern = expression.partition("=")
        field = field.strip()
        if not sep or not field:
            raise InvalidMatchExpressionError(expression, "expected a field name and '='")
        try:
            compiled = re.compile(pattern)
        except re.error as e:
            raise InvalidMatchExpressionError(expression, str(e)) from e
        return cls(field, compiled)

    def matches(self, value: Any) -> bool:
        return self.pattern.search(_field_text(value)) is not None


class MatchFilter:
    """Single-owner stage that applies the predicate and the emission cap.

    Only one thread ever iterates :meth:`filter`, so ``matched`` needs no lock.
    Once the cap is reached the filter stops pulling from its input.
    """

    def __init__(
        self,
        handle: MessageCodec,
        expr: MatchExpr | None = None,
        max_matches: int = 0,
    ) -> None:
        self.handle = handle
        self.expr = expr
        self.max_matches = max_matches
        self.matched = 0
        self.skipped = 0
        self._reported = False

    @property
    def exhausted(self) -> bool:
        return 0 < self.max_matches <= self.matched

    def _report_once(self, problem: str) -> None:
        if not self._reported:
            self._reported = True
            logger.warning(f"{problem}; skipping messages")

    def accepts(self, message: Any) -> bool:
        if self.expr is None:
            return True
        try:
            return self.expr.matches(self.handle.get_field(message, self.expr.field))
        except FieldNotFoundError as e:
            self._report_once(f"Can't find field: {e}")
        except TypeError as e:
            self._report_once(f"Field '{self.expr.field}' is not a scalar: {e}")
        self.skipped += 1
        return False

    def filter(self, messages: Iterable[Any]) -> Iterator[Any]:
        if self.exhausted:
            return
        for message in messages:
            if not self.accepts(message):
                continue
            self.matched += 1
            yield message
            if self.exhausted:
                return
