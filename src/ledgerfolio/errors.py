"""Non-fatal data-quality signals raised while computing performance.

Nothing in the calculation path raises for a data defect. Defects are
recorded as SymbolError entries on the snapshot and announced through
``warnings.warn`` with one of the categories below, so callers can filter
or escalate them with the standard ``warnings`` filters.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class PerformanceDataWarning(UserWarning):
    """Base category for data-quality warnings emitted by the engine."""


class MissingPriceWarning(PerformanceDataWarning):
    """A required start or end-of-window market price is unavailable."""


class MissingExchangeRateWarning(PerformanceDataWarning):
    """An exchange rate is unavailable and a rate of 1 was used instead."""


class InconsistentLedgerWarning(PerformanceDataWarning):
    """The ledger sells more units than it ever bought."""


class ErrorKind(Enum):
    """Kinds of per-symbol data defects."""

    MISSING_PRICE = "MISSING_PRICE"
    INCONSISTENT_LEDGER = "INCONSISTENT_LEDGER"


@dataclass(frozen=True)
class SymbolError:
    """A data defect attributed to one instrument."""
    data_source: str
    symbol: str
    kind: ErrorKind
    message: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "data_source": self.data_source,
            "symbol": self.symbol,
            "kind": self.kind.value,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> "SymbolError":
        return cls(
            data_source=data["data_source"],
            symbol=data["symbol"],
            kind=ErrorKind(data["kind"]),
            message=data.get("message", ""),
        )


def safe_divide(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Divide two decimals, resolving a zero denominator to exactly zero."""
    if denominator == 0:
        return Decimal("0")
    return numerator / denominator
