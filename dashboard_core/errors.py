from __future__ import annotations

from dataclasses import dataclass


class DashboardError(RuntimeError):
    """Base class for errors surfaced by the dashboard core."""


class SourceUnreadable(DashboardError):
    """The workbook source could not be fetched or decoded."""


class EmptyWorkbook(DashboardError):
    """The workbook decoded fine but holds no worksheets."""


class SheetRejected(DashboardError):
    """Internal: a worksheet header did not match the expected columns."""

    def __init__(self, sheet: str, header: list[str]) -> None:
        super().__init__(f"Invalid headers in sheet {sheet!r}: {header}")
        self.sheet = sheet
        self.header = header


class RowSkipped(DashboardError):
    """Internal: a single row could not be read and was dropped."""


@dataclass(frozen=True)
class InsufficientData:
    """Returned (never raised) when a trend needs more periods than exist."""

    reason: str
    required: int = 0
    available: int = 0

    def to_dict(self) -> dict:
        return {
            "status": "insufficient_data",
            "reason": self.reason,
            "required": self.required,
            "available": self.available,
        }
