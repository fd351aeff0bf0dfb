from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Tuple, Union

import requests
from openpyxl import load_workbook

from dashboard_core.cells import from_openpyxl, link_text, normalize, to_number
from dashboard_core.config import DEFAULT_EXCLUDED_SHEETS
from dashboard_core.errors import EmptyWorkbook, RowSkipped, SheetRejected, SourceUnreadable
from dashboard_core.models import UNSPECIFIED_PERIOD, ParseResult, Record
from dashboard_core.periods import PeriodMatcher

logger = logging.getLogger(__name__)

EXPECTED_HEADER = ["Ссылка", "Просмотры", "СИ", "ЕР"]
LINK_COL, VIEWS_COL, SI_COL, ER_COL = 1, 2, 3, 4

Source = Union[str, Path, bytes, bytearray]


@dataclass(frozen=True)
class SheetResult:
    name: str
    records: Tuple[Record, ...] = field(default_factory=tuple)


# ---------------- Header / row helpers ----------------
def _header_token(cell: Any) -> str:
    return str(normalize(from_openpyxl(cell))).strip().lower()


def read_header(worksheet) -> List[str]:
    row = next(worksheet.iter_rows(min_row=1, max_row=1), ())
    header = [_header_token(c) for c in row]
    while header and header[-1] == "":
        header.pop()
    return header


def header_matches(header: List[str]) -> bool:
    return header == [h.strip().lower() for h in EXPECTED_HEADER]


def validate_header(worksheet) -> None:
    header = read_header(worksheet)
    if not header_matches(header):
        raise SheetRejected(worksheet.title, header)


def _row_is_empty(row: Iterable[Any]) -> bool:
    return all(getattr(c, "value", None) is None and getattr(c, "hyperlink", None) is None for c in row)


def _cell_at(row: Tuple[Any, ...], col: int) -> Any:
    return row[col - 1] if len(row) >= col else None


def _formula_at(formula_ws, row_idx: int, col: int) -> Any:
    if formula_ws is None:
        return None
    return formula_ws.cell(row=row_idx, column=col)


def _non_negative(value: float, label: str, sheet: str, row_idx: int) -> float:
    if value < 0:
        logger.warning("Negative %s in sheet %r row %d: %s, using 0", label, sheet, row_idx, value)
        return 0.0
    return value


def _parse_row(
    row: Tuple[Any, ...],
    row_idx: int,
    *,
    sheet: str,
    current_period: str,
    matcher: PeriodMatcher,
    formula_ws=None,
) -> Tuple[Optional[str], Optional[Record]]:
    link = link_text(from_openpyxl(_cell_at(row, LINK_COL), _formula_at(formula_ws, row_idx, LINK_COL)))
    if matcher.is_marker(link):
        return link.strip(), None
    if not link.strip():
        logger.debug("No link in sheet %r row %d", sheet, row_idx)
        return None, None

    def number(col: int) -> float:
        cell = _cell_at(row, col)
        if cell is None:
            return 0.0
        return to_number(from_openpyxl(cell, _formula_at(formula_ws, row_idx, col)))

    record = Record(
        link=link.strip(),
        views=_non_negative(number(VIEWS_COL), "views", sheet, row_idx),
        si=_non_negative(number(SI_COL), "SI", sheet, row_idx),
        er=number(ER_COL),
        project=sheet,
        period=current_period,
    )
    return None, record


def parse_row(
    row: Tuple[Any, ...],
    row_idx: int,
    *,
    sheet: str,
    current_period: str,
    matcher: PeriodMatcher,
    formula_ws=None,
) -> Tuple[Optional[str], Optional[Record]]:
    """Return (new_period, record); at most one of them is set. Raises RowSkipped."""
    try:
        return _parse_row(
            row,
            row_idx,
            sheet=sheet,
            current_period=current_period,
            matcher=matcher,
            formula_ws=formula_ws,
        )
    except Exception as exc:
        raise RowSkipped(f"sheet {sheet!r} row {row_idx}: {type(exc).__name__}: {exc}") from exc


# ---------------- Sheet parser ----------------
def parse_sheet(worksheet, *, matcher: Optional[PeriodMatcher] = None, formula_ws=None) -> SheetResult:
    """Parse one worksheet. Raises SheetRejected when the header row is wrong."""
    matcher = matcher or PeriodMatcher.pattern()
    sheet = worksheet.title
    validate_header(worksheet)

    current_period = UNSPECIFIED_PERIOD
    records: List[Record] = []
    periods_seen: List[str] = []
    skipped = 0
    for row_idx, row in enumerate(worksheet.iter_rows(min_row=2), start=2):
        if _row_is_empty(row):
            continue
        try:
            new_period, record = parse_row(
                row,
                row_idx,
                sheet=sheet,
                current_period=current_period,
                matcher=matcher,
                formula_ws=formula_ws,
            )
        except RowSkipped as exc:
            skipped += 1
            logger.warning("Skipping row: %s", exc)
            continue
        if new_period is not None:
            current_period = new_period
            periods_seen.append(new_period)
        elif record is not None:
            records.append(record)

    logger.info(
        "Sheet %r: %d records, %d periods, %d rows skipped",
        sheet,
        len(records),
        len(set(periods_seen)),
        skipped,
    )
    return SheetResult(name=sheet, records=tuple(records))


# ---------------- Workbook parser ----------------
def parse_loaded_workbook(
    workbook,
    *,
    formulas=None,
    matcher: Optional[PeriodMatcher] = None,
    excluded_sheets: Iterable[str] = DEFAULT_EXCLUDED_SHEETS,
) -> ParseResult:
    worksheets = list(getattr(workbook, "worksheets", None) or [])
    if not worksheets:
        raise EmptyWorkbook("Excel file is empty: no worksheets")

    excluded = set(excluded_sheets)
    all_records: List[Record] = []
    projects: List[str] = []
    for ws in worksheets:
        if ws.title in excluded:
            logger.info("Sheet %r excluded from processing", ws.title)
            continue
        formula_ws = formulas[ws.title] if formulas is not None and ws.title in formulas.sheetnames else None
        try:
            result = parse_sheet(ws, matcher=matcher, formula_ws=formula_ws)
        except SheetRejected as exc:
            logger.warning("%s", exc)
            continue
        if result.records:
            all_records.extend(result.records)
            projects.append(result.name)

    logger.info("Workbook parsed: %d records across %d projects", len(all_records), len(projects))
    return ParseResult(records=tuple(all_records), projects=tuple(projects))


def parse_workbook_bytes(
    data: bytes,
    *,
    matcher: Optional[PeriodMatcher] = None,
    excluded_sheets: Iterable[str] = DEFAULT_EXCLUDED_SHEETS,
) -> ParseResult:
    try:
        workbook = load_workbook(BytesIO(data), data_only=True)
        formulas = load_workbook(BytesIO(data), data_only=False)
    except Exception as exc:
        raise SourceUnreadable(f"Could not open Excel file: {type(exc).__name__}: {exc}") from exc
    try:
        return parse_loaded_workbook(workbook, formulas=formulas, matcher=matcher, excluded_sheets=excluded_sheets)
    finally:
        workbook.close()
        formulas.close()


# ---------------- Byte source ----------------
def is_url(source: Source) -> bool:
    return isinstance(source, str) and source.lower().startswith(("http://", "https://"))


def _read_path(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise SourceUnreadable(f"Excel file not found ({exc.strerror or exc}): {path}") from exc


def _fetch_url(url: str, timeout: float, session: Optional[requests.Session]) -> bytes:
    http = session or requests
    try:
        response = http.get(
            url,
            params={"v": int(time.time() * 1000)},
            headers={"Cache-Control": "no-cache, no-store, must-revalidate", "Pragma": "no-cache"},
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise SourceUnreadable(f"Network error fetching Excel file: {exc}") from exc
    if not response.ok:
        raise SourceUnreadable(f"Excel file not found ({response.status_code} {response.reason})")
    return response.content


async def fetch_workbook_bytes(
    source: Source,
    *,
    timeout: float = 30.0,
    session: Optional[requests.Session] = None,
) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    if is_url(source):
        logger.info("Fetching Excel file from %s", source)
        return await asyncio.to_thread(_fetch_url, str(source), timeout, session)
    return await asyncio.to_thread(_read_path, Path(source))


async def parse_workbook(
    source: Source,
    *,
    matcher: Optional[PeriodMatcher] = None,
    excluded_sheets: Iterable[str] = DEFAULT_EXCLUDED_SHEETS,
    session: Optional[requests.Session] = None,
) -> ParseResult:
    data = await fetch_workbook_bytes(source, session=session)
    return await asyncio.to_thread(
        parse_workbook_bytes, data, matcher=matcher, excluded_sheets=tuple(excluded_sheets)
    )


# ---------------- Cache ----------------
class ParseCache:
    """Last successful parse plus its timestamp; valid while ``now - cached_at < ttl``."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._source: Optional[str] = None
        self._result: Optional[ParseResult] = None
        self._cached_at: Optional[float] = None

    @property
    def cached_at(self) -> Optional[float]:
        return self._cached_at

    def is_fresh(self, source: Source) -> bool:
        if self._result is None or self._cached_at is None or self._source != str(source):
            return False
        return self._clock() - self._cached_at < self.ttl_seconds

    def store(self, source: Source, result: ParseResult) -> ParseResult:
        self._source = str(source)
        self._result = result
        self._cached_at = self._clock()
        return result

    def invalidate(self) -> None:
        self._source = None
        self._result = None
        self._cached_at = None

    def get(self, source: Source, loader: Callable[[], ParseResult], *, bypass: bool = False) -> ParseResult:
        if not bypass and self.is_fresh(source):
            return self._result  # type: ignore[return-value]
        return self.store(source, loader())

    async def aget(
        self,
        source: Source,
        loader: Callable[[], Awaitable[ParseResult]],
        *,
        bypass: bool = False,
    ) -> ParseResult:
        if not bypass and self.is_fresh(source):
            return self._result  # type: ignore[return-value]
        return self.store(source, await loader())
