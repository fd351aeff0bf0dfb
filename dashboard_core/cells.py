"""Raw spreadsheet cell values and their normalization.

openpyxl hands back either plain scalars or cells carrying a hyperlink; some
workbooks also store links as ``=HYPERLINK("url", "text")`` formulas. All of
these are folded into a small tagged union so the parser only ever deals with
one normalization function.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

Number = Union[int, float]

_HYPERLINK_FORMULA = re.compile(
    r'^=\s*HYPERLINK\(\s*"(?P<target>[^"]*)"\s*(?:[,;]\s*"(?P<text>[^"]*)"\s*)?\)\s*$',
    re.IGNORECASE,
)
_DECIMAL_COMMA = re.compile(r"^[+-]?\d*,\d{1,2}$")


@dataclass(frozen=True)
class Scalar:
    value: Union[str, int, float, None]


@dataclass(frozen=True)
class Hyperlink:
    target: Optional[str] = None
    text: Optional[str] = None


@dataclass(frozen=True)
class Formula:
    text: Optional[str] = None
    result: Any = None
    value: Any = None


CellValue = Union[Scalar, Hyperlink, Formula]


def _present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value != ""
    return True


def normalize(cell: Any) -> Union[str, Number]:
    """Reduce a raw cell (tagged or plain) to a plain string or number."""
    if isinstance(cell, Scalar):
        cell = cell.value
    if isinstance(cell, Hyperlink):
        if _present(cell.target):
            return str(cell.target)
        if _present(cell.text):
            return str(cell.text)
        return ""
    if isinstance(cell, Formula):
        for candidate in (cell.text, cell.result, cell.value):
            if _present(candidate):
                return candidate if isinstance(candidate, (str, int, float)) else str(candidate)
        return 0
    if cell is None:
        return ""
    if isinstance(cell, bool):
        return str(cell)
    if isinstance(cell, (str, int, float)):
        return cell
    return str(cell)


def link_text(cell: Any) -> str:
    """Text of a link-column cell, or "" when the cell holds no text.

    Numbers, booleans and dates are not links even though ``normalize`` would
    stringify some of them.
    """
    if isinstance(cell, Hyperlink):
        return str(normalize(cell))
    if isinstance(cell, Formula):
        for candidate in (cell.text, cell.result):
            if _present(candidate):
                return candidate if isinstance(candidate, str) else ""
        return ""
    if isinstance(cell, Scalar):
        cell = cell.value
    return cell if isinstance(cell, str) else ""


def to_number(value: Any) -> float:
    """Numeric coercion for the views / SI / ER columns. Never NaN or inf.

    A comma is read as a decimal separator only when it is the single comma
    in the value and is followed by one or two digits ("0,05"). Otherwise
    commas are thousands separators ("1,500" and "1,500,000").
    """
    if isinstance(value, (Scalar, Hyperlink, Formula)):
        value = normalize(value)
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        out = float(value)
    else:
        s = str(value).strip().replace(" ", "").replace(" ", "")
        if not s:
            return 0.0
        if _DECIMAL_COMMA.match(s):
            s = s.replace(",", ".")
        else:
            s = s.replace(",", "")
        try:
            out = float(s)
        except ValueError:
            return 0.0
    if math.isnan(out) or math.isinf(out):
        return 0.0
    return out


def from_openpyxl(cell: Any, formula: Any = None) -> CellValue:
    """Wrap an openpyxl cell into the tagged union.

    ``cell`` comes from a workbook opened with ``data_only=True`` (cached
    results); ``formula`` is the same cell's raw content from a workbook opened
    with ``data_only=False``, when the caller has it.
    """
    value = getattr(cell, "value", None)
    link = getattr(cell, "hyperlink", None)
    if link is not None:
        target = getattr(link, "target", None) or getattr(link, "location", None)
        text = value if isinstance(value, str) else (str(value) if value is not None else None)
        return Hyperlink(target=target, text=text)
    raw = getattr(formula, "value", formula)
    if isinstance(raw, str) and raw.lstrip().startswith("="):
        match = _HYPERLINK_FORMULA.match(raw.strip())
        if match:
            text = match.group("text")
            if text is None and isinstance(value, str):
                text = value
            return Hyperlink(target=match.group("target") or None, text=text)
        return Formula(result=value, value=raw)
    return Scalar(value)
