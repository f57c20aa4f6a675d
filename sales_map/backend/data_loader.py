"""
Spreadsheet decoding and row normalization for vehicle sales uploads.
Handles first-sheet extraction, column-name variants, numeric coercion and
per-row validation into SalesRecordCreate models.
"""
import logging
import math
from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any

import numpy as np
import pandas as pd
from pydantic import ValidationError

from models import TRACKED_YEARS, SalesRecordCreate

logger = logging.getLogger(__name__)


# ============================================================================
# Column Spellings
# ============================================================================

# Canonical field -> accepted column labels, in priority order.
# Labels are compared after strip + lowercase + whitespace collapsing.
COLUMN_SPELLINGS: dict[str, list[str]] = {
    "maker": ["maker", "manufacturer", "company"],
    "rto": ["rto", "rto_code", "rto code"],
    "year": ["year"],
    "state": ["state"],
    "city": ["city"],
    "district": ["district"],
    "total": ["total"],
}

MONTH_SPELLINGS: dict[str, list[str]] = {
    "JAN": ["jan", "january"],
    "FEB": ["feb", "february"],
    "MAR": ["mar", "march"],
    "APR": ["apr", "april"],
    "MAY": ["may"],
    "JUN": ["jun", "june"],
    "JUL": ["jul", "july"],
    "AUG": ["aug", "august"],
    "SEP": ["sep", "sept", "september"],
    "OCT": ["oct", "october"],
    "NOV": ["nov", "november"],
    "DEC": ["dec", "december"],
}

# Fields a row cannot be stored without
REQUIRED_FIELDS = ["maker", "rto", "state", "city"]

FIELD_DISPLAY_NAMES = {
    "maker": "Maker",
    "rto": "RTO",
    "year": "Year",
    "state": "State",
    "city": "City",
}

NO_VALID_DATA_MESSAGE = (
    "No valid data found in the Excel file. Please check the format and required columns."
)


def normalize_label(label: Any) -> str:
    """Normalize a column label for spelling comparison."""
    return " ".join(str(label).split()).lower()


def normalize_chunk_size(total_rows: int) -> int:
    """Rows normalized between event-loop yields: 1/20th of the file, within [500, 2000]."""
    return min(2000, max(500, total_rows // 20))


# ============================================================================
# Value Coercion
# ============================================================================

def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def to_int(value: Any, default: int = 0) -> int:
    """
    Coerce a spreadsheet cell to int.
    Accepts ints, finite floats, and numeric strings ("1,234", "2023.0").
    Anything else yields the default.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, np.integer)):
        return int(value)
    if isinstance(value, (float, np.floating)):
        if not math.isfinite(value):
            return default
        return int(value)
    if isinstance(value, str):
        cleaned = value.replace(",", "").strip()
        if not cleaned:
            return default
        try:
            number = float(cleaned)
        except ValueError:
            return default
        return int(number) if math.isfinite(number) else default
    return default


def to_text(value: Any) -> str:
    """Coerce a cell to a trimmed string; integral floats lose their '.0'."""
    if _is_blank(value):
        return ""
    if isinstance(value, (float, np.floating)) and float(value).is_integer():
        return str(int(value))
    return str(value).strip()


# ============================================================================
# Spreadsheet Decoding
# ============================================================================

class SpreadsheetError(Exception):
    """Raised when an uploaded file cannot be read as a spreadsheet."""


@dataclass
class SheetData:
    columns: list[str]
    rows: list[dict[str, Any]]  # column label -> cell value (None for empty cells)
    sheet_name: str = ""


def read_first_sheet(content: bytes) -> SheetData:
    """Decode raw workbook bytes and return the first sheet as row mappings."""
    if not content:
        raise SpreadsheetError("Uploaded file is empty")

    try:
        with pd.ExcelFile(BytesIO(content)) as xls:
            if not xls.sheet_names:
                raise SpreadsheetError("Workbook contains no sheets")
            sheet_name = str(xls.sheet_names[0])
            df = xls.parse(xls.sheet_names[0])
    except SpreadsheetError:
        raise
    except Exception as exc:
        raise SpreadsheetError(f"Failed to read spreadsheet: {exc}") from exc

    df.columns = [str(c).strip() for c in df.columns]
    df = df.dropna(how="all")
    df = df.astype(object).where(pd.notnull(df), None)

    return SheetData(
        columns=list(df.columns),
        rows=df.to_dict(orient="records"),
        sheet_name=sheet_name,
    )


# ============================================================================
# Row Normalization
# ============================================================================

def _first_value(cells: Mapping[str, Any], spellings: list[str]) -> Any:
    """Return the first non-blank cell among the accepted spellings."""
    for label in spellings:
        value = cells.get(label)
        if not _is_blank(value):
            return value
    return None


def _normalized_cells(row: Mapping[Any, Any]) -> dict[str, Any]:
    cells: dict[str, Any] = {}
    for key, value in row.items():
        # Earlier columns win when two labels normalize to the same name
        cells.setdefault(normalize_label(key), value)
    return cells


def missing_required_columns(columns: Iterable[Any]) -> list[str]:
    """Display names of required fields that no column label matches."""
    present = {normalize_label(c) for c in columns}
    missing = []
    for name in REQUIRED_FIELDS + ["year"]:
        if not any(label in present for label in COLUMN_SPELLINGS[name]):
            missing.append(FIELD_DISPLAY_NAMES[name])
    return missing


@dataclass
class SheetNormalizer:
    """
    Turns raw sheet rows into validated sales records.

    Invalid rows are skipped, never raised. Encountered makers and RTOs are
    collected for diagnostics only.
    """
    makers: set[str] = field(default_factory=set)
    rtos: set[str] = field(default_factory=set)
    skip_reasons: Counter = field(default_factory=Counter)
    accepted: int = 0

    def normalize_row(self, row: Mapping[Any, Any]) -> SalesRecordCreate | None:
        cells = _normalized_cells(row)

        maker = to_text(_first_value(cells, COLUMN_SPELLINGS["maker"]))
        rto = to_text(_first_value(cells, COLUMN_SPELLINGS["rto"]))
        state = to_text(_first_value(cells, COLUMN_SPELLINGS["state"]))
        city = to_text(_first_value(cells, COLUMN_SPELLINGS["city"]))
        district = to_text(_first_value(cells, COLUMN_SPELLINGS["district"]))
        year = to_int(_first_value(cells, COLUMN_SPELLINGS["year"]))

        if not maker or not rto or not state or not city:
            logger.debug("Skipping row with missing fields: maker=%r rto=%r state=%r city=%r",
                         maker, rto, state, city)
            self.skip_reasons["missing_fields"] += 1
            return None

        self.makers.add(maker)
        self.rtos.add(rto)

        if year not in TRACKED_YEARS:
            self.skip_reasons["year"] += 1
            return None

        monthly = {
            month: to_int(_first_value(cells, spellings))
            for month, spellings in MONTH_SPELLINGS.items()
        }
        year_total = sum(monthly.values())
        explicit_total = to_int(_first_value(cells, COLUMN_SPELLINGS["total"]))

        try:
            record = SalesRecordCreate(
                state=state,
                city=city,
                maker=maker,
                rto=rto,
                district=district,
                latitude=0.0,
                longitude=0.0,
                total=explicit_total or year_total,
                monthly=monthly,
                **{f"sales{year}": year_total},
            )
        except ValidationError as exc:
            logger.debug("Skipping row that failed validation: %s", exc.errors())
            self.skip_reasons["invalid"] += 1
            return None

        self.accepted += 1
        return record

    def normalize_rows(self, rows: Iterable[Mapping[Any, Any]]) -> list[SalesRecordCreate]:
        records = []
        for row in rows:
            record = self.normalize_row(row)
            if record is not None:
                records.append(record)
        return records

    @property
    def skipped(self) -> int:
        return sum(self.skip_reasons.values())

    def no_valid_data_message(self, columns: Iterable[Any]) -> str:
        """Explain an upload that produced no records, naming what looks wrong."""
        missing = missing_required_columns(columns)
        if missing:
            return f"{NO_VALID_DATA_MESSAGE} Missing columns: {', '.join(missing)}."
        if self.skip_reasons["year"]:
            years = ", ".join(str(y) for y in TRACKED_YEARS)
            return f"{NO_VALID_DATA_MESSAGE} Only years {years} are supported."
        return NO_VALID_DATA_MESSAGE
