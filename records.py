import math
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Mapping, Optional, Tuple

import pandas as pd

# ---------------------------
# Placeholders
# ---------------------------
PLACEHOLDER = "N/A"
AMOUNT_PLACEHOLDER = "-"
DEFAULT_STATUS_LABEL = "Waiting"
ELLIPSIS = "..."

# Fixed display widths for the table report (characters)
COLLEGE_CHARS = 25
DEPARTMENT_CHARS = 15
LOCATION_CHARS = 15
DESCRIPTION_CHARS = 45


# ---------------------------
# Small helpers
# ---------------------------
def is_missing(value) -> bool:
    """True for None, empty strings and NaN (JSON parsers accept NaN tokens)."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if pd.api.types.is_scalar(value):
        try:
            return bool(pd.isna(value))
        except (TypeError, ValueError):
            return False
    return False


def safe_float(value, default=0.0):
    try:
        if is_missing(value):
            return default
        return float(value)
    except (ValueError, TypeError):
        return default


def display_text(value, placeholder=PLACEHOLDER) -> str:
    if is_missing(value):
        return placeholder
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    return str(value)


# ---------------------------
# Status
# ---------------------------
class RequestStatus(str, Enum):
    """Known request statuses; anything unrecognised is UNKNOWN."""

    WAITING = "waiting"
    APPROVED = "approved"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"
    UNKNOWN = "unknown"

    @classmethod
    def from_label(cls, label) -> "RequestStatus":
        if is_missing(label):
            return cls.UNKNOWN
        lowered = str(label).lower()
        for status in _MATCH_ORDER:
            if status.value in lowered:
                return status
        return cls.UNKNOWN

    @property
    def color(self) -> str:
        return STATUS_COLORS[self]


# Substring checks run in this order, so "Approved - Processing" is APPROVED.
_MATCH_ORDER = (
    RequestStatus.APPROVED,
    RequestStatus.PROCESSING,
    RequestStatus.COMPLETED,
    RequestStatus.REJECTED,
    RequestStatus.WAITING,
)

WAITING_COLOR = "#E64D4D"

STATUS_COLORS = {
    RequestStatus.WAITING: WAITING_COLOR,
    RequestStatus.APPROVED: "#FFB700",
    RequestStatus.PROCESSING: "#42794D",
    RequestStatus.COMPLETED: "#09034D",
    RequestStatus.REJECTED: "#969696",
    RequestStatus.UNKNOWN: WAITING_COLOR,
}


def status_color(label) -> str:
    return RequestStatus.from_label(label).color


# ---------------------------
# Dates
# ---------------------------
def parse_date(value) -> Optional[pd.Timestamp]:
    """
    Parse a submission date from whatever the client sent.

    Accepts date strings, date/datetime objects, epoch milliseconds and
    document-store timestamps ({"seconds": ...} or {"_seconds": ...}).
    Returns None when the value is missing or cannot be parsed.
    """
    if is_missing(value) or isinstance(value, bool):
        return None
    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        seconds = safe_float(seconds, None)
        if seconds is None:
            return None
        value = seconds * 1000
    try:
        if isinstance(value, (int, float)):
            parsed = pd.to_datetime(value, unit="ms", errors="coerce")
        elif isinstance(value, (datetime, date, str)):
            parsed = pd.to_datetime(value, errors="coerce")
        else:
            return None
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    return parsed


def format_date(value) -> str:
    """Human readable date, e.g. "Jan 5, 2024"; "N/A" when unusable."""
    parsed = parse_date(value)
    if parsed is None:
        return PLACEHOLDER
    return f"{parsed.strftime('%b')} {parsed.day}, {parsed.year}"


def format_timestamp(moment: datetime) -> str:
    """US-style generation stamp, e.g. "1/5/2024, 3:07:09 PM"."""
    hour = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    return (f"{moment.month}/{moment.day}/{moment.year}, "
            f"{hour}:{moment.minute:02d}:{moment.second:02d} {meridiem}")


# ---------------------------
# Request record
# ---------------------------
class RequestRecord:
    """Read-only view over one request mapping posted by the client."""

    def __init__(self, data: Mapping[str, Any]):
        self.data = data

    def _get(self, key, placeholder=PLACEHOLDER) -> str:
        return display_text(self.data.get(key), placeholder)

    @property
    def request_number(self) -> str:
        return self._get("Request Number")

    @property
    def status_label(self) -> str:
        return self._get("Status", DEFAULT_STATUS_LABEL)

    @property
    def status(self) -> RequestStatus:
        return RequestStatus.from_label(self.data.get("Status"))

    @property
    def name(self) -> str:
        return self._get("Name")

    @property
    def college(self) -> str:
        return self._get("College")

    @property
    def department(self) -> str:
        return self._get("Department")

    @property
    def location(self) -> str:
        return self._get("Location")

    @property
    def mobile(self) -> str:
        return self._get("Mobile Number")

    @property
    def description(self) -> str:
        return self._get("Description")

    @property
    def amount(self) -> str:
        return self._get("Amount", AMOUNT_PLACEHOLDER)

    @property
    def submitted(self):
        value = self.data.get("Request Date")
        if is_missing(value):
            value = self.data.get("Date")
        return value

    def detail_fields(self) -> List[Tuple[str, str]]:
        return [
            ("Date Submitted:", format_date(self.submitted)),
            ("Submitted by:", self.name),
            ("College:", self.college),
            ("Department:", self.department),
            ("Location:", self.location),
            ("Mobile:", self.mobile),
        ]

    def table_cells(self) -> List[str]:
        """Cell text for one table row, in column order."""
        return [
            self.request_number,
            self.status_label,
            self.college[:COLLEGE_CHARS],
            self.department[:DEPARTMENT_CHARS],
            self.location[:LOCATION_CHARS],
            # The marker is appended even to short descriptions.
            self.description[:DESCRIPTION_CHARS] + ELLIPSIS,
            format_date(self.data.get("Request Date")),
            self.amount,
        ]
