import threading
from io import BytesIO

import pandas as pd
import pytest

from geocoder import GeocodingError
from models import SalesRecordCreate
from store import SalesStore

MONTHS = ["JAN", "FEB", "MAR", "APR", "MAY", "JUN", "JUL", "AUG", "SEP", "OCT", "NOV", "DEC"]


class FakeGeocoder:
    """Stands in for GoogleGeocoder; answers from a dict and counts calls."""

    def __init__(self, answers=None, failing=(), on_lookup=None):
        self.answers = answers or {}
        self.failing = set(failing)
        self.on_lookup = on_lookup
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def lookup(self, address):
        with self._lock:
            self.calls.append(address)
        if self.on_lookup is not None:
            self.on_lookup(address)
        if address in self.failing:
            raise GeocodingError(f"Geocoding status OVER_QUERY_LIMIT: {address}")
        return self.answers.get(address)

    def fetch(self, address):
        return {"status": "OK", "results": [], "address": address}


def sales_row(maker="Acme", rto="MH01", state="Maharashtra", city="Mumbai",
              district="Mumbai", year=2023, months=None, **extra):
    """A raw spreadsheet row as the decoder would produce it."""
    row = {
        "Maker": maker,
        "RTO": rto,
        "State": state,
        "City": city,
        "District": district,
        "Year": year,
    }
    for name, value in zip(MONTHS, months or [1] + [0] * 11):
        row[name] = value
    row.update(extra)
    return row


def make_record(maker="Acme", rto="MH01", state="Maharashtra", city="Mumbai", district="Mumbai", **kwargs):
    return SalesRecordCreate(maker=maker, rto=rto, state=state, city=city, district=district, **kwargs)


def excel_bytes(rows, columns=None) -> bytes:
    df = pd.DataFrame(rows, columns=columns)
    buf = BytesIO()
    df.to_excel(buf, index=False, engine="openpyxl")
    return buf.getvalue()


@pytest.fixture
def store():
    return SalesStore()
