"""
Shared fixtures: small hand-built datasets and pipeline settings.
"""
import os

# The API module reads settings at import time; keep the limiter out of the way of tests.
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "1000")

import pytest

from insight_weaver.core.config import Settings
from insight_weaver.services.metadata import ColumnIndex
from insight_weaver.services.profiler import clean_dataset


SALES_ROWS = [
    ["Month", "Region", "Revenue"],
    ["Jan", "North", "12000"],
    ["Jan", "South", "8000"],
    ["Jan", "East", "9500"],
    ["Feb", "North", "13500"],
    ["Feb", "South", "7600"],
    ["Feb", "East", "10200"],
    ["Mar", "North", "12800"],
    ["Mar", "South", "8300"],
    ["Mar", "East", "11100"],
]

ORDER_ROWS = [
    ["Date", "Store", "Units", "Price", "Rating"],
    ["2024-01-01", "Downtown", "3", "19.99", "4"],
    ["2024-01-02", "Airport", "5", "24.50", "5"],
    ["2024-01-03", "Mall", "2", "18.00", "3"],
    ["2024-01-04", "Downtown", "8", "30.25", "4"],
    ["2024-01-05", "Airport", "6", "22.00", "2"],
    ["2024-01-06", "Mall", "4", "27.75", "5"],
    ["2024-01-07", "Downtown", "7", "21.50", "4"],
    ["2024-01-08", "Airport", "9", "35.00", "3"],
    ["2024-01-09", "Mall", "1", "17.25", "5"],
    ["2024-01-10", "Downtown", "10", "29.00", "4"],
]

SKEWED_ROWS = [
    ["Team", "Score"],
    ["A", "1"],
    ["A", "2"],
    ["A", "3"],
    ["A", "4"],
    ["A", "100"],
    ["B", "5"],
    ["B", "6"],
]


@pytest.fixture
def settings():
    """Pipeline settings with fallback views switched off."""
    return Settings(min_dashboard_views=0)


@pytest.fixture
def sales_rows():
    return [list(row) for row in SALES_ROWS]


@pytest.fixture
def order_rows():
    return [list(row) for row in ORDER_ROWS]


@pytest.fixture
def skewed_rows():
    return [list(row) for row in SKEWED_ROWS]


@pytest.fixture
def sales_dataset(sales_rows, settings):
    return clean_dataset(sales_rows, settings)


@pytest.fixture
def sales_index(sales_dataset):
    return ColumnIndex(sales_dataset.profiles)


@pytest.fixture
def order_dataset(order_rows, settings):
    return clean_dataset(order_rows, settings)


@pytest.fixture
def order_index(order_dataset):
    return ColumnIndex(order_dataset.profiles)


@pytest.fixture
def skewed_dataset(skewed_rows, settings):
    return clean_dataset(skewed_rows, settings)
