import numpy as np

from conftest import make_record
from metrics import (
    compute_geocoding_status,
    compute_market_analytics,
    count_growing,
    growth_rates,
    round_half_up,
)
from store import SalesStore


def test_growth_rates_treat_zero_base_as_no_growth():
    rates = growth_rates([100, 0, 50], [150, 30, 25])
    assert np.allclose(rates, [50.0, 0.0, -50.0])


def test_count_growing_counts_new_markets_from_zero():
    start = [100, 0, 0, 100]
    end = [120, 10, 0, 105]
    assert count_growing(start, end, 0.1) == 2
    assert count_growing(start, end, 0.5) == 1


def test_round_half_up():
    assert round_half_up(2.25, 1) == 2.3
    assert round_half_up(0.5) == 1.0
    assert round_half_up(-1.25, 1) == -1.2


def test_market_analytics_on_empty_store():
    result = compute_market_analytics([])
    assert result.total_markets == 0
    assert result.avg_growth_rate == 0.0
    assert result.market_penetration == 0.0


def test_market_analytics_summary():
    store = SalesStore()
    store.insert_batch([
        make_record(sales2022=100, sales2025=120, sales2024=40, total=100),
        make_record(sales2022=100, sales2025=200, sales2024=10, total=100),
        make_record(sales2022=0, sales2025=5, total=5),
        make_record(total=0),
    ])

    result = compute_market_analytics(store.get_all())

    assert result.total_markets == 4
    assert result.total_sales2024 == 50
    # (20 + 100 + 0 + 0) / 4
    assert result.avg_growth_rate == 30.0
    assert result.active_markets == 3
    assert result.market_penetration == 75.0
    assert result.growth_markets == 3
    assert result.emerging_markets == 2
    assert result.model_dump(by_alias=True)["totalSales2024"] == 50


def test_geocoding_status_counts_sentinel_records_as_pending():
    store = SalesStore()
    records = store.insert_batch([make_record(), make_record(), make_record()])
    store.update_coordinates(records[0].id, 10.0, 76.0)

    status = compute_geocoding_status(store.get_all())

    assert status.total_records == 3
    assert status.geocoded_records == 1
    assert status.pending_geocode == 2
    assert status.percent_complete == 33
    assert compute_geocoding_status([]).percent_complete == 0
