"""
Market analytics and geocoding progress over the stored sales records.
"""
import math

import numpy as np

from models import AnalyticsResponse, GeocodingStatusResponse, SalesRecord


# Growth thresholds (2022 -> 2025) for market categorization
GROWTH_THRESHOLD = 0.1
EMERGING_THRESHOLD = 0.5


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like a browser's Math.round: halves go up, not to even."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


# ============================================================================
# Growth
# ============================================================================

def growth_rates(sales_start: np.ndarray | list, sales_end: np.ndarray | list) -> np.ndarray:
    """
    Per-market growth in percent from sales_start to sales_end.

    Markets with no starting sales have no defined growth and report 0.

    Args:
        sales_start: Per-market sales in the base year
        sales_end: Per-market sales in the comparison year

    Returns:
        Array of growth percentages
    """
    start = np.asarray(sales_start, dtype=float)
    end = np.asarray(sales_end, dtype=float)
    safe_start = np.where(start == 0, 1.0, start)
    return np.where(start == 0, 0.0, (end - start) / safe_start * 100.0)


def count_growing(
    sales_start: np.ndarray | list,
    sales_end: np.ndarray | list,
    threshold: float,
) -> int:
    """
    Count markets whose growth ratio exceeds threshold.
    A market starting from zero counts as growing if it sold anything at the end.
    """
    start = np.asarray(sales_start, dtype=float)
    end = np.asarray(sales_end, dtype=float)
    safe_start = np.where(start == 0, 1.0, start)
    ratio = (end - start) / safe_start
    growing = np.where(start == 0, end > 0, ratio > threshold)
    return int(growing.sum())


# ============================================================================
# Summaries
# ============================================================================

def compute_market_analytics(records: list[SalesRecord]) -> AnalyticsResponse:
    """Dashboard headline metrics. Every record counts as one market."""
    if not records:
        return AnalyticsResponse()

    sales2022 = np.array([r.sales2022 for r in records], dtype=float)
    sales2024 = np.array([r.sales2024 for r in records], dtype=float)
    sales2025 = np.array([r.sales2025 for r in records], dtype=float)
    totals = np.array([r.total for r in records], dtype=float)

    total_markets = len(records)
    rates = growth_rates(sales2022, sales2025)
    rates = rates[np.isfinite(rates)]
    avg_growth = float(rates.mean()) if rates.size else 0.0

    active_markets = int((totals > 0).sum())
    penetration = active_markets / total_markets * 100.0

    return AnalyticsResponse(
        total_markets=total_markets,
        total_sales2024=int(sales2024.sum()),
        avg_growth_rate=round_half_up(avg_growth, 1),
        market_penetration=round_half_up(penetration, 1),
        active_markets=active_markets,
        growth_markets=count_growing(sales2022, sales2025, GROWTH_THRESHOLD),
        emerging_markets=count_growing(sales2022, sales2025, EMERGING_THRESHOLD),
    )


def compute_geocoding_status(records: list[SalesRecord]) -> GeocodingStatusResponse:
    total = len(records)
    geocoded = sum(1 for r in records if r.is_geocoded)
    return GeocodingStatusResponse(
        total_records=total,
        geocoded_records=geocoded,
        pending_geocode=total - geocoded,
        percent_complete=int(round_half_up(geocoded / total * 100)) if total else 0,
    )
