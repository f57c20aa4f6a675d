"""
Cascading filters over the four categorical dimensions of a sales record.
"""
from collections.abc import Iterable

from models import CascadingFilterResponse, FilterOptions, FilterSelection, SalesRecord


# Selection key -> record attribute
FILTER_DIMENSIONS = {
    "makers": "maker",
    "rtos": "rto",
    "states": "state",
    "districts": "district",
}


def apply_cascading_filters(
    records: Iterable[SalesRecord],
    selection: FilterSelection,
) -> CascadingFilterResponse:
    """
    Filter records and compute the options still available per dimension.

    filtered_data holds records matching every non-empty selection (AND across
    dimensions, membership within one). The options for a dimension come from
    records matching the *other* three selections only, so a dimension's own
    choices never narrow its option list.
    """
    selected = {
        dim: set(getattr(selection, dim) or [])
        for dim in FILTER_DIMENSIONS
    }
    options: dict[str, set[str]] = {dim: set() for dim in FILTER_DIMENSIONS}
    filtered: list[SalesRecord] = []

    for record in records:
        failed = [
            dim for dim, attr in FILTER_DIMENSIONS.items()
            if selected[dim] and getattr(record, attr) not in selected[dim]
        ]
        if not failed:
            filtered.append(record)
            for dim, attr in FILTER_DIMENSIONS.items():
                options[dim].add(getattr(record, attr))
        elif len(failed) == 1:
            # Matches the other three dimensions, so it only widens the failing one
            dim = failed[0]
            options[dim].add(getattr(record, FILTER_DIMENSIONS[dim]))

    available = FilterOptions(**{
        dim: sorted(v for v in values if v)
        for dim, values in options.items()
    })
    return CascadingFilterResponse(filtered_data=filtered, available_options=available)
