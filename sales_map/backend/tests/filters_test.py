import pytest

from conftest import make_record
from filters import apply_cascading_filters
from models import FilterSelection
from store import SalesStore


@pytest.fixture
def records():
    store = SalesStore()
    store.insert_batch([
        make_record(maker="Acme", rto="MH01", state="Maharashtra", district="Mumbai"),
        make_record(maker="Acme", rto="KA01", state="Karnataka", district="Bengaluru"),
        make_record(maker="Zenith", rto="MH02", state="Maharashtra", district="Pune"),
        make_record(maker="Zenith", rto="DL01", state="Delhi", district=""),
    ])
    return store.get_all()


def test_no_selection_returns_everything(records):
    result = apply_cascading_filters(records, FilterSelection())

    assert len(result.filtered_data) == 4
    assert result.available_options.makers == ["Acme", "Zenith"]
    assert result.available_options.rtos == ["DL01", "KA01", "MH01", "MH02"]
    assert result.available_options.states == ["Delhi", "Karnataka", "Maharashtra"]
    # Empty districts are not offered as options
    assert result.available_options.districts == ["Bengaluru", "Mumbai", "Pune"]


def test_maker_selection_filters_data_but_not_maker_options(records):
    result = apply_cascading_filters(records, FilterSelection(makers=["Acme"]))

    assert {r.maker for r in result.filtered_data} == {"Acme"}
    assert len(result.filtered_data) == 2
    # Self-exclusion: the maker list ignores the maker selection
    assert result.available_options.makers == ["Acme", "Zenith"]
    assert result.available_options.rtos == ["KA01", "MH01"]
    assert result.available_options.states == ["Karnataka", "Maharashtra"]
    assert result.available_options.districts == ["Bengaluru", "Mumbai"]


def test_selections_combine_with_and_across_dimensions(records):
    selection = FilterSelection(makers=["Zenith"], states=["Maharashtra", "Delhi"], rtos=["MH02"])
    result = apply_cascading_filters(records, selection)

    assert [r.rto for r in result.filtered_data] == ["MH02"]
    # Makers offered given rto=MH02 and state in {Maharashtra, Delhi}
    assert result.available_options.makers == ["Zenith"]
    # RTOs offered given maker=Zenith and those states
    assert result.available_options.rtos == ["DL01", "MH02"]
    # States offered given maker=Zenith and rto=MH02
    assert result.available_options.states == ["Maharashtra"]
    assert result.available_options.districts == ["Pune"]


def test_selection_matching_nothing(records):
    result = apply_cascading_filters(records, FilterSelection(makers=["Acme"], states=["Delhi"]))

    assert result.filtered_data == []
    # Acme has no Delhi records, but each list still reflects the other selection
    assert result.available_options.makers == ["Zenith"]
    assert result.available_options.states == ["Karnataka", "Maharashtra"]
    assert result.available_options.rtos == []


def test_response_uses_camel_case_on_the_wire(records):
    payload = apply_cascading_filters(records, FilterSelection()).model_dump(by_alias=True)
    assert set(payload) == {"filteredData", "availableOptions"}
