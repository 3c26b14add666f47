from datetime import date

import pytest

from healthviz.errors import UnknownFieldError
from healthviz.filters import (
    DEFAULT_FILTERS,
    FilterEngine,
    FilterSpecification,
    describe_selection,
    filter_rows,
    normalize_filters,
    with_predicate,
    with_predicates,
)
from healthviz.store import DatasetStore


def _names(rows):
    return [r.name for r in rows]


def test_default_spec_returns_every_row(store):
    assert filter_rows(store.all(), DEFAULT_FILTERS) == store.all()


def test_categorical_predicates(store):
    spec = with_predicates(DEFAULT_FILTERS, {"gender": "Female", "condition": "Cancer"})
    assert _names(filter_rows(store.all(), spec)) == ["Cat"]


def test_all_means_no_predicate(store):
    spec = with_predicate(DEFAULT_FILTERS, "gender", "all")
    assert spec == DEFAULT_FILTERS
    assert len(filter_rows(store.all(), spec)) == len(store)


def test_selected_hospital(store):
    spec = with_predicate(DEFAULT_FILTERS, "selected_hospital", "Alpha")
    assert _names(filter_rows(store.all(), spec)) == ["Ann", "Cat", "Fay"]


def test_billing_range_excludes_null_billing(store):
    spec = with_predicate(DEFAULT_FILTERS, "billing_range", (0, 10 ** 9))
    names = _names(filter_rows(store.all(), spec))
    assert "Ben" not in names
    assert len(names) == 5


def test_billing_range_is_inclusive(store):
    spec = with_predicate(DEFAULT_FILTERS, "billing_range", (100, 300))
    assert _names(filter_rows(store.all(), spec)) == ["Ann", "Cat", "Dan"]


def test_length_of_stay_excludes_null_stays(store):
    spec = with_predicate(DEFAULT_FILTERS, "length_of_stay_max", 1000)
    names = _names(filter_rows(store.all(), spec))
    # Dan was discharged before admission, Eve has no admission date.
    assert names == ["Ann", "Ben", "Cat", "Fay"]
    spec = with_predicate(DEFAULT_FILTERS, "length_of_stay_max", 2)
    assert _names(filter_rows(store.all(), spec)) == ["Ben", "Fay"]


def test_admission_date_bounds_are_inclusive(store):
    spec = with_predicates(
        DEFAULT_FILTERS,
        {"admission_date_from": "2023-02-01", "admission_date_to": date(2023, 4, 1)},
    )
    assert _names(filter_rows(store.all(), spec)) == ["Ben", "Cat", "Dan"]


def test_predicates_only_narrow(store):
    broad = with_predicate(DEFAULT_FILTERS, "gender", "Male")
    narrow = with_predicate(broad, "insurance", "Aetna")
    broad_ids = {r.row_id for r in filter_rows(store.all(), broad)}
    narrow_ids = {r.row_id for r in filter_rows(store.all(), narrow)}
    assert narrow_ids <= broad_ids


def test_unknown_field_leaves_spec_untouched():
    spec = with_predicate(DEFAULT_FILTERS, "gender", "Male")
    with pytest.raises(UnknownFieldError):
        with_predicate(spec, "shoe_size", 42)
    with pytest.raises(UnknownFieldError):
        with_predicates(spec, {"gender": "Female", "shoe_size": 42})
    assert spec.gender == "Male"


def test_unknown_field_is_a_value_error():
    with pytest.raises(ValueError):
        normalize_filters({"nope": 1})


def test_normalize_filters_coerces_values():
    spec = normalize_filters(
        {
            "gender": "",
            "test_result": None,
            "selected_hospital": "  Alpha   General ",
            "billing_range": ["500", 100],
            "length_of_stay_max": "abc",
            "admission_date_from": "not a date",
        }
    )
    assert spec.gender == "all"
    assert spec.test_result == "all"
    assert spec.selected_hospital == "Alpha General"
    assert spec.billing_range == (100.0, 500.0)
    assert spec.length_of_stay_max is None
    assert spec.admission_date_from is None


def test_normalize_filters_empty_is_default():
    assert normalize_filters(None) == DEFAULT_FILTERS
    assert normalize_filters({}).is_default()
    assert normalize_filters({"selected_hospital": "all"}).selected_hospital is None


def test_cache_key_is_canonical():
    a = normalize_filters({"admission_date_from": "2023-01-01", "billing_range": (1, 2)})
    b = FilterSpecification(admission_date_from=date(2023, 1, 1), billing_range=(1.0, 2.0))
    assert a.cache_key() == b.cache_key()
    assert a.cache_key() != DEFAULT_FILTERS.cache_key()


def test_to_dict_is_json_friendly():
    spec = normalize_filters({"admission_date_to": "2023-05-01", "billing_range": (5, 1)})
    out = spec.to_dict()
    assert out["admission_date_to"] == "2023-05-01"
    assert out["admission_date_from"] is None
    assert out["billing_range"] == [1.0, 5.0]


def test_describe_selection():
    assert describe_selection(DEFAULT_FILTERS) == "All"
    spec = normalize_filters(
        {
            "selected_hospital": "Alpha",
            "test_result": "Normal",
            "blood_type": "A+",
            "length_of_stay_max": 7,
            "billing_range": (99.6, 1000),
        }
    )
    assert describe_selection(spec) == "Alpha · Normal · Blood A+ · LOS ≤ 7 · Billing 100–1000"


def test_engine_returns_identical_result_on_hit(store):
    engine = FilterEngine(capacity=4)
    spec = with_predicate(DEFAULT_FILTERS, "gender", "Male")
    first = engine.filter(store, spec)
    second = engine.filter(store, FilterSpecification(gender="Male"))
    assert first is second
    assert engine.stats() == {"size": 1, "capacity": 4, "hits": 1, "misses": 1}


def test_engine_evicts_oldest_entry(store):
    engine = FilterEngine(capacity=3)
    specs = [with_predicate(DEFAULT_FILTERS, "insurance", name) for name in ("Aetna", "Cigna", "Medicare", "Other")]
    for spec in specs:
        engine.filter(store, spec)
    assert len(engine) == 3
    assert not engine.is_cached(specs[0])
    assert all(engine.is_cached(s) for s in specs[1:])


def test_engine_hits_do_not_refresh_entries(store):
    engine = FilterEngine(capacity=2)
    a, b, c = (with_predicate(DEFAULT_FILTERS, "gender", g) for g in ("Male", "Female", "Other"))
    engine.filter(store, a)
    engine.filter(store, b)
    engine.filter(store, a)
    engine.filter(store, c)
    assert not engine.is_cached(a)
    assert engine.is_cached(b) and engine.is_cached(c)


def test_engine_matches_uncached_scan(store):
    engine = FilterEngine()
    spec = normalize_filters({"admission_type": "Emergency", "billing_range": (0, 500)})
    assert engine.filter(store, spec) == filter_rows(store.all(), spec)


def test_engine_clear_and_store_swap(store, records):
    engine = FilterEngine()
    engine.filter(store, DEFAULT_FILTERS)
    engine.clear()
    assert len(engine) == 0
    assert engine.stats()["hits"] == 0

    engine.filter(store, DEFAULT_FILTERS)
    other = DatasetStore.build(records[:2])
    assert len(engine.filter(other, DEFAULT_FILTERS)) == 2
    assert engine.stats()["misses"] == 1
