import pytest

from healthviz.errors import UnknownFieldError
from healthviz.metrics import (
    AggregationEngine,
    compute_group_stats,
    compute_kpis,
    count_test_results,
)
from healthviz.models import GroupStats, KpiScalars, Row
from healthviz.store import DatasetStore


def test_kpis_count_null_billing_as_zero():
    rows = [Row(billing_amount=100.0), Row(billing_amount=None), Row(billing_amount=300.0)]
    kpis = compute_kpis(rows)
    assert kpis.count == 3
    assert kpis.total_billing == 400.0
    assert kpis.avg_billing == pytest.approx(400 / 3)


def test_kpis_on_empty_subset():
    assert compute_kpis([]) == KpiScalars(count=0, total_billing=0.0, avg_billing=None, avg_length_of_stay=None)


def test_kpis_stay_and_hospitals(store):
    kpis = compute_kpis(store.all())
    assert kpis.count == 6
    assert kpis.total_billing == 1700.0
    # Stays of 4, 2, 10 and 1 days; the other two rows have none.
    assert kpis.avg_length_of_stay == pytest.approx(17 / 4)
    assert kpis.hospital_count == 3


def test_group_stats_sorted_by_count(store):
    groups = compute_group_stats(store.all())
    assert [g.key for g in groups] == ["Alpha", "Beta", "Gamma"]
    alpha, beta, gamma = groups
    assert alpha == GroupStats(key="Alpha", count=3, avg_billing=pytest.approx(1400 / 3), dominant_test_result="Normal")
    # Beta has one null billing; the mean skips it.
    assert beta.count == 2
    assert beta.avg_billing == 50.0
    assert gamma.dominant_test_result == "Inconclusive"


def test_group_stats_unknown_key_and_no_billing():
    groups = compute_group_stats([Row(hospital=None), Row(hospital=None, billing_amount=None)])
    assert groups == (GroupStats(key="Unknown", count=2, avg_billing=0.0, dominant_test_result="Inconclusive"),)


def test_dominant_result_tie_keeps_first_to_reach_count():
    rows = [Row(hospital="H", test_result=t) for t in ("Normal", "Abnormal", "Abnormal", "Normal")]
    (stats,) = compute_group_stats(rows)
    assert stats.dominant_test_result == "Abnormal"


def test_group_stats_ties_keep_first_seen_order():
    rows = [Row(hospital="B"), Row(hospital="A"), Row(hospital="C"), Row(hospital="C")]
    assert [g.key for g in compute_group_stats(rows)] == ["C", "B", "A"]


def test_group_stats_by_other_field(store):
    groups = compute_group_stats(store.all(), "medical_condition")
    assert {g.key: g.count for g in groups} == {"Cancer": 3, "Diabetes": 2, "Asthma": 1}


def test_group_stats_unknown_field(store):
    with pytest.raises(UnknownFieldError):
        compute_group_stats(store.all(), "billing_amount")


def test_group_counts_add_up(store):
    assert sum(g.count for g in compute_group_stats(store.all())) == len(store)


def test_count_test_results(store):
    assert count_test_results(store.all()) == {"Normal": 3, "Abnormal": 2, "Inconclusive": 1}
    assert count_test_results([]) == {"Normal": 0, "Abnormal": 0, "Inconclusive": 0}


def test_engine_memoizes_by_key(store):
    engine = AggregationEngine(capacity=4)
    rows = store.all()
    first = engine.aggregate_kpis(rows, key="k1")
    assert engine.aggregate_kpis(rows, key="k1") is first
    groups = engine.aggregate_by_hospital(rows, key="k1")
    assert engine.aggregate_by_category(rows, "hospital", key="k1") is groups


def test_engine_keys_separate_equal_shaped_subsets():
    a, b, c = Row(row_id=0, billing_amount=1.0), Row(row_id=1, billing_amount=5.0), Row(row_id=2, billing_amount=9.0)
    engine = AggregationEngine()
    with_b = engine.aggregate_kpis((a, b, c), key="with-b")
    without_b = engine.aggregate_kpis((a, Row(row_id=3), c), key="without-b")
    assert with_b.total_billing == 15.0
    assert without_b.total_billing == 10.0


def test_engine_is_bounded():
    engine = AggregationEngine(capacity=2)
    for i in range(5):
        engine.aggregate_kpis((), key=str(i))
    assert engine.stats()["kpi_entries"] == 2
    engine.clear()
    assert engine.stats()["kpi_entries"] == 0


def test_snapshot(store):
    snap = AggregationEngine().snapshot(store.all())
    assert snap.scalars.count == 6
    assert len(snap.groups) == 3


def test_engine_drops_entries_when_bound_to_another_store(store, records):
    other = DatasetStore.build(records[:2])
    engine = AggregationEngine()
    engine.bind(store)
    assert engine.aggregate_kpis(store.all(), key="default").count == 6

    engine.bind(store)
    assert engine.stats()["kpi_entries"] == 1

    engine.bind(other)
    assert engine.stats()["kpi_entries"] == 0
    assert engine.aggregate_kpis(other.all(), key="default").count == 2
