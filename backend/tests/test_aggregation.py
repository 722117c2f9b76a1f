import itertools
from decimal import Decimal

from agency_hub.schemas.summary import OverallTotals, TenantSummary
from agency_hub.services.aggregation import merge_records, merge_summaries, merge_tenant_summaries
from agency_hub.services.rollups import rank_categories, rollup_by

from conftest import category, commission, policy


def _tuples(entries):
    return {(e.label, e.total, e.records) for e in entries}


def test_merge_two_agencies_scenario():
    tenant_a = [category("Paid", 100, 2)]
    tenant_b = [category("Paid", 50, 1), category("Pending", 20, 1)]

    merged = merge_summaries([tenant_a, tenant_b])

    assert [(e.label, e.total, e.records) for e in merged] == [
        ("Paid", Decimal("150"), 3),
        ("Pending", Decimal("20"), 1),
    ]


def test_merge_keeps_first_seen_order():
    merged = merge_summaries([
        [category("Pending", 5, 1)],
        [category("Paid", 10, 1), category("Pending", 5, 1)],
    ])
    assert [e.label for e in merged] == ["Pending", "Paid"]


def test_merge_is_order_independent():
    results = [
        [category("Paid", "100.10", 2), category("Chargeback", "-20.05", 1)],
        [category("Paid", "50.25", 1), category("Pending", 20, 1)],
        [category("Pending", "0.30", 3)],
    ]
    expected = _tuples(merge_summaries(results))
    for permutation in itertools.permutations(results):
        assert _tuples(merge_summaries(list(permutation))) == expected


def test_merge_is_additive():
    a = [category("Paid", "100.10", 2)]
    b = [category("Paid", "0.20", 1)]

    both = merge_summaries([a, b])[0]

    assert both.total == merge_summaries([a])[0].total + merge_summaries([b])[0].total
    assert both.total == Decimal("100.30")
    assert both.records == 3


def test_merge_does_not_mutate_inputs():
    a = [category("Paid", 100, 2)]
    merge_summaries([a, [category("Paid", 50, 1)]])
    assert a[0].total == Decimal("100")
    assert a[0].records == 2


def test_merge_empty_inputs():
    assert merge_summaries([]) == []
    # An agency with no categories contributes nothing, not a zero entry
    assert merge_summaries([[], [category("Paid", 1, 1)]])[0].records == 1


def test_merge_tenant_summaries_merges_dimensions_and_overall():
    merged = merge_tenant_summaries([
        TenantSummary(
            tenant_id="a",
            dimensions={"status": [category("Approved", 10, 1)], "carrier": [category("Aetna", 10, 1)]},
            overall=OverallTotals(total=Decimal("10"), records=1),
        ),
        TenantSummary(
            tenant_id="b",
            dimensions={"carrier": [category("Aetna", 5, 2), category("Humana", 1, 1)]},
            overall=OverallTotals(total=Decimal("6"), records=3),
        ),
    ])

    assert list(merged.dimensions) == ["status", "carrier"]
    assert _tuples(merged.dimensions["carrier"]) == {
        ("Aetna", Decimal("15"), 3),
        ("Humana", Decimal("1"), 1),
    }
    assert merged.overall.total == Decimal("16")
    assert merged.overall.records == 4


def test_merge_tenant_summaries_empty_selection():
    merged = merge_tenant_summaries([])
    assert merged.dimensions == {}
    assert merged.overall.total == Decimal("0")


def test_merge_records_tags_origin_and_qualifies_keys():
    merged = merge_records(
        {"a": [commission("1", 10)], "b": [commission("1", 20), commission("2", 30)]},
        {"a": "North", "b": "South"},
    )

    assert [r.key for r in merged] == ["a:1", "b:1", "b:2"]
    assert [r.origin_tenant_name for r in merged] == ["North", "South", "South"]


def test_rollup_by_agent_ranks_descending():
    records = [
        policy("1", 1, agent_id="x", agent_name="Xavier", annual_premium=Decimal("100")),
        policy("2", 2, agent_id="y", agent_name="Yolanda", annual_premium=Decimal("300")),
        policy("3", 3, agent_id="x", agent_name="Xavier", annual_premium=Decimal("250")),
    ]

    rollup = rollup_by(records, "agent_id", "annual_premium", "agent_name")

    assert [(e.key, e.label, e.total, e.count) for e in rollup] == [
        ("x", "Xavier", Decimal("350"), 2),
        ("y", "Yolanda", Decimal("300"), 1),
    ]


def test_rollup_by_empty_records():
    assert rollup_by([], "agent_id", "annual_premium") == []


def test_rollup_missing_key_groups_under_fallback():
    records = [commission("1", 1, amount=Decimal("5")), commission("2", 2, carrier="Aetna", amount=Decimal("1"))]
    rollup = rollup_by(records, "carrier", "amount")
    assert [e.key for e in rollup] == ["Unknown", "Aetna"]


def test_rank_categories_drops_empty_and_sorts():
    ranked = rank_categories([
        category("Aetna", 10, 1),
        category("Empty", 0, 0),
        category("Humana", 30, 2),
    ])
    assert [c.label for c in ranked] == ["Humana", "Aetna"]
