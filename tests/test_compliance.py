"""
Tests for compliance framework matching and pass rates.
"""
import pytest

from scanguard.services.compliance import (
    filter_selected,
    framework_summary,
    group_by_framework,
    match_framework,
    pass_rate,
)

RESULTS = [
    {"framework": "ISO/SAE 21434", "rule_id": "CAL-1", "status": "pass"},
    {"framework": "ISO 21434", "rule_id": "SEC-2", "status": "warning"},
    {"framework": "MISRA C:2012", "rule_id": "Rule-11.5", "status": "fail"},
    {"framework": "UNECE R155", "rule_id": "7.2.2", "status": "pass"},
    {"framework": "Company Coding Guide", "rule_id": "CG-4", "status": "pass"},
]


@pytest.mark.parametrize("raw,key", [
    ("MISRA C:2023", "misra"),
    ("misra-c", "misra"),
    ("ISO-26262 Part 6", "iso26262"),
    ("ISO/SAE 21434:2021", "iso21434"),
    ("AUTOSAR R22-11", "autosar"),
    ("UNECE WP.29", "unece"),
    ("R156 software updates", "unece"),
    ("Company Coding Guide", None),
    ("", None),
    (None, None),
])
def test_match_framework(raw, key):
    assert match_framework(raw) == key


def test_pass_rate_rounds():
    assert pass_rate(RESULTS[:3]) == 33
    assert pass_rate([{"status": "pass"}, {"status": "pass"}, {"status": "fail"}]) == 67


def test_pass_rate_of_nothing_is_zero():
    assert pass_rate([]) == 0


def test_summary_lists_every_framework_even_without_results():
    summary = {entry["key"]: entry for entry in framework_summary(RESULTS)}

    assert set(summary) == {"misra", "iso26262", "iso21434", "autosar", "unece"}
    assert summary["iso21434"]["total"] == 2
    assert summary["iso21434"]["passed"] == 1
    assert summary["iso21434"]["warnings"] == 1
    assert summary["iso21434"]["pass_rate"] == 50
    assert summary["misra"]["failed"] == 1
    assert summary["misra"]["pass_rate"] == 0
    assert summary["iso26262"]["total"] == 0
    assert summary["iso26262"]["pass_rate"] == 0


def test_group_by_framework_keeps_unmatched_separately():
    grouped, unmatched = group_by_framework(RESULTS)

    assert len(grouped["unece"]) == 1
    assert [r["rule_id"] for r in unmatched] == ["CG-4"]


def test_filter_selected_keeps_everything_without_selection():
    assert filter_selected(RESULTS, []) == RESULTS
    assert filter_selected(RESULTS, None) == RESULTS
    assert filter_selected(RESULTS, ["  "]) == RESULTS


def test_filter_selected_by_canonical_framework():
    kept = filter_selected(RESULTS, ["ISO 21434:2021"])

    assert [r["rule_id"] for r in kept] == ["CAL-1", "SEC-2"]


def test_filter_selected_falls_back_to_first_word():
    kept = filter_selected(RESULTS, ["Company guidelines", "MISRA C"])

    assert [r["rule_id"] for r in kept] == ["Rule-11.5", "CG-4"]
