"""Tests del contexto de pasada (dedup entre criterios)."""

from faro.pipeline import RunContext

from helpers.fakes import make_listing


def test_filter_new_returns_unseen_and_records_them():
    context = RunContext()

    first = context.filter_new([make_listing("a"), make_listing("b")])
    second = context.filter_new([make_listing("b"), make_listing("c")])

    assert [listing.id for listing in first] == ["a", "b"]
    assert [listing.id for listing in second] == ["c"]
    assert context.seen_listing_ids == {"a", "b", "c"}


def test_duplicates_within_one_hit_list_keep_first():
    context = RunContext()

    result = context.filter_new([make_listing("a"), make_listing("a")])

    assert [listing.id for listing in result] == ["a"]


def test_contexts_are_independent():
    one, two = RunContext(), RunContext()
    one.filter_new([make_listing("a")])

    assert [listing.id for listing in two.filter_new([make_listing("a")])] == ["a"]


def test_stats_and_processed_ids():
    context = RunContext()
    stats = context.start_criteria("c1", "Marina")
    stats.qualified = 3
    stats.saved = 2
    context.mark_processed("c1")
    context.mark_processed("c1")

    assert context.processed_criteria_ids == ["c1"]
    assert context.total_matches == 3
    assert context.new_matches == 2
    assert stats.to_dict()["criteria_name"] == "Marina"
