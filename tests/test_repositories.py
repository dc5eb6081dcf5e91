"""Tests de repositorios con un cliente de Supabase simulado."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from faro.database import CriteriaRepository, MatchRepository, SettingsRepository
from faro.exceptions import CheckpointError, PersistenceError
from faro.models import MatchRecord

from helpers.fakes import make_listing


def _client_returning(data):
    """Cliente cuyo builder encadenado termina en execute() -> data."""
    client = MagicMock()
    builder = MagicMock()
    for method in ("select", "eq", "in_", "or_", "update", "upsert", "order", "limit"):
        getattr(builder, method).return_value = builder
    builder.execute.return_value = MagicMock(data=data)
    client.table.return_value = builder
    return client, builder


class TestCriteriaRepository:
    def test_get_active_by_buyer(self):
        rows = [{
            "id": "c1",
            "name": "Marina",
            "buyer_id": "b1",
            "bedrooms": [],
            "buyer": {"id": "b1", "name": "Ana", "system_prompt": "Score {search_name}"},
        }]
        client, builder = _client_returning(rows)

        criteria, skipped = CriteriaRepository(client).get_active(buyer_id="b1")

        assert skipped == []
        client.table.assert_called_with("buyer_criteria")
        builder.select.assert_called_with("*, buyer:buyers(*)")
        builder.eq.assert_any_call("is_active", True)
        builder.eq.assert_any_call("buyer_id", "b1")
        assert criteria[0].id == "c1"
        assert criteria[0].bedrooms is None
        assert criteria[0].buyer.system_prompt == "Score {search_name}"

    def test_get_active_by_criteria_id(self):
        client, builder = _client_returning([])

        assert CriteriaRepository(client).get_active(criteria_id="c9") == ([], [])
        builder.eq.assert_any_call("id", "c9")

    def test_get_active_without_scope_reads_every_active_criteria(self):
        client, builder = _client_returning([{"id": "c1"}, {"id": "c2"}])

        criteria, _ = CriteriaRepository(client).get_active()

        builder.eq.assert_called_once_with("is_active", True)
        assert [c.id for c in criteria] == ["c1", "c2"]

    def test_malformed_row_is_skipped(self):
        rows = [
            {"id": "good", "name": "Marina", "min_price_aed": 1_500_000},
            {"id": "bad", "name": "Bad", "min_price_aed": "about 2M"},
        ]
        client, _ = _client_returning(rows)

        criteria, skipped = CriteriaRepository(client).get_active(buyer_id="b1")

        assert [c.id for c in criteria] == ["good"]
        assert len(skipped) == 1
        assert "Bad" in skipped[0]
        assert "min_price_aed" in skipped[0]

    def test_read_failure_is_retried_then_raised(self):
        client, builder = _client_returning([])
        builder.execute.side_effect = [RuntimeError("timeout"), MagicMock(data=[{"id": "c1"}])]

        criteria, _ = CriteriaRepository(client).get_active(buyer_id="b1")

        assert [c.id for c in criteria] == ["c1"]
        assert builder.execute.call_count == 2

    def test_persistent_read_failure_raises_persistence_error(self):
        client, builder = _client_returning([])
        builder.execute.side_effect = RuntimeError("connection refused")

        with pytest.raises(PersistenceError):
            CriteriaRepository(client).get_active(buyer_id="b1")
        assert builder.execute.call_count == 3

    def test_advance_checkpoints_only_moves_forward(self):
        client, builder = _client_returning([{"id": "c1"}, {"id": "c2"}])
        started = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

        updated = CriteriaRepository(client).advance_checkpoints(["c1", "c2"], started)

        assert updated == 2
        builder.update.assert_called_once_with({"last_run_at": "2025-06-01T12:00:00.000000Z"})
        builder.in_.assert_called_once_with("id", ["c1", "c2"])
        builder.or_.assert_called_once_with(
            "last_run_at.is.null,last_run_at.lt.2025-06-01T12:00:00.000000Z"
        )

    def test_advance_checkpoints_noop_without_ids(self):
        client, builder = _client_returning([])

        assert CriteriaRepository(client).advance_checkpoints([], datetime.now(timezone.utc)) == 0
        builder.update.assert_not_called()

    def test_checkpoint_failure(self):
        client, builder = _client_returning([])
        builder.execute.side_effect = RuntimeError("permission denied")

        with pytest.raises(CheckpointError):
            CriteriaRepository(client).advance_checkpoints(["c1"], datetime.now(timezone.utc))


class TestMatchRepository:
    def _record(self, listing_id="L1", score=80):
        return MatchRecord(
            criteria_id="c1",
            listing_id=listing_id,
            listing_data=make_listing(listing_id).document,
            relevance_score=score,
            qualification_notes="Good fit",
        )

    def test_upsert_uses_conflict_key(self):
        client, builder = _client_returning([{"id": "m1"}, {"id": "m2"}])

        saved = MatchRepository(client).upsert_matches([self._record("L1"), self._record("L2")])

        assert saved == 2
        rows = builder.upsert.call_args.args[0]
        assert builder.upsert.call_args.kwargs == {
            "on_conflict": "criteria_id,listing_id",
            "ignore_duplicates": False,
        }
        assert rows[0]["listing_data"]["id"] == "L1"
        assert rows[0]["is_notified"] is False
        assert "id" not in rows[0]

    def test_upsert_empty_list_skips_store(self):
        client, builder = _client_returning([])

        assert MatchRepository(client).upsert_matches([]) == 0
        client.table.assert_not_called()

    def test_upsert_failure(self):
        client, builder = _client_returning([])
        builder.execute.side_effect = RuntimeError("duplicate key")

        with pytest.raises(PersistenceError):
            MatchRepository(client).upsert_matches([self._record()])


class TestSettingsRepository:
    def test_default_prompt_template(self):
        client, builder = _client_returning([{"value": {"template": "Score {listings}"}}])

        assert SettingsRepository(client).get_default_prompt() == "Score {listings}"
        builder.eq.assert_called_with("key", "default_system_prompt")

    @pytest.mark.parametrize("data", [[], [{"value": {}}], [{"value": {"template": "  "}}]])
    def test_missing_template(self, data):
        client, _ = _client_returning(data)

        assert SettingsRepository(client).get_default_prompt() is None
