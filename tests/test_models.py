"""Tests de modelos."""

import pytest

from faro.models import CandidateListing, MatchRecord, QualificationResult, SearchCriteria
from faro.models.qualification import MISSING_FROM_BATCH, clamp_score

from helpers.fakes import make_listing


class TestSearchCriteria:
    def test_from_db_row_with_joined_buyer(self):
        row = {
            "id": "c1",
            "name": "JVC townhouses",
            "communities": ["JVC"],
            "bedrooms": [],
            "keywords": "  ",
            "buyer": {"id": "b1", "name": "Ana", "system_prompt": None},
        }

        criteria = SearchCriteria.from_db_row(row)

        assert criteria.communities == ["JVC"]
        assert criteria.bedrooms is None
        assert criteria.keywords is None
        assert criteria.buyer.name == "Ana"

    def test_buyer_join_as_list(self):
        row = {"id": "c1", "buyers": [{"id": "b1", "system_prompt": "Score {listings}"}]}

        criteria = SearchCriteria.from_db_row(row)

        assert criteria.buyer.system_prompt == "Score {listings}"

    def test_display_name_falls_back_to_id(self):
        assert SearchCriteria(id="c1").display_name == "c1"


class TestCandidateListing:
    def test_from_hit_keeps_document_verbatim(self):
        hit = {
            "document": {"id": 42, "data": {"community": "", "location_raw": "JLT"}, "extra": 1},
            "highlights": [{"field": "message"}],
        }

        listing = CandidateListing.from_hit(hit)

        assert listing.id == "42"
        assert listing.document == hit["document"]
        assert listing.location == "JLT"
        assert listing.field("community", "n/a") == "n/a"


class TestQualification:
    @pytest.mark.parametrize("raw, expected", [
        (-5, 0), (59.6, 60), (100.4, 100), (150, 100), (0.5, 1), (59.5, 60), (60.5, 61),
    ])
    def test_clamp_score(self, raw, expected):
        assert clamp_score(raw) == expected

    def test_scored_uses_inclusive_threshold(self):
        assert QualificationResult.scored("a", 60, threshold=60).is_match
        assert not QualificationResult.scored("a", 59.4, threshold=60).is_match

    def test_sentinel_is_never_a_match(self):
        result = QualificationResult.sentinel("a", MISSING_FROM_BATCH)

        assert result.score == 0
        assert not result.is_match
        assert result.failed


class TestMatchRecord:
    def test_from_qualification(self):
        listing = make_listing("L1")
        qualification = QualificationResult.scored("L1", 82, threshold=60, explanation="Sea view")

        record = MatchRecord.from_qualification("c1", listing, qualification)
        row = record.to_db_dict()

        assert row == {
            "criteria_id": "c1",
            "listing_id": "L1",
            "listing_data": listing.document,
            "relevance_score": 82,
            "qualification_notes": "Sea view",
            "is_notified": False,
        }
