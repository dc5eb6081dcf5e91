"""Tests del calificador por batch."""

import pytest

from faro.analysis import BatchQualifier, requirements_from_criteria
from faro.exceptions import QualificationError
from faro.models.qualification import MISSING_FROM_BATCH, QUALIFICATION_FAILED

from helpers.fakes import FakeProvider, batch_response, make_criteria, make_listing


@pytest.fixture
def requirements():
    return requirements_from_criteria(make_criteria(ai_prompt="Needs sea view"))


def _listings(count: int) -> list:
    return [make_listing(f"L{i}") for i in range(1, count + 1)]


@pytest.mark.asyncio
async def test_batch_is_a_single_request(requirements):
    provider = FakeProvider(score=75)
    qualifier = BatchQualifier(provider=provider, threshold=60, batch_delay=0)

    outcome = await qualifier.qualify_batch(_listings(5), requirements)

    assert len(provider.prompts) == 1
    assert outcome.prompt == provider.prompts[0]
    assert "Needs sea view" in outcome.prompt
    for position in range(1, 6):
        assert f"[Listing {position}]" in outcome.prompt
    assert [r.score for r in outcome.results] == [75] * 5


@pytest.mark.asyncio
async def test_model_omits_one_listing(requirements):
    provider = FakeProvider(responses=[batch_response([80, 70])])
    qualifier = BatchQualifier(provider=provider, threshold=60, batch_delay=0)

    outcome = await qualifier.qualify_batch(_listings(3), requirements)

    assert len(outcome.results) == 3
    assert outcome.results[2].explanation == MISSING_FROM_BATCH
    assert outcome.results[2].score == 0
    assert len(outcome.matches) == 2
    assert outcome.error is None


@pytest.mark.parametrize("failure", [
    RuntimeError("503 Service Unavailable"),
    QualificationError("boom"),
    "not json at all",
])
@pytest.mark.asyncio
async def test_whole_batch_failure_yields_sentinels(requirements, failure):
    provider = FakeProvider(responses=[failure])
    qualifier = BatchQualifier(provider=provider, threshold=60, batch_delay=0)
    listings = _listings(4)

    outcome = await qualifier.qualify_batch(listings, requirements)

    assert [r.listing_id for r in outcome.results] == [listing.id for listing in listings]
    assert all(r.failed and r.score == 0 for r in outcome.results)
    assert all(r.explanation == QUALIFICATION_FAILED for r in outcome.results)
    assert outcome.error


@pytest.mark.asyncio
async def test_empty_batch(requirements, qualifier, provider):
    outcome = await qualifier.qualify_batch([], requirements)

    assert outcome.results == []
    assert provider.prompts == []


@pytest.mark.asyncio
async def test_threshold_boundary(requirements):
    provider = FakeProvider(score=60)
    qualifier = BatchQualifier(provider=provider, threshold=60, batch_delay=0)

    outcome = await qualifier.qualify_batch(_listings(2), requirements)

    assert all(r.is_match for r in outcome.results)


def test_chunk_sizes():
    qualifier = BatchQualifier(provider=FakeProvider(), batch_size=25)

    batches = qualifier.chunk(_listings(60))

    assert [len(b) for b in batches] == [25, 25, 10]


@pytest.mark.parametrize("size", [0, 51])
def test_batch_size_out_of_range(size):
    with pytest.raises(ValueError):
        BatchQualifier(provider=FakeProvider(), batch_size=size)

