"""Fakes de store, índice y LLM para los tests."""

import json
import re
from datetime import datetime
from typing import Callable, Optional

from faro.analysis import BaseLLMProvider, LLMResponse
from faro.exceptions import CheckpointError, PersistenceError
from faro.models import CandidateListing, MatchRecord, SearchCriteria
from faro.search import SearchResult

_LISTING_HEADER = re.compile(r"\[Listing (\d+)\]")


def make_criteria(**overrides) -> SearchCriteria:
    data = {
        "id": "crit-1",
        "buyer_id": "buyer-1",
        "name": "2BR Dubai Marina",
        "kind": "listing",
        "transaction_type": "sale",
    }
    data.update(overrides)
    return SearchCriteria.model_validate(data)


def make_listing(listing_id: str, **data) -> CandidateListing:
    document = {
        "id": listing_id,
        "data": {
            "property_type": "apartment",
            "community": "Dubai Marina",
            "price_aed": 1_500_000,
            "bedrooms": 2,
            "message_body_clean": f"Listing {listing_id} for sale",
            **data,
        },
    }
    return CandidateListing(id=listing_id, document=document)


def batch_response(scores: list[int], start: int = 1) -> str:
    return json.dumps([
        {
            "index": start + i,
            "score": score,
            "explanation": f"Listing {start + i} scored {score}",
            "highlights": ["Good location"],
            "concerns": [],
        }
        for i, score in enumerate(scores)
    ])


class FakeProvider(BaseLLMProvider):
    """
    LLM falso.

    Por defecto responde un score fijo para cada `[Listing N]` del prompt.
    `responses` permite encolar textos o excepciones.
    """

    provider_name = "fake"
    model = "fake-model"

    def __init__(
        self,
        score: int = 80,
        responses: Optional[list] = None,
        scorer: Optional[Callable[[str], int]] = None,
    ):
        self.score = score
        self.responses = list(responses or [])
        self.scorer = scorer
        self.prompts: list[str] = []

    async def generate(self, system_prompt, user_prompt, temperature=0.2, max_tokens=8192):
        self.prompts.append(user_prompt)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return LLMResponse(text=response, model=self.model, provider=self.provider_name)

        indexes = [int(n) for n in _LISTING_HEADER.findall(user_prompt)]
        items = []
        for index in indexes:
            score = self.scorer(self._listing_id(user_prompt, index)) if self.scorer else self.score
            items.append({
                "index": index,
                "score": score,
                "explanation": "ok",
                "highlights": [],
                "concerns": [],
            })
        return LLMResponse(text=json.dumps(items), model=self.model, provider=self.provider_name)

    @staticmethod
    def _listing_id(prompt: str, index: int) -> str:
        # Los listings de prueba llevan su id en la descripción
        block = prompt.split(f"[Listing {index}]", 1)[1]
        match = re.search(r"Description: Listing (\S+) for sale", block)
        return match.group(1) if match else ""


class FakeSearchClient:
    """Cliente de búsqueda falso: resultados por número de llamada (desde 1)."""

    def __init__(self, results: Optional[dict] = None, on_search: Optional[Callable] = None):
        self.results = results or {}
        self.on_search = on_search
        self.queries = []

    async def search(self, query):
        self.queries.append(query)
        key = len(self.queries)
        if self.on_search:
            self.on_search(key)
        result = self.results.get(key, SearchResult())
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self):
        pass


class FakeCriteriaRepo:
    def __init__(
        self,
        criteria=None,
        error: Optional[Exception] = None,
        checkpoint_error=False,
        invalid=None,
    ):
        self.criteria = criteria or []
        self.invalid = invalid or []
        self.error = error
        self.checkpoint_error = checkpoint_error
        self.checkpoints: list[tuple[list[str], datetime]] = []
        self.reads: list[dict] = []

    def get_active(self, criteria_id=None, buyer_id=None):
        self.reads.append({"criteria_id": criteria_id, "buyer_id": buyer_id})
        if self.error:
            raise self.error
        return list(self.criteria), list(self.invalid)

    def advance_checkpoints(self, criteria_ids, run_started_at):
        if self.checkpoint_error:
            raise CheckpointError("update failed")
        self.checkpoints.append((list(criteria_ids), run_started_at))
        return len(criteria_ids)


class FakeMatchRepo:
    """Store de matches en memoria con semántica de upsert."""

    def __init__(self, fail=False):
        self.fail = fail
        self.rows: dict[tuple[str, str], MatchRecord] = {}
        self.calls = 0

    def upsert_matches(self, records):
        self.calls += 1
        if self.fail:
            raise PersistenceError("insert failed")
        for record in records:
            self.rows[(record.criteria_id, record.listing_id)] = record
        return len(records)


class FakeSettingsRepo:
    def __init__(self, template: Optional[str] = None):
        self.template = template

    def get_default_prompt(self):
        return self.template
