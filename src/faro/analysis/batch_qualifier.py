"""
Calificador por batch.

Envía varios listings en un único request al modelo y garantiza un
resultado por listing: si el modelo omite alguno, o el batch entero falla,
se completan con resultados centinela (score 0, nunca match).
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from faro.analysis.llm_providers import BaseLLMProvider, get_llm_provider
from faro.analysis.prompt_template import (
    QUALIFICATION_SYSTEM_PROMPT,
    build_batch_prompt,
)
from faro.analysis.response_parser import parse_batch_response, reconcile
from faro.config import get_settings
from faro.models import BuyerRequirements, CandidateListing, QualificationResult
from faro.models.qualification import QUALIFICATION_FAILED

logger = structlog.get_logger()


@dataclass
class BatchOutcome:
    """Resultado de un batch, con el prompt y la respuesta para debug."""

    results: list[QualificationResult] = field(default_factory=list)
    prompt: str = ""
    raw_response: Optional[str] = None
    error: Optional[str] = None

    @property
    def matches(self) -> list[QualificationResult]:
        return [r for r in self.results if r.is_match]


class BatchQualifier:
    """
    Califica candidatos contra los requisitos de un comprador.

    Uso:
        qualifier = BatchQualifier()
        outcome = await qualifier.qualify_batch(listings, requirements)
    """

    def __init__(
        self,
        provider: Optional[BaseLLMProvider] = None,
        threshold: Optional[int] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        settings = get_settings()
        self._provider = provider
        self.threshold = settings.qualification_threshold if threshold is None else threshold
        self.batch_size = settings.qualification_batch_size if batch_size is None else batch_size
        self.batch_delay = (
            settings.qualification_batch_delay if batch_delay is None else batch_delay
        )
        self.max_tokens = max_tokens or settings.qualification_max_tokens

        if not 1 <= self.batch_size <= 50:
            raise ValueError(f"batch_size fuera de rango: {self.batch_size}")

    @property
    def provider(self) -> BaseLLMProvider:
        """Proveedor LLM, creado recién cuando se necesita."""
        if self._provider is None:
            self._provider = get_llm_provider()
        return self._provider

    def chunk(self, listings: list[CandidateListing]) -> list[list[CandidateListing]]:
        """Parte la lista en batches consecutivos de `batch_size`."""
        return [
            listings[i:i + self.batch_size]
            for i in range(0, len(listings), self.batch_size)
        ]

    async def qualify_batch(
        self,
        listings: list[CandidateListing],
        requirements: BuyerRequirements,
        template: Optional[str] = None,
    ) -> BatchOutcome:
        """
        Califica un batch con un único request al modelo.

        Nunca levanta excepciones: cualquier fallo del proveedor o del
        parseo se convierte en centinelas para todo el batch.
        """
        if not listings:
            return BatchOutcome()

        prompt = build_batch_prompt(requirements, listings, template)
        outcome = BatchOutcome(prompt=prompt)

        try:
            response = await self.provider.generate(
                system_prompt=QUALIFICATION_SYSTEM_PROMPT,
                user_prompt=prompt,
                temperature=0.2,
                max_tokens=self.max_tokens,
            )
            outcome.raw_response = response.text

            if response.finish_reason and response.finish_reason.upper() in ("MAX_TOKENS", "LENGTH"):
                logger.warning(
                    "Respuesta del batch truncada por límite de tokens",
                    batch_size=len(listings),
                    finish_reason=response.finish_reason,
                )

            items = parse_batch_response(response.text)
            outcome.results = reconcile(listings, items, self.threshold)

        except Exception as e:
            logger.error(
                "Error calificando batch",
                batch_size=len(listings),
                error=str(e),
                error_type=type(e).__name__,
            )
            outcome.error = str(e)
            outcome.results = [
                QualificationResult.sentinel(listing.id, QUALIFICATION_FAILED)
                for listing in listings
            ]

        logger.info(
            "Batch calificado",
            batch_size=len(listings),
            matches=len(outcome.matches),
            failed=sum(1 for r in outcome.results if r.failed),
        )
        return outcome
