"""Stage 1 — candidate generation.

Two strategies produce the same candidate set: an in-memory double loop over
applicants and products, and a range-filtered query pushed down to the
database. Both emit candidates in applicant-major, product-minor order.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from loanmatch.eligibility.predicate import check_eligibility
from loanmatch.schemas.matching import ApplicantProfile, MatchCandidate, ProductProfile

logger = logging.getLogger(__name__)


class CatalogSource(Protocol):
    """Read side of the applicant/product store needed by Stage 1."""

    async def list_applicants(
        self,
        batch_tag: str | None = None,
        applicant_ids: Sequence[uuid.UUID] | None = None,
    ) -> list[ApplicantProfile]: ...

    async def list_active_products(self) -> list[ProductProfile]: ...

    async def prefilter_pairs(
        self,
        batch_tag: str | None = None,
        applicant_ids: Sequence[uuid.UUID] | None = None,
    ) -> list[tuple[uuid.UUID, uuid.UUID]]: ...


@dataclass
class GenerationResult:
    """Stage 1 output plus the lookups later stages need."""

    applicants: dict[uuid.UUID, ApplicantProfile] = field(default_factory=dict)
    products: dict[uuid.UUID, ProductProfile] = field(default_factory=dict)
    candidates: list[MatchCandidate] = field(default_factory=list)
    total_pairs: int = 0


def generate_candidates(
    applicants: Sequence[ApplicantProfile],
    products: Sequence[ProductProfile],
) -> list[MatchCandidate]:
    """Every (applicant, product) pair that passes all four hard criteria."""
    candidates: list[MatchCandidate] = []
    for applicant in applicants:
        for product in products:
            flags = check_eligibility(applicant, product)
            if not flags.passed:
                logger.debug(
                    "Ineligible: applicant=%s product=%s failed=%s",
                    applicant.external_id,
                    product.product_name,
                    ",".join(flags.failed_criteria()),
                )
                continue
            candidates.append(MatchCandidate(
                applicant_id=applicant.id,
                product_id=product.id,
                flags=flags,
            ))
    return candidates


class CandidateGenerator:
    """Loads applicants and active products, then applies the Stage 1 filter.

    Repository errors propagate unchanged; retrying is the caller's decision.
    """

    def __init__(self, repository: CatalogSource, use_sql_prefilter: bool = False) -> None:
        self._repository = repository
        self._use_sql_prefilter = use_sql_prefilter

    async def generate(
        self,
        batch_tag: str | None = None,
        applicant_ids: Sequence[uuid.UUID] | None = None,
    ) -> GenerationResult:
        applicants = await self._repository.list_applicants(batch_tag, applicant_ids)
        if not applicants:
            logger.info("No applicants for batch=%s", batch_tag)
            return GenerationResult()

        products = await self._repository.list_active_products()
        result = GenerationResult(
            applicants={a.id: a for a in applicants},
            products={p.id: p for p in products},
            total_pairs=len(applicants) * len(products),
        )
        if not products:
            logger.info("No active products, nothing to match for batch=%s", batch_tag)
            return result

        if self._use_sql_prefilter:
            result.candidates = await self._from_prefilter(result, batch_tag, applicant_ids)
        else:
            result.candidates = generate_candidates(applicants, products)

        logger.info(
            "Stage 1: %d/%d pairs eligible (batch=%s, prefilter=%s)",
            len(result.candidates),
            result.total_pairs,
            batch_tag,
            self._use_sql_prefilter,
        )
        return result

    async def _from_prefilter(
        self,
        result: GenerationResult,
        batch_tag: str | None,
        applicant_ids: Sequence[uuid.UUID] | None,
    ) -> list[MatchCandidate]:
        pairs = await self._repository.prefilter_pairs(batch_tag, applicant_ids)
        candidates: list[MatchCandidate] = []
        for applicant_id, product_id in pairs:
            applicant = result.applicants.get(applicant_id)
            product = result.products.get(product_id)
            if applicant is None or product is None:
                continue
            # Flags come from the predicate so both strategies agree exactly.
            flags = check_eligibility(applicant, product)
            if flags.passed:
                candidates.append(MatchCandidate(
                    applicant_id=applicant_id,
                    product_id=product_id,
                    flags=flags,
                ))
        return candidates
