"""Applicant/product repository backed by PostgreSQL.

Reads return immutable profiles in a deterministic order (applicants by
external id, products by provider then name), so Stage 1 output order does
not depend on the storage engine. Every SQLAlchemy or socket failure is
re-raised as RepositoryError.
"""

from __future__ import annotations

import contextlib
import logging
import uuid
from collections.abc import Iterator, Sequence

from pydantic import ValidationError
from sqlalchemy import ColumnElement, Select, and_, any_, func, literal_column, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from loanmatch.errors import DuplicateProductError, RepositoryError
from loanmatch.models.applicant import Applicant
from loanmatch.models.loan_product import LoanProduct
from loanmatch.schemas.matching import (
    ApplicantCreate,
    ApplicantProfile,
    BulkUpsertResult,
    ProductCreate,
    ProductProfile,
)

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def _repository_errors(action: str) -> Iterator[None]:
    try:
        yield
    except (SQLAlchemyError, OSError) as exc:
        logger.error("Repository failure while %s: %s", action, exc)
        msg = f"Repository failure while {action}: {exc}"
        raise RepositoryError(msg) from exc


def _filter_applicants(
    stmt: Select,
    batch_tag: str | None,
    applicant_ids: Sequence[uuid.UUID] | None,
) -> Select:
    stmt = stmt.where(Applicant.is_active.is_(True))
    if batch_tag is not None:
        stmt = stmt.where(Applicant.batch_tag == batch_tag)
    if applicant_ids is not None:
        stmt = stmt.where(Applicant.id.in_(list(applicant_ids)))
    return stmt


def prefilter_condition() -> ColumnElement[bool]:
    """Join condition equivalent to the Stage 1 eligibility predicate."""
    return and_(
        Applicant.monthly_income >= LoanProduct.min_monthly_income,
        Applicant.credit_score >= LoanProduct.min_credit_score,
        or_(
            LoanProduct.max_credit_score.is_(None),
            Applicant.credit_score <= LoanProduct.max_credit_score,
        ),
        Applicant.age.between(LoanProduct.min_age, LoanProduct.max_age),
        or_(
            func.cardinality(LoanProduct.accepted_employment) == 0,
            Applicant.employment_status == any_(LoanProduct.accepted_employment),
        ),
    )


class CatalogRepository:
    """Applicant and product access for the matching pipeline."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_applicants(
        self,
        batch_tag: str | None = None,
        applicant_ids: Sequence[uuid.UUID] | None = None,
    ) -> list[ApplicantProfile]:
        """Active applicants of a batch (or all), ordered by external id."""
        stmt = _filter_applicants(select(Applicant), batch_tag, applicant_ids).order_by(Applicant.external_id)
        with _repository_errors("listing applicants"):
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()

        profiles: list[ApplicantProfile] = []
        for row in rows:
            try:
                profiles.append(ApplicantProfile.model_validate(row))
            except ValidationError as exc:
                logger.warning("Skipping invalid applicant %s: %s", row.external_id, exc)
        return profiles

    async def list_active_products(self) -> list[ProductProfile]:
        """Active catalog, ordered by provider then product name."""
        stmt = (
            select(LoanProduct)
            .where(LoanProduct.is_active.is_(True))
            .order_by(LoanProduct.provider_name, LoanProduct.product_name)
        )
        with _repository_errors("listing products"):
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()

        products: list[ProductProfile] = []
        for row in rows:
            try:
                products.append(ProductProfile.model_validate(row))
            except ValidationError as exc:
                logger.warning("Skipping invalid product %s/%s: %s", row.provider_name, row.product_name, exc)
        return products

    async def prefilter_pairs(
        self,
        batch_tag: str | None = None,
        applicant_ids: Sequence[uuid.UUID] | None = None,
    ) -> list[tuple[uuid.UUID, uuid.UUID]]:
        """(applicant_id, product_id) pairs passing the range filter, applicant-major."""
        stmt = _filter_applicants(
            select(Applicant.id, LoanProduct.id)
            .join(LoanProduct, prefilter_condition())
            .where(LoanProduct.is_active.is_(True)),
            batch_tag,
            applicant_ids,
        ).order_by(Applicant.external_id, LoanProduct.provider_name, LoanProduct.product_name)

        with _repository_errors("prefiltering pairs"):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [(applicant_id, product_id) for applicant_id, product_id in result.all()]

    async def upsert_applicants(self, applicants: Sequence[ApplicantCreate]) -> BulkUpsertResult:
        """Insert applicants, overwriting existing rows with the same external id.

        Each row runs in its own savepoint; a rejected row is counted, not fatal.
        """
        result = BulkUpsertResult()
        if not applicants:
            return result

        with _repository_errors("upserting applicants"):
            async with self._session_factory() as session, session.begin():
                for applicant in applicants:
                    values = applicant.model_dump()
                    values["employment_status"] = applicant.employment_status.value
                    stmt = pg_insert(Applicant).values(**values)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=[Applicant.external_id],
                        set_={
                            "email": stmt.excluded.email,
                            "monthly_income": stmt.excluded.monthly_income,
                            "credit_score": stmt.excluded.credit_score,
                            "employment_status": stmt.excluded.employment_status,
                            "age": stmt.excluded.age,
                            "batch_tag": stmt.excluded.batch_tag,
                            "is_active": True,
                            "updated_at": func.now(),
                        },
                    ).returning(literal_column("(xmax = 0)").label("inserted"))

                    try:
                        async with session.begin_nested():
                            inserted = (await session.execute(stmt)).scalar_one()
                    except (IntegrityError, DataError) as exc:
                        result.failed += 1
                        result.errors.append(f"{applicant.external_id}: {exc.orig}")
                        logger.warning("Applicant %s rejected: %s", applicant.external_id, exc.orig)
                        continue

                    if inserted:
                        result.inserted += 1
                    else:
                        result.updated += 1

        logger.info(
            "Applicants upserted: %d inserted, %d updated, %d failed",
            result.inserted,
            result.updated,
            result.failed,
        )
        return result

    async def create_product(self, product: ProductCreate) -> ProductProfile:
        """Add a product to the catalog. Duplicate provider/name pairs are rejected."""
        row = LoanProduct(
            **product.model_dump(exclude={"product_type", "accepted_employment"}),
            product_type=product.product_type.value,
            accepted_employment=sorted(status.value for status in product.accepted_employment),
        )
        with _repository_errors("creating product"):
            try:
                async with self._session_factory() as session, session.begin():
                    session.add(row)
                    await session.flush()
                    await session.refresh(row)
                    profile = ProductProfile.model_validate(row)
            except IntegrityError as exc:
                logger.warning("Product %s/%s rejected: %s", product.provider_name, product.product_name, exc.orig)
                msg = f"Product {product.provider_name}/{product.product_name} already exists"
                raise DuplicateProductError(msg) from exc
        logger.info("Product created: %s/%s", profile.provider_name, profile.product_name)
        return profile

    async def deactivate_product(self, product_id: uuid.UUID) -> bool:
        """Take a product out of matching. Returns False if no such product exists.

        Existing matches are kept; the product is skipped from the next run on.
        """
        stmt = (
            update(LoanProduct)
            .where(LoanProduct.id == product_id)
            .values(is_active=False, updated_at=func.now())
        )
        with _repository_errors("deactivating product"):
            async with self._session_factory() as session, session.begin():
                result = await session.execute(stmt)
        found = (result.rowcount or 0) > 0
        if found:
            logger.info("Product deactivated: %s", product_id)
        return found
