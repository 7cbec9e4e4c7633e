"""
Tenant-scoped repository over taxpayer records.

TaxpayerDataRepository is built per request from the shared store and the
request's RequestContext. Every method reads the owner id from the context,
asks the store for that owner's rows only, then applies the domain filter
(year, category, type) and a deterministic ordering. No method accepts a
user id.

Absence of data is a normal result (None or an empty collection). A failing
or unresponsive store surfaces as RepositoryUnavailableError and is not
retried here.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import date
from decimal import Decimal
from typing import TypeVar

from taxpayer_mcp.context import RequestContext
from taxpayer_mcp.errors import InvalidArgumentError, RepositoryUnavailableError
from taxpayer_mcp.models import (
    Deduction,
    DeductionCategory,
    Document,
    DocumentType,
    TaxpayerProfile,
    TaxReturn,
    declaration_rank,
)
from taxpayer_mcp.store import TaxRecordStore

logger = logging.getLogger(__name__)

MIN_TAX_YEAR = 1900

T = TypeVar("T")


def validate_tax_year(year: int, current_year: int) -> int:
    """
    Check that `year` lies in [1900, current_year].

    Raises:
        InvalidArgumentError: If it does not
    """
    if year < MIN_TAX_YEAR or year > current_year:
        raise InvalidArgumentError(
            f"Invalid tax year: {year}. Must be between {MIN_TAX_YEAR} and {current_year}.",
            data={"argument": "year", "minimum": MIN_TAX_YEAR, "maximum": current_year},
        )
    return year


class TaxpayerDataRepository:
    def __init__(
        self,
        store: TaxRecordStore,
        context: RequestContext,
        timeout: float = 5.0,
        clock: Callable[[], date] = date.today,
    ):
        self._store = store
        self._context = context
        self._timeout = timeout
        self._clock = clock

    @property
    def current_year(self) -> int:
        return self._clock().year

    def _check_year(self, year: int) -> int:
        return validate_tax_year(year, self.current_year)

    async def _fetch(self, lookup: Callable[[str], Awaitable[list[T]]]) -> list[T]:
        # The owner id comes from the bound identity and nowhere else.
        owner_id = self._context.current_user_id()
        try:
            return await asyncio.wait_for(lookup(owner_id), timeout=self._timeout)
        except RepositoryUnavailableError:
            raise
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(
                "Tax record store unavailable",
                extra={
                    "log_data": {
                        "request_id": self._context.request_id,
                        "lookup": getattr(lookup, "__name__", repr(lookup)),
                        "error": repr(e),
                    }
                },
            )
            raise RepositoryUnavailableError("Tax record store is unavailable") from e

    # --- Profile ---

    async def get_profile(self) -> TaxpayerProfile | None:
        profiles = await self._fetch(self._store.profiles_for)
        return profiles[0] if profiles else None

    # --- Returns ---

    async def get_returns(self) -> list[TaxReturn]:
        returns = await self._fetch(self._store.returns_for)
        return sorted(returns, key=lambda r: r.tax_year, reverse=True)

    async def get_return_by_year(self, year: int) -> TaxReturn | None:
        self._check_year(year)
        returns = await self._fetch(self._store.returns_for)
        return next((r for r in returns if r.tax_year == year), None)

    # --- Deductions ---

    async def get_deductions_by_year(self, year: int) -> list[Deduction]:
        self._check_year(year)
        deductions = await self._fetch(self._store.deductions_for)
        return sorted(
            (d for d in deductions if d.tax_year == year),
            key=lambda d: (declaration_rank(d.category), d.description),
        )

    async def get_deductions_by_category(self, category: DeductionCategory) -> list[Deduction]:
        deductions = await self._fetch(self._store.deductions_for)
        matching = [d for d in deductions if d.category is category]
        # Two stable sorts: description ascending within tax year descending.
        matching.sort(key=lambda d: d.description)
        matching.sort(key=lambda d: d.tax_year, reverse=True)
        return matching

    async def get_deduction_totals_by_category(self, year: int) -> dict[DeductionCategory, Decimal]:
        """Sum of amounts per category for `year`; categories without deductions are absent."""
        totals: dict[DeductionCategory, Decimal] = {}
        for deduction in await self.get_deductions_by_year(year):
            totals[deduction.category] = totals.get(deduction.category, Decimal("0")) + deduction.amount
        return totals

    async def get_deduction_totals_by_year(self) -> dict[int, Decimal]:
        """Sum of amounts per tax year, oldest year first."""
        totals: dict[int, Decimal] = {}
        for deduction in await self._fetch(self._store.deductions_for):
            totals[deduction.tax_year] = totals.get(deduction.tax_year, Decimal("0")) + deduction.amount
        return dict(sorted(totals.items()))

    async def compare_deductions_yearly(self, year1: int, year2: int) -> dict[int, list[Deduction]]:
        """
        Deductions of the two requested years, keyed by year.

        A year only appears as a key if it has at least one deduction; each
        list is ordered by category, then description.
        """
        self._check_year(year1)
        self._check_year(year2)
        deductions = await self._fetch(self._store.deductions_for)

        comparison: dict[int, list[Deduction]] = {}
        for year in (year1, year2):
            rows = sorted(
                (d for d in deductions if d.tax_year == year),
                key=lambda d: (declaration_rank(d.category), d.description),
            )
            if rows:
                comparison[year] = rows
        return comparison

    # --- Documents ---

    async def get_documents_by_type(self, document_type: DocumentType) -> list[Document]:
        documents = await self._fetch(self._store.documents_for)
        return sorted(
            (d for d in documents if d.type is document_type),
            key=lambda d: d.uploaded_at,
            reverse=True,
        )

    async def get_documents_by_year(self, year: int) -> list[Document]:
        self._check_year(year)
        documents = await self._fetch(self._store.documents_for)
        matching = [d for d in documents if d.tax_year == year]
        matching.sort(key=lambda d: d.uploaded_at, reverse=True)
        matching.sort(key=lambda d: declaration_rank(d.type))
        return matching
