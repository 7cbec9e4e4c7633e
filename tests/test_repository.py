"""
Tests for the tenant-scoped repository (taxpayer_mcp/repository.py).

The sample store holds two owners:
    test-user     John Doe, deductions of $30,000 (2023) and $15,000 (2024)
    another-user  Jane Smith, one $10,000 deduction in 2023

Every test reads through a repository bound to one of them; nothing can
name the other owner's id.
"""

import asyncio
from decimal import Decimal

import pytest

from taxpayer_mcp.auth import Identity, Role
from taxpayer_mcp.context import RequestContext
from taxpayer_mcp.errors import InvalidArgumentError, RepositoryUnavailableError, UnauthenticatedError
from taxpayer_mcp.models import DeductionCategory, DocumentType, FilingStatus
from taxpayer_mcp.repository import TaxpayerDataRepository, validate_tax_year
from taxpayer_mcp.store import SAMPLE_OTHER_USER, SAMPLE_USER, TaxRecordStore

from conftest import TODAY


class BrokenStore(TaxRecordStore):
    """Every lookup fails as if the backing database were down."""

    async def profiles_for(self, owner_id):
        raise ConnectionRefusedError("connection refused")

    async def returns_for(self, owner_id):
        raise ConnectionRefusedError("connection refused")

    async def deductions_for(self, owner_id):
        raise ConnectionRefusedError("connection refused")

    async def documents_for(self, owner_id):
        raise ConnectionRefusedError("connection refused")


class SlowStore(TaxRecordStore):
    """Every lookup takes longer than any test timeout."""

    async def _hang(self):
        await asyncio.sleep(10)
        return []

    async def profiles_for(self, owner_id):
        return await self._hang()

    async def returns_for(self, owner_id):
        return await self._hang()

    async def deductions_for(self, owner_id):
        return await self._hang()

    async def documents_for(self, owner_id):
        return await self._hang()


class TestTenantIsolation:
    async def test_profile_belongs_to_caller(self, repository_for):
        profile = await repository_for(SAMPLE_USER).get_profile()

        assert profile.name == "John Doe"
        assert profile.owner_id == SAMPLE_USER

    async def test_other_caller_sees_only_own_profile(self, repository_for):
        profile = await repository_for(SAMPLE_OTHER_USER).get_profile()

        assert profile.name == "Jane Smith"
        assert profile.filing_status is FilingStatus.SINGLE

    async def test_every_row_is_owned_by_caller(self, repository_for):
        """No operation returns a row owned by anyone else."""
        repository = repository_for(SAMPLE_OTHER_USER)

        rows = [
            *(await repository.get_returns()),
            *(await repository.get_deductions_by_year(2023)),
            *(await repository.get_deductions_by_category(DeductionCategory.STATE_LOCAL_TAXES)),
            *(await repository.get_documents_by_type(DocumentType.W2)),
            *(await repository.get_documents_by_year(2023)),
        ]

        assert rows
        assert all(row.owner_id == SAMPLE_OTHER_USER for row in rows)

    async def test_unknown_user_gets_empty_results(self, repository_for):
        """A valid token for a user with no data is not an error."""
        repository = repository_for("nobody")

        assert await repository.get_profile() is None
        assert await repository.get_returns() == []
        assert await repository.get_deductions_by_year(2023) == []
        assert await repository.get_documents_by_year(2023) == []
        assert await repository.get_deduction_totals_by_year() == {}

    async def test_same_query_for_two_users_differs(self, repository_for):
        john = await repository_for(SAMPLE_USER).get_documents_by_type(DocumentType.W2)
        jane = await repository_for(SAMPLE_OTHER_USER).get_documents_by_type(DocumentType.W2)

        assert [d.file_name for d in john] == ["W2-2023.pdf"]
        assert [d.file_name for d in jane] == ["W2-Jane-2023.pdf"]

    async def test_unbound_context_is_rejected(self, store):
        repository = TaxpayerDataRepository(store, RequestContext())

        with pytest.raises(UnauthenticatedError):
            await repository.get_profile()


class TestTaxReturns:
    async def test_returns_are_newest_first(self, repository_for):
        returns = await repository_for().get_returns()

        assert [r.tax_year for r in returns] == [2024, 2023]

    async def test_return_by_year(self, repository_for):
        tax_return = await repository_for().get_return_by_year(2023)

        assert tax_return.tax_year == 2023
        assert tax_return.total_deductions == Decimal("30000")

    async def test_missing_year_returns_none(self, repository_for):
        assert await repository_for().get_return_by_year(2020) is None


class TestDeductions:
    async def test_deductions_by_year_are_ordered_by_category(self, repository_for):
        deductions = await repository_for().get_deductions_by_year(2023)

        assert [d.category for d in deductions] == [
            DeductionCategory.CHARITABLE_DONATIONS,
            DeductionCategory.MORTGAGE_INTEREST,
            DeductionCategory.PROPERTY_TAXES,
        ]

    async def test_deductions_by_category_span_years_newest_first(self, repository_for):
        deductions = await repository_for().get_deductions_by_category(
            DeductionCategory.CHARITABLE_DONATIONS
        )

        assert [(d.tax_year, d.amount) for d in deductions] == [
            (2024, Decimal("6500")),
            (2023, Decimal("5000")),
        ]

    async def test_totals_by_category(self, repository_for):
        totals = await repository_for().get_deduction_totals_by_category(2024)

        assert totals == {
            DeductionCategory.MEDICAL_EXPENSES: Decimal("8500"),
            DeductionCategory.CHARITABLE_DONATIONS: Decimal("6500"),
        }

    @pytest.mark.parametrize("year", [2023, 2024])
    async def test_category_totals_add_up_to_year_total(self, repository_for, year):
        repository = repository_for()

        totals = await repository.get_deduction_totals_by_category(year)
        deductions = await repository.get_deductions_by_year(year)

        assert sum(totals.values()) == sum(d.amount for d in deductions)

    async def test_totals_by_year(self, repository_for):
        totals = await repository_for().get_deduction_totals_by_year()

        assert totals == {2023: Decimal("30000"), 2024: Decimal("15000")}
        assert list(totals) == [2023, 2024]

    async def test_compare_keys_both_years(self, repository_for):
        comparison = await repository_for().compare_deductions_yearly(2023, 2024)

        assert set(comparison) == {2023, 2024}
        assert sum(d.amount for d in comparison[2023]) == Decimal("30000")
        assert sum(d.amount for d in comparison[2024]) == Decimal("15000")

    async def test_compare_omits_year_without_deductions(self, repository_for):
        comparison = await repository_for().compare_deductions_yearly(2022, 2023)

        assert list(comparison) == [2023]

    async def test_compare_same_year_twice(self, repository_for):
        comparison = await repository_for().compare_deductions_yearly(2024, 2024)

        assert list(comparison) == [2024]


class TestDocuments:
    async def test_documents_by_year_ordered_by_type(self, repository_for):
        documents = await repository_for().get_documents_by_year(2023)

        assert [d.type for d in documents] == [DocumentType.W2, DocumentType.MORTGAGE_STATEMENT]

    async def test_documents_by_type(self, repository_for):
        documents = await repository_for().get_documents_by_type(DocumentType.MORTGAGE_STATEMENT)

        assert [d.file_name for d in documents] == ["Mortgage-2023.pdf"]

    async def test_no_documents_of_type(self, repository_for):
        assert await repository_for().get_documents_by_type(DocumentType.INVOICE) == []


class TestYearValidation:
    def test_bounds_are_inclusive(self):
        assert validate_tax_year(1900, 2025) == 1900
        assert validate_tax_year(2025, 2025) == 2025

    @pytest.mark.parametrize("year", [1899, TODAY.year + 1])
    async def test_out_of_range_year_is_rejected(self, repository_for, year):
        repository = repository_for()

        for operation in (
            repository.get_return_by_year,
            repository.get_deductions_by_year,
            repository.get_deduction_totals_by_category,
            repository.get_documents_by_year,
        ):
            with pytest.raises(InvalidArgumentError, match=f"Invalid tax year: {year}"):
                await operation(year)

    async def test_compare_validates_both_years(self, repository_for):
        with pytest.raises(InvalidArgumentError, match="Must be between 1900 and 2025"):
            await repository_for().compare_deductions_yearly(2023, 3000)


class TestUnavailableStore:
    async def test_store_error_becomes_repository_unavailable(self):
        context = RequestContext.for_identity(Identity(user_id=SAMPLE_USER, role=Role.USER))
        repository = TaxpayerDataRepository(BrokenStore(), context)

        with pytest.raises(RepositoryUnavailableError, match="Tax record store is unavailable"):
            await repository.get_returns()

    async def test_slow_store_times_out(self):
        context = RequestContext.for_identity(Identity(user_id=SAMPLE_USER, role=Role.USER))
        repository = TaxpayerDataRepository(SlowStore(), context, timeout=0.01)

        with pytest.raises(RepositoryUnavailableError):
            await repository.get_profile()
