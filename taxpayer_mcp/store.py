"""
Backing store for taxpayer records.

TaxRecordStore is the narrow interface the repository talks to. It only has
owner-keyed lookups: there is no call that returns another
owner's rows, so a query path without the owner filter cannot be written
against it.

InMemoryTaxRecordStore is the reference implementation. Records are seeded
once at startup, either from a JSON file or from built-in sample data, and
indexed by owner id. The store is never written after construction, so it
is shared by all concurrent requests without locking.
"""

import abc
import logging
import uuid
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

from taxpayer_mcp.models import (
    Deduction,
    DeductionCategory,
    Document,
    DocumentType,
    FilingStatus,
    ReturnStatus,
    TaxpayerProfile,
    TaxRecordSet,
    TaxReturn,
)

logger = logging.getLogger(__name__)


class TaxRecordStore(abc.ABC):
    """Owner-keyed read access to tenant records."""

    @abc.abstractmethod
    async def profiles_for(self, owner_id: str) -> list[TaxpayerProfile]: ...

    @abc.abstractmethod
    async def returns_for(self, owner_id: str) -> list[TaxReturn]: ...

    @abc.abstractmethod
    async def deductions_for(self, owner_id: str) -> list[Deduction]: ...

    @abc.abstractmethod
    async def documents_for(self, owner_id: str) -> list[Document]: ...


def _index_by_owner(records) -> dict[str, tuple]:
    grouped = defaultdict(list)
    for record in records:
        grouped[record.owner_id].append(record)
    return {owner: tuple(rows) for owner, rows in grouped.items()}


class InMemoryTaxRecordStore(TaxRecordStore):
    def __init__(self, records: TaxRecordSet):
        self._profiles = _index_by_owner(records.taxpayers)
        self._returns = _index_by_owner(records.tax_returns)
        self._deductions = _index_by_owner(records.deductions)
        self._documents = _index_by_owner(records.documents)

        logger.info(
            "Tax record store loaded",
            extra={
                "log_data": {
                    "owners": len(self._profiles),
                    "taxpayers": len(records.taxpayers),
                    "tax_returns": len(records.tax_returns),
                    "deductions": len(records.deductions),
                    "documents": len(records.documents),
                }
            },
        )

    @classmethod
    def from_json_file(cls, path: Path) -> "InMemoryTaxRecordStore":
        """
        Load and validate a seed file.

        Raises:
            OSError: If the file cannot be read
            pydantic.ValidationError: If the content does not match the record models
        """
        logger.info("Seeding tax records from JSON file", extra={"log_data": {"path": str(path)}})
        records = TaxRecordSet.model_validate_json(path.read_text(encoding="utf-8"))
        return cls(records)

    @classmethod
    def with_sample_data(cls) -> "InMemoryTaxRecordStore":
        logger.info("Seeding tax records from built-in sample data")
        return cls(sample_records())

    # Lookups return copies so callers can sort without touching the index.

    async def profiles_for(self, owner_id: str) -> list[TaxpayerProfile]:
        return list(self._profiles.get(owner_id, ()))

    async def returns_for(self, owner_id: str) -> list[TaxReturn]:
        return list(self._returns.get(owner_id, ()))

    async def deductions_for(self, owner_id: str) -> list[Deduction]:
        return list(self._deductions.get(owner_id, ()))

    async def documents_for(self, owner_id: str) -> list[Document]:
        return list(self._documents.get(owner_id, ()))


def load_store(data_file: Path | None) -> InMemoryTaxRecordStore:
    """Seed from `data_file` when it exists, otherwise from the sample data."""
    if data_file is not None and data_file.exists():
        return InMemoryTaxRecordStore.from_json_file(data_file)
    if data_file is not None:
        logger.warning(
            "Data file not found, using sample data",
            extra={"log_data": {"path": str(data_file)}},
        )
    return InMemoryTaxRecordStore.with_sample_data()


# ---------------------------------------------------------------------------
# Sample data
# ---------------------------------------------------------------------------
# Two owners so that isolation can be checked end to end:
#   test-user     John Doe, returns for 2023 and 2024, deductions totalling
#                 $30,000 (2023) and $15,000 (2024)
#   another-user  Jane Smith, one return and one deduction for 2023

SAMPLE_USER = "test-user"
SAMPLE_OTHER_USER = "another-user"


def _new_id() -> str:
    return str(uuid.uuid4())


def sample_records() -> TaxRecordSet:
    now = datetime.now(timezone.utc)
    john = _new_id()
    jane = _new_id()

    taxpayers = [
        TaxpayerProfile(
            taxpayer_id=john,
            owner_id=SAMPLE_USER,
            name="John Doe",
            email="john.doe@example.com",
            ssn_last4="1234",
            address="123 Main St, Anytown, CA 90210",
            phone="(555) 123-4567",
            filing_status=FilingStatus.MARRIED_FILING_JOINTLY,
            created_at=now - timedelta(days=3 * 365),
        ),
        TaxpayerProfile(
            taxpayer_id=jane,
            owner_id=SAMPLE_OTHER_USER,
            name="Jane Smith",
            email="jane.smith@example.com",
            ssn_last4="5678",
            address="456 Oak Ave, Other City, NY 10001",
            phone="(555) 987-6543",
            filing_status=FilingStatus.SINGLE,
            created_at=now - timedelta(days=2 * 365),
        ),
    ]

    tax_returns = [
        TaxReturn(
            return_id=_new_id(),
            owner_id=SAMPLE_USER,
            taxpayer_id=john,
            tax_year=2023,
            filing_status=FilingStatus.MARRIED_FILING_JOINTLY,
            adjusted_gross_income=Decimal("125000"),
            taxable_income=Decimal("95000"),
            total_tax=Decimal("15200"),
            total_deductions=Decimal("30000"),
            filing_date=date(2024, 4, 10),
            status=ReturnStatus.FILED,
        ),
        TaxReturn(
            return_id=_new_id(),
            owner_id=SAMPLE_USER,
            taxpayer_id=john,
            tax_year=2024,
            filing_status=FilingStatus.MARRIED_FILING_JOINTLY,
            adjusted_gross_income=Decimal("135000"),
            taxable_income=Decimal("102000"),
            total_tax=Decimal("16800"),
            total_deductions=Decimal("33000"),
            status=ReturnStatus.DRAFT,
        ),
        TaxReturn(
            return_id=_new_id(),
            owner_id=SAMPLE_OTHER_USER,
            taxpayer_id=jane,
            tax_year=2023,
            filing_status=FilingStatus.SINGLE,
            adjusted_gross_income=Decimal("85000"),
            taxable_income=Decimal("72000"),
            total_tax=Decimal("11500"),
            total_deductions=Decimal("13000"),
            filing_date=date(2024, 3, 15),
            status=ReturnStatus.FILED,
        ),
    ]

    def deduction(owner, taxpayer, year, category, description, amount, incurred):
        return Deduction(
            deduction_id=_new_id(),
            owner_id=owner,
            taxpayer_id=taxpayer,
            tax_year=year,
            category=category,
            description=description,
            amount=Decimal(amount),
            date_incurred=incurred,
        )

    deductions = [
        deduction(SAMPLE_USER, john, 2023, DeductionCategory.CHARITABLE_DONATIONS,
                  "Annual charity donations", "5000", date(2023, 12, 15)),
        deduction(SAMPLE_USER, john, 2023, DeductionCategory.MORTGAGE_INTEREST,
                  "Home mortgage interest", "18000", date(2023, 12, 31)),
        deduction(SAMPLE_USER, john, 2023, DeductionCategory.PROPERTY_TAXES,
                  "Property tax payment", "7000", date(2023, 6, 30)),
        deduction(SAMPLE_USER, john, 2024, DeductionCategory.CHARITABLE_DONATIONS,
                  "Charitable contributions", "6500", date(2024, 12, 10)),
        deduction(SAMPLE_USER, john, 2024, DeductionCategory.MEDICAL_EXPENSES,
                  "Medical expenses", "8500", date(2024, 8, 15)),
        deduction(SAMPLE_OTHER_USER, jane, 2023, DeductionCategory.STATE_LOCAL_TAXES,
                  "State and local taxes", "10000", date(2023, 12, 31)),
    ]

    documents = [
        Document(
            document_id=_new_id(),
            owner_id=SAMPLE_USER,
            taxpayer_id=john,
            tax_year=2023,
            type=DocumentType.W2,
            file_name="W2-2023.pdf",
            file_path="/documents/w2-2023.pdf",
            category="Income",
            size_bytes=524288,
            uploaded_at=now - timedelta(days=30),
        ),
        Document(
            document_id=_new_id(),
            owner_id=SAMPLE_USER,
            taxpayer_id=john,
            tax_year=2023,
            type=DocumentType.MORTGAGE_STATEMENT,
            file_name="Mortgage-2023.pdf",
            file_path="/documents/mortgage-2023.pdf",
            category="Housing",
            size_bytes=102400,
            uploaded_at=now - timedelta(days=25),
        ),
        Document(
            document_id=_new_id(),
            owner_id=SAMPLE_OTHER_USER,
            taxpayer_id=jane,
            tax_year=2023,
            type=DocumentType.W2,
            file_name="W2-Jane-2023.pdf",
            file_path="/documents/w2-jane-2023.pdf",
            category="Income",
            size_bytes=450000,
            uploaded_at=now - timedelta(days=20),
        ),
    ]

    return TaxRecordSet(
        taxpayers=taxpayers,
        tax_returns=tax_returns,
        deductions=deductions,
        documents=documents,
    )
