"""
Taxpayer record models.

Every tenant-scoped record carries `owner_id`, the "sub" of the user it
belongs to. The repository filters on it; nothing else in the server reads
records without going through that filter.

The models are pydantic so that seed files are validated on load. JSON keys
are camelCase (`taxpayerId`, `adjustedGrossIncome`, ...); seed files written
with the older `userId` / `createdDate` / `uploadDate` / `fileSize` /
`deductionType` / `documentType` / `documentReference` keys are accepted too.

Enumerations are closed: user-supplied names are converted with
parse_enum(), which matches member names case-insensitively and reports the
full list of valid options when nothing matches.
"""

import enum
from datetime import date, datetime
from decimal import Decimal
from functools import cache
from typing import Annotated, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from taxpayer_mcp.errors import InvalidArgumentError

# Decimal amounts are kept exact in memory and written as JSON numbers.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class FilingStatus(enum.Enum):
    SINGLE = "Single"
    MARRIED_FILING_JOINTLY = "MarriedFilingJointly"
    MARRIED_FILING_SEPARATELY = "MarriedFilingSeparately"
    HEAD_OF_HOUSEHOLD = "HeadOfHousehold"
    QUALIFYING_WIDOW = "QualifyingWidow"


class ReturnStatus(enum.Enum):
    DRAFT = "Draft"
    FILED = "Filed"
    AMENDED = "Amended"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


class DeductionCategory(enum.Enum):
    MEDICAL_EXPENSES = "MedicalExpenses"
    CHARITABLE_DONATIONS = "CharitableDonations"
    MORTGAGE_INTEREST = "MortgageInterest"
    PROPERTY_TAXES = "PropertyTaxes"
    BUSINESS_EXPENSES = "BusinessExpenses"
    EDUCATION_EXPENSES = "EducationExpenses"
    STATE_LOCAL_TAXES = "StateLocalTaxes"
    OTHER = "Other"


class DeductionType(enum.Enum):
    STANDARD = "Standard"
    ITEMIZED = "Itemized"


class DocumentType(enum.Enum):
    W2 = "W2"
    FORM_1099 = "Form1099"
    RECEIPT = "Receipt"
    INVOICE = "Invoice"
    BANK_STATEMENT = "BankStatement"
    MORTGAGE_STATEMENT = "MortgageStatement"
    DONATION_RECEIPT = "DonationReceipt"
    MEDICAL_BILL = "MedicalBill"
    PROPERTY_TAX_BILL = "PropertyTaxBill"
    OTHER = "Other"


E = TypeVar("E", bound=enum.Enum)


@cache
def _lookup(enum_cls: type[E]) -> dict[str, E]:
    return {member.value.lower(): member for member in enum_cls}


def valid_options(enum_cls: type[enum.Enum]) -> list[str]:
    """Member names in declaration order."""
    return [member.value for member in enum_cls]


def parse_enum(enum_cls: type[E], value: str, label: str) -> E:
    """
    Convert a user-supplied name into an enum member.

    Args:
        enum_cls: The closed enumeration to match against
        value: The supplied name, matched case-insensitively
        label: What the value is, for the error message ("category")

    Raises:
        InvalidArgumentError: listing every valid option when nothing matches
    """
    member = _lookup(enum_cls).get(value.strip().lower())
    if member is None:
        raise InvalidArgumentError(
            f"Invalid {label}: {value}. Valid options: {', '.join(valid_options(enum_cls))}",
            data={"argument": label, "validOptions": valid_options(enum_cls)},
        )
    return member


def declaration_rank(member: enum.Enum) -> int:
    """Sort key placing members in the order their enum declares them."""
    return list(type(member)).index(member)


class RecordModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


OwnerId = Annotated[str, Field(validation_alias=AliasChoices("ownerId", "userId", "owner_id"))]


class TaxpayerProfile(RecordModel):
    taxpayer_id: str
    owner_id: OwnerId
    name: str
    email: str = ""
    ssn_last4: str = Field(
        default="", validation_alias=AliasChoices("ssnLast4", "ssn_last4"), max_length=4
    )
    address: str = ""
    phone: str = ""
    filing_status: FilingStatus = FilingStatus.SINGLE
    created_at: datetime = Field(
        validation_alias=AliasChoices("createdAt", "createdDate", "created_at")
    )


class TaxReturn(RecordModel):
    return_id: str
    owner_id: OwnerId
    taxpayer_id: str
    tax_year: int
    filing_status: FilingStatus
    adjusted_gross_income: Money
    taxable_income: Money
    total_tax: Money
    total_deductions: Money
    filing_date: date | None = None
    status: ReturnStatus = ReturnStatus.DRAFT
    notes: str = ""


class Deduction(RecordModel):
    deduction_id: str
    owner_id: OwnerId
    taxpayer_id: str
    tax_year: int
    category: DeductionCategory
    description: str
    amount: Money = Field(ge=0)
    date_incurred: date
    document_ref: str | None = Field(
        default=None,
        validation_alias=AliasChoices("documentRef", "documentReference", "document_ref"),
    )
    type: DeductionType = Field(
        default=DeductionType.ITEMIZED,
        validation_alias=AliasChoices("type", "deductionType"),
    )


class Document(RecordModel):
    document_id: str
    owner_id: OwnerId
    taxpayer_id: str
    tax_year: int
    type: DocumentType = Field(validation_alias=AliasChoices("type", "documentType"))
    file_name: str
    file_path: str
    uploaded_at: datetime = Field(
        validation_alias=AliasChoices("uploadedAt", "uploadDate", "uploaded_at")
    )
    category: str = ""
    size_bytes: int = Field(
        default=0, ge=0, validation_alias=AliasChoices("sizeBytes", "fileSize", "size_bytes")
    )
    notes: str = ""


class TaxRecordSet(RecordModel):
    """All records of a seed file."""

    taxpayers: list[TaxpayerProfile] = []
    tax_returns: list[TaxReturn] = []
    deductions: list[Deduction] = []
    documents: list[Document] = []
