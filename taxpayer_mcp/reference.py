"""
Public tax reference data.

TaxReferenceProvider answers lookups by year, category, filing status and
form number. The data is the same for every caller and is built from the
static per-year figures below on first access, then kept in a
ReferenceCache for the life of the process. Published figures for a tax
year never change, so entries are never invalidated.

The cache is an explicit object: server.py creates one at startup and
passes it in, tests create their own.

Unsupported years and unknown forms or categories yield None.
"""

import logging
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from taxpayer_mcp.models import DeductionCategory, DeductionType, FilingStatus, Money

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Reference models (serialised as camelCase JSON)
# ---------------------------------------------------------------------------


class ReferenceModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


class TaxBracket(ReferenceModel):
    filing_status: FilingStatus
    income_min: Money
    income_max: Money | None
    tax_rate: Money
    base_tax: Money
    description: str = ""


class TaxBrackets(ReferenceModel):
    tax_year: int
    brackets: list[TaxBracket]


class StandardDeduction(ReferenceModel):
    filing_status: FilingStatus
    amount: Money
    additional_age_amount: Money
    additional_blind_amount: Money
    notes: str = ""


class StandardDeductions(ReferenceModel):
    tax_year: int
    deductions: list[StandardDeduction]


class DeductionRule(ReferenceModel):
    category: DeductionCategory
    rule_name: str
    maximum_amount: Money | None = None
    percentage_of_agi: Money | None = None
    description: str = ""
    requires_itemization: bool = True
    documentation_required: list[str] = []


class EligibilityCriteria(ReferenceModel):
    criteria_name: str
    applies_to: DeductionCategory | None = None
    minimum_agi: Money | None = None
    maximum_agi: Money | None = None
    required_filing_status: FilingStatus | None = None
    description: str = ""


class TaxRules(ReferenceModel):
    tax_year: int
    deduction_rules: list[DeductionRule]
    eligibility_criteria: list[EligibilityCriteria]


class DeductionInfo(ReferenceModel):
    category: DeductionCategory
    name: str
    description: str
    type: DeductionType
    max_amount: Money | None = None
    agi_percentage_limit: Money | None = None
    eligibility_requirements: list[str] = []
    documentation: list[str] = []
    common_examples: list[str] = []


class AvailableDeductions(ReferenceModel):
    tax_year: int
    deductions: list[DeductionInfo]


class PhaseOut(ReferenceModel):
    phase_out_begins: Money
    phase_out_complete: Money
    filing_status: FilingStatus


class DeductionLimit(ReferenceModel):
    category: DeductionCategory
    dollar_cap: Money | None = None
    agi_percentage: Money | None = None
    phase_out: PhaseOut | None = None
    notes: str = ""


class DeductionLimits(ReferenceModel):
    tax_year: int
    limits: list[DeductionLimit]


class FormSection(ReferenceModel):
    section_number: str
    title: str
    instructions: str
    required_documents: list[str] = []


class FormInstructions(ReferenceModel):
    form_number: str
    form_name: str
    tax_year: int
    purpose: str
    sections: list[FormSection]
    common_mistakes: list[str]
    filing_deadline: str


# ---------------------------------------------------------------------------
# Per-year figures
# ---------------------------------------------------------------------------

BRACKET_RATES = [Decimal(r) for r in ("0.10", "0.12", "0.22", "0.24", "0.32", "0.35", "0.37")]


@dataclass(frozen=True)
class YearFigures:
    # Upper bounds of the first six brackets; the top bracket is open-ended.
    single_thresholds: tuple[int, ...]
    joint_thresholds: tuple[int, ...]
    standard_single: int
    standard_joint: int
    standard_head_of_household: int
    additional_unmarried: int
    additional_married: int
    salt_cap: int
    student_loan_phase_out_single: tuple[int, int]


YEAR_FIGURES: dict[int, YearFigures] = {
    2023: YearFigures(
        single_thresholds=(11000, 44725, 95375, 182100, 231250, 578125),
        joint_thresholds=(22000, 89450, 190750, 364200, 462500, 693750),
        standard_single=13850,
        standard_joint=27700,
        standard_head_of_household=20800,
        additional_unmarried=1850,
        additional_married=1500,
        salt_cap=10000,
        student_loan_phase_out_single=(75000, 90000),
    ),
    2024: YearFigures(
        single_thresholds=(11600, 47150, 100525, 191950, 243725, 609350),
        joint_thresholds=(23200, 94300, 201050, 383900, 487450, 731200),
        standard_single=14600,
        standard_joint=29200,
        standard_head_of_household=21900,
        additional_unmarried=1950,
        additional_married=1550,
        salt_cap=10000,
        student_loan_phase_out_single=(80000, 95000),
    ),
    2025: YearFigures(
        single_thresholds=(11925, 48475, 103350, 197300, 250525, 626350),
        joint_thresholds=(23850, 96950, 206700, 394600, 501050, 751600),
        standard_single=15000,
        standard_joint=30000,
        standard_head_of_household=22500,
        additional_unmarried=2000,
        additional_married=1600,
        salt_cap=10000,
        student_loan_phase_out_single=(85000, 100000),
    ),
}

MEDICAL_AGI_FLOOR = Decimal("0.075")
CHARITABLE_CASH_AGI_LIMIT = Decimal("0.60")
MORTGAGE_DEBT_CAP = 750000


def build_brackets(filing_status: FilingStatus, thresholds: tuple[int, ...]) -> list[TaxBracket]:
    """Brackets with base tax accumulated from the lower brackets."""
    brackets = []
    lower = Decimal("0")
    base_tax = Decimal("0")
    for rate, upper in zip(BRACKET_RATES, [*thresholds, None]):
        upper_bound = Decimal(upper) if upper is not None else None
        if upper_bound is None:
            description = f"{rate * 100:.0f}% on income over ${lower:,.0f}"
        else:
            description = f"{rate * 100:.0f}% on income from ${lower:,.0f} to ${upper_bound:,.0f}"
        brackets.append(
            TaxBracket(
                filing_status=filing_status,
                income_min=lower,
                income_max=upper_bound,
                tax_rate=rate,
                base_tax=base_tax,
                description=description,
            )
        )
        if upper_bound is not None:
            base_tax += (upper_bound - lower) * rate
            lower = upper_bound
    return brackets


def _tax_brackets(year: int, figures: YearFigures) -> TaxBrackets:
    return TaxBrackets(
        tax_year=year,
        brackets=[
            *build_brackets(FilingStatus.SINGLE, figures.single_thresholds),
            *build_brackets(FilingStatus.MARRIED_FILING_JOINTLY, figures.joint_thresholds),
        ],
    )


def _standard_deductions(year: int, figures: YearFigures) -> StandardDeductions:
    def entry(status, amount, additional, notes=""):
        return StandardDeduction(
            filing_status=status,
            amount=Decimal(amount),
            additional_age_amount=Decimal(additional),
            additional_blind_amount=Decimal(additional),
            notes=notes,
        )

    return StandardDeductions(
        tax_year=year,
        deductions=[
            entry(FilingStatus.SINGLE, figures.standard_single, figures.additional_unmarried),
            entry(FilingStatus.MARRIED_FILING_JOINTLY, figures.standard_joint, figures.additional_married,
                  "Additional amounts apply per qualifying spouse"),
            entry(FilingStatus.MARRIED_FILING_SEPARATELY, figures.standard_single, figures.additional_married,
                  "Zero if the spouse itemizes"),
            entry(FilingStatus.HEAD_OF_HOUSEHOLD, figures.standard_head_of_household,
                  figures.additional_unmarried),
            entry(FilingStatus.QUALIFYING_WIDOW, figures.standard_joint, figures.additional_married),
        ],
    )


def _tax_rules(year: int, figures: YearFigures) -> TaxRules:
    begins, complete = figures.student_loan_phase_out_single
    return TaxRules(
        tax_year=year,
        deduction_rules=[
            DeductionRule(
                category=DeductionCategory.MEDICAL_EXPENSES,
                rule_name="Medical expense AGI floor",
                percentage_of_agi=MEDICAL_AGI_FLOOR,
                description="Only unreimbursed medical and dental expenses above 7.5% of AGI are deductible",
                documentation_required=["Receipts", "Insurance explanation of benefits"],
            ),
            DeductionRule(
                category=DeductionCategory.CHARITABLE_DONATIONS,
                rule_name="Cash contribution limit",
                percentage_of_agi=CHARITABLE_CASH_AGI_LIMIT,
                description="Cash gifts to public charities are limited to 60% of AGI; excess carries forward five years",
                documentation_required=["Written acknowledgment for gifts of $250 or more", "Bank records"],
            ),
            DeductionRule(
                category=DeductionCategory.MORTGAGE_INTEREST,
                rule_name="Acquisition debt limit",
                maximum_amount=Decimal(MORTGAGE_DEBT_CAP),
                description="Interest is deductible on up to $750,000 of acquisition debt ($375,000 if married filing separately)",
                documentation_required=["Form 1098"],
            ),
            DeductionRule(
                category=DeductionCategory.STATE_LOCAL_TAXES,
                rule_name="SALT cap",
                maximum_amount=Decimal(figures.salt_cap),
                description="State and local income, sales and property taxes are deductible up to a combined cap",
                documentation_required=["Property tax bills", "W-2 state withholding"],
            ),
            DeductionRule(
                category=DeductionCategory.PROPERTY_TAXES,
                rule_name="Property taxes within SALT cap",
                maximum_amount=Decimal(figures.salt_cap),
                description="Real estate taxes count toward the combined state and local tax cap",
                documentation_required=["Property tax bill", "Mortgage escrow statement"],
            ),
            DeductionRule(
                category=DeductionCategory.BUSINESS_EXPENSES,
                rule_name="Ordinary and necessary expenses",
                description="Self-employed business expenses are deducted on Schedule C, not as itemized deductions",
                requires_itemization=False,
                documentation_required=["Receipts", "Invoices", "Mileage log"],
            ),
            DeductionRule(
                category=DeductionCategory.EDUCATION_EXPENSES,
                rule_name="Student loan interest",
                maximum_amount=Decimal("2500"),
                description="Up to $2,500 of student loan interest is an above-the-line adjustment",
                requires_itemization=False,
                documentation_required=["Form 1098-E"],
            ),
        ],
        eligibility_criteria=[
            EligibilityCriteria(
                criteria_name="Itemizing beats the standard deduction",
                description="Itemized deductions only help when their total exceeds the standard deduction for the filing status",
            ),
            EligibilityCriteria(
                criteria_name="Student loan interest phase-out",
                applies_to=DeductionCategory.EDUCATION_EXPENSES,
                minimum_agi=Decimal(begins),
                maximum_agi=Decimal(complete),
                required_filing_status=FilingStatus.SINGLE,
                description=f"The deduction phases out between ${begins:,} and ${complete:,} of modified AGI",
            ),
            EligibilityCriteria(
                criteria_name="Qualified charity",
                applies_to=DeductionCategory.CHARITABLE_DONATIONS,
                description="The recipient must be an IRS-qualified 501(c)(3) organization",
            ),
        ],
    )


def _available_deductions(year: int, figures: YearFigures) -> AvailableDeductions:
    return AvailableDeductions(
        tax_year=year,
        deductions=[
            DeductionInfo(
                category=DeductionCategory.MEDICAL_EXPENSES,
                name="Medical and Dental Expenses",
                description="Unreimbursed medical and dental expenses exceeding 7.5% of AGI",
                type=DeductionType.ITEMIZED,
                agi_percentage_limit=MEDICAL_AGI_FLOOR,
                eligibility_requirements=["Expenses must exceed 7.5% of AGI", "Must itemize deductions"],
                documentation=["Receipts", "Insurance statements", "Bills from providers"],
                common_examples=["Doctor visits", "Prescriptions", "Medical equipment", "Insurance premiums"],
            ),
            DeductionInfo(
                category=DeductionCategory.CHARITABLE_DONATIONS,
                name="Charitable Contributions",
                description="Cash and property donations to qualified organizations",
                type=DeductionType.ITEMIZED,
                agi_percentage_limit=CHARITABLE_CASH_AGI_LIMIT,
                eligibility_requirements=["Organization must be IRS-qualified", "Must have documentation"],
                documentation=["Donation receipts", "Bank records", "Appraisals for property over $5,000"],
                common_examples=["Cash donations", "Clothing", "Household items", "Vehicles"],
            ),
            DeductionInfo(
                category=DeductionCategory.MORTGAGE_INTEREST,
                name="Home Mortgage Interest",
                description="Interest paid on mortgages for qualified residences",
                type=DeductionType.ITEMIZED,
                max_amount=Decimal(MORTGAGE_DEBT_CAP),
                eligibility_requirements=[
                    "Mortgage on primary or secondary residence",
                    "Loan used to buy, build, or improve home",
                ],
                documentation=["Form 1098 from lender", "Mortgage statements"],
                common_examples=["Primary mortgage interest", "Home equity loan interest", "Refinance interest"],
            ),
            DeductionInfo(
                category=DeductionCategory.STATE_LOCAL_TAXES,
                name="State and Local Taxes",
                description="State and local income or sales taxes plus property taxes",
                type=DeductionType.ITEMIZED,
                max_amount=Decimal(figures.salt_cap),
                eligibility_requirements=["Must itemize deductions", "Choose income or sales tax, not both"],
                documentation=["W-2 state withholding", "Property tax bills", "Sales tax receipts"],
                common_examples=["State income tax", "Real estate tax", "Vehicle registration fees"],
            ),
            DeductionInfo(
                category=DeductionCategory.EDUCATION_EXPENSES,
                name="Student Loan Interest",
                description="Interest paid on qualified student loans",
                type=DeductionType.STANDARD,
                max_amount=Decimal("2500"),
                eligibility_requirements=["Income below the phase-out range", "Not claimed as a dependent"],
                documentation=["Form 1098-E"],
                common_examples=["Federal student loan interest", "Private student loan interest"],
            ),
        ],
    )


def _deduction_limits(year: int, figures: YearFigures) -> DeductionLimits:
    begins, complete = figures.student_loan_phase_out_single
    return DeductionLimits(
        tax_year=year,
        limits=[
            DeductionLimit(
                category=DeductionCategory.STATE_LOCAL_TAXES,
                dollar_cap=Decimal(figures.salt_cap),
                notes="Combined cap for state/local income, sales, and property taxes",
            ),
            DeductionLimit(
                category=DeductionCategory.MORTGAGE_INTEREST,
                dollar_cap=Decimal(MORTGAGE_DEBT_CAP),
                notes="Interest on mortgage debt up to $750,000 ($375,000 if married filing separately)",
            ),
            DeductionLimit(
                category=DeductionCategory.CHARITABLE_DONATIONS,
                agi_percentage=CHARITABLE_CASH_AGI_LIMIT,
                notes="Cash contributions limited to 60% of AGI; property has different limits",
            ),
            DeductionLimit(
                category=DeductionCategory.MEDICAL_EXPENSES,
                agi_percentage=MEDICAL_AGI_FLOOR,
                notes="Only expenses exceeding 7.5% of AGI are deductible",
            ),
            DeductionLimit(
                category=DeductionCategory.EDUCATION_EXPENSES,
                dollar_cap=Decimal("2500"),
                phase_out=PhaseOut(
                    phase_out_begins=Decimal(begins),
                    phase_out_complete=Decimal(complete),
                    filing_status=FilingStatus.SINGLE,
                ),
                notes="Student loan interest deduction phases out with modified AGI",
            ),
        ],
    )


def _form_instructions(form_number: str, year: int) -> FormInstructions | None:
    deadline = f"April 15, {year + 1}"
    if form_number == "1040":
        return FormInstructions(
            form_number="1040",
            form_name="U.S. Individual Income Tax Return",
            tax_year=year,
            purpose="Report your income, deductions, and calculate tax liability",
            filing_deadline=deadline,
            sections=[
                FormSection(section_number="1", title="Filing Status",
                            instructions="Check one box for your filing status"),
                FormSection(section_number="2", title="Income",
                            instructions="Report all income from W-2s, 1099s, and other sources",
                            required_documents=["W-2", "1099"]),
                FormSection(section_number="3", title="Deductions",
                            instructions="Choose standard or itemized deductions (attach Schedule A to itemize)"),
                FormSection(section_number="4", title="Tax and Credits",
                            instructions="Compute tax from the tax table or brackets and subtract credits"),
            ],
            common_mistakes=[
                "Forgetting to sign the return",
                "Math errors in calculations",
                "Missing or incorrect SSN",
                "Not attaching required forms",
            ],
        )
    if form_number == "Schedule A":
        return FormInstructions(
            form_number="Schedule A",
            form_name="Itemized Deductions",
            tax_year=year,
            purpose="Itemize deductions instead of taking the standard deduction",
            filing_deadline=deadline,
            sections=[
                FormSection(section_number="1-4", title="Medical and Dental Expenses",
                            instructions="Enter expenses and subtract 7.5% of AGI",
                            required_documents=["Medical bills", "Insurance statements"]),
                FormSection(section_number="5-7", title="Taxes You Paid",
                            instructions="State and local taxes, limited to the SALT cap",
                            required_documents=["Property tax bills"]),
                FormSection(section_number="8-10", title="Interest You Paid",
                            instructions="Home mortgage interest and points",
                            required_documents=["Form 1098"]),
                FormSection(section_number="11-14", title="Gifts to Charity",
                            instructions="Cash and noncash contributions",
                            required_documents=["Donation receipts"]),
            ],
            common_mistakes=[
                "Itemizing when the standard deduction is larger",
                "Exceeding the SALT cap",
                "Deducting medical expenses below the AGI floor",
            ],
        )
    if form_number == "Schedule C":
        return FormInstructions(
            form_number="Schedule C",
            form_name="Profit or Loss From Business",
            tax_year=year,
            purpose="Report income and expenses of a sole proprietorship",
            filing_deadline=deadline,
            sections=[
                FormSection(section_number="I", title="Income",
                            instructions="Gross receipts, returns and allowances, cost of goods sold",
                            required_documents=["1099-NEC", "Invoices"]),
                FormSection(section_number="II", title="Expenses",
                            instructions="Ordinary and necessary business expenses by category",
                            required_documents=["Receipts", "Mileage log"]),
            ],
            common_mistakes=[
                "Mixing personal and business expenses",
                "Omitting 1099 income",
                "Missing self-employment tax on Schedule SE",
            ],
        )
    return None


FORMS_WITH_INSTRUCTIONS = ["1040", "Schedule A", "Schedule C"]


# ---------------------------------------------------------------------------
# Cache and provider
# ---------------------------------------------------------------------------


class ReferenceCache:
    """
    Process-lifetime memo of built reference documents.

    Safe under concurrent readers: a racing first access may build the same
    value twice, and setdefault keeps whichever was stored first.
    """

    def __init__(self):
        self._entries: dict[Hashable, Any] = {}

    def get_or_build(self, key: Hashable, build: Callable[[], T | None]) -> T | None:
        try:
            return self._entries[key]
        except KeyError:
            pass
        value = build()
        if value is None:
            return None
        return self._entries.setdefault(key, value)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries


class TaxReferenceProvider:
    def __init__(self, cache: ReferenceCache | None = None):
        self.cache = cache if cache is not None else ReferenceCache()

    def available_years(self) -> list[int]:
        return sorted(YEAR_FIGURES)

    def latest_year(self) -> int:
        return max(YEAR_FIGURES)

    def available_forms(self) -> list[str]:
        return list(FORMS_WITH_INSTRUCTIONS)

    def _for_year(self, kind: str, year: int, build: Callable[[int, YearFigures], T]) -> T | None:
        figures = YEAR_FIGURES.get(year)
        if figures is None:
            logger.debug("Unsupported reference year", extra={"log_data": {"kind": kind, "year": year}})
            return None
        return self.cache.get_or_build((kind, year), lambda: build(year, figures))

    def get_tax_rules(self, year: int) -> TaxRules | None:
        return self._for_year("rules", year, _tax_rules)

    def get_tax_brackets(self, year: int, filing_status: FilingStatus | None = None) -> TaxBrackets | None:
        brackets = self._for_year("brackets", year, _tax_brackets)
        if brackets is None or filing_status is None:
            return brackets
        return TaxBrackets(
            tax_year=brackets.tax_year,
            brackets=[b for b in brackets.brackets if b.filing_status is filing_status],
        )

    def get_standard_deductions(self, year: int) -> StandardDeductions | None:
        return self._for_year("standard-deductions", year, _standard_deductions)

    def get_standard_deduction(self, year: int, filing_status: FilingStatus) -> StandardDeduction | None:
        deductions = self.get_standard_deductions(year)
        if deductions is None:
            return None
        return next((d for d in deductions.deductions if d.filing_status is filing_status), None)

    def get_available_deductions(self, year: int) -> AvailableDeductions | None:
        return self._for_year("deductions", year, _available_deductions)

    def get_deduction_info(self, year: int, category: DeductionCategory) -> DeductionInfo | None:
        deductions = self.get_available_deductions(year)
        if deductions is None:
            return None
        return next((d for d in deductions.deductions if d.category is category), None)

    def get_deduction_limits(self, year: int) -> DeductionLimits | None:
        return self._for_year("limits", year, _deduction_limits)

    def get_deduction_limit(self, year: int, category: DeductionCategory) -> DeductionLimit | None:
        limits = self.get_deduction_limits(year)
        if limits is None:
            return None
        return next((limit for limit in limits.limits if limit.category is category), None)

    def get_form_instructions(self, form_number: str, year: int) -> FormInstructions | None:
        if year not in YEAR_FIGURES:
            return None
        canonical = next(
            (form for form in FORMS_WITH_INSTRUCTIONS if form.lower() == form_number.strip().lower()),
            None,
        )
        if canonical is None:
            return None
        return self.cache.get_or_build(("forms", canonical, year), lambda: _form_instructions(canonical, year))
