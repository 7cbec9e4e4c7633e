"""
MCP tool registry.

Each tool is a ToolSpec: the descriptor advertised by tools/list and the
coroutine that runs it against a request-scoped TaxpayerDataRepository.
Tools never take a user id; the repository they receive is already bound
to the caller.

Argument handling follows two layers:
- int_argument() / str_argument() pull an argument by exact key and check
  its JSON type, raising InvalidParamsError when it is missing or mistyped
- the repository and parse_enum() validate the value's domain (year range,
  category or document type name), raising InvalidArgumentError

Both surface as JSON-RPC -32602 with different messages; failures while
running a tool are reported by the dispatcher as -32603.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from mcp.types import Tool

from taxpayer_mcp import formatting
from taxpayer_mcp.errors import InvalidParamsError
from taxpayer_mcp.models import DeductionCategory, DocumentType, parse_enum, valid_options
from taxpayer_mcp.repository import TaxpayerDataRepository

ToolHandler = Callable[[TaxpayerDataRepository, dict[str, Any]], Awaitable[str]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    handler: ToolHandler
    properties: dict[str, dict[str, str]] = field(default_factory=dict)
    required: tuple[str, ...] = ()

    def descriptor(self) -> dict[str, Any]:
        """The tools/list entry: name, description and a JSON-Schema input schema."""
        tool = Tool(
            name=self.name,
            description=self.description,
            inputSchema={
                "type": "object",
                "properties": self.properties,
                "required": list(self.required),
            },
        )
        return tool.model_dump(by_alias=True, exclude_none=True, mode="json")


# ---------------------------------------------------------------------------
# Argument coercion
# ---------------------------------------------------------------------------


def _require(arguments: dict[str, Any], name: str) -> Any:
    if name not in arguments or arguments[name] is None:
        raise InvalidParamsError(
            f"Missing required parameter: {name}", data={"argument": name}
        )
    return arguments[name]


def int_argument(arguments: dict[str, Any], name: str) -> int:
    """Integer argument; integral JSON numbers such as 2024.0 are accepted."""
    value = _require(arguments, name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidParamsError(
            f"Parameter '{name}' must be a number, got {type(value).__name__}",
            data={"argument": name},
        )
    if isinstance(value, float) and not value.is_integer():
        raise InvalidParamsError(
            f"Parameter '{name}' must be a whole number, got {value}",
            data={"argument": name},
        )
    return int(value)


def str_argument(arguments: dict[str, Any], name: str) -> str:
    value = _require(arguments, name)
    if not isinstance(value, str):
        raise InvalidParamsError(
            f"Parameter '{name}' must be a string, got {type(value).__name__}",
            data={"argument": name},
        )
    return value


# ---------------------------------------------------------------------------
# Tool implementations
# ---------------------------------------------------------------------------


async def get_taxpayer_profile(repository: TaxpayerDataRepository, arguments: dict[str, Any]) -> str:
    profile = await repository.get_profile()
    if profile is None:
        return "No taxpayer profile found for the current user."
    return formatting.format_profile(profile)


async def get_tax_returns(repository: TaxpayerDataRepository, arguments: dict[str, Any]) -> str:
    returns = await repository.get_returns()
    if not returns:
        return "No tax returns found."
    return formatting.format_tax_returns(returns)


async def get_tax_return_by_year(repository: TaxpayerDataRepository, arguments: dict[str, Any]) -> str:
    year = int_argument(arguments, "year")
    tax_return = await repository.get_return_by_year(year)
    if tax_return is None:
        return f"No tax return found for year {year}."
    return formatting.format_tax_return(tax_return)


async def get_deductions_by_year(repository: TaxpayerDataRepository, arguments: dict[str, Any]) -> str:
    year = int_argument(arguments, "year")
    deductions = await repository.get_deductions_by_year(year)
    if not deductions:
        return f"No deductions found for year {year}."
    return formatting.format_deductions(deductions, f"Deductions for {year}")


async def get_deductions_by_category(repository: TaxpayerDataRepository, arguments: dict[str, Any]) -> str:
    raw = str_argument(arguments, "category")
    category = parse_enum(DeductionCategory, raw, "category")
    deductions = await repository.get_deductions_by_category(category)
    if not deductions:
        return f"No deductions found for category: {category.value}."
    return formatting.format_deductions(deductions, f"Deductions in category: {category.value}")


async def calculate_deduction_totals(repository: TaxpayerDataRepository, arguments: dict[str, Any]) -> str:
    year = int_argument(arguments, "year")
    totals = await repository.get_deduction_totals_by_category(year)
    if not totals:
        return f"No deductions found for year {year}."
    history = await repository.get_deduction_totals_by_year()
    return formatting.format_deduction_totals(totals, year) + formatting.format_yearly_totals(history)


async def compare_deductions_yearly(repository: TaxpayerDataRepository, arguments: dict[str, Any]) -> str:
    year1 = int_argument(arguments, "year1")
    year2 = int_argument(arguments, "year2")
    comparison = await repository.compare_deductions_yearly(year1, year2)
    return formatting.format_deduction_comparison(comparison, year1, year2)


async def get_documents_by_type(repository: TaxpayerDataRepository, arguments: dict[str, Any]) -> str:
    raw = str_argument(arguments, "documentType")
    document_type = parse_enum(DocumentType, raw, "document type")
    documents = await repository.get_documents_by_type(document_type)
    if not documents:
        return f"No documents found of type: {document_type.value}."
    return formatting.format_documents(documents)


async def get_documents_by_year(repository: TaxpayerDataRepository, arguments: dict[str, Any]) -> str:
    year = int_argument(arguments, "year")
    documents = await repository.get_documents_by_year(year)
    if not documents:
        return f"No documents found for year {year}."
    return formatting.format_documents(documents)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def _year_property(description: str = "Tax year (e.g., 2023, 2024)") -> dict[str, str]:
    return {"type": "number", "description": description}


TOOLS: dict[str, ToolSpec] = {
    spec.name: spec
    for spec in [
        ToolSpec(
            name="GetTaxpayerProfile",
            description="Get the taxpayer's profile information including name, contact details, and filing status.",
            handler=get_taxpayer_profile,
        ),
        ToolSpec(
            name="GetTaxReturns",
            description="Get all tax returns for the taxpayer.",
            handler=get_tax_returns,
        ),
        ToolSpec(
            name="GetTaxReturnByYear",
            description="Get tax return for a specific year.",
            handler=get_tax_return_by_year,
            properties={"year": _year_property()},
            required=("year",),
        ),
        ToolSpec(
            name="GetDeductionsByYear",
            description="Get all deductions for a specific tax year.",
            handler=get_deductions_by_year,
            properties={"year": _year_property()},
            required=("year",),
        ),
        ToolSpec(
            name="GetDeductionsByCategory",
            description=(
                "Get deductions by category across all years. Categories: "
                + ", ".join(valid_options(DeductionCategory))
            ),
            handler=get_deductions_by_category,
            properties={"category": {"type": "string", "description": "Deduction category name"}},
            required=("category",),
        ),
        ToolSpec(
            name="CalculateDeductionTotals",
            description="Calculate total deductions by category for a specific year, with the totals of every year on record.",
            handler=calculate_deduction_totals,
            properties={"year": _year_property()},
            required=("year",),
        ),
        ToolSpec(
            name="CompareDeductionsYearly",
            description="Compare deductions between two tax years to see changes.",
            handler=compare_deductions_yearly,
            properties={
                "year1": _year_property("First year to compare"),
                "year2": _year_property("Second year to compare"),
            },
            required=("year1", "year2"),
        ),
        ToolSpec(
            name="GetDocumentsByType",
            description="Get documents by type. Types: " + ", ".join(valid_options(DocumentType)),
            handler=get_documents_by_type,
            properties={"documentType": {"type": "string", "description": "Document type name"}},
            required=("documentType",),
        ),
        ToolSpec(
            name="GetDocumentsByYear",
            description="Get all documents for a specific tax year.",
            handler=get_documents_by_year,
            properties={"year": _year_property("Tax year")},
            required=("year",),
        ),
    ]
}
