"""
MCP resources: public tax reference documents addressed by tax:// URIs.

    tax://rules/{year}                  deduction rules and eligibility criteria
    tax://brackets/{year}               federal brackets (?filingStatus=Single filters)
    tax://standard-deductions/{year}    standard deduction by filing status
    tax://deductions/{year}             available deductions
    tax://limits/{year}                 caps, AGI percentages and phase-outs
    tax://forms/{form}/instructions     form instructions for the latest year

Form numbers with spaces are percent-encoded ("Schedule%20A").
Resources are not tenant data; the same URI reads the same for every caller.
"""

import logging
from typing import Any
from urllib.parse import parse_qs, quote, unquote, urlsplit

from taxpayer_mcp.errors import ResourceNotFoundError
from taxpayer_mcp.models import FilingStatus, parse_enum
from taxpayer_mcp.reference import ReferenceModel, TaxReferenceProvider

logger = logging.getLogger(__name__)

MIME_TYPE = "application/json"

# kind -> (name, description); "{year}" is filled in per listed year.
YEARLY_KINDS: dict[str, tuple[str, str]] = {
    "rules": ("Tax Rules {year}", "IRS tax rules, deduction limits, and eligibility criteria for {year}"),
    "brackets": ("Tax Brackets {year}", "Federal tax brackets and rates by filing status for {year}"),
    "standard-deductions": ("Standard Deductions {year}", "Standard deduction amounts by filing status for {year}"),
    "deductions": ("Available Deductions {year}", "Comprehensive list of available tax deductions for {year}"),
    "limits": ("Deduction Limits {year}", "AGI percentages, dollar caps, and phase-outs for {year}"),
}


def form_uri(form_number: str) -> str:
    return f"tax://forms/{quote(form_number)}/instructions"


class ResourceCatalog:
    def __init__(self, reference: TaxReferenceProvider):
        self.reference = reference

    def list_resources(self) -> list[dict[str, Any]]:
        resources = []
        for year in self.reference.available_years():
            for kind, (name, description) in YEARLY_KINDS.items():
                resources.append(
                    {
                        "uri": f"tax://{kind}/{year}",
                        "name": name.format(year=year),
                        "description": description.format(year=year),
                        "mimeType": MIME_TYPE,
                    }
                )
        for form in self.reference.available_forms():
            resources.append(
                {
                    "uri": form_uri(form),
                    "name": f"Form {form} Instructions",
                    "description": f"Official instructions and guidance for Form {form}",
                    "mimeType": MIME_TYPE,
                }
            )
        return resources

    def read_resource(self, uri: str) -> dict[str, Any]:
        """
        Resolve a tax:// URI to its JSON document.

        Returns:
            The resources/read result: {"contents": [{uri, mimeType, text}]}

        Raises:
            ResourceNotFoundError: For malformed URIs, unknown kinds, unsupported
                                   years and unknown forms
            InvalidArgumentError: For an unknown filingStatus filter
        """
        document = self._resolve(uri)
        if document is None:
            logger.info("Resource not found", extra={"log_data": {"uri": uri}})
            raise ResourceNotFoundError(f"Resource not found: {uri}", data={"uri": uri})
        return {"contents": [{"uri": uri, "mimeType": MIME_TYPE, "text": document.to_json()}]}

    def _resolve(self, uri: str) -> ReferenceModel | None:
        parts = urlsplit(uri)
        if parts.scheme != "tax":
            return None
        kind = parts.netloc
        segments = [unquote(s) for s in parts.path.strip("/").split("/") if s]

        if kind == "forms":
            if len(segments) != 2 or segments[1] != "instructions":
                return None
            return self.reference.get_form_instructions(segments[0], self.reference.latest_year())

        if kind not in YEARLY_KINDS or len(segments) != 1:
            return None
        # ASCII only: str.isdigit also accepts digits int() cannot parse.
        if not (segments[0].isascii() and segments[0].isdigit()):
            return None
        year = int(segments[0])

        if kind == "rules":
            return self.reference.get_tax_rules(year)
        if kind == "brackets":
            query = parse_qs(parts.query)
            status = query.get("filingStatus", [None])[0]
            filing_status = parse_enum(FilingStatus, status, "filing status") if status else None
            return self.reference.get_tax_brackets(year, filing_status)
        if kind == "standard-deductions":
            return self.reference.get_standard_deductions(year)
        if kind == "deductions":
            return self.reference.get_available_deductions(year)
        return self.reference.get_deduction_limits(year)
