"""Plain-text rendering of repository results for tool responses."""

from decimal import Decimal

from taxpayer_mcp.models import Deduction, DeductionCategory, Document, TaxpayerProfile, TaxReturn, declaration_rank


def money(amount: Decimal) -> str:
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def file_size(size_bytes: int) -> str:
    size = float(size_bytes)
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.2f}".rstrip("0").rstrip(".") + f" {unit}"
        size /= 1024
    return f"{size:.2f}".rstrip("0").rstrip(".") + " GB"


def format_profile(profile: TaxpayerProfile) -> str:
    lines = [
        "=== TAXPAYER PROFILE ===",
        f"Name: {profile.name}",
        f"Email: {profile.email}",
        f"SSN (Last 4): {profile.ssn_last4}",
        f"Phone: {profile.phone}",
        f"Address: {profile.address}",
        f"Filing Status: {profile.filing_status.value}",
        f"Profile Created: {profile.created_at:%Y-%m-%d}",
    ]
    return "\n".join(lines) + "\n"


def _return_lines(tax_return: TaxReturn) -> list[str]:
    lines = [
        f"Status: {tax_return.status.value}",
        f"Filing Status: {tax_return.filing_status.value}",
        f"Adjusted Gross Income: {money(tax_return.adjusted_gross_income)}",
        f"Taxable Income: {money(tax_return.taxable_income)}",
        f"Total Tax: {money(tax_return.total_tax)}",
        f"Total Deductions: {money(tax_return.total_deductions)}",
    ]
    if tax_return.filing_date is not None:
        lines.append(f"Filing Date: {tax_return.filing_date:%Y-%m-%d}")
    if tax_return.notes:
        lines.append(f"Notes: {tax_return.notes}")
    return lines


def format_tax_returns(returns: list[TaxReturn]) -> str:
    lines = [f"=== TAX RETURNS ({len(returns)}) ===", ""]
    for tax_return in returns:
        lines.append(f"Tax Year: {tax_return.tax_year}")
        lines.extend(_return_lines(tax_return))
        lines.append("---")
    return "\n".join(lines) + "\n"


def format_tax_return(tax_return: TaxReturn) -> str:
    lines = [f"=== TAX RETURN {tax_return.tax_year} ===", *_return_lines(tax_return)]
    return "\n".join(lines) + "\n"


def format_deductions(deductions: list[Deduction], title: str) -> str:
    lines = [f"=== {title.upper()} ({len(deductions)}) ===", ""]
    for deduction in deductions:
        lines.extend(
            [
                f"Year: {deduction.tax_year}",
                f"Category: {deduction.category.value}",
                f"Description: {deduction.description}",
                f"Amount: {money(deduction.amount)}",
                f"Date: {deduction.date_incurred:%Y-%m-%d}",
                "---",
            ]
        )
    total = sum((d.amount for d in deductions), Decimal("0"))
    lines.extend(["", f"TOTAL: {money(total)}"])
    return "\n".join(lines) + "\n"


def format_deduction_totals(totals: dict[DeductionCategory, Decimal], year: int) -> str:
    lines = [f"=== DEDUCTION TOTALS FOR {year} ===", ""]
    # Largest first; ties keep category order so output is stable.
    ordered = sorted(totals.items(), key=lambda item: (-item[1], declaration_rank(item[0])))
    for category, amount in ordered:
        lines.append(f"{category.value}: {money(amount)}")
    lines.extend(["", f"GRAND TOTAL: {money(sum(totals.values(), Decimal('0')))}"])
    return "\n".join(lines) + "\n"


def format_yearly_totals(totals: dict[int, Decimal]) -> str:
    lines = ["", "=== TOTALS BY YEAR ===", ""]
    lines.extend(f"{year}: {money(amount)}" for year, amount in totals.items())
    return "\n".join(lines) + "\n"


def percent_change(before: Decimal, after: Decimal) -> Decimal:
    """Relative change from `before` to `after` in percent; 0 when `before` is 0."""
    if before <= 0:
        return Decimal("0")
    return (after - before) / before * 100


def format_deduction_comparison(comparison: dict[int, list[Deduction]], year1: int, year2: int) -> str:
    def total(year, category=None):
        return sum(
            (d.amount for d in comparison.get(year, []) if category is None or d.category is category),
            Decimal("0"),
        )

    year1_total = total(year1)
    year2_total = total(year2)
    difference = year2_total - year1_total

    lines = [
        f"=== DEDUCTION COMPARISON: {year1} vs {year2} ===",
        "",
        f"{year1} Total: {money(year1_total)}",
        f"{year2} Total: {money(year2_total)}",
        f"Difference: {money(difference)} ({percent_change(year1_total, year2_total):+.1f}%)",
        "",
        "Category Breakdown:",
    ]

    categories = sorted(
        {d.category for rows in comparison.values() for d in rows},
        key=declaration_rank,
    )
    for category in categories:
        first = total(year1, category)
        second = total(year2, category)
        lines.extend(
            [
                "",
                f"{category.value}:",
                f"  {year1}: {money(first)}",
                f"  {year2}: {money(second)}",
                f"  Change: {money(second - first)}",
            ]
        )
    return "\n".join(lines) + "\n"


def format_documents(documents: list[Document]) -> str:
    lines = [f"=== DOCUMENTS ({len(documents)}) ===", ""]
    for document in documents:
        lines.extend(
            [
                f"Type: {document.type.value}",
                f"File: {document.file_name}",
                f"Year: {document.tax_year}",
                f"Category: {document.category}",
                f"Size: {file_size(document.size_bytes)}",
                f"Uploaded: {document.uploaded_at:%Y-%m-%d}",
            ]
        )
        if document.notes:
            lines.append(f"Notes: {document.notes}")
        lines.append("---")
    return "\n".join(lines) + "\n"
