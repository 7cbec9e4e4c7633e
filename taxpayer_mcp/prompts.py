"""
MCP prompts: conversation templates for the client's model.

Prompts are not data operations. prompts/get renders a template by filling
its named placeholders from the supplied arguments, falling back to each
argument's default; the rendered text asks the model to use the tax tools
for the caller's actual figures.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import date
from typing import Any

from mcp.types import GetPromptResult, Prompt, PromptArgument, PromptMessage, TextContent

from taxpayer_mcp.errors import InvalidParamsError


@dataclass(frozen=True)
class PromptArgumentSpec:
    name: str
    description: str
    required: bool = False
    # Called at render time so "current year" defaults stay current.
    default: Callable[[], Any] = lambda: ""


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    description: str
    arguments: tuple[PromptArgumentSpec, ...]
    template: str
    extra_values: Callable[[dict[str, Any]], dict[str, Any]] = lambda values: {}

    def descriptor(self) -> dict[str, Any]:
        prompt = Prompt(
            name=self.name,
            description=self.description,
            arguments=[
                PromptArgument(name=arg.name, description=arg.description, required=arg.required)
                for arg in self.arguments
            ],
        )
        return prompt.model_dump(by_alias=True, exclude_none=True, mode="json")

    def render(self, arguments: dict[str, Any] | None = None) -> str:
        supplied = arguments or {}
        values = {}
        for spec in self.arguments:
            value = supplied.get(spec.name)
            values[spec.name] = spec.default() if value is None or value == "" else value
        values.update(self.extra_values(values))
        return self.template.format(**values)

    def get(self, arguments: dict[str, Any] | None = None) -> dict[str, Any]:
        """The prompts/get result with a single user message."""
        result = GetPromptResult(
            description=self.description,
            messages=[
                PromptMessage(role="user", content=TextContent(type="text", text=self.render(arguments)))
            ],
        )
        return result.model_dump(by_alias=True, exclude_none=True, mode="json")


def _current_year() -> int:
    return date.today().year


def _analysis_window(values: dict[str, Any]) -> dict[str, Any]:
    end = _current_year()
    try:
        span = max(int(values["yearsToAnalyze"]), 1)
    except (TypeError, ValueError):
        span = 2
    return {"yearsToAnalyze": span, "firstYear": end - span + 1, "lastYear": end}


PERSONALIZED_TAX_ADVICE = PromptTemplate(
    name="GetPersonalizedTaxAdvice",
    description=(
        "Template for providing personalized tax advice based on user's financial "
        "situation and tax history"
    ),
    arguments=(
        PromptArgumentSpec(
            name="situation",
            description="User's current financial situation or specific tax question",
            required=True,
            default=lambda: "general tax advice",
        ),
        PromptArgumentSpec(
            name="year",
            description="Optional: Specific tax year to analyze (defaults to current year)",
            default=_current_year,
        ),
    ),
    template="""I need personalized tax advice for the following situation: {situation}

Please analyze my tax situation for {year} and provide comprehensive guidance including:

1. **Deduction Strategy**: Should I itemize or take the standard deduction?
2. **Tax Planning**: What opportunities exist for tax optimization?
3. **Compliance**: What should I be aware of for this tax year?
4. **Future Planning**: What steps should I take for next year?

Please use my actual tax data (tax returns, deductions, documents) to provide specific, actionable advice tailored to my situation.""",
)

COMPARE_DEDUCTION_OPTIONS = PromptTemplate(
    name="CompareDeductionOptions",
    description="Template for comparing itemized vs standard deduction to help users make the best choice",
    arguments=(
        PromptArgumentSpec(
            name="year",
            description="Tax year to analyze (defaults to current year)",
            default=_current_year,
        ),
    ),
    template="""I need help deciding between itemized and standard deductions for {year}.

Please analyze my deduction data and provide a detailed comparison including:

1. **Current Deductions**: Show me all my itemized deductions for {year}
2. **Standard vs Itemized**: Calculate both options and show the difference
3. **Recommendation**: Which option saves me more money and why?
4. **Strategy**: If I'm close to the threshold, suggest timing strategies
5. **Documentation**: What records should I keep for my choice?

Use my actual deduction data to provide specific calculations and recommendations.""",
)

TAX_OPTIMIZATION_ADVICE = PromptTemplate(
    name="GetTaxOptimizationAdvice",
    description="Template for providing year-over-year tax analysis and optimization recommendations",
    arguments=(
        PromptArgumentSpec(
            name="yearsToAnalyze",
            description="Number of years to analyze (defaults to 2)",
            default=lambda: 2,
        ),
    ),
    template="""I need tax optimization advice based on my historical data.

Please analyze my tax situation over the last {yearsToAnalyze} years ({firstYear}-{lastYear}) and provide optimization recommendations including:

1. **Year-over-Year Analysis**: Compare my deductions, income, and tax liability
2. **Trends**: Identify patterns and changes in my tax situation
3. **Opportunities**: What new deduction categories or strategies should I consider?
4. **Timing**: When should I make certain payments or decisions?
5. **Future Planning**: What should I do differently next year?

Use my actual tax data to provide specific, data-driven recommendations for tax optimization.""",
    extra_values=_analysis_window,
)

PROMPTS: dict[str, PromptTemplate] = {
    prompt.name: prompt
    for prompt in (PERSONALIZED_TAX_ADVICE, COMPARE_DEDUCTION_OPTIONS, TAX_OPTIMIZATION_ADVICE)
}


def get_prompt(name: str) -> PromptTemplate:
    try:
        return PROMPTS[name]
    except KeyError:
        raise InvalidParamsError(
            f"Unknown prompt: {name}. Available prompts: {', '.join(PROMPTS)}",
            data={"argument": "name"},
        ) from None
