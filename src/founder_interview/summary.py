"""Parsing and structural validation of generated summary documents."""

from __future__ import annotations

import json
import logging
import math
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainValidator,
    StrictStr,
    ValidationError,
)

from .errors import SummaryParseError, SummaryValidationError

logger = logging.getLogger(__name__)

REQUIRED_KEYS = (
    "extractedInsights",
    "founderSummary",
    "confidenceLevel",
    "ideaGenerationContext",
    "networkStrength",
)


def _null_to_empty_list(value: Any) -> Any:
    # Lists that come back null are treated as empty, never as an error.
    return [] if value is None else value


def _number_or(sentinel: str) -> Callable[[Any], Union[int, float, str]]:
    def check(value: Any) -> Union[int, float, str]:
        if isinstance(value, bool):
            raise ValueError(f"expected a number or {sentinel!r}, got a boolean")
        if isinstance(value, (int, float)):
            if isinstance(value, float) and not math.isfinite(value):
                raise ValueError(f"expected a finite number or {sentinel!r}, got {value!r}")
            return value
        if value == sentinel:
            return value
        raise ValueError(f"expected a number or {sentinel!r}, got {value!r}")

    return check


StringList = Annotated[List[StrictStr], BeforeValidator(_null_to_empty_list)]
HoursPerWeek = Annotated[Union[int, float, str], PlainValidator(_number_or("unclear"))]
MonthlyRevenue = Annotated[
    Union[int, float, str], PlainValidator(_number_or("unspecified"))
]
Confidence = Literal["high", "medium", "low"]


class _SummaryModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class Constraints(_SummaryModel):
    hours_per_week: HoursPerWeek = Field("unclear", alias="hoursPerWeek")
    available_capital: StrictStr = Field("", alias="availableCapital")
    timeline: Optional[StrictStr] = None
    other_constraints: StringList = Field(
        default_factory=list, alias="otherConstraints"
    )


class FinancialTarget(_SummaryModel):
    type: Optional[
        Literal["side_income", "salary_replacement", "wealth_building"]
    ] = None
    minimum_monthly_revenue: MonthlyRevenue = Field(
        "unspecified", alias="minimumMonthlyRevenue"
    )
    description: StrictStr = ""


class ExtractedInsights(_SummaryModel):
    insider_knowledge: StringList = Field(default_factory=list, alias="insiderKnowledge")
    customer_intimacy: StringList = Field(default_factory=list, alias="customerIntimacy")
    constraints: Constraints = Field(default_factory=Constraints)
    financial_target: FinancialTarget = Field(
        default_factory=FinancialTarget, alias="financialTarget"
    )
    hard_no_filters: StringList = Field(default_factory=list, alias="hardNoFilters")
    emotional_drivers: StringList = Field(default_factory=list, alias="emotionalDrivers")
    domain_expertise: StringList = Field(default_factory=list, alias="domainExpertise")


class ConfidenceLevel(_SummaryModel):
    insider_knowledge: Confidence = Field("low", alias="insiderKnowledge")
    customer_intimacy: Confidence = Field("low", alias="customerIntimacy")
    constraints: Confidence = "low"
    financial_target: Confidence = Field("low", alias="financialTarget")


class SummaryDocument(_SummaryModel):
    """Structured founder profile distilled from an interview transcript."""

    extracted_insights: ExtractedInsights = Field(alias="extractedInsights")
    founder_summary: StrictStr = Field(alias="founderSummary")
    confidence_level: ConfidenceLevel = Field(alias="confidenceLevel")
    idea_generation_context: StrictStr = Field(alias="ideaGenerationContext")
    network_strength: StrictStr = Field(alias="networkStrength")
    distribution_channels: StringList = Field(
        default_factory=list, alias="distributionChannels"
    )


def strip_code_fences(raw: str) -> str:
    """Remove a surrounding markdown code fence such as ```json ... ```."""

    text = raw.strip()
    if text.startswith("```"):
        first_newline = text.find("\n")
        last_fence = text.rfind("```")
        if first_newline != -1 and last_fence > first_newline:
            text = text[first_newline + 1:last_fence].strip()
    return text


def parse_summary(raw: str) -> Any:
    text = strip_code_fences(raw)
    if not text:
        raise SummaryParseError("Summary response was empty.")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse summary JSON: %s", exc)
        raise SummaryParseError(f"Summary response is not valid JSON: {exc}") from exc


def _format_issues(exc: ValidationError) -> List[str]:
    issues: List[str] = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"]) or "<root>"
        issues.append(f"{location}: {error['msg']}")
    return issues


def validate_summary(payload: Any) -> Dict[str, Any]:
    """Validate a parsed summary and return the fully shaped document."""

    if not isinstance(payload, dict):
        raise SummaryValidationError(
            [f"<root>: expected a JSON object, got {type(payload).__name__}"]
        )
    try:
        document = SummaryDocument.model_validate(payload)
    except ValidationError as exc:
        issues = _format_issues(exc)
        logger.warning("Summary failed validation: %s", "; ".join(issues))
        raise SummaryValidationError(issues) from exc
    return document.model_dump(by_alias=True)


def load_summary(raw: str) -> Dict[str, Any]:
    """Strip, parse and validate a raw narrative-service summary response."""

    return validate_summary(parse_summary(raw))
