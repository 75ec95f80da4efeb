import copy
import json

import pytest

from founder_interview.errors import SummaryParseError, SummaryValidationError
from founder_interview.summary import (
    REQUIRED_KEYS,
    load_summary,
    strip_code_fences,
    validate_summary,
)

from conftest import VALID_SUMMARY


def _payload(**overrides):
    payload = copy.deepcopy(VALID_SUMMARY)
    payload.update(overrides)
    return payload


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}\n```  ') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1} ') == '{"a": 1}'


def test_fenced_summary_is_loaded():
    raw = "```json\n" + json.dumps(VALID_SUMMARY) + "\n```"
    document = load_summary(raw)
    assert document["networkStrength"] == VALID_SUMMARY["networkStrength"]
    for key in REQUIRED_KEYS:
        assert key in document


def test_valid_document_keeps_values():
    document = validate_summary(_payload())
    constraints = document["extractedInsights"]["constraints"]
    assert constraints["hoursPerWeek"] == 15
    assert document["extractedInsights"]["financialTarget"]["type"] == "side_income"
    assert document["distributionChannels"] == ["LinkedIn"]


def test_null_lists_become_empty():
    payload = _payload()
    payload["extractedInsights"]["insiderKnowledge"] = None
    payload["extractedInsights"]["constraints"]["otherConstraints"] = None
    payload["distributionChannels"] = None
    document = validate_summary(payload)
    assert document["extractedInsights"]["insiderKnowledge"] == []
    assert document["extractedInsights"]["constraints"]["otherConstraints"] == []
    assert document["distributionChannels"] == []


def test_missing_optional_fields_get_defaults():
    payload = _payload()
    del payload["distributionChannels"]
    del payload["extractedInsights"]["hardNoFilters"]
    document = validate_summary(payload)
    assert document["distributionChannels"] == []
    assert document["extractedInsights"]["hardNoFilters"] == []


@pytest.mark.parametrize("hours", ["unclear", 12, 7.5])
def test_hours_accepts_number_or_unclear(hours):
    payload = _payload()
    payload["extractedInsights"]["constraints"]["hoursPerWeek"] = hours
    document = validate_summary(payload)
    assert document["extractedInsights"]["constraints"]["hoursPerWeek"] == hours


@pytest.mark.parametrize("hours", ["ten", "12", True, None])
def test_hours_rejects_other_values(hours):
    payload = _payload()
    payload["extractedInsights"]["constraints"]["hoursPerWeek"] = hours
    with pytest.raises(SummaryValidationError) as info:
        validate_summary(payload)
    assert any("hoursPerWeek" in issue for issue in info.value.issues)


def test_revenue_sentinel_is_unspecified_not_unclear():
    payload = _payload()
    payload["extractedInsights"]["financialTarget"]["minimumMonthlyRevenue"] = "unspecified"
    validate_summary(payload)

    payload["extractedInsights"]["financialTarget"]["minimumMonthlyRevenue"] = "unclear"
    with pytest.raises(SummaryValidationError):
        validate_summary(payload)


def test_bad_confidence_level_rejected():
    payload = _payload()
    payload["confidenceLevel"]["constraints"] = "certain"
    with pytest.raises(SummaryValidationError):
        validate_summary(payload)


@pytest.mark.parametrize("key", REQUIRED_KEYS)
def test_missing_required_key_rejected(key):
    payload = _payload()
    del payload[key]
    with pytest.raises(SummaryValidationError) as info:
        validate_summary(payload)
    assert any(issue.startswith(key) for issue in info.value.issues)


def test_non_object_rejected():
    with pytest.raises(SummaryValidationError) as info:
        validate_summary([VALID_SUMMARY])
    assert info.value.issues == ["<root>: expected a JSON object, got list"]
    assert info.value.to_payload()["issues"] == info.value.issues


@pytest.mark.parametrize("raw", ["", "   ", "Here is your summary!", "```json\n{broken\n```"])
def test_unparseable_output_raises_parse_error(raw):
    with pytest.raises(SummaryParseError) as info:
        load_summary(raw)
    assert info.value.status_code == 502
    assert info.value.code == "summary_parse_failed"


@pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity", "1e400"])
@pytest.mark.parametrize("field", ["hoursPerWeek", "minimumMonthlyRevenue"])
def test_non_finite_numbers_rejected(literal, field):
    raw = json.dumps(VALID_SUMMARY)
    original = '"hoursPerWeek": 15' if field == "hoursPerWeek" else '"minimumMonthlyRevenue": 3000'
    raw = raw.replace(original, f'"{field}": {literal}')
    assert literal in raw

    with pytest.raises(SummaryValidationError) as info:
        load_summary(raw)
    assert any(field in issue for issue in info.value.issues)


def test_large_integers_are_still_numbers():
    payload = _payload()
    payload["extractedInsights"]["financialTarget"]["minimumMonthlyRevenue"] = 10**30
    document = validate_summary(payload)
    assert document["extractedInsights"]["financialTarget"]["minimumMonthlyRevenue"] == 10**30
