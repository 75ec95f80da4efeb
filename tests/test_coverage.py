import json

import pytest

from founder_interview.config import InterviewMode
from founder_interview.coverage import (
    DISTRIBUTION_NETWORK,
    CoverageGuard,
    MandatoryTopic,
    load_topics,
)
from founder_interview.models import InterviewSession, TurnRole


def _session(*contents: str) -> InterviewSession:
    session = InterviewSession(owner_id="founder-1", mode=InterviewMode.COLD_START)
    for index, content in enumerate(contents):
        role = TurnRole.INTERVIEWER if index % 2 == 0 else TurnRole.INTERVIEWEE
        session.append(role, content)
    return session


def test_keyword_match_is_case_insensitive():
    guard = CoverageGuard()
    session = _session("What do you do?", "I post on LinkedIn every week.")
    assert guard.missing_topics(session.transcript) == []
    assert guard.fallback_for(session) is None


def test_missing_topic_yields_fallback():
    guard = CoverageGuard()
    session = _session("What do you do?", "I run a bakery.")
    assert guard.missing_topics(session.transcript) == [DISTRIBUTION_NETWORK]
    assert guard.fallback_for(session) is DISTRIBUTION_NETWORK


def test_fallback_is_offered_once_per_session():
    guard = CoverageGuard()
    session = _session("What do you do?", "I run a bakery.")
    session.fallback_topic = DISTRIBUTION_NETWORK.topic
    assert guard.fallback_for(session) is None


def test_is_covered_matches_multi_word_keywords():
    guard = CoverageGuard()
    covered = _session("Who could you email?", "I have an Email List of 300 parents.")
    assert guard.is_covered(DISTRIBUTION_NETWORK, covered.transcript)
    bare = _session("Who could you email?", "Only my sister.")
    assert not guard.is_covered(DISTRIBUTION_NETWORK, bare.transcript)


def test_fallback_turn_asks_question_verbatim():
    turn = CoverageGuard.fallback_turn(DISTRIBUTION_NETWORK)
    assert turn.role is TurnRole.INTERVIEWER
    assert turn.content == DISTRIBUTION_NETWORK.fallback_question


def test_custom_topics_checked_in_order():
    pricing = MandatoryTopic("pricing", ("price", "charge"), "What would you charge?")
    guard = CoverageGuard([pricing, DISTRIBUTION_NETWORK])
    assert guard.topics == (pricing, DISTRIBUTION_NETWORK)
    session = _session("Tell me more.", "Nothing about money yet.")
    assert guard.fallback_for(session) is pricing


def test_load_topics_from_file(tmp_path):
    path = tmp_path / "topics.json"
    path.write_text(
        json.dumps(
            [
                {
                    "topic": "pricing",
                    "keywords": ["Price", "charge"],
                    "fallbackQuestion": "What would you charge?",
                }
            ]
        ),
        encoding="utf-8",
    )
    (topic,) = load_topics(path)
    assert topic.keywords == ("price", "charge")
    assert topic.fallback_question == "What would you charge?"


@pytest.mark.parametrize(
    "entry",
    [
        {"keywords": ["x"], "fallbackQuestion": "?"},
        {"topic": "t", "keywords": [], "fallbackQuestion": "?"},
        {"topic": "t", "keywords": ["x"]},
    ],
)
def test_invalid_topic_entries_rejected(entry):
    with pytest.raises(ValueError):
        MandatoryTopic.from_dict(entry)
