from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from adjudicator.database.models import Decision
from adjudicator.engine.provider import (
    DebateContext,
    GeminiVerdictProvider,
    StatementContext,
    build_debate_summary,
    build_verdict_prompt,
    clamp_score,
    create_verdict_provider,
    parse_verdict_response,
)


def make_context(**overrides):
    values = dict(
        topic="Remote work beats the office",
        challenger_position="FOR",
        opponent_position="AGAINST",
        challenger_name="alice",
        opponent_name="bob",
        current_round=2,
        total_rounds=2,
        is_complete=True,
        statements=[
            StatementContext(2, "alice", "FOR", "Commutes waste time."),
            StatementContext(1, "alice", "FOR", "Productivity studies favour remote work."),
            StatementContext(1, "bob", "AGAINST", "Mentoring suffers at a distance."),
            StatementContext(2, "bob", "AGAINST", "[No submission - Time expired]"),
        ],
    )
    values.update(overrides)
    return DebateContext(**values)


def test_parse_fenced_reply():
    verdict = parse_verdict_response(
        '```json\n{"winner": "challenger", "reasoning": "Better evidence.", '
        '"challengerScore": 81.5, "opponentScore": 64}\n```'
    )
    assert verdict.decision == Decision.CHALLENGER_WINS
    assert verdict.challenger_score == 81.5
    assert verdict.opponent_score == 64
    assert verdict.reasoning == "Better evidence."


def test_parse_clamps_and_defaults_scores():
    verdict = parse_verdict_response(
        '{"winner": "OPPONENT", "reasoning": "r", "challengerScore": -12, "extra": 1}'
    )
    assert verdict.challenger_score == 0
    assert verdict.opponent_score == 50

    verdict = parse_verdict_response(
        '{"winner": "TIE", "reasoning": "r", "challengerScore": 140, "opponentScore": null}'
    )
    assert (verdict.challenger_score, verdict.opponent_score) == (100, 50)


@pytest.mark.parametrize(
    "text",
    [
        "The challenger clearly won.",
        '{"winner": "BOTH", "reasoning": "r"}',
        '{"winner": "TIE"}',
        "",
    ],
)
def test_parse_rejects_malformed_replies(text):
    with pytest.raises(ValueError):
        parse_verdict_response(text)


def test_clamp_score():
    assert clamp_score(None) == 50
    assert clamp_score(101) == 100
    assert clamp_score(-1) == 0
    assert clamp_score(42.5) == 42.5


def test_summary_groups_rounds_and_marks_missed_deadlines():
    summary = build_debate_summary(make_context())

    assert summary.index("=== ROUND 1 ===") < summary.index("=== ROUND 2 ===")
    assert "DEBATE STATUS: COMPLETED" in summary
    assert "[MISSED DEADLINE - NO SUBMISSION]" in summary
    assert "[No submission - Time expired]" not in summary
    round_two = summary.split("=== ROUND 2 ===")[1]
    assert "Commutes waste time." in round_two


def test_prompt_for_unfinished_debate():
    context = make_context(current_round=1, total_rounds=3, is_complete=False)
    prompt = build_verdict_prompt(context)

    assert "IN PROGRESS - Round 1 of 3" in prompt
    assert "ended due to time expiration" in prompt
    assert '"challengerScore": 0-100' in prompt


def test_context_from_debate():
    challenger = SimpleNamespace(username="alice")
    opponent = SimpleNamespace(username="bob")
    debate = SimpleNamespace(
        topic="t",
        challenger_position="FOR",
        opponent_position="AGAINST",
        challenger_id=1,
        opponent_id=2,
        challenger=challenger,
        opponent=opponent,
        current_round=3,
        total_rounds=3,
        statements=[
            SimpleNamespace(round=1, author_id=2, content="no"),
            SimpleNamespace(round=1, author_id=1, content="yes"),
        ],
    )

    context = DebateContext.from_debate(debate)

    assert context.finished
    assert [(s.author, s.position) for s in context.statements] == [
        ("bob", "AGAINST"),
        ("alice", "FOR"),
    ]


async def test_gemini_provider_sends_persona_as_system_instruction():
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(
        return_value=SimpleNamespace(
            text='{"winner": "OPPONENT", "reasoning": "Sharper rebuttals.", '
            '"challengerScore": 55, "opponentScore": 72}'
        )
    )
    provider = GeminiVerdictProvider(client, "gemini-test")

    verdict = await provider.generate_verdict("You are The Logician.", make_context())

    assert verdict.decision == Decision.OPPONENT_WINS
    kwargs = client.aio.models.generate_content.await_args.kwargs
    assert kwargs["model"] == "gemini-test"
    assert kwargs["config"].system_instruction == "You are The Logician."
    assert kwargs["config"].response_mime_type == "application/json"
    assert "Remote work beats the office" in kwargs["contents"][0]


async def test_gemini_provider_explains_appeal():
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock(
        return_value=SimpleNamespace(text="  The new panel agreed with the original result.  ")
    )
    provider = GeminiVerdictProvider(client, "gemini-test")

    text = await provider.explain_appeal(
        make_context(), "alice", "alice", "I was misjudged.", ["Solid.", "Clear."], False
    )

    assert text == "The new panel agreed with the original result."
    prompt = client.aio.models.generate_content.await_args.kwargs["contents"][0]
    assert "did not change" in prompt
    assert "Judge 2: Clear." in prompt


def test_provider_disabled_without_key():
    assert create_verdict_provider(None, "gemini-test") is None
    assert create_verdict_provider("", "gemini-test") is None
