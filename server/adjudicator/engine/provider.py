"""
Generative judge provider.

Builds the transcript a judge persona reads, sends it to Gemini and turns the
reply into a `ProviderVerdict`. The decision in that verdict is advisory only;
callers re-derive the outcome from the two scores.
"""

import json
import logging
from dataclasses import dataclass, field

from google import genai
from google.genai.types import GenerateContentResponse
from marshmallow import EXCLUDE, Schema, ValidationError, fields, pre_load, validate

from adjudicator.database.models import Decision

logger = logging.getLogger(__name__)

EXPIRED_MARKERS = ("[No submission - Time expired]", "Time expired")
NEUTRAL_SCORE = 50

RAW_DECISIONS = {
    "CHALLENGER": Decision.CHALLENGER_WINS,
    "OPPONENT": Decision.OPPONENT_WINS,
    "TIE": Decision.TIE,
}


@dataclass
class StatementContext:
    round: int
    author: str
    position: str
    content: str

    @property
    def expired(self) -> bool:
        return any(marker in self.content for marker in EXPIRED_MARKERS)


@dataclass
class DebateContext:
    topic: str
    challenger_position: str
    opponent_position: str
    challenger_name: str
    opponent_name: str
    current_round: int
    total_rounds: int
    is_complete: bool
    statements: list[StatementContext] = field(default_factory=list)

    @classmethod
    def from_debate(cls, debate) -> "DebateContext":
        """Expects `challenger`, `opponent` and `statements` to be loaded."""
        opponent_name = debate.opponent.username if debate.opponent else "Unknown"
        names = {debate.challenger_id: debate.challenger.username}
        if debate.opponent_id is not None:
            names[debate.opponent_id] = opponent_name

        statements = [
            StatementContext(
                round=statement.round,
                author=names.get(statement.author_id, "Unknown"),
                position=(
                    debate.challenger_position
                    if statement.author_id == debate.challenger_id
                    else debate.opponent_position
                ),
                content=statement.content,
            )
            for statement in debate.statements
        ]
        return cls(
            topic=debate.topic,
            challenger_position=debate.challenger_position,
            opponent_position=debate.opponent_position,
            challenger_name=debate.challenger.username,
            opponent_name=opponent_name,
            current_round=debate.current_round,
            total_rounds=debate.total_rounds,
            is_complete=debate.current_round >= debate.total_rounds,
            statements=statements,
        )

    @property
    def finished(self) -> bool:
        return self.is_complete and self.current_round >= self.total_rounds

    @property
    def has_expired_statements(self) -> bool:
        return any(statement.expired for statement in self.statements)


def build_debate_summary(context: DebateContext) -> str:
    status = (
        "COMPLETED"
        if context.finished
        else f"IN PROGRESS - Round {context.current_round} of {context.total_rounds}"
    )
    lines = [
        f'DEBATE TOPIC: "{context.topic}"',
        "",
        "DEBATERS:",
        f"- {context.challenger_name}: Arguing {context.challenger_position}",
        f"- {context.opponent_name}: Arguing {context.opponent_position}",
        "",
        f"DEBATE STATUS: {status}",
        "",
        "ARGUMENTS BY ROUND:",
        "",
    ]

    rounds: dict[int, list[StatementContext]] = {}
    for statement in context.statements:
        rounds.setdefault(statement.round, []).append(statement)

    for round_number in sorted(rounds):
        lines.append(f"=== ROUND {round_number} ===")
        lines.append("")
        for statement in rounds[round_number]:
            lines.append(f"{statement.author} ({statement.position}):")
            if statement.expired:
                lines.append("[MISSED DEADLINE - NO SUBMISSION]")
                lines.append(
                    "This participant failed to submit their argument before the deadline expired."
                )
            else:
                lines.append(statement.content)
            lines.append("")

    return "\n".join(lines)


def completion_note(context: DebateContext) -> str:
    if context.finished:
        return (
            "This debate has been completed with all rounds finished. "
            "Judge based on the full set of arguments presented."
        )
    if context.has_expired_statements:
        return (
            "This debate ended due to time expiration. Some rounds were not completed because "
            "participants missed the deadline. Judge based on whatever arguments were submitted "
            "before the time expired. If a debater missed a round due to time expiration, consider "
            "that as a negative factor in your evaluation."
        )
    return (
        f"This debate is incomplete (Round {context.current_round}/{context.total_rounds}). "
        "Judge based on whatever arguments are available, even if not all rounds were completed. "
        "If a debater missed a round, consider that in your evaluation."
    )


def _reasoning_instruction(context: DebateContext) -> str:
    if context.finished:
        return "Do not mention that the debate is incomplete, as it has been fully completed."
    if context.has_expired_statements:
        return "Mention that the debate ended due to time expiration and how missed deadlines affected your evaluation."
    return "Mention if the incomplete nature of the debate affected your evaluation."


def build_verdict_prompt(context: DebateContext) -> str:
    return f"""{build_debate_summary(context)}

{completion_note(context)}

Analyze the available arguments and provide your verdict in the following JSON format:

{{
  "winner": "CHALLENGER" | "OPPONENT" | "TIE",
  "reasoning": "Your detailed explanation of why you reached this decision. {_reasoning_instruction(context)}",
  "challengerScore": 0-100,
  "opponentScore": 0-100
}}

IMPORTANT: Respond ONLY with valid JSON. Do not include any text outside the JSON object."""


@dataclass
class ProviderVerdict:
    decision: Decision
    challenger_score: float
    opponent_score: float
    reasoning: str


class ProviderVerdictSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    winner = fields.String(required=True, validate=validate.OneOf(list(RAW_DECISIONS)))
    reasoning = fields.String(required=True, validate=validate.Length(min=1))
    challenger_score = fields.Float(
        data_key="challengerScore", load_default=None, allow_none=True
    )
    opponent_score = fields.Float(
        data_key="opponentScore", load_default=None, allow_none=True
    )

    @pre_load
    def normalize_winner(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get("winner"), str):
            data = dict(data, winner=data["winner"].strip().upper())
        return data


def clamp_score(value) -> float:
    if value is None:
        return NEUTRAL_SCORE
    return max(0, min(100, value))


def strip_code_fences(text: str) -> str:
    return text.replace("```json", "").replace("```", "").strip()


def parse_verdict_response(text: str) -> ProviderVerdict:
    cleaned = strip_code_fences(text or "")
    try:
        payload = ProviderVerdictSchema().load(json.loads(cleaned or "{}"))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Failed to parse verdict JSON: {e}. Response: {cleaned[:500]}")
        raise ValueError("Failed to parse judge response") from e

    return ProviderVerdict(
        decision=RAW_DECISIONS[payload["winner"]],
        challenger_score=clamp_score(payload["challenger_score"]),
        opponent_score=clamp_score(payload["opponent_score"]),
        reasoning=payload["reasoning"],
    )


async def generate_text_content(
    client: genai.Client,
    text: str,
    system_instructions: str,
    model_name: str,
    max_output_tokens: int = 100,
    temperature: float = None,
    response_mime_type: str = None,
) -> GenerateContentResponse:
    response = await client.aio.models.generate_content(
        model=model_name,
        contents=[text],
        config=genai.types.GenerateContentConfig(
            max_output_tokens=max_output_tokens,
            system_instruction=system_instructions,
            temperature=temperature,
            response_mime_type=response_mime_type,
        ),
    )
    return response


class GeminiVerdictProvider:
    explanation_system_prompt = (
        "You are a helpful assistant that explains appeal outcomes clearly and respectfully."
    )

    def __init__(self, client: genai.Client, model_name: str):
        self.client = client
        self.model_name = model_name

    async def generate_verdict(self, system_prompt: str, context: DebateContext) -> ProviderVerdict:
        response = await generate_text_content(
            self.client,
            build_verdict_prompt(context),
            system_instructions=system_prompt,
            model_name=self.model_name,
            max_output_tokens=2000,
            temperature=0.7,
            response_mime_type="application/json",
        )
        return parse_verdict_response(response.text)

    async def explain_appeal(
        self,
        context: DebateContext,
        original_winner: str,
        new_winner: str,
        appeal_reason: str,
        reasonings: list[str],
        flipped: bool,
    ) -> str:
        verdicts_summary = "\n\n".join(
            f"Judge {i + 1}: {reasoning}" for i, reasoning in enumerate(reasonings)
        )
        if flipped:
            framing = "why an appeal successfully changed a debate verdict"
            conclusion = "the new judges reached a different conclusion"
            support = "that supported the appeal"
        else:
            framing = "why an appeal did not change a debate verdict"
            conclusion = "the new judges reached the same conclusion"
            support = ""

        prompt = f"""You are an AI assistant explaining {framing}.

DEBATE CONTEXT:
- Topic: {context.topic}
- Original Winner: {original_winner}
- New Verdict Winner: {new_winner}
- User's Appeal Reason: "{appeal_reason}"

NEW JUDGES' VERDICTS AND REASONING:
{verdicts_summary}

TASK:
Generate a clear, respectful explanation (2-3 sentences). The explanation should:
1. Acknowledge that different judges reviewed the appeal
2. Explain that {conclusion}
3. Reference key points from the new judges' reasoning {support}
4. Be respectful and constructive

Respond with ONLY the explanation text. Do not include any JSON formatting or additional commentary."""

        response = await generate_text_content(
            self.client,
            prompt,
            system_instructions=self.explanation_system_prompt,
            model_name=self.model_name,
            max_output_tokens=300,
            temperature=0.5,
        )
        return (response.text or "").strip()


def create_verdict_provider(api_key: str, model_name: str):
    if not api_key:
        logger.warning("GEMINI_API_KEY not set; verdict generation is disabled.")
        return None
    return GeminiVerdictProvider(genai.Client(api_key=api_key), model_name)
