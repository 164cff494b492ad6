from marshmallow import Schema, fields, validate

from adjudicator.database.models import AppealStatus, DebateStatus, Decision, VerdictPhase


class VerdictSchema(Schema):
    id = fields.Integer(required=True)
    judge_id = fields.Integer(required=True)
    phase = fields.String(
        required=True, validate=validate.OneOf([p.value for p in VerdictPhase])
    )
    decision = fields.String(
        required=True, validate=validate.OneOf([d.value for d in Decision])
    )
    reasoning = fields.String(required=True)
    challenger_score = fields.Float(required=True)
    opponent_score = fields.Float(required=True)
    winner_id = fields.Integer(required=False, allow_none=True)


class ResolveDebateRequest(Schema):
    debate_id = fields.Integer(required=True)


class ResolveDebateResponse(Schema):
    message = fields.String(required=True)
    debate_id = fields.Integer(required=True)
    winner_id = fields.Integer(required=False, allow_none=True)
    challenger_elo_change = fields.Integer(required=True)
    opponent_elo_change = fields.Integer(required=True)
    challenger_total = fields.Float(required=True)
    opponent_total = fields.Float(required=True)
    max_possible = fields.Integer(required=True)
    verdicts = fields.List(fields.Nested(VerdictSchema), required=True)


class AppealDebateRequest(Schema):
    debate_id = fields.Integer(required=True)
    reason = fields.String(required=True)
    verdict_ids = fields.List(
        fields.Integer(), required=True, validate=validate.Length(min=1)
    )


class AppealDebateResponse(Schema):
    message = fields.String(required=True)
    debate_id = fields.Integer(required=True)
    status = fields.String(
        required=True, validate=validate.OneOf([s.value for s in DebateStatus])
    )
    appeal_status = fields.String(
        required=True, validate=validate.OneOf([s.value for s in AppealStatus])
    )


class ReconcileAppealRequest(Schema):
    debate_id = fields.Integer(required=True)


class ReconcileAppealResponse(Schema):
    message = fields.String(required=True)
    debate_id = fields.Integer(required=True)
    flipped = fields.Boolean(required=True)
    winner_id = fields.Integer(required=False, allow_none=True)
    original_winner_id = fields.Integer(required=False, allow_none=True)
    challenger_elo_change = fields.Integer(required=False, allow_none=True)
    opponent_elo_change = fields.Integer(required=False, allow_none=True)
    verdicts = fields.List(fields.Nested(VerdictSchema), required=True)


class GetDebateVerdictsRequest(Schema):
    debate_id = fields.Integer(required=True)


class GetDebateVerdictsResponse(Schema):
    debate_id = fields.Integer(required=True)
    topic = fields.String(required=True)
    status = fields.String(required=True)
    winner_id = fields.Integer(required=False, allow_none=True)
    verdict_reached = fields.Boolean(required=True)
    verdict_date = fields.DateTime(required=False, allow_none=True)
    challenger_elo_change = fields.Integer(required=False, allow_none=True)
    opponent_elo_change = fields.Integer(required=False, allow_none=True)
    appeal_status = fields.String(required=False, allow_none=True)
    appeal_rejection_reason = fields.String(required=False, allow_none=True)
    verdicts = fields.List(fields.Nested(VerdictSchema), required=True)


class GetUserStatsRequest(Schema):
    user_id = fields.Integer(required=True)


class GetUserStatsResponse(Schema):
    user_id = fields.Integer(required=True)
    username = fields.String(required=True)
    elo_rating = fields.Integer(required=True)
    debates_won = fields.Integer(required=True)
    debates_lost = fields.Integer(required=True)
    debates_tied = fields.Integer(required=True)
    total_debates = fields.Integer(required=True)
    total_score = fields.Float(required=True)
    total_max_score = fields.Float(required=True)
    average_rounds = fields.Float(required=True)
