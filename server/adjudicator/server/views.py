from aiohttp import web
import logging

from adjudicator.database.database import (
    async_session,
    get_item_by_id,
)
import adjudicator.database.models as db_models
from adjudicator.engine.errors import AdjudicationError, DebateNotFound, UserNotFound

from .schemas import (
    ResolveDebateRequest,
    ResolveDebateResponse,
    AppealDebateRequest,
    AppealDebateResponse,
    ReconcileAppealRequest,
    ReconcileAppealResponse,
    GetDebateVerdictsRequest,
    GetDebateVerdictsResponse,
    GetUserStatsRequest,
    GetUserStatsResponse,
)
from .utils import error_response, user_stats_payload, verdict_payload
from aiohttp_apispec import (
    docs,
    request_schema,
    querystring_schema,
)

logger = logging.getLogger(__name__)


@docs(
    tags=["resolve debate"],
    summary="Resolves a completed debate",
    description="Samples a judge panel, scores the debate and applies ELO and stat updates.",
    responses={
        200: {
            "schema": ResolveDebateResponse,
            "description": "Success response with the resolved outcome",
        },
        404: {"description": "Debate not found"},
        409: {"description": "Debate not resolvable or already resolved"},
        422: {"description": "Validation error"},
        503: {"description": "Verdict provider or judges unavailable"},
    },
)
@request_schema(ResolveDebateRequest)
async def resolve_debate_view(request):
    resolver = request.app["resolver"]
    debate_id: int = request["data"]["debate_id"]
    logger.info(f"Resolving debate {debate_id}...")

    try:
        resolution = await resolver.resolve(debate_id)
    except AdjudicationError as e:
        logger.warning(f"Resolution of debate {debate_id} refused: {e.code} - {e.description}")
        return error_response(e)

    response_data = ResolveDebateResponse().dump(
        {
            "message": "Debate resolved",
            "debate_id": resolution.debate_id,
            "winner_id": resolution.winner_id,
            "challenger_elo_change": resolution.challenger_elo_change,
            "opponent_elo_change": resolution.opponent_elo_change,
            "challenger_total": resolution.tally.challenger_total,
            "opponent_total": resolution.tally.opponent_total,
            "max_possible": resolution.tally.max_possible,
            "verdicts": [verdict_payload(v) for v in resolution.verdicts],
        }
    )
    return web.json_response(response_data, status=200)


@docs(
    tags=["appeal debate"],
    summary="Appeals a debate verdict",
    description="Files an appeal for the losing participant and schedules re-adjudication by a new judge panel.",
    responses={
        200: {
            "schema": AppealDebateResponse,
            "description": "Appeal accepted",
        },
        400: {"description": "Appeal not allowed"},
        403: {"description": "Caller is not a participant"},
        404: {"description": "Debate not found"},
        422: {"description": "Validation error"},
    },
)
@request_schema(AppealDebateRequest)
async def appeal_debate_view(request):
    reconciler = request.app["reconciler"]
    tasks = request.app["background_tasks"]
    data = request["data"]
    debate_id: int = data["debate_id"]

    try:
        debate = await reconciler.file_appeal(
            debate_id, request["user_id"], data["reason"], data["verdict_ids"]
        )
    except AdjudicationError as e:
        logger.warning(f"Appeal of debate {debate_id} refused: {e.code} - {e.description}")
        return error_response(e)

    tasks.submit(reconciler.reconcile(debate.id), name=f"appeal-debate-{debate.id}")

    response_data = AppealDebateResponse().dump(
        {
            "message": "Appeal submitted. New verdict will be generated shortly.",
            "debate_id": debate.id,
            "status": debate.status,
            "appeal_status": debate.appeal_status,
        }
    )
    return web.json_response(response_data, status=200)


@docs(
    tags=["reconcile appeal"],
    summary="Re-adjudicates an appealed debate",
    description="Runs the appeal panel synchronously, e.g. to retry an appeal left PENDING.",
    responses={
        200: {
            "schema": ReconcileAppealResponse,
            "description": "Appeal resolved",
        },
        404: {"description": "Debate not found"},
        409: {"description": "Debate is not appealed"},
        422: {"description": "Validation error"},
        502: {"description": "No appeal verdict could be generated"},
    },
)
@request_schema(ReconcileAppealRequest)
async def reconcile_appeal_view(request):
    reconciler = request.app["reconciler"]
    debate_id: int = request["data"]["debate_id"]

    try:
        outcome = await reconciler.reconcile(debate_id)
    except AdjudicationError as e:
        logger.warning(f"Appeal reconciliation of debate {debate_id} failed: {e.code} - {e.description}")
        return error_response(e)

    response_data = ReconcileAppealResponse().dump(
        {
            "message": "Appeal verdict overturned" if outcome.flipped else "Appeal verdict upheld",
            "debate_id": outcome.debate_id,
            "flipped": outcome.flipped,
            "winner_id": outcome.winner_id,
            "original_winner_id": outcome.original_winner_id,
            "challenger_elo_change": outcome.challenger_elo_change,
            "opponent_elo_change": outcome.opponent_elo_change,
            "verdicts": [verdict_payload(v) for v in outcome.verdicts],
        }
    )
    return web.json_response(response_data, status=200)


@docs(
    tags=["get debate verdicts"],
    summary="Retrieves a debate's outcome and verdicts",
    description="Returns the resolution fields of a debate together with every verdict recorded for it.",
    responses={
        200: {
            "schema": GetDebateVerdictsResponse,
            "description": "Success response with outcome and verdicts",
        },
        404: {"description": "Debate not found"},
        422: {"description": "Validation error"},
    },
)
@querystring_schema(GetDebateVerdictsRequest)
async def get_debate_verdicts(request):
    debate_id: int = request["querystring"]["debate_id"]
    async with async_session() as session:
        debate: db_models.Debate = await get_item_by_id(
            session, debate_id, db_models.Debate, load_relationships=["verdicts"]
        )
    if not debate:
        return error_response(DebateNotFound(f"Debate {debate_id} not found"))

    verdicts = sorted(debate.verdicts, key=lambda v: (v.phase != "ORIGINAL", v.id))
    response_data = GetDebateVerdictsResponse().dump(
        {
            "debate_id": debate.id,
            "topic": debate.topic,
            "status": debate.status,
            "winner_id": debate.winner_id,
            "verdict_reached": debate.verdict_reached,
            "verdict_date": debate.verdict_date,
            "challenger_elo_change": debate.challenger_elo_change,
            "opponent_elo_change": debate.opponent_elo_change,
            "appeal_status": debate.appeal_status,
            "appeal_rejection_reason": debate.appeal_rejection_reason,
            "verdicts": [verdict_payload(v) for v in verdicts],
        }
    )
    return web.json_response(response_data, status=200)


@docs(
    tags=["get user stats"],
    summary="Retrieves a user's cumulative debate statistics",
    description="Returns rating, win/loss/tie counters and score totals for a user.",
    responses={
        200: {
            "schema": GetUserStatsResponse,
            "description": "Success response with user statistics",
        },
        404: {"description": "User not found"},
        422: {"description": "Validation error"},
    },
)
@querystring_schema(GetUserStatsRequest)
async def get_user_stats(request):
    user_id: int = request["querystring"]["user_id"]
    async with async_session() as session:
        user: db_models.User = await get_item_by_id(session, user_id, db_models.User)
    if not user:
        return error_response(UserNotFound(f"User {user_id} not found"))
    response_data = GetUserStatsResponse().dump(user_stats_payload(user))
    return web.json_response(response_data, status=200)
