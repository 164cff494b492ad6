from aiohttp import web

from adjudicator.engine.errors import AdjudicationError


def error_response(error: AdjudicationError) -> web.Response:
    return web.json_response(error.error, status=error.status_code)


def verdict_payload(verdict) -> dict:
    return {
        "id": verdict.id,
        "judge_id": verdict.judge_id,
        "phase": verdict.phase,
        "decision": verdict.decision,
        "reasoning": verdict.reasoning,
        "challenger_score": verdict.challenger_score,
        "opponent_score": verdict.opponent_score,
        "winner_id": verdict.winner_id,
    }


def user_stats_payload(user) -> dict:
    return {
        "user_id": user.id,
        "username": user.username,
        "elo_rating": user.elo_rating,
        "debates_won": user.debates_won,
        "debates_lost": user.debates_lost,
        "debates_tied": user.debates_tied,
        "total_debates": user.total_debates,
        "total_score": user.total_score,
        "total_max_score": user.total_max_score,
        "average_rounds": user.average_rounds,
    }
