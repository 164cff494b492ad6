from .views import (
    resolve_debate_view,
    appeal_debate_view,
    reconcile_appeal_view,
    get_debate_verdicts,
    get_user_stats,
)


def setup_routes(app):
    app.router.add_get("/get_debate_verdicts", get_debate_verdicts)
    app.router.add_get("/get_user_stats", get_user_stats)
    app.router.add_post("/resolve_debate", resolve_debate_view)
    app.router.add_post("/appeal_debate", appeal_debate_view)
    app.router.add_post("/reconcile_appeal", reconcile_appeal_view)
