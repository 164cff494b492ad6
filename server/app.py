import asyncio
from aiohttp import web
import aiohttp_cors
import os
import dotenv
import logging
from adjudicator.server.routes import setup_routes
from aiohttp_apispec import validation_middleware, setup_aiohttp_apispec
from adjudicator.server.auth import auth_middleware
from adjudicator.database.database import async_session
from adjudicator.engine.appeals import AppealReconciler
from adjudicator.engine.background import BackgroundTasks
from adjudicator.engine.notifications import NotificationDispatcher, TournamentWebhook
from adjudicator.engine.personas import seed_judges
from adjudicator.engine.provider import create_verdict_provider
from adjudicator.engine.resolver import OutcomeResolver

dotenv.load_dotenv()

SERVER_HOST = os.environ.get("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.environ.get("SERVER_PORT", 8080))
JUDGE_PANEL_SIZE = int(os.environ.get("JUDGE_PANEL_SIZE", 3))
TOURNAMENT_WEBHOOK_URL = os.environ.get("TOURNAMENT_WEBHOOK_URL")
SEED_JUDGES = os.environ.get("SEED_JUDGES", "true").lower() == "true"

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def on_startup(app: web.Application):
    if SEED_JUDGES:
        async with async_session() as session:
            await seed_judges(session)


async def on_cleanup(app: web.Application):
    tasks: BackgroundTasks = app["background_tasks"]
    if tasks.pending:
        logger.info(f"Waiting for {tasks.pending} background tasks...")
    await tasks.drain()


async def create_app() -> web.Application:
    app = web.Application()
    app["text_model_name"] = os.environ.get("GEMINI_MODEL_NAME", "gemini-1.5-flash")
    provider = create_verdict_provider(
        os.environ.get("GEMINI_API_KEY"), app["text_model_name"]
    )

    tasks = BackgroundTasks()
    notifier = NotificationDispatcher()
    tournament_hook = TournamentWebhook(TOURNAMENT_WEBHOOK_URL) if TOURNAMENT_WEBHOOK_URL else None
    app["background_tasks"] = tasks
    app["resolver"] = OutcomeResolver(
        async_session,
        provider,
        notifier=notifier,
        tasks=tasks,
        tournament_hook=tournament_hook,
        panel_size=JUDGE_PANEL_SIZE,
    )
    app["reconciler"] = AppealReconciler(
        async_session,
        provider,
        notifier=notifier,
        tasks=tasks,
        panel_size=JUDGE_PANEL_SIZE,
    )
    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)

    setup_routes(app)
    logger.info("Routes have been set up.")
    cors = aiohttp_cors.setup(
        app,
        defaults={
            os.environ.get("CLIENT_URL", "*"): aiohttp_cors.ResourceOptions(
                allow_credentials=True,
                expose_headers="*",
                allow_headers="*",
                allow_methods="*",
            )
        },
    )
    for route in list(app.router.routes()):
        cors.add(route)
    app.middlewares.append(validation_middleware)
    app.middlewares.append(auth_middleware)
    setup_aiohttp_apispec(app=app, title="Debate Adjudicator", version="v1")
    return app


if __name__ == "__main__":
    loop = asyncio.new_event_loop()
    app_instance = loop.run_until_complete(create_app())
    logger.info(f"Starting Debate Adjudicator on http://{SERVER_HOST}:{SERVER_PORT}")
    web.run_app(app_instance, host=SERVER_HOST, port=SERVER_PORT, loop=loop)
