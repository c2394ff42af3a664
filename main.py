import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.openapi.utils import get_openapi
import uvicorn

from rolegate.api.endpoints import admin, health, verification
from rolegate.core.cache import HybridCacheManager
from rolegate.core.config import settings
from rolegate.core.dependencies import Services, admin_auth
from rolegate.core.log_config import setup_logging
from rolegate.db.document_store import DocumentStore
from rolegate.db.session import SessionLocal
from rolegate.services.batch_runner import BatchVerificationRunner
from rolegate.services.chain_balance import Web3BalanceSource
from rolegate.services.challenge_store import ChallengeStore
from rolegate.services.challenges import ChallengeIssuer, SignatureVerifier
from rolegate.services.discord_roles import DiscordRoleAPI, build_client
from rolegate.services.rate_limiter import RateLimiter
from rolegate.services.reconciler import RoleReconciler
from rolegate.services.scheduler import VerificationScheduler
from rolegate.services.tiers import FileTierSource, TierCalculator
from rolegate.services.verification import VerificationService

logger = logging.getLogger(__name__)


def build_services(community, balances) -> Services:
    """Wire the service graph around a community role API and a balance source."""
    store = DocumentStore(SessionLocal)
    store.create_all()
    challenges = ChallengeStore(HybridCacheManager.from_settings(), store)
    calculator = TierCalculator(FileTierSource(settings.TIERS_PATH))
    reconciler = RoleReconciler(community, calculator, store)
    runner = BatchVerificationRunner(store, balances, reconciler)
    return Services(
        store=store,
        challenges=challenges,
        issuer=ChallengeIssuer(challenges, RateLimiter()),
        verification=VerificationService(SignatureVerifier(challenges, store), runner, reconciler),
        runner=runner,
        scheduler=VerificationScheduler(runner),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    # tests install their own services before startup
    if getattr(app.state, "services", None) is not None:
        yield
        return

    client = build_client()
    client_task = None
    if settings.DISCORD_TOKEN:
        client_task = asyncio.create_task(client.start(settings.DISCORD_TOKEN))
        ready = asyncio.create_task(client.wait_until_ready())
        await asyncio.wait({client_task, ready}, return_when=asyncio.FIRST_COMPLETED)
        if client_task.done():
            # login failed, surface the error instead of waiting forever
            ready.cancel()
            client_task.result()
        logger.info("logged in as %s, serving %d guilds", client.user, len(client.guilds))
    else:
        logger.warning("DISCORD_TOKEN is not set, role updates are disabled")

    services = build_services(DiscordRoleAPI(client), Web3BalanceSource())
    app.state.services = services
    if settings.SCHEDULER_ENABLED:
        services.scheduler.start()
    try:
        yield
    finally:
        services.scheduler.shutdown()
        if client_task is not None:
            await client.close()
            await asyncio.gather(client_task, return_exceptions=True)
        app.state.services = None


# Define the FastAPI application instance
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins="*",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/docs", include_in_schema=False)
async def get_swagger_documentation(username: str = Depends(admin_auth)):
    return get_swagger_ui_html(openapi_url="/openapi.json", title="docs")


@app.get("/redoc", include_in_schema=False)
async def get_redoc_documentation(username: str = Depends(admin_auth)):
    return get_redoc_html(openapi_url="/openapi.json", title="docs")


@app.get("/openapi.json", include_in_schema=False)
async def openapi(username: str = Depends(admin_auth)):
    return get_openapi(title=app.title, version=app.version, routes=app.routes)


# Include your API routers
app.include_router(health.router)
app.include_router(verification.router, prefix="/verification")
app.include_router(admin.router, prefix="/admin")


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
