import pytest
from eth_account import Account
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from typing import Generator, List

from main import app
from rolegate.core.cache import HybridCacheManager
from rolegate.core.dependencies import Services
from rolegate.db.document_store import DocumentStore
from rolegate.services.batch_runner import BatchPacer, BatchVerificationRunner
from rolegate.services.challenge_store import ChallengeStore
from rolegate.services.challenges import ChallengeIssuer, SignatureVerifier
from rolegate.services.rate_limiter import RateLimiter
from rolegate.services.reconciler import RoleReconciler
from rolegate.services.scheduler import VerificationScheduler
from rolegate.services.tiers import Tier, TierCalculator
from rolegate.services.verification import VerificationService
from tests.fakes import HOLDER_ROLE, WHALE_ROLE, FakeBalances, FakeClock, FakeCommunity


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

# Fixed test keys, never used outside the test suite
ALICE_KEY = "0x" + "11" * 32
BOB_KEY = "0x" + "22" * 32


@pytest.fixture
def store() -> DocumentStore:
    """Document store on a fresh in-memory database"""
    engine = create_engine(
        SQLALCHEMY_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    document_store = DocumentStore(testing_session_local)
    document_store.create_all()
    yield document_store
    engine.dispose()


@pytest.fixture
def cache() -> HybridCacheManager:
    """Memory only cache (no redis host)"""
    return HybridCacheManager(redis_host=None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def alice():
    return Account.from_key(ALICE_KEY)


@pytest.fixture
def bob():
    return Account.from_key(BOB_KEY)


@pytest.fixture
def challenge_store(cache, store, clock) -> ChallengeStore:
    return ChallengeStore(cache, store, clock=clock)


@pytest.fixture
def rate_limiter(clock) -> RateLimiter:
    return RateLimiter(max_attempts=5, window_seconds=900, clock=clock)


@pytest.fixture
def issuer(challenge_store, rate_limiter, clock) -> ChallengeIssuer:
    return ChallengeIssuer(challenge_store, rate_limiter, ttl_seconds=600, clock=clock)


@pytest.fixture
def verifier(challenge_store, store, clock) -> SignatureVerifier:
    return SignatureVerifier(challenge_store, store, clock=clock)


@pytest.fixture
def tiers() -> List[Tier]:
    return [
        Tier(name="Holder", min_count=1, role_id=HOLDER_ROLE, description="Holds a token"),
        Tier(name="Whale", min_count=10, role_id=WHALE_ROLE, description="Holds ten tokens"),
    ]


@pytest.fixture
def calculator(tiers) -> TierCalculator:
    return TierCalculator(tiers)


@pytest.fixture
def community() -> FakeCommunity:
    """One community where the bot ranks above both tier roles"""
    return FakeCommunity("c1", roles={HOLDER_ROLE: 1, WHALE_ROLE: 2}, bot_position=5)


@pytest.fixture
def balances() -> FakeBalances:
    return FakeBalances()


@pytest.fixture
def reconciler(community, calculator, store, clock) -> RoleReconciler:
    return RoleReconciler(community, calculator, store, mutation_timeout=1, clock=clock)


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def pacer(sleeps) -> BatchPacer:
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return BatchPacer(batch_size=2, delay_seconds=1.0, sleep=fake_sleep)


@pytest.fixture
def runner(store, balances, reconciler, pacer, clock) -> BatchVerificationRunner:
    return BatchVerificationRunner(store, balances, reconciler, pacer=pacer, balance_timeout=1, clock=clock)


@pytest.fixture
def services(store, challenge_store, issuer, verifier, runner, reconciler) -> Services:
    return Services(
        store=store,
        challenges=challenge_store,
        issuer=issuer,
        verification=VerificationService(verifier, runner, reconciler),
        runner=runner,
        scheduler=VerificationScheduler(runner),
    )


@pytest.fixture
def client(services) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI application with in-memory services"""
    app.state.services = services
    with TestClient(app) as test_client:
        yield test_client
    app.state.services = None
    app.dependency_overrides.clear()
