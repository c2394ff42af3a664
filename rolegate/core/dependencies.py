"""
FastAPI dependencies.

The service graph is built once in the application lifespan and stored on
``app.state.services``; route handlers get the pieces they need through the
getters below, tests swap them with ``app.dependency_overrides``.
Usage in endpoints:
    @router.post("/challenge")
    def create_challenge(body: ..., issuer: ChallengeIssuer = Depends(get_issuer)):
        ...
"""

import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from rolegate.core.config import settings
from rolegate.db.document_store import DocumentStore
from rolegate.services.batch_runner import BatchVerificationRunner
from rolegate.services.challenge_store import ChallengeStore
from rolegate.services.challenges import ChallengeIssuer
from rolegate.services.scheduler import VerificationScheduler
from rolegate.services.verification import VerificationService


@dataclass
class Services:
    store: DocumentStore
    challenges: ChallengeStore
    issuer: ChallengeIssuer
    verification: VerificationService
    runner: BatchVerificationRunner
    scheduler: VerificationScheduler


def get_services(request: Request) -> Services:
    services: Optional[Services] = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is starting, try again shortly",
        )
    return services


def get_store(services: Services = Depends(get_services)) -> DocumentStore:
    return services.store


def get_challenge_store(services: Services = Depends(get_services)) -> ChallengeStore:
    return services.challenges


def get_issuer(services: Services = Depends(get_services)) -> ChallengeIssuer:
    return services.issuer


def get_verification_service(services: Services = Depends(get_services)) -> VerificationService:
    return services.verification


def get_runner(services: Services = Depends(get_services)) -> BatchVerificationRunner:
    return services.runner


def get_scheduler(services: Services = Depends(get_services)) -> VerificationScheduler:
    return services.scheduler


security = HTTPBasic()


def admin_auth(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    """Basic auth guard for the admin routes, any username with ADMIN_PASSWORD.
    Admin routes stay closed while no password is configured.
    """
    expected = settings.ADMIN_PASSWORD
    if not expected or not secrets.compare_digest(
        credentials.password.encode("utf-8"), expected.encode("utf-8")
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect password",
            headers={"WWW-Authenticate": "Basic"},
        )
    return credentials.username
