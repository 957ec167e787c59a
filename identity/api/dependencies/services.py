"""Factories wiring the orchestrators to their collaborators per request."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import Session

from identity.core.clock import Clock, SystemClock
from identity.core.security import (
    AccessTokenSigner,
    BcryptPasswordHasher,
    JwtAccessTokenSigner,
    PasswordHasher,
)
from identity.db.session import get_db
from identity.services.audit import AuditedAuthService, AuditedRegistrationService
from identity.services.auth import AuthService
from identity.services.email import Mailer, SmtpMailer
from identity.services.registration import RegistrationService


def get_clock() -> Clock:
    return SystemClock()


@lru_cache
def get_hasher() -> PasswordHasher:
    return BcryptPasswordHasher()


@lru_cache
def get_signer() -> AccessTokenSigner:
    return JwtAccessTokenSigner()


def get_mailer() -> Mailer:
    return SmtpMailer()


def get_auth_service(
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    clock: Annotated[Clock, Depends(get_clock)],
    hasher: Annotated[PasswordHasher, Depends(get_hasher)],
    signer: Annotated[AccessTokenSigner, Depends(get_signer)],
    mailer: Annotated[Mailer, Depends(get_mailer)],
) -> AuditedAuthService:
    return AuditedAuthService(
        AuthService(
            db,
            clock=clock,
            hasher=hasher,
            signer=signer,
            mailer=mailer,
            background_tasks=background_tasks,
        )
    )


def get_registration_service(
    background_tasks: BackgroundTasks,
    db: Annotated[Session, Depends(get_db)],
    clock: Annotated[Clock, Depends(get_clock)],
    hasher: Annotated[PasswordHasher, Depends(get_hasher)],
    signer: Annotated[AccessTokenSigner, Depends(get_signer)],
    mailer: Annotated[Mailer, Depends(get_mailer)],
) -> AuditedRegistrationService:
    return AuditedRegistrationService(
        RegistrationService(
            db,
            clock=clock,
            hasher=hasher,
            signer=signer,
            mailer=mailer,
            background_tasks=background_tasks,
        )
    )


__all__ = [
    "get_auth_service",
    "get_clock",
    "get_hasher",
    "get_mailer",
    "get_registration_service",
    "get_signer",
]
