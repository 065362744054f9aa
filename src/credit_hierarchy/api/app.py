from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from ..clock import ZoneClock
from ..config import Settings, configure_logging, load_settings
from ..db.base import BaseDBManager
from ..db.memory import InMemoryDBManager
from ..db.mongo import MongoDBManager
from ..errors import AccountNotFound, AuthFailure, BusinessRuleFailure, TransactionFailure
from ..logging.audit_logger import AuditLogger
from ..security.passwords import BcryptPasswordHasher
from ..security.tokens import JWTCredentialProvider
from ..services.account_service import AccountCreationService
from ..services.auth_service import AuthorizationGate
from ..services.mutation_service import FieldMutationService
from ..services.profile_service import ProfileService
from ..services.transfer_service import CreditTransferService
from .router import Services, router

logger = logging.getLogger(__name__)


def _create_db_manager(settings: Settings) -> BaseDBManager:
    if settings.mongo_uri:
        return MongoDBManager.from_client_uri(settings.mongo_uri, settings.mongo_db)
    logger.warning("No mongo_uri configured; using the in-memory store")
    return InMemoryDBManager()


def build_services(settings: Settings, db: BaseDBManager) -> Services:
    clock = ZoneClock(settings.timezone)
    hasher = BcryptPasswordHasher(rounds=settings.bcrypt_rounds)
    credentials = JWTCredentialProvider(
        settings.jwt_secret.get_secret_value(),
        algorithm=settings.jwt_algorithm,
        ttl_seconds=settings.token_ttl_seconds,
    )
    audit = AuditLogger(db=db, file_path=settings.audit_log_path)
    transfers = CreditTransferService(db=db, audit=audit, clock=clock)
    return Services(
        settings=settings,
        gate=AuthorizationGate(db=db, credentials=credentials, hasher=hasher),
        accounts=AccountCreationService(
            db=db, transfers=transfers, hasher=hasher, audit=audit, clock=clock
        ),
        mutations=FieldMutationService(
            db=db,
            transfers=transfers,
            hasher=hasher,
            audit=audit,
            allow_partial_updates=settings.allow_partial_updates,
        ),
        profiles=ProfileService(db=db, hasher=hasher, audit=audit),
    )


def create_app(settings: Settings, db: Optional[BaseDBManager] = None) -> FastAPI:
    """
    Build the HTTP application. `db` overrides the store chosen from
    `settings`, which is how tests run the app on the in-memory store.
    """
    store = db if db is not None else _create_db_manager(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if isinstance(store, MongoDBManager):
            await store.ensure_indexes()
        yield

    app = FastAPI(title="Credit hierarchy", lifespan=lifespan)
    app.state.services = build_services(settings, store)
    app.include_router(router)

    @app.exception_handler(AuthFailure)
    async def auth_failure_handler(request: Request, exc: AuthFailure) -> RedirectResponse:
        response = RedirectResponse(settings.login_path, status_code=status.HTTP_303_SEE_OTHER)
        response.delete_cookie(settings.cookie_name)
        return response

    @app.exception_handler(AccountNotFound)
    async def not_found_handler(request: Request, exc: AccountNotFound) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": exc.message})

    @app.exception_handler(BusinessRuleFailure)
    async def business_rule_handler(request: Request, exc: BusinessRuleFailure) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST, content={"error": exc.message}
        )

    @app.exception_handler(TransactionFailure)
    async def transaction_failure_handler(
        request: Request, exc: TransactionFailure
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )

    return app


def main() -> None:
    settings = load_settings()
    configure_logging(settings)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
