"""FastAPI application factory for the reference email-verification issuer."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from evp.core.settings import IssuerSettings
from evp.issuance.routes import router as issuance_router

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ["Content-Digest", "Signature", "Signature-Input", "Signature-Key"]


def create_app() -> FastAPI:
    """Build the issuer app: metadata, JWKS and issuance endpoints."""
    settings = IssuerSettings()

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        if not settings.signing_jwk:
            logger.warning("No signing key configured; issuance will fail for %s", settings.issuer)
        yield

    app = FastAPI(
        title="Email Verification Issuer",
        version="0.1.0",
        lifespan=lifespan,
    )

    origins = settings.get_cors_origin_list()
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST"],
            allow_headers=["Content-Type", *SIGNATURE_HEADERS],
        )

    app.include_router(issuance_router)
    return app
