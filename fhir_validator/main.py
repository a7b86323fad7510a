"""
FastAPI application entrypoint.

Run locally:  uvicorn fhir_validator.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from fhir_validator.api.routes import get_registry, router
from fhir_validator.config import settings
from fhir_validator.models.database import Base, engine

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(levelname)s | %(name)s | %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    get_registry()
    yield


app = FastAPI(
    title="FHIR Profile Validation API",
    description=(
        "Validates FHIR resources against profile constraint sets locally, "
        "or through a FHIR server's $validate operation."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router, prefix="/api/v1")
