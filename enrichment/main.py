"""
Entity Enrichment Service - FastAPI Application Entry Point

    uvicorn enrichment.main:app --host 0.0.0.0 --port 8010
"""
# Load environment variables from .env file first, before any imports
from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config.settings import settings
from enrichment.routes.entities import get_store, router as entities_router
from enrichment.routes.entity_rules import filters_router, patterns_router
from enrichment.routes.teams import projects_router, teams_router
from enrichment.services.person_entity import PersonStore

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the entity store on startup so schema errors surface early."""
    from enrichment.services.person_entity import get_person_store
    try:
        store = get_person_store()
        logger.info(f"Entity store ready at {store.db_path}")
    except Exception as e:
        logger.error(f"Failed to open entity store: {e}")
    yield


app = FastAPI(
    title="Entity Enrichment",
    description="Resolves email identities to deduplicated person records",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Convert validation errors to 400 with clear messages."""
    sanitized_errors = []
    for error in exc.errors():
        sanitized = dict(error)
        if "input" in sanitized and isinstance(sanitized["input"], bytes):
            sanitized["input"] = sanitized["input"].decode("utf-8", errors="replace")
        # ctx may carry exception objects that are not JSON serializable
        if "ctx" in sanitized:
            sanitized["ctx"] = {k: str(v) for k, v in sanitized["ctx"].items()}
        sanitized_errors.append(sanitized)
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "detail": sanitized_errors},
    )


# Static prefixes first: /api/entities/{person_id} would otherwise capture them
app.include_router(filters_router)
app.include_router(patterns_router)
app.include_router(entities_router)
app.include_router(teams_router)
app.include_router(projects_router)


@app.get("/health")
async def health_check(store: PersonStore = Depends(get_store)):
    """Health check endpoint that verifies the entity database is reachable."""
    checks = {}
    try:
        store.get_entity_stats("__health__")
        checks["database"] = True
    except Exception as e:
        logger.error(f"Health check database error: {e}")
        checks["database"] = False

    all_healthy = all(checks.values())

    return {
        "status": "healthy" if all_healthy else "degraded",
        "service": "entity-enrichment",
        "checks": checks,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
