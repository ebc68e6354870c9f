"""FastAPI server for Spendlog."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional, Dict, Any, List

from fastapi import FastAPI, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from spendlog import (
    CostTracker,
    ConflictError,
    NotFoundError,
    Settings,
    StorageError,
    ValidationError,
    configure_logging,
    create_storage,
    get_settings,
    get_team,
)
from spendlog.validation import require_fields


logger = logging.getLogger("spendlog.api")


# Untyped: coercion and error messages come from spendlog.validation
class AddCostRequest(BaseModel):
    description: Any = None
    category: Any = None
    userid: Any = None
    sum: Any = None
    year: Any = None
    month: Any = None
    day: Any = None
    time: Any = None
    created_at: Any = None


class RegisterUserRequest(BaseModel):
    id: Any = None
    first_name: Any = None
    last_name: Any = None
    birthday: Any = None
    marital_status: Any = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _tracker(request: Request) -> CostTracker:
    return request.app.state.tracker


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the API. Storage is opened at startup and closed at shutdown."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.log_level)
        storage = create_storage(settings)
        app.state.tracker = CostTracker(storage=storage, report_strategy=settings.report_strategy)
        logger.info(
            f"Spendlog API started (storage={settings.storage}, "
            f"reports={settings.report_strategy})"
        )
        try:
            yield
        finally:
            storage.close()
            logger.info("Spendlog API stopped")

    app = FastAPI(title="Spendlog API", version="1.0.0", lifespan=lifespan)

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        logger.warning(f"Rejected {request.method} {request.url.path}: {exc}")
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "body"
            message = f"Invalid value for '{field}': {first.get('msg', 'invalid input')}"
        else:
            message = "Invalid request"
        logger.warning(f"Rejected {request.method} {request.url.path}: {message}")
        return _error(400, message)

    @app.exception_handler(ConflictError)
    async def _conflict_error(request: Request, exc: ConflictError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(NotFoundError)
    async def _not_found_error(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(StorageError)
    async def _storage_error(request: Request, exc: StorageError) -> JSONResponse:
        logger.error(f"Storage failure on {request.method} {request.url.path}", exc_info=exc)
        return _error(500, "Internal server error")

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unexpected error on {request.method} {request.url.path}", exc_info=exc)
        return _error(500, "Internal server error")

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/add")
    def add_cost(req: AddCostRequest, tracker: CostTracker = Depends(_tracker)) -> Dict[str, Any]:
        entry = tracker.record_cost(
            description=req.description,
            category=req.category,
            userid=req.userid,
            sum=req.sum,
            year=req.year,
            month=req.month,
            day=req.day,
            time=req.time,
            created_at=req.created_at,
        )
        return entry.to_document()

    @app.get("/api/report")
    def report(
        id: Optional[str] = None,
        year: Optional[str] = None,
        month: Optional[str] = None,
        tracker: CostTracker = Depends(_tracker),
    ) -> Dict[str, Any]:
        require_fields(id=id, year=year, month=month)
        return tracker.get_monthly_report(id, year, month).to_dict()

    @app.get("/api/users/{user_id}")
    def get_user(user_id: str, tracker: CostTracker = Depends(_tracker)) -> Dict[str, Any]:
        return tracker.get_user_total(user_id).to_dict()

    @app.post("/api/users", status_code=201)
    def register_user(req: RegisterUserRequest, tracker: CostTracker = Depends(_tracker)) -> Dict[str, Any]:
        user = tracker.register_user(
            id=req.id,
            first_name=req.first_name,
            last_name=req.last_name,
            birthday=req.birthday,
            marital_status=req.marital_status,
        )
        return user.to_document()

    @app.get("/api/about")
    def about() -> List[Dict[str, str]]:
        return get_team()

    return app


app = create_app()
