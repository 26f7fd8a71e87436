from __future__ import annotations

import logging
import sqlite3
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from pocketguard import database
from pocketguard.auth import GoogleVerifier, TokenIssuer, extract_bearer_token, google_sign_in, login, register
from pocketguard.config import load_config
from pocketguard.core.aggregator import CategoryBreakdown
from pocketguard.core.models import Milestone, Transaction
from pocketguard.core.monthly import group_by_month
from pocketguard.dashboard import DEFAULT_MAX_USERS, DashboardStore
from pocketguard.errors import (
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    PocketGuardError,
    ValidationError,
)
from pocketguard.events import EXPENSES, MILESTONES, ChangeEvent, ChangeNotifier
from pocketguard.settings import SettingsService
from pocketguard.utils import filter_transactions_by_month

logger = logging.getLogger(__name__)

ERROR_STATUS = (
    (ValidationError, 400),
    (AuthenticationError, 401),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
)


@dataclass
class AppState:
    db_path: str
    issuer: TokenIssuer
    notifier: ChangeNotifier
    settings: SettingsService
    dashboard: DashboardStore
    categories: List[str] = field(default_factory=list)
    google_client_id: Optional[str] = None
    google_verifier: Optional[GoogleVerifier] = None


class RegisterPayload(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class CredentialsPayload(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class GooglePayload(BaseModel):
    credential: Optional[str] = None


class ExpensePayload(BaseModel):
    name: Any = None
    amount: Any = None
    date: Any = None
    category: Any = None


class MilestonePayload(BaseModel):
    task: Optional[str] = None
    reward: Optional[str] = None
    completed: Optional[bool] = None


class SettingsPayload(BaseModel):
    budget_limit: Optional[float] = None
    initial_balance: Optional[float] = None


def _state(request: Request) -> AppState:
    return request.app.state.pocketguard


def current_user_id(request: Request, authorization: Optional[str] = Header(None)) -> int:
    claims = _state(request).issuer.authenticate(authorization)
    return int(claims["userId"])


def transaction_payload(tx: Transaction) -> Dict[str, object]:
    return {
        "id": tx.id,
        "description": tx.description,
        "amount": tx.amount,
        "category": tx.category,
        "date": tx.date.isoformat(),
    }


def milestone_payload(milestone: Milestone) -> Dict[str, object]:
    return {
        "id": milestone.id,
        "userId": milestone.user_id,
        "task": milestone.task,
        "reward": milestone.reward,
        "completed": milestone.completed,
    }


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value}") from exc


# ---------------------------------------------------------------------------
# health & auth

health_router = APIRouter(prefix="/api")


@health_router.get("/health")
def health(request: Request):
    try:
        database.init_db(_state(request).db_path)
        connected = True
    except sqlite3.Error:
        logger.exception("Database health check failed")
        connected = False
    return {
        "status": "OK",
        "message": "Server is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": "Connected" if connected else "Not connected",
    }


auth_router = APIRouter(prefix="/api/auth")


@auth_router.post("/register", status_code=201)
def register_user(payload: RegisterPayload, request: Request):
    state = _state(request)
    return register(state.db_path, state.issuer, payload.name, payload.email, payload.password)


@auth_router.post("/login")
def login_user(payload: CredentialsPayload, request: Request):
    state = _state(request)
    return login(state.db_path, state.issuer, payload.email, payload.password)


@auth_router.post("/refresh-token")
def refresh_token(request: Request, authorization: Optional[str] = Header(None)):
    token = extract_bearer_token(authorization)
    if token is None:
        raise AuthenticationError("No token provided")
    return {"token": _state(request).issuer.refresh(token)}


@auth_router.post("/google")
def google_login(payload: GooglePayload, request: Request):
    state = _state(request)
    return google_sign_in(
        state.db_path,
        state.issuer,
        payload.credential,
        state.google_client_id,
        verifier=state.google_verifier,
    )


# ---------------------------------------------------------------------------
# expenses

expense_router = APIRouter(prefix="/api")


@expense_router.get("/transactions")
def get_transactions(
    request: Request,
    user_id: int = Depends(current_user_id),
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    category: Optional[str] = None,
):
    txs = database.list_expenses(
        _state(request).db_path,
        user_id,
        start_date=_parse_date(start_date),
        end_date=_parse_date(end_date),
        category=category,
    )
    return [transaction_payload(tx) for tx in txs]


@expense_router.post("/transactions", status_code=201)
def create_transaction(payload: ExpensePayload, request: Request, user_id: int = Depends(current_user_id)):
    state = _state(request)
    tx = database.add_expense(
        state.db_path, user_id, payload.name, payload.amount, payload.category, payload.date
    )
    state.notifier.publish(ChangeEvent(EXPENSES, user_id))
    return {
        "id": int(tx.id),
        "userId": user_id,
        "name": tx.description,
        "amount": tx.amount,
        "category": tx.category,
        "date": tx.date.isoformat(),
    }


@expense_router.delete("/transactions/{expense_id}")
def delete_transaction(expense_id: int, request: Request, user_id: int = Depends(current_user_id)):
    state = _state(request)
    if not database.delete_expense(state.db_path, user_id, expense_id):
        raise NotFoundError("Expense not found")
    state.notifier.publish(ChangeEvent(EXPENSES, user_id))
    return {"message": "Expense deleted successfully"}


# ---------------------------------------------------------------------------
# milestones

milestone_router = APIRouter(prefix="/api/milestones")


def _require_self(path_user_id: int, user_id: int) -> None:
    if path_user_id != user_id:
        raise PermissionDeniedError("Cannot access another user's milestones")


@milestone_router.get("/{owner_id}")
def get_milestones(owner_id: int, request: Request, user_id: int = Depends(current_user_id)):
    _require_self(owner_id, user_id)
    return [milestone_payload(m) for m in database.list_milestones(_state(request).db_path, user_id)]


@milestone_router.post("/{owner_id}", status_code=201)
def create_milestone(
    owner_id: int,
    payload: MilestonePayload,
    request: Request,
    user_id: int = Depends(current_user_id),
):
    _require_self(owner_id, user_id)
    state = _state(request)
    milestone = database.create_milestone(state.db_path, user_id, payload.task, payload.reward or "")
    state.notifier.publish(ChangeEvent(MILESTONES, user_id))
    return milestone_payload(milestone)


@milestone_router.patch("/{milestone_id}")
def mark_milestone_completed(milestone_id: int, request: Request, user_id: int = Depends(current_user_id)):
    state = _state(request)
    milestone = database.complete_milestone(state.db_path, user_id, milestone_id)
    state.notifier.publish(ChangeEvent(MILESTONES, user_id))
    return milestone_payload(milestone)


@milestone_router.put("/{milestone_id}")
def edit_milestone(
    milestone_id: int,
    payload: MilestonePayload,
    request: Request,
    user_id: int = Depends(current_user_id),
):
    state = _state(request)
    milestone = database.update_milestone(
        state.db_path,
        user_id,
        milestone_id,
        task=payload.task,
        reward=payload.reward,
        completed=payload.completed,
    )
    state.notifier.publish(ChangeEvent(MILESTONES, user_id))
    return milestone_payload(milestone)


@milestone_router.delete("/{milestone_id}", status_code=204)
def delete_milestone(milestone_id: int, request: Request, user_id: int = Depends(current_user_id)):
    state = _state(request)
    if not database.delete_milestone(state.db_path, user_id, milestone_id):
        raise NotFoundError(f"Milestone {milestone_id} not found")
    state.notifier.publish(ChangeEvent(MILESTONES, user_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# settings, dashboard and summaries

insight_router = APIRouter(prefix="/api")


@insight_router.get("/categories")
def get_categories(request: Request):
    """Categories offered when recording an expense; any other name is accepted too."""
    return _state(request).categories


@insight_router.get("/settings")
def get_settings(request: Request, user_id: int = Depends(current_user_id)):
    return _state(request).settings.get(user_id).as_dict()


@insight_router.put("/settings")
def update_settings(payload: SettingsPayload, request: Request, user_id: int = Depends(current_user_id)):
    updated = _state(request).settings.update(
        user_id,
        budget_limit=payload.budget_limit,
        initial_balance=payload.initial_balance,
    )
    return updated.as_dict()


@insight_router.get("/dashboard")
def get_dashboard(
    request: Request,
    hidden: List[str] = Query(default=[]),
    user_id: int = Depends(current_user_id),
):
    return _state(request).dashboard.snapshot(user_id, hidden=hidden)


@insight_router.get("/summary/category")
def summary_by_category(
    request: Request,
    month: Optional[str] = None,
    user_id: int = Depends(current_user_id),
):
    txs = _state(request).dashboard.inputs(user_id).transactions
    if month:
        txs = filter_transactions_by_month(txs, month)
    breakdown = CategoryBreakdown.from_transactions(txs)
    return {
        "total": breakdown.total,
        "categories": [
            {"category": row.category, "amount": row.amount, "percentage": row.percentage}
            for row in breakdown.category_totals()
        ],
    }


@insight_router.get("/summary/month")
def summary_by_month(request: Request, user_id: int = Depends(current_user_id)):
    inputs = _state(request).dashboard.inputs(user_id)
    return [
        {"label": label, "amount": amount}
        for label, amount in group_by_month(inputs.transactions).items()
    ]


# ---------------------------------------------------------------------------


def _error_response(exc: PocketGuardError) -> JSONResponse:
    status = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status == 500:
        logger.error("Unhandled application error: %s", exc)
    return JSONResponse({"error": str(exc)}, status_code=status)


def create_app(
    config: Optional[Dict[str, object]] = None,
    notifier: Optional[ChangeNotifier] = None,
    google_verifier: Optional[GoogleVerifier] = None,
) -> FastAPI:
    """Build the PocketGuard API bound to the database named in ``config``."""
    config = config or load_config()
    db_path = str(config["db_path"])
    database.init_db(db_path)

    notifier = notifier or ChangeNotifier()
    settings = SettingsService(db_path, notifier)
    state = AppState(
        db_path=db_path,
        issuer=TokenIssuer(secret=str(config["jwt_secret"]), ttl_days=int(config["token_ttl_days"])),
        notifier=notifier,
        settings=settings,
        dashboard=DashboardStore(
            db_path, settings, notifier, max_users=int(config.get("dashboard_cache_size") or DEFAULT_MAX_USERS)
        ),
        categories=[str(c) for c in config.get("categories") or []],
        google_client_id=config.get("google_client_id"),
        google_verifier=google_verifier,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        state.dashboard.close()

    app = FastAPI(title="PocketGuard API", lifespan=lifespan)
    app.state.pocketguard = state
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.get("allowed_origins") or []),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(PocketGuardError)
    async def handle_pocketguard_error(request: Request, exc: PocketGuardError):
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        messages = [err.get("msg", "invalid value") for err in exc.errors()]
        return JSONResponse({"error": "; ".join(messages) or "Invalid request"}, status_code=400)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    for router in (health_router, auth_router, expense_router, milestone_router, insight_router):
        app.include_router(router)

    logger.info("PocketGuard API ready (db: %s)", db_path)
    return app
