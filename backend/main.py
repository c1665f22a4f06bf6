"""
HomeHorizon - FastAPI Backend
=============================
Thin API around the projection engine.

Responsibilities kept here, outside the engine:
1. Plan records, the cached last projection and history (in memory)
2. Per-plan serialization of recalculations and optimistic version checks
3. Converting engine-relative years to calendar years
"""

import asyncio
import logging
import os
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from plan_constants import (
    DEFAULT_DEBT_SERVICE_RATIO,
    DEFAULT_HORIZON_YEARS,
    get_defaults_summary,
)
from models import (
    CamelModel,
    PlanSnapshot,
    ProjectionResult,
    QuickCheckIntake,
    SectionUpdate,
    SimulationParameters,
)
from projection_engine import ProjectionEngine, trajectory_to_dataframe
from recalculation import RecalculationOrchestrator
from snapshot_assembler import SnapshotValidationError, build_snapshot, to_calendar_year

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


# =============================================================================
# CONFIGURATION
# =============================================================================

def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_simulation_parameters() -> SimulationParameters:
    """Engine parameters from the environment."""
    return SimulationParameters(
        horizon_years=int(os.getenv("PROJECTION_HORIZON_YEARS", DEFAULT_HORIZON_YEARS)),
        debt_service_ratio=float(os.getenv("DEBT_SERVICE_RATIO", DEFAULT_DEBT_SERVICE_RATIO)),
        family_support_recurring=_env_flag("FAMILY_SUPPORT_RECURRING"),
    )


simulation_params = load_simulation_parameters()
orchestrator = RecalculationOrchestrator(ProjectionEngine(simulation_params))


# =============================================================================
# APPLICATION SETUP
# =============================================================================

class PlanRecord(BaseModel):
    plan_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str
    plan_name: str = "My first home plan"
    snapshot: PlanSnapshot
    base_year: int = Field(description="Calendar year that relative years count from")
    version: int = 1
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# In-memory storage (replace with database in production)
plans_db: Dict[str, PlanRecord] = {}
reports_db: Dict[str, ProjectionResult] = {}
history_db: Dict[str, List[Dict[str, Any]]] = {}
plan_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("HomeHorizon starting up...")
    logger.info(
        f"Simulation: horizon={simulation_params.horizon_years}y, "
        f"debt_service_ratio={simulation_params.debt_service_ratio}, "
        f"family_support_recurring={simulation_params.family_support_recurring}"
    )
    yield
    logger.info("HomeHorizon shutting down...")


app = FastAPI(
    title="HomeHorizon",
    description="Earliest affordable home purchase year projections",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],  # React dev servers
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class SectionUpdateRequest(CamelModel):
    section: str
    data: Dict[str, Any] = Field(default_factory=dict)
    expected_version: Optional[int] = None


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_plan(plan_id: str) -> PlanRecord:
    """Get plan or raise 404."""
    if plan_id not in plans_db:
        raise HTTPException(status_code=404, detail=f"Plan {plan_id} not found")
    return plans_db[plan_id]


def current_year() -> int:
    return date.today().year


def delete_plan(plan_id: str):
    """Remove a plan and everything cached for it."""
    plans_db.pop(plan_id, None)
    reports_db.pop(plan_id, None)
    history_db.pop(plan_id, None)
    plan_locks.pop(plan_id, None)


def plan_summary(record: PlanRecord) -> Dict[str, Any]:
    report = reports_db.get(record.plan_id)
    earliest = report.earliest_purchase_year if report else None
    return {
        "planId": record.plan_id,
        "planName": record.plan_name,
        "version": record.version,
        "plan": record.snapshot.to_response(),
        "firstViableYear": to_calendar_year(earliest, record.base_year),
        "createdAt": record.created_at.isoformat(),
        "updatedAt": record.updated_at.isoformat(),
    }


def validation_error_response(errors) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"success": False, "errors": [e.to_response() for e in errors]},
    )


# =============================================================================
# API ENDPOINTS
# =============================================================================

@app.get("/")
async def root():
    """API health check."""
    return {
        "service": "HomeHorizon",
        "version": "1.0.0",
        "status": "healthy"
    }


@app.get("/api/health")
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "snapshot_assembler": "ready",
            "projection_engine": "ready",
            "storage": "in_memory"
        },
        "plans": len(plans_db)
    }


# --- PLAN ENDPOINTS ---

@app.post("/api/plans", status_code=201)
async def create_plan(intake: QuickCheckIntake, x_user_id: str = Header(default="anonymous")):
    """
    Create a plan from QuickCheck answers.

    An existing plan of the same user is replaced together with its cached
    projection and history.
    """
    year = current_year()
    try:
        snapshot = build_snapshot(intake, year)
    except SnapshotValidationError as exc:
        logger.warning(f"Invalid data for plan creation: {exc}")
        return validation_error_response(exc.errors)

    for existing in [p for p in plans_db.values() if p.user_id == x_user_id]:
        async with plan_locks[existing.plan_id]:
            delete_plan(existing.plan_id)
        logger.info(f"Replaced existing plan {existing.plan_id} for user {x_user_id}")

    record = PlanRecord(user_id=x_user_id, snapshot=snapshot, base_year=year)
    projection = await run_in_threadpool(orchestrator.start_plan, snapshot)

    plans_db[record.plan_id] = record
    reports_db[record.plan_id] = projection
    history_db[record.plan_id] = []

    logger.info(f"Created plan {record.plan_id} for user {x_user_id}")

    return {
        "planId": record.plan_id,
        "version": record.version,
        "firstViableYear": to_calendar_year(projection.earliest_purchase_year, year),
        "projection": projection.to_response(),
    }


@app.get("/api/plans")
async def list_plans(x_user_id: str = Header(default="anonymous")):
    """All plans of the calling user, newest first."""
    plans = sorted(
        (p for p in plans_db.values() if p.user_id == x_user_id),
        key=lambda p: p.created_at,
        reverse=True,
    )
    return [plan_summary(p) for p in plans]


@app.get("/api/plans/{plan_id}")
async def get_plan_endpoint(plan_id: str):
    """Get a plan with its cached projection."""
    record = get_plan(plan_id)
    response = plan_summary(record)
    report = reports_db.get(plan_id)
    response["projection"] = report.to_response() if report else None
    return response


@app.patch("/api/plans/{plan_id}/section")
async def update_plan_section(plan_id: str, request: SectionUpdateRequest):
    """
    Apply one onboarding section and recalculate.

    Requests for the same plan are serialized. A request carrying a stale
    expectedVersion is rejected with 409 instead of overwriting newer data.
    """
    get_plan(plan_id)

    try:
        update = SectionUpdate(section=request.section, data=request.data)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown section {request.section}")

    async with plan_locks[plan_id]:
        record = get_plan(plan_id)
        if request.expected_version is not None and request.expected_version != record.version:
            raise HTTPException(
                status_code=409,
                detail=f"Plan {plan_id} is at version {record.version}, not {request.expected_version}"
            )

        prior = reports_db.get(plan_id)
        outcome = await run_in_threadpool(orchestrator.recalculate, prior, record.snapshot, update)

        if plans_db.get(plan_id) is not record:
            raise HTTPException(status_code=409, detail=f"Plan {plan_id} was replaced during recalculation")

        if not outcome.success:
            return JSONResponse(status_code=400, content=outcome.to_response())

        now = datetime.now(timezone.utc)
        record = record.model_copy(update={
            "snapshot": outcome.plan,
            "version": record.version + 1,
            "updated_at": now,
        })
        plans_db[plan_id] = record
        reports_db[plan_id] = outcome.projection
        history_db.setdefault(plan_id, []).append({
            "version": record.version,
            "section": update.section.value,
            "outcome": outcome.outcome.value,
            "earliestPurchaseYear": outcome.earliest_purchase_year,
            "previousPurchaseYear": outcome.previous_purchase_year,
            "hasWorsened": outcome.has_worsened,
            "recordedAt": now.isoformat(),
        })

    logger.info(
        f"[{plan_id}] {update.section.value} recalculated: {outcome.outcome.value} "
        f"({outcome.previous_purchase_year} -> {outcome.earliest_purchase_year})"
    )

    response = outcome.to_response()
    response["version"] = record.version
    response["firstViableYear"] = to_calendar_year(outcome.earliest_purchase_year, record.base_year)
    return response


@app.get("/api/plans/{plan_id}/history")
async def get_plan_history(plan_id: str):
    """Recalculation history of a plan, oldest first."""
    get_plan(plan_id)
    return {"planId": plan_id, "history": history_db.get(plan_id, [])}


@app.get("/api/plans/{plan_id}/trajectory.csv")
async def export_trajectory(plan_id: str):
    """Cached trajectory as CSV for charting tools."""
    get_plan(plan_id)
    report = reports_db.get(plan_id)
    if report is None:
        raise HTTPException(status_code=404, detail=f"No projection cached for plan {plan_id}")

    frame = trajectory_to_dataframe(report)
    return Response(
        content=frame.to_csv(index=False),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{plan_id}-trajectory.csv"'},
    )


# --- REFERENCE DATA ---

@app.get("/api/reference/defaults")
async def get_defaults():
    """Default assumptions and the simulation parameters in effect."""
    summary = get_defaults_summary()
    summary["simulation"].update(simulation_params.to_response())
    return summary


# --- ERROR HANDLERS ---

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    logger.warning(f"Invalid request to {request.url.path}: {errors}")
    return JSONResponse(status_code=400, content={"success": False, "errors": errors})


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "detail": str(exc) if os.getenv("DEBUG") else "An error occurred"
        }
    )


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
