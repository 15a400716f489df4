# fishcast/main.py
from typing import Any, Dict, Optional
from fastapi import FastAPI, Depends, HTTPException, Request, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from fishcast.config import get_settings
from fishcast.db.session import get_db, init_db
from fishcast.exceptions import InvalidInputError, UpstreamUnavailableError
from fishcast.models.models import AlertHistory, AlertProfileRecord, AlertRun
from fishcast.schemas.alerts import parse_profile
from fishcast.schemas.forecast import Forecast, ForecastRequest
from fishcast.services.aggregation import build_forecast
from fishcast.services.conditions import OpenMeteoConditionSource
from fishcast.services.notifications import LoggingNotificationSink
from fishcast.services.pipeline import run_alert_batch
from fishcast.services.store import SqlProfileStore, to_utc
from fishcast.services.tides import TideState


def history_to_dict(entry: AlertHistory) -> dict:
    return {
        "id": entry.id,
        "profile_id": entry.profile_id,
        "profile_name": entry.profile_name,
        "triggered_at": to_utc(entry.triggered_at),
        "matched_triggers": entry.matched_triggers or [],
        "fishing_score": entry.fishing_score,
        "detail": entry.detail,
        "snapshot": entry.snapshot,
    }


# ------ Security (einfacher Header-Key) ------
async def require_key(request: Request):
    key = request.headers.get("x-api-key")
    if key != get_settings().api_key:
        raise HTTPException(status_code=401, detail="Unauthorized")


# ------ Collaborators (in Tests per dependency_overrides ersetzbar) ------
_store = SqlProfileStore()
_source = OpenMeteoConditionSource()
_sink = LoggingNotificationSink()


def get_store():
    return _store


def get_source():
    return _source


def get_sink():
    return _sink


# ------ App ------
settings = get_settings()

app = FastAPI(title="Fishcast")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InvalidInputError)
async def invalid_input_handler(request: Request, exc: InvalidInputError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(UpstreamUnavailableError)
async def upstream_handler(request: Request, exc: UpstreamUnavailableError):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.on_event("startup")
async def on_startup():
    # Tabellen erzeugen (nur beim ersten Start relevant)
    await init_db()


@app.get("/")
def root():
    return {"message": "Fishcast backend is running"}


@app.get("/health")
async def health(db: AsyncSession = Depends(get_db)):
    total_profiles = await db.execute(select(func.count()).select_from(AlertProfileRecord))
    total_history = await db.execute(select(func.count()).select_from(AlertHistory))
    last_run = await db.execute(
        select(AlertRun.started_at, AlertRun.alerts_fired).order_by(AlertRun.started_at.desc()).limit(1)
    )
    last_run_row = last_run.first()

    return {
        "status": "ok",
        "profiles": total_profiles.scalar() or 0,
        "alerts_fired": total_history.scalar() or 0,
        "last_run": {
            "started_at": to_utc(last_run_row[0]) if last_run_row else None,
            "alerts_fired": last_run_row[1] if last_run_row else None,
        },
    }


# ------ Endpoints ------
@app.post("/forecast", response_model=Forecast)
async def forecast(payload: ForecastRequest):
    """Scores the supplied samples and ranks the days of the horizon."""
    tide = None
    if payload.tide_readings or payload.tide_events:
        tide = TideState(payload.tide_readings, payload.tide_events)
    return build_forecast(
        payload.samples,
        payload.days,
        tide=tide,
        species=payload.species,
        window_size=payload.window_size,
    )


@app.post("/alerts/profiles", dependencies=[Depends(require_key)], status_code=201)
async def create_profile(payload: Dict[str, Any], store: SqlProfileStore = Depends(get_store)):
    profile = parse_profile(payload)
    await store.save_profile(profile)
    return profile.model_dump(mode="json")


@app.post("/alerts/evaluate", dependencies=[Depends(require_key)])
async def evaluate_alerts(
    store=Depends(get_store),
    source=Depends(get_source),
    sink=Depends(get_sink),
):
    """Runs one alert batch over all active profiles."""
    result = await run_alert_batch(store, source, sink)
    summary = result["summary"]
    return {
        "run_log_id": result["run_log_id"],
        "notified": result["notified"],
        **summary.model_dump(mode="json", exclude={"snapshots", "last_fired"}),
    }


@app.get("/alerts/history", dependencies=[Depends(require_key)])
async def alert_history(
    limit: int = Query(default=settings.history_limit, ge=1, le=1000, description="Anzahl Einträge"),
    profile_id: Optional[str] = Query(None, description="Optionaler Profilfilter"),
    store: SqlProfileStore = Depends(get_store),
):
    entries = await store.history(limit=limit, profile_id=profile_id)
    return {"items": [history_to_dict(e) for e in entries]}
