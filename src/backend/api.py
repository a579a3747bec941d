"""
FastAPI Backend for the preventive health engine
Timeline ingestion, parameter history and versioned risk assessments
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.core.assessment_engine import AssessmentEngine, AssessmentReport
from src.core.config import config, setup_logging
from src.core.errors import HealthEngineError, NotFoundError
from src.core.profile import Gender, UserProfile
from src.core.timeline.models import DataPoint, Event, EventType, Medication, TestResult

setup_logging(config)
logger = logging.getLogger(__name__)

app = FastAPI(title="Preventive Health Intelligence API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api_config['allowed_origins'],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global thread pool executor, engine and registered profiles
executor: Optional[ThreadPoolExecutor] = None
engine: Optional[AssessmentEngine] = None
profiles: Dict[str, UserProfile] = {}


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    guidelines_loaded: int = 0


class ProfileRequest(BaseModel):
    """Demographics used to resolve guidelines"""
    birth_date: date
    gender: str
    risk_factors: List[str] = Field(default_factory=list)


class LabResultIn(BaseModel):
    test_name: str
    value: float
    unit: str = ""
    date: date
    source_id: str
    test_type: Optional[str] = None


class MedicationIn(BaseModel):
    name: str
    date: date
    source_id: str
    dosage: str = ""


class IngestRequest(BaseModel):
    """Records produced by the extraction service"""
    results: List[LabResultIn] = Field(default_factory=list)
    medications: List[MedicationIn] = Field(default_factory=list)


class EventIn(BaseModel):
    event_type: str  # lab_test, prescription or follow_up_due
    date: date
    source_id: str
    test_type: Optional[str] = None
    description: str = ""
    issued_on: Optional[date] = None


class AssessmentRequest(BaseModel):
    as_of: Optional[date] = None


@app.on_event("startup")
async def startup_event():
    """Initialize on startup"""
    global executor, engine
    logger.info("Starting Preventive Health API...")

    max_workers = config.api_config['max_workers']
    executor = ThreadPoolExecutor(max_workers=max_workers)
    logger.info("Thread pool ready (%d workers)", max_workers)

    engine = AssessmentEngine(config)
    engine.initialize()
    profiles.clear()
    logger.info("Preventive Health API ready")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    global executor
    if executor:
        executor.shutdown(wait=False)
    logger.info("Preventive Health API shutdown")


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(HealthEngineError)
async def engine_error_handler(request: Request, exc: HealthEngineError):
    logger.error("Request %s failed: %s", request.url.path, exc)
    return JSONResponse(status_code=422, content={"error": str(exc)})


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    loaded = len(engine.guideline_store.guidelines) if engine and engine.is_initialized else 0
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now().isoformat(),
        guidelines_loaded=loaded,
    )


@app.post("/users/{user_id}/timeline", status_code=201)
async def create_timeline(user_id: str, request: ProfileRequest):
    """Register a user's demographics and create an empty timeline"""
    try:
        profile = UserProfile(
            user_id=user_id,
            birth_date=request.birth_date,
            gender=Gender.parse(request.gender),
            risk_factors=frozenset(request.risk_factors),
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    profiles[user_id] = profile
    engine.timeline_store.create_timeline(user_id)
    return {
        "user_id": user_id,
        "timeline_version": engine.timeline_store.version(user_id),
        "risk_factors": sorted(profile.risk_factors),
    }


@app.post("/users/{user_id}/test-results")
async def ingest_records(user_id: str, request: IngestRequest):
    """Add extracted test results and medications to the timeline"""
    _require_profile(user_id)
    results = [TestResult(**r.model_dump()) for r in request.results]
    medications = [Medication(**m.model_dump()) for m in request.medications]
    summary = engine.timeline_store.ingest(user_id, results, medications)
    return {
        "user_id": user_id,
        "inserted_points": summary.inserted_points,
        "duplicate_points": summary.duplicate_points,
        "revised_points": summary.revised_points,
        "conflicts": [
            {
                "parameter": c.parameter,
                "date": c.on.isoformat(),
                "values": list(c.values),
                "preferred_value": c.preferred_value,
            }
            for c in summary.conflicts
        ],
        "inserted_events": summary.inserted_events,
        "duplicate_events": summary.duplicate_events,
        "errors": summary.errors,
        "timeline_version": engine.timeline_store.version(user_id),
    }


@app.post("/users/{user_id}/events")
async def add_event(user_id: str, request: EventIn):
    """Add a single timeline event, e.g. a requested follow-up"""
    _require_profile(user_id)
    try:
        event = Event(
            user_id=user_id,
            event_type=EventType(request.event_type.lower()),
            date=request.date,
            source_id=request.source_id,
            test_type=request.test_type,
            description=request.description,
            issued_on=request.issued_on,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    inserted = engine.timeline_store.add_event(event)
    return {"user_id": user_id, "inserted": inserted}


@app.get("/users/{user_id}/history/{parameter}")
async def get_history(user_id: str, parameter: str):
    """Stored values for one parameter, oldest first"""
    try:
        points = engine.timeline_store.get_history(user_id, parameter)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {
        "user_id": user_id,
        "parameter": points[0].parameter_name if points else parameter,
        "points": [format_data_point(p) for p in points],
    }


@app.post("/users/{user_id}/assessments", status_code=201)
async def run_assessment(user_id: str, request: Optional[AssessmentRequest] = None):
    """Run and publish a new assessment version"""
    profile = _require_profile(user_id)
    as_of = request.as_of if request else None
    if as_of is not None and as_of < profile.birth_date:
        raise HTTPException(
            status_code=422,
            detail=f"Assessment date {as_of.isoformat()} precedes birth date "
                   f"{profile.birth_date.isoformat()}",
        )

    loop = asyncio.get_running_loop()
    report = await loop.run_in_executor(executor, engine.assess, profile, as_of)
    logger.info(
        "Assessment %s v%d: %s", user_id, report.version, report.overall_risk.severity.value
    )
    return format_report(report)


@app.get("/users/{user_id}/assessments")
async def list_assessments(user_id: str):
    """Published assessment versions, oldest first"""
    _require_profile(user_id)
    return {
        "user_id": user_id,
        "versions": [
            {
                "version": r.version,
                "assessed_at": r.assessed_at.isoformat(),
                "risk_score": r.overall_risk.risk_score,
                "severity": r.overall_risk.severity.value,
            }
            for r in engine.repository.history(user_id)
        ],
    }


@app.get("/users/{user_id}/assessments/{version}")
async def get_assessment(user_id: str, version: int):
    return format_report(engine.repository.get(user_id, version))


def _require_profile(user_id: str) -> UserProfile:
    profile = profiles.get(user_id)
    if profile is None:
        raise NotFoundError(f"No timeline for user {user_id!r}")
    return profile


def format_data_point(point: DataPoint) -> Dict[str, Any]:
    return {
        "parameter": point.parameter_name,
        "date": point.date.isoformat(),
        "value": point.value,
        "unit": point.unit,
        "source_id": point.source_id,
    }


def format_report(report: AssessmentReport) -> Dict[str, Any]:
    """Format an AssessmentReport to a JSON-serializable dictionary"""
    overall = report.overall_risk
    return jsonable_encoder({
        "user_id": report.user_id,
        "version": report.version,
        "as_of": report.as_of,
        "assessed_at": report.assessed_at,
        "risk_score": overall.risk_score,
        "severity": overall.severity.value,
        "factor_scores": dict(overall.factor_scores),
        "review_required": overall.review_required,
        "signals": [
            {
                "signal_id": s.signal_id,
                "kind": s.kind.value,
                "severity": s.severity,
                "subject": s.subject,
                "title": s.title,
                "guideline_ids": [r.guideline_id for r in s.evidence.guideline_refs],
            }
            for s in overall.signals
        ],
        "trends": [
            {
                "parameter": t.parameter,
                "direction": t.direction.value,
                "significance": t.significance.value,
                "annual_rate": t.annual_rate,
                "confidence": t.confidence,
                "rapid_change": t.rapid_change,
                "point_count": t.point_count,
            }
            for t in report.trends
        ],
        "gaps": [
            {
                "test_type": g.test_type,
                "test_name": g.test_name,
                "days_overdue": g.days_overdue,
                "priority": g.priority.value,
                "priority_score": g.priority_score,
                "last_test_date": g.last_test_date,
            }
            for g in report.gaps
        ],
        "recommendations": [
            {
                "recommendation_id": r.recommendation_id,
                "test_type": r.test_type,
                "test_name": r.test_name,
                "reason": r.reason,
                "frequency": r.frequency,
                "priority": r.priority.value,
                "related_risk_signal_ids": list(r.related_risk_signal_ids),
                "guideline_id": r.guideline_ref.guideline_id if r.guideline_ref else None,
            }
            for r in report.recommendations
        ],
        "explanations": [
            {
                "subject_id": e.subject_id,
                "subject_kind": e.subject_kind,
                "summary": e.summary,
                "detailed_reasoning": e.detailed_reasoning,
                "action_guidance": e.action_guidance,
                "citations": [r.citation for r in e.citations],
                "disclaimer": e.disclaimer,
                "visualization_ref": e.visualization_ref,
                "reading_grade": e.reading_grade,
            }
            for e in report.explanations
        ],
        "notes": [
            {"kind": n.kind.value, "message": n.message, "subject": n.subject}
            for n in report.notes
        ],
        "metadata": report.metadata,
    })


if __name__ == "__main__":
    import uvicorn
    host, port = config.api_config['host'], config.api_config['port']
    logger.info("Starting Preventive Health API Server on http://%s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_level="info")
