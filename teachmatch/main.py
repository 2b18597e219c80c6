"""Main FastAPI application for TeachMatch."""

import secrets
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from teachmatch.config import settings
from teachmatch.errors import TeachMatchError
from teachmatch.escalation.engine import EscalationEngine, RequestCriteria, RequestTransition
from teachmatch.escalation.scheduler import EscalationScheduler
from teachmatch.models.database import SessionFactory, create_tables, get_db_session
from teachmatch.models.teaching_request import RequestStatus
from teachmatch.schemas import (
    AutomatedRequestIn,
    CancelIn,
    DirectRequestIn,
    MarkReadIn,
    RescheduleProposalIn,
    RescheduleResponseIn,
    RespondIn,
    ReviewIn,
    SchoolProfileIn,
    TeacherProfileIn,
)
from teachmatch.services.monitoring import MonitoringService
from teachmatch.services.notifications import NotificationService
from teachmatch.services.profiles import ProfileService, TeacherSearch
from teachmatch.services.requests import TeachingRequestService
from teachmatch.services.reschedule import RescheduleService
from teachmatch.services.reviews import ReviewService
from teachmatch.utils.clock import utc_now
from teachmatch.utils.logging import get_logger, log_api_request, setup_logging
from teachmatch.utils.security import user_id_from_token

# Setup logging
setup_logging()
logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Every service the API needs, wired to one session factory."""

    engine: EscalationEngine
    requests: TeachingRequestService
    reschedules: RescheduleService
    reviews: ReviewService
    profiles: ProfileService
    notifications: NotificationService
    monitoring: MonitoringService
    scheduler: EscalationScheduler

    @classmethod
    def build(cls, session_factory: SessionFactory = get_db_session) -> "ServiceContainer":
        notifications = NotificationService(session_factory)
        engine = EscalationEngine(session_factory)
        return cls(
            engine=engine,
            requests=TeachingRequestService(session_factory),
            reschedules=RescheduleService(notifications, session_factory),
            reviews=ReviewService(session_factory),
            profiles=ProfileService(session_factory),
            notifications=notifications,
            monitoring=MonitoringService(session_factory),
            scheduler=EscalationScheduler(engine, notifications),
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting TeachMatch", environment=settings.ENVIRONMENT)

    await create_tables()
    logger.info("Database tables created/verified")

    services = ServiceContainer.build()
    app.state.services = services

    if settings.ENABLE_SCHEDULER:
        await services.scheduler.start()

    logger.info("TeachMatch started successfully")

    yield

    logger.info("Shutting down TeachMatch")
    await services.scheduler.stop()
    logger.info("TeachMatch shutdown completed")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="Matches schools with substitute teachers and escalates unanswered requests",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.DEBUG else settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.monotonic()
    response = await call_next(request)
    log_api_request(
        logger,
        request.method,
        request.url.path,
        response.status_code,
        round((time.monotonic() - started) * 1000, 2)
    )
    return response


# Dependencies
bearer_scheme = HTTPBearer(auto_error=False)


def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> uuid.UUID:
    """The caller's user id, taken from the bearer token's ``sub`` claim."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    user_id = user_id_from_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def verify_cron_secret(x_cron_secret: Optional[str] = Header(default=None)) -> None:
    if settings.CRON_SECRET and not secrets.compare_digest(x_cron_secret or "", settings.CRON_SECRET):
        raise HTTPException(status_code=401, detail="Unauthorized")


# Health check endpoints
@app.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": utc_now().isoformat(),
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT
    }


@app.get("/health/detailed")
async def detailed_health_check(services: ServiceContainer = Depends(get_services)):
    """Detailed health check with component status."""
    health_status = await services.monitoring.get_system_health()
    if health_status["overall_status"] == "critical":
        return JSONResponse(status_code=503, content=health_status)
    return health_status


# Escalation endpoints
@app.post("/api/automated-requests")
async def create_automated_request(
    body: AutomatedRequestIn,
    user_id: uuid.UUID = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    """Create a request that escalates through ranked candidates."""
    request = await services.engine.create(
        user_id,
        RequestCriteria(
            subject=body.subject,
            schedule=body.schedule.as_dict(),
            grade_level=body.grade_level,
            minimum_rating=body.minimum_rating,
        )
    )
    await services.notifications.dispatch(
        RequestTransition.from_request(request, RequestStatus.PENDING, actor_id=user_id)
    )
    return {"request": request.to_dict()}


@app.api_route("/api/check-timeouts", methods=["GET", "POST"], dependencies=[Depends(verify_cron_secret)])
async def check_timeouts(services: ServiceContainer = Depends(get_services)):
    """Run one escalation sweep. Meant for an external cron."""
    result = await services.scheduler.trigger_sweep()
    return {
        **result.to_dict(),
        "timestamp": utc_now().isoformat()
    }


@app.get("/api/escalation/status")
async def get_escalation_status(
    user_id: uuid.UUID = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    """Get escalation scheduler status."""
    return services.scheduler.get_job_status()


# Teaching request endpoints
@app.post("/api/teaching-requests")
async def create_teaching_request(
    body: DirectRequestIn,
    user_id: uuid.UUID = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    request, transition = await services.requests.create_direct(
        user_id,
        body.teacher_id,
        body.subject,
        body.schedule.as_dict()
    )
    await services.notifications.dispatch(transition)
    return {"request": request.to_dict()}


@app.get("/api/teaching-requests")
async def list_teaching_requests(
    status: Optional[RequestStatus] = None,
    limit: int = 50,
    user_id: uuid.UUID = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    requests = await services.requests.list_for_user(user_id, status=status, limit=limit)
    return {"requests": [r.to_dict() for r in requests], "count": len(requests)}


@app.patch("/api/teaching-requests/{request_id}")
async def respond_to_teaching_request(
    request_id: uuid.UUID,
    body: RespondIn,
    user_id: uuid.UUID = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    """The assigned teacher accepts or rejects."""
    transition = await services.requests.respond(
        request_id,
        user_id,
        accept=body.status == "accepted",
        reason=body.reason
    )
    await services.notifications.dispatch(transition)
    return {"request_id": str(request_id), "status": transition.to_status.value}


@app.post("/api/teaching-requests/{request_id}/cancel")
async def cancel_teaching_request(
    request_id: uuid.UUID,
    body: CancelIn,
    user_id: uuid.UUID = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    transition = await services.requests.cancel(request_id, user_id, reason=body.reason)
    await services.notifications.dispatch(transition)
    return {"message": "Class cancelled successfully", "request_id": str(request_id)}


@app.post("/api/teaching-requests/{request_id}/reschedule")
async def propose_reschedule(
    request_id: uuid.UUID,
    body: RescheduleProposalIn,
    user_id: uuid.UUID = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    proposal = await services.reschedules.propose(
        request_id,
        user_id,
        body.new_schedule.as_dict(),
        reason=body.reason
    )
    return {"reschedule": proposal.to_dict()}


@app.patch("/api/teaching-requests/{request_id}/reschedule")
async def respond_to_reschedule(
    request_id: uuid.UUID,
    body: RescheduleResponseIn,
    user_id: uuid.UUID = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    proposal = await services.reschedules.respond(
        request_id,
        body.reschedule_id,
        user_id,
        accept=body.status == "accepted"
    )
    return {"reschedule": proposal.to_dict()}


# Review endpoints
@app.post("/api/reviews")
async def submit_review(
    body: ReviewIn,
    user_id: uuid.UUID = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    review = await services.reviews.submit(user_id, body.teaching_request_id, body.rating, body.comment)
    return {"review": review.to_dict()}


# Notification endpoints
@app.get("/api/notifications")
async def list_notifications(
    limit: int = 20,
    offset: int = 0,
    user_id: uuid.UUID = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    return await services.notifications.list_for_user(user_id, limit=limit, offset=offset)


@app.patch("/api/notifications")
async def mark_notifications_read(
    body: MarkReadIn,
    user_id: uuid.UUID = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    updated = await services.notifications.mark_read(
        user_id,
        notification_ids=body.notification_ids,
        mark_all=body.mark_all_read
    )
    return {"success": True, "updated": updated}


# Profile endpoints
@app.get("/api/teachers/search")
async def search_teachers(
    subject: Optional[str] = None,
    minExperience: int = 0,
    maxExperience: int = 100,
    qualifications: Optional[str] = None,
    grade_level: Optional[int] = None,
    min_rating: Optional[float] = None,
    user_id: uuid.UUID = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    criteria = TeacherSearch(
        subject=subject.strip() if subject else None,
        min_experience=minExperience,
        max_experience=maxExperience,
        qualifications=[q.strip() for q in (qualifications or "").split(",") if q.strip()],
        grade_level=grade_level,
        min_rating=min_rating,
    )
    teachers = await services.profiles.search_teachers(criteria)
    return {"teachers": [t.to_dict() for t in teachers], "count": len(teachers)}


@app.put("/api/teachers/me")
async def update_teacher_profile(
    body: TeacherProfileIn,
    user_id: uuid.UUID = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    teacher = await services.profiles.upsert_teacher(user_id, body.model_dump(exclude_none=True))
    return {"teacher": teacher.to_dict()}


@app.get("/api/teachers/{teacher_id}")
async def get_teacher(
    teacher_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    """Teacher profile with the most recent reviews."""
    teacher = await services.profiles.get_teacher(teacher_id)
    reviews = await services.reviews.recent_for_teacher(teacher_id)
    return {
        "teacher": teacher.to_dict(),
        "reviews": [r.to_dict() for r in reviews]
    }


@app.put("/api/schools/me")
async def update_school_profile(
    body: SchoolProfileIn,
    user_id: uuid.UUID = Depends(get_current_user),
    services: ServiceContainer = Depends(get_services)
):
    school = await services.profiles.upsert_school(user_id, body.model_dump(exclude_none=True))
    return {"school": school.to_dict()}


# Error handlers
def _error_response(request: Request, status_code: int, error) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "timestamp": utc_now().isoformat(),
            "path": str(request.url.path)
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with structured logging."""
    logger.warning(
        "HTTP exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path
    )
    return _error_response(request, exc.status_code, exc.detail)


@app.exception_handler(TeachMatchError)
async def teachmatch_exception_handler(request: Request, exc: TeachMatchError):
    """Handle domain errors with structured logging."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Request failed",
        error_type=type(exc).__name__,
        status_code=exc.status_code,
        detail=exc.message,
        path=request.url.path,
        **exc.context
    )
    return _error_response(request, exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning("Invalid request body", path=request.url.path, errors=str(exc.errors()))
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    )
    return _error_response(request, 400, details or "Invalid request")


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions with structured logging."""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        path=request.url.path,
        exc_info=True
    )
    return _error_response(request, 500, "Internal server error")


# Run application
if __name__ == "__main__":
    uvicorn.run(
        "teachmatch.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info"
    )
