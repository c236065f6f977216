"""FastAPI application for product passport verification."""

import logging
from datetime import datetime
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.config import Settings, configure_logging
from src.data.repository import AuditSink, JsonPassportRepository, JsonlAuditLog
from src.exceptions import ConfigurationError, VerificationError
from src.jobs.scheduled_verification import create_orchestrator
from src.models.passport import AuditEvent, VerificationStatus
from src.services.regulation_checkers import REGULATION_NAMES
from src.services.narrative_verifier import summarize_gaps
from src.services.rule_evaluator import RuleEvaluator
from src.services.verification_orchestrator import VerificationOrchestrator


load_dotenv()

configure_logging()
logger = logging.getLogger("api")

app = FastAPI(
    title="DPP Verification API",
    description="Digital Product Passport compliance verification API",
    version="0.1.0",
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    """Report misconfiguration as a server error with its message."""
    logger.error("Configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"success": False, "detail": str(exc)})


evaluator = RuleEvaluator()


# Response Models
class GapOutput(BaseModel):
    """A single compliance gap."""
    regulation: str
    issue: str


class ComplianceCheckResponse(BaseModel):
    """Result of an on-demand compliance check."""
    product_id: str
    profile_name: str
    status: str
    is_compliant: bool
    summary: str
    gaps: list[GapOutput]


class CronRunResponse(BaseModel):
    """Result of a scheduled verification run."""
    success: bool
    processed: int
    passed: int
    failed: int


# Dependencies
@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()


def get_repository(settings: Settings = Depends(get_settings)) -> JsonPassportRepository:
    return JsonPassportRepository(settings.data_dir)


def get_audit_sink(settings: Settings = Depends(get_settings)) -> AuditSink:
    return JsonlAuditLog(settings.audit_log_file)


def get_orchestrator(settings: Settings = Depends(get_settings)) -> VerificationOrchestrator:
    return create_orchestrator(settings)


def require_cron_secret(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Check the scheduler's bearer token."""
    if not settings.cron_secret:
        logger.warning("Cron call rejected: CRON_SECRET is not configured")
        raise HTTPException(status_code=503, detail="Cron secret not configured")
    if authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


# Endpoints
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "DPP Verification API",
        "version": "0.1.0",
        "description": "Digital Product Passport compliance verification API",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


@app.api_route(
    "/api/v1/cron",
    methods=["GET", "POST"],
    response_model=CronRunResponse,
    dependencies=[Depends(require_cron_secret)],
)
def run_scheduled_verification(
    orchestrator: VerificationOrchestrator = Depends(get_orchestrator),
):
    """Verify all pending products (called by the external scheduler).

    Audit events for a run are written as products are decided. If the final
    commit fails, those events remain while the products stay pending.
    """
    try:
        summary = orchestrator.run()
    except VerificationError as e:
        logger.exception("Cron verification run failed")
        raise HTTPException(status_code=500, detail=str(e))
    return CronRunResponse(success=True, **summary.to_dict())


@app.post("/api/v1/compliance/check/{product_id}", response_model=ComplianceCheckResponse)
def check_product_compliance(
    product_id: str,
    repository: JsonPassportRepository = Depends(get_repository),
    audit_sink: AuditSink = Depends(get_audit_sink),
):
    """Run the deterministic rules for one product without changing its state."""
    product = repository.get_product(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")

    profile = next(
        (p for p in repository.list_profiles() if p.category == product.category),
        None,
    )
    if profile is None:
        raise HTTPException(
            status_code=400,
            detail=f"No compliance profile configured for category '{product.category}'",
        )

    result = evaluator.evaluate(product, profile)
    status = VerificationStatus.VERIFIED if result.is_compliant else VerificationStatus.FAILED

    try:
        audit_sink.append(AuditEvent(
            action="api.compliance.check",
            entity_id=product.id,
            user_id="api",
            details={"result": result.to_dict(), "profile": profile.id},
        ))
    except Exception:
        logger.exception("Failed to append audit event for product %s", product.id)

    return ComplianceCheckResponse(
        product_id=product.id,
        profile_name=profile.name,
        status=status.value,
        is_compliant=result.is_compliant,
        summary=summarize_gaps(product.name, profile.name, result.gaps),
        gaps=[GapOutput(**g.to_dict()) for g in result.gaps],
    )


# Reference data endpoints
@app.get("/api/reference/regulations")
async def get_regulations():
    """Get regulations with a registered checker."""
    return [{"name": name, "key": name.lower()} for name in REGULATION_NAMES]


@app.get("/api/reference/verification-statuses")
async def get_verification_statuses():
    """Get list of verification statuses."""
    return [{"value": s.value, "name": s.name} for s in VerificationStatus]


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
