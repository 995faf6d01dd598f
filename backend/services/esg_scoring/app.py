import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional, Dict, Any, List

from fastapi import FastAPI, Request, status, Path, Query, Body
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from shared.logging_config import setup_logging
from shared.health import create_health_response
from shared.http_exceptions import create_http_exception
from shared.models.exceptions import ESGReportingException
from .models import (
    ESGCategory, OrganizationCreate, OrganizationResponse,
    ParameterCreate, ParameterUpdate, ParameterResponse, ParameterCommitResponse,
    ScoreResponse, ImpactResult, ImpactRequest, ImpactCurveRequest, ImpactPoint,
    StoredParameterImpactRequest, TargetImpactResult
)
from .database import DatabaseManager
from .rules import load_rule_book
from .scoring import ESGScoreAggregator
from .impact import ESGImpactEstimator
from .parameter_manager import ParameterManager
from .score_manager import ScoreManager
from .kafka_handler import ESGKafkaHandler
from .config import settings

# Setup logging
logger = setup_logging(settings.service_name, settings.log_level, settings.log_format)

# Global instances
db_manager = DatabaseManager()
rule_book = load_rule_book(settings.parameter_rules_path)
aggregator = ESGScoreAggregator(rule_book=rule_book, methodology=settings.methodology)
estimator = ESGImpactEstimator(rule_book=rule_book)
parameter_manager = ParameterManager(db_manager, rule_book)
score_manager = ScoreManager(
    db_manager,
    parameter_manager,
    aggregator=aggregator,
    estimator=estimator,
    retry_attempts=settings.retry_attempts,
    retry_delay_seconds=settings.retry_delay_seconds
)
kafka_handler = ESGKafkaHandler(score_manager)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("Starting ESG Scoring Service...")
    consumer_task = None

    try:
        db_manager.create_tables()

        if settings.kafka_enabled:
            await kafka_handler.start()
            consumer_task = asyncio.create_task(kafka_handler.consume_messages())
        else:
            logger.info("Kafka disabled; score events will not be consumed or published")

        logger.info("ESG Scoring Service started successfully")

        yield

    except Exception as e:
        logger.error(f"Failed to start ESG Scoring Service: {e}")
        raise
    finally:
        logger.info("Shutting down ESG Scoring Service...")
        if consumer_task:
            consumer_task.cancel()
            try:
                await consumer_task
            except asyncio.CancelledError:
                pass
        await kafka_handler.stop()
        logger.info("ESG Scoring Service shutdown complete")


app = FastAPI(
    title="ESG Scoring Service",
    description="Microservice for weighted ESG pillar scoring and parameter impact estimation",
    version=settings.version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


@app.exception_handler(ESGReportingException)
async def esg_exception_handler(request: Request, exc: ESGReportingException):
    """Map domain exceptions onto their HTTP status"""
    http_exc = create_http_exception(exc)
    if http_exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc}")
    else:
        logger.warning(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=http_exc.status_code,
        content={"detail": http_exc.detail, "type": type(exc).__name__}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "type": "InternalError"}
    )


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    additional_checks = {}

    if settings.kafka_enabled and settings.kafka_health_check_enabled:
        additional_checks["kafka_connected"] = kafka_handler.is_running()

    if settings.database_health_check_enabled:
        additional_checks["database_connected"] = db_manager.health_check()

    return create_health_response(settings.service_name, additional_checks, settings.version)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.service_name,
        "version": settings.version,
        "status": "running",
        "methodology": settings.methodology,
        "timestamp": datetime.utcnow().isoformat(),
        "features": [
            "esg_scoring",
            "impact_estimation",
            "score_history",
            "parameter_management"
        ]
    }


@app.get("/rules")
async def get_rules() -> Dict[str, Any]:
    """Normalization rules, impact multipliers, pillar weights and bleed-through shares in use"""
    return rule_book.describe()


# Organizations

@app.post("/organizations", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(organization: OrganizationCreate):
    return parameter_manager.create_organization(organization)


@app.get("/organizations", response_model=List[OrganizationResponse])
async def list_organizations():
    return parameter_manager.get_all_organizations()


@app.get("/organizations/{organization_id}", response_model=OrganizationResponse)
async def get_organization(organization_id: int = Path(..., description="Organization ID")):
    return parameter_manager.get_organization(organization_id)


# Parameters

@app.post("/esg-parameters/impact", response_model=ImpactResult)
async def estimate_parameter_impact(request: ImpactRequest):
    """Stateless what-if estimate for a single parameter change"""
    return estimator.estimate_impact(
        request.parameter_name,
        request.current_value,
        request.new_value,
        request.category,
        request.weight
    )


@app.post("/esg-parameters/impact-curve", response_model=List[ImpactPoint])
async def estimate_impact_curve(request: ImpactCurveRequest):
    """Impact estimates across an evenly spaced range of candidate values"""
    return estimator.impact_curve(
        request.parameter_name,
        request.current_value,
        request.category,
        weight=request.weight,
        lower=request.lower,
        upper=request.upper,
        steps=request.steps
    )


@app.get("/esg-parameters/{organization_id}", response_model=List[ParameterResponse])
async def get_parameters(
    organization_id: int = Path(..., description="Organization ID"),
    category: Optional[ESGCategory] = Query(None, description="Restrict to one pillar")
):
    return parameter_manager.get_parameters(organization_id, category)


@app.get("/esg-parameters/{organization_id}/target-impact", response_model=TargetImpactResult)
async def get_target_impact(organization_id: int = Path(..., description="Organization ID")):
    """Projected deltas if every parameter with a target reached it"""
    return score_manager.target_impact(organization_id)


@app.post("/esg-parameters", response_model=ParameterResponse, status_code=status.HTTP_201_CREATED)
async def create_parameter(parameter: ParameterCreate):
    return parameter_manager.create_parameter(parameter)


@app.put("/esg-parameters/{parameter_id}", response_model=ParameterCommitResponse)
async def update_parameter(
    parameter_id: int = Path(..., description="Parameter ID"),
    parameter_update: ParameterUpdate = Body(...)
):
    """Commit a parameter edit and persist the recomputed score"""
    parameter, score, result = score_manager.commit_parameter_change(parameter_id, parameter_update)
    await kafka_handler.publish_score_calculated(score, result)
    return ParameterCommitResponse(parameter=parameter, score=score)


@app.delete("/esg-parameters/{parameter_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_parameter(parameter_id: int = Path(..., description="Parameter ID")):
    parameter_manager.delete_parameter(parameter_id)


@app.post("/parameter-impact-analysis", response_model=ImpactResult)
async def analyze_parameter_impact(request: StoredParameterImpactRequest):
    """What-if estimate for a stored parameter; nothing is written"""
    return score_manager.preview_impact(request.organization_id, request.parameter_id, request.new_value)


# Scores

@app.get("/esg-scores/{organization_id}", response_model=ScoreResponse)
async def get_esg_score(organization_id: int = Path(..., description="Organization ID")):
    """Latest score snapshot, calculated on first request"""
    return score_manager.get_current_score(organization_id)


@app.post("/esg-scores/{organization_id}/calculate", response_model=ScoreResponse)
async def calculate_esg_score(organization_id: int = Path(..., description="Organization ID")):
    score, result = score_manager.recalculate(organization_id)
    await kafka_handler.publish_score_calculated(score, result)
    return score


@app.get("/esg-scores/{organization_id}/history", response_model=List[ScoreResponse])
async def get_score_history(
    organization_id: int = Path(..., description="Organization ID"),
    limit: int = Query(settings.default_history_limit, ge=1, description="Maximum snapshots to return")
):
    """Score snapshots, most recent first"""
    return score_manager.get_history(organization_id, min(limit, settings.max_history_limit))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        workers=settings.api_workers
    )
