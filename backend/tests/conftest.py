"""Shared test fixtures for the ESG scoring service test suite."""

import importlib
import os

# Settings and the app's globals are built at import time
os.environ.setdefault("ESG_SCORING_DATABASE_URL", "sqlite://")
os.environ.setdefault("ESG_SCORING_KAFKA_ENABLED", "false")
os.environ.setdefault("ESG_SCORING_RETRY_DELAY_SECONDS", "0")

import pytest
from fastapi.testclient import TestClient

from services.esg_scoring.database import Base, DatabaseManager
from services.esg_scoring.models import OrganizationCreate, ParameterCreate
from services.esg_scoring.parameter_manager import ParameterManager
from services.esg_scoring.score_manager import ScoreManager

# The package re-exports the FastAPI instance as ``app``, shadowing the module name
app_module = importlib.import_module("services.esg_scoring.app")


# ── Sample data ──────────────────────────────────────────────────────────────

SAMPLE_PARAMETERS = [
    {
        "parameter_name": "renewable_energy_percentage",
        "category": "environmental",
        "current_value": "50",
        "target_value": "62",
        "impact_weight": "1.0",
    },
    {
        "parameter_name": "water_efficiency",
        "category": "environmental",
        "current_value": "7",
        "impact_weight": "1.0",
    },
    {
        "parameter_name": "employee_safety_training",
        "category": "social",
        "current_value": "80",
        "target_value": "90",
        "impact_weight": "2.0",
    },
    {
        "parameter_name": "board_diversity_ratio",
        "category": "governance",
        "current_value": "40",
        "impact_weight": "1.0",
    },
]


# ── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def sample_parameters():
    return [dict(row) for row in SAMPLE_PARAMETERS]


@pytest.fixture
def db_manager() -> DatabaseManager:
    """Fresh in-memory database per test"""
    manager = DatabaseManager(database_url="sqlite://")
    manager.create_tables()
    return manager


@pytest.fixture
def parameter_manager(db_manager) -> ParameterManager:
    return ParameterManager(db_manager)


@pytest.fixture
def score_manager(db_manager, parameter_manager) -> ScoreManager:
    return ScoreManager(db_manager, parameter_manager, retry_attempts=3, retry_delay_seconds=0)


@pytest.fixture
def organization(parameter_manager):
    return parameter_manager.create_organization(
        OrganizationCreate(name="Acme Renewables", industry="Energy", size=250)
    )


@pytest.fixture
def seeded_organization(parameter_manager, organization, sample_parameters):
    for row in sample_parameters:
        parameter_manager.create_parameter(ParameterCreate(organization_id=organization.id, **row))
    return organization


@pytest.fixture
def app_globals():
    return app_module


@pytest.fixture
def client():
    """TestClient over the service app with its tables reset for each test"""
    engine = app_module.db_manager.engine
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with TestClient(app_module.app) as test_client:
        yield test_client
    Base.metadata.drop_all(bind=engine)
