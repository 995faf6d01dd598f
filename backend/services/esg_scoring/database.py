from datetime import datetime
from typing import Optional, Dict, Any, List
from sqlalchemy import (
    Column, String, DateTime, JSON, Integer, Numeric, Text, ForeignKey, create_engine, text
)
from sqlalchemy.orm import declarative_base, sessionmaker
import logging

from shared.models.exceptions import DatabaseConnectionException
from .config import settings
from .models import ESGScoreResult

logger = logging.getLogger(__name__)
Base = declarative_base()


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(Text, nullable=False)
    industry = Column(Text)
    size = Column(Integer)  # number of employees
    headquarters = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ESGParameterRecord(Base):
    __tablename__ = "esg_parameters"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    category = Column(String(20), nullable=False, index=True)  # environmental, social, governance
    parameter_name = Column(Text, nullable=False)
    current_value = Column(Numeric(15, 4), nullable=False)
    target_value = Column(Numeric(15, 4))
    unit = Column(Text)
    impact_weight = Column(Numeric(10, 4), nullable=False, default=1.0)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    updated_by = Column(String)


class ESGScoreRecord(Base):
    __tablename__ = "esg_scores"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)

    # Scores
    overall_score = Column(Numeric(5, 2), nullable=False)
    environmental_score = Column(Numeric(5, 2), nullable=False)
    social_score = Column(Numeric(5, 2), nullable=False)
    governance_score = Column(Numeric(5, 2), nullable=False)
    methodology = Column(Text, nullable=False, default="MSCI-style weighted")
    rating = Column(String(4))

    benchmark_data = Column(JSON)
    score_metrics = Column(JSON)

    calculation_date = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)


class DatabaseManager:
    def __init__(self, database_url: Optional[str] = None, engine_config: Optional[Dict[str, Any]] = None):
        try:
            self.database_url = database_url or settings.database_url
            self.engine = create_engine(
                self.database_url,
                **(engine_config if engine_config is not None else settings.engine_config_for(self.database_url))
            )
            self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, expire_on_commit=False)
            logger.info("Database connection initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database connection: {e}")
            raise DatabaseConnectionException(f"Failed to connect to database: {e}")

    def create_tables(self):
        """Create database tables"""
        try:
            Base.metadata.create_all(bind=self.engine)
            logger.info("Database tables created successfully")
        except Exception as e:
            logger.error(f"Failed to create tables: {e}")
            raise DatabaseConnectionException(f"Failed to create tables: {e}")

    def get_session(self):
        """Get database session"""
        try:
            return self.SessionLocal()
        except Exception as e:
            logger.error(f"Failed to create database session: {e}")
            raise DatabaseConnectionException(f"Failed to create database session: {e}")

    def health_check(self) -> bool:
        """Check database health"""
        try:
            with self.get_session() as db:
                db.execute(text("SELECT 1"))
                return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    # Organization methods
    def create_organization(self, organization_data: Dict[str, Any]) -> Organization:
        db = self.get_session()
        try:
            organization = Organization(**organization_data)
            db.add(organization)
            db.commit()
            db.refresh(organization)
            logger.info(f"Created organization {organization.id}")
            return organization
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to create organization: {e}")
            raise DatabaseConnectionException(f"Failed to create organization: {e}")
        finally:
            db.close()

    def get_organization(self, organization_id: int) -> Optional[Organization]:
        db = self.get_session()
        try:
            return db.query(Organization).filter(Organization.id == organization_id).first()
        except Exception as e:
            logger.error(f"Failed to retrieve organization {organization_id}: {e}")
            raise DatabaseConnectionException(f"Failed to retrieve organization: {e}")
        finally:
            db.close()

    def get_all_organizations(self) -> List[Organization]:
        db = self.get_session()
        try:
            return db.query(Organization).order_by(Organization.id).all()
        except Exception as e:
            logger.error(f"Failed to retrieve organizations: {e}")
            raise DatabaseConnectionException(f"Failed to retrieve organizations: {e}")
        finally:
            db.close()

    # Parameter methods
    def get_parameters(self, organization_id: int, category: Optional[str] = None) -> List[ESGParameterRecord]:
        """Get an organization's parameters ordered by category and name"""
        db = self.get_session()
        try:
            query = db.query(ESGParameterRecord).filter(ESGParameterRecord.organization_id == organization_id)
            if category:
                query = query.filter(ESGParameterRecord.category == category)
            return query.order_by(ESGParameterRecord.category, ESGParameterRecord.parameter_name).all()
        except Exception as e:
            logger.error(f"Failed to retrieve parameters for organization {organization_id}: {e}")
            raise DatabaseConnectionException(f"Failed to retrieve parameters: {e}")
        finally:
            db.close()

    def get_parameter(self, parameter_id: int) -> Optional[ESGParameterRecord]:
        db = self.get_session()
        try:
            return db.query(ESGParameterRecord).filter(ESGParameterRecord.id == parameter_id).first()
        except Exception as e:
            logger.error(f"Failed to retrieve parameter {parameter_id}: {e}")
            raise DatabaseConnectionException(f"Failed to retrieve parameter: {e}")
        finally:
            db.close()

    def create_parameter(self, parameter_data: Dict[str, Any]) -> ESGParameterRecord:
        db = self.get_session()
        try:
            parameter = ESGParameterRecord(**parameter_data)
            db.add(parameter)
            db.commit()
            db.refresh(parameter)
            logger.info(
                f"Created parameter {parameter.id} ({parameter.parameter_name}) "
                f"for organization {parameter.organization_id}"
            )
            return parameter
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to create parameter: {e}")
            raise DatabaseConnectionException(f"Failed to create parameter: {e}")
        finally:
            db.close()

    def update_parameter(self, parameter_id: int, update_data: Dict[str, Any]) -> Optional[ESGParameterRecord]:
        db = self.get_session()
        try:
            parameter = db.query(ESGParameterRecord).filter(ESGParameterRecord.id == parameter_id).first()

            if not parameter:
                return None

            for field, value in update_data.items():
                if hasattr(parameter, field):
                    setattr(parameter, field, value)

            parameter.last_updated = datetime.utcnow()
            db.commit()
            db.refresh(parameter)
            logger.info(f"Updated parameter {parameter_id}")
            return parameter
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to update parameter {parameter_id}: {e}")
            raise DatabaseConnectionException(f"Failed to update parameter: {e}")
        finally:
            db.close()

    def delete_parameter(self, parameter_id: int) -> bool:
        db = self.get_session()
        try:
            parameter = db.query(ESGParameterRecord).filter(ESGParameterRecord.id == parameter_id).first()

            if not parameter:
                return False

            db.delete(parameter)
            db.commit()
            logger.info(f"Deleted parameter {parameter_id}")
            return True
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to delete parameter {parameter_id}: {e}")
            raise DatabaseConnectionException(f"Failed to delete parameter: {e}")
        finally:
            db.close()

    # Score methods
    def save_score(self, organization_id: int, result: ESGScoreResult) -> ESGScoreRecord:
        """Insert a score snapshot; existing snapshots are never modified"""
        db = self.get_session()
        try:
            score = ESGScoreRecord(
                organization_id=organization_id,
                overall_score=result.overall_score,
                environmental_score=result.environmental_score,
                social_score=result.social_score,
                governance_score=result.governance_score,
                methodology=result.methodology,
                rating=result.rating,
                benchmark_data=result.benchmark_data,
                score_metrics=result.score_metrics,
                calculation_date=result.calculation_date,
            )
            db.add(score)
            db.commit()
            db.refresh(score)
            logger.info(f"Saved score snapshot {score.id} for organization {organization_id}")
            return score
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to save score for organization {organization_id}: {e}")
            raise DatabaseConnectionException(f"Failed to save score: {e}")
        finally:
            db.close()

    def get_latest_score(self, organization_id: int) -> Optional[ESGScoreRecord]:
        history = self.get_score_history(organization_id, limit=1)
        return history[0] if history else None

    def get_score_history(self, organization_id: int, limit: int = 10) -> List[ESGScoreRecord]:
        """Most recent snapshots first"""
        db = self.get_session()
        try:
            return db.query(ESGScoreRecord).filter(
                ESGScoreRecord.organization_id == organization_id
            ).order_by(
                ESGScoreRecord.calculation_date.desc(), ESGScoreRecord.id.desc()
            ).limit(limit).all()
        except Exception as e:
            logger.error(f"Failed to retrieve score history for organization {organization_id}: {e}")
            raise DatabaseConnectionException(f"Failed to retrieve score history: {e}")
        finally:
            db.close()
