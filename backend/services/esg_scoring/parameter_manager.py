from decimal import Decimal
from typing import List, Optional, Union
import logging

from shared.models.exceptions import (
    OrganizationNotFoundException, ParameterNotFoundException
)
from .database import DatabaseManager, ESGParameterRecord
from .models import (
    ESGCategory, OrganizationCreate, OrganizationResponse,
    ParameterCreate, ParameterUpdate, ParameterResponse
)
from .rules import RuleBook

logger = logging.getLogger(__name__)


class ParameterManager:
    """Write-side service for organizations and their tracked ESG parameters"""

    def __init__(self, db_manager: DatabaseManager, rule_book: Optional[RuleBook] = None):
        self.db_manager = db_manager
        self.rule_book = rule_book or RuleBook()

    # Organizations

    def create_organization(self, organization: OrganizationCreate) -> OrganizationResponse:
        record = self.db_manager.create_organization(organization.model_dump())
        return OrganizationResponse.model_validate(record)

    def get_organization(self, organization_id: int) -> OrganizationResponse:
        record = self.db_manager.get_organization(organization_id)
        if not record:
            raise OrganizationNotFoundException(f"Organization {organization_id} not found")
        return OrganizationResponse.model_validate(record)

    def get_all_organizations(self) -> List[OrganizationResponse]:
        return [OrganizationResponse.model_validate(o) for o in self.db_manager.get_all_organizations()]

    # Parameters

    def get_parameters(self, organization_id: int,
                       category: Optional[Union[str, ESGCategory]] = None) -> List[ParameterResponse]:
        self.get_organization(organization_id)
        category_value = ESGCategory.parse(category).value if category else None
        records = self.db_manager.get_parameters(organization_id, category_value)
        return [self._to_response(r) for r in records]

    def get_parameter_records(self, organization_id: int) -> List[ESGParameterRecord]:
        self.get_organization(organization_id)
        return self.db_manager.get_parameters(organization_id)

    def get_parameter(self, parameter_id: int) -> ESGParameterRecord:
        record = self.db_manager.get_parameter(parameter_id)
        if not record:
            raise ParameterNotFoundException(f"Parameter {parameter_id} not found")
        return record

    def create_parameter(self, parameter: ParameterCreate) -> ParameterResponse:
        """Create a tracked parameter after its organization has been checked"""
        self.get_organization(parameter.organization_id)
        self._check_weight(parameter.parameter_name, parameter.impact_weight)
        self._check_rule(parameter.parameter_name)

        data = parameter.model_dump()
        data["category"] = parameter.category.value
        record = self.db_manager.create_parameter(data)
        return self._to_response(record)

    def update_parameter(self, parameter_id: int, update: ParameterUpdate) -> ParameterResponse:
        existing = self.get_parameter(parameter_id)

        update_data = update.model_dump(exclude_unset=True)
        if update_data.get("impact_weight") is not None:
            self._check_weight(existing.parameter_name, update_data["impact_weight"])

        record = self.db_manager.update_parameter(parameter_id, update_data)
        if not record:
            raise ParameterNotFoundException(f"Parameter {parameter_id} not found")
        return self._to_response(record)

    def delete_parameter(self, parameter_id: int) -> None:
        if not self.db_manager.delete_parameter(parameter_id):
            raise ParameterNotFoundException(f"Parameter {parameter_id} not found")

    def _check_weight(self, parameter_name: str, weight: Decimal):
        if weight == 0:
            logger.warning(
                f"Parameter '{parameter_name}' has impact weight 0 and will not contribute to its pillar score"
            )

    def _check_rule(self, parameter_name: str):
        if not self.rule_book.is_known(parameter_name):
            logger.warning(
                f"Parameter '{parameter_name}' has no explicit scoring rule; the default rule will apply"
            )

    def _to_response(self, record: ESGParameterRecord) -> ParameterResponse:
        return ParameterResponse.model_validate(record)
