"""Custom exceptions for the ESG reporting system."""

from typing import Optional


class ESGReportingException(Exception):
    """
    Base exception for the ESG reporting system.

    Attributes:
        message: Human-readable description of the error.
        error_code: Machine-readable code identifying the error type.
        status_code: Suggested HTTP status code when translating to an HTTP response.
    """
    error_code: str = "unknown_error"
    status_code: int = 500

    def __init__(self, message: Optional[str] = None):
        # Use the class docstring as a default message if none provided
        default_msg = self.__class__.__doc__.strip().splitlines()[0] if self.__class__.__doc__ else ""
        self.message = message or default_msg
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class KafkaConnectionException(ESGReportingException):
    "Raised when Kafka connection fails."
    error_code = "kafka_connection_error"
    status_code = 503


class DatabaseConnectionException(ESGReportingException):
    "Raised when database connection fails."
    error_code = "database_connection_error"
    status_code = 503


class OrganizationNotFoundException(ESGReportingException):
    "Raised when an organization is not found."
    error_code = "organization_not_found"
    status_code = 404


class ParameterNotFoundException(ESGReportingException):
    "Raised when an ESG parameter is not found."
    error_code = "parameter_not_found"
    status_code = 404


class InvalidParameterException(ESGReportingException):
    "Raised when a parameter value, weight or category is invalid."
    error_code = "validation_error"
    status_code = 400

    def __init__(self, message: Optional[str] = None, parameter_name: Optional[str] = None,
                 field: Optional[str] = None):
        self.parameter_name = parameter_name
        self.field = field
        super().__init__(message)


class ScoringException(ESGReportingException):
    "Raised when scoring calculation fails."
    error_code = "scoring_error"
    status_code = 500


# Public API
__all__ = [
    "ESGReportingException",
    "KafkaConnectionException",
    "DatabaseConnectionException",
    "OrganizationNotFoundException",
    "ParameterNotFoundException",
    "InvalidParameterException",
    "ScoringException",
]
