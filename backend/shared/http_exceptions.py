from fastapi import HTTPException
from fastapi import status

from shared.models.exceptions import ESGReportingException, InvalidParameterException


def create_http_exception(exc: ESGReportingException) -> HTTPException:
    """
    Convert an ESGReportingException into an HTTPException.

    Uses each exception's `status_code` and `error_code` attributes for the response.

    Example:
        try:
            parameter = manager.get_parameter(parameter_id)
        except ESGReportingException as e:
            raise create_http_exception(e)
    """
    detail = {
        "error": exc.error_code,
        "message": str(exc)
    }
    # Validation failures point at the offending parameter and field
    if isinstance(exc, InvalidParameterException):
        if exc.parameter_name:
            detail["parameter"] = exc.parameter_name
        if exc.field:
            detail["field"] = exc.field

    status_code = getattr(exc, "status_code", status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail=detail
    )


__all__ = [
    "create_http_exception",
]
