"""
Shared API dependencies
"""
from fastapi import Request
from pydantic import ValidationError

from fileconv.core.errors import InvalidInput
from fileconv.models.conversion import ConversionOptions
from fileconv.services.conversion_service import ConversionService


def get_service(request: Request) -> ConversionService:
    """Conversion service created at application startup"""
    return request.app.state.conversion_service


def build_options(**values) -> ConversionOptions:
    """ConversionOptions from form fields; bad values are a 400, not a 422"""
    try:
        return ConversionOptions(**{key: value for key, value in values.items() if value is not None})
    except ValidationError as e:
        error = e.errors()[0]
        field = str(error["loc"][0]) if error.get("loc") else None
        raise InvalidInput(f"Invalid option {field}: {error['msg']}", field=field) from e
