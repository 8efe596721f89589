from fastapi import HTTPException, Request

from spend_categorizer.errors import (
    AdapterError,
    CategorizerError,
    PersistenceError,
    ReadOnlyRuleError,
    RuleNotFoundError,
    ValidationError,
)
from spend_categorizer.manager import CategorizerService


def get_service(request: Request) -> CategorizerService:
    service = getattr(request.app.state, "service", None)
    if not service:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return service


def http_error(exc: CategorizerError) -> HTTPException:
    if isinstance(exc, RuleNotFoundError):
        status_code = 404
    elif isinstance(exc, ReadOnlyRuleError):
        status_code = 403
    elif isinstance(exc, ValidationError):
        status_code = 400
    elif isinstance(exc, AdapterError):
        status_code = 502
    elif isinstance(exc, PersistenceError):
        status_code = 503
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=str(exc))
