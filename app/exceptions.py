"""
Domain exceptions raised by the service layer and the handlers that
translate them into HTTP responses.

Services never import FastAPI; routers stay free of try/except for the
common not-found / conflict cases because ``register_exception_handlers``
wires the translation once on the application.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class ResourceNotFoundError(Exception):
    """A lookup by *field* = *value* found no *resource*."""

    def __init__(self, resource: str, field: str, value) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} not found with {field} : '{value}'")


class ConflictError(Exception):
    """A write would break a uniqueness rule (username, email, ...)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


async def _not_found_handler(request: Request, exc: ResourceNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={
            "detail": str(exc),
            "resource": exc.resource,
            "field": exc.field,
            "value": str(exc.value),
        },
    )


async def _conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": exc.message})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ResourceNotFoundError, _not_found_handler)
    app.add_exception_handler(ConflictError, _conflict_handler)
