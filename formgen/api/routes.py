"""
FastAPI routes for the formgen service.

Endpoints:
- POST /validate      : validate a data bag against rule strings
- POST /forms/submit  : build a form from a definition and submit data to it
- POST /forms/view    : build a form, optionally pre-populate it, return its view
- POST /csrf/token    : issue a CSRF token for a token id
- GET  /types         : list registered field types and aliases
- GET  /health        : health check
"""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from formgen.core.definition import build_form
from formgen.core.errors import ErrorList
from formgen.core.form import FormFactory
from formgen.core.security import CsrfTokenException, CsrfTokenManager
from formgen.validation import Validator

logger = logging.getLogger(__name__)

router = APIRouter()

# These will be injected by the app factory
_factory: FormFactory | None = None
_csrf_manager: CsrfTokenManager | None = None

# Definition, option, rule and type errors all derive from these two
_CONFIGURATION_ERRORS = (ValueError, LookupError)


def configure_routes(factory: FormFactory, csrf_manager: CsrfTokenManager | None = None):
    """Inject the form factory and CSRF manager into the routes module.

    Called by the app factory during startup.
    """
    global _factory, _csrf_manager
    _factory = factory
    _csrf_manager = csrf_manager if csrf_manager is not None else factory.csrf_manager


def _require_factory() -> FormFactory:
    if _factory is None:
        raise HTTPException(status_code=500, detail="Server not properly configured")
    return _factory


# --- Request Models ---


class ValidateRequest(BaseModel):
    """Request body for the /validate endpoint."""

    data: dict[str, Any] = Field(default_factory=dict)
    rules: dict[str, str | list[str]]
    messages: dict[str, str] | None = None
    attributes: dict[str, str] | None = None
    bail: bool = False


class SubmitRequest(BaseModel):
    """Request body for the /forms/submit endpoint."""

    definition: dict[str, Any] | str
    data: dict[str, Any] = Field(default_factory=dict)


class ViewRequest(BaseModel):
    """Request body for the /forms/view endpoint."""

    definition: dict[str, Any] | str
    data: dict[str, Any] | None = None


class TokenRequest(BaseModel):
    """Request body for the /csrf/token endpoint."""

    token_id: str = Field(..., min_length=1)
    refresh: bool = False


# --- Endpoints ---


@router.post("/validate")
async def validate(request: ValidateRequest):
    """Validate a data bag against per-field rules.

    Invalid data is not an HTTP error: the response carries
    ``valid: false`` and the error map.
    """
    try:
        validator = Validator(
            request.rules,
            messages=request.messages,
            attributes=request.attributes,
            bail=request.bail,
        )
    except _CONFIGURATION_ERRORS as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = validator.validate(request.data)
    return jsonable_encoder(result.model_dump())


@router.post("/forms/submit")
async def submit_form(request: SubmitRequest):
    """Build a form from its definition and submit ``data`` to it."""
    factory = _require_factory()
    try:
        form = build_form(request.definition, factory)
    except _CONFIGURATION_ERRORS as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        form.submit(request.data)
    except CsrfTokenException as e:
        raise HTTPException(status_code=403, detail=e.message)

    valid = form.is_valid()
    errors = form.get_errors(deep=True)
    return jsonable_encoder({
        "valid": valid,
        "data": form.get_data() if valid else None,
        "errors": errors.blocking().to_flat(),
        "warnings": ErrorList(e for e in errors if not e.is_blocking).to_flat(),
    })


@router.post("/forms/view")
async def view_form(request: ViewRequest):
    """Build a form, optionally pre-populate it and return its view tree."""
    factory = _require_factory()
    try:
        form = build_form(request.definition, factory)
        if request.data is not None:
            form.set_data(request.data)
    except _CONFIGURATION_ERRORS as e:
        raise HTTPException(status_code=400, detail=str(e))

    return jsonable_encoder({"view": form.create_view().to_dict()})


@router.post("/csrf/token")
async def issue_token(request: TokenRequest):
    """Issue (or refresh) the CSRF token for a token id."""
    if _csrf_manager is None:
        raise HTTPException(status_code=500, detail="CSRF protection is not configured")

    if request.refresh:
        token = _csrf_manager.refresh_token(request.token_id)
    else:
        token = _csrf_manager.generate_token(request.token_id)
    return {"token_id": request.token_id, "token": token}


@router.get("/types")
async def list_types():
    """List registered field types with their inheritance chain."""
    registry = _require_factory().registry
    return {
        "types": [
            {"name": name, "hierarchy": registry.hierarchy(name)}
            for name in registry.type_names()
        ],
        "aliases": registry.aliases,
    }


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    token_count = 0
    if _csrf_manager is not None and hasattr(_csrf_manager.store, "count"):
        token_count = _csrf_manager.store.count()
    return {
        "status": "healthy",
        "field_types": len(_factory.registry.type_names()) if _factory else 0,
        "csrf_tokens": token_count,
    }
