"""
Tests for the domain error taxonomy and its HTTP mapping.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from src.api.errors import STATUS_BY_KIND, register_error_handlers, status_for
from src.platform.errors import (
    ErrorKind,
    MarketplaceError,
    PermissionDenied,
    NotFound,
    InvalidState,
    Conflict,
    DuplicatePending,
    AlreadyGranted,
    AlreadyMember,
    ValidationError,
    MissingParameters,
    OAuthDenied,
    VerifierNotFound,
    ApproverNotConnected,
    ExternalUnauthorized,
    ReauthRequired,
    RateLimited,
    ServiceUnavailable,
    InternalError,
)


@pytest.mark.parametrize(
    "error_cls,status_code",
    [
        (PermissionDenied, 403),
        (NotFound, 404),
        (InvalidState, 409),
        (VerifierNotFound, 409),
        (ApproverNotConnected, 409),
        (Conflict, 409),
        (DuplicatePending, 409),
        (AlreadyGranted, 409),
        (AlreadyMember, 409),
        (ValidationError, 400),
        (MissingParameters, 400),
        (OAuthDenied, 400),
        (ExternalUnauthorized, 401),
        (ReauthRequired, 401),
        (RateLimited, 429),
        (ServiceUnavailable, 503),
        (InternalError, 500),
    ],
)
def test_status_mapping(error_cls, status_code):
    assert status_for(error_cls()) == status_code


def test_every_kind_is_mapped():
    assert set(STATUS_BY_KIND) == set(ErrorKind)


def test_to_dict_includes_details():
    error = DuplicatePending(details={"request_id": "r1"})

    body = error.to_dict()

    assert body == {
        "error": "duplicate_pending",
        "kind": "conflict",
        "message": "An access request is already pending",
        "details": {"request_id": "r1"},
    }


def test_subclasses_share_base():
    assert issubclass(ReauthRequired, ExternalUnauthorized)
    assert issubclass(AlreadyMember, Conflict)
    assert issubclass(VerifierNotFound, InvalidState)
    assert issubclass(MissingParameters, MarketplaceError)


def test_handler_renders_error_and_retry_after():
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/limited")
    async def limited():
        raise RateLimited(retry_after=30)

    @app.get("/missing")
    async def missing():
        raise NotFound("Template not found")

    client = TestClient(app)

    response = client.get("/limited")
    assert response.status_code == 429
    assert response.headers["Retry-After"] == "30"
    assert response.json()["error"] == "rate_limited"

    response = client.get("/missing")
    assert response.status_code == 404
    assert response.json()["message"] == "Template not found"
