from __future__ import annotations

from fastapi import HTTPException, Request, status
from fastapi.security import HTTPBearer

from ...domain.value_objects import InboundRequest

# Expose this so apps can plug it into dependencies if they want OpenAPI security
bearer_scheme = HTTPBearer(auto_error=False)


def inbound_request_from(request: Request) -> InboundRequest:
    """
    Starlette request -> InboundRequest, keeping header order and duplicates
    (several Authorization headers are significant).
    """
    return InboundRequest(request.headers.items())


def extract_bearer_token(request: Request) -> str:
    """
    Return the first `Authorization: Bearer <token>` value.

    Raises HTTPException(401) if no token is found.
    """
    for value in request.headers.getlist("authorization"):
        scheme, _, token = value.strip().partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )
