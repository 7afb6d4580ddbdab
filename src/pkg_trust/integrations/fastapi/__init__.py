from __future__ import annotations

from .deps import FastAPITrust
from .security import bearer_scheme, extract_bearer_token, inbound_request_from
from ..common.engine_factory import TrustEngine, create_trust_engine
from ...config.settings import EngineSettings


def create_fastapi_trust(
    engine: TrustEngine | None = None,
    *,
    settings: EngineSettings | None = None,
) -> FastAPITrust:
    """
    High-level helper for FastAPI apps:

    - Uses the given TrustEngine, or builds one from `settings`
    - Wraps it in FastAPITrust, exposing dependencies like:

        fastapi_trust.get_validated_token
        fastapi_trust.get_bearer_token
        fastapi_trust.require_scopes(...)
    """
    if engine is None:
        if settings is None:
            raise ValueError("create_fastapi_trust needs an engine or settings")
        engine = create_trust_engine(settings)
    return FastAPITrust(engine=engine)


__all__ = [
    "FastAPITrust",
    "bearer_scheme",
    "create_fastapi_trust",
    "extract_bearer_token",
    "inbound_request_from",
]
