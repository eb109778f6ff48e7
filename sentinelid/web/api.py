from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sentinelid import __version__
from sentinelid.core.broker import IdentityBroker
from sentinelid.core.errors import SentinelError
from sentinelid.web.models import (
    AliasCreateRequest,
    AliasDeleteResponse,
    AliasListResponse,
    AliasSummary,
    BreachCheckRequest,
    PasswordRequest,
    PasswordResponse,
    SessionCreateRequest,
)

STATUS_BY_CODE: Dict[str, int] = {
    "validation_error": 400,
    "not_found": 404,
    "referential_integrity": 409,
    "persistence_error": 503,
    "crypto_unavailable": 503,
    "transient_error": 503,
    "config_error": 500,
}


def _session_json(s: Any) -> Dict[str, Any]:
    return s.model_dump(mode="json", by_alias=True)


def create_app(broker: IdentityBroker, *, logger: Any = None) -> FastAPI:
    """
    HTTP face of the broker. Every route is a thin call into IdentityBroker;
    records are returned as read-only JSON and never edited here.
    """
    app = FastAPI(title="SentinelID", version=__version__)

    @app.exception_handler(SentinelError)
    async def sentinel_error_handler(request: Request, exc: SentinelError):
        code = STATUS_BY_CODE.get(exc.code, 500)
        if logger and code >= 500:
            logger.error(f"{request.method} {request.url.path} -> {exc.code}: {exc.user_message}")
        return JSONResponse(status_code=code, content={"detail": exc.user_message, "code": exc.code})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"detail": "Invalid request.", "code": "validation_error"})

    @app.get("/health")
    async def health():
        return {"status": "ok", "load_warning": broker.load_warning, "breach_breaker": broker.breach.breaker.snapshot()}

    @app.get("/v1/features")
    async def features():
        return broker.features().to_dict()

    # ---- aliases ----
    @app.post("/v1/aliases", status_code=201)
    def create_alias(req: AliasCreateRequest):
        a = broker.create_alias(req.name, req.domain, req.group)
        return a.model_dump(mode="json")

    @app.get("/v1/aliases", response_model=AliasListResponse)
    async def list_aliases(local: Optional[str] = None):
        found = broker.find_aliases(local) if local else broker.list_aliases()
        return AliasListResponse(aliases=[AliasSummary.of(a) for a in found])

    @app.get("/v1/aliases/{alias_id}")
    async def get_alias(alias_id: str):
        return broker.get_alias(alias_id).model_dump(mode="json")

    @app.delete("/v1/aliases/{alias_id}", response_model=AliasDeleteResponse)
    def delete_alias(alias_id: str):
        detached = broker.delete_alias(alias_id)
        return AliasDeleteResponse(deleted=alias_id, detached_sessions=[s.id for s in detached])

    # ---- sessions ----
    @app.post("/v1/sessions", status_code=201)
    def create_session(req: SessionCreateRequest):
        return _session_json(broker.create_session(req.site, req.alias_id))

    @app.get("/v1/sessions")
    async def list_sessions():
        return {"sessions": [_session_json(s) for s in broker.list_sessions()]}

    @app.delete("/v1/sessions/{session_id}", status_code=204)
    def destroy_session(session_id: str):
        broker.destroy_session(session_id)
        return Response(status_code=204)

    @app.post("/v1/sessions/{session_id}/open")
    async def open_session(session_id: str):
        return broker.open_session(session_id).model_dump(mode="json")

    # ---- credentials / breach ----
    @app.post("/v1/passwords", response_model=PasswordResponse)
    async def generate_password(req: Optional[PasswordRequest] = None):
        pw = broker.generate_password(req.length if req is not None else None)
        return PasswordResponse(password=pw, length=len(pw))

    # sync: runs in the threadpool while the lookup waits on the network
    @app.post("/v1/breach-checks")
    def check_breach(req: BreachCheckRequest):
        return broker.check_email_breach(req.email).model_dump(mode="json")

    return app
