from __future__ import annotations

import secrets

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from asr import db
from asr.api_models import AppSummary, ErrorResponse, ReconcileResponse
from asr.errors import Conflict, InvalidSpec, MalformedSnapshot, NotFound, ReconcileError
from asr.kube import KubeStore
from asr.reconciler import SPEC_ANNOTATION, Reconciler
from asr.settings import settings

app = FastAPI(title="App Service Reconciler")
security = HTTPBasic()

_reconciler: Reconciler | None = None


def get_reconciler() -> Reconciler:
    global _reconciler
    if _reconciler is None:
        _reconciler = Reconciler(KubeStore())
    return _reconciler


def get_current_username(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    ok_user = secrets.compare_digest(credentials.username, settings.api_user)
    ok_pass = secrets.compare_digest(credentials.password, settings.api_password)
    if not (ok_user and ok_pass):
        raise HTTPException(status_code=401, detail="Invalid credentials", headers={"WWW-Authenticate": "Basic"})
    return credentials.username


@app.exception_handler(ReconcileError)
async def reconcile_error_handler(request: Request, exc: ReconcileError) -> JSONResponse:
    if isinstance(exc, NotFound):
        status_code = 404
    elif isinstance(exc, (MalformedSnapshot, InvalidSpec, Conflict)):
        # Conflict here means the retry budget ran out.
        status_code = 409
    else:
        status_code = 502
    body = ErrorResponse(error=type(exc).__name__, detail=str(exc))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.on_event("startup")
def startup() -> None:
    db.init_db()
    if settings.enable_loop:
        get_reconciler().start()


@app.on_event("shutdown")
def shutdown() -> None:
    if _reconciler is not None:
        _reconciler.stop()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "healthy"}


@app.get("/apps", response_model=list[AppSummary], response_model_by_alias=True)
def list_apps(reconciler: Reconciler = Depends(get_reconciler)) -> list[AppSummary]:
    return [
        AppSummary(
            namespace=a.namespace,
            name=a.name,
            deleting=a.deleting,
            has_snapshot=SPEC_ANNOTATION in a.annotations,
        )
        for a in reconciler.store.list_apps()
    ]


@app.get("/events")
def events(
    limit: int = Query(50, ge=1, le=1000),
    namespace: str | None = None,
    name: str | None = None,
) -> list[dict]:
    return db.latest_events(limit, namespace=namespace, name=name)


@app.post("/apps/{namespace}/{name}/reconcile", response_model=ReconcileResponse)
def trigger_reconcile(
    namespace: str,
    name: str,
    username: str = Depends(get_current_username),
    reconciler: Reconciler = Depends(get_reconciler),
) -> ReconcileResponse:
    db.log_event("INFO", f"Manual reconcile requested by {username}", namespace, name)
    result = reconciler.reconcile(namespace, name)
    return ReconcileResponse(
        namespace=result.namespace,
        name=result.name,
        action=result.action,
        changed=list(result.changed),
    )
