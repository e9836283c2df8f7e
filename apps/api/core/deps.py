"""
FastAPI dependencies.

The sync engine is built once at start-up (see main.py) and kept on
`app.state`; routers receive it through `get_engine` so tests can swap in
their own engine with `app.dependency_overrides`.
"""
from fastapi import Request, status

from core.exceptions import APIException
from services.sync_engine import ProgressSyncEngine


def get_engine(request: Request) -> ProgressSyncEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise APIException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync engine not started",
            error_code="ENGINE_UNAVAILABLE",
        )
    return engine
