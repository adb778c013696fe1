from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from topicmesh.core.exceptions import (
    ClusterOperationError,
    ClusterUnavailable,
    NamingCollision,
    PartialReconciliationFailure,
    ProblemDetail,
    SchemaRegistryError,
    SpecResourceNotFound,
    TopicMeshError,
)

_STATUS = {
    SpecResourceNotFound: 404,
    NamingCollision: 422,
    ClusterUnavailable: 503,
    ClusterOperationError: 502,
    SchemaRegistryError: 502,
    PartialReconciliationFailure: 207,
}


def _status_for(exc: TopicMeshError) -> int:
    for kind in type(exc).__mro__:
        if kind in _STATUS:
            return _STATUS[kind]
    return 500


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(TopicMeshError)
    async def topicmesh_error_handler(_: Request, exc: TopicMeshError):
        problem = ProblemDetail.from_error(_status_for(exc), exc)
        return JSONResponse(
            status_code=problem.status,
            content=problem.model_dump(mode="json", exclude_none=True),
            media_type="application/problem+json",
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(_: Request, exc: ValueError):
        problem = ProblemDetail(type="about:blank", title="Bad Request", status=400, detail=str(exc))
        return JSONResponse(status_code=400, content=problem.model_dump(mode="json", exclude_none=True))
