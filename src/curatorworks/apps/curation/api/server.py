from __future__ import annotations

import base64
import binascii
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from ..config import load_settings
from ..errors import (
    AlreadyExists,
    BudgetExceeded,
    CurationError,
    FeatureDisabled,
    InvalidInput,
    InvalidSessionTransition,
    MalformedResponse,
    NotFound,
    UpstreamUnavailable,
)
from ..models import Collection, Work, new_id
from ..runtime import CurationRuntime
from .models import (
    BackfillRequest,
    CollectionCreate,
    CritiqueRequest,
    MembershipRequest,
    SessionCreate,
    TriageRequest,
    WorkCreate,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (AlreadyExists, 409),
    (InvalidInput, 400),
    (NotFound, 404),
    (FeatureDisabled, 403),
    (InvalidSessionTransition, 409),
    (BudgetExceeded, 429),
    (MalformedResponse, 502),
    (UpstreamUnavailable, 503),
)


def status_for(exc: CurationError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 500


def error_payload(exc: CurationError) -> dict:
    status = status_for(exc)
    payload = {"error": {"type": exc.kind, "code": status, "message": exc.message}}
    if exc.hint:
        payload["error"]["hint"] = exc.hint
    return payload


def create_app(runtime: Optional[CurationRuntime] = None) -> FastAPI:
    holder = {"runtime": runtime}

    def _rt() -> CurationRuntime:
        if holder["runtime"] is None:
            holder["runtime"] = CurationRuntime.build()
        return holder["runtime"]

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        if holder["runtime"] is not None:
            await holder["runtime"].aclose()

    app = FastAPI(title="curatorworks Curation API", version="0.1", lifespan=lifespan)

    @app.exception_handler(CurationError)
    async def _curation_error(_: Request, exc: CurationError) -> JSONResponse:
        status = status_for(exc)
        if status >= 500:
            logger.warning("Request failed with %s: %s", exc.kind, exc.message)
        return JSONResponse(status_code=status, content=error_payload(exc))

    def _require_curation() -> None:
        if not _rt().settings.art_curation_enabled:
            raise FeatureDisabled("Art curation is not enabled")

    @app.get("/v1/health")
    async def health():
        return {"status": "ok"}

    # Works ------------------------------------------------------------------
    @app.post("/v1/works", status_code=201)
    async def create_work(payload: WorkCreate):
        rt = _rt()
        work = Work(
            id=payload.id or new_id(),
            external_id=payload.external_id,
            title=payload.title,
            description=payload.description,
            image_url=payload.image_url,
            agent_source=payload.agent_source,
        )
        await rt.store.create_work(work)
        body = {"work": work.to_dict(), "dispatched": False}
        if payload.auto_curate:
            rt.dispatcher.submit(work.id, work.image_url)
            body["dispatched"] = True
        return body

    @app.get("/v1/works")
    async def list_works(
        verdict: Optional[str] = None,
        curated: Optional[bool] = None,
        routed: Optional[bool] = None,
        tag_type: Optional[str] = None,
    ):
        """Inbox view: filter works by curation state and triage tag."""
        rt = _rt()
        selected: List[dict] = []
        for work in await rt.store.list_works():
            if curated is not None and work.is_curated != curated:
                continue
            if verdict and (not work.is_curated or work.curation.verdict != verdict.upper()):
                continue
            tag = await rt.store.get_tag(work.id)
            if routed is not None and (tag is None or tag.send_to_curator != routed):
                continue
            if tag_type and (tag is None or tag.taxonomy.type != tag_type):
                continue
            item = work.to_dict()
            item["tag"] = tag.to_dict() if tag else None
            selected.append(item)
        return {"object": "list", "data": selected}

    @app.get("/v1/works/{work_id}")
    async def get_work(work_id: str):
        rt = _rt()
        work = await rt.store.get_work(work_id)
        tag = await rt.store.get_tag(work_id)
        return {"work": work.to_dict(), "tag": tag.to_dict() if tag else None}

    @app.post("/v1/works/{work_id}/triage")
    async def triage_work(work_id: str, payload: Optional[TriageRequest] = None):
        rt = _rt()
        work = await rt.store.get_work(work_id)
        image_url = (payload.image_url if payload else None) or work.image_url
        outcome = await rt.classifier.classify(work_id, image_url)
        return outcome.to_dict()

    @app.get("/v1/triage/status")
    async def triage_status():
        rt = _rt()
        body = (await rt.governor.refresh()).to_dict()
        body.update(
            enabled=rt.settings.triage_enabled,
            sample_rate=rt.settings.triage_sample_rate,
            cost_estimate=rt.settings.triage_cost_estimate_usd,
        )
        return body

    @app.post("/v1/triage/backfill")
    async def triage_backfill(payload: Optional[BackfillRequest] = None):
        """Tag stored works that were added before triage ran on them."""
        report = await _rt().classifier.backfill(limit=payload.limit if payload else None)
        return report.to_dict()

    # Critique ---------------------------------------------------------------
    @app.post("/v1/critique")
    async def critique(payload: CritiqueRequest):
        _require_curation()
        image_data = None
        if payload.image_base64:
            try:
                image_data = base64.b64decode(payload.image_base64, validate=True)
            except (binascii.Error, ValueError) as exc:
                raise InvalidInput(f"image_base64 is not valid base64: {exc}") from exc
        result = await _rt().critic(payload.curator_agent).critique(
            work_id=payload.work_id, image_url=payload.image_url, image_data=image_data
        )
        return result.to_dict()

    # Sessions ---------------------------------------------------------------
    @app.post("/v1/sessions", status_code=201)
    async def create_session(payload: SessionCreate):
        rt = _rt()
        works = [await rt.store.get_work(work_id) for work_id in payload.work_ids]
        session = await rt.orchestrator(payload.curator_agent).create_session(
            works,
            payload.session_type,
            name=payload.name,
            strategy=payload.strategy,
        )
        return session.to_dict()

    @app.get("/v1/sessions")
    async def list_sessions(
        status: Optional[str] = None,
        limit: int = Query(20, ge=1, le=200),
        offset: int = Query(0, ge=0),
    ):
        sessions = await _rt().store.list_sessions(status=status, limit=limit, offset=offset)
        return {
            "object": "list",
            "data": [item.to_dict() for item in sessions],
            "limit": limit,
            "offset": offset,
        }

    @app.get("/v1/sessions/{session_id}")
    async def get_session(session_id: str):
        rt = _rt()
        session = await rt.store.get_session(session_id)
        body = session.to_dict()
        if session.session_type == "tournament":
            comparisons = await rt.store.list_comparisons(session_id)
            body["comparisons"] = [item.to_dict() for item in comparisons]
        return body

    async def _orchestrator_for(session_id: str):
        rt = _rt()
        session = await rt.store.get_session(session_id)
        return rt.orchestrator(session.curator_agent)

    @app.post("/v1/sessions/{session_id}/run")
    async def run_session(session_id: str):
        orchestrator = await _orchestrator_for(session_id)
        report = await orchestrator.run(session_id)
        return report.to_dict()

    @app.post("/v1/sessions/{session_id}/pause")
    async def pause_session(session_id: str):
        orchestrator = await _orchestrator_for(session_id)
        return (await orchestrator.pause(session_id)).to_dict()

    @app.post("/v1/sessions/{session_id}/resume")
    async def resume_session(session_id: str):
        orchestrator = await _orchestrator_for(session_id)
        return (await orchestrator.resume(session_id)).to_dict()

    @app.get("/v1/sessions/{session_id}/standings")
    async def session_standings(session_id: str):
        orchestrator = await _orchestrator_for(session_id)
        rows = await orchestrator.standings(session_id)
        return {
            "object": "list",
            "data": [dict(row.to_dict(), rank=index) for index, row in enumerate(rows, 1)],
        }

    # Collections ------------------------------------------------------------
    @app.post("/v1/collections", status_code=201)
    async def create_collection(payload: CollectionCreate):
        collection = Collection(
            id=new_id(),
            name=payload.name,
            description=payload.description,
            curator_agent=payload.curator_agent,
            is_public=payload.is_public,
            tags=list(payload.tags),
            work_ids=list(dict.fromkeys(payload.work_ids)),
        )
        await _rt().store.create_collection(collection)
        return collection.to_dict()

    @app.get("/v1/collections/{collection_id}")
    async def get_collection(collection_id: str):
        return (await _rt().store.get_collection(collection_id)).to_dict()

    @app.post("/v1/collections/{collection_id}/works")
    async def update_membership(collection_id: str, payload: MembershipRequest):
        store = _rt().store
        if payload.action == "remove":
            collection = await store.remove_from_collection(collection_id, payload.work_id)
        else:
            collection = await store.add_to_collection(collection_id, payload.work_id)
        return collection.to_dict()

    @app.delete("/v1/collections/{collection_id}")
    async def delete_collection(collection_id: str):
        await _rt().store.delete_collection(collection_id)
        return {"status": "deleted", "id": collection_id}

    return app


app = create_app()


def main():  # pragma: no cover
    import uvicorn

    from curatorworks.logging_utils import configure_logging

    configure_logging("curation_api")
    settings = load_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":  # pragma: no cover
    main()

__all__ = ["app", "create_app", "error_payload", "main", "status_for"]
