"""FastAPI entrypoint for the sales coach agent."""
from __future__ import annotations

import json
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError as PydanticValidationError

from lib.config import LOG_LEVEL
from lib.models import AgentRequest
from lib.supabase_client import get_supabase
from services.agent.run import AgentPipeline, build_pipeline
from services.agent_runs.queries import RunFilters, get_run, list_runs, run_stats, update_run
from utils.errors import ModeResolutionError, ValidationError
from utils.logging import log_error, logger, set_log_level

load_dotenv()
set_log_level(LOG_LEVEL)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
GENERIC_ERROR = "An error occurred while processing your request."


def create_app(pipeline: Optional[AgentPipeline] = None, db: Any = None) -> FastAPI:
    """
    Build the API. ``pipeline`` and ``db`` are created lazily from the
    environment when not supplied.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        active = app.state.pipeline
        if active is not None:
            await active.drain(timeout=10.0)
            if active.meter is not None:
                await active.meter.aclose()

    app = FastAPI(title="Sales Coach Agent API", lifespan=lifespan)
    app.state.pipeline = pipeline
    app.state.db = db

    async def get_db() -> Any:
        if app.state.db is None:
            app.state.db = await get_supabase()
        return app.state.db

    async def get_pipeline() -> AgentPipeline:
        if app.state.pipeline is None:
            app.state.pipeline = build_pipeline(await get_db())
        return app.state.pipeline

    @app.get("/health")
    def health_check() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/agent")
    async def agent(request: Request):
        request_id = str(uuid.uuid4())
        try:
            body = AgentRequest.model_validate(await request.json())
        except (json.JSONDecodeError, PydanticValidationError) as e:
            return JSONResponse(status_code=400, content={"error": "Invalid request body", "details": str(e)})

        try:
            active = await get_pipeline()
            prepared = await active.prepare(body, request_id)
        except ModeResolutionError as e:
            log_error(request_id, "dispatch", e, {"mode": e.mode})
            return JSONResponse(
                status_code=500,
                content={"error": "Could not resolve request context", "details": e.detail, "mode": e.mode},
            )
        except ValidationError as e:
            return JSONResponse(status_code=400, content={"error": "Invalid request", "details": str(e)})
        except Exception as e:
            log_error(request_id, "prepare", e)
            return JSONResponse(status_code=500, content={"error": GENERIC_ERROR, "details": str(e)})

        try:
            opened = await active.open_stream(prepared)
        except Exception as e:
            # already logged and recorded as an error run
            return JSONResponse(status_code=500, content={"error": GENERIC_ERROR, "details": str(e)})

        return StreamingResponse(
            active.stream(prepared, opened),
            media_type="text/event-stream",
            headers={**SSE_HEADERS, "X-Request-ID": request_id},
        )

    @app.get("/api/agent-runs")
    async def agent_runs(
        request: Request,
        page: int = Query(default=1, ge=1),
        page_size: int = Query(default=20, ge=1, le=100),
    ) -> Dict[str, Any]:
        filters = RunFilters.model_validate(dict(request.query_params))
        return await list_runs(await get_db(), filters, page=page, page_size=page_size)

    @app.get("/api/agent-runs/stats")
    async def agent_run_stats(
        agent_type: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Dict[str, Any]:
        return await run_stats(await get_db(), agent_type=agent_type, start_date=start_date, end_date=end_date)

    @app.get("/api/agent-runs/{run_id}")
    async def agent_run(run_id: str) -> Dict[str, Any]:
        run = await get_run(await get_db(), run_id)
        if run is None:
            raise HTTPException(status_code=404, detail="Agent run not found")
        return {"run": run}

    @app.patch("/api/agent-runs/{run_id}")
    async def patch_agent_run(run_id: str, request: Request) -> Dict[str, Any]:
        try:
            changes = await request.json()
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="Invalid JSON body")
        if not isinstance(changes, dict):
            raise HTTPException(status_code=400, detail="Body must be a JSON object")
        try:
            run = await update_run(await get_db(), run_id, changes)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if run is None:
            raise HTTPException(status_code=404, detail="Agent run not found")
        logger.info(f"Agent run {run_id} marked is_best={changes['is_best']}")
        return {"run": run}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
