"""
Trust-Summary Web Server
=========================
FastAPI backend exposing REST + SSE endpoints for the trust-summary
pipeline.  Responses are JSON only; rendering is left to the client.

Run with:
    python server.py
    # or: uvicorn server:app --reload --port 8000
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from trustsum.candidate_generator import GenerationFailurePolicy
from trustsum.errors import InputQualityError, TrustSummaryError
from trustsum.observer import Event
from trustsum.orchestrator import TrustSummarizer
from trustsum.providers import EmbedderFactory, ProviderFactory
from trustsum.source import prepare_source

# ------------------------------------------------------------------ #
#  Logging
# ------------------------------------------------------------------ #
LOG_FILE = Path(__file__).parent / "trustsum.log"

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler(LOG_FILE, encoding="utf-8"),
    ],
)
logger = logging.getLogger("trustsum.server")
logger.info("Trust-summary server starting — log file: %s", LOG_FILE)

# ------------------------------------------------------------------ #
#  FastAPI app
# ------------------------------------------------------------------ #
app = FastAPI(title="Trust-Summary", version="1.0.0")

# ------------------------------------------------------------------ #
#  Pydantic request models
# ------------------------------------------------------------------ #

class SummarizeRequest(BaseModel):
    text: str
    provider: str = "openai"
    embedder: str = "local"
    validation_runs: int = Field(default=3, ge=1, le=10)
    failure_policy: GenerationFailurePolicy = GenerationFailurePolicy.ABORT
    max_attempts: int = Field(default=3, ge=1, le=10)
    request_timeout: float = 120.0
    max_concurrent: int = Field(default=4, ge=1)


def _sse(data: dict[str, Any]) -> str:
    return f"data: {json.dumps(data)}\n\n"


def _build_engine(req: SummarizeRequest) -> TrustSummarizer:
    return TrustSummarizer(
        provider=req.provider,
        embedder=req.embedder,
        validation_runs=req.validation_runs,
        failure_policy=req.failure_policy,
        max_attempts=req.max_attempts,
        request_timeout=req.request_timeout,
        max_concurrent_tasks=req.max_concurrent,
        enable_logging_observer=False,
    )


async def _availability(names: list[str], factory) -> list[dict[str, Any]]:
    statuses = []
    for name in names:
        try:
            avail = await factory.create(name).is_available()
        except Exception:
            logger.debug("Availability check failed for %s", name, exc_info=True)
            avail = False
        statuses.append({"name": name, "available": avail})
    return statuses


# ------------------------------------------------------------------ #
#  API endpoints
# ------------------------------------------------------------------ #

@app.get("/api/providers")
async def list_providers():
    """Return registered completion providers and embedders with availability."""
    return {
        "providers": await _availability(ProviderFactory.available_names(), ProviderFactory),
        "embedders": await _availability(EmbedderFactory.available_names(), EmbedderFactory),
    }


@app.post("/api/summarize")
async def summarize(req: SummarizeRequest):
    """Run the full pipeline and stream events via SSE."""

    async def event_stream():
        try:
            source_text = prepare_source(req.text)
        except InputQualityError as e:
            logger.info("Input rejected: %s", e)
            yield _sse({"type": "INPUT_REJECTED", "message": str(e), "payload": {}})
            yield _sse({"type": "STREAM_END", "message": "Done", "payload": {}})
            return

        try:
            engine = _build_engine(req)
        except KeyError as e:
            logger.warning("Unknown provider or embedder: %s", e)
            yield _sse({"type": "PIPELINE_ERROR", "message": str(e), "payload": {}})
            yield _sse({"type": "STREAM_END", "message": "Done", "payload": {}})
            return

        events_queue: asyncio.Queue[dict] = asyncio.Queue()

        def on_event(event: Event):
            payload = event.payload or {}
            try:
                json.dumps(payload)
            except (TypeError, ValueError):
                payload = {k: str(v) for k, v in payload.items()}
            events_queue.put_nowait({
                "type": event.event_type.name,
                "message": event.message,
                "payload": payload,
                "timestamp": time.time(),
                "run_id": event.run_id,
            })

        engine.event_bus.subscribe_all(on_event)
        logger.info("=== NEW RUN === provider=%s embedder=%s chars=%d",
                    req.provider, req.embedder, len(source_text))

        yield _sse({
            "type": "PIPELINE_STARTED",
            "message": f"Summarising with {engine.provider.name}...",
            "payload": {"provider": engine.provider.name, "embedder": engine.embedder.name},
        })

        result_holder: dict[str, Any] = {}

        async def _run():
            try:
                result = await engine.run(source_text)
                result_holder["result"] = result.to_dict()
                logger.info("Pipeline completed: trust=%s",
                            result.verdict.trust_level.value)
            except TrustSummaryError as e:
                logger.error("Pipeline failed: %s", e)
                result_holder["error"] = f"{type(e).__name__}: {e}"
            except Exception as e:
                logger.error("Pipeline _run() failed: %s: %s", type(e).__name__, e, exc_info=True)
                result_holder["error"] = f"{type(e).__name__}: {e}"

        task = asyncio.create_task(_run())

        while not task.done() or not events_queue.empty():
            try:
                event_data = await asyncio.wait_for(events_queue.get(), timeout=0.5)
                yield _sse(event_data)
            except asyncio.TimeoutError:
                yield _sse({"type": "HEARTBEAT", "message": "", "payload": {}})

        if "error" in result_holder:
            yield _sse({"type": "PIPELINE_ERROR", "message": result_holder["error"], "payload": {}})
        else:
            yield _sse({
                "type": "PIPELINE_COMPLETE",
                "message": "Pipeline complete.",
                "payload": result_holder["result"],
            })
        yield _sse({"type": "STREAM_END", "message": "Done", "payload": {}})

    return StreamingResponse(event_stream(), media_type="text/event-stream")


# ------------------------------------------------------------------ #
#  Run
# ------------------------------------------------------------------ #
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("server:app", host="0.0.0.0", port=8000, reload=True)
