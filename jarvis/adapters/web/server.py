"""FastAPI application and status endpoint."""

from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI
from pydantic import BaseModel

from jarvis.adapters.web.chat_routes import chat_router, get_pipeline
from jarvis.config import CONFIG, __version__
from jarvis.domain.pipeline import ActionPipeline

app = FastAPI(title="Jarvis Action Pipeline", version=__version__)
app.include_router(chat_router)


class StatusResponse(BaseModel):
    version: str
    aiProvider: str
    storeBackend: str
    usage: Optional[Dict[str, Any]] = None


@app.get("/status", response_model=StatusResponse)
async def status(pipeline: ActionPipeline = Depends(get_pipeline)):
    """Server status endpoint"""
    tracker = getattr(pipeline.llm, "usage_tracker", None)
    return StatusResponse(
        version=__version__,
        aiProvider=CONFIG["ai_provider"],
        storeBackend=CONFIG["store_backend"],
        usage=tracker.get_status() if tracker else None,
    )
