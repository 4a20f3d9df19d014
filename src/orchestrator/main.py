"""Orchestrator - FastAPI Application.

Hosts chat sessions over websockets. Every connection gets its own
session: tool host process, LLM provider and transcript.
"""

import uuid
from contextlib import asynccontextmanager
from typing import Literal, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel, Field, ValidationError

from shared.config import Settings, get_settings
from shared.logging import bind_context, clear_context, get_logger, setup_logging
from tool_host.client import ToolHostError
from orchestrator.gateway import OrchestratorError
from orchestrator.session import open_session

logger = get_logger(__name__)


class ChatRequest(BaseModel):
    """Chat frame sent by the browser."""
    chat_message: str = Field(..., min_length=1, description="User message")


class ChatEvent(BaseModel):
    """Chat frame sent to the browser."""
    role: Literal["user", "assistant", "error"]
    content: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    llm_provider: str
    tool_host: str


# Global instances
_settings: Optional[Settings] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    global _settings

    _settings = get_settings()
    setup_logging(_settings.log_level, json_output=_settings.json_logs)
    logger.info("Starting Orchestrator", tool_host=_settings.tool_host.command)

    yield

    logger.info("Shutting down Orchestrator")


app = FastAPI(
    title="Mealie Assistant",
    description="Chat with an LLM that can use the Mealie tool host",
    version="0.1.0",
    lifespan=lifespan
)


async def _send(websocket: WebSocket, role: str, content: str) -> None:
    await websocket.send_text(ChatEvent(role=role, content=content).model_dump_json())


@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Health check endpoint."""
    settings = _settings or get_settings()
    return HealthResponse(
        status="healthy",
        llm_provider=settings.llm.provider,
        tool_host=settings.tool_host.command,
    )


@app.websocket("/ws")
async def chat_socket(websocket: WebSocket):
    """
    Run one chat session for the lifetime of the connection.

    Utterances are handled one at a time; a failed turn is reported as an
    error frame and the session continues.
    """
    await websocket.accept()
    bind_context(session_id=str(uuid.uuid4()))
    settings = _settings or get_settings()

    try:
        async with open_session(settings) as orchestrator:
            while True:
                raw = await websocket.receive_text()
                try:
                    request = ChatRequest.model_validate_json(raw)
                except ValidationError as e:
                    logger.warning("Invalid chat frame", error=str(e))
                    await _send(websocket, "error", "Invalid message")
                    continue

                await _send(websocket, "user", request.chat_message)
                try:
                    answer = await orchestrator.handle_utterance(request.chat_message)
                except OrchestratorError as e:
                    logger.error("Turn failed", error=str(e))
                    await _send(websocket, "error", str(e))
                    continue

                await _send(websocket, "assistant", answer)

    except WebSocketDisconnect:
        logger.info("Websocket disconnected")
    except ToolHostError as e:
        logger.error("Session could not start", error=str(e))
        await _send(websocket, "error", f"Tool host unavailable: {e}")
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
    finally:
        clear_context()


def main():
    """Run the Orchestrator server."""
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "orchestrator.main:app",
        host=settings.orchestrator.host,
        port=settings.orchestrator.port,
        reload=settings.environment == "development"
    )


if __name__ == "__main__":
    main()
