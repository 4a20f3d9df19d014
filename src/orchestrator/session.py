"""Session construction shared by the CLI and websocket shells."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from shared.config import MealieSettings, Settings
from shared.logging import get_logger
from tool_host.client import ToolHost
from orchestrator.conversation import render_system_prompt
from orchestrator.gateway import Orchestrator
from orchestrator.llm import create_llm_provider

logger = get_logger(__name__)


def mealie_environment(settings: MealieSettings) -> dict[str, str]:
    """Environment variables that configure the Mealie tool host process."""
    values = {
        "MEALIE_API_KEY": settings.api_key,
        "MEALIE_BASE_URL": settings.base_url,
        "MEALIE_LIST_ID": settings.list_id,
        "MEALIE_PAGE_SIZE": settings.page_size,
        "MEALIE_TIMEOUT_SECONDS": settings.timeout_seconds,
    }
    return {key: str(value) for key, value in values.items() if value is not None}


@asynccontextmanager
async def open_session(settings: Settings) -> AsyncIterator[Orchestrator]:
    """
    Start an isolated chat session.

    Spawns a tool host, fetches its catalog and builds a fresh LLM
    provider and transcript. The tool host is shut down on exit.
    """
    llm_provider = create_llm_provider(settings.llm)
    tool_host = ToolHost.from_settings(settings.tool_host, env=mealie_environment(settings.mealie))

    async with tool_host:
        orchestrator = await Orchestrator.create(
            llm_provider=llm_provider,
            tool_host=tool_host,
            system_prompt=render_system_prompt(settings.orchestrator.system_prompt),
            max_tool_iterations=settings.orchestrator.max_tool_iterations,
        )
        logger.info(
            "Session started",
            conversation_id=orchestrator.conversation.id,
            tool_count=len(orchestrator.catalog)
        )
        yield orchestrator

    logger.info("Session ended", conversation_id=orchestrator.conversation.id)
