"""Mealie tool host process.

Serves the Mealie tools over MCP on stdio. The orchestrator spawns this
process and talks to it through stdin/stdout, so all logging goes to
stderr.
"""

import sys
from contextlib import asynccontextmanager
from typing import Annotated, AsyncIterator

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from shared.config import Settings, get_settings
from shared.logging import get_logger, setup_logging
from mealie_api import MealieClient, RecipeService, ShoppingListService
from mealie_server.tools import MealieTools

logger = get_logger(__name__)


def tools_lifespan(tools: MealieTools):
    """Server lifespan that releases the Mealie HTTP client on shutdown."""
    @asynccontextmanager
    async def lifespan(server: FastMCP) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await tools.close()
            logger.info("Mealie tool host stopped")

    return lifespan


def create_server(tools: MealieTools) -> FastMCP:
    """Build the MCP server with every Mealie tool registered."""
    server = FastMCP(
        "mealie",
        instructions="Mealie shopping lists and recipes",
        lifespan=tools_lifespan(tools),
    )

    @server.tool(description="Add a new item to the shopping list")
    async def add_to_list(
        name: Annotated[str, Field(description="Name of the shopping list item")]
    ) -> str:
        return await tools.add_to_list(name)

    @server.tool(description="See what is in the shopping list currently")
    async def current_items() -> str:
        return await tools.current_items()

    @server.tool(description="Mark items on the shopping list as done (checked)")
    async def mark_items_done(
        names: Annotated[list[str], Field(description="Names of the items to check off, exactly as listed")]
    ) -> str:
        return await tools.mark_items_done(names)

    @server.tool(description="List all shopping lists")
    async def list_shopping_lists() -> str:
        return await tools.list_shopping_lists()

    @server.tool(description="List all recipes with their slugs")
    async def list_recipes() -> str:
        return await tools.list_recipes()

    @server.tool(description="Get the ingredients and instructions of a recipe")
    async def get_recipe(
        slug: Annotated[str, Field(description="Recipe slug, as returned by list_recipes")]
    ) -> str:
        return await tools.get_recipe(slug)

    @server.tool(description="Create a new recipe with ingredients and instructions")
    async def create_recipe(
        name: Annotated[str, Field(description="Recipe name")],
        ingredients: Annotated[list[str], Field(description="One entry per ingredient, e.g. '2 eggs'")],
        instructions: Annotated[list[str], Field(description="One entry per step, in order")]
    ) -> str:
        return await tools.create_recipe(name, ingredients, instructions)

    return server


def build_tools(settings: Settings) -> MealieTools:
    """Wire the Mealie services from settings."""
    if not settings.mealie.list_id:
        raise ValueError("Missing MEALIE_LIST_ID")
    if not settings.mealie.api_key:
        raise ValueError("Missing MEALIE_API_KEY")

    client = MealieClient(settings.mealie)
    return MealieTools(
        shopping=ShoppingListService(client, settings.mealie.list_id),
        recipes=RecipeService(client),
    )


def main() -> None:
    """Run the tool host on stdio."""
    settings = get_settings()
    setup_logging(settings.log_level, json_output=settings.json_logs, stream=sys.stderr)

    server = create_server(build_tools(settings))
    logger.info("Starting Mealie tool host", base_url=settings.mealie.base_url)
    server.run(transport="stdio")


if __name__ == "__main__":
    main()
