"""Mealie tools served to the orchestrator.

Each tool returns plain text (JSON for structured data). Mealie failures
are raised as ``ToolError`` so the client sees an error result rather
than a successful one.
"""

import json
from typing import Any

from mcp.server.fastmcp.exceptions import ToolError

from shared.logging import get_logger
from mealie_api import FetchError, MealieAPIError, RecipeService, ShoppingListService

logger = get_logger(__name__)


def _dump(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False)


class MealieTools:
    """Tool implementations backed by the Mealie services."""

    def __init__(self, shopping: ShoppingListService, recipes: RecipeService) -> None:
        self.shopping = shopping
        self.recipes = recipes

    async def close(self) -> None:
        """Close the Mealie clients behind the services."""
        await self.shopping.client.close()
        if self.recipes.client is not self.shopping.client:
            await self.recipes.client.close()

    async def add_to_list(self, name: str) -> str:
        try:
            return await self.shopping.add_item(name)
        except MealieAPIError as e:
            raise ToolError(f"Failed to add item: {e}") from e

    async def current_items(self) -> str:
        items = await self.shopping.current_items()
        return _dump([item.model_dump(exclude_none=True) for item in items])

    async def mark_items_done(self, names: list[str]) -> str:
        try:
            updated = await self.shopping.mark_items_done(names)
        except (FetchError, MealieAPIError) as e:
            raise ToolError(f"Failed to mark items done: {e}") from e
        return _dump([item.note for item in updated])

    async def list_shopping_lists(self) -> str:
        try:
            lists = await self.shopping.list_shopping_lists()
        except FetchError as e:
            raise ToolError(f"Failed to list shopping lists: {e}") from e
        return _dump([{"id": sl.id, "name": sl.name} for sl in lists])

    async def list_recipes(self) -> str:
        try:
            recipes = await self.recipes.list_recipes()
        except FetchError as e:
            raise ToolError(f"Failed to list recipes: {e}") from e
        return _dump([r.model_dump(exclude_none=True, include={"slug", "name", "description"}) for r in recipes])

    async def get_recipe(self, slug: str) -> str:
        try:
            recipe = await self.recipes.get_recipe(slug)
        except MealieAPIError as e:
            raise ToolError(f"Failed to get recipe: {e}") from e
        if recipe is None:
            return f"No recipe with slug '{slug}'"
        return _dump({
            "slug": recipe.slug,
            "name": recipe.name,
            "description": recipe.description,
            "ingredients": [i.note for i in recipe.recipe_ingredient or []],
            "instructions": [s.text for s in recipe.recipe_instructions or []],
        })

    async def create_recipe(
        self,
        name: str,
        ingredients: list[str],
        instructions: list[str]
    ) -> str:
        try:
            recipe = await self.recipes.create_recipe(name, ingredients, instructions)
        except MealieAPIError as e:
            raise ToolError(f"Failed to create recipe: {e}") from e
        return f"Created recipe '{recipe.name}' ({recipe.slug})"
