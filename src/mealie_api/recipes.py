"""Recipe operations exposed as tools."""

from typing import Optional

from shared.logging import get_logger
from mealie_api.client import MealieAPIError, MealieClient
from mealie_api.models import Recipe, RecipeIngredient, RecipeInstruction, RecipeSummary

logger = get_logger(__name__)


class RecipeService:
    """Reading and writing recipes."""

    def __init__(self, client: MealieClient) -> None:
        self.client = client

    async def list_recipes(self) -> list[RecipeSummary]:
        return [recipe async for recipe in self.client.get_all_recipes()]

    async def get_recipe(self, slug: str) -> Optional[Recipe]:
        return await self.client.get_recipe(slug)

    async def create_recipe(
        self,
        name: str,
        ingredients: list[str],
        instructions: list[str]
    ) -> Recipe:
        """
        Create a recipe with ingredients and steps.

        Mealie only accepts a name on creation, so the recipe is created
        first and then patched with its contents.
        """
        slug = await self.client.create_recipe_slug(name)
        recipe = await self.client.get_recipe(slug)
        if recipe is None:
            raise MealieAPIError(f"Recipe '{slug}' not found after creation")

        recipe.recipe_ingredient = [RecipeIngredient(note=note) for note in ingredients]
        recipe.recipe_instructions = [RecipeInstruction(text=text) for text in instructions]
        await self.client.patch_recipe(recipe)

        logger.info(
            "Recipe created",
            slug=slug,
            ingredients=len(ingredients),
            steps=len(instructions)
        )
        return recipe
