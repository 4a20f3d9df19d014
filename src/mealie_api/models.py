"""Mealie API types.

Field names follow the API's camelCase through aliases; unknown fields
are kept on models that are sent back to the server (items, recipes) so
that a read-modify-write round trip does not drop data.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MealieModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ShoppingList(MealieModel):
    id: str
    name: str


class Label(MealieModel):
    id: str
    name: str


class ShoppingListItem(MealieModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    note: str = ""
    checked: bool = False
    label: Optional[Label] = None
    shopping_list_id: str = Field(..., alias="shoppingListId")


class NewShoppingListItem(MealieModel):
    """Body of a create-item request."""
    quantity: float = 1.0
    note: str
    display: str
    shopping_list_id: str = Field(..., alias="shoppingListId")


class FilteredItem(MealieModel):
    """Item as shown to the LLM."""
    name: str
    label: Optional[str] = None
    checked: bool


class RecipeSummary(MealieModel):
    id: Optional[str] = None
    slug: str
    name: str
    description: Optional[str] = None


class RecipeIngredient(MealieModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    note: str = ""


class RecipeInstruction(MealieModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    text: str = ""


class Recipe(MealieModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: Optional[str] = None
    slug: str
    name: str
    description: Optional[str] = None
    recipe_ingredient: Optional[list[RecipeIngredient]] = Field(default=None, alias="recipeIngredient")
    recipe_instructions: Optional[list[RecipeInstruction]] = Field(default=None, alias="recipeInstructions")
