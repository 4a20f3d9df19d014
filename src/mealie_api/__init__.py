"""Mealie API access.

Paginated reads, shopping list and recipe operations against a Mealie
server. Used by the tool host process only.
"""

from mealie_api.client import MealieAPIError, MealieClient
from mealie_api.pagination import FetchError, Page, PagedFetcher
from mealie_api.recipes import RecipeService
from mealie_api.shopping import ShoppingListService

__all__ = [
    "FetchError",
    "MealieAPIError",
    "MealieClient",
    "Page",
    "PagedFetcher",
    "RecipeService",
    "ShoppingListService",
]
