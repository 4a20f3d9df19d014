"""HTTP client for the Mealie API.

Wraps the shopping-list and recipe routes used by the tool host. Every
"list all" operation goes through ``PagedFetcher``; single-object calls
raise ``MealieAPIError`` on failure.
"""

from typing import Any, Optional

import httpx
from pydantic import ValidationError

from shared.config import MealieSettings
from shared.logging import get_logger
from mealie_api.models import (
    NewShoppingListItem,
    Recipe,
    RecipeSummary,
    ShoppingList,
    ShoppingListItem,
)
from mealie_api.pagination import FetchError, Page, PagedFetcher, PageStream

logger = get_logger(__name__)


class MealieAPIError(Exception):
    """A non-paged Mealie request failed."""
    pass


class MealieClient:
    """
    Client for the Mealie REST API.

    Provides methods for:
    - Paging through shopping lists, shopping list items and recipes
    - Creating and bulk-updating shopping list items
    - Creating, reading and patching recipes
    """

    def __init__(
        self,
        settings: MealieSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> None:
        """
        Initialize Mealie client.

        Args:
            settings: Mealie connection settings
            transport: Optional httpx transport, used by tests
        """
        self.settings = settings
        self.base_url = settings.base_url.rstrip("/")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.settings.api_key:
            headers["Authorization"] = f"Bearer {self.settings.api_key}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.settings.timeout_seconds,
                headers=self._get_headers(),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "MealieClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # Paged resources

    async def _fetch_page(
        self,
        path: str,
        page: int,
        item_type: type,
        params: Optional[dict[str, Any]] = None
    ) -> Page:
        query: dict[str, Any] = {"page": page, **(params or {})}
        if self.settings.page_size:
            query["perPage"] = self.settings.page_size

        try:
            response = await self._get_client().get(path, params=query)
            response.raise_for_status()
            return Page[item_type].model_validate(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Page fetch failed", path=path, page=page, error=str(e))
            raise FetchError(f"GET {path} page {page} failed: {e}", page=page) from e

    async def fetch_shopping_lists(self, page: int) -> Page[ShoppingList]:
        """Fetch a single page of shopping lists."""
        return await self._fetch_page("/households/shopping/lists", page, ShoppingList)

    async def fetch_shopping_list_items(self, list_id: str, page: int) -> Page[ShoppingListItem]:
        """Fetch a single page of the items on one shopping list."""
        return await self._fetch_page(
            "/households/shopping/items",
            page,
            ShoppingListItem,
            params={"queryFilter": f"shoppingListId={list_id}"},
        )

    async def fetch_recipes(self, page: int) -> Page[RecipeSummary]:
        """Fetch a single page of recipe summaries."""
        return await self._fetch_page("/recipes", page, RecipeSummary)

    def get_all_shopping_lists(self) -> PageStream[ShoppingList]:
        return PagedFetcher(self.fetch_shopping_lists).stream_all()

    def get_all_shopping_list_items(self, list_id: str) -> PageStream[ShoppingListItem]:
        async def fetch(page: int) -> Page[ShoppingListItem]:
            return await self.fetch_shopping_list_items(list_id, page)

        return PagedFetcher(fetch).stream_all()

    def get_all_recipes(self) -> PageStream[RecipeSummary]:
        return PagedFetcher(self.fetch_recipes).stream_all()

    # Single-object calls

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Make a request, translating transport and status failures."""
        try:
            response = await self._get_client().request(method, path, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPError as e:
            logger.error("Mealie request failed", method=method, path=path, error=str(e))
            raise MealieAPIError(f"{method} {path} failed: {e}") from e

    async def new_shopping_list_item(self, list_id: str, name: str) -> None:
        item = NewShoppingListItem(
            note=name,
            display=name,
            shopping_list_id=list_id,
        )
        await self._request(
            "POST",
            "/households/shopping/items",
            json=item.model_dump(by_alias=True, mode="json"),
        )

    async def update_shopping_list_items(self, items: list[ShoppingListItem]) -> None:
        await self._request(
            "PUT",
            "/households/shopping/items",
            json=[item.model_dump(by_alias=True, mode="json") for item in items],
        )

    async def create_recipe_slug(self, name: str) -> str:
        """Create an empty recipe and return its slug."""
        response = await self._request("POST", "/recipes", json={"name": name})
        try:
            slug = response.json()
        except ValueError as e:
            raise MealieAPIError(f"Unexpected create recipe response: {response.text!r}") from e
        if not isinstance(slug, str):
            raise MealieAPIError(f"Unexpected create recipe response: {slug!r}")
        return slug

    async def get_recipe(self, slug: str) -> Optional[Recipe]:
        """Get a recipe by slug, or None if it does not exist."""
        try:
            response = await self._get_client().get(f"/recipes/{slug}")
        except httpx.HTTPError as e:
            raise MealieAPIError(f"GET /recipes/{slug} failed: {e}") from e

        if response.status_code == 404:
            return None

        try:
            response.raise_for_status()
            return Recipe.model_validate(response.json())
        except (httpx.HTTPError, ValidationError, ValueError) as e:
            raise MealieAPIError(f"GET /recipes/{slug} failed: {e}") from e

    async def patch_recipe(self, recipe: Recipe) -> None:
        await self._request(
            "PATCH",
            f"/recipes/{recipe.slug}",
            json=recipe.model_dump(by_alias=True, mode="json", exclude_none=True),
        )
