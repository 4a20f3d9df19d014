"""Shopping list operations exposed as tools."""

from typing import AsyncIterable, Iterable

from shared.logging import get_logger
from mealie_api.client import MealieClient
from mealie_api.models import FilteredItem, ShoppingList, ShoppingListItem
from mealie_api.pagination import FetchError

logger = get_logger(__name__)


def simplify(item: ShoppingListItem) -> FilteredItem:
    return FilteredItem(
        name=item.note,
        label=item.label.name if item.label else None,
        checked=item.checked,
    )


async def unchecked_items(items: AsyncIterable[ShoppingListItem]) -> list[FilteredItem]:
    """
    Collect the unchecked items of a stream.

    A failed page ends the stream; the items gathered before it are
    returned and the failure is only logged.
    """
    result = []
    try:
        async for item in items:
            if not item.checked:
                result.append(simplify(item))
    except FetchError as e:
        logger.warning("Shopping list read incomplete", page=e.page, error=str(e))
    return result


def check_named_items(
    items: Iterable[ShoppingListItem],
    names: Iterable[str]
) -> list[ShoppingListItem]:
    """
    Return copies of the unchecked items whose note is in ``names``, with
    ``checked`` set. Items not named are left out.
    """
    wanted = set(names)
    return [
        item.model_copy(update={"checked": True})
        for item in items
        if item.note in wanted and not item.checked
    ]


class ShoppingListService:
    """Operations on one configured shopping list."""

    def __init__(self, client: MealieClient, list_id: str) -> None:
        self.client = client
        self.list_id = list_id

    async def add_item(self, name: str) -> str:
        await self.client.new_shopping_list_item(self.list_id, name)
        logger.info("Item added", list_id=self.list_id, item=name)
        return f"Successfully added '{name}'"

    async def current_items(self) -> list[FilteredItem]:
        """Unchecked items on the list."""
        return await unchecked_items(self.client.get_all_shopping_list_items(self.list_id))

    async def mark_items_done(self, names: list[str]) -> list[ShoppingListItem]:
        """
        Check off the named items.

        Reads the whole list first; a failed page aborts the operation
        rather than updating from a partial view.
        """
        items = [item async for item in self.client.get_all_shopping_list_items(self.list_id)]
        updated = check_named_items(items, names)
        if updated:
            await self.client.update_shopping_list_items(updated)
        logger.info(
            "Items marked done",
            list_id=self.list_id,
            requested=len(names),
            updated=len(updated)
        )
        return updated

    async def list_shopping_lists(self) -> list[ShoppingList]:
        return [shopping_list async for shopping_list in self.client.get_all_shopping_lists()]
