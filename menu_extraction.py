import logging
import re
from typing import List

from pydantic import BaseModel, Field, ValidationError

import ai_client
from schemas import MenuCategory

logger = logging.getLogger(__name__)

DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>[A-Za-z0-9+/=\s]+)$")


class MenuExtractionError(Exception):
    pass


class InvalidImageError(ValueError):
    pass


class ExtractMenuInput(BaseModel):
    image_data_uri: str


class ExtractedItem(BaseModel):
    name: str
    price: float = Field(..., ge=0)
    code: str


class ExtractedCategory(BaseModel):
    category: str
    items: List[ExtractedItem] = []


class ExtractMenuOutput(BaseModel):
    menu: List[ExtractedCategory]


@ai_client.prompt("menu-extraction")
def _menu_prompt(_: ExtractMenuInput) -> str:
    # The image itself travels as a separate message part.
    return """You are an expert menu digitizer. Analyze the attached image of a restaurant menu and extract all categories, items, and prices.

Instructions:
1.  Identify the main sections of the menu as "categories" (e.g., "Appetizers", "Pizzas", "Beverages"). Do not create sub-categories.
2.  For each category, list every item with its "name" and "price". The price must be a number, not a string.
3.  Assign a "code" to every item: a string holding an integer that starts at "1" and increments for each item across the entire menu, not per category.
4.  If an item has multiple sizes or options with different prices, create a separate item for each (e.g., "Margherita Pizza (Medium)" and "Margherita Pizza (Large)").
5.  Ignore descriptions, symbols, and any text that is not an item name or price.

Return {"menu": [{"category": ..., "items": [{"name": ..., "price": ..., "code": ...}]}]}.
"""


def _with_defaults(menu: ExtractMenuOutput) -> List[MenuCategory]:
    out = []
    for cat in menu.menu:
        items = [
            {**it.model_dump(), "category": cat.category, "recipe": [], "history": [], "ingredients": []}
            for it in cat.items
        ]
        out.append(MenuCategory(category=cat.category, items=items))
    return out


async def extract_menu_from_image(image_data_uri: str) -> List[MenuCategory]:
    """
    Turn a menu photo into categories and items. There is no fallback: a
    failed extraction raises MenuExtractionError.
    """
    if not DATA_URI_RE.match(image_data_uri or ""):
        raise InvalidImageError("Expected a data URI of the form 'data:<mimetype>;base64,<encoded_data>'.")

    try:
        output = await ai_client.generate(
            "menu-extraction",
            ExtractMenuInput(image_data_uri=image_data_uri),
            ExtractMenuOutput,
            image_data_uri=image_data_uri,
        )
    except ai_client.AIGenerationError as e:
        raise MenuExtractionError(f"The AI failed to generate a valid menu structure: {e}") from e

    if output is None:
        raise MenuExtractionError("The AI failed to generate a valid menu structure.")

    try:
        menu = _with_defaults(output)
    except ValidationError as e:
        raise MenuExtractionError(f"The AI returned menu items that could not be used: {e}") from e
    logger.info("extracted %d categories, %d items", len(menu), sum(len(c.items) for c in menu))
    return menu
