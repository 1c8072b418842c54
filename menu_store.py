"""File-backed menu document and web-app manifest."""
import json
import os
from datetime import datetime
from typing import Any, List, Optional

from schemas import MenuCategory, MenuItem, MenuItemHistory


def _normalize_item(raw: dict, category: str) -> dict:
    history = []
    for h in raw.get("history") or []:
        history.append({
            "name": h.get("name", raw.get("name")),
            "price": h.get("price", raw.get("price", 0)),
            "changed_at": h.get("changed_at") or h.get("changedAt"),
        })
    return {
        **raw,
        "code": str(raw.get("code", "")),
        "category": raw.get("category") or category,
        "history": history,
        "ingredients": raw.get("ingredients") or [],
        "recipe": raw.get("recipe") or [],
    }


def load_menu(path: str) -> List[MenuCategory]:
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)

    menu = []
    for cat in data:
        name = cat.get("category", "")
        # older documents nest items one level deeper under subCategories
        raw_items = list(cat.get("items") or [])
        for sub in cat.get("subCategories") or []:
            raw_items.extend(sub.get("items") or [])
        menu.append(MenuCategory(category=name, items=[_normalize_item(i, name) for i in raw_items]))
    return menu


def save_menu(path: str, document: Any) -> None:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(document, fh, indent=2, ensure_ascii=False)


def load_manifest(path: str) -> dict:
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def update_menu_item(
    menu: List[MenuCategory],
    code: str,
    name: Optional[str] = None,
    price: Optional[float] = None,
    changed_at: Optional[datetime] = None,
) -> MenuItem:
    """
    Edit one item in place. The previous name and price are appended to the
    item's history whenever either of them changes.
    """
    for cat in menu:
        for item in cat.items:
            if item.code != code:
                continue
            new_name = item.name if name is None else name
            new_price = item.price if price is None else price
            if new_name != item.name or new_price != item.price:
                item.history.append(MenuItemHistory(
                    name=item.name,
                    price=item.price,
                    changed_at=changed_at or datetime.now(),
                ))
                item.name = new_name
                item.price = new_price
            return item
    raise KeyError(code)


def menu_document(menu: List[MenuCategory]) -> list:
    return [cat.model_dump(mode="json") for cat in menu]
