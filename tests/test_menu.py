import asyncio
import json
from datetime import datetime

import pytest
from pydantic import ValidationError

import ai_client
from menu_extraction import (
    ExtractedCategory,
    ExtractedItem,
    ExtractMenuOutput,
    InvalidImageError,
    MenuExtractionError,
    extract_menu_from_image,
)
from menu_store import load_menu, menu_document, save_menu, update_menu_item

IMAGE = "data:image/png;base64,iVBORw0KGgo="


@pytest.fixture()
def menu_file(tmp_path):
    doc = [
        {"category": "Coffee", "items": [{"name": "Latte", "price": 89, "code": 1}]},
        {
            "category": "Bakery",
            "subCategories": [
                {"name": "Pastries", "items": [{"name": "Croissant", "price": 90, "code": "3"}]},
                {"name": "Breads", "items": [{"name": "Focaccia", "price": 120, "code": "4"}]},
            ],
        },
    ]
    path = tmp_path / "menu.json"
    path.write_text(json.dumps(doc), encoding="utf-8")
    return str(path)


def test_load_menu_flattens_sub_categories(menu_file):
    menu = load_menu(menu_file)
    assert [c.category for c in menu] == ["Coffee", "Bakery"]
    assert [i.name for i in menu[1].items] == ["Croissant", "Focaccia"]
    latte = menu[0].items[0]
    assert latte.code == "1"
    assert latte.category == "Coffee"
    assert (latte.history, latte.recipe, latte.ingredients) == ([], [], [])


def test_load_menu_reads_camel_case_history(tmp_path):
    path = tmp_path / "menu.json"
    path.write_text(json.dumps([{
        "category": "Tea",
        "items": [{"name": "Chai", "price": 30, "code": "9",
                   "history": [{"name": "Masala Chai", "price": 25, "changedAt": "2026-01-05T10:00:00"}]}],
    }]), encoding="utf-8")
    [cat] = load_menu(str(path))
    assert cat.items[0].history[0].name == "Masala Chai"
    assert cat.items[0].history[0].changed_at == datetime(2026, 1, 5, 10, 0)


def test_update_menu_item_records_previous_name_and_price(menu_file):
    menu = load_menu(menu_file)
    when = datetime(2026, 10, 17, 9, 0)

    item = update_menu_item(menu, "1", price=95, changed_at=when)
    assert item.price == 95
    assert [(h.name, h.price, h.changed_at) for h in item.history] == [("Latte", 89, when)]

    update_menu_item(menu, "1", name="Caffe Latte", changed_at=when)
    assert [(h.name, h.price) for h in item.history] == [("Latte", 89), ("Latte", 95)]
    assert item.name == "Caffe Latte"


def test_update_menu_item_without_change_keeps_history_empty(menu_file):
    menu = load_menu(menu_file)
    item = update_menu_item(menu, "3", name="Croissant", price=90)
    assert item.history == []


def test_update_unknown_code_raises(menu_file):
    with pytest.raises(KeyError):
        update_menu_item(load_menu(menu_file), "404", price=1)


def test_save_menu_writes_pretty_json(tmp_path, menu_file):
    target = tmp_path / "nested" / "menu.json"
    save_menu(str(target), menu_document(load_menu(menu_file)))
    text = target.read_text(encoding="utf-8")
    assert text.startswith("[\n  {")
    reloaded = load_menu(str(target))
    assert [i.code for c in reloaded for i in c.items] == ["1", "3", "4"]


def test_extract_rejects_non_data_uri():
    with pytest.raises(InvalidImageError):
        asyncio.run(extract_menu_from_image("https://example.com/menu.png"))


def test_extract_without_output_raises(monkeypatch):
    async def nothing(*args, **kwargs):
        return None

    monkeypatch.setattr(ai_client, "generate", nothing)
    with pytest.raises(MenuExtractionError):
        asyncio.run(extract_menu_from_image(IMAGE))


def test_extract_wraps_ai_errors(ai_unavailable):
    with pytest.raises(MenuExtractionError, match="not configured"):
        asyncio.run(extract_menu_from_image(IMAGE))


def test_extract_adds_empty_recipe_history_and_ingredients(monkeypatch):
    seen = {}

    async def fake_generate(prompt_id, payload, output_model, image_data_uri=None):
        seen.update(prompt_id=prompt_id, image=image_data_uri)
        return ExtractMenuOutput(menu=[
            ExtractedCategory(category="Pizzas", items=[
                ExtractedItem(name="Margherita Pizza (Medium)", price=299, code="1"),
                ExtractedItem(name="Margherita Pizza (Large)", price=399, code="2"),
            ]),
        ])

    monkeypatch.setattr(ai_client, "generate", fake_generate)
    [cat] = asyncio.run(extract_menu_from_image(IMAGE))

    assert seen == {"prompt_id": "menu-extraction", "image": IMAGE}
    assert [i.code for i in cat.items] == ["1", "2"]
    for item in cat.items:
        assert item.category == "Pizzas"
        assert (item.recipe, item.history, item.ingredients) == ([], [], [])


def test_extracted_price_must_not_be_negative():
    with pytest.raises(ValidationError):
        ExtractedItem(name="Refund", price=-5, code="1")


def test_extract_turns_unusable_items_into_extraction_error(monkeypatch):
    async def fake_generate(*args, **kwargs):
        # skips validation, the way a hand-built response object could
        bad = ExtractedItem.model_construct(name="Refund", price=-5, code="1")
        return ExtractMenuOutput.model_construct(menu=[ExtractedCategory.model_construct(category="Misc", items=[bad])])

    monkeypatch.setattr(ai_client, "generate", fake_generate)
    with pytest.raises(MenuExtractionError, match="could not be used"):
        asyncio.run(extract_menu_from_image(IMAGE))
