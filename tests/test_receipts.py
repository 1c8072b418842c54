import asyncio

import ai_client
import receipts
from pricing import calculate_pricing
from receipts import (
    PreviewCoordinator,
    ReceiptLine,
    ReceiptPreview,
    ReceiptRequest,
    coordinator_for,
    format_receipt_locally,
    generate_receipt,
)


def _order(discount: float = 10) -> ReceiptRequest:
    items = [ReceiptLine(name="Latte", quantity=2, price=89), ReceiptLine(name="Croissant", quantity=1, price=90)]
    subtotal = 268.0
    return ReceiptRequest(
        venue_name="Up & Above Cafe",
        items=items,
        discount=discount,
        subtotal=subtotal,
        total=round(subtotal * (1 - discount / 100), 2),
    )


def _single(total: float) -> ReceiptRequest:
    return ReceiptRequest(
        venue_name="Cafe",
        items=[ReceiptLine(name="Tea", quantity=1, price=total)],
        subtotal=total,
        total=total,
    )


def test_generate_receipt_returns_empty_preview_when_ai_fails(ai_unavailable):
    out = asyncio.run(generate_receipt(_order()))
    assert out == ReceiptPreview(receipt_preview="")


def test_generate_receipt_returns_empty_preview_on_null_output(monkeypatch):
    async def nothing(*args, **kwargs):
        return None

    monkeypatch.setattr(ai_client, "generate", nothing)
    assert asyncio.run(generate_receipt(_order())).receipt_preview == ""


def test_generate_receipt_passes_ai_text_through(monkeypatch):
    seen = {}

    async def fake_generate(prompt_id, payload, output_model, image_data_uri=None):
        seen["prompt_id"] = prompt_id
        seen["text"] = ai_client.PROMPTS[prompt_id](payload)
        return output_model(receipt_preview="RECEIPT")

    monkeypatch.setattr(ai_client, "generate", fake_generate)
    out = asyncio.run(generate_receipt(_order()))
    assert out.receipt_preview == "RECEIPT"
    assert seen["prompt_id"] == "receipt-preview"
    assert "Up & Above Cafe" in seen["text"]
    assert 'If the discount is 0, do not show the "Discount" line.' in seen["text"]


def test_local_receipt_shows_discount_line_only_when_discounted():
    with_discount = format_receipt_locally(_order(10))
    assert "Discount (10%):" in with_discount
    assert "-Rs.26.80" in with_discount
    assert "Rs.241.20" in with_discount

    without = format_receipt_locally(_order(0))
    assert "Discount" not in without
    assert "Subtotal:" in without and "Total:" in without


def test_local_receipt_layout():
    text = format_receipt_locally(_order(10))
    lines = text.splitlines()
    assert lines[1].strip() == "Up & Above Cafe"
    assert lines[5].startswith("1. 2 x Latte") and lines[5].endswith("Rs.178.00")
    assert lines[6].startswith("2. 1 x Croissant") and lines[6].endswith("Rs.90.00")
    assert "Thank you for dining!" in text


def test_coordinator_only_calls_ai_for_the_last_edit_in_a_burst():
    calls = []

    async def formatter(req):
        calls.append(req.total)
        return ReceiptPreview(receipt_preview=f"total {req.total:g}")

    async def run():
        c = PreviewCoordinator(debounce_seconds=0.01, formatter=formatter)
        results = await asyncio.gather(c.submit(_single(1)), c.submit(_single(2)), c.submit(_single(3)))
        return c, results

    c, results = asyncio.run(run())
    assert calls == [3]
    assert [r.superseded for r in results] == [True, True, False]
    assert results[2].receipt_preview == "total 3"
    assert c.latest.sequence == 3


def test_coordinator_discards_slow_response_from_superseded_request():
    async def run():
        gate = asyncio.Event()

        async def formatter(req):
            if req.total == 1:
                await gate.wait()
            return ReceiptPreview(receipt_preview=f"total {req.total:g}")

        c = PreviewCoordinator(debounce_seconds=0, formatter=formatter)
        first = asyncio.create_task(c.submit(_single(1)))
        await asyncio.sleep(0.01)  # first is now waiting on the AI
        second = await c.submit(_single(2))
        gate.set()
        return c, await first, second

    c, first, second = asyncio.run(run())
    assert first.superseded is True
    assert first.receipt_preview == ""
    assert second.receipt_preview == "total 2"
    assert c.latest == second


def test_coordinator_falls_back_to_local_layout():
    async def empty(req):
        return ReceiptPreview(receipt_preview="")

    c = PreviewCoordinator(debounce_seconds=0, formatter=empty)
    result = asyncio.run(c.submit(_order(10)))
    assert result.fallback_used is True
    assert result.receipt_preview == format_receipt_locally(_order(10))


def test_local_receipt_lines_agree_on_half_cent_discount():
    items = [ReceiptLine(name="Masala Dosa", quantity=1, price=110.5)]
    p = calculate_pricing(items, 5).rounded()
    req = ReceiptRequest(
        venue_name="Cafe",
        items=items,
        discount=5,
        subtotal=p.subtotal,
        discount_amount=p.discount_amount,
        total=p.total,
    )
    lines = format_receipt_locally(req).splitlines()
    assert lines[8].endswith("Rs.110.50")
    assert lines[9].startswith("Discount (5%):") and lines[9].endswith("-Rs.5.53")
    assert lines[11].endswith("Rs.104.97")


def test_discount_line_defaults_to_subtotal_minus_total():
    req = ReceiptRequest(venue_name="Cafe", items=[], discount=5, subtotal=110.5, total=104.97)
    assert req.discount_line_amount() == 5.53


def test_coordinator_for_follows_current_debounce_and_forgets_idle_registers(monkeypatch):
    monkeypatch.setattr(receipts, "_coordinators", receipts.OrderedDict())
    monkeypatch.setattr(receipts, "MAX_REGISTERS", 2)

    first = coordinator_for("till-1", 0.5)
    assert coordinator_for("till-1", 0.1) is first
    assert first.debounce_seconds == 0.1

    coordinator_for("till-2")
    coordinator_for("till-1")
    coordinator_for("till-3")
    assert list(receipts._coordinators) == ["till-1", "till-3"]
