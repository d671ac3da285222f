import pytest

from conftest import BURGER, COLA, FRIES, LUNCH_SET
from kitchenpos.core.schemas import ComboSelection
from kitchenpos.services.inventory import InventoryService
from kitchenpos.services.lines import CartLine, ComboItem, SimpleItem
from kitchenpos.services.stock_plan import StockPlan, apply_plan, plan_deductions
from kitchenpos.services.store import MATERIA_PRIMA, PRODUCTS


def _simple(product, quantity=1, removed=()):
    return CartLine(id=f"l-{product.id}-{len(removed)}", item=SimpleItem(product, tuple(removed)),
                    unit_price=product.price, quantity=quantity)


def _lunch_line(quantity=1, removed=("pickles",)):
    selections = (
        ComboSelection(slot_id="s-main", slot_name="Main", product_id="p-burger", product_name="Burger",
                       product_price=1000, removed_ingredients=list(removed)),
        ComboSelection(slot_id="s-drink", slot_name="Drink", product_id="p-cola", product_name="Cola",
                       product_price=300),
    )
    return CartLine(id="combo_x", item=ComboItem(LUNCH_SET, selections), unit_price=1200, quantity=quantity)


@pytest.mark.asyncio
async def test_lunch_set_excludes_removed_pickles(store):
    snapshot = await InventoryService(store).snapshot()
    plan = plan_deductions([_lunch_line()], snapshot)

    assert dict(plan.products) == {}
    assert dict(plan.materials) == {
        "mp-bun": 1,
        "mp-patty": 1,
        "mp-syrup": 0.25,
        "mp-cup": 1,
    }


@pytest.mark.asyncio
async def test_combo_quantity_scales_each_selection(store):
    snapshot = await InventoryService(store).snapshot()
    plan = plan_deductions([_lunch_line(quantity=3, removed=())], snapshot)
    assert plan.materials["mp-bun"] == 3
    assert plan.materials["mp-pickles"] == 6
    assert plan.materials["mp-cup"] == 3
    assert plan.recipe_units == {"p-burger": 3, "p-cola": 3}


@pytest.mark.asyncio
async def test_lines_aggregate_into_one_entry_per_record(store):
    snapshot = await InventoryService(store).snapshot()
    plan = plan_deductions(
        [_simple(BURGER, 2), _simple(BURGER, 1, ["pickles"]), _simple(FRIES, 4), _lunch_line()],
        snapshot,
    )
    assert plan.products == {"p-fries": 4}
    assert plan.materials["mp-bun"] == 4
    assert plan.materials["mp-pickles"] == 4


@pytest.mark.asyncio
async def test_shortages_names_missing_records(store):
    snapshot = await InventoryService(store).snapshot()
    plan = plan_deductions([_simple(FRIES, 51), _simple(COLA, 21)], snapshot)
    assert sorted(plan.shortages(snapshot)) == ["Fries", "cup", "syrup"]


@pytest.mark.asyncio
async def test_apply_plan_writes_once_per_kind(store):
    writes = []
    original = store.put_many

    async def spy(kind, records):
        records = list(records)
        writes.append((kind, [r["id"] for r in records]))
        await original(kind, records)

    store.put_many = spy
    snapshot = await InventoryService(store).snapshot()
    applied = await apply_plan(plan_deductions([_simple(FRIES, 2), _simple(BURGER, 2), _lunch_line()], snapshot), store)

    assert [k for k, _ in writes] == [PRODUCTS, MATERIA_PRIMA]
    assert applied.products == {"p-fries": 2}
    assert applied.skipped == []
    assert (await store.get(PRODUCTS, "p-fries"))["stock"] == 48
    assert (await store.get(MATERIA_PRIMA, "mp-bun"))["stock"] == 17
    assert (await store.get(MATERIA_PRIMA, "mp-pickles"))["stock"] == 26
    assert (await store.get(MATERIA_PRIMA, "mp-syrup"))["stock"] == 4.75


@pytest.mark.asyncio
async def test_apply_plan_clamps_products_and_skips_negative_materials(store):
    plan = StockPlan()
    plan.products["p-fries"] = 80
    plan.materials["mp-cup"] = 25
    plan.materials["mp-bun"] = 5

    applied = await apply_plan(plan, store)

    assert (await store.get(PRODUCTS, "p-fries"))["stock"] == 0
    assert (await store.get(MATERIA_PRIMA, "mp-cup"))["stock"] == 20
    assert (await store.get(MATERIA_PRIMA, "mp-bun"))["stock"] == 15
    assert applied.skipped == ["cup"]
