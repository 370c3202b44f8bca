import pytest

from shared.utils import NotFoundException
from storefront.cart import add_to_cart
from storefront.checkout import complete_order
from storefront.reporting import (
    dashboard_stats, get_user_detail, list_orders, list_products, list_users,
)

from conftest import insert_product, insert_user


async def test_dashboard_on_empty_store(db):
    stats = await dashboard_stats(db)

    assert stats.total_users == 0
    assert stats.total_orders == 0
    assert stats.total_products == 0
    assert stats.total_revenue == 0
    assert stats.recent_orders == []
    assert stats.low_stock_products == []


async def test_dashboard_counts_and_revenue(db):
    asha = await insert_user(db)
    ravi = await insert_user(db, email="ravi@mail.com", phone="9123456780")
    lamp = await insert_product(db, name="Lamp", price=300.0, stock=2, low_stock_alert=5)
    await insert_product(db, name="Rug", price=1200.0, stock=40, low_stock_alert=5)

    await add_to_cart(db, asha.id, lamp.id, 2)
    await complete_order(db, asha.id, "111122223333")
    await add_to_cart(db, ravi.id, lamp.id, 1)
    await complete_order(db, ravi.id, "444455556666")

    stats = await dashboard_stats(db)

    assert stats.total_users == 2
    assert stats.total_orders == 2
    assert stats.total_products == 2
    assert stats.total_revenue == 900.0
    assert len(stats.recent_orders) == 2
    assert {u.email for u in stats.recent_users} == {"asha@mail.com", "ravi@mail.com"}
    assert [p.name for p in stats.low_stock_products] == ["Lamp"]


async def test_recent_lists_are_capped(db):
    for i in range(4):
        await insert_user(db, email=f"user{i}@mail.com", phone=f"900000000{i}")

    stats = await dashboard_stats(db, recent=3)
    assert stats.total_users == 4
    assert len(stats.recent_users) == 3


async def test_paginated_lists(db):
    for i in range(5):
        await insert_product(db, name=f"Item {i}")

    items, page = await list_products(db, page=2, limit=2)
    assert len(items) == 2
    assert page.total == 5
    assert page.pages == 3
    assert page.has_previous and page.has_next

    items, page = await list_products(db, page=3, limit=2)
    assert len(items) == 1
    assert not page.has_next


async def test_list_users_and_orders(db):
    user = await insert_user(db)
    product = await insert_product(db)
    await add_to_cart(db, user.id, product.id, 1)
    await complete_order(db, user.id, "999988887777")

    users, user_page = await list_users(db)
    orders, order_page = await list_orders(db)

    assert [u.email for u in users] == ["asha@mail.com"]
    assert user_page.total == 1
    assert [o.upi_transaction_id for o in orders] == ["999988887777"]
    assert order_page.pages == 1


async def test_user_detail_includes_their_orders(db):
    user = await insert_user(db)
    other = await insert_user(db, email="other@mail.com", phone="9111111111")
    product = await insert_product(db)
    for buyer in (user, other):
        await add_to_cart(db, buyer.id, product.id, 1)
        await complete_order(db, buyer.id, "123412341234")

    customer, orders = await get_user_detail(db, user.id)

    assert customer.email == "asha@mail.com"
    assert len(orders) == 1
    assert orders[0].user_id == user.id


async def test_user_detail_missing_user(db):
    with pytest.raises(NotFoundException):
        await get_user_detail(db, "64b7f0c2a1b2c3d4e5f60718")
    with pytest.raises(NotFoundException):
        await get_user_detail(db, "bogus")
