"""Tests for the HTTP API."""
import asyncio
from collections.abc import Awaitable, Callable
from decimal import Decimal

from httpx import AsyncClient

from models.product import Product
from models.user import User

MakeProduct = Callable[..., Awaitable[Product]]
AuthHeaders = Callable[..., dict[str, str]]


# =============================================================================
# Auth and health
# =============================================================================


async def test__health__reports_local_change_feed(client: AsyncClient) -> None:
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "healthy",
        "database": "healthy",
        "change_feed": "local",
    }
    assert response.headers["x-content-type-options"] == "nosniff"


async def test__cart__requires_token(client: AsyncClient) -> None:
    response = await client.get("/cart/")

    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


async def test__cart__rejects_bad_signature(
    client: AsyncClient, customer: User, auth_headers: AuthHeaders,
) -> None:
    response = await client.get("/cart/", headers=auth_headers(customer.uid, secret="wrong"))

    assert response.status_code == 401


async def test__cart__rejects_expired_token(
    client: AsyncClient, customer: User, auth_headers: AuthHeaders,
) -> None:
    response = await client.get("/cart/", headers=auth_headers(customer.uid, expires_in=-10))

    assert response.status_code == 401
    assert response.json()["detail"] == "Token has expired"


async def test__cart__unknown_subject(client: AsyncClient, auth_headers: AuthHeaders) -> None:
    response = await client.get("/cart/", headers=auth_headers("ghost"))

    assert response.status_code == 401
    assert response.json()["error"] == "unauthenticated"


async def test__cart__suspended_account(
    client: AsyncClient, make_user, auth_headers: AuthHeaders,
) -> None:
    await make_user("suspended-1", suspended=True)

    response = await client.get("/cart/", headers=auth_headers("suspended-1"))

    assert response.status_code == 403
    assert response.json()["error"] == "account_suspended"


# =============================================================================
# Products
# =============================================================================


async def test__get_product__public(client: AsyncClient, make_product: MakeProduct) -> None:
    await make_product("p1", price="19.99")

    response = await client.get("/products/p1")

    assert response.status_code == 200
    assert Decimal(response.json()["price"]) == Decimal("19.99")


async def test__get_product__not_found(client: AsyncClient) -> None:
    response = await client.get("/products/missing")

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


async def test__create_product__customer_forbidden(
    client: AsyncClient, customer: User, auth_headers: AuthHeaders,
) -> None:
    response = await client.post(
        "/products/",
        json={"name": "Lamp", "description": "d", "category": "home", "price": "5",
              "quantity_available": 1},
        headers=auth_headers(customer.uid),
    )

    assert response.status_code == 403
    body = response.json()
    assert body["error"] == "permission_denied"
    assert body["required"] == "admin"
    assert body["actual"] == "customer"


async def test__create_product__admin(
    client: AsyncClient, admin: User, auth_headers: AuthHeaders,
) -> None:
    response = await client.post(
        "/products/",
        json={"name": "Lamp", "description": "d", "category": "home", "price": "5",
              "quantity_available": 1},
        headers=auth_headers(admin.uid),
    )

    assert response.status_code == 201
    created = response.json()
    assert created["name"] == "Lamp"
    assert (await client.get(f"/products/{created['id']}")).status_code == 200


async def test__create_product__validation_error_names_field(
    client: AsyncClient, admin: User, auth_headers: AuthHeaders,
) -> None:
    response = await client.post(
        "/products/",
        json={"name": "Lamp", "description": "d", "category": "home", "price": "0",
              "quantity_available": 1},
        headers=auth_headers(admin.uid),
    )

    assert response.status_code == 422
    assert response.json()["field"] == "price"


async def test__update_product__admin(
    client: AsyncClient, admin: User, make_product: MakeProduct, auth_headers: AuthHeaders,
) -> None:
    await make_product("p1", quantity_available=2)

    response = await client.patch(
        "/products/p1", json={"quantity_available": 7}, headers=auth_headers(admin.uid),
    )

    assert response.status_code == 200
    assert response.json()["quantity_available"] == 7


async def test__update_product__null_flag_is_validation_error(
    client: AsyncClient, admin: User, make_product: MakeProduct, auth_headers: AuthHeaders,
) -> None:
    await make_product("p1")

    response = await client.patch(
        "/products/p1", json={"active": None}, headers=auth_headers(admin.uid),
    )

    assert response.status_code == 422
    assert response.json()["field"] == "active"


# =============================================================================
# Cart
# =============================================================================


async def test__cart__add_update_remove(
    client: AsyncClient, customer: User, make_product: MakeProduct, auth_headers: AuthHeaders,
) -> None:
    await make_product("p1", price="10.00")
    headers = auth_headers(customer.uid)

    added = await client.post("/cart/items", json={"product_id": "p1", "quantity": 2}, headers=headers)
    assert added.status_code == 200
    assert added.json()["items"][0]["quantity"] == 2
    assert added.json()["version"] == 1

    updated = await client.patch("/cart/items/p1", json={"quantity": 5}, headers=headers)
    assert updated.json()["items"][0]["quantity"] == 5

    removed = await client.patch("/cart/items/p1", json={"quantity": 0}, headers=headers)
    assert removed.json()["items"] == []

    current = await client.get("/cart/", headers=headers)
    assert current.json()["version"] == 3


async def test__cart__add_unknown_product(
    client: AsyncClient, customer: User, auth_headers: AuthHeaders,
) -> None:
    response = await client.post(
        "/cart/items", json={"product_id": "missing"}, headers=auth_headers(customer.uid),
    )

    assert response.status_code == 404


async def test__cart__clear(
    client: AsyncClient, customer: User, make_product: MakeProduct, auth_headers: AuthHeaders,
) -> None:
    await make_product("p1")
    headers = auth_headers(customer.uid)
    await client.post("/cart/items", json={"product_id": "p1"}, headers=headers)

    response = await client.delete("/cart/", headers=headers)

    assert response.status_code == 200
    assert response.json()["items"] == []


# =============================================================================
# Orders
# =============================================================================


def _order_body(*items: tuple[str, int]) -> dict:
    return {
        "items": [{"id": product_id, "quantity": quantity} for product_id, quantity in items],
        "shipping": {"address": "1 Main St", "name": "Pat Doe"},
    }


async def test__place_order__created(
    client: AsyncClient, customer: User, make_product: MakeProduct, auth_headers: AuthHeaders,
) -> None:
    await make_product("p1", price="100.00", quantity_available=3)

    response = await client.post(
        "/orders/", json=_order_body(("p1", 2)), headers=auth_headers(customer.uid),
    )

    assert response.status_code == 201
    body = response.json()
    assert Decimal(body["order"]["total"]) == Decimal("266.00")
    assert body["order"]["status"] == "processing"
    assert [effect["name"] for effect in body["side_effects"]] == [
        "order_confirmation",
        "search_index",
    ]
    assert all(effect["succeeded"] for effect in body["side_effects"])
    product = (await client.get("/products/p1")).json()
    assert product["quantity_available"] == 1


async def test__place_order__out_of_stock(
    client: AsyncClient, customer: User, make_product: MakeProduct, auth_headers: AuthHeaders,
) -> None:
    await make_product("p1", quantity_available=1)

    response = await client.post(
        "/orders/", json=_order_body(("p1", 2)), headers=auth_headers(customer.uid),
    )

    assert response.status_code == 409
    assert response.json()["error"] == "out_of_stock"
    assert response.json()["product_id"] == "p1"


async def test__place_order__missing_address(
    client: AsyncClient, customer: User, make_product: MakeProduct, auth_headers: AuthHeaders,
) -> None:
    await make_product("p1")

    response = await client.post(
        "/orders/", json={"items": [{"id": "p1", "quantity": 1}]},
        headers=auth_headers(customer.uid),
    )

    assert response.status_code == 422
    assert response.json()["field"] == "shipping.address"


async def test__place_order__stale_login(
    client: AsyncClient, customer: User, make_product: MakeProduct, auth_headers: AuthHeaders,
) -> None:
    await make_product("p1")

    response = await client.post(
        "/orders/",
        json=_order_body(("p1", 1)),
        headers=auth_headers(customer.uid, authenticated_ago=2 * 86_400),
    )

    assert response.status_code == 401
    assert response.json()["error"] == "session_expired"


async def test__place_order__stale_login_not_masked_by_fresh_request(
    client: AsyncClient, customer: User, make_product: MakeProduct, auth_headers: AuthHeaders,
) -> None:
    await make_product("p1", quantity_available=5)
    stale = auth_headers(customer.uid, authenticated_ago=2 * 86_400)
    fresh = auth_headers(customer.uid)

    stale_response, fresh_response = await asyncio.gather(
        client.post("/orders/", json=_order_body(("p1", 1)), headers=stale),
        client.post("/orders/", json=_order_body(("p1", 1)), headers=fresh),
    )
    # A fresh request made after the stale one does not vouch for it either.
    late_stale = await client.post("/orders/", json=_order_body(("p1", 1)), headers=stale)

    assert stale_response.status_code == 401
    assert stale_response.json()["error"] == "session_expired"
    assert fresh_response.status_code == 201
    assert late_stale.status_code == 401
    orders = await client.get("/orders/", headers=fresh)
    assert len(orders.json()) == 1


async def test__orders__list_get_and_status(
    client: AsyncClient,
    customer: User,
    make_user,
    make_product: MakeProduct,
    auth_headers: AuthHeaders,
) -> None:
    await make_user("support-1", role="support")
    await make_product("p1")
    placed = await client.post(
        "/orders/", json=_order_body(("p1", 1)), headers=auth_headers(customer.uid),
    )
    order_id = placed.json()["order"]["id"]

    listed = await client.get("/orders/", headers=auth_headers(customer.uid))
    assert [order["id"] for order in listed.json()] == [order_id]

    fetched = await client.get(f"/orders/{order_id}", headers=auth_headers(customer.uid))
    assert fetched.status_code == 200

    denied = await client.patch(
        f"/orders/{order_id}/status", json={"status": "shipped"},
        headers=auth_headers(customer.uid),
    )
    assert denied.status_code == 403
    assert denied.json()["required"] == "update:orders"

    shipped = await client.patch(
        f"/orders/{order_id}/status", json={"status": "shipped"},
        headers=auth_headers("support-1"),
    )
    assert shipped.status_code == 200
    assert shipped.json()["status"] == "shipped"

    invalid = await client.patch(
        f"/orders/{order_id}/status", json={"status": "processing"},
        headers=auth_headers("support-1"),
    )
    assert invalid.status_code == 409
    assert invalid.json()["error"] == "invalid_state"
