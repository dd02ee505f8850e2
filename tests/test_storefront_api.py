"""Tests for catalog, cart, order and profile endpoints."""
from datetime import timedelta

from storefront.models.user import User

SHIPPING = {
    "address": "Rua das Flores, 100",
    "city": "São Paulo",
    "state": "SP",
    "postalCode": "01000-000",
    "method": "sedex",
}


def session_headers(session_id="sess-1"):
    return {"X-Session-Id": session_id}


async def test_health(client):
    resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


# ══════════════════════════════════════════════
#  PRODUCTS
# ══════════════════════════════════════════════


async def test_list_products_hides_inactive(client, products):
    resp = await client.get("/api/products")

    assert resp.status_code == 200
    names = [p["name"] for p in resp.json()]
    assert names == ["Sérum Facial", "Máscara Capilar"]


async def test_filter_products_by_category_and_search(client, products):
    by_category = await client.get("/api/products", params={"category": "cabelo"})
    by_search = await client.get("/api/products", params={"q": "sérum"})

    assert [p["slug"] for p in by_category.json()] == ["mascara-capilar"]
    assert [p["slug"] for p in by_search.json()] == ["serum-facial"]


# ══════════════════════════════════════════════
#  CART
# ══════════════════════════════════════════════


async def test_cart_requires_owner(client):
    resp = await client.get("/api/cart")

    assert resp.status_code == 400
    assert resp.json() == {"error": "Cabeçalho X-Session-Id é obrigatório"}


async def test_replace_and_read_cart(client, products):
    resp = await client.put(
        "/api/cart",
        headers=session_headers(),
        json={
            "items": [
                {"productId": products[0], "quantity": 1},
                {"productId": products[1], "quantity": 2},
                {"productId": products[0], "quantity": 1},
            ]
        },
    )

    assert resp.status_code == 200
    body = resp.json()
    assert [(i["productId"], i["quantity"]) for i in body["items"]] == [(products[0], 2), (products[1], 2)]
    assert body["subtotal"] == 270.8

    again = await client.get("/api/cart", headers=session_headers())
    assert again.json() == body


async def test_carts_are_isolated_per_session(client, products):
    await client.put("/api/cart", headers=session_headers("a"), json={"items": [{"productId": products[0], "quantity": 1}]})

    resp = await client.get("/api/cart", headers=session_headers("b"))

    assert resp.json()["items"] == []


async def test_cart_rejects_inactive_product(client, products):
    resp = await client.put(
        "/api/cart",
        headers=session_headers(),
        json={"items": [{"productId": products[2], "quantity": 1}]},
    )

    assert resp.status_code == 400
    assert resp.json() == {"error": f"Produto {products[2]} não encontrado ou inativo"}


async def test_clear_cart(client, products):
    await client.put("/api/cart", headers=session_headers(), json={"items": [{"productId": products[0], "quantity": 1}]})

    resp = await client.delete("/api/cart", headers=session_headers())

    assert resp.status_code == 200
    assert resp.json()["removed"] == 1
    assert (await client.get("/api/cart", headers=session_headers())).json()["items"] == []


async def test_authenticated_cart_uses_token(client, auth_headers, products):
    await client.put(
        "/api/cart",
        headers=auth_headers(),
        json={"items": [{"productId": products[1], "quantity": 3}]},
    )

    resp = await client.get("/api/cart", headers=auth_headers())

    assert resp.json()["items"][0]["quantity"] == 3


async def test_invalid_token_is_unauthorized(client):
    resp = await client.get("/api/cart", headers={"Authorization": "Bearer not-a-token"})

    assert resp.status_code == 401
    assert resp.json() == {"error": "Token inválido ou expirado"}


async def test_expired_token_is_unauthorized(client, auth_headers):
    resp = await client.get("/api/cart", headers=auth_headers(expires_in=timedelta(minutes=-1)))

    assert resp.status_code == 401
    assert resp.json() == {"error": "Token inválido ou expirado"}


# ══════════════════════════════════════════════
#  ORDERS
# ══════════════════════════════════════════════


async def test_create_order_reprices_from_catalog(client, products):
    resp = await client.post(
        "/api/orders",
        headers=session_headers(),
        json={
            "items": [{"productId": products[0], "quantity": 2}, {"productId": products[1], "quantity": 1}],
            "shippingAddress": SHIPPING,
            "shippingCost": "15.00",
            "paymentMethod": "pix",
        },
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["subtotal"] == 225.3
    assert body["total"] == 240.3
    assert body["status"] == "pending"
    assert body["paymentMethod"] == "pix"
    assert [i["name"] for i in body["items"]] == ["Sérum Facial", "Máscara Capilar"]
    assert body["payments"] == []


async def test_create_order_with_unknown_product(client, products):
    resp = await client.post(
        "/api/orders",
        json={"items": [{"productId": 999, "quantity": 1}], "shippingAddress": SHIPPING},
    )

    assert resp.status_code == 400
    assert resp.json() == {"error": "Produto 999 não encontrado ou inativo"}


async def test_create_order_over_stock(client, products):
    resp = await client.post(
        "/api/orders",
        json={"items": [{"productId": products[0], "quantity": 11}], "shippingAddress": SHIPPING},
    )

    assert resp.status_code == 400
    assert "Estoque insuficiente" in resp.json()["error"]


async def test_create_order_without_items_is_bad_request(client):
    resp = await client.post("/api/orders", json={"shippingAddress": SHIPPING})

    assert resp.status_code == 400
    assert resp.json()["error"] == "Dados inválidos"


async def test_order_is_visible_only_to_its_session(client, products):
    created = await client.post(
        "/api/orders",
        headers=session_headers("owner"),
        json={"items": [{"productId": products[0], "quantity": 1}], "shippingAddress": SHIPPING},
    )
    order_id = created.json()["id"]

    mine = await client.get(f"/api/orders/{order_id}", headers=session_headers("owner"))
    theirs = await client.get(f"/api/orders/{order_id}", headers=session_headers("intruder"))

    assert mine.status_code == 200
    assert theirs.status_code == 404
    assert theirs.json() == {"error": "Pedido não encontrado"}


# ══════════════════════════════════════════════
#  PROFILE
# ══════════════════════════════════════════════


async def test_get_own_profile_fills_defaults(client, auth_headers, customer):
    resp = await client.get(f"/api/users/{customer}/profile", headers=auth_headers(customer))

    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == customer
    assert body["name"] == "Ana Souza"
    assert body["email"] == "ana@example.com"
    assert body["role"] == "customer"
    assert body["city"] == "Recife"
    assert body["phone"] == ""
    assert body["addressNumber"] == ""
    assert body["country"] == "Brasil"
    assert "createdAt" in body and "updatedAt" in body


async def test_profile_requires_token(client, customer):
    resp = await client.get(f"/api/users/{customer}/profile")

    assert resp.status_code == 401
    assert resp.json() == {"error": "Autenticação necessária"}


async def test_profile_of_another_user_is_forbidden(client, auth_headers, customer):
    read = await client.get(f"/api/users/{customer}/profile", headers=auth_headers(customer + 1))
    write = await client.put(
        f"/api/users/{customer}/profile",
        headers=auth_headers(customer + 1),
        json={"name": "Intrusa", "email": "x@example.com"},
    )

    assert read.status_code == 403
    assert write.status_code == 403
    assert read.json() == {"error": "Acesso negado"}


async def test_profile_of_unknown_user(client, auth_headers):
    resp = await client.get("/api/users/777/profile", headers=auth_headers(777))

    assert resp.status_code == 404
    assert resp.json() == {"error": "Usuário não encontrado"}


async def test_profile_with_non_numeric_id(client, auth_headers):
    resp = await client.get("/api/users/abc/profile", headers=auth_headers())

    assert resp.status_code == 400


async def test_update_profile_changes_only_sent_fields(client, auth_headers, customer):
    resp = await client.put(
        f"/api/users/{customer}/profile",
        headers=auth_headers(customer),
        json={
            "name": "Ana Souza Lima",
            "email": "ana.lima@example.com",
            "addressNumber": "42",
            "postalCode": "50000-000",
        },
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["name"] == "Ana Souza Lima"
    assert body["email"] == "ana.lima@example.com"
    assert body["addressNumber"] == "42"
    assert body["postalCode"] == "50000-000"
    assert body["city"] == "Recife"

    again = await client.get(f"/api/users/{customer}/profile", headers=auth_headers(customer))
    assert again.json()["email"] == "ana.lima@example.com"


async def test_update_profile_requires_name_and_email(client, auth_headers, customer):
    resp = await client.put(
        f"/api/users/{customer}/profile",
        headers=auth_headers(customer),
        json={"name": "  ", "email": "ana@example.com"},
    )

    assert resp.status_code == 400
    assert resp.json() == {"error": "Nome e e-mail são obrigatórios"}


async def test_update_profile_rejects_taken_email(client, auth_headers, customer, session_factory):
    async with session_factory() as db:
        db.add(User(username="bia", email="bia@example.com"))
        await db.commit()

    resp = await client.put(
        f"/api/users/{customer}/profile",
        headers=auth_headers(customer),
        json={"name": "Ana", "email": "bia@example.com"},
    )

    assert resp.status_code == 400
    assert resp.json() == {"error": "E-mail já cadastrado"}
