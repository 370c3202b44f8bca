"""End-to-end customer journeys through the HTTP surface."""

import re

from conftest import PASSWORD, insert_product, login, register, run

UPI = "123456789012"


def line_ids(html):
    return re.findall(r'href="/removefromcart/([0-9a-f]+)"', html)


# --- Registration & login ---

def test_landing_page_is_public(client):
    response = client.get("/")
    assert response.status_code == 200
    assert 'href="/register"' in response.text


def test_security_headers(client):
    response = client.get("/")
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "default-src 'self'" in response.headers["Content-Security-Policy"]


def test_register_then_login_with_email_or_phone(client):
    response = register(client)
    assert "Registration successful" in response.text

    by_email = login(client, "ASHA@mail.com")
    assert by_email.status_code == 303
    assert by_email.headers["location"] == "/home"
    assert "httponly" in by_email.headers["set-cookie"].lower()

    by_phone = login(client, "9876543210")
    assert by_phone.status_code == 303


def test_duplicate_registration_is_a_conflict(client):
    register(client)
    response = client.post("/register-step1", data={
        "email": "asha@mail.com", "phone": "9000011111", "password": PASSWORD,
    })
    assert response.status_code == 409

    response = client.post("/register-step1", data={
        "email": "new@mail.com", "phone": "9876543210", "password": PASSWORD,
    })
    assert response.status_code == 409


def test_registration_validation(client):
    response = client.post("/register-step1", data={
        "email": "not-an-email", "phone": "12", "password": "short",
    })
    assert response.status_code == 400

    response = client.post("/register-step2", data={
        "token": "tampered", "state": "Kerala", "district": "Ernakulam",
        "area_name": "Kakkanad", "pincode": "682030",
    })
    assert response.status_code == 401


def test_bad_pincode_keeps_registration_on_step_two(client):
    response = client.post("/register-step1", data={
        "email": "asha@mail.com", "phone": "9876543210", "password": PASSWORD,
    })
    token = re.search(r'name="token" value="([^"]+)"', response.text).group(1)

    response = client.post("/register-step2", data={
        "token": token, "state": "Kerala", "district": "Ernakulam",
        "area_name": "Kakkanad", "pincode": "12ab",
    })
    assert response.status_code == 400
    assert 'name="token"' in response.text
    assert login(client).status_code == 401


def test_wrong_password(client):
    register(client)
    response = login(client, password="Wrong12345")
    assert response.status_code == 401
    assert "Incorrect email/phone or password" in response.text


def test_pages_require_login(client):
    for path in ("/home", "/cart", "/checkout", "/orders"):
        response = client.get(path, follow_redirects=False)
        assert response.status_code == 401, path
        assert 'action="/login"' in response.text


def test_logout_clears_the_session(customer):
    customer.get("/logout")
    assert customer.get("/home").status_code == 401


# --- Catalog ---

def test_home_search_is_ranked(customer, app_db):
    run(insert_product(app_db, name="Sock", brand="Bata", category="Footwear", tags=["nova"]))
    run(insert_product(app_db, name="Cap", brand="Nova", category="Accessories", tags=[]))
    run(insert_product(app_db, name="Nova Shoe", brand="Bata", category="Footwear", tags=[]))
    run(insert_product(app_db, name="Lamp", brand="Philips", category="Home", tags=[]))

    response = customer.get("/home", params={"search": "nova"})
    assert response.status_code == 200
    names = re.findall(r"<h3>([^<]+)</h3>", response.text)
    assert names == ["Nova Shoe", "Cap", "Sock"]


def test_search_length_is_capped(customer, client):
    assert customer.get("/home", params={"search": "x" * 101}).status_code == 400
    assert client.get("/api/search", params={"q": "x" * 101}).status_code == 400


def test_api_search(client, app_db):
    run(insert_product(app_db, name="Steel Bottle", brand="Milton", category="Kitchen"))

    response = client.get("/api/search", params={"q": "milton"})
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert [p["name"] for p in body["data"]] == ["Steel Bottle"]

    assert client.get("/api/search", params={"q": "nothing-like-this"}).json()["data"] == []


def test_view_product_and_missing_product(customer, app_db):
    product = run(insert_product(app_db, name="Kettle"))

    assert "Kettle" in customer.get(f"/viewproduct/{product.id}").text
    assert customer.get("/viewproduct/64b7f0c2a1b2c3d4e5f60718").status_code == 404
    assert customer.get("/viewproduct/not-an-id").status_code == 404


def test_product_names_are_escaped(customer, app_db):
    run(insert_product(app_db, name="<script>alert(1)</script>"))

    response = customer.get("/home")
    assert "<script>alert(1)</script>" not in response.text
    assert "&lt;script&gt;" in response.text


# --- Cart & checkout ---

def test_add_merge_and_remove(customer, app_db):
    product = run(insert_product(app_db, name="Mug", price=150.0))

    response = customer.post(f"/addtocart/{product.id}", data={"quantity": "2"}, follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/cart"
    customer.post(f"/addtocart/{product.id}", data={"quantity": "2"})

    cart = customer.get("/cart")
    ids = line_ids(cart.text)
    assert len(ids) == 1
    assert "Items: 4" in cart.text

    customer.get(f"/removefromcart/{ids[0]}")
    assert "Your cart is empty" in customer.get("/cart").text
    # Removing again is harmless
    assert customer.get(f"/removefromcart/{ids[0]}").status_code == 200


def test_invalid_quantity_is_rejected(customer, app_db):
    product = run(insert_product(app_db))
    response = customer.post(f"/addtocart/{product.id}", data={"quantity": "0"})
    assert response.status_code == 400
    response = customer.post(f"/addtocart/{product.id}", data={"quantity": "lots"})
    assert response.status_code == 400
    response = customer.post(f"/addtocart/{product.id}", data={"quantity": "100000000000000000000"})
    assert response.status_code == 400
    response = customer.post(f"/buynow/{product.id}", data={"quantity": "1001"}, follow_redirects=False)
    assert response.status_code == 400
    assert "Your cart is empty" in customer.get("/cart").text


def test_checkout_with_empty_cart_goes_back_to_cart(customer):
    response = customer.get("/checkout", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/cart"


def test_cart_checkout_places_order(customer, app_db):
    product = run(insert_product(app_db, name="Mug", price=150.0))
    customer.post(f"/addtocart/{product.id}", data={"quantity": "3"})

    assert "Amount: ₹450.00" in customer.get("/checkout").text

    response = customer.post("/completeorder", data={"upi_transaction_id": UPI, "mode": "cart"})
    assert response.status_code == 201
    assert "your order is placed" in response.text

    assert "Your cart is empty" in customer.get("/cart").text
    orders = customer.get("/orders").text
    assert "Mug" in orders
    assert UPI in orders
    assert run(app_db.orders.count_documents({})) == 1


def test_malformed_upi_id_is_rejected(customer, app_db):
    product = run(insert_product(app_db))
    customer.post(f"/addtocart/{product.id}", data={"quantity": "1"})

    for upi in ("", "12345", "abcdefghijkl", "1234567890123"):
        response = customer.post("/completeorder", data={"upi_transaction_id": upi, "mode": "cart"})
        assert response.status_code == 400, upi

    assert len(line_ids(customer.get("/cart").text)) == 1
    assert run(app_db.orders.count_documents({})) == 0


def test_empty_cart_order_is_rejected(customer):
    response = customer.post("/completeorder", data={"upi_transaction_id": UPI, "mode": "cart"})
    assert response.status_code == 400


def test_buy_now_leaves_cart_alone(customer, app_db):
    mug = run(insert_product(app_db, name="Mug", price=150.0))
    watch = run(insert_product(app_db, name="Watch", price=2500.0))
    customer.post(f"/addtocart/{mug.id}", data={"quantity": "1"})

    response = customer.post(f"/buynow/{watch.id}", data={"quantity": "1"}, follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/checkout"

    checkout = customer.get("/checkout").text
    assert "Buy now" in checkout
    assert "Watch" in checkout
    assert "Mug" not in checkout

    response = customer.post("/completeorder", data={"upi_transaction_id": UPI, "mode": "buy_now"})
    assert response.status_code == 201

    order = run(app_db.orders.find_one({}))
    assert [line["name"] for line in order["products"]] == ["Watch"]
    assert order["source"] == "buy_now"
    assert len(line_ids(customer.get("/cart").text)) == 1


def test_visiting_cart_abandons_buy_now(customer, app_db):
    mug = run(insert_product(app_db, name="Mug", price=150.0))
    watch = run(insert_product(app_db, name="Watch", price=2500.0))
    customer.post(f"/addtocart/{mug.id}", data={"quantity": "1"})
    customer.post(f"/buynow/{watch.id}", data={"quantity": "1"}, follow_redirects=False)

    customer.get("/cart")
    checkout = customer.get("/checkout").text
    assert "Mug" in checkout
    assert "Watch" not in checkout

    response = customer.post("/completeorder", data={"upi_transaction_id": UPI, "mode": "buy_now"})
    assert response.status_code == 400
    assert run(app_db.orders.count_documents({})) == 0


def test_carts_are_per_user(client, app_db):
    product = run(insert_product(app_db, name="Mug"))
    register(client)
    register(client, email="ravi@mail.com", phone="9123456780")

    login(client)
    client.post(f"/addtocart/{product.id}", data={"quantity": "1"})

    login(client, "ravi@mail.com")
    assert "Your cart is empty" in client.get("/cart").text


def test_login_is_rate_limited(client, monkeypatch):
    from shared.security_config import limiter

    monkeypatch.setattr(limiter, "enabled", True)
    statuses = [login(client, "nobody@mail.com", "Wrong12345").status_code for _ in range(6)]

    assert statuses[:5] == [401] * 5
    assert statuses[5] == 429
