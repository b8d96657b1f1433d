from bson import ObjectId

from store import MongoStore
from tests.conftest import SHIPPING, auth_header, insert_user, verify_body

BOOK = {
    "title": "Maha Prasthanam",
    "author": "Sri Sri",
    "publisher": "Visalaandhra Publishing House",
    "isbn": "978-81-7524-002-9",
    "price": 120,
    "originalPrice": 150,
    "description": "Landmark collection of revolutionary Telugu poetry.",
    "image": "/uploads/books/maha-prasthanam.jpg",
    "category": "poetry",
    "pages": 96,
    "language": "Telugu",
    "stockCount": 4,
}

ADDRESS = {
    "name": "Ravi Kumar",
    "street": "12 MG Road",
    "city": "Vijayawada",
    "state": "Andhra Pradesh",
    "pincode": "520001",
    "phone": "9876543210",
}


def _admin(mongo):
    return auth_header(insert_user(mongo, name="Admin", email="admin@example.com", role="admin"))


def _create_book(api, headers, **overrides):
    res = api.post("/api/books", json={**BOOK, **overrides}, headers=headers)
    assert res.status_code == 201, res.json()
    return res.json()["data"]["book"]


# ----------------------- Auth -----------------------
def test_register_and_me(api, mongo):
    res = api.post("/api/auth/register", json={"name": "Sita", "email": "Sita@Example.com", "password": "secret1"})
    assert res.status_code == 201
    data = res.json()["data"]
    assert data["user"]["email"] == "sita@example.com"
    assert "passwordHash" not in data["user"]
    assert mongo["user"].find_one({"email": "sita@example.com"})["passwordHash"].startswith("pbkdf2_sha256$")

    me = api.get("/api/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
    assert me.status_code == 200
    assert me.json()["data"]["user"]["name"] == "Sita"

    again = api.post("/api/auth/register", json={"name": "Sita", "email": "sita@example.com", "password": "secret1"})
    assert again.status_code == 400
    assert again.json()["message"] == "Email already registered"


def test_register_requires_contact(api):
    res = api.post("/api/auth/register", json={"name": "Sita", "password": "secret1"})
    assert res.status_code == 400
    assert res.json()["message"] == "Validation errors"


def test_login(api, mongo):
    insert_user(mongo)
    res = api.post("/api/auth/login", json={"email": "ravi@example.com", "password": "telugu123"})
    assert res.status_code == 200
    assert res.json()["data"]["token"]
    assert "lastLogin" in mongo["user"].find_one({"email": "ravi@example.com"})

    bad = api.post("/api/auth/login", json={"email": "ravi@example.com", "password": "wrong"})
    assert bad.status_code == 401
    assert bad.json() == {"success": False, "message": "Invalid credentials"}


def test_login_deactivated_account(api, mongo):
    insert_user(mongo, isActive=False)
    res = api.post("/api/auth/login", json={"email": "ravi@example.com", "password": "telugu123"})
    assert res.status_code == 401
    assert res.json()["message"] == "Account deactivated"


def test_me_requires_token(api):
    assert api.get("/api/auth/me").status_code == 401
    assert api.get("/api/auth/me", headers={"Authorization": "Bearer nonsense"}).status_code == 401


def test_update_profile(api, mongo):
    user_id = insert_user(mongo)
    insert_user(mongo, name="Sita", email="sita@example.com")
    headers = auth_header(user_id)

    taken = api.put("/api/auth/profile", json={"email": "sita@example.com"}, headers=headers)
    assert taken.status_code == 400
    assert taken.json()["message"] == "Email already in use"

    res = api.put("/api/auth/profile", json={"name": "Ravi K", "email": "ravi.k@example.com"}, headers=headers)
    assert res.status_code == 200
    assert res.json()["data"]["user"]["email"] == "ravi.k@example.com"
    stored = mongo["user"].find_one({"_id": ObjectId(user_id)})
    assert stored["name"] == "Ravi K"
    assert stored["isEmailVerified"] is False


def test_change_password(api, mongo):
    headers = auth_header(insert_user(mongo))

    wrong = api.put("/api/auth/password", json={"currentPassword": "nope", "newPassword": "newpass1"},
                    headers=headers)
    assert wrong.status_code == 400
    assert wrong.json()["message"] == "Current password is incorrect"

    res = api.put("/api/auth/password", json={"currentPassword": "telugu123", "newPassword": "newpass1"},
                  headers=headers)
    assert res.status_code == 200
    assert api.post("/api/auth/login", json={"email": "ravi@example.com", "password": "telugu123"}).status_code == 401
    assert api.post("/api/auth/login", json={"email": "ravi@example.com", "password": "newpass1"}).status_code == 200


# ----------------------- Books -----------------------
def test_create_book_as_admin(api, mongo):
    admin = _admin(mongo)
    book = _create_book(api, admin)
    assert book["discount"] == 20
    assert book["inStock"] is True
    assert book["isActive"] is True

    dup = api.post("/api/books", json=BOOK, headers=admin)
    assert dup.status_code == 400
    assert dup.json()["message"] == "Book with this ISBN already exists"


def test_create_book_requires_admin(api, mongo):
    res = api.post("/api/books", json=BOOK, headers=auth_header(insert_user(mongo)))
    assert res.status_code == 403
    assert mongo["book"].count_documents({}) == 0


def test_list_books(api, mongo):
    admin = _admin(mongo)
    _create_book(api, admin)
    _create_book(api, admin, title="Kanyasulkam", isbn="978-81-7524-003-6", category="literature", price=200)

    body = api.get("/api/books?category=poetry").json()["data"]
    assert [b["title"] for b in body["books"]] == ["Maha Prasthanam"]
    assert body["pagination"]["total"] == 1

    ordered = api.get("/api/books?sortBy=-price").json()["data"]["books"]
    assert [b["price"] for b in ordered] == [200, 120]

    bad = api.get("/api/books?sortBy=colour")
    assert bad.status_code == 400
    assert bad.json()["errors"][0]["field"] == "sortBy"


def test_stock_edit_keeps_in_stock_flag(api, mongo):
    admin = _admin(mongo)
    book = _create_book(api, admin)

    res = api.put(f"/api/books/{book['id']}", json={"stockCount": 0}, headers=admin)
    assert res.status_code == 200
    assert res.json()["data"]["book"]["inStock"] is False
    assert mongo["book"].find_one({"_id": ObjectId(book["id"])})["inStock"] is False

    res = api.put(f"/api/books/{book['id']}", json={"stockCount": 5, "price": 100}, headers=admin)
    updated = res.json()["data"]["book"]
    assert (updated["stockCount"], updated["inStock"]) == (5, True)
    assert updated["discount"] == 33


def test_deleted_book_is_hidden(api, mongo):
    admin = _admin(mongo)
    book = _create_book(api, admin)
    assert api.get(f"/api/books/{book['id']}").status_code == 200

    assert api.delete(f"/api/books/{book['id']}", headers=admin).status_code == 200

    res = api.get(f"/api/books/{book['id']}")
    assert res.status_code == 404
    assert res.json()["message"] == "Book not found"
    assert api.get("/api/books").json()["data"]["books"] == []


def test_reviews(api, mongo):
    book = _create_book(api, _admin(mongo))
    ravi = auth_header(insert_user(mongo))
    sita = auth_header(insert_user(mongo, name="Sita", email="sita@example.com"))

    assert api.post(f"/api/books/{book['id']}/reviews", json={"rating": 5, "comment": "Timeless"},
                    headers=ravi).status_code == 201
    res = api.post(f"/api/books/{book['id']}/reviews", json={"rating": 4, "comment": "Powerful"}, headers=sita)
    assert res.json()["data"]["book"]["rating"] == 4.5
    assert res.json()["data"]["book"]["reviewCount"] == 2

    dup = api.post(f"/api/books/{book['id']}/reviews", json={"rating": 1, "comment": "Changed my mind"},
                   headers=ravi)
    assert dup.status_code == 400
    assert dup.json()["message"] == "You have already reviewed this book"


# ----------------------- Users -----------------------
def test_wishlist(api, mongo):
    book = _create_book(api, _admin(mongo))
    headers = auth_header(insert_user(mongo))

    res = api.put(f"/api/users/wishlist/{book['id']}", headers=headers)
    assert res.json()["data"] == {"inWishlist": True}
    assert api.get(f"/api/books/{book['id']}", headers=headers).json()["data"]["isInWishlist"] is True
    wishlist = api.get("/api/users/wishlist", headers=headers).json()["data"]["wishlist"]
    assert [b["title"] for b in wishlist] == ["Maha Prasthanam"]

    res = api.put(f"/api/users/wishlist/{book['id']}", headers=headers)
    assert res.json()["message"] == "Book removed from wishlist"
    assert api.get("/api/users/wishlist", headers=headers).json()["data"]["wishlist"] == []


def test_addresses(api, mongo):
    headers = auth_header(insert_user(mongo))

    first = api.post("/api/users/addresses", json=ADDRESS, headers=headers)
    assert first.status_code == 201
    home = first.json()["data"]["addresses"][0]
    assert home["isDefault"] is True

    res = api.post("/api/users/addresses", json={**ADDRESS, "type": "work", "isDefault": True}, headers=headers)
    home, work = res.json()["data"]["addresses"]
    assert (home["isDefault"], work["isDefault"]) == (False, True)

    res = api.put(f"/api/users/addresses/{home['id']}", json={"city": "Guntur"}, headers=headers)
    assert res.json()["data"]["addresses"][0]["city"] == "Guntur"

    res = api.delete(f"/api/users/addresses/{work['id']}", headers=headers)
    remaining = res.json()["data"]["addresses"]
    assert [a["id"] for a in remaining] == [home["id"]]
    assert remaining[0]["isDefault"] is True

    assert api.delete("/api/users/addresses/missing", headers=headers).status_code == 404
    assert len(api.get("/api/users/addresses", headers=headers).json()["data"]["addresses"]) == 1


def test_address_validation(api, mongo):
    res = api.post("/api/users/addresses", json={**ADDRESS, "pincode": "012345"},
                   headers=auth_header(insert_user(mongo)))
    assert res.status_code == 400


# ----------------------- Admin -----------------------
def test_admin_stats(api, mongo):
    admin = _admin(mongo)
    _create_book(api, admin)
    insert_user(mongo)

    data = api.get("/api/admin/stats", headers=admin).json()["data"]

    assert data["users"] == 2
    assert data["books"] == 1
    assert data["orders"] == 0
    assert data["revenue"] == 0
    assert [b["title"] for b in data["lowStock"]] == ["Maha Prasthanam"]


def test_admin_routes_reject_customers(api, mongo):
    headers = auth_header(insert_user(mongo))
    assert api.get("/api/admin/stats", headers=headers).status_code == 403
    assert api.get("/api/admin/users", headers=headers).status_code == 403


def test_admin_lists_users(api, mongo):
    admin = _admin(mongo)
    insert_user(mongo)
    insert_user(mongo, name="Sita", email="sita@example.com")

    data = api.get("/api/admin/users", headers=admin).json()["data"]
    assert data["pagination"]["total"] == 3
    assert all("passwordHash" not in u for u in data["users"])

    found = api.get("/api/admin/users?search=SITA", headers=admin).json()["data"]["users"]
    assert [u["name"] for u in found] == ["Sita"]
    admins = api.get("/api/admin/users?role=admin", headers=admin).json()["data"]["users"]
    assert [u["email"] for u in admins] == ["admin@example.com"]


def test_admin_changes_role_and_status(api, mongo):
    admin = _admin(mongo)
    user_id = insert_user(mongo)

    res = api.put(f"/api/admin/users/{user_id}/role", json={"role": "admin"}, headers=admin)
    assert res.status_code == 200
    assert res.json()["data"]["user"]["role"] == "admin"
    assert "passwordHash" not in res.json()["data"]["user"]
    assert api.get("/api/admin/stats", headers=auth_header(user_id)).status_code == 200

    res = api.put(f"/api/admin/users/{user_id}/status", json={"isActive": False}, headers=admin)
    assert res.json()["message"] == "User deactivated successfully"
    assert api.get("/api/auth/me", headers=auth_header(user_id)).status_code == 401

    missing = api.put(f"/api/admin/users/{ObjectId()}/role", json={"role": "user"}, headers=admin)
    assert missing.status_code == 404
    assert api.put(f"/api/admin/users/{user_id}/role", json={"role": "owner"}, headers=admin).status_code == 400


# ----------------------- Orders -----------------------
def test_checkout_against_database(api, mongo):
    book = _create_book(api, _admin(mongo))
    headers = auth_header(insert_user(mongo))

    res = api.post("/api/payments/create-order", headers=headers, json={
        "amount": 240,
        "items": [{"bookId": book["id"], "quantity": 2}],
        "shippingAddress": SHIPPING,
    })
    assert res.status_code == 200
    order_id = res.json()["data"]["order"]["id"]
    assert res.json()["data"]["order"]["orderNumber"].endswith("0001")

    order = MongoStore(mongo).get_order(order_id)
    res = api.post("/api/payments/verify", json=verify_body(order).model_dump(by_alias=True), headers=headers)
    assert res.status_code == 200

    stored = mongo["book"].find_one({"_id": ObjectId(book["id"])})
    assert (stored["stockCount"], stored["salesCount"], stored["inStock"]) == (2, 2, True)
    assert mongo["order"].find_one({"_id": ObjectId(order_id)})["paymentDetails"]["status"] == "paid"

    res = api.put(f"/api/orders/{order_id}/cancel", json={"reason": "Ordered twice"}, headers=headers)
    assert res.status_code == 200
    stored = mongo["book"].find_one({"_id": ObjectId(book["id"])})
    assert (stored["stockCount"], stored["salesCount"]) == (4, 0)
