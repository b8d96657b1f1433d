import logging
import traceback
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

import checkout
from auth import (
    TOKEN_COOKIE,
    create_token,
    get_current_user,
    get_optional_user,
    hash_password,
    public_user,
    require_admin,
    verify_password,
)
from catalog import (
    add_address,
    add_review,
    apply_stock,
    build_book_filter,
    build_user_filter,
    discount_percent,
    pagination,
    parse_sort,
    remove_address,
    toggle_wishlist,
    update_address,
)
from config import (
    ADMIN_EMAIL,
    ADMIN_PASSWORD,
    APP_ENV,
    DATABASE_NAME,
    DATABASE_URL,
    FRONTEND_URL,
    JWT_EXPIRE_DAYS,
    LOG_LEVEL,
    MONGO_TRANSACTIONS,
    PORT,
    is_production,
)
from database import create_document, db, ensure_indexes, get_db, serialize_doc, to_object_id, utcnow
from errors import (
    AppError,
    Conflict,
    Forbidden,
    NotFound,
    PaymentVerificationFailed,
    TooManyRequests,
    Unauthorized,
    ValidationFailed,
)
from payments import get_gateway, get_gateway_secret, get_key_id, get_webhook_secret, verify_webhook_signature
from ratelimit import client_ip, get_limiter
from schemas import (
    AddressBody,
    AddressUpdateBody,
    Book,
    BookCreateBody,
    BookUpdateBody,
    CancelOrderBody,
    CreatePaymentOrderBody,
    LoginBody,
    Order,
    PasswordChangeBody,
    PaymentFailureBody,
    ProfileUpdateBody,
    RegisterBody,
    ReviewBody,
    RoleUpdateBody,
    StatusUpdateBody,
    User,
    UserStatusBody,
    VerifyPaymentBody,
)
from store import MongoStore

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is not None:
        try:
            ensure_indexes(db)
        except Exception as e:
            logger.error("Could not ensure indexes: %s", e)
    yield


app = FastAPI(title="Ataka Telugu Bookstore API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL, "http://localhost:3000", "http://localhost:8080"],
    allow_origin_regex=r"https://.*\.vercel\.app",
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
)

limiter = get_limiter()


@app.middleware("http")
async def rate_limit(request: Request, call_next):
    if limiter is not None and request.url.path.startswith("/api/"):
        allowed, retry_after = await run_in_threadpool(limiter.hit, client_ip(request))
        if not allowed:
            exc = TooManyRequests()
            return JSONResponse(
                status_code=exc.status_code,
                content={"success": False, "message": exc.message},
                headers={"Retry-After": str(retry_after)},
            )
    return await call_next(request)


# ----------------------- Errors -----------------------
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    content = {"success": False, "message": exc.message}
    if exc.errors:
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in e["loc"] if p != "body"), "message": e["msg"]}
        for e in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"success": False, "message": "Validation errors", "errors": errors})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail
    if exc.status_code == 404 and request.url.path.startswith("/api/"):
        message = "API endpoint not found"
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": message},
                        headers=getattr(exc, "headers", None))


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=400, content={"success": False, "message": "Duplicate field value entered"})


@app.exception_handler(Exception)
async def server_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"success": False, "message": "Server Error"}
    if not is_production():
        content["error"] = str(exc)
        content["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
    return JSONResponse(status_code=500, content=content)


# ----------------------- Utils -----------------------
def ok(data=None, message: Optional[str] = None) -> dict:
    body = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = data
    return body


def get_store(database=Depends(get_db)) -> MongoStore:
    return MongoStore(database, use_transactions=MONGO_TRANSACTIONS)


def order_view(order: Order) -> dict:
    return {"id": order.id, **order.model_dump(mode="json", by_alias=True, exclude_none=True)}


def set_token_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        max_age=int(timedelta(days=JWT_EXPIRE_DAYS).total_seconds()),
        httponly=True,
        secure=is_production(),
        samesite="strict",
    )


def _book_or_404(database, book_id: str, active_only: bool = False) -> dict:
    oid = to_object_id(book_id)
    book = database["book"].find_one({"_id": oid}) if oid else None
    if not book or (active_only and not book.get("isActive", True)):
        raise NotFound("Book not found")
    return book


def _order_for_viewer(store: MongoStore, order_id: str, user: dict, message: str) -> Order:
    order = store.get_order(order_id)
    if order is None:
        raise NotFound("Order not found")
    if order.user != user["id"] and user.get("role") != "admin":
        raise Forbidden(message)
    return order


# ----------------------- Health -----------------------
@app.get("/")
def root():
    return {"message": "Ataka Telugu Bookstore API running"}


@app.get("/health")
def health():
    return {
        "status": "OK",
        "message": "Ataka Bookstore API is running",
        "timestamp": utcnow().isoformat(),
        "environment": APP_ENV,
        "version": app.version,
    }


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if DATABASE_URL else "❌ Not Set",
        "database_name": "✅ Set" if DATABASE_NAME else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if db is not None:
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = db.list_collection_names()[:10]
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# ----------------------- Auth -----------------------
@app.post("/api/auth/register", status_code=201)
def register(body: RegisterBody, response: Response, database=Depends(get_db)):
    if body.email and database["user"].find_one({"email": body.email.lower()}):
        raise Conflict("Email already registered")
    if body.phone_number and database["user"].find_one({"phoneNumber": body.phone_number}):
        raise Conflict("Phone number already registered")
    user = User(
        name=body.name,
        email=body.email,
        phone_number=body.phone_number,
        password_hash=hash_password(body.password),
    )
    user_id = create_document("user", user, database)
    token = create_token({"id": user_id, "role": user.role})
    set_token_cookie(response, token)
    logger.info("User %s registered", user_id)
    profile = public_user(user.model_dump(mode="json", by_alias=True, exclude_none=True))
    return ok({"token": token, "user": {"id": user_id, **profile}}, "User registered successfully")


@app.post("/api/auth/login")
def login(body: LoginBody, response: Response, database=Depends(get_db)):
    filt = {"email": body.email.lower()} if body.email else {"phoneNumber": body.phone_number}
    user = database["user"].find_one(filt)
    if not user or not verify_password(body.password, user.get("passwordHash")):
        raise Unauthorized("Invalid credentials")
    if not user.get("isActive", True):
        raise Unauthorized("Account deactivated")
    database["user"].update_one({"_id": user["_id"]}, {"$set": {"lastLogin": utcnow()}})
    suser = public_user(serialize_doc(user))
    token = create_token({"id": suser["id"], "role": suser.get("role", "user")})
    set_token_cookie(response, token)
    return ok({"token": token, "user": suser}, "Login successful")


@app.get("/api/auth/me")
def me(user=Depends(get_current_user)):
    return ok({"user": user})


@app.post("/api/auth/logout")
def logout(response: Response):
    response.delete_cookie(TOKEN_COOKIE)
    return ok(message="Logged out successfully")


@app.put("/api/auth/profile")
def update_profile(body: ProfileUpdateBody, user=Depends(get_current_user), database=Depends(get_db)):
    update = {}
    if body.name:
        update["name"] = body.name
    email = body.email.lower() if body.email else None
    if email and email != user.get("email"):
        if database["user"].find_one({"email": email}):
            raise Conflict("Email already in use")
        update["email"] = email
        update["isEmailVerified"] = False
    if update:
        update["updatedAt"] = utcnow()
        database["user"].update_one({"_id": to_object_id(user["id"])}, {"$set": update})
    profile = {**user, **update}
    return ok({
        "user": {k: profile.get(k) for k in ("id", "name", "email", "role", "avatar")},
    }, "Profile updated successfully")


@app.put("/api/auth/password")
def change_password(body: PasswordChangeBody, user=Depends(get_current_user), database=Depends(get_db)):
    stored = database["user"].find_one({"_id": to_object_id(user["id"])}, {"passwordHash": 1})
    if not stored or not verify_password(body.current_password, stored.get("passwordHash")):
        raise ValidationFailed("Current password is incorrect")
    database["user"].update_one(
        {"_id": stored["_id"]},
        {"$set": {"passwordHash": hash_password(body.new_password), "updatedAt": utcnow()}},
    )
    logger.info("Password changed for user %s", user["id"])
    return ok(message="Password updated successfully")


# ----------------------- Books -----------------------
@app.get("/api/books")
def list_books(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    category: Optional[str] = None,
    language: Optional[str] = None,
    author: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0, alias="minPrice"),
    max_price: Optional[float] = Query(None, ge=0, alias="maxPrice"),
    rating: Optional[float] = Query(None, ge=0, le=5),
    in_stock: Optional[bool] = Query(None, alias="inStock"),
    featured: bool = False,
    bestseller: bool = False,
    new_arrival: bool = Query(False, alias="newArrival"),
    search: Optional[str] = None,
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    database=Depends(get_db),
):
    try:
        sort_field, direction = parse_sort(sort_by)
    except ValueError as e:
        raise ValidationFailed(errors=[{"field": "sortBy", "message": str(e)}])
    filt = build_book_filter(category, language, author, min_price, max_price, rating,
                             in_stock, featured, bestseller, new_arrival, search)
    cursor = (
        database["book"].find(filt, {"reviews": 0})
        .sort(sort_field, direction)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    books = [serialize_doc(b) for b in cursor]
    total = database["book"].count_documents(filt)
    return ok({"books": books, "pagination": pagination(page, limit, total)})


@app.get("/api/books/data/categories")
def list_categories(database=Depends(get_db)):
    return ok({"categories": database["book"].distinct("category", {"isActive": True})})


@app.get("/api/books/data/languages")
def list_languages(database=Depends(get_db)):
    return ok({"languages": database["book"].distinct("language", {"isActive": True})})


@app.get("/api/books/{book_id}")
def get_book(book_id: str, user=Depends(get_optional_user), database=Depends(get_db)):
    book = serialize_doc(_book_or_404(database, book_id, active_only=True))
    in_wishlist = bool(user) and book["id"] in (user.get("wishlist") or [])
    return ok({"book": book, "isInWishlist": in_wishlist})


@app.post("/api/books", status_code=201)
def create_book(body: BookCreateBody, user=Depends(require_admin), database=Depends(get_db)):
    if database["book"].find_one({"isbn": body.isbn}):
        raise Conflict("Book with this ISBN already exists")
    book = Book(
        **body.model_dump(),
        discount=discount_percent(body.price, body.original_price),
        created_by=user["id"],
    )
    book_id = create_document("book", book, database)
    logger.info("Book %s (%s) created by %s", book_id, book.isbn, user["id"])
    return ok({"book": serialize_doc(database["book"].find_one({"_id": to_object_id(book_id)}))},
              "Book created successfully")


@app.put("/api/books/{book_id}")
def update_book(book_id: str, body: BookUpdateBody, user=Depends(require_admin), database=Depends(get_db)):
    book = _book_or_404(database, book_id)
    update = body.model_dump(by_alias=True, exclude_none=True)
    if body.isbn and body.isbn != book.get("isbn"):
        if database["book"].find_one({"isbn": body.isbn}):
            raise Conflict("Book with this ISBN already exists")
    if body.price is not None or body.original_price is not None:
        price = body.price if body.price is not None else book.get("price", 0)
        original_price = body.original_price if body.original_price is not None else book.get("originalPrice")
        update["discount"] = discount_percent(price, original_price)
    if body.stock_count is not None:
        apply_stock(update, body.stock_count)
    update["updatedAt"] = utcnow()
    database["book"].update_one({"_id": book["_id"]}, {"$set": update})
    return ok({"book": serialize_doc(database["book"].find_one({"_id": book["_id"]}))},
              "Book updated successfully")


@app.delete("/api/books/{book_id}")
def delete_book(book_id: str, user=Depends(require_admin), database=Depends(get_db)):
    book = _book_or_404(database, book_id)
    database["book"].update_one({"_id": book["_id"]}, {"$set": {"isActive": False, "updatedAt": utcnow()}})
    return ok(message="Book deleted successfully")


@app.post("/api/books/{book_id}/reviews", status_code=201)
def create_review(book_id: str, body: ReviewBody, user=Depends(get_current_user), database=Depends(get_db)):
    book = _book_or_404(database, book_id, active_only=True)
    book = add_review(book, user["id"], body.rating, body.comment)
    database["book"].update_one(
        {"_id": book["_id"]},
        {"$set": {
            "reviews": book["reviews"],
            "rating": book["rating"],
            "reviewCount": book["reviewCount"],
            "updatedAt": utcnow(),
        }},
    )
    return ok({"book": serialize_doc(book)}, "Review added successfully")


# ----------------------- Users -----------------------
@app.get("/api/users/wishlist")
def get_wishlist(user=Depends(get_current_user), database=Depends(get_db)):
    ids = [oid for oid in (to_object_id(b) for b in user.get("wishlist") or []) if oid]
    projection = {"title": 1, "author": 1, "price": 1, "originalPrice": 1, "image": 1,
                  "rating": 1, "reviewCount": 1, "inStock": 1}
    books = database["book"].find({"_id": {"$in": ids}, "isActive": True}, projection)
    return ok({"wishlist": [serialize_doc(b) for b in books]})


@app.put("/api/users/wishlist/{book_id}")
def update_wishlist(book_id: str, user=Depends(get_current_user), database=Depends(get_db)):
    book = _book_or_404(database, book_id, active_only=True)
    wishlist, in_wishlist = toggle_wishlist(user.get("wishlist") or [], str(book["_id"]))
    database["user"].update_one({"_id": to_object_id(user["id"])}, {"$set": {"wishlist": wishlist}})
    message = "Book added to wishlist" if in_wishlist else "Book removed from wishlist"
    return ok({"inWishlist": in_wishlist}, message)


def _save_addresses(database, user: dict, addresses: list) -> list:
    database["user"].update_one({"_id": to_object_id(user["id"])}, {"$set": {"addresses": addresses}})
    return addresses


@app.get("/api/users/addresses")
def get_addresses(user=Depends(get_current_user)):
    return ok({"addresses": user.get("addresses") or []})


@app.post("/api/users/addresses", status_code=201)
def create_address(body: AddressBody, user=Depends(get_current_user), database=Depends(get_db)):
    addresses = add_address(user.get("addresses") or [], body)
    return ok({"addresses": _save_addresses(database, user, addresses)}, "Address added successfully")


@app.put("/api/users/addresses/{address_id}")
def edit_address(address_id: str, body: AddressUpdateBody, user=Depends(get_current_user),
                 database=Depends(get_db)):
    addresses = update_address(user.get("addresses") or [], address_id, body)
    return ok({"addresses": _save_addresses(database, user, addresses)}, "Address updated successfully")


@app.delete("/api/users/addresses/{address_id}")
def delete_address(address_id: str, user=Depends(get_current_user), database=Depends(get_db)):
    addresses = remove_address(user.get("addresses") or [], address_id)
    return ok({"addresses": _save_addresses(database, user, addresses)}, "Address deleted successfully")


# ----------------------- Payments -----------------------
@app.post("/api/payments/create-order")
def create_payment_order(body: CreatePaymentOrderBody, user=Depends(get_current_user),
                         store: MongoStore = Depends(get_store), gateway=Depends(get_gateway)):
    order, gateway_order = checkout.place_order(store, gateway, user["id"], body, user.get("email"))
    return ok({
        "order": {
            "id": order.id,
            "orderNumber": order.order_number,
            "total": order.order_summary.total,
        },
        "gatewayOrder": gateway_order,
        "razorpayKeyId": get_key_id(),
    }, "Order created successfully")


@app.post("/api/payments/verify")
def verify_payment(body: VerifyPaymentBody, user=Depends(get_current_user),
                   store: MongoStore = Depends(get_store), secret: str = Depends(get_gateway_secret)):
    order = checkout.confirm_payment(store, secret, user["id"], body)
    paid_at = order.payment_details.paid_at
    return ok({
        "order": {
            "id": order.id,
            "orderNumber": order.order_number,
            "status": order.order_status,
            "total": order.order_summary.total,
            "paidAt": paid_at.isoformat() if paid_at else None,
        },
    }, "Payment verified successfully")


@app.post("/api/payments/failure")
def payment_failure(body: PaymentFailureBody, user=Depends(get_current_user),
                    store: MongoStore = Depends(get_store)):
    order = checkout.record_payment_failure(store, user["id"], body.order_id, body.error)
    return ok({
        "order": {
            "id": order.id,
            "orderNumber": order.order_number,
            "status": order.order_status,
            "paymentStatus": order.payment_details.status,
        },
    }, "Payment failure recorded")


@app.get("/api/payments/config")
def payment_config():
    return ok({"razorpayKeyId": get_key_id()})


@app.post("/api/payments/webhook")
async def payment_webhook(request: Request, store: MongoStore = Depends(get_store),
                          secret: str = Depends(get_webhook_secret)):
    raw = await request.body()
    if secret and not verify_webhook_signature(secret, raw, request.headers.get("x-razorpay-signature")):
        raise PaymentVerificationFailed("Invalid webhook signature")
    try:
        event = await request.json()
    except ValueError:
        raise ValidationFailed("Invalid webhook payload")
    await run_in_threadpool(checkout.handle_webhook_event, store, event, bool(secret))
    return ok()


# ----------------------- Orders -----------------------
@app.get("/api/orders")
def list_my_orders(page: int = Query(1, ge=1), limit: int = Query(10, ge=1, le=100),
                   user=Depends(get_current_user), store: MongoStore = Depends(get_store)):
    filt = {"user": user["id"]}
    orders = store.find_orders(filt, skip=(page - 1) * limit, limit=limit)
    total = store.count_orders(filt)
    return ok({"orders": [order_view(o) for o in orders], "pagination": pagination(page, limit, total)})


@app.get("/api/orders/admin/all")
def list_all_orders(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
                    status: Optional[str] = None, user=Depends(require_admin),
                    store: MongoStore = Depends(get_store)):
    filt = {"orderStatus": status} if status and status != "all" else {}
    orders = store.find_orders(filt, skip=(page - 1) * limit, limit=limit)
    total = store.count_orders(filt)
    return ok({
        "orders": [order_view(o) for o in orders],
        "stats": store.order_stats(),
        "pagination": pagination(page, limit, total),
    })


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, user=Depends(get_current_user), store: MongoStore = Depends(get_store)):
    order = _order_for_viewer(store, order_id, user, "Not authorized to view this order")
    return ok({"order": order_view(order)})


@app.get("/api/orders/{order_id}/invoice")
def get_invoice(order_id: str, user=Depends(get_current_user), store: MongoStore = Depends(get_store)):
    order = _order_for_viewer(store, order_id, user, "Not authorized to download this invoice")
    view = order_view(order)
    invoice = {
        "orderNumber": order.order_number,
        "date": view.get("createdAt"),
        "customer": {"id": order.user, "address": view["shippingAddress"]},
        "items": view["items"],
        "totals": view["orderSummary"],
        "payment": {
            "method": order.payment_details.method,
            "status": order.payment_details.status,
            "id": order.payment_details.payment_id,
        },
    }
    return ok({"invoice": invoice})


@app.put("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, body: Optional[CancelOrderBody] = None, user=Depends(get_current_user),
                 store: MongoStore = Depends(get_store)):
    order = checkout.cancel_order(store, user["id"], order_id, body.reason if body else None)
    return ok({"order": order_view(order)}, "Order cancelled successfully")


@app.put("/api/orders/{order_id}/status")
def update_order_status(order_id: str, body: StatusUpdateBody, user=Depends(require_admin),
                        store: MongoStore = Depends(get_store)):
    order = checkout.update_status(store, user["id"], order_id, body)
    return ok({"order": order_view(order)}, "Order status updated successfully")


# ----------------------- Admin -----------------------
@app.get("/api/admin/stats")
def admin_stats(user=Depends(require_admin), database=Depends(get_db)):
    revenue = list(database["order"].aggregate([
        {"$match": {"paymentDetails.status": "paid"}},
        {"$group": {"_id": None, "total": {"$sum": "$orderSummary.total"}}},
    ]))
    low_stock = database["book"].find(
        {"isActive": True, "stockCount": {"$lte": 5}},
        {"title": 1, "stockCount": 1},
    ).sort("stockCount", 1).limit(10)
    return ok({
        "users": database["user"].count_documents({}),
        "books": database["book"].count_documents({"isActive": True}),
        "orders": database["order"].count_documents({}),
        "pendingOrders": database["order"].count_documents({"orderStatus": "pending"}),
        "revenue": revenue[0]["total"] if revenue else 0,
        "lowStock": [serialize_doc(b) for b in low_stock],
    })


def _user_or_404(database, user_id: str) -> dict:
    oid = to_object_id(user_id)
    found = database["user"].find_one({"_id": oid}, {"passwordHash": 0}) if oid else None
    if not found:
        raise NotFound("User not found")
    return found


@app.get("/api/admin/users")
def list_users(page: int = Query(1, ge=1), limit: int = Query(20, ge=1, le=100),
               search: Optional[str] = None, role: Optional[str] = None,
               user=Depends(require_admin), database=Depends(get_db)):
    filt = build_user_filter(search, role)
    cursor = (
        database["user"].find(filt, {"passwordHash": 0})
        .sort("createdAt", -1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    users = [serialize_doc(u) for u in cursor]
    total = database["user"].count_documents(filt)
    return ok({"users": users, "pagination": pagination(page, limit, total)})


@app.put("/api/admin/users/{user_id}/role")
def update_user_role(user_id: str, body: RoleUpdateBody, user=Depends(require_admin), database=Depends(get_db)):
    target = _user_or_404(database, user_id)
    database["user"].update_one({"_id": target["_id"]}, {"$set": {"role": body.role, "updatedAt": utcnow()}})
    logger.info("User %s role set to %s by %s", user_id, body.role, user["id"])
    return ok({"user": serialize_doc({**target, "role": body.role})}, "User role updated successfully")


@app.put("/api/admin/users/{user_id}/status")
def update_user_status(user_id: str, body: UserStatusBody, user=Depends(require_admin),
                       database=Depends(get_db)):
    target = _user_or_404(database, user_id)
    database["user"].update_one({"_id": target["_id"]}, {"$set": {"isActive": body.is_active, "updatedAt": utcnow()}})
    action = "activated" if body.is_active else "deactivated"
    logger.info("User %s %s by %s", user_id, action, user["id"])
    return ok({"user": serialize_doc({**target, "isActive": body.is_active})}, f"User {action} successfully")


# ----------------------- Seed Demo Data -----------------------
DEMO_BOOKS = [
    {
        "title": "Veyi Padagalu",
        "title_telugu": "వేయి పడగలు",
        "author": "Viswanatha Satyanarayana",
        "author_telugu": "విశ్వనాథ సత్యనారాయణ",
        "publisher": "Viswanatha Publications",
        "isbn": "978-81-7524-001-2",
        "price": 450,
        "original_price": 500,
        "description": "Jnanpith award winning epic novel of a changing Andhra village.",
        "image": "/uploads/books/veyi-padagalu.jpg",
        "category": "literature",
        "pages": 1000,
        "language": "Telugu",
        "publication_year": 1939,
        "stock_count": 25,
        "bestseller": True,
    },
    {
        "title": "Maha Prasthanam",
        "title_telugu": "మహాప్రస్థానం",
        "author": "Sri Sri",
        "author_telugu": "శ్రీశ్రీ",
        "publisher": "Visalaandhra Publishing House",
        "isbn": "978-81-7524-002-9",
        "price": 120,
        "description": "Landmark collection of revolutionary Telugu poetry.",
        "image": "/uploads/books/maha-prasthanam.jpg",
        "category": "poetry",
        "pages": 96,
        "language": "Telugu",
        "publication_year": 1950,
        "stock_count": 40,
        "featured": True,
    },
    {
        "title": "Kanyasulkam",
        "title_telugu": "కన్యాశుల్కం",
        "author": "Gurajada Apparao",
        "author_telugu": "గురజాడ అప్పారావు",
        "publisher": "Visalaandhra Publishing House",
        "isbn": "978-81-7524-003-6",
        "price": 200,
        "original_price": 250,
        "description": "Classic social play on the practice of bride price.",
        "image": "/uploads/books/kanyasulkam.jpg",
        "category": "literature",
        "pages": 280,
        "language": "Telugu",
        "publication_year": 1892,
        "stock_count": 15,
    },
    {
        "title": "Amuktamalyada",
        "title_telugu": "ఆముక్తమాల్యద",
        "author": "Sri Krishnadevaraya",
        "author_telugu": "శ్రీకృష్ణదేవరాయలు",
        "publisher": "Telugu Akademi",
        "isbn": "978-81-7524-004-3",
        "price": 350,
        "description": "Prabandha kavya on the life of Andal.",
        "image": "/uploads/books/amuktamalyada.jpg",
        "category": "devotional",
        "pages": 420,
        "language": "Telugu",
        "publication_year": 1985,
        "stock_count": 8,
    },
    {
        "title": "Chandamama Kathalu",
        "title_telugu": "చందమామ కథలు",
        "author": "Various",
        "publisher": "Chandamama Publications",
        "isbn": "978-81-7524-005-0",
        "price": 150,
        "description": "Selected stories for children from the Chandamama magazine.",
        "image": "/uploads/books/chandamama-kathalu.jpg",
        "category": "children",
        "pages": 160,
        "language": "Telugu",
        "publication_year": 2005,
        "stock_count": 60,
        "new_arrival": True,
    },
]


@app.post("/seed")
def seed(database=Depends(get_db)):
    if database["book"].count_documents({}) > 0:
        return ok({"seeded": False}, "Books already exist")
    admin_id = None
    if ADMIN_PASSWORD and database["user"].count_documents({"role": "admin"}) == 0:
        admin = User(name="Admin", email=ADMIN_EMAIL, password_hash=hash_password(ADMIN_PASSWORD), role="admin")
        admin_id = create_document("user", admin, database)
    for b in DEMO_BOOKS:
        book = Book(**b, discount=discount_percent(b["price"], b.get("original_price")), created_by=admin_id)
        create_document("book", book, database)
    return ok({"seeded": True, "books": database["book"].count_documents({})})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
