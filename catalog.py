"""
Book and account helpers used by the catalog and user routes.
"""
import re
from typing import Dict, List, Optional, Tuple

from errors import Conflict, NotFound
from schemas import Address, AddressBody, AddressUpdateBody, Review

SORT_FIELDS = ("price", "rating", "salesCount", "createdAt", "title")


def discount_percent(price: float, original_price: Optional[float]) -> int:
    if not original_price or original_price <= price:
        return 0
    return round((original_price - price) / original_price * 100)


def recompute_rating(book: dict) -> dict:
    reviews = book.get("reviews") or []
    if not reviews:
        book["rating"] = 0
        book["reviewCount"] = 0
    else:
        total = sum(r["rating"] for r in reviews)
        book["rating"] = round(total / len(reviews) * 10) / 10
        book["reviewCount"] = len(reviews)
    return book


def add_review(book: dict, user_id: str, rating: int, comment: str) -> dict:
    reviews = book.setdefault("reviews", [])
    if any(str(r.get("user")) == user_id for r in reviews):
        raise Conflict("You have already reviewed this book")
    reviews.append(Review(user=user_id, rating=rating, comment=comment).to_document())
    return recompute_rating(book)


def apply_stock(book: dict, stock_count: int) -> dict:
    book["stockCount"] = stock_count
    book["inStock"] = stock_count > 0
    return book


def build_book_filter(category: Optional[str] = None, language: Optional[str] = None,
                      author: Optional[str] = None, min_price: Optional[float] = None,
                      max_price: Optional[float] = None, rating: Optional[float] = None,
                      in_stock: Optional[bool] = None, featured: bool = False,
                      bestseller: bool = False, new_arrival: bool = False,
                      search: Optional[str] = None) -> dict:
    filt: Dict[str, object] = {"isActive": True}
    if category:
        filt["category"] = category
    if language:
        filt["language"] = language
    if author:
        filt["author"] = {"$regex": re.escape(author), "$options": "i"}
    if min_price is not None or max_price is not None:
        price = {}
        if min_price is not None:
            price["$gte"] = min_price
        if max_price is not None:
            price["$lte"] = max_price
        filt["price"] = price
    if rating is not None:
        filt["rating"] = {"$gte": rating}
    if in_stock is not None:
        filt["inStock"] = in_stock
    if featured:
        filt["featured"] = True
    if bestseller:
        filt["bestseller"] = True
    if new_arrival:
        filt["newArrival"] = True
    if search:
        filt["$text"] = {"$search": search}
    return filt


def build_user_filter(search: Optional[str] = None, role: Optional[str] = None) -> dict:
    filt: Dict[str, object] = {}
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        filt["$or"] = [{"name": pattern}, {"email": pattern}]
    if role:
        filt["role"] = role
    return filt


def parse_sort(sort_by: Optional[str]) -> Tuple[str, int]:
    """'-price' -> ('price', -1). Newest first by default."""
    if not sort_by:
        return "createdAt", -1
    field = sort_by.lstrip("-")
    if field not in SORT_FIELDS:
        raise ValueError(f"Invalid sort field: {field}")
    return field, -1 if sort_by.startswith("-") else 1


def pagination(page: int, limit: int, total: int) -> dict:
    pages = (total + limit - 1) // limit if limit else 0
    return {
        "currentPage": page,
        "totalPages": pages,
        "total": total,
        "hasNextPage": page < pages,
        "hasPrevPage": page > 1,
        "limit": limit,
    }


# ----------------------- Addresses -----------------------
def add_address(addresses: List[dict], body: AddressBody) -> List[dict]:
    """Exactly one address is the default; the first one always is."""
    address = Address(**body.model_dump()).to_document()
    if not addresses or address["isDefault"]:
        for existing in addresses:
            existing["isDefault"] = False
        address["isDefault"] = True
    addresses.append(address)
    return addresses


def _find_address(addresses: List[dict], address_id: str) -> dict:
    for address in addresses:
        if address.get("id") == address_id:
            return address
    raise NotFound("Address not found")


def update_address(addresses: List[dict], address_id: str, body: AddressUpdateBody) -> List[dict]:
    address = _find_address(addresses, address_id)
    changes = body.model_dump(by_alias=True, exclude_none=True)
    if changes.get("isDefault"):
        for existing in addresses:
            existing["isDefault"] = False
    elif changes.get("isDefault") is False and address.get("isDefault"):
        # the default can only move, not disappear
        changes.pop("isDefault")
    address.update(changes)
    return addresses


def remove_address(addresses: List[dict], address_id: str) -> List[dict]:
    address = _find_address(addresses, address_id)
    remaining = [a for a in addresses if a is not address]
    if address.get("isDefault") and remaining:
        remaining[0]["isDefault"] = True
    return remaining


def toggle_wishlist(wishlist: List[str], book_id: str) -> Tuple[List[str], bool]:
    if book_id in wishlist:
        return [b for b in wishlist if b != book_id], False
    return wishlist + [book_id], True
