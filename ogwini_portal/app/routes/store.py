from __future__ import annotations

import json
import secrets

from flask import Blueprint, current_app, flash, redirect, render_template, request, session, url_for

from ..errors import PortalError
from ..services import db_service
from ..services.analytics import cart_total
from ..services.auth_service import current_principal
from ..services.validators import is_valid_email, is_valid_phone, normalize_phone


bp = Blueprint("store", __name__, url_prefix="/merchandise")

CART_KEY = "cart"

CATALOGUE = (
    {"id": 1, "name": "School Blazer", "price": 850, "sizes": ("S", "M", "L", "XL")},
    {"id": 2, "name": "School Tie", "price": 120, "sizes": ("Standard",)},
    {"id": 3, "name": "School Shirt", "price": 200, "sizes": ("S", "M", "L", "XL")},
    {"id": 4, "name": "School Pants/Skirt", "price": 350, "sizes": ("28", "30", "32", "34", "36")},
    {"id": 5, "name": "School Jersey", "price": 450, "sizes": ("S", "M", "L", "XL")},
    {"id": 6, "name": "School Bag", "price": 550, "sizes": ("Standard",)},
)


def find_item(item_id) -> dict | None:
    try:
        wanted = int(item_id)
    except (TypeError, ValueError):
        return None
    return next((i for i in CATALOGUE if i["id"] == wanted), None)


def add_to_cart(cart: list[dict], item: dict, size: str) -> list[dict]:
    """Same item and size merge into one line with a higher quantity."""
    for line in cart:
        if line["id"] == item["id"] and line["size"] == size:
            line["quantity"] += 1
            return cart
    cart.append({"id": item["id"], "name": item["name"], "price": item["price"], "size": size, "quantity": 1})
    return cart


def remove_from_cart(cart: list[dict], item_id: int, size: str) -> list[dict]:
    return [line for line in cart if not (line["id"] == item_id and line["size"] == size)]


def new_order_reference() -> str:
    return f"MERCH-{secrets.randbelow(1_000_000):06d}"


def _cart() -> list[dict]:
    return list(session.get(CART_KEY) or [])


@bp.get("")
def catalogue():
    cart = _cart()
    return render_template(
        "store.html",
        page_title="Merchandise",
        active_page="store",
        catalogue=CATALOGUE,
        cart=cart,
        total=cart_total(cart),
        order=None,
    )


@bp.post("/cart")
def cart_add():
    item = find_item(request.form.get("item_id"))
    size = (request.form.get("size") or "").strip()
    if item is None:
        flash("That item is not available.", "error")
        return redirect(url_for("store.catalogue"))
    if size not in item["sizes"]:
        flash("Please select a size before adding to cart.", "error")
        return redirect(url_for("store.catalogue"))
    session[CART_KEY] = add_to_cart(_cart(), item, size)
    flash(f"{item['name']} ({size}) added to your cart.", "success")
    return redirect(url_for("store.catalogue"))


@bp.post("/cart/remove")
def cart_remove():
    try:
        item_id = int(request.form.get("item_id") or 0)
    except ValueError:
        item_id = 0
    session[CART_KEY] = remove_from_cart(_cart(), item_id, (request.form.get("size") or "").strip())
    return redirect(url_for("store.catalogue"))


@bp.post("/checkout")
def checkout():
    cart = _cart()
    if not cart:
        flash("Your cart is empty.", "error")
        return redirect(url_for("store.catalogue"))

    form = {k: (request.form.get(k) or "").strip() for k in ("full_name", "email", "phone", "student_number")}
    if not form["full_name"] or not form["email"] or not form["phone"]:
        flash("Please fill in your name, email and phone number.", "error")
        return redirect(url_for("store.catalogue"))
    if not is_valid_email(form["email"]):
        flash("Please enter a valid email address.", "error")
        return redirect(url_for("store.catalogue"))
    if not is_valid_phone(form["phone"]):
        flash("Please enter a valid South African phone number.", "error")
        return redirect(url_for("store.catalogue"))

    principal = current_principal()
    reference = new_order_reference()
    total = cart_total(cart)
    try:
        db_service.insert(
            "merchandise_orders",
            {
                "reference": reference,
                "learner_id": principal.account_id if principal else None,
                "full_name": form["full_name"],
                "email": form["email"].lower(),
                "phone": normalize_phone(form["phone"]),
                "student_number": form["student_number"] or None,
                "items": json.dumps(cart),
                "total_amount": total,
                "contact_message": (request.form.get("message") or "").strip() or None,
            },
        )
    except PortalError as e:
        flash(e.message, "error")
        return redirect(url_for("store.catalogue"))

    current_app.logger.info("merchandise order %s placed (R%.2f)", reference, total)
    session.pop(CART_KEY, None)
    return render_template(
        "store.html",
        page_title="Merchandise",
        active_page="store",
        catalogue=CATALOGUE,
        cart=[],
        total=0,
        order={"reference": reference, "total": total, "items": cart},
        bank={
            "name": current_app.config["BANK_NAME"],
            "account_name": current_app.config["BANK_ACCOUNT_NAME"],
            "account_number": current_app.config["BANK_ACCOUNT_NUMBER"],
            "branch_code": current_app.config["BANK_BRANCH_CODE"],
        },
    )
