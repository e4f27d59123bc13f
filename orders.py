"""
Orders: the checkout snapshot and its admin-driven lifecycle.

An order copies the name and price of every line at checkout time. Line
prices are taken from the submitted cart; the totals are recomputed here from
those lines so that subtotal - discount == total always holds.
"""
import math
import logging
from datetime import datetime
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, HTTPException, Depends, Query
from pydantic import BaseModel, Field
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from database import collection, create_document, find_by_id, get_documents, serialize, to_object_id
from schemas import (
    Address, CollectionType, Order, OrderPackageLine, OrderStatus, OrderTestLine,
    PaymentMethod, PaymentStatus, Report, naive_utc,
)
from responses import ok
from auth import get_current_user, admin_only, is_admin
from cart import Cart, CartItem, snapshot_subtotal, upi_payment_uri
from offers import check_coupon, redeem_coupon, release_coupon

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])


class OrderCreate(BaseModel):
    tests: List[OrderTestLine] = Field(default_factory=list)
    packages: List[OrderPackageLine] = Field(default_factory=list)
    items: List[CartItem] = Field(default_factory=list, description="Cart items, as kept by the browser")
    coupon_code: Optional[str] = None
    collection_type: CollectionType = "home"
    collection_address: Optional[Address] = None
    preferred_date: Optional[datetime] = None
    preferred_time_slot: Optional[str] = None
    payment_method: Optional[PaymentMethod] = "cod"
    special_instructions: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    payment_id: Optional[str] = None
    admin_notes: Optional[str] = None


class ReportIn(BaseModel):
    name: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)


def get_order_for(order_id: str, user: dict) -> dict:
    order = find_by_id("order", order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.get("user_id") != str(user["_id"]) and not is_admin(user):
        raise HTTPException(status_code=403, detail="Not authorized to view this order")
    return order


@router.get("")
async def list_my_orders(user: dict = Depends(get_current_user)):
    orders = get_documents("order", {"user_id": str(user["_id"])}, sort=[("created_at", -1)])
    return ok(orders, count=len(orders))


@router.get("/admin/all")
async def admin_list_orders(status: Optional[OrderStatus] = None, page: int = Query(1, ge=1),
                            limit: int = Query(20, ge=1, le=200), _: dict = Depends(admin_only)):
    filt: Dict[str, Any] = {}
    if status:
        filt["status"] = status
    total = collection("order").count_documents(filt)
    orders = get_documents("order", filt, sort=[("created_at", -1)], skip=(page - 1) * limit, limit=limit)
    return ok(orders, count=len(orders), total=total, page=page, pages=math.ceil(total / limit))


@router.post("", status_code=201)
async def create_order(payload: OrderCreate, user: dict = Depends(get_current_user)):
    tests, packages = list(payload.tests), list(payload.packages)
    if payload.items:
        cart = Cart()
        for item in payload.items:
            cart.add(item)
        tests += cart.test_lines()
        packages += cart.package_lines()
    if not tests and not packages:
        raise HTTPException(status_code=400, detail="Order must contain at least one test or package")

    subtotal = snapshot_subtotal(tests, packages)
    offer, discount = None, 0.0
    if payload.coupon_code:
        offer, discount = check_coupon(payload.coupon_code, subtotal)

    order = Order(
        user_id=str(user["_id"]),
        customer_name=user.get("name", ""),
        customer_email=user["email"],
        customer_phone=user.get("phone") or "",
        tests=tests,
        packages=packages,
        subtotal=subtotal,
        discount_amount=discount,
        coupon_code=offer["coupon_code"] if offer else None,
        total_amount=round(subtotal - discount, 2),
        collection_type=payload.collection_type,
        collection_address=payload.collection_address,
        preferred_date=naive_utc(payload.preferred_date),
        preferred_time_slot=payload.preferred_time_slot,
        payment_method=payload.payment_method,
        special_instructions=payload.special_instructions,
    )
    if offer and not redeem_coupon(offer):
        raise HTTPException(status_code=400, detail="This coupon has reached its usage limit")
    try:
        order_id = create_document("order", order)
    except PyMongoError:
        if offer:
            release_coupon(offer["coupon_code"])
        raise
    logger.info("Order %s placed by %s: %d lines, total %.2f", order_id, user.get("email"),
                len(tests) + len(packages), order.total_amount)
    return ok(serialize(find_by_id("order", order_id)), message="Order placed successfully")


@router.get("/{order_id}")
async def get_order(order_id: str, user: dict = Depends(get_current_user)):
    return ok(serialize(get_order_for(order_id, user)))


@router.get("/{order_id}/payment")
async def get_payment_uri(order_id: str, user: dict = Depends(get_current_user)):
    order = get_order_for(order_id, user)
    note = f"Lab Test Payment {str(order['_id'])[-6:].upper()}"
    return ok({
        "order_id": str(order["_id"]),
        "amount": order["total_amount"],
        "payment_status": order.get("payment_status"),
        "upi_uri": upi_payment_uri(order["total_amount"], note),
    })


@router.put("/{order_id}/status")
async def update_order_status(order_id: str, payload: OrderStatusUpdate, admin: dict = Depends(admin_only)):
    oid = to_object_id(order_id)
    update = payload.model_dump(exclude_none=True)
    update["updated_at"] = datetime.utcnow()
    # Coupon bookkeeping follows the status the order had before this update
    order = collection("order").find_one_and_update(
        {"_id": oid}, {"$set": update}, return_document=ReturnDocument.BEFORE,
    ) if oid is not None else None
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    new_status = update.get("status")
    if new_status and new_status != order.get("status"):
        logger.info("Order %s status %s -> %s by %s", order_id, order.get("status"), new_status, admin.get("email"))
        if new_status == "cancelled" and order.get("coupon_code"):
            release_coupon(order["coupon_code"])
        elif order.get("status") == "cancelled" and order.get("coupon_code"):
            # Reinstated orders take their coupon use back, even past the limit
            collection("offer").update_one({"coupon_code": order["coupon_code"]}, {"$inc": {"usage_count": 1}})
    return ok(serialize(collection("order").find_one({"_id": order["_id"]})), message="Order updated successfully")


@router.put("/{order_id}/reports")
async def add_report(order_id: str, payload: ReportIn, admin: dict = Depends(admin_only)):
    oid = to_object_id(order_id)
    report = Report(name=payload.name, url=payload.url).model_dump()
    res = collection("order").update_one(
        {"_id": oid}, {"$push": {"reports": report}, "$set": {"updated_at": datetime.utcnow()}}
    ) if oid is not None else None
    if res is None or res.matched_count == 0:
        raise HTTPException(status_code=404, detail="Order not found")
    logger.info("Report '%s' attached to order %s by %s", payload.name, order_id, admin.get("email"))
    return ok(serialize(collection("order").find_one({"_id": oid})), message="Report added successfully")
