"""
Coupons / offers.

`check_coupon` holds every rule a coupon must pass and is shared by the public
validate endpoint and by order placement. Redemption is a single conditional
$inc so two checkouts cannot both take the last use of a limited coupon.
"""
import logging
from datetime import datetime
from typing import Optional, Tuple

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

from database import collection, create_document, find_by_id, get_documents, serialize, to_object_id, update_document
from schemas import Offer, OfferUpdate
from responses import ok
from auth import get_current_user, admin_only

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/offers", tags=["offers"])

HIDDEN_PUBLIC_FIELDS = ("usage_count", "usage_limit", "per_user_limit")


class ValidateCoupon(BaseModel):
    coupon_code: str = Field(..., min_length=1)
    cart_total: float = Field(..., ge=0)


def compute_discount(offer: dict, cart_total: float) -> float:
    if offer.get("discount_type") == "percentage":
        discount = cart_total * float(offer.get("discount_value", 0)) / 100.0
        cap = offer.get("max_discount_amount")
        if cap and discount > cap:
            discount = float(cap)
    else:
        discount = float(offer.get("discount_value", 0))
    return float(round(min(discount, cart_total)))


def check_coupon(code: str, cart_total: float, now: Optional[datetime] = None) -> Tuple[dict, float]:
    """Return (offer, discount) or raise the HTTPException describing why the coupon is refused."""
    now = now or datetime.utcnow()
    offer = collection("offer").find_one({"coupon_code": code.strip().upper()})
    if not offer:
        raise HTTPException(status_code=404, detail="Invalid coupon code")
    if not offer.get("is_active", True):
        raise HTTPException(status_code=400, detail="This coupon is no longer active")
    if offer.get("start_date") and offer["start_date"] > now:
        raise HTTPException(status_code=400, detail="This coupon is not yet valid")
    if offer.get("end_date") and offer["end_date"] < now:
        raise HTTPException(status_code=400, detail="This coupon has expired")
    limit = offer.get("usage_limit")
    if limit and offer.get("usage_count", 0) >= limit:
        raise HTTPException(status_code=400, detail="This coupon has reached its usage limit")
    min_value = offer.get("min_order_value") or 0
    if cart_total < min_value:
        raise HTTPException(status_code=400, detail=f"Minimum order value of ₹{min_value:g} required")
    return offer, compute_discount(offer, cart_total)


def redeem_coupon(offer: dict) -> bool:
    """Take one use of the coupon; False when the limit was reached in the meantime."""
    filt = {"_id": offer["_id"]}
    limit = offer.get("usage_limit")
    if limit:
        filt["usage_count"] = {"$lt": limit}
    res = collection("offer").update_one(filt, {"$inc": {"usage_count": 1}})
    return res.modified_count == 1


def release_coupon(code: str) -> None:
    collection("offer").update_one(
        {"coupon_code": code, "usage_count": {"$gt": 0}},
        {"$inc": {"usage_count": -1}},
    )


@router.get("")
def list_offers():
    now = datetime.utcnow()
    filt = {"is_active": True, "start_date": {"$lte": now}, "end_date": {"$gte": now}}
    offers = get_documents("offer", filt, sort=[("is_featured", -1), ("created_at", -1)])
    for o in offers:
        for field in HIDDEN_PUBLIC_FIELDS:
            o.pop(field, None)
    return ok(offers, count=len(offers))


@router.post("/validate")
async def validate_coupon(payload: ValidateCoupon, _: dict = Depends(get_current_user)):
    offer, discount = check_coupon(payload.coupon_code, payload.cart_total)
    return ok({
        "coupon_code": offer["coupon_code"],
        "discount_type": offer["discount_type"],
        "discount_value": offer["discount_value"],
        "discount_amount": discount,
        "final_total": round(payload.cart_total - discount),
    }, message="Coupon applied successfully")


@router.get("/admin/all")
def admin_list_offers(_: dict = Depends(admin_only)):
    offers = get_documents("offer", sort=[("created_at", -1)])
    return ok(offers, count=len(offers))


@router.post("", status_code=201)
def create_offer(payload: Offer, _: dict = Depends(admin_only)):
    if collection("offer").find_one({"coupon_code": payload.coupon_code}):
        raise HTTPException(status_code=400, detail="Coupon code already exists")
    try:
        offer_id = create_document("offer", payload)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Coupon code already exists")
    return ok(serialize(find_by_id("offer", offer_id)), message="Offer created successfully")


@router.put("/{offer_id}")
def update_offer(offer_id: str, payload: OfferUpdate, _: dict = Depends(admin_only)):
    update = payload.model_dump(exclude_unset=True)
    if update.get("coupon_code"):
        clash = collection("offer").find_one({"coupon_code": update["coupon_code"], "_id": {"$ne": to_object_id(offer_id)}})
        if clash:
            raise HTTPException(status_code=400, detail="Coupon code already exists")
    try:
        offer = update_document("offer", offer_id, update)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Coupon code already exists")
    if not offer:
        raise HTTPException(status_code=404, detail="Offer not found")
    return ok(serialize(offer), message="Offer updated successfully")


@router.delete("/{offer_id}")
def delete_offer(offer_id: str, _: dict = Depends(admin_only)):
    oid = to_object_id(offer_id)
    if oid is None or collection("offer").delete_one({"_id": oid}).deleted_count == 0:
        raise HTTPException(status_code=404, detail="Offer not found")
    return ok(message="Offer deleted successfully")
