"""
Sample-collection bookings.

A booking schedules when and where the sample for an order is collected; the
order stays the record of what was bought. Every booking points at an order
the caller owns (admins may book against any order).
"""
import logging
from datetime import datetime, time, timedelta, date as DateType
from typing import Optional, Dict, Any

from fastapi import APIRouter, HTTPException, Depends, Body
from pydantic import BaseModel, Field

from database import collection, create_document, find_by_id, get_documents, serialize, update_document
from schemas import Booking, BookingAddress, BookingStatus, CollectionType, Gender, naive_utc
from responses import ok
from auth import get_current_user, admin_only, is_admin

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


class BookingCreate(BaseModel):
    order_id: str
    patient_name: str = Field(..., min_length=1)
    patient_age: Optional[int] = Field(None, ge=0, le=150)
    patient_gender: Optional[Gender] = None
    contact_phone: str = Field(..., min_length=1)
    booking_date: datetime
    time_slot: str = Field(..., min_length=1)
    collection_type: Optional[CollectionType] = None
    address: Optional[BookingAddress] = None
    special_instructions: Optional[str] = None


class Reschedule(BaseModel):
    booking_date: datetime
    time_slot: str = Field(..., min_length=1)


class Cancel(BaseModel):
    reason: Optional[str] = None


class AssignCollector(BaseModel):
    assigned_to: str = Field(..., min_length=1)
    collector_phone: Optional[str] = None


class BookingStatusUpdate(BaseModel):
    status: Optional[BookingStatus] = None
    sample_collected_at: Optional[datetime] = None
    admin_notes: Optional[str] = None


def get_booking_for(booking_id: str, user: dict, action: str = "view") -> dict:
    booking = find_by_id("booking", booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    if booking.get("user_id") != str(user["_id"]) and not is_admin(user):
        raise HTTPException(status_code=403, detail=f"Not authorized to {action} this booking")
    return booking


def with_order(booking: dict) -> dict:
    data = serialize(booking)
    data["order"] = serialize(find_by_id("order", booking.get("order_id")))
    return data


@router.get("")
async def list_my_bookings(user: dict = Depends(get_current_user)):
    bookings = get_documents("booking", {"user_id": str(user["_id"])}, sort=[("booking_date", -1)])
    return ok(bookings, count=len(bookings))


@router.get("/admin/all")
async def admin_list_bookings(status: Optional[BookingStatus] = None, date: Optional[DateType] = None,
                              _: dict = Depends(admin_only)):
    filt: Dict[str, Any] = {}
    if status:
        filt["status"] = status
    if date:
        start = datetime.combine(date, time.min)
        filt["booking_date"] = {"$gte": start, "$lt": start + timedelta(days=1)}
    cursor = collection("booking").find(filt).sort("booking_date", 1)
    bookings = [with_order(b) for b in cursor]
    return ok(bookings, count=len(bookings))


@router.post("", status_code=201)
async def create_booking(payload: BookingCreate, user: dict = Depends(get_current_user)):
    order = find_by_id("order", payload.order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.get("user_id") != str(user["_id"]) and not is_admin(user):
        raise HTTPException(status_code=403, detail="Not authorized to book for this order")
    if order.get("status") == "cancelled":
        raise HTTPException(status_code=400, detail="Cannot book collection for a cancelled order")

    address = payload.address
    if address is None and order.get("collection_address"):
        address = BookingAddress(**order["collection_address"])
    booking = Booking(
        order_id=str(order["_id"]),
        user_id=order.get("user_id"),
        patient_name=payload.patient_name,
        patient_age=payload.patient_age,
        patient_gender=payload.patient_gender,
        contact_phone=payload.contact_phone,
        booking_date=payload.booking_date,
        time_slot=payload.time_slot,
        collection_type=payload.collection_type or order.get("collection_type", "home"),
        address=address,
        special_instructions=payload.special_instructions,
    )
    booking_id = create_document("booking", booking)
    logger.info("Booking %s for order %s on %s %s", booking_id, booking.order_id,
                booking.booking_date.date(), booking.time_slot)
    return ok(serialize(find_by_id("booking", booking_id)), message="Booking created successfully")


@router.get("/{booking_id}")
async def get_booking(booking_id: str, user: dict = Depends(get_current_user)):
    return ok(with_order(get_booking_for(booking_id, user)))


@router.put("/{booking_id}")
async def reschedule_booking(booking_id: str, payload: Reschedule, user: dict = Depends(get_current_user)):
    booking = get_booking_for(booking_id, user, "modify")
    if booking.get("status") in ("cancelled", "completed"):
        raise HTTPException(status_code=400, detail=f"Cannot reschedule a {booking['status']} booking")
    new_date = naive_utc(payload.booking_date)
    if new_date == booking.get("booking_date") and payload.time_slot == booking.get("time_slot"):
        return ok(serialize(booking), message="Booking rescheduled successfully")
    updated = update_document("booking", booking["_id"], {
        "rescheduled_from": booking.get("booking_date"),
        "booking_date": new_date,
        "time_slot": payload.time_slot,
        "status": "rescheduled",
    })
    return ok(serialize(updated), message="Booking rescheduled successfully")


@router.delete("/{booking_id}")
async def cancel_booking(booking_id: str, payload: Optional[Cancel] = Body(None),
                         user: dict = Depends(get_current_user)):
    booking = get_booking_for(booking_id, user, "cancel")
    reason = (payload.reason if payload else None) or "Cancelled by user"
    updated = update_document("booking", booking["_id"], {"status": "cancelled", "cancellation_reason": reason})
    logger.info("Booking %s cancelled: %s", booking_id, reason)
    return ok(serialize(updated), message="Booking cancelled successfully")


@router.put("/{booking_id}/assign")
async def assign_collector(booking_id: str, payload: AssignCollector, _: dict = Depends(admin_only)):
    booking = find_by_id("booking", booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    update = payload.model_dump()
    if booking.get("status") == "scheduled":
        update["status"] = "confirmed"
    updated = update_document("booking", booking["_id"], update)
    return ok(serialize(updated), message="Collector assigned successfully")


@router.put("/{booking_id}/status")
async def update_booking_status(booking_id: str, payload: BookingStatusUpdate, _: dict = Depends(admin_only)):
    update = payload.model_dump(exclude_none=True)
    if "sample_collected_at" in update:
        update["sample_collected_at"] = naive_utc(update["sample_collected_at"])
    booking = update_document("booking", booking_id, update)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return ok(serialize(booking), message="Booking status updated successfully")
