from fastapi import APIRouter, Depends

from database import collection, get_documents
from responses import ok
from auth import admin_only

router = APIRouter(prefix="/api/stats", tags=["stats"])

RECENT_ORDER_FIELDS = {"customer_name": 1, "total_amount": 1, "status": 1, "payment_status": 1, "created_at": 1}


@router.get("/dashboard")
def dashboard(_: dict = Depends(admin_only)):
    orders = collection("order")
    revenue = list(orders.aggregate([
        {"$match": {"payment_status": "paid"}},
        {"$group": {"_id": None, "total": {"$sum": "$total_amount"}}},
    ]))
    recent = [
        {k: v for k, v in o.items() if k in RECENT_ORDER_FIELDS or k == "id"}
        for o in get_documents("order", sort=[("created_at", -1)], limit=5)
    ]
    return ok({
        "counts": {
            "users": collection("user").count_documents({"role": "user"}),
            "orders": orders.count_documents({}),
            "tests": collection("test").count_documents({"is_active": True}),
            "packages": collection("package").count_documents({"is_active": True}),
            "pending_orders": orders.count_documents({"status": "pending"}),
            "completed_orders": orders.count_documents({"status": "completed"}),
            "revenue": revenue[0]["total"] if revenue else 0,
        },
        "recent_orders": recent,
    })
