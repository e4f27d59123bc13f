import os
import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from responses import http_exception_handler, validation_exception_handler, unhandled_exception_handler
from auth import router as auth_router
from catalog import tests_router, packages_router
from offers import router as offers_router
from content import banners_router, hero_router, settings_router
from orders import router as orders_router
from bookings import router as bookings_router
from uploads import router as upload_router, UPLOAD_DIR
from stats import router as stats_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# App setup
app = FastAPI(title="Lab Storefront API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

for router in (auth_router, tests_router, packages_router, orders_router, offers_router, banners_router,
               bookings_router, hero_router, upload_router, stats_router, settings_router):
    app.include_router(router)

os.makedirs(UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=UPLOAD_DIR), name="uploads")


# Health and helpers
@app.get("/")
def root():
    return {"success": True, "message": "Lab Storefront API is running", "version": app.version}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected & Working"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()[:10]
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"⚠️ Connected but error: {str(e)[:80]}"
    return response


@app.get("/schema")
def get_schema():
    from schemas import User, Test, Package, Order, Booking, Offer, Banner, HeroSettings, SiteSettings
    models = {
        "user": User, "test": Test, "package": Package, "order": Order, "booking": Booking,
        "offer": Offer, "banner": Banner, "hero_settings": HeroSettings, "site_settings": SiteSettings,
    }
    return {"collections": [{"name": name, "schema": model.model_json_schema()} for name, model in models.items()]}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
