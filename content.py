"""
Presentation content: banners, the home-page hero and site-wide settings.
"""
import logging
from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, HTTPException, Depends, Request, UploadFile, File
from pydantic import BaseModel
from pymongo import ReturnDocument

from database import collection, create_document, find_by_id, get_documents, serialize, to_object_id, update_document
from schemas import Banner, BannerUpdate, BannerPosition, HeroSettings, HeroSettingsUpdate, SiteSettings, SiteSettingsUpdate
from responses import ok
from auth import admin_only
from uploads import save_upload

logger = logging.getLogger(__name__)

banners_router = APIRouter(prefix="/api/banners", tags=["banners"])
hero_router = APIRouter(prefix="/api/hero-settings", tags=["hero"])
settings_router = APIRouter(prefix="/api/settings", tags=["settings"])


class BannerOrder(BaseModel):
    id: str
    order: int


class ReorderBanners(BaseModel):
    banners: List[BannerOrder]


# ========= Banners =========
def visible_now_filter(now: datetime) -> dict:
    """Active banners whose optional start/end window contains `now`."""
    return {
        "is_active": True,
        "$and": [
            {"$or": [{"start_date": None}, {"start_date": {"$lte": now}}]},
            {"$or": [{"end_date": None}, {"end_date": {"$gte": now}}]},
        ],
    }


@banners_router.get("")
def list_banners(position: Optional[BannerPosition] = None):
    filt = visible_now_filter(datetime.utcnow())
    if position:
        filt["position"] = position
    banners = get_documents("banner", filt, sort=[("order", 1), ("created_at", -1)])
    return ok(banners, count=len(banners))


@banners_router.get("/admin/all")
def admin_list_banners(_: dict = Depends(admin_only)):
    banners = get_documents("banner", sort=[("position", 1), ("order", 1)])
    return ok(banners, count=len(banners))


@banners_router.put("/reorder")
def reorder_banners(payload: ReorderBanners, _: dict = Depends(admin_only)):
    for item in payload.banners:
        oid = to_object_id(item.id)
        if oid is not None:
            collection("banner").update_one({"_id": oid}, {"$set": {"order": item.order, "updated_at": datetime.utcnow()}})
    return ok(message="Banners reordered successfully")


@banners_router.post("", status_code=201)
def create_banner(payload: Banner, _: dict = Depends(admin_only)):
    banner_id = create_document("banner", payload)
    return ok(serialize(find_by_id("banner", banner_id)), message="Banner created successfully")


@banners_router.put("/{banner_id}")
def update_banner(banner_id: str, payload: BannerUpdate, _: dict = Depends(admin_only)):
    banner = update_document("banner", banner_id, payload.model_dump(exclude_unset=True))
    if not banner:
        raise HTTPException(status_code=404, detail="Banner not found")
    return ok(serialize(banner), message="Banner updated successfully")


@banners_router.delete("/{banner_id}")
def delete_banner(banner_id: str, _: dict = Depends(admin_only)):
    oid = to_object_id(banner_id)
    if oid is None or collection("banner").delete_one({"_id": oid}).deleted_count == 0:
        raise HTTPException(status_code=404, detail="Banner not found")
    return ok(message="Banner deleted successfully")


# ========= Hero settings =========
def activate_hero(hero_id) -> None:
    collection("hero_settings").update_many({"_id": {"$ne": hero_id}}, {"$set": {"is_active": False}})


def active_hero() -> dict:
    hero = collection("hero_settings").find_one({"is_active": True})
    if hero is None:
        hero_id = create_document("hero_settings", HeroSettings())
        hero = find_by_id("hero_settings", hero_id)
        activate_hero(hero["_id"])
    return hero


@hero_router.get("")
def get_hero_settings():
    return ok(serialize(active_hero()))


@hero_router.put("")
def update_hero_settings(payload: HeroSettingsUpdate, _: dict = Depends(admin_only)):
    update = payload.model_dump(exclude_unset=True)
    # Title and image may not be blanked out
    for required in ("title", "hero_image"):
        if not update.get(required, True):
            update.pop(required)
    hero = collection("hero_settings").find_one({"is_active": True})
    if hero is None:
        data = HeroSettings().model_dump()
        data.update({k: v for k, v in update.items() if v is not None})
        hero = find_by_id("hero_settings", create_document("hero_settings", data))
    else:
        hero = update_document("hero_settings", hero["_id"], update)
    activate_hero(hero["_id"])
    return ok(serialize(hero), message="Hero settings updated successfully")


@hero_router.post("/upload")
def upload_hero_image(request: Request, hero_image: UploadFile = File(...), _: dict = Depends(admin_only)):
    stored = save_upload(hero_image, "hero", request, prefix="hero-")
    return ok(stored, message="Hero image uploaded successfully", image_url=f"/{stored['path']}")


# ========= Site settings =========
@settings_router.get("")
def get_site_settings():
    settings = collection("site_settings").find_one({})
    if settings is None:
        settings = find_by_id("site_settings", create_document("site_settings", SiteSettings()))
    return ok(serialize(settings))


@settings_router.put("")
def update_site_settings(payload: SiteSettingsUpdate, _: dict = Depends(admin_only)):
    update = payload.model_dump(exclude_unset=True)
    now = datetime.utcnow()
    update["updated_at"] = now
    defaults = SiteSettings().model_dump()
    for key in update:
        defaults.pop(key, None)
    defaults["created_at"] = now
    settings = collection("site_settings").find_one_and_update(
        {},
        {"$set": update, "$setOnInsert": defaults},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Site settings updated: %s", ", ".join(sorted(k for k in update if k != "updated_at")))
    return ok(serialize(settings), message="Settings updated successfully")
