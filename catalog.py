"""
Catalog endpoints: lab tests and test packages.

Public reads only ever see active items. Admin deletes are soft: the item is
kept with is_active=False so past orders still make sense.
"""
import re
import math
import logging
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, HTTPException, Depends, Query
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, ValidationError

from database import collection, create_document, find_by_id, get_documents, serialize, to_object_id, update_document
from schemas import Test, TestUpdate, Package, PackageUpdate
from responses import ok
from auth import admin_only

logger = logging.getLogger(__name__)

tests_router = APIRouter(prefix="/api/tests", tags=["tests"])
packages_router = APIRouter(prefix="/api/packages", tags=["packages"])


class BulkImportTests(BaseModel):
    tests: List[Dict[str, Any]]


class BulkImportPackages(BaseModel):
    packages: List[Dict[str, Any]]


def _bulk_response(results: dict) -> JSONResponse:
    failed = len(results["errors"])
    body = {
        "success": failed == 0,
        "message": f"Import completed: {len(results['success'])} successful, {failed} failed",
        "data": results,
    }
    return JSONResponse(status_code=207 if failed else 201, content=jsonable_encoder(body))


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    field = ".".join(str(p) for p in err.get("loc", ()))
    return f"{field}: {err.get('msg')}" if field else err.get("msg", "Invalid data")


# ========= Tests =========
@tests_router.get("")
def list_tests(category: Optional[str] = None, search: Optional[str] = None,
               page: int = Query(1, ge=1), limit: int = Query(50, ge=1, le=500)):
    filt: Dict[str, Any] = {"is_active": True}
    if category:
        filt["category"] = category
    if search:
        filt["name"] = {"$regex": re.escape(search), "$options": "i"}
    total = collection("test").count_documents(filt)
    items = get_documents("test", filt, sort=[("name", 1)], skip=(page - 1) * limit, limit=limit)
    return ok(items, count=len(items), total=total, page=page, pages=math.ceil(total / limit))


@tests_router.get("/admin/all")
def admin_list_tests(_: dict = Depends(admin_only)):
    items = get_documents("test", sort=[("created_at", -1)])
    return ok(items, count=len(items))


@tests_router.post("/bulk-import")
def bulk_import_tests(payload: BulkImportTests, _: dict = Depends(admin_only)):
    if not payload.tests:
        raise HTTPException(status_code=400, detail="Please provide an array of tests to import")
    results = {"success": [], "errors": [], "total": len(payload.tests)}
    for line, raw in enumerate(payload.tests, start=1):
        name = raw.get("name") or "Unknown"
        try:
            test = Test(**raw)
        except ValidationError as e:
            results["errors"].append({"line": line, "name": name, "error": _first_error(e)})
            continue
        if collection("test").find_one({"name": test.name}):
            results["errors"].append({"line": line, "name": test.name, "error": "Test with this name already exists"})
            continue
        test_id = create_document("test", test)
        results["success"].append({"line": line, "name": test.name, "id": test_id})
    logger.info("Test import: %d ok, %d failed", len(results["success"]), len(results["errors"]))
    return _bulk_response(results)


@tests_router.get("/{test_id}")
def get_test(test_id: str):
    test = find_by_id("test", test_id)
    if not test:
        raise HTTPException(status_code=404, detail="Test not found")
    return ok(serialize(test))


@tests_router.post("", status_code=201)
def create_test(payload: Test, _: dict = Depends(admin_only)):
    test_id = create_document("test", payload)
    return ok(serialize(find_by_id("test", test_id)), message="Test created successfully")


@tests_router.put("/{test_id}")
def update_test(test_id: str, payload: TestUpdate, _: dict = Depends(admin_only)):
    test = update_document("test", test_id, payload.model_dump(exclude_unset=True))
    if not test:
        raise HTTPException(status_code=404, detail="Test not found")
    return ok(serialize(test), message="Test updated successfully")


@tests_router.delete("/{test_id}")
def delete_test(test_id: str, _: dict = Depends(admin_only)):
    if not update_document("test", test_id, {"is_active": False}):
        raise HTTPException(status_code=404, detail="Test not found")
    return ok(message="Test deleted successfully")


# ========= Packages =========
def _resolve_tests(test_ids: List[str], fields=("name", "price", "sample_type")) -> List[dict]:
    oids = [oid for oid in (to_object_id(t) for t in test_ids) if oid is not None]
    if not oids:
        return []
    projection = {f: 1 for f in fields} if fields else None
    return [serialize(t) for t in collection("test").find({"_id": {"$in": oids}}, projection)]


def _with_tests(pkg: dict, fields=("name", "price", "sample_type")) -> dict:
    pkg = serialize(pkg)
    pkg["tests"] = _resolve_tests(pkg.get("tests", []), fields)
    return pkg


def _test_ids_for(refs: List[str]) -> List[str]:
    """Accept test ids or test names; raise ValueError for anything unknown."""
    ids = []
    for ref in refs:
        if to_object_id(ref) is not None:
            ids.append(str(ref))
            continue
        test = collection("test").find_one({"name": ref})
        if not test:
            raise ValueError(f"Test not found: {ref}")
        ids.append(str(test["_id"]))
    return ids


@packages_router.get("")
def list_packages(category: Optional[str] = None, popular: Optional[bool] = None,
                  limit: int = Query(50, ge=1, le=500)):
    filt: Dict[str, Any] = {"is_active": True}
    if category:
        filt["category"] = category
    if popular:
        filt["is_popular"] = True
    cursor = collection("package").find(filt).sort([("is_popular", -1), ("name", 1)]).limit(limit)
    items = [_with_tests(p) for p in cursor]
    return ok(items, count=len(items))


@packages_router.get("/admin/all")
def admin_list_packages(_: dict = Depends(admin_only)):
    cursor = collection("package").find().sort("created_at", -1)
    items = [_with_tests(p, ("name", "price")) for p in cursor]
    return ok(items, count=len(items))


@packages_router.post("/bulk-import")
def bulk_import_packages(payload: BulkImportPackages, _: dict = Depends(admin_only)):
    if not payload.packages:
        raise HTTPException(status_code=400, detail="Please provide an array of packages to import")
    results = {"success": [], "errors": [], "total": len(payload.packages)}
    for line, raw in enumerate(payload.packages, start=1):
        name = raw.get("name") or "Unknown"
        try:
            data = dict(raw)
            data["tests"] = _test_ids_for(data.get("tests") or [])
            pkg = Package(**data)
        except ValidationError as e:
            results["errors"].append({"line": line, "name": name, "error": _first_error(e)})
            continue
        except ValueError as e:
            results["errors"].append({"line": line, "name": name, "error": str(e)})
            continue
        if collection("package").find_one({"name": pkg.name}):
            results["errors"].append({"line": line, "name": pkg.name, "error": "Package with this name already exists"})
            continue
        pkg_id = create_document("package", pkg)
        results["success"].append({"line": line, "name": pkg.name, "id": pkg_id, "tests_count": len(pkg.tests)})
    logger.info("Package import: %d ok, %d failed", len(results["success"]), len(results["errors"]))
    return _bulk_response(results)


@packages_router.get("/{package_id}")
def get_package(package_id: str):
    pkg = find_by_id("package", package_id)
    if not pkg:
        raise HTTPException(status_code=404, detail="Package not found")
    return ok(_with_tests(pkg, fields=None))


@packages_router.post("", status_code=201)
def create_package(payload: Package, _: dict = Depends(admin_only)):
    pkg_id = create_document("package", payload)
    return ok(_with_tests(find_by_id("package", pkg_id), ("name", "price")), message="Package created successfully")


@packages_router.put("/{package_id}")
def update_package(package_id: str, payload: PackageUpdate, _: dict = Depends(admin_only)):
    pkg = update_document("package", package_id, payload.model_dump(exclude_unset=True))
    if not pkg:
        raise HTTPException(status_code=404, detail="Package not found")
    return ok(_with_tests(pkg, ("name", "price")), message="Package updated successfully")


@packages_router.delete("/{package_id}")
def delete_package(package_id: str, _: dict = Depends(admin_only)):
    if not update_document("package", package_id, {"is_active": False}):
        raise HTTPException(status_code=404, detail="Package not found")
    return ok(message="Package deleted successfully")
