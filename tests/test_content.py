import io
from datetime import datetime, timedelta


def banner(**overrides):
    data = {"title": "Full body checkup", "image": "/uploads/banners/1.webp"}
    data.update(overrides)
    return data


def test_create_banner_requires_title_and_image(client, admin_headers, user_headers):
    assert client.post("/api/banners", headers=user_headers, json=banner()).status_code == 403
    assert client.post("/api/banners", headers=admin_headers, json={"title": "No image"}).status_code == 400
    res = client.post("/api/banners", headers=admin_headers, json=banner())
    assert res.status_code == 201
    assert res.json()["data"]["position"] == "home_hero"


def test_public_banners_respect_window_and_position(client, admin_headers):
    now = datetime.utcnow()
    client.post("/api/banners", headers=admin_headers, json=banner(title="Always", order=2))
    client.post("/api/banners", headers=admin_headers, json=banner(
        title="Running", order=1, start_date=(now - timedelta(days=1)).isoformat(),
        end_date=(now + timedelta(days=1)).isoformat()))
    client.post("/api/banners", headers=admin_headers, json=banner(
        title="Future", start_date=(now + timedelta(days=3)).isoformat()))
    client.post("/api/banners", headers=admin_headers, json=banner(
        title="Ended", end_date=(now - timedelta(days=3)).isoformat()))
    client.post("/api/banners", headers=admin_headers, json=banner(title="Hidden", is_active=False))
    client.post("/api/banners", headers=admin_headers, json=banner(title="Offers", position="offers_page"))

    titles = [b["title"] for b in client.get("/api/banners?position=home_hero").json()["data"]]
    assert titles == ["Running", "Always"]
    assert len(client.get("/api/banners/admin/all", headers=admin_headers).json()["data"]) == 6


def test_reorder_update_and_delete_banner(client, admin_headers):
    first = client.post("/api/banners", headers=admin_headers, json=banner(title="A", order=0)).json()["data"]
    second = client.post("/api/banners", headers=admin_headers, json=banner(title="B", order=1)).json()["data"]
    res = client.put("/api/banners/reorder", headers=admin_headers,
                     json={"banners": [{"id": first["id"], "order": 5}, {"id": second["id"], "order": 0}]})
    assert res.status_code == 200
    assert [b["title"] for b in client.get("/api/banners").json()["data"]] == ["B", "A"]

    upd = client.put(f"/api/banners/{first['id']}", headers=admin_headers, json={"subtitle": "New"})
    assert upd.json()["data"]["subtitle"] == "New"
    assert client.delete(f"/api/banners/{first['id']}", headers=admin_headers).status_code == 200
    assert client.delete(f"/api/banners/{first['id']}", headers=admin_headers).status_code == 404


def test_hero_defaults_created_on_first_read(client, mongo):
    res = client.get("/api/hero-settings")
    assert res.status_code == 200
    assert res.json()["data"]["title"] == "Book Lab Tests Online"
    client.get("/api/hero-settings")
    assert mongo["hero_settings"].count_documents({}) == 1


def test_hero_update_keeps_single_active_document(client, admin_headers, mongo):
    mongo["hero_settings"].insert_many([
        {"title": "Old one", "hero_image": "/a.webp", "is_active": True},
        {"title": "Old two", "hero_image": "/b.webp", "is_active": True},
    ])
    res = client.put("/api/hero-settings", headers=admin_headers, json={"title": "Fresh", "cta_text": "Book now"})
    assert res.status_code == 200
    assert mongo["hero_settings"].count_documents({"is_active": True}) == 1
    assert client.get("/api/hero-settings").json()["data"]["title"] == "Fresh"


def test_hero_update_ignores_blank_title(client, admin_headers):
    client.get("/api/hero-settings")
    data = client.put("/api/hero-settings", headers=admin_headers, json={"title": "", "subtitle": ""}).json()["data"]
    assert data["title"] == "Book Lab Tests Online"
    assert data["subtitle"] == ""


def test_site_settings_singleton(client, admin_headers, user_headers, mongo):
    assert client.get("/api/settings").json()["data"]["site_name"] == "Pravin Clinical Laboratory"
    payload = {"tagline": "Trusted since 1998", "enable_online_payment": True}
    assert client.put("/api/settings", headers=user_headers, json=payload).status_code == 403
    first = client.put("/api/settings", headers=admin_headers, json=payload).json()["data"]
    client.put("/api/settings", headers=admin_headers, json=payload)
    assert mongo["site_settings"].count_documents({}) == 1
    assert first["tagline"] == "Trusted since 1998"
    assert first["site_name"] == "Pravin Clinical Laboratory"


def test_site_settings_upsert_on_empty_collection(client, admin_headers, mongo):
    data = client.put("/api/settings", headers=admin_headers, json={"maintenance_mode": True}).json()["data"]
    assert data["maintenance_mode"] is True
    assert data["enable_bookings"] is True
    assert mongo["site_settings"].count_documents({}) == 1


def test_upload_image(client, admin_headers, upload_dir):
    res = client.post("/api/upload?folder=banners", headers=admin_headers,
                      files={"file": ("promo.PNG", io.BytesIO(b"\x89PNG fake"), "image/png")})
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["path"].startswith("uploads/banners/")
    assert data["filename"].endswith(".png")
    assert data["url"] == f"http://testserver/{data['path']}"
    assert (upload_dir / "banners" / data["filename"]).read_bytes() == b"\x89PNG fake"


def test_upload_rejects_wrong_type_and_non_admin(client, admin_headers, user_headers, upload_dir):
    pdf = {"file": ("report.pdf", io.BytesIO(b"%PDF-1.4"), "application/pdf")}
    assert client.post("/api/upload", headers=user_headers, files=pdf).status_code == 403
    assert client.post("/api/upload", headers=admin_headers, files=pdf).status_code == 400
    ok = client.post("/api/upload?folder=reports", headers=admin_headers,
                     files={"file": ("report.pdf", io.BytesIO(b"%PDF-1.4"), "application/pdf")})
    assert ok.status_code == 200


def test_upload_rejects_bad_folder(client, admin_headers, upload_dir):
    res = client.post("/api/upload?folder=../etc", headers=admin_headers,
                      files={"file": ("a.png", io.BytesIO(b"x"), "image/png")})
    assert res.status_code == 400


def test_upload_multiple(client, admin_headers, upload_dir):
    files = [("files", (f"{i}.jpg", io.BytesIO(b"jpg"), "image/jpeg")) for i in range(3)]
    res = client.post("/api/upload/multiple?folder=packages", headers=admin_headers, files=files)
    assert res.status_code == 200
    assert len(res.json()["data"]) == 3
    assert len(list((upload_dir / "packages").iterdir())) == 3


def test_hero_image_upload(client, admin_headers, upload_dir):
    res = client.post("/api/hero-settings/upload", headers=admin_headers,
                      files={"hero_image": ("hero.webp", io.BytesIO(b"webp"), "image/webp")})
    assert res.status_code == 200
    body = res.json()
    assert body["image_url"].startswith("/uploads/hero/hero-")


def test_banner_update_refuses_null_title_and_image(client, admin_headers, mongo):
    created = client.post("/api/banners", headers=admin_headers, json=banner()).json()["data"]
    res = client.put(f"/api/banners/{created['id']}", headers=admin_headers, json={"title": None, "image": None})
    assert res.status_code == 400
    stored = client.get("/api/banners/admin/all", headers=admin_headers).json()["data"][0]
    assert stored["title"] == "Full body checkup"
    assert stored["image"] == "/uploads/banners/1.webp"


def test_site_settings_refuse_null_values(client, admin_headers):
    res = client.put("/api/settings", headers=admin_headers, json={"enable_bookings": None})
    assert res.status_code == 400
    assert client.get("/api/settings").json()["data"]["enable_bookings"] is True
