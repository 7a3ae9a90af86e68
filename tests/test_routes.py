import io
from PIL import Image


def make_png_bytes(color="blue"):
    img = Image.new("RGB", (10, 10), color=color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def register(client, username="alice"):
    resp = client.post("/users", json={"username": username})
    assert resp.status_code == 201
    return {"X-Username": username}


def upload(client, headers, name="f.png", color="blue"):
    files = [("files", (name, make_png_bytes(color), "image/png"))]
    resp = client.post("/images", files=files, headers=headers)
    assert resp.status_code == 201
    return resp.json()["image_ids"][0]


def test_read_root(test_client):
    resp = test_client.get("/")
    assert resp.status_code == 200


# ------------------------------
# /users [POST]
# ------------------------------

def test_create_user(test_client):
    resp = test_client.post("/users", json={"username": "bob"})
    assert resp.status_code == 201
    assert resp.json()["username"] == "bob"
    assert resp.json()["object_base_path"]


def test_create_duplicate_user(test_client):
    register(test_client, "bob")
    resp = test_client.post("/users", json={"username": "bob"})
    assert resp.status_code == 409


# ------------------------------
# /images [POST]
# ------------------------------

def test_upload_image_success(test_client):
    headers = register(test_client)
    files = [
        ("files", ("a.png", make_png_bytes("red"), "image/png")),
        ("files", ("b.png", make_png_bytes("green"), "image/png")),
    ]
    resp = test_client.post("/images", files=files, headers=headers)
    assert resp.status_code == 201
    assert resp.json()["uploaded"] == 2


def test_upload_invalid_file_type(test_client):
    headers = register(test_client)
    files = [("files", ("f.txt", b"notimg", "text/plain"))]
    resp = test_client.post("/images", files=files, headers=headers)
    assert resp.status_code == 400


def test_upload_unknown_user(test_client):
    files = [("files", ("f.png", make_png_bytes(), "image/png"))]
    resp = test_client.post("/images", files=files, headers={"X-Username": "ghost"})
    assert resp.status_code == 401


def test_missing_user_header(test_client):
    resp = test_client.get("/images")
    assert resp.status_code == 422


# ------------------------------
# /images/{id} [GET + DELETE]
# ------------------------------

def test_get_and_delete_image(test_client):
    headers = register(test_client)
    img_id = upload(test_client, headers, "g.png")

    resp = test_client.get(f"/images/{img_id}", headers=headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.content == make_png_bytes()

    resp = test_client.get(f"/images/{img_id}/metadata", headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == img_id
    assert body["name"] == "g.png"
    assert body["version_count"] == 1
    assert body["initial_version"] and body["latest_version"]

    delete = test_client.delete(f"/images/{img_id}", headers=headers)
    assert delete.status_code == 204

    resp = test_client.get(f"/images/{img_id}", headers=headers)
    assert resp.status_code == 404


def test_get_nonexistent_image(test_client):
    headers = register(test_client)
    assert test_client.get("/images/nope", headers=headers).status_code == 404
    assert test_client.get("/images/nope/metadata", headers=headers).status_code == 404


def test_delete_nonexistent_image(test_client):
    headers = register(test_client)
    resp = test_client.delete("/images/nope", headers=headers)
    assert resp.status_code == 404


def test_other_user_cannot_read_image(test_client):
    img_id = upload(test_client, register(test_client, "alice"))
    resp = test_client.get(f"/images/{img_id}", headers=register(test_client, "bob"))
    assert resp.status_code == 404


# ------------------------------
# rename / revert / restore
# ------------------------------

def test_rename_image(test_client):
    headers = register(test_client)
    img_id = upload(test_client, headers)

    resp = test_client.patch(f"/images/{img_id}", json={"image_name": "new.png"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["updated"] is True

    meta = test_client.get(f"/images/{img_id}/metadata", headers=headers).json()
    assert meta["name"] == "new.png"


def test_rename_empty_name(test_client):
    headers = register(test_client)
    img_id = upload(test_client, headers)
    resp = test_client.patch(f"/images/{img_id}", json={"image_name": "  "}, headers=headers)
    assert resp.status_code == 400


def test_revert_and_restore(test_client):
    headers = register(test_client)
    img_id = upload(test_client, headers, color="red")
    assert upload(test_client, headers, color="blue") == img_id

    resp = test_client.post(f"/images/{img_id}/revert", headers=headers)
    assert resp.json()["updated"] is True
    assert test_client.get(f"/images/{img_id}", headers=headers).content == make_png_bytes("red")

    resp = test_client.post(f"/images/{img_id}/revert", headers=headers)
    assert resp.json() == {"updated": False, "version": None, "name": None}

    resp = test_client.post(f"/images/{img_id}/restore", headers=headers)
    assert resp.json()["updated"] is True
    assert test_client.get(f"/images/{img_id}", headers=headers).content == make_png_bytes("blue")

    resp = test_client.post(f"/images/{img_id}/restore", headers=headers)
    assert resp.json()["updated"] is False


# ------------------------------
# /images [GET list]
# ------------------------------

def test_list_images(test_client):
    headers = register(test_client)
    upload(test_client, headers, "a.png")
    upload(test_client, headers, "b.png")

    resp = test_client.get("/images", headers=headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 2
    assert len(body["images"]) == 2
    assert body["has_more"] is False
    assert body["images"][0]["content_type"] == "image/png"


def test_list_images_pagination(test_client):
    headers = register(test_client)
    for i in range(3):
        upload(test_client, headers, f"{i}.png")

    body = test_client.get("/images", params={"page": 1, "limit": 2}, headers=headers).json()
    assert len(body["images"]) == 2
    assert body["has_more"] is True


def test_list_images_invalid_limit(test_client):
    headers = register(test_client)
    assert test_client.get("/images", params={"limit": 0}, headers=headers).status_code == 422
    assert test_client.get("/images", params={"limit": 101}, headers=headers).status_code == 422
    assert test_client.get("/images", params={"page": 0}, headers=headers).status_code == 422


def test_list_orphans(test_client):
    headers = register(test_client)
    upload(test_client, headers)
    resp = test_client.get("/images/orphans", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"orphaned_objects": [], "orphaned_images": []}
