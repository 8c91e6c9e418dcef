import io
from zipfile import ZipFile

from sqlalchemy import update

from models.user import User


async def limit_storage(db, username, limit):
    await db.execute(update(User).where(User.username == username).values(storage_limit=limit))
    await db.commit()


async def test_upload_counts_against_quota(client, auth, db, upload):
    await limit_storage(db, "alice", 1000)

    item = await upload(auth, "report.pdf", b"x" * 500)

    assert item["name"] == "report.pdf"
    assert item["type"] == "document"
    assert item["size"] == 500
    quota = (await client.get("/files/quota", headers=auth)).json()
    assert quota == {"total": 1000, "used": 500, "available": 500, "percentage": 50.0}


async def test_upload_over_quota_is_rejected(client, auth, db, upload, storage_dir):
    await limit_storage(db, "alice", 1000)
    await upload(auth, "report.pdf", b"x" * 500)

    response = await client.post(
        "/files", headers=auth, files={"file": ("big.bin", b"x" * 600, "application/octet-stream")}
    )

    assert response.status_code == 403
    assert (await client.get("/files/quota", headers=auth)).json()["used"] == 500
    assert len(list(storage_dir.iterdir())) == 1


async def test_duplicate_upload_gets_suffix(auth, upload):
    first = await upload(auth, "report.pdf")
    second = await upload(auth, "report.pdf")

    assert first["name"] == "report.pdf"
    assert second["name"] == "report(1).pdf"


async def test_folder_upload_creates_structure(client, auth):
    response = await client.post(
        "/files",
        headers=auth,
        data={"paths": ["Photos/2024/a.jpg", "Photos/2024/b.jpg", "Photos/c.txt"], "tags": '["trip"]'},
        files=[
            ("file", ("a.jpg", b"a", "image/jpeg")),
            ("file", ("b.jpg", b"b", "image/jpeg")),
            ("file", ("c.txt", b"c", "text/plain")),
        ],
    )

    assert response.status_code == 200
    body = response.json()
    assert body["stats"] == {"totalFiles": 3, "uploadedFiles": 3}
    assert all(item["tags"] == ["trip"] for item in body["items"])

    folders = (await client.get("/folders", headers=auth)).json()["items"]
    assert [folder["name"] for folder in folders] == ["Photos"]
    listing = (await client.get("/files", headers=auth, params={"folderId": folders[0]["id"]})).json()
    assert {item["name"] for item in listing["items"]} == {"2024", "c.txt"}


async def test_listing_by_type_has_full_path(client, auth, upload, make_folder):
    docs = await make_folder(auth, "Docs")
    inner = await make_folder(auth, "Inner", docs["id"])
    await upload(auth, "deep.pdf", parent_id=inner["id"])
    await upload(auth, "pic.png")

    response = await client.get("/files", headers=auth, params={"type": "document"})

    items = response.json()["items"]
    assert [(item["name"], item["fullPath"]) for item in items] == [("deep.pdf", "/Docs/Inner")]


async def test_search_by_name_and_tag(client, auth, upload):
    await upload(auth, "holiday.jpg", tags=["trip", "summer"])
    await upload(auth, "notes.txt", tags=["work"])

    by_name = (await client.get("/files/search", headers=auth, params={"q": "HOLI"})).json()
    assert [item["name"] for item in by_name["items"]] == ["holiday.jpg"]
    assert by_name["items"][0]["fullPath"] == "/"

    by_tag = (await client.get("/files/search", headers=auth, params={"q": "work", "mode": "tag"})).json()
    assert [item["name"] for item in by_tag["items"]] == ["notes.txt"]

    tags = (await client.get("/files/tags", headers=auth)).json()["tags"]
    assert tags == ["summer", "trip", "work"]


async def test_check_name_conflicts(client, auth, upload):
    await upload(auth, "a.txt")

    response = await client.post(
        "/files/check-name-conflicts", headers=auth, json={"folderId": None, "names": ["a.txt", "b.txt"]}
    )

    assert response.json() == {"conflicts": ["a.txt"], "hasConflicts": True}


async def test_rename_conflict_changes_nothing(client, auth, upload):
    await upload(auth, "a.txt")
    b = await upload(auth, "b.txt")

    response = await client.post(f"/files/{b['id']}/rename", headers=auth, json={"newName": "a.txt"})

    assert response.status_code == 409
    assert (await client.get(f"/files/{b['id']}", headers=auth)).json()["name"] == "b.txt"


async def test_rename_round_trip_keeps_content(client, auth, upload):
    item = await upload(auth, "notes.txt", b"content")

    renamed = await client.post(f"/files/{item['id']}/rename", headers=auth, json={"newName": "notes.md"})
    assert renamed.json()["name"] == "notes.md"
    restored = await client.post(
        f"/files/{item['id']}/rename", headers=auth, json={"newName": "notes.txt", "tags": ["kept"]}
    )

    assert restored.json()["name"] == "notes.txt"
    assert restored.json()["tags"] == ["kept"]
    content = await client.get(f"/files/{item['id']}/content", headers=auth)
    assert content.content == b"content"


async def test_content_range_requests(client, auth, upload):
    item = await upload(auth, "digits.txt", b"0123456789")

    partial = await client.get(f"/files/{item['id']}/content", headers={**auth, "Range": "bytes=2-5"})
    assert partial.status_code == 206
    assert partial.content == b"2345"
    assert partial.headers["content-range"] == "bytes 2-5/10"
    assert partial.headers["accept-ranges"] == "bytes"

    bad = await client.get(f"/files/{item['id']}/content", headers={**auth, "Range": "bytes=20-"})
    assert bad.status_code == 416


async def test_move_rules(client, auth, upload, make_folder):
    a = await make_folder(auth, "A")
    b = await make_folder(auth, "B", a["id"])
    clash = await make_folder(auth, "Target")
    await upload(auth, "x.txt", parent_id=clash["id"])
    x = await upload(auth, "x.txt")

    into_child = await client.post("/files/move", headers=auth, json={"fileIds": [a["id"]], "targetFolderId": b["id"]})
    assert into_child.status_code == 400

    collision = await client.post(
        "/files/move", headers=auth, json={"fileIds": [x["id"]], "targetFolderId": clash["id"]}
    )
    assert collision.status_code == 409

    moved = await client.post("/files/move", headers=auth, json={"fileIds": [x["id"]], "targetFolderId": a["id"]})
    assert moved.json() == {"moved": 1}
    assert (await client.get(f"/files/{x['id']}", headers=auth)).json()["parentId"] == a["id"]


async def test_delete_folder_releases_quota(client, auth, upload, make_folder, storage_dir):
    folder = await make_folder(auth, "F")
    await upload(auth, "a.bin", b"x" * 10, parent_id=folder["id"])
    await upload(auth, "keep.bin", b"x" * 3)

    response = await client.post("/files/delete", headers=auth, json={"fileIds": [folder["id"]]})

    assert response.json() == {"deleted": 2}
    assert (await client.get("/files/quota", headers=auth)).json()["used"] == 3
    assert len(list(storage_dir.iterdir())) == 1
    assert (await client.get(f"/files/{folder['id']}", headers=auth)).status_code == 404


async def test_download_variants(client, auth, upload, make_folder):
    single = await upload(auth, "one.txt", b"one")
    folder = await make_folder(auth, "F")
    await upload(auth, "a.txt", b"a", parent_id=folder["id"])
    empty = await make_folder(auth, "Empty")

    blob = await client.post("/files/download", headers=auth, json={"fileIds": [single["id"]]})
    assert blob.content == b"one"
    assert "filename*=UTF-8''one.txt" in blob.headers["content-disposition"]

    folder_zip = await client.post("/files/download", headers=auth, json={"fileIds": [folder["id"]]})
    assert ZipFile(io.BytesIO(folder_zip.content)).namelist() == ["F/a.txt"]

    many = await client.post("/files/download", headers=auth, json={"fileIds": [single["id"], folder["id"]]})
    assert "files.zip" in many.headers["content-disposition"]
    assert sorted(ZipFile(io.BytesIO(many.content)).namelist()) == ["F/a.txt", "one.txt"]

    empty_zip = await client.post("/files/download", headers=auth, json={"fileIds": [empty["id"]]})
    assert empty_zip.status_code == 400


async def test_other_users_files_are_invisible(client, auth, other_auth, upload):
    item = await upload(auth, "secret.txt")

    assert (await client.get(f"/files/{item['id']}", headers=other_auth)).status_code == 404
    response = await client.post("/files/delete", headers=other_auth, json={"fileIds": [item["id"]]})
    assert response.json() == {"deleted": 0}


async def test_recent_files_follow_recorded_access(client, auth, other_auth, upload, make_folder):
    first = await upload(auth, "first.txt")
    second = await upload(auth, "second.txt")
    await make_folder(auth, "NotAFile")

    recorded = await client.post("/files/recent/record", headers=auth, json={"fileId": first["id"]})
    assert recorded.json() == {"success": True}

    recent = (await client.get("/files/recent", headers=auth)).json()["files"]
    assert [item["name"] for item in recent] == ["first.txt", "second.txt"]
    limited = (await client.get("/files/recent", headers=auth, params={"limit": 1})).json()["files"]
    assert [item["id"] for item in limited] == [first["id"]]

    foreign = await client.post("/files/recent/record", headers=other_auth, json={"fileId": second["id"]})
    assert foreign.status_code == 404


async def test_access_history_is_paginated_and_owner_only(client, auth, other_auth, upload):
    item = await upload(auth, "doc.txt")
    for _ in range(3):
        await client.post("/files/recent/record", headers=auth, json={"fileId": item["id"]})

    body = (await client.get(f"/files/{item['id']}/access-history", headers=auth, params={"limit": 2})).json()

    assert body["pagination"] == {"total": 3, "page": 1, "pageSize": 2, "totalPages": 2}
    assert [entry["userName"] for entry in body["history"]] == ["alice", "alice"]
    hidden = await client.get(f"/files/{item['id']}/access-history", headers=other_auth)
    assert hidden.status_code == 404
