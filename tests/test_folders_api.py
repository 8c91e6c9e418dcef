import asyncio
import io
from zipfile import ZipFile

from sqlalchemy import func
from sqlalchemy.future import select

from models.file import FileEntity


async def test_create_folder_suffixes_duplicates(auth, make_folder):
    first = await make_folder(auth, "Docs")
    second = await make_folder(auth, "Docs")

    assert first["name"] == "Docs"
    assert second["name"] == "Docs(1)"
    assert second["path"] == "/Docs(1)"


async def test_create_if_missing_returns_existing(auth, make_folder):
    first = await make_folder(auth, "Docs")
    again = await make_folder(auth, "Docs", create_if_missing=True)

    assert again["id"] == first["id"]


async def test_concurrent_create_if_missing_yields_one_folder(client, auth, db):
    async def create():
        return await client.post(
            "/folders", headers=auth, json={"name": "Inbox", "createIfMissing": True}
        )

    responses = await asyncio.gather(*(create() for _ in range(4)))

    assert all(response.status_code == 201 for response in responses)
    assert len({response.json()["id"] for response in responses}) == 1
    count = await db.execute(select(func.count()).select_from(FileEntity).where(FileEntity.name == "Inbox"))
    assert count.scalar() == 1


async def test_unknown_parent_is_not_found(client, auth):
    response = await client.post("/folders", headers=auth, json={"name": "X", "parentId": "nope"})
    assert response.status_code == 404


async def test_invalid_name_rejected(client, auth):
    response = await client.post("/folders", headers=auth, json={"name": "   "})
    assert response.status_code == 400


async def test_breadcrumbs_follow_renames(client, auth, make_folder):
    a = await make_folder(auth, "A")
    b = await make_folder(auth, "B", a["id"])

    path = (await client.get(f"/folders/{b['id']}/path", headers=auth)).json()["path"]
    assert [crumb["name"] for crumb in path] == ["A", "B"]

    await client.post(f"/files/{a['id']}/rename", headers=auth, json={"newName": "Renamed"})

    path = (await client.get(f"/folders/{b['id']}/path", headers=auth)).json()["path"]
    assert [crumb["name"] for crumb in path] == ["Renamed", "B"]


async def test_list_folders_only(client, auth, make_folder, upload):
    parent = await make_folder(auth, "P")
    await make_folder(auth, "Child", parent["id"])
    await upload(auth, "file.txt", parent_id=parent["id"])

    items = (await client.get("/folders", headers=auth, params={"parentId": parent["id"]})).json()["items"]

    assert [item["name"] for item in items] == ["Child"]


async def test_folder_zip_contains_markers_for_empty_folders(client, auth, make_folder, upload):
    root = await make_folder(auth, "F")
    await upload(auth, "a.txt", b"a", parent_id=root["id"])
    await make_folder(auth, "Empty", root["id"])

    response = await client.get(f"/folders/{root['id']}/download", headers=auth)

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert sorted(ZipFile(io.BytesIO(response.content)).namelist()) == ["F/Empty/.empty", "F/a.txt"]


async def test_empty_folder_zip_has_one_entry(client, auth, make_folder):
    root = await make_folder(auth, "E")

    response = await client.get(f"/folders/{root['id']}/download", headers=auth)

    assert ZipFile(io.BytesIO(response.content)).namelist() == ["E/.empty"]
