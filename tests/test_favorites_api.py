async def test_add_to_default_folder_and_list(client, auth, upload):
    a = await upload(auth, "a.txt")
    b = await upload(auth, "b.txt")

    single = await client.post("/favorites/add", headers=auth, json={"fileId": a["id"]})
    assert single.json() == {"success": True}
    batch = await client.post("/favorites/add", headers=auth, json={"fileIds": [a["id"], b["id"]]})
    assert batch.json() == {"count": 1}

    listing = (await client.get("/favorites", headers=auth)).json()
    assert listing["total"] == 2
    assert {item["name"] for item in listing["items"]} == {"a.txt", "b.txt"}

    folders = (await client.get("/favorites/folders", headers=auth)).json()["folders"]
    assert len(folders) == 1
    assert folders[0]["isDefault"] is True
    assert folders[0]["fileCount"] == 2


async def test_deleted_files_disappear_from_favorites(client, auth, upload):
    item = await upload(auth, "gone.txt")
    await client.post("/favorites/add", headers=auth, json={"fileId": item["id"]})

    await client.post("/files/delete", headers=auth, json={"fileIds": [item["id"]]})

    assert (await client.get("/favorites", headers=auth)).json()["total"] == 0


async def test_foreign_file_cannot_be_favorited(client, auth, other_auth, upload):
    item = await upload(auth, "mine.txt")

    response = await client.post("/favorites/add", headers=other_auth, json={"fileId": item["id"]})

    assert response.status_code == 404


async def test_custom_folder_lifecycle(client, auth, upload):
    item = await upload(auth, "a.txt")
    other = await upload(auth, "b.txt")
    await client.post("/favorites/add", headers=auth, json={"fileId": item["id"]})

    created = await client.post("/favorites/folders", headers=auth, json={"name": "Work"})
    assert created.status_code == 201
    work = created.json()["folder"]
    await client.post("/favorites/add", headers=auth, json={"fileIds": [item["id"], other["id"]], "folderId": work["id"]})

    in_work = (await client.get("/favorites", headers=auth, params={"folderId": work["id"]})).json()
    assert in_work["total"] == 2

    renamed = await client.patch(f"/favorites/folders/{work['id']}", headers=auth, json={"name": "Job"})
    assert renamed.json()["folder"]["name"] == "Job"
    empty = await client.patch(f"/favorites/folders/{work['id']}", headers=auth, json={})
    assert empty.status_code == 400

    deleted = await client.delete(f"/favorites/folders/{work['id']}", headers=auth)
    assert deleted.json() == {"success": True, "moved": 1}
    folders = (await client.get("/favorites/folders", headers=auth)).json()["folders"]
    assert [(folder["isDefault"], folder["fileCount"]) for folder in folders] == [(True, 2)]


async def test_default_folder_cannot_be_deleted_and_can_move(client, auth):
    folders = (await client.get("/favorites/folders", headers=auth)).json()["folders"]
    default = folders[0]

    refused = await client.delete(f"/favorites/folders/{default['id']}", headers=auth)
    assert refused.status_code == 403

    created = (await client.post("/favorites/folders", headers=auth, json={"name": "Main", "isDefault": True})).json()
    folders = (await client.get("/favorites/folders", headers=auth)).json()["folders"]
    assert [(folder["id"], folder["isDefault"]) for folder in folders] == [
        (created["folder"]["id"], True),
        (default["id"], False),
    ]


async def test_remove_from_one_or_all_folders(client, auth, upload):
    item = await upload(auth, "a.txt")
    work = (await client.post("/favorites/folders", headers=auth, json={"name": "Work"})).json()["folder"]
    await client.post("/favorites/add", headers=auth, json={"fileId": item["id"]})
    await client.post("/favorites/add", headers=auth, json={"fileId": item["id"], "folderId": work["id"]})

    one = await client.post("/favorites/remove", headers=auth, json={"fileId": item["id"], "folderId": work["id"]})
    assert one.json() == {"success": True}
    assert (await client.get("/favorites", headers=auth)).json()["total"] == 1

    everywhere = await client.post("/favorites/remove", headers=auth, json={"fileIds": [item["id"]]})
    assert everywhere.json() == {"count": 1}
    assert (await client.get("/favorites", headers=auth)).json()["total"] == 0

    nothing = await client.post("/favorites/remove", headers=auth, json={})
    assert nothing.status_code == 400
