import io
from zipfile import ZipFile

import pytest


@pytest.fixture
def share(client):
    async def _share(headers, file_ids, **options):
        response = await client.post("/share", headers=headers, json={"fileIds": file_ids, **options})
        assert response.status_code == 201, response.text
        return response.json()
    return _share


def visitor(agent):
    return {"user-agent": agent}


async def test_never_expiring_share_counts_each_visitor_once(client, auth, upload, share):
    item = await upload(auth, "doc.txt")
    created = await share(auth, [item["id"]], expiryDays=-1)

    assert created["expiresAt"] is None
    body = {"shareCode": created["shareCode"], "extractCode": created["extractCode"]}

    for _ in range(3):
        response = await client.post("/share/verify", json=body, headers=visitor("A"))
        assert response.status_code == 200
    assert response.json()["accessCount"] == 1
    assert "extractCode" not in response.json()

    response = await client.post("/share/verify", json=body, headers=visitor("B"))
    assert response.json()["accessCount"] == 2
    assert [f["name"] for f in response.json()["files"]] == ["doc.txt"]


async def test_wrong_code_and_limit(client, auth, upload, share):
    item = await upload(auth, "doc.txt")
    created = await share(auth, [item["id"]], accessLimit=1, extractCode="SECR")
    body = {"shareCode": created["shareCode"], "extractCode": "SECR"}

    wrong = await client.post("/share/verify", json={**body, "extractCode": "NOPE"})
    assert wrong.status_code == 403

    assert (await client.post("/share/verify", json=body, headers=visitor("A"))).status_code == 200
    assert (await client.post("/share/verify", json=body, headers=visitor("B"))).status_code == 403
    assert (await client.post("/share/verify", json=body, headers=visitor("A"))).status_code == 200


async def test_unknown_share_is_not_found(client):
    response = await client.post("/share/verify", json={"shareCode": "missing", "extractCode": "X"})
    assert response.status_code == 404


async def test_browse_and_download_shared_folder(client, auth, upload, make_folder, share):
    root = await make_folder(auth, "Shared")
    await upload(auth, "a.txt", b"a", parent_id=root["id"])
    inner = await make_folder(auth, "Inner", root["id"])
    deep = await upload(auth, "deep.txt", b"deep", parent_id=inner["id"])
    private = await upload(auth, "private.txt", b"p")
    created = await share(auth, [root["id"]])
    access = {"shareCode": created["shareCode"], "extractCode": created["extractCode"]}

    listing = await client.post("/share/folder", json={**access, "folderId": inner["id"]})
    assert [item["name"] for item in listing.json()["items"]] == ["deep.txt"]

    blob = await client.post("/share/download", json={**access, "fileId": deep["id"]})
    assert blob.content == b"deep"

    outside = await client.post("/share/download", json={**access, "fileId": private["id"]})
    assert outside.status_code == 404

    archive = await client.post("/share/download-folder", json={**access, "folderId": root["id"]})
    assert sorted(ZipFile(io.BytesIO(archive.content)).namelist()) == ["Shared/Inner/deep.txt", "Shared/a.txt"]


async def test_download_empty_shared_folder_is_rejected(client, auth, make_folder, share):
    root = await make_folder(auth, "Empty")
    created = await share(auth, [root["id"]])

    response = await client.post(
        "/share/download-folder",
        json={"shareCode": created["shareCode"], "extractCode": created["extractCode"], "folderId": root["id"]},
    )

    assert response.status_code == 400


async def test_save_shared_file_to_own_drive(client, auth, other_auth, upload, share):
    item = await upload(auth, "doc.txt", b"hello")
    await upload(other_auth, "doc.txt", b"mine")
    created = await share(auth, [item["id"]], autoRefreshCode=True)

    anonymous = await client.post("/share/save", json={"shareCode": created["shareCode"], "fileId": item["id"]})
    assert anonymous.status_code == 401

    response = await client.post(
        "/share/save", headers=other_auth, json={"shareCode": created["shareCode"], "fileId": item["id"]}
    )

    assert response.status_code == 200
    saved = response.json()["item"]
    assert saved["name"] == "doc(1).txt"
    content = await client.get(f"/files/{saved['id']}/content", headers=other_auth)
    assert content.content == b"hello"
    assert (await client.get("/files/quota", headers=other_auth)).json()["used"] == 9


async def test_list_and_delete_shares(client, auth, other_auth, upload, share):
    item = await upload(auth, "doc.txt")
    created = await share(auth, [item["id"]])

    listed = (await client.get("/share", headers=auth)).json()["items"]
    assert [s["id"] for s in listed] == [created["id"]]
    assert (await client.get("/share", headers=other_auth)).json()["items"] == []

    response = await client.request("DELETE", "/share", headers=auth, json={"shareIds": [created["id"]]})
    assert response.json() == {"deleted": 1}
    missing = await client.post(
        "/share/verify", json={"shareCode": created["shareCode"], "extractCode": created["extractCode"]}
    )
    assert missing.status_code == 404


async def test_share_link_carries_code_when_auto_refresh_requested(auth, upload, share):
    item = await upload(auth, "doc.txt")

    created = await share(auth, [item["id"]], autoRefreshCode=True, extractCode="AB12")
    plain = await share(auth, [item["id"]])
    legacy = await share(auth, [item["id"]], autoFillCode=True)

    assert created["shareLink"].endswith(f"/s/{created['shareCode']}?code=AB12")
    assert created["extractCode"] == "AB12"
    assert plain["shareLink"].endswith(f"/s/{plain['shareCode']}")
    assert legacy["autoFillCode"] is True
