import io
from types import SimpleNamespace
from zipfile import ZipFile

from files import service
from storage.archive import build_archive
from storage.tree import (
    breadcrumbs, build_path, collect_descendants, find_descendant_ids, is_within
)


def folder(id, name, parent_id=None):
    return SimpleNamespace(id=id, name=name, parent_id=parent_id)


def names(result):
    return sorted(ZipFile(io.BytesIO(result.content)).namelist())


def test_build_path_walks_to_root():
    folder_map = {"a": folder("a", "A"), "b": folder("b", "B", "a")}
    assert build_path("b", folder_map) == "/A/B"
    assert build_path(None, folder_map) == "/"


def test_build_path_truncates_dangling_parent():
    folder_map = {"b": folder("b", "B", "gone")}
    assert build_path("b", folder_map) == "/B"


def test_build_path_survives_cycles():
    folder_map = {"a": folder("a", "A", "b"), "b": folder("b", "B", "a")}
    assert build_path("a", folder_map) == "/B/A"


def test_build_path_respects_depth_bound():
    folder_map = {str(i): folder(str(i), f"F{i}", str(i + 1)) for i in range(10)}
    assert build_path("0", folder_map, max_depth=3) == "/F2/F1/F0"


async def test_collect_descendants_relative_paths(db, user):
    root = await service.create_folder(db, user.id, "F")
    await service.upload_file(db, user.id, "a.txt", b"a", parent_id=root.id)
    sub = await service.create_folder(db, user.id, "Sub", root.id)
    await service.upload_file(db, user.id, "b.txt", b"b", parent_id=sub.id)
    await service.create_folder(db, user.id, "Empty", root.id)

    entries = await collect_descendants(db, root)
    paths = {entry.relative_path: entry for entry in entries}

    assert set(paths) == {"F/a.txt", "F/Sub", "F/Sub/b.txt", "F/Empty"}
    assert paths["F/Empty"].is_empty
    assert not paths["F/Sub"].is_empty


async def test_collect_descendants_skips_deleted(db, user):
    root = await service.create_folder(db, user.id, "F")
    gone = await service.upload_file(db, user.id, "gone.txt", b"x", parent_id=root.id)
    await service.delete_entities(db, user.id, [gone.id])

    assert await collect_descendants(db, root) == []


async def test_collect_descendants_depth_bound(db, user):
    root = await service.create_folder(db, user.id, "L0")
    parent = root
    for level in range(1, 5):
        parent = await service.create_folder(db, user.id, f"L{level}", parent.id)

    entries = await collect_descendants(db, root, max_depth=2)
    assert [entry.relative_path for entry in entries] == ["L0/L1", "L0/L1/L2"]
    assert not any(entry.is_empty for entry in entries)


async def test_truncated_folder_with_files_gets_no_marker(db, user):
    root = await service.create_folder(db, user.id, "R")
    inner = await service.create_folder(db, user.id, "A", root.id)
    await service.upload_file(db, user.id, "deep.txt", b"deep", parent_id=inner.id)
    empty = await service.create_folder(db, user.id, "B", root.id)

    entries = await collect_descendants(db, root, max_depth=1)

    assert {entry.relative_path: entry.is_empty for entry in entries} == {"R/A": False, "R/B": True}
    assert empty.id in {entry.id for entry in entries}
    assert names(build_archive("R", entries)) == ["R/B/.empty"]


async def test_descendant_ids_and_breadcrumbs(db, user):
    a = await service.create_folder(db, user.id, "A")
    b = await service.create_folder(db, user.id, "B", a.id)
    c = await service.create_folder(db, user.id, "C", b.id)
    note = await service.upload_file(db, user.id, "n.txt", b"n", parent_id=c.id)

    assert await find_descendant_ids(db, user.id, [a.id]) == {b.id, c.id, note.id}
    assert await breadcrumbs(db, user.id, c.id) == [
        {"id": a.id, "name": "A"},
        {"id": b.id, "name": "B"},
        {"id": c.id, "name": "C"},
    ]
    assert await is_within(db, note, [a.id])
    assert not await is_within(db, a, [c.id])
