import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

import hierarchy, paths, schemas
from exceptions import NotFound, StorageFailure

async def make_chain(db: AsyncSession, *names):
    parent_id = None
    chain = []
    for name in names:
        folder = await hierarchy.create_folder(db, schemas.FolderCreate(name=name, parent_id=parent_id))
        chain.append(folder)
        parent_id = folder.id
    return chain

@pytest.mark.asyncio
async def test_compute_path_for_root(db_session: AsyncSession):
    assert await paths.compute_path(db_session, None) == ("/", 0)

@pytest.mark.asyncio
async def test_compute_path_under_nested_parent(db_session: AsyncSession):
    docs, reports = await make_chain(db_session, "Docs", "Reports")

    assert await paths.compute_path(db_session, docs.id) == ("/Docs", 1)
    assert await paths.compute_path(db_session, reports.id) == ("/Docs/Reports", 2)

@pytest.mark.asyncio
async def test_compute_path_missing_parent(db_session: AsyncSession):
    with pytest.raises(NotFound):
        await paths.compute_path(db_session, uuid.uuid4())

@pytest.mark.asyncio
async def test_breadcrumb_runs_root_first_and_has_level_plus_one_entries(db_session: AsyncSession):
    chain = await make_chain(db_session, "Docs", "Reports", "2024")
    target = chain[-1]

    breadcrumb = await paths.resolve_breadcrumb(db_session, target.id)

    assert len(breadcrumb) == target.level + 1
    assert [entry.name for entry in breadcrumb] == ["Docs", "Reports", "2024"]
    assert [entry.id for entry in breadcrumb] == [f.id for f in chain]
    assert breadcrumb[-1].id == target.id

@pytest.mark.asyncio
async def test_breadcrumb_of_root_level_folder(db_session: AsyncSession):
    (docs,) = await make_chain(db_session, "Docs")
    breadcrumb = await paths.resolve_breadcrumb(db_session, docs.id)
    assert breadcrumb == [schemas.BreadcrumbEntry(id=docs.id, name="Docs")]

@pytest.mark.asyncio
async def test_breadcrumb_missing_folder(db_session: AsyncSession):
    with pytest.raises(NotFound) as exc_info:
        await paths.resolve_breadcrumb(db_session, uuid.uuid4())
    assert exc_info.value.message == "Folder not found"

@pytest.mark.asyncio
async def test_breadcrumb_with_dangling_ancestor():
    child_id, missing_parent_id = uuid.uuid4(), uuid.uuid4()
    child = SimpleNamespace(id=child_id, name="Lost", parent_id=missing_parent_id)

    async def fake_get_folder(db, folder_id):
        return child if folder_id == child_id else None

    with patch("paths.crud.get_folder", new=AsyncMock(side_effect=fake_get_folder)):
        with pytest.raises(NotFound) as exc_info:
            await paths.resolve_breadcrumb(None, child_id)

    assert str(missing_parent_id) in exc_info.value.message

@pytest.mark.asyncio
async def test_breadcrumb_detects_parent_cycle():
    a_id, b_id = uuid.uuid4(), uuid.uuid4()
    folders = {
        a_id: SimpleNamespace(id=a_id, name="A", parent_id=b_id),
        b_id: SimpleNamespace(id=b_id, name="B", parent_id=a_id),
    }

    async def fake_get_folder(db, folder_id):
        return folders.get(folder_id)

    with patch("paths.crud.get_folder", new=AsyncMock(side_effect=fake_get_folder)):
        with pytest.raises(StorageFailure):
            await paths.resolve_breadcrumb(None, a_id)

@pytest.mark.asyncio
async def test_breadcrumb_depth_bound(db_session: AsyncSession):
    chain = await make_chain(db_session, "L0", "L1", "L2", "L3")
    with pytest.raises(StorageFailure):
        await paths.resolve_breadcrumb(db_session, chain[-1].id, max_depth=2)
