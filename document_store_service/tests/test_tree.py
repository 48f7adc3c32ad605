import uuid
from datetime import datetime

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

import hierarchy, schemas, tree
from exceptions import NotFound, StorageFailure
from filters import FolderFilter, FileFilter, ROOT

async def make_folder(db: AsyncSession, name: str, parent_id=None, description: str = ""):
    return await hierarchy.create_folder(
        db, schemas.FolderCreate(name=name, parent_id=parent_id, description=description)
    )

async def make_file(db: AsyncSession, name: str, folder_id=None, mimetype="application/pdf", created_at=None, **extra):
    file = await hierarchy.create_file(
        db,
        schemas.FileCreate(name=name, folder_id=folder_id, original_name=extra.get("original_name", name),
                           description=extra.get("description", ""), mimetype=mimetype, size=10),
        f"{uuid.uuid4().hex}.bin",
    )
    if created_at is not None:
        file.created_at = created_at
        await db.commit()
    return file

@pytest.mark.asyncio
async def test_build_tree_docs_reports_scenario(db_session: AsyncSession):
    docs = await make_folder(db_session, "Docs")
    reports = await make_folder(db_session, "Reports", parent_id=docs.id)
    assert reports.path == "/Docs"
    assert reports.level == 1
    await make_file(db_session, "Q1.pdf", folder_id=reports.id)

    result = await tree.build_tree(db_session)

    assert len(result.folders) == 1
    docs_node = result.folders[0]
    assert docs_node.name == "Docs"
    assert docs_node.level == 0
    assert docs_node.has_children is True
    assert docs_node.has_files is False
    assert len(docs_node.children) == 1

    reports_node = docs_node.children[0]
    assert reports_node.name == "Reports"
    assert reports_node.level == 1
    assert reports_node.has_files is True
    assert reports_node.has_children is False
    assert [f.name for f in reports_node.files] == ["Q1.pdf"]
    assert reports_node.files[0].type == "file"
    assert result.root_files == []

@pytest.mark.asyncio
async def test_build_tree_orders_by_name_and_returns_root_files(db_session: AsyncSession):
    await make_folder(db_session, "beta")
    alpha = await make_folder(db_session, "Alpha")
    await make_file(db_session, "z.txt", folder_id=alpha.id, mimetype="text/plain")
    await make_file(db_session, "a.txt", folder_id=alpha.id, mimetype="text/plain")
    await make_file(db_session, "loose.txt", mimetype="text/plain")

    result = await tree.build_tree(db_session)

    assert [n.name for n in result.folders] == ["Alpha", "beta"]
    assert [f.name for f in result.folders[0].files] == ["a.txt", "z.txt"]
    assert [f.name for f in result.root_files] == ["loose.txt"]

@pytest.mark.asyncio
async def test_build_tree_uses_canonical_pointers(db_session: AsyncSession):
    docs = await make_folder(db_session, "Docs")
    await make_file(db_session, "kept.txt", folder_id=docs.id, mimetype="text/plain")
    docs.files = []
    await db_session.commit()

    result = await tree.build_tree(db_session)
    assert [f.name for f in result.folders[0].files] == ["kept.txt"]

@pytest.mark.asyncio
async def test_build_subtree(db_session: AsyncSession):
    docs = await make_folder(db_session, "Docs")
    reports = await make_folder(db_session, "Reports", parent_id=docs.id)
    await make_folder(db_session, "2024", parent_id=reports.id)
    await make_file(db_session, "index.pdf", folder_id=docs.id)

    result = await tree.build_tree(db_session, parent_id=docs.id)

    assert [n.name for n in result.folders] == ["Reports"]
    assert result.folders[0].level == 1
    assert result.folders[0].children[0].level == 2
    assert [f.name for f in result.root_files] == ["index.pdf"]

    with pytest.raises(NotFound):
        await tree.build_tree(db_session, parent_id=uuid.uuid4())

@pytest.mark.asyncio
async def test_build_tree_depth_bound(db_session: AsyncSession):
    parent_id = None
    for name in ["L0", "L1", "L2", "L3"]:
        parent_id = (await make_folder(db_session, name, parent_id=parent_id)).id

    with pytest.raises(StorageFailure):
        await tree.build_tree(db_session, max_depth=2)
    assert len((await tree.build_tree(db_session, max_depth=3)).folders) == 1

@pytest.mark.asyncio
async def test_list_folders_scope_rules(db_session: AsyncSession):
    docs = await make_folder(db_session, "Docs")
    await make_folder(db_session, "Photos")
    await make_folder(db_session, "Reports", parent_id=docs.id)
    await make_folder(db_session, "Docs archive", parent_id=docs.id)

    unscoped = await tree.list_folders(db_session, FolderFilter())
    assert [f.name for f in unscoped.data] == ["Docs", "Photos"]

    root = await tree.list_folders(db_session, FolderFilter(parent=ROOT))
    assert [f.name for f in root.data] == ["Docs", "Photos"]

    children = await tree.list_folders(db_session, FolderFilter(parent=docs.id))
    assert [f.name for f in children.data] == ["Docs archive", "Reports"]

    # An unscoped search spans every level.
    searched = await tree.list_folders(db_session, FolderFilter(search="docs"))
    assert [f.name for f in searched.data] == ["Docs", "Docs archive"]

    root_search = await tree.list_folders(db_session, FolderFilter(parent=ROOT, search="docs"))
    assert [f.name for f in root_search.data] == ["Docs"]

@pytest.mark.asyncio
async def test_list_folders_contains_each_folder_once_under_its_parent(db_session: AsyncSession):
    docs = await make_folder(db_session, "Docs")
    created = [docs]
    for name in ["A", "B", "C"]:
        created.append(await make_folder(db_session, name, parent_id=docs.id))

    for folder in created:
        scope = folder.parent_id if folder.parent_id is not None else ROOT
        listing = await tree.list_folders(db_session, FolderFilter(parent=scope), limit=100)
        ids = [f.id for f in listing.data]
        assert ids.count(folder.id) == 1
        names = [(f.name, f.parent_id) for f in listing.data]
        assert len(names) == len(set(names))

@pytest.mark.asyncio
async def test_list_folders_search_and_description(db_session: AsyncSession):
    await make_folder(db_session, "Invoices", description="Finance team")
    await make_folder(db_session, "Misc", description="finance leftovers")
    await make_folder(db_session, "Photos", description="Holiday")

    by_search = await tree.list_folders(db_session, FolderFilter(search="FINANCE"))
    assert [f.name for f in by_search.data] == ["Invoices", "Misc"]

    by_description = await tree.list_folders(db_session, FolderFilter(parent=ROOT, description="holiday"))
    assert [f.name for f in by_description.data] == ["Photos"]

    both = await tree.list_folders(db_session, FolderFilter(search="inv", description="finance"))
    assert [f.name for f in both.data] == ["Invoices"]

@pytest.mark.asyncio
async def test_list_folders_pagination(db_session: AsyncSession):
    for name in ["a", "b", "c", "d", "e"]:
        await make_folder(db_session, name)

    first = await tree.list_folders(db_session, FolderFilter(), page=1, limit=2)
    third = await tree.list_folders(db_session, FolderFilter(), page=3, limit=2)

    assert [f.name for f in first.data] == ["a", "b"]
    assert [f.name for f in third.data] == ["e"]
    assert first.pagination == schemas.Pagination(page=1, limit=2, total=5, pages=3)

@pytest.mark.asyncio
async def test_list_files_scope_sort_and_folder_summary(db_session: AsyncSession):
    reports = await make_folder(db_session, "Reports")
    await make_file(db_session, "old.pdf", folder_id=reports.id, created_at=datetime(2024, 1, 1))
    await make_file(db_session, "new.pdf", folder_id=reports.id, created_at=datetime(2024, 3, 1))
    await make_file(db_session, "root.pdf", created_at=datetime(2024, 2, 1))

    everything = await tree.list_files(db_session, FileFilter())
    assert [f.name for f in everything.data] == ["new.pdf", "root.pdf", "old.pdf"]
    assert everything.data[0].folder.name == "Reports"
    assert everything.data[1].folder is None

    in_reports = await tree.list_files(db_session, FileFilter(folder=reports.id))
    assert [f.name for f in in_reports.data] == ["new.pdf", "old.pdf"]

    at_root = await tree.list_files(db_session, FileFilter(folder=ROOT))
    assert [f.name for f in at_root.data] == ["root.pdf"]

@pytest.mark.asyncio
async def test_moved_file_appears_in_root_listing(db_session: AsyncSession):
    reports = await make_folder(db_session, "Reports")
    file = await make_file(db_session, "Q1.pdf", folder_id=reports.id)

    await hierarchy.rename_or_move_file(db_session, file.id, folder_id=None)

    at_root = await tree.list_files(db_session, FileFilter(folder=ROOT))
    assert [f.id for f in at_root.data] == [file.id]
    in_reports = await tree.list_files(db_session, FileFilter(folder=reports.id))
    assert in_reports.data == []

@pytest.mark.asyncio
async def test_list_files_type_and_date_filters(db_session: AsyncSession):
    await make_file(db_session, "photo.png", mimetype="image/png", created_at=datetime(2024, 5, 1, 8, 0))
    await make_file(db_session, "report.pdf", mimetype="application/pdf", created_at=datetime(2024, 5, 2, 23, 30))
    await make_file(db_session, "notes.txt", mimetype="text/plain", created_at=datetime(2024, 5, 3, 0, 0, 1))

    images = await tree.list_files(db_session, FileFilter(file_type="images"))
    assert [f.name for f in images.data] == ["photo.png"]

    documents = await tree.list_files(db_session, FileFilter(file_type="Documents"))
    assert {f.name for f in documents.data} == {"report.pdf", "notes.txt"}

    pdfs = await tree.list_files(db_session, FileFilter(file_type="pdf"))
    assert [f.name for f in pdfs.data] == ["report.pdf"]

    unknown = await tree.list_files(db_session, FileFilter(file_type="spreadsheets"))
    assert unknown.pagination.total == 3

    # The upper bound covers the whole calendar day.
    window = await tree.list_files(db_session, FileFilter(date_from="2024-05-02", date_to="2024-05-02"))
    assert [f.name for f in window.data] == ["report.pdf"]

    from_only = await tree.list_files(db_session, FileFilter(date_from="2024-05-02"))
    assert {f.name for f in from_only.data} == {"report.pdf", "notes.txt"}

    garbage = await tree.list_files(db_session, FileFilter(date_from="yesterday-ish"))
    assert garbage.pagination.total == 3

@pytest.mark.asyncio
async def test_list_files_search_matches_name_or_original_name(db_session: AsyncSession):
    await make_file(db_session, "Budget.xlsx", original_name="export_final.xlsx", mimetype="application/vnd.ms-excel")
    await make_file(db_session, "Plan.docx", original_name="plan.docx", mimetype="application/msword",
                    description="Yearly budget plan")

    by_name = await tree.list_files(db_session, FileFilter(search="budget"))
    assert [f.name for f in by_name.data] == ["Budget.xlsx"]

    by_original = await tree.list_files(db_session, FileFilter(search="EXPORT"))
    assert [f.name for f in by_original.data] == ["Budget.xlsx"]

    by_description = await tree.list_files(db_session, FileFilter(description="budget"))
    assert [f.name for f in by_description.data] == ["Plan.docx"]

@pytest.mark.asyncio
async def test_get_folder_detail(db_session: AsyncSession):
    docs = await make_folder(db_session, "Docs")
    await make_folder(db_session, "Reports", parent_id=docs.id)
    await make_folder(db_session, "Archive", parent_id=docs.id)
    await make_file(db_session, "b.pdf", folder_id=docs.id)
    await make_file(db_session, "a.pdf", folder_id=docs.id)

    detail = await tree.get_folder_detail(db_session, docs.id)

    assert detail.folder.id == docs.id
    assert [f.name for f in detail.contents.folders] == ["Archive", "Reports"]
    assert [f.name for f in detail.contents.files] == ["a.pdf", "b.pdf"]
    assert detail.contents.files[0].folder.id == docs.id
    assert detail.pagination.total == 4
    assert detail.pagination.total_folders == 2
    assert detail.pagination.total_files == 2

    searched = await tree.get_folder_detail(db_session, docs.id, search="arch")
    assert [f.name for f in searched.contents.folders] == ["Archive"]
    assert searched.contents.files == []

    with pytest.raises(NotFound):
        await tree.get_folder_detail(db_session, uuid.uuid4())
