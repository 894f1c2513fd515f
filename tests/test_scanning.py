"""
Background scan and discovery tests.

Scans run their I/O in a worker thread and apply the result on the loop;
these tests check what gets applied, what is left alone, and that a newer
scan supersedes an older one.
"""

import asyncio
import shutil
import tempfile
import threading
import unittest
from pathlib import Path
from unittest import mock

import pytest

from atelier.core import events
from atelier.core.event_bus import EventPayload
from atelier.core.models import Project
from atelier.domain.projects.scanner import ScanResult
from atelier.systems.storage.file_io import write_project_metadata

from support import make_project_dir, make_state


async def _drain() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class DiscoveryTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.tmp = Path(tempfile.mkdtemp())
        self.state, _ = make_state(self.tmp)
        self.store = self.state.store
        self.root = self.state.folders.resolve(self.state.folders.default_folder)

    async def asyncTearDown(self) -> None:
        self.state.shutdown()
        shutil.rmtree(self.tmp, ignore_errors=True)

    async def test_imports_only_qualifying_untracked_folders(self) -> None:
        make_project_dir(self.root, "Alpha")
        make_project_dir(self.root, "Bravo", ["01 ASSETS", "05 AEP", "07 OUTPUTS"])
        make_project_dir(self.root, "Charlie", ["01 ASSETS", "05 AEP", "07 OUTPUTS", "08 DELIVERABLES", "00 IN"])
        make_project_dir(self.root, "Delta", ["01 ASSETS", "05 AEP"])
        make_project_dir(self.root, "Echo", ["Misc"])

        report = await self.store.discover_and_import_existing_projects()

        self.assertIsNone(report.error)
        self.assertEqual(len(report.added), 3)
        titles = sorted(p.title for p in self.store.projects)
        self.assertEqual(titles, ["Alpha", "Bravo", "Charlie"])
        self.assertTrue(all(p.has_folder_structure for p in self.store.projects))
        self.assertEqual(len(self.state.persistence.load()), 3)
        self.assertFalse((self.root / "Delta" / "project.json").exists())
        self.assertFalse(self.state.access.is_active(self.state.folders.default_folder.id))

    async def test_tracked_folders_are_not_imported_twice(self) -> None:
        existing = self.store.add_project(title="Tracked")
        make_project_dir(self.root, "Fresh")

        first = await self.store.discover_and_import_existing_projects()
        second = await self.store.discover_and_import_existing_projects(self.root)

        self.assertEqual(len(first.added), 1)
        self.assertEqual(second.added, [])
        self.assertEqual(len(self.store.projects), 2)
        self.assertEqual(self.store.project(existing.id).title, "Tracked")

    async def test_discovery_uses_metadata_when_present(self) -> None:
        folder = make_project_dir(self.root, "With Meta")
        project = Project(title="Original Title", root_folder_path=str(folder))
        write_project_metadata(project)

        report = await self.store.discover_and_import_existing_projects()

        self.assertEqual(report.added, [project.id])
        imported = self.store.project(project.id)
        self.assertEqual(imported.title, "Original Title")
        self.assertFalse(imported.is_fully_loaded)

    async def test_scan_completed_event(self) -> None:
        seen: list[EventPayload] = []

        async def on_scan(payload: EventPayload) -> None:
            seen.append(payload)

        await self.state.bus.subscribe(events.TOPIC_SCAN_COMPLETED, on_scan)
        make_project_dir(self.root, "Alpha")

        await self.store.discover_and_import_existing_projects()
        await _drain()

        self.assertEqual(len(seen), 1)
        self.assertEqual(seen[0]["mode"], "discover")
        self.assertEqual(len(seen[0]["added"]), 1)

    async def test_copied_skeleton_with_same_id_is_imported_once(self) -> None:
        original = make_project_dir(self.root, "Spot A")
        project = Project(title="Spot A", root_folder_path=str(original))
        write_project_metadata(project)
        shutil.copytree(original, self.root / "Spot A copy")
        make_project_dir(self.root, "Other")

        report = await self.store.discover_and_import_existing_projects()

        self.assertEqual(len(report.added), 2)
        self.assertIn(project.id, report.added)
        self.assertEqual(report.failures, 1)
        self.assertEqual(len({p.id for p in self.state.persistence.load()}), 2)


class SyncScanTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.tmp = Path(tempfile.mkdtemp())
        self.state, _ = make_state(self.tmp)
        self.store = self.state.store
        self.root = self.state.folders.resolve(self.state.folders.default_folder)

    async def asyncTearDown(self) -> None:
        self.state.shutdown()
        shutil.rmtree(self.tmp, ignore_errors=True)

    async def test_sync_adds_lightweight_projects(self) -> None:
        folder = make_project_dir(self.root, "Remote")
        remote = Project(title="Remote", notes="full notes", root_folder_path=str(folder))
        write_project_metadata(remote)
        make_project_dir(self.root, "No Metadata")

        report = await self.store.scan_or_sync()

        self.assertEqual(report.added, [remote.id])
        scanned = self.store.project(remote.id)
        self.assertFalse(scanned.is_fully_loaded)
        self.assertEqual(scanned.notes, "")

        self.store.load_full_details(remote.id)
        self.assertEqual(scanned.notes, "full notes")

    async def test_missing_folders_are_never_pruned(self) -> None:
        project = self.store.add_project(title="Vanishing")
        shutil.rmtree(project.root_folder)

        report = await self.store.scan_or_sync()

        self.assertEqual(report.added, [])
        self.assertIs(self.store.project(project.id), project)

    async def test_moved_folder_is_relocated(self) -> None:
        project = self.store.add_project(title="Mover")
        old = project.root_folder
        new = old.with_name("Mover (archived)")
        old.rename(new)

        report = await self.store.scan_or_sync()

        self.assertEqual(report.updated, [project.id])
        self.assertEqual(project.root_folder, new)

    async def test_unreadable_root_is_reported(self) -> None:
        report = await self.store.scan_or_sync(self.tmp / "missing")

        self.assertIsNotNone(report.error)
        self.assertEqual(report.added, [])

    async def test_project_added_during_scan_is_not_overwritten(self) -> None:
        started = threading.Event()
        release = threading.Event()
        late: dict = {}

        def slow_scan(root, known, *args):
            started.set()
            release.wait(timeout=5)
            stale = Project(id=late["id"], title="From scan", root_folder_path=str(root / "elsewhere"))
            return ScanResult(root=root, projects=[stale], relocated={late["id"]: root / "elsewhere"})

        with mock.patch("atelier.domain.projects.store.scan_directory", slow_scan):
            task = self.store.start_scan()
            await asyncio.to_thread(started.wait, 5)

            project = self.store.add_project(title="Added mid-scan")
            late["id"] = project.id
            release.set()
            report = await task

        self.assertEqual(report.added, [])
        self.assertEqual(report.updated, [])
        self.assertEqual(project.title, "Added mid-scan")
        self.assertEqual(self.store.project(project.id).root_folder_path, project.root_folder_path)
        self.assertEqual(len(self.store.projects), 1)

    async def test_newer_scan_cancels_older(self) -> None:
        started = threading.Event()
        release = threading.Event()
        remote_folder = make_project_dir(self.root, "Remote")
        write_project_metadata(Project(title="Remote", root_folder_path=str(remote_folder)))

        def blocked_scan(root, known, *args):
            started.set()
            release.wait(timeout=5)
            return ScanResult(root=root, projects=[Project(title="Stale result")])

        try:
            with mock.patch("atelier.domain.projects.store.scan_directory", blocked_scan):
                old_task = self.store.start_scan()
                await asyncio.to_thread(started.wait, 5)
            new_report = await self.store.scan_or_sync()
        finally:
            release.set()

        old_report = await old_task
        self.assertTrue(old_report.superseded)
        self.assertEqual(old_report.added, [])
        self.assertEqual(len(new_report.added), 1)
        self.assertEqual([p.title for p in self.store.projects], ["Remote"])
        self.assertFalse(self.state.access.is_active(self.state.folders.default_folder.id))

    async def test_overlapping_awaited_scans_both_return(self) -> None:
        started = threading.Event()
        release = threading.Event()
        remote_folder = make_project_dir(self.root, "Remote")
        write_project_metadata(Project(title="Remote", root_folder_path=str(remote_folder)))
        steps: list[str] = []

        def blocked_scan(root, known, *args):
            started.set()
            release.wait(timeout=5)
            return ScanResult(root=root)

        async def refresh_then_continue():
            report = await self.store.scan_or_sync()
            steps.append("after scan")
            return report

        try:
            with mock.patch("atelier.domain.projects.store.scan_directory", blocked_scan):
                first = asyncio.create_task(refresh_then_continue())
                await asyncio.to_thread(started.wait, 5)
            second = await self.store.scan_or_sync()
        finally:
            release.set()

        first_report = await first
        self.assertFalse(first.cancelled())
        self.assertTrue(first_report.superseded)
        self.assertEqual(steps, ["after scan"])
        self.assertEqual(len(second.added), 1)
        self.assertFalse(self.store.is_scanning)

    async def test_copied_folder_with_same_id_is_imported_once(self) -> None:
        original = make_project_dir(self.root, "Spot A")
        project = Project(title="Spot A", root_folder_path=str(original))
        write_project_metadata(project)
        shutil.copytree(original, self.root / "Spot A copy")

        report = await self.store.scan_or_sync()

        self.assertEqual(report.added, [project.id])
        self.assertEqual(report.failures, 1)
        self.assertEqual([p.id for p in self.state.persistence.load()], [project.id])

        reloaded, _ = make_state(self.tmp, with_root=False)
        self.assertEqual([p.id for p in reloaded.store.projects], [project.id])
        reloaded.shutdown()

    async def test_duplicate_ids_in_one_result_are_not_persisted_twice(self) -> None:
        twin = Project(title="Twin", root_folder_path=str(self.root / "Twin A"))
        copy = twin.model_copy(update={"root_folder_path": str(self.root / "Twin B")})

        def doubled_scan(root, known, *args):
            return ScanResult(root=root, projects=[twin, copy])

        with mock.patch("atelier.domain.projects.store.scan_directory", doubled_scan):
            report = await self.store.scan_or_sync()

        self.assertEqual(report.added, [twin.id])
        self.assertEqual(report.failures, 1)
        self.assertEqual(len(self.state.persistence.load()), 1)


@pytest.mark.asyncio
async def test_discovery_into_explicit_folder(tmp_path):
    state, _ = make_state(tmp_path)
    extra = tmp_path / "Freelance"
    extra.mkdir()
    folder = state.folders.add_folder(extra)
    make_project_dir(extra, "Side Gig")
    make_project_dir(state.folders.resolve(state.folders.default_folder), "Studio Job")

    report = await state.store.discover_and_import_existing_projects(folder)

    assert [state.store.project(pid).title for pid in report.added] == ["Side Gig"]
    assert report.root == extra.resolve()
    state.shutdown()


if __name__ == "__main__":
    unittest.main()
