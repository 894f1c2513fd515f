"""
Test Suite: Folder registry

Default-folder rules, the last-folder guard, persistence and the legacy
single-folder migration.
"""

import pytest

from atelier.core.errors import ResourceNotFoundError, ValidationFailedError
from atelier.domain.folders.grants import create_grant, grant_path
from atelier.domain.folders.registry import FolderRegistry
from atelier.systems.storage.preferences import (
    KEY_LEGACY_FOLDER_GRANT,
    KEY_PROJECT_FOLDERS,
    PreferenceStore,
)


@pytest.fixture
def prefs_path(tmp_path):
    return tmp_path / "data" / "preferences.json"


@pytest.fixture
def dirs(tmp_path):
    made = []
    for name in ("Studio", "Freelance", "Archive"):
        path = tmp_path / name
        path.mkdir()
        made.append(path)
    return made


def _defaults(registry):
    return [f.name for f in registry.folders if f.is_default]


def test_first_folder_is_forced_default(prefs_path, dirs):
    registry = FolderRegistry(PreferenceStore(prefs_path))

    first = registry.add_folder(dirs[0], set_as_default=False)
    registry.add_folder(dirs[1])

    assert first.is_default
    assert registry.default_folder.id == first.id
    assert _defaults(registry) == ["Studio"]


def test_set_as_default_moves_the_flag(prefs_path, dirs):
    registry = FolderRegistry(PreferenceStore(prefs_path))
    registry.add_folder(dirs[0])
    second = registry.add_folder(dirs[1], name="Side jobs", set_as_default=True)

    assert _defaults(registry) == ["Side jobs"]

    registry.set_default(registry.folders[0].id)
    assert _defaults(registry) == ["Studio"]
    assert not registry.lookup(second.id).is_default


def test_removing_the_last_folder_is_declined(prefs_path, dirs):
    registry = FolderRegistry(PreferenceStore(prefs_path))
    only = registry.add_folder(dirs[0])

    assert registry.remove_folder(only.id) is False
    assert registry.lookup(only.id) is not None
    assert len(registry) == 1


def test_removing_default_promotes_first_remaining(prefs_path, dirs):
    registry = FolderRegistry(PreferenceStore(prefs_path))
    studio = registry.add_folder(dirs[0])
    registry.add_folder(dirs[1])
    registry.add_folder(dirs[2])

    assert registry.remove_folder(studio.id) is True
    assert _defaults(registry) == ["Freelance"]


def test_registry_persists(prefs_path, dirs):
    registry = FolderRegistry(PreferenceStore(prefs_path))
    registry.add_folder(dirs[0])
    second = registry.add_folder(dirs[1], set_as_default=True)
    registry.rename(second.id, "Clients")

    reloaded = FolderRegistry(PreferenceStore(prefs_path))

    assert [f.name for f in reloaded.folders] == ["Studio", "Clients"]
    assert reloaded.default_folder.id == second.id


def test_rejects_bad_input(prefs_path, dirs, tmp_path):
    registry = FolderRegistry(PreferenceStore(prefs_path))
    folder = registry.add_folder(dirs[0])

    with pytest.raises(ValidationFailedError):
        registry.add_folder(dirs[0])
    with pytest.raises(ValidationFailedError):
        registry.rename(folder.id, "   ")
    with pytest.raises(ResourceNotFoundError):
        registry.add_folder(tmp_path / "missing")
    assert len(registry) == 1


def test_legacy_grant_is_migrated_once(prefs_path, dirs):
    prefs = PreferenceStore(prefs_path)
    prefs.set(KEY_LEGACY_FOLDER_GRANT, create_grant(dirs[0]))

    registry = FolderRegistry(prefs)

    assert [f.name for f in registry.folders] == ["Studio"]
    assert registry.default_folder is not None
    assert KEY_LEGACY_FOLDER_GRANT not in prefs

    reloaded_prefs = PreferenceStore(prefs_path)
    reloaded = FolderRegistry(reloaded_prefs)
    assert [f.id for f in reloaded.folders] == [f.id for f in registry.folders]
    assert KEY_LEGACY_FOLDER_GRANT not in reloaded_prefs


def test_legacy_key_dropped_when_new_data_exists(prefs_path, dirs):
    prefs = PreferenceStore(prefs_path)
    FolderRegistry(prefs).add_folder(dirs[1])
    prefs.set(KEY_LEGACY_FOLDER_GRANT, create_grant(dirs[0]))

    registry = FolderRegistry(prefs)

    assert [f.name for f in registry.folders] == ["Freelance"]
    assert KEY_LEGACY_FOLDER_GRANT not in prefs
    assert KEY_PROJECT_FOLDERS in prefs


def test_resolve_refreshes_moved_folder(prefs_path, dirs, tmp_path):
    registry = FolderRegistry(PreferenceStore(prefs_path))
    folder = registry.add_folder(dirs[0])

    dirs[0].rename(tmp_path / "Studio 2026")
    path = registry.resolve(registry.lookup(folder.id))

    assert path == (tmp_path / "Studio 2026").resolve()
    assert grant_path(registry.lookup(folder.id).grant) == path
    reloaded = FolderRegistry(PreferenceStore(prefs_path))
    assert grant_path(reloaded.lookup(folder.id).grant) == path
