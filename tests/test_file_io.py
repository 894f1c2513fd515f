"""
Test Suite: Filesystem operations

Folder names, the project skeleton, renames, dated files and metadata files.
"""

import os

import pytest

from atelier.core.errors import FileOperationError, RegistryDecodeError, ResourceNotFoundError
from atelier.core.models import Project
from atelier.systems.storage.file_io import (
    DEFAULT_SUBFOLDERS,
    FALLBACK_FOLDER_NAME,
    ILLEGAL_FOLDER_CHARS,
    create_project_skeleton,
    latest_dated_file,
    list_subdirectories,
    looks_like_project,
    parse_date_token,
    read_full_metadata,
    read_project_metadata,
    rename_folder,
    sanitize_folder_name,
    unique_folder_name,
    write_project_metadata,
)


@pytest.mark.parametrize(
    "title",
    [
        "Spot Été",
        'a/b\\c?d%e*f|g"h<i>j:k',
        "",
        "   ",
        "...",
        "/\\?%*|\"<>:",
        "Clip\t\n01",
        "Ünïcödé ~ Motion",
    ],
)
def test_sanitize_never_returns_illegal_or_empty(title):
    name = sanitize_folder_name(title)
    assert name
    assert not ILLEGAL_FOLDER_CHARS.intersection(name)


def test_sanitize_folds_accents_and_trims():
    assert sanitize_folder_name("Spot Été") == "Spot Ete"
    assert sanitize_folder_name("  Promo: v2  ") == "Promo- v2"
    assert sanitize_folder_name("   ") == FALLBACK_FOLDER_NAME


def test_unique_folder_name(tmp_path):
    assert unique_folder_name(tmp_path, "Clip") == "Clip"
    (tmp_path / "Clip").mkdir()
    (tmp_path / "Clip 2").mkdir()
    assert unique_folder_name(tmp_path, "Clip") == "Clip 3"


def test_skeleton_is_idempotent(tmp_path):
    first = create_project_skeleton(tmp_path, "Spot")
    (first / "05 AEP" / "keep.aep").write_text("x")
    before = sorted(p.relative_to(tmp_path) for p in tmp_path.rglob("*"))

    second = create_project_skeleton(tmp_path, "Spot")
    after = sorted(p.relative_to(tmp_path) for p in tmp_path.rglob("*"))

    assert first == second
    assert before == after
    assert sorted(p.name for p in second.iterdir()) == sorted(DEFAULT_SUBFOLDERS)
    assert (second / "05 AEP" / "keep.aep").read_text() == "x"


def test_list_subdirectories_skips_hidden_and_files(tmp_path):
    (tmp_path / "b").mkdir()
    (tmp_path / "a").mkdir()
    (tmp_path / ".hidden").mkdir()
    (tmp_path / "file.txt").write_text("x")

    assert [p.name for p in list_subdirectories(tmp_path)] == ["a", "b"]

    with pytest.raises(ResourceNotFoundError):
        list_subdirectories(tmp_path / "missing")


def test_looks_like_project_threshold(tmp_path):
    folder = tmp_path / "Candidate"
    folder.mkdir()
    for sub in ("01 ASSETS", "05 AEP"):
        (folder / sub).mkdir()
    assert not looks_like_project(folder)

    (folder / "07 OUTPUTS").mkdir()
    assert looks_like_project(folder)


def test_rename_folder_moves_metadata(tmp_path):
    project = Project(title="Old", root_folder_path=str(create_project_skeleton(tmp_path, "Old")))
    write_project_metadata(project)

    new = rename_folder(tmp_path / "Old", "New")

    assert new == tmp_path / "New"
    assert not (tmp_path / "Old").exists()
    assert read_project_metadata(new).id == project.id


def test_rename_folder_refuses_existing_target(tmp_path):
    (tmp_path / "A").mkdir()
    (tmp_path / "B").mkdir()

    with pytest.raises(FileOperationError):
        rename_folder(tmp_path / "A", "B")
    assert (tmp_path / "A").is_dir()


def test_parse_date_token():
    assert parse_date_token("250315_v2").strftime("%Y-%m-%d") == "2025-03-15"
    assert parse_date_token("notes") is None
    assert parse_date_token("2503151") is None
    assert parse_date_token("251399_bad") is None


def test_latest_dated_file_prefers_latest_date(tmp_path):
    for name in ("250101_v1.aep", "250315_v2.aep", "notes.aep", "260101_other.txt"):
        (tmp_path / name).write_text("x")

    assert latest_dated_file(tmp_path, "aep").name == "250315_v2.aep"


def test_latest_dated_file_breaks_ties_by_reverse_name(tmp_path):
    for name in ("250315_a.aep", "250315_b.aep"):
        (tmp_path / name).write_text("x")

    assert latest_dated_file(tmp_path, ".aep").name == "250315_b.aep"


def test_latest_dated_file_falls_back_to_mtime(tmp_path):
    recent = tmp_path / "first.aep"
    stale = tmp_path / "second.aep"
    recent.write_text("x")
    stale.write_text("x")
    os.utime(recent, (2_000_000_000, 2_000_000_000))
    os.utime(stale, (1_000_000_000, 1_000_000_000))

    assert latest_dated_file(tmp_path, "aep") == recent


def test_latest_dated_file_without_matches(tmp_path):
    (tmp_path / "readme.txt").write_text("x")
    assert latest_dated_file(tmp_path, "aep") is None


def test_metadata_round_trip_and_errors(tmp_path):
    folder = create_project_skeleton(tmp_path, "Meta")
    project = Project(title="Meta", notes="remember", root_folder_path=str(folder))
    write_project_metadata(project)

    metadata = read_project_metadata(folder)
    assert metadata.id == project.id
    assert metadata.title == "Meta"
    assert read_full_metadata(folder)["notes"] == "remember"
    assert "root_folder_path" not in read_full_metadata(folder)

    assert read_project_metadata(tmp_path) is None
    with pytest.raises(ResourceNotFoundError):
        read_full_metadata(tmp_path)

    (folder / "project.json").write_text("{not json")
    with pytest.raises(RegistryDecodeError):
        read_project_metadata(folder)
