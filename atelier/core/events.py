"""Canonical event definitions published by the Atelier project store."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .event_bus import EventPayload

# Event Topics
TOPIC_PROJECTS_CHANGED = "projects.changed"
TOPIC_PROJECT_SELECTED = "project.selected"
TOPIC_CATEGORIES_CHANGED = "categories.changed"
TOPIC_STATUSES_CHANGED = "statuses.changed"
TOPIC_FOLDERS_CHANGED = "folders.changed"
TOPIC_SCAN_COMPLETED = "scan.completed"
TOPIC_ALERT = "alert"


def create_projects_changed_event(action: str, project_ids: List[str]) -> EventPayload:
    """Create a projects changed event (add, remove, update, import, scan)."""
    return {
        "action": action,
        "project_ids": project_ids,
    }


def create_project_selected_event(project_id: Optional[str]) -> EventPayload:
    return {"project_id": project_id}


def create_categories_changed_event(action: str, category_id: Optional[str] = None) -> EventPayload:
    return {
        "action": action,
        "category_id": category_id,
    }


def create_statuses_changed_event(action: str, status_id: Optional[str] = None) -> EventPayload:
    return {
        "action": action,
        "status_id": status_id,
    }


def create_folders_changed_event(action: str, folder_id: Optional[str] = None, declined: bool = False) -> EventPayload:
    """Create a folders changed event.

    Args:
        action: add, remove, rename, set_default, migrate
        folder_id: Folder reference concerned, if any
        declined: True when the registry refused the change
    """
    return {
        "action": action,
        "folder_id": folder_id,
        "declined": declined,
    }


def create_scan_completed_event(
    root: str,
    mode: str,
    added: List[str],
    updated: List[str],
    failures: int,
) -> EventPayload:
    """Create a scan completed event.

    Args:
        root: Directory that was scanned
        mode: "sync" or "discover"
        added: Ids of projects added by the scan
        updated: Ids of lightweight entries refreshed by the scan
        failures: Number of directories that could not be read
    """
    return {
        "root": root,
        "mode": mode,
        "added": added,
        "updated": updated,
        "failures": failures,
    }


def create_alert_event(title: str, message: str, context: Dict[str, Any] | None = None) -> EventPayload:
    """Create a user-visible alert event."""
    event: EventPayload = {
        "title": title,
        "message": message,
    }
    if context:
        event["context"] = context
    return event
