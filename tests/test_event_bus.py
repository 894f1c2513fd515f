import asyncio
import gc
import shutil
import tempfile
import unittest
from pathlib import Path

from atelier.core import events
from atelier.core.event_bus import EventBus, EventPayload

from support import make_state


class EventBusTest(unittest.IsolatedAsyncioTestCase):
    async def test_publish_delivers_payload(self) -> None:
        bus = EventBus()
        seen = []

        async def handler(payload):
            seen.append(payload)

        await bus.subscribe("demo", handler)
        await bus.publish("demo", {"value": 42})
        await asyncio.sleep(0)  # allow scheduled tasks to run

        self.assertEqual(seen, [{"value": 42}])

    async def test_unsubscribe_removes_handler(self) -> None:
        bus = EventBus()
        seen = []

        async def handler(payload):
            seen.append(payload)

        await bus.subscribe("demo", handler)
        await bus.unsubscribe("demo", handler)
        await bus.publish("demo", {"value": 1})
        await asyncio.sleep(0)

        self.assertEqual(seen, [])

    async def test_handler_failure_isolated(self) -> None:
        bus = EventBus()
        seen = []

        async def bad_handler(payload):
            raise RuntimeError("boom")

        async def good_handler(payload):
            seen.append(payload.get("value"))

        await bus.subscribe("demo", bad_handler)
        await bus.subscribe("demo", good_handler)
        await bus.publish("demo", {"value": 7})
        await asyncio.sleep(0)

        self.assertEqual(seen, [7])

    async def test_publish_nowait_from_sync_code(self) -> None:
        bus = EventBus()
        seen = []

        async def handler(payload):
            seen.append(payload)

        await bus.subscribe("demo", handler)
        self.assertTrue(bus.publish_nowait("demo", {"value": 3}))
        for _ in range(3):
            await asyncio.sleep(0)

        self.assertEqual(seen, [{"value": 3}])

    async def test_scheduled_publish_is_held_until_delivered(self) -> None:
        bus = EventBus()
        seen = []

        async def handler(payload):
            seen.append(payload)

        await bus.subscribe("alert", handler)
        bus.publish_nowait("alert", {"title": "Folder not found"})
        self.assertEqual(bus.pending, 1)

        gc.collect()
        await bus.drain()

        self.assertEqual(seen, [{"title": "Folder not found"}])
        self.assertEqual(bus.pending, 0)

    async def test_clear_cancels_queued_deliveries(self) -> None:
        bus = EventBus()
        seen = []

        async def handler(payload):
            seen.append(payload)

        await bus.subscribe("demo", handler)
        bus.publish_nowait("demo", {"value": 1})
        bus.clear()
        for _ in range(3):
            await asyncio.sleep(0)

        self.assertEqual(seen, [])
        self.assertEqual(bus.pending, 0)


def test_publish_nowait_without_loop_is_dropped():
    assert EventBus().publish_nowait("demo", {}) is False


class StoreEventsTest(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.tmp = Path(tempfile.mkdtemp())
        self.state, _ = make_state(self.tmp)
        self.seen: dict[str, list[EventPayload]] = {}

        for topic in (events.TOPIC_PROJECTS_CHANGED, events.TOPIC_ALERT, events.TOPIC_FOLDERS_CHANGED):
            async def handler(payload: EventPayload, topic: str = topic) -> None:
                self.seen.setdefault(topic, []).append(payload)

            await self.state.bus.subscribe(topic, handler)

    async def asyncTearDown(self) -> None:
        self.state.shutdown()
        shutil.rmtree(self.tmp, ignore_errors=True)

    async def _drain(self) -> None:
        for _ in range(5):
            await asyncio.sleep(0)

    async def test_add_project_publishes_change(self) -> None:
        project = self.state.store.add_project(create_folder_structure=False)
        await self._drain()

        changes = self.seen[events.TOPIC_PROJECTS_CHANGED]
        self.assertEqual(changes[-1], {"action": "add", "project_ids": [str(project.id)]})

    async def test_folder_creation_failure_raises_alert(self) -> None:
        folder = self.state.folders.default_folder
        shutil.rmtree(self.state.folders.resolve(folder))

        project = self.state.store.add_project(title="No disk")
        await self._drain()

        self.assertIsNotNone(self.state.store.project(project.id))
        self.assertFalse(project.has_folder_structure)
        alert = self.seen[events.TOPIC_ALERT][-1]
        self.assertEqual(alert["title"], "Folder not found")
        self.assertEqual(alert["context"], {"project_id": str(project.id)})

    async def test_declined_folder_removal_is_observable(self) -> None:
        folder = self.state.folders.default_folder

        self.assertFalse(self.state.folders.remove_folder(folder.id))
        await self._drain()

        self.assertTrue(self.seen[events.TOPIC_FOLDERS_CHANGED][-1]["declined"])


if __name__ == "__main__":
    unittest.main()
