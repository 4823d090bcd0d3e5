import json
from pathlib import Path
import tempfile
import unittest

from buddy.buddies import Buddy, BuddyDirectory, UIStateStore, load_buddies


def _write(path: Path, payload: object) -> None:
    path.write_text(json.dumps(payload), encoding="utf-8")


LEO = {"id": "leo", "name": "Leo Pal", "avatar": "avatar1"}
BUNNY = {"id": "zenbunny", "name": "Zen Bunny", "avatar": "avatar2"}


class TestLoadBuddies(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "buddies.json"

    def test_loads_records(self) -> None:
        _write(self.path, [LEO, BUNNY])
        self.assertEqual(
            load_buddies(self.path),
            [Buddy("leo", "Leo Pal", "avatar1"), Buddy("zenbunny", "Zen Bunny", "avatar2")],
        )

    def test_rejects_bad_documents(self) -> None:
        for payload in ({"id": "leo"}, [LEO, LEO], [{"id": "leo", "name": "Leo"}], ["leo"]):
            with self.subTest(payload=payload):
                _write(self.path, payload)
                with self.assertRaises(ValueError):
                    load_buddies(self.path)

    def test_rejects_invalid_json(self) -> None:
        self.path.write_text("[{", encoding="utf-8")
        with self.assertRaises(ValueError):
            load_buddies(self.path)


class TestBuddyDirectory(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.path = Path(self._tmp.name) / "buddies.json"
        _write(self.path, [LEO])

    def test_lookup(self) -> None:
        directory = BuddyDirectory.load(self.path)
        self.assertEqual(directory.ids(), ["leo"])
        self.assertEqual(directory.get("leo").name, "Leo Pal")
        self.assertIsNone(directory.get("spacecat"))

    def test_reload_replaces_list_when_new_ids_appear(self) -> None:
        directory = BuddyDirectory.load(self.path)
        _write(self.path, [LEO, BUNNY])
        self.assertEqual(directory.reload(), {"zenbunny"})
        self.assertEqual(directory.ids(), ["leo", "zenbunny"])

    def test_reload_ignores_edits_without_new_ids(self) -> None:
        directory = BuddyDirectory.load(self.path)
        _write(self.path, [{**LEO, "name": "Renamed"}])
        self.assertEqual(directory.reload(), set())
        self.assertEqual(directory.get("leo").name, "Leo Pal")

    def test_reload_keeps_list_when_file_breaks(self) -> None:
        directory = BuddyDirectory.load(self.path)
        self.path.write_text("oops", encoding="utf-8")
        self.assertEqual(directory.reload(), set())
        self.assertEqual(directory.ids(), ["leo"])


class TestUIStateStore(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.dir = Path(self._tmp.name) / "state"
        self.store = UIStateStore(self.dir)

    def test_defaults_when_nothing_saved(self) -> None:
        self.assertEqual(self.store.load_window_position(), (100.0, 100.0))
        self.assertEqual(self.store.load_buddy_positions(), {})
        self.assertEqual(self.store.load_open_buddies(), [])

    def test_window_position_round_trip(self) -> None:
        self.store.save_window_position(240, 80.5)
        self.assertEqual(self.store.load_window_position(), (240.0, 80.5))
        self.assertEqual(
            json.loads((self.dir / "windowPosition.json").read_text()), {"x": 240, "y": 80.5}
        )

    def test_buddy_positions_and_open_ids(self) -> None:
        self.store.save_buddy_positions({"leo": (1, 2)})
        self.store.save_open_buddies(["zenbunny", "leo"])
        self.assertEqual(self.store.load_buddy_positions(), {"leo": (1.0, 2.0)})
        self.assertEqual(self.store.load_open_buddies(), ["zenbunny", "leo"])

    def test_corrupt_files_load_defaults(self) -> None:
        self.dir.mkdir(parents=True)
        (self.dir / "windowPosition.json").write_text("{", encoding="utf-8")
        (self.dir / "openBuddies.json").write_text('{"leo": 1}', encoding="utf-8")
        self.assertEqual(self.store.load_window_position((5.0, 6.0)), (5.0, 6.0))
        self.assertEqual(self.store.load_open_buddies(), [])


if __name__ == "__main__":
    unittest.main()
