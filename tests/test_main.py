import argparse
import contextlib
import io
import json
import os
from pathlib import Path
import tempfile
import unittest
from unittest import mock

from buddy.buddies import BuddyDirectory, UIStateStore
from buddy.config import load_config
from buddy.engine import ReactionEngine
from buddy.main import _add_buddies, _override_config, _parse_duration, main, run
from buddy.messenger import MessageRouter


class _FakeClient:
    def __init__(self, config) -> None:
        self.prompts: list[str] = []

    def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return "leo: Great focus today!"


class TestParseDuration(unittest.TestCase):
    def test_units(self) -> None:
        self.assertEqual(_parse_duration("90s"), 90)
        self.assertEqual(_parse_duration("2m"), 120)
        self.assertEqual(_parse_duration("1h"), 3600)
        self.assertEqual(_parse_duration("15"), 15)
        self.assertIsNone(_parse_duration("soon"))


class TestRun(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.tmp = Path(self._tmp.name)
        env = {"GEMINI_API_KEY": "k", "BUDDY_STATE_DIR": str(self.tmp / "state")}
        with mock.patch.dict(os.environ, env, clear=True):
            self.config = load_config(
                config_path=self.tmp / "config.yaml",
                secrets_path=self.tmp / "secrets.yaml",
            )

    def test_override_config(self) -> None:
        args = argparse.Namespace(
            interval=3.0, verbose=True, buddies=None, state_dir=None, allow_overlap=True
        )
        config = _override_config(self.config, args)
        self.assertEqual(config.interval_sec, 3.0)
        self.assertTrue(config.verbose)
        self.assertFalse(config.single_flight)

    def test_once_prints_reaction_for_open_buddy(self) -> None:
        screen = self.tmp / "screen.txt"
        screen.write_text("Editing main.py in VS Code", encoding="utf-8")
        out = io.StringIO()
        with mock.patch("buddy.main.GeminiClient", _FakeClient):
            with contextlib.redirect_stdout(out):
                code = run(self.config, once=True, text_file=str(screen))
        self.assertEqual(code, 0)
        self.assertIn("Leo: Great focus today!", out.getvalue())
        saved = json.loads((self.tmp / "state" / "openBuddies.json").read_text())
        self.assertEqual(saved, ["leo", "spacecat", "zenbunny"])

    def test_once_with_directory_and_saved_open_ids(self) -> None:
        buddies = self.tmp / "buddies.json"
        buddies.write_text(
            json.dumps(
                [
                    {"id": "leo", "name": "Leo Pal", "avatar": "avatar1"},
                    {"id": "zenbunny", "name": "Zen Bunny", "avatar": "avatar2"},
                ]
            ),
            encoding="utf-8",
        )
        state = self.tmp / "state"
        state.mkdir()
        (state / "openBuddies.json").write_text('["zenbunny"]', encoding="utf-8")
        screen = self.tmp / "screen.txt"
        screen.write_text("YouTube - cat videos", encoding="utf-8")
        args = argparse.Namespace(
            interval=None, verbose=False, buddies=str(buddies), state_dir=None,
            allow_overlap=False,
        )
        out = io.StringIO()
        with mock.patch("buddy.main.GeminiClient", _FakeClient):
            with contextlib.redirect_stdout(out):
                run(_override_config(self.config, args), once=True, text_file=str(screen))
        self.assertNotIn("Leo Pal:", out.getvalue())
        self.assertIn("Open buddies: zenbunny", out.getvalue())


class TestIntervalValidation(unittest.TestCase):
    def test_non_positive_interval_is_rejected(self) -> None:
        for value in ("-5", "0"):
            with self.subTest(value=value):
                err = io.StringIO()
                with contextlib.redirect_stderr(err):
                    self.assertEqual(main(["--interval", value]), 2)
                self.assertIn("Invalid interval", err.getvalue())


class TestAddBuddies(unittest.TestCase):
    def test_reloaded_buddies_reach_prompt_and_router(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "buddies.json"
            leo = {"id": "leo", "name": "Leo Pal", "avatar": "avatar1"}
            path.write_text(json.dumps([leo]), encoding="utf-8")
            directory = BuddyDirectory.load(path)
            client = _FakeClient(None)
            engine = ReactionEngine(client, directory.ids())
            router = MessageRouter()
            router.register("leo", lambda message: None)
            store = UIStateStore(Path(tmp) / "state")

            owl = {"id": "owl", "name": "Owl", "avatar": "avatar3"}
            path.write_text(json.dumps([leo, owl]), encoding="utf-8")
            added = directory.reload()
            self.assertEqual(_add_buddies(engine, router, directory, store, added), ["leo", "owl"])

            engine.react("Late night reading")
            self.assertIn("must be one of: leo, owl\n", client.prompts[0])
            self.assertTrue(router.is_registered("owl"))
            self.assertEqual(store.load_open_buddies(), ["leo", "owl"])


if __name__ == "__main__":
    unittest.main()
