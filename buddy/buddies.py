"""Buddy directory loading and UI state persistence."""

from __future__ import annotations

from dataclasses import dataclass
import json
import os
from pathlib import Path
import sys
import threading
from typing import Callable, Dict, List, Optional, Set, Tuple


@dataclass(frozen=True)
class Buddy:
    """A buddy character that reactions can be addressed to."""

    id: str
    name: str
    avatar: str


def load_buddies(path: str | Path) -> List[Buddy]:
    """Load a JSON array of ``{id, name, avatar}`` records."""

    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(raw, list):
        raise ValueError(f"{path} must contain a JSON array of buddies.")

    buddies: List[Buddy] = []
    seen: Set[str] = set()
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"{path}[{index}] must be an object.")
        fields = {}
        for key in ("id", "name", "avatar"):
            value = item.get(key)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{path}[{index}] is missing '{key}'.")
            fields[key] = value.strip()
        if fields["id"] in seen:
            raise ValueError(f"{path}[{index}] repeats buddy id '{fields['id']}'.")
        seen.add(fields["id"])
        buddies.append(Buddy(**fields))
    return buddies


class BuddyDirectory:
    """The current buddy list, replaced wholesale when new ids show up."""

    def __init__(self, path: str | Path, buddies: Optional[List[Buddy]] = None) -> None:
        self._path = Path(path)
        self._buddies: Tuple[Buddy, ...] = tuple(buddies or ())
        self._lock = threading.Lock()

    @classmethod
    def load(cls, path: str | Path) -> "BuddyDirectory":
        return cls(path, load_buddies(path))

    @property
    def buddies(self) -> List[Buddy]:
        with self._lock:
            return list(self._buddies)

    def ids(self) -> List[str]:
        return [buddy.id for buddy in self.buddies]

    def get(self, buddy_id: str) -> Optional[Buddy]:
        for buddy in self.buddies:
            if buddy.id == buddy_id:
                return buddy
        return None

    def reload(self) -> Set[str]:
        """Re-read the file; swap the list in only if it adds new ids.

        Returns the newly seen ids. Unreadable files leave the list untouched.
        """

        try:
            loaded = load_buddies(self._path)
        except (OSError, ValueError) as exc:
            print(f"[Buddy] Failed to reload {self._path}: {exc}", file=sys.stderr)
            return set()
        with self._lock:
            previous = {buddy.id for buddy in self._buddies}
            added = {buddy.id for buddy in loaded} - previous
            if added:
                self._buddies = tuple(loaded)
        if added:
            print(f"[Buddy] New buddies loaded: {sorted(added)}", file=sys.stderr)
        return added

    def watch(
        self,
        stop_event: threading.Event,
        interval_sec: float = 2.0,
        on_change: Optional[Callable[[Set[str]], None]] = None,
    ) -> None:
        """Poll the file until ``stop_event`` is set."""

        while not stop_event.wait(interval_sec):
            added = self.reload()
            if added and on_change is not None:
                on_change(added)


class UIStateStore:
    """Small JSON files that remember where buddy windows were and which are open."""

    WINDOW_POSITION_FILE = "windowPosition.json"
    BUDDY_POSITIONS_FILE = "buddyPositions.json"
    OPEN_BUDDIES_FILE = "openBuddies.json"

    def __init__(self, state_dir: str | Path) -> None:
        self._dir = Path(state_dir)

    def _read(self, name: str) -> object:
        path = self._dir / name
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            print(f"[Buddy] Ignoring unreadable {path}: {exc}", file=sys.stderr)
            return None

    def _write(self, name: str, payload: object) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._dir / name
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as handle:
            json.dump(payload, handle)
        os.replace(tmp, path)

    def save_window_position(self, x: float, y: float) -> None:
        self._write(self.WINDOW_POSITION_FILE, {"x": x, "y": y})

    def load_window_position(
        self, default: Tuple[float, float] = (100.0, 100.0)
    ) -> Tuple[float, float]:
        return _parse_point(self._read(self.WINDOW_POSITION_FILE)) or default

    def save_buddy_positions(self, positions: Dict[str, Tuple[float, float]]) -> None:
        payload = {key: {"x": x, "y": y} for key, (x, y) in positions.items()}
        self._write(self.BUDDY_POSITIONS_FILE, payload)

    def load_buddy_positions(self) -> Dict[str, Tuple[float, float]]:
        raw = self._read(self.BUDDY_POSITIONS_FILE)
        if not isinstance(raw, dict):
            return {}
        positions: Dict[str, Tuple[float, float]] = {}
        for key, value in raw.items():
            point = _parse_point(value)
            if point is not None:
                positions[str(key)] = point
        return positions

    def save_open_buddies(self, buddy_ids: List[str]) -> None:
        self._write(self.OPEN_BUDDIES_FILE, list(buddy_ids))

    def load_open_buddies(self) -> List[str]:
        """Return the saved ids in order; the last one was the current buddy."""

        raw = self._read(self.OPEN_BUDDIES_FILE)
        if not isinstance(raw, list):
            return []
        return [item for item in raw if isinstance(item, str)]


def _parse_point(value: object) -> Optional[Tuple[float, float]]:
    if not isinstance(value, dict):
        return None
    x, y = value.get("x"), value.get("y")
    if isinstance(x, bool) or isinstance(y, bool):
        return None
    if not isinstance(x, (int, float)) or not isinstance(y, (int, float)):
        return None
    return float(x), float(y)
