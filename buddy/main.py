"""Entry point: watch the screen and let the buddies react in the terminal."""

from __future__ import annotations

import argparse
from dataclasses import replace
from functools import partial
from pathlib import Path
import re
import signal
import sys
import threading
from typing import Callable, List, Optional

from dotenv import find_dotenv, load_dotenv

from buddy.buddies import Buddy, BuddyDirectory, UIStateStore
from buddy.capture import CaptureLoop, capture_screen_png, ocr_png
from buddy.config import AppConfig, load_config
from buddy.engine import ReactionEngine
from buddy.gemini import GeminiClient
from buddy.messenger import MessageRouter, QueueDelivery
from buddy.timeline import Timeline, log_verbose
from buddy.vision import VisionTracker


def _parse_duration(value: str) -> Optional[float]:
    """Parse a duration string like '2m', '90s', '1h', '5min' into seconds."""
    value = value.strip().lower()
    m = re.fullmatch(r"(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr|hour)?", value)
    if not m:
        return None
    num = float(m.group(1))
    unit = m.group(2) or "s"
    if unit in ("m", "min"):
        return num * 60
    if unit in ("h", "hr", "hour"):
        return num * 3600
    return num


def _override_config(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    if (
        args.interval is None
        and not args.verbose
        and args.buddies is None
        and args.state_dir is None
        and not args.allow_overlap
    ):
        return config
    return replace(
        config,
        interval_sec=config.interval_sec if args.interval is None else args.interval,
        verbose=config.verbose or args.verbose,
        buddies_path=args.buddies or config.buddies_path,
        state_dir=args.state_dir or config.state_dir,
        single_flight=config.single_flight and not args.allow_overlap,
    )


def _load_directory(config: AppConfig) -> BuddyDirectory:
    if config.buddies_path:
        return BuddyDirectory.load(config.buddies_path)
    defaults = [Buddy(id=bid, name=bid.title(), avatar="") for bid in config.buddy_ids]
    return BuddyDirectory(Path(config.state_dir) / "buddies.json", defaults)


def _console_handler(buddy: Buddy) -> Callable[[str], None]:
    def _show(message: str) -> None:
        print(f"{buddy.name}: {message}", flush=True)

    return _show


def _open_buddies(
    router: MessageRouter,
    directory: BuddyDirectory,
    store: UIStateStore,
    wanted: List[str],
) -> List[str]:
    opened: List[str] = []
    for buddy_id in wanted:
        buddy = directory.get(buddy_id)
        if buddy is None:
            continue
        router.register(buddy.id, _console_handler(buddy))
        opened.append(buddy.id)
    store.save_open_buddies(router.route_ids())
    return opened


def _add_buddies(
    engine: ReactionEngine,
    router: MessageRouter,
    directory: BuddyDirectory,
    store: UIStateStore,
    added: set[str],
) -> List[str]:
    """Open newly loaded buddies and let the model address them."""

    engine.set_buddy_ids(directory.ids())
    return _open_buddies(router, directory, store, router.route_ids() + sorted(added))


def _text_file_source(path: str) -> Callable[[], bytes]:
    def _read() -> bytes:
        return Path(path).read_bytes()

    return _read


def _decode_text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def run(config: AppConfig, once: bool = False, text_file: Optional[str] = None) -> int:
    """Wire the services together and run until interrupted."""

    timeline = Timeline(config.timeline, config.timeline_path)
    directory = _load_directory(config)
    store = UIStateStore(config.state_dir)
    delivery = QueueDelivery()
    router = MessageRouter(delivery=delivery, verbose=config.verbose)

    saved = store.load_open_buddies()
    wanted = [bid for bid in saved if directory.get(bid)] or directory.ids()
    opened = _open_buddies(router, directory, store, wanted)
    print(f"[Buddy] Open buddies: {', '.join(opened) or 'none'}")

    buddy_ids = directory.ids() or config.buddy_ids
    engine = ReactionEngine(
        GeminiClient(config),
        buddy_ids,
        fingerprint_chars=config.fingerprint_chars,
        single_flight=config.single_flight,
        max_in_flight=config.max_in_flight,
        verbose=config.verbose,
        timeline=timeline,
    )

    if text_file:
        capture_fn = _text_file_source(text_file)
        ocr_fn: Callable[[bytes], str] = _decode_text
        vision = None
    else:
        capture_fn = partial(capture_screen_png, config.screencapture_display)
        ocr_fn = partial(ocr_png, lang=config.ocr_lang)
        vision = VisionTracker(config.min_activity)

    loop = CaptureLoop(
        engine,
        router.post,
        config.interval_sec,
        capture_fn,
        ocr_fn,
        vision=vision,
        verbose=config.verbose,
        timeline=timeline,
    )
    log_verbose(
        config.verbose,
        f"model={config.gemini_model} interval={config.interval_sec} "
        f"single_flight={config.single_flight} buddies={buddy_ids}",
    )
    timeline.log("start", interval=config.interval_sec, buddies=len(buddy_ids))

    if once:
        loop.tick()
        engine.wait_idle()
        delivery.drain()
        return 0

    stop_event = threading.Event()
    capture_thread = threading.Thread(target=loop.run, args=(stop_event,), daemon=True)
    threads = [capture_thread]
    if config.buddies_path:

        def _on_new_buddies(added: set[str]) -> None:
            _add_buddies(engine, router, directory, store, added)

        threads.append(
            threading.Thread(
                target=directory.watch,
                args=(stop_event,),
                kwargs={"on_change": _on_new_buddies},
                daemon=True,
            )
        )
    for thread in threads:
        thread.start()
    try:
        while capture_thread.is_alive():
            delivery.run_pending(timeout=0.2)
    finally:
        stop_event.set()
        engine.wait_idle(timeout=2)
        delivery.drain()
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point."""

    parser = argparse.ArgumentParser(
        description="Productivity buddies that react to what is on your screen."
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Seconds between screen captures (overrides env).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Print verbose debug output.",
    )
    parser.add_argument(
        "--buddies",
        type=str,
        default=None,
        help="Path to a buddies.json directory file.",
    )
    parser.add_argument(
        "--state-dir",
        type=str,
        default=None,
        help="Directory for window position and open-buddy files.",
    )
    parser.add_argument(
        "--text-file",
        type=str,
        default=None,
        help="Read screen text from this file instead of capturing the screen.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single capture cycle and exit.",
    )
    parser.add_argument(
        "--allow-overlap",
        action="store_true",
        help="Start a new cycle even while the previous request is in flight.",
    )
    parser.add_argument(
        "-t", "--time",
        type=str,
        default=None,
        help="Auto-stop after duration, e.g. 2m, 5m, 90s, 1h.",
    )

    args = parser.parse_args(argv)

    if args.interval is not None and args.interval <= 0:
        print(f"Invalid interval: {args.interval} (must be > 0)", file=sys.stderr)
        return 2

    if args.time:
        duration = _parse_duration(args.time)
        if duration is None or duration <= 0:
            print(f"Invalid duration: {args.time}", file=sys.stderr)
            return 2

        def _timeout_handler(*_a: object) -> None:
            print(f"\n[Buddy] Time limit reached ({args.time}). Stopping.", file=sys.stderr)
            raise KeyboardInterrupt

        signal.signal(signal.SIGALRM, _timeout_handler)
        signal.setitimer(signal.ITIMER_REAL, duration)

    dotenv_path = find_dotenv()
    load_dotenv(dotenv_path if dotenv_path else None)
    try:
        config = load_config()
        config = _override_config(config, args)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    log_verbose(
        config.verbose,
        "using_dotenv=" + (dotenv_path if dotenv_path else "not_found"),
    )
    try:
        return run(config, once=args.once, text_file=args.text_file)
    except (OSError, ValueError) as exc:
        print(f"[Buddy] {exc}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
