"""Turn raw model output into a routed reaction."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ReactionEvent:
    """One message addressed to one buddy."""

    route_id: str
    message: str


class ResponseFormatError(ValueError):
    """Model output did not have the ``BUDDY_ID: message`` shape."""


def parse_reaction(text: str) -> ReactionEvent:
    """Split ``text`` at its first colon into a route id and a message.

    Leading colons are skipped before the split and an empty tail is dropped,
    so ``":leo: hi"`` routes to ``leo`` while ``":hi"`` and ``"leo:"`` are
    malformed. A colon inside the message is kept as part of the message.
    """

    pieces = [piece for piece in text.lstrip(":").split(":", 1) if piece]
    if len(pieces) != 2:
        raise ResponseFormatError(f"Unexpected Gemini response format: {text!r}")
    route_id, message = (piece.strip() for piece in pieces)
    return ReactionEvent(route_id=route_id, message=message)
