"""Identifier generation for sessions, turns and tool calls."""

from __future__ import annotations

from uuid import uuid4


def generate_id(prefix: str = "") -> str:
    """Return a random hex id, optionally prefixed (e.g. "turn_3f2a...")."""
    value = uuid4().hex
    return f"{prefix}_{value}" if prefix else value
