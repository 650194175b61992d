"""Outbound event plumbing between the relay core and the UI shell."""

from .bus import Event, EventBus

__all__ = ["EventBus", "Event"]
