"""Composer core: buffer, triggers, suggestions, insertion and assembly."""
