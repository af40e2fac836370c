"""Synchronized-output filtering and stream-json event extraction for agent PTY output."""
