"""Operator notifications: channel implementations, fan-out manager, and message templates."""
