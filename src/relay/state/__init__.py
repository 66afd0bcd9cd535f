"""Persisted run state: processed/skip ledgers and failure-streak tracking."""
