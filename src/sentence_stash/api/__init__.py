# src/sentence_stash/api/__init__.py
"""HTTP API for SentenceStash."""
