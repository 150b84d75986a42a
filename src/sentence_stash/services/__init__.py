# src/sentence_stash/services/__init__.py
"""Business rules and outbound integrations for SentenceStash."""
