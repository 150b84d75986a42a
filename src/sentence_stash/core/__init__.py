"""Settings, errors and security helpers."""
