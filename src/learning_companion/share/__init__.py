"""Signed share links for read-only progress views."""
