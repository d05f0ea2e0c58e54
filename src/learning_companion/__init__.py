"""Learning Companion: study task tracker with offline sync, streaks and share links."""

__version__ = "0.1.0"
