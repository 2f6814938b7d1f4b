"""Readiness check service: passwordless email sign-in and per-user baseline scoring."""

__version__ = "1.0.0"
