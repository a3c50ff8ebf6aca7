"""Server module -- process wiring, health route and entry point."""

from __future__ import annotations

from .app import HealthRoutes, QuietAccessLogger, Relay, build_relay, create_app, main, serve

__all__ = ["HealthRoutes", "QuietAccessLogger", "Relay", "build_relay", "create_app", "main", "serve"]
