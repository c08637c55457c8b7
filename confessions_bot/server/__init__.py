"""FastAPI webhook server for Slack deliveries."""

from confessions_bot.server.app import create_app

__all__ = ["create_app"]
