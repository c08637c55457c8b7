"""Slack messaging client and message builders."""

from confessions_bot.slack.client import MessageHandle, MessagingClient

__all__ = ["MessageHandle", "MessagingClient"]
