"""Message templates and Block Kit builders for the confessions bot.

WHY: The bot sends a handful of structured messages: the staging message
moderators act on, the public confession, the DM redirect, and the
ephemeral replies to the submitter. Centralizing them keeps the workflow
and the HTTP handlers focused on control flow.

HOW: Builders return a list of Block Kit block dicts ready to be passed
as blocks=... to chat.postMessage; text helpers return plain strings.

RULES:
- All builders return List[Dict] (Block Kit blocks) or str (plain text)
- action_id values must match the dispatch in server/app.py
- Published text never contains anything about the submitter
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

from typing import Any, Dict, List

from confessions_bot.store.models import ConfessionRecord

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Action IDs; must match the block_actions dispatch in server/app.py
ACTION_APPROVE = "approve"
ACTION_DISAPPROVE = "disapprove"
ACTION_OPEN_IN_BROWSER = "open-in-browser"

MODERATION_ACTIONS = (ACTION_APPROVE, ACTION_DISAPPROVE, ACTION_OPEN_IN_BROWSER)

# (action_id, button label)
_BUTTONS = [
    (ACTION_APPROVE, ":true: Approve"),
    (ACTION_DISAPPROVE, ":x: Disapprove"),
    (ACTION_OPEN_IN_BROWSER, "Open in browser"),
]

# Ephemeral replies to the submitter
STAGED_MESSAGE = "Your confession has been submitted and is awaiting moderation."
EMPTY_TEXT_MESSAGE = "Please include the text of your confession, e.g. `{} I love pineapple pizza`."


# ---------------------------------------------------------------------------
# Block Kit builders
# ---------------------------------------------------------------------------


def build_staging_blocks(record: ConfessionRecord) -> List[Dict[str, Any]]:
    """Build the moderator-facing message for a freshly created record.

    WHY: Moderators approve or disapprove confessions straight from the
    staging channel, so the message carries the text plus the buttons.

    HOW: A mrkdwn section with the confession number and text, followed by
    an actions block with approve / disapprove / open-in-browser buttons.
    The button value repeats the action id.

    RULES:
    - Section text is "(staging) *<id>*: <text>"
    - Exactly three buttons, in the order of MODERATION_ACTIONS
    """
    buttons = [
        {
            "type": "button",
            "text": {"type": "plain_text", "text": label, "emoji": True},
            "value": action_id,
            "action_id": action_id,
        }
        for action_id, label in _BUTTONS
    ]
    return [
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": "(staging) *{}*: {}".format(record.id, record.text),
            },
        },
        {
            "type": "actions",
            "elements": buttons,
        },
    ]


def staging_fallback_text(record: ConfessionRecord) -> str:
    """Notification text for the staging message (shown where blocks aren't)."""
    return "New confession #{} awaiting review".format(record.id)


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------


def format_published_text(record: ConfessionRecord) -> str:
    """Public channel text: confession number and text, nothing else."""
    return "*{}*: {}".format(record.id, record.text)


def format_dm_redirect(slash_command: str, confessions_channel: str) -> str:
    """Reply for users who DM the bot instead of using the slash command."""
    return "Uh oh! You can't DM me! Try typing {} in <#{}> to get started!".format(
        slash_command, confessions_channel
    )


def format_empty_text(slash_command: str) -> str:
    return EMPTY_TEXT_MESSAGE.format(slash_command)
