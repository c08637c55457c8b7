"""Settings object, environment loading, and defaults.

WHY: The bot needs tokens, the signing secret, table credentials and the
two channel ids. Collecting them in one explicitly constructed object
lets the server inject them into every component and lets tests build
their own settings without touching the environment.

HOW: python-dotenv loads the .env file on import. Settings.from_env()
reads os.environ, applies defaults, and raises a clear ValueError for
every required value that is missing.

RULES:
- Secrets are loaded from the environment (or .env), never hardcoded
- Settings is frozen; nothing mutates it after startup
- Required: SLACK_BOT_TOKEN, SLACK_SIGNING_SECRET, AIRTABLE_API_KEY,
  AIRTABLE_BASE, STAGING_CHANNEL, CONFESSIONS_CHANNEL
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

# Load .env from the project root (where the server is started from)
load_dotenv()

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_AIRTABLE_ENDPOINT_URL = "https://api.airtable.com/v0"
DEFAULT_AIRTABLE_TABLE = "Main"
DEFAULT_SLASH_COMMAND = "/prox2"
DEFAULT_SIGNATURE_MAX_AGE_S = 300

_REQUIRED = (
    ("slack_bot_token", "SLACK_BOT_TOKEN"),
    ("slack_signing_secret", "SLACK_SIGNING_SECRET"),
    ("airtable_api_key", "AIRTABLE_API_KEY"),
    ("airtable_base", "AIRTABLE_BASE"),
    ("staging_channel", "STAGING_CHANNEL"),
    ("confessions_channel", "CONFESSIONS_CHANNEL"),
)


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration for the bot.

    RULES:
    - staging_channel: private channel where moderators review confessions
    - confessions_channel: public channel approved confessions go to
    - signature_max_age_s: max clock skew for signed deliveries (default 300)
    """

    slack_bot_token: str
    slack_signing_secret: str
    airtable_api_key: str
    airtable_base: str
    staging_channel: str
    confessions_channel: str
    airtable_table: str = DEFAULT_AIRTABLE_TABLE
    airtable_endpoint_url: str = DEFAULT_AIRTABLE_ENDPOINT_URL
    slash_command: str = DEFAULT_SLASH_COMMAND
    signature_max_age_s: int = DEFAULT_SIGNATURE_MAX_AGE_S

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> Settings:
        """Build Settings from environment variables.

        WHY: The server reads its configuration exactly once, at startup,
        and passes the result down explicitly.

        HOW: Reads each required variable, strips whitespace, and collects
        the names of missing ones so the error lists all of them at once.

        RULES:
        - Raises ValueError naming every missing required variable
        - SIGNATURE_MAX_AGE_S must parse as an int
        """
        env = os.environ if environ is None else environ

        values = {}
        missing = []
        for attr, var in _REQUIRED:
            value = env.get(var, "").strip()
            if not value:
                missing.append(var)
            values[attr] = value

        if missing:
            raise ValueError(
                "Missing required configuration: {}. "
                "Add them to the environment or the .env file.".format(", ".join(missing))
            )

        max_age_raw = env.get("SIGNATURE_MAX_AGE_S", str(DEFAULT_SIGNATURE_MAX_AGE_S))
        try:
            max_age = int(max_age_raw)
        except ValueError:
            raise ValueError(
                "SIGNATURE_MAX_AGE_S must be an integer, got {!r}".format(max_age_raw)
            ) from None

        return cls(
            airtable_table=env.get("AIRTABLE_TABLE", DEFAULT_AIRTABLE_TABLE),
            airtable_endpoint_url=env.get("AIRTABLE_ENDPOINT_URL", DEFAULT_AIRTABLE_ENDPOINT_URL),
            slash_command=env.get("SLASH_COMMAND", DEFAULT_SLASH_COMMAND),
            signature_max_age_s=max_age,
            **values,
        )
