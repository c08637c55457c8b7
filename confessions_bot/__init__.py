"""Confessions bot: Slack webhook backend for moderated anonymous posts.

WHY: Slack users want to share text anonymously, but a public channel
needs a human in the loop. This package receives slash-command
submissions, stages them for a moderator in a private channel, and
publishes approved confessions to the public channel.

HOW: Three layers: security (signature, replay, identity digest),
collaborators (record store, Slack messaging), and the moderation
workflow that couples them. A thin FastAPI server translates HTTP
deliveries into workflow calls.

RULES:
- The workflow only talks to the RecordStore and MessagingClient contracts
- Configuration is an explicit Settings object, injected at startup
- The submitter's identity is never stored, only a salted digest
"""

__version__ = "0.1.0"
