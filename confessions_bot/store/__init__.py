"""Confession record model and the record store clients."""

from confessions_bot.store.client import AirtableRecordStore, RecordStore
from confessions_bot.store.models import ConfessionRecord

__all__ = ["AirtableRecordStore", "ConfessionRecord", "RecordStore"]
