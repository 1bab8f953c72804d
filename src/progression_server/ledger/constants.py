"""Bounds shared by the record codec and the block store."""

from __future__ import annotations

MAX_STRING_LENGTH_SHORT = 30
MAX_STRING_LENGTH_DEFAULT = 120
MAX_STRING_LENGTH_LONG = 500
MAX_STRING_LENGTH_VERY_LONG = 1000

MAX_POINTS = 1_000_000
MAX_COST = 100_000
MAX_ARRAY_SIZE = 1000

MIN_LEVEL = 1
MAX_LEVEL = 100

# Attribute, base value and combat ratings may go negative through modifiers.
MIN_RATING = -1000
MAX_RATING = 1000

MAX_COST_CATEGORY = 4

MAX_HISTORY_RECORDS = MAX_POINTS
MAX_HISTORY_BLOCK_NUMBER = 100_000
MAX_RECORDS_PER_BLOCK = MAX_ARRAY_SIZE

ACTIVATED_SKILLS_AT_CREATION = 5

# Blocks per batch write transaction.
BATCH_CHUNK_SIZE = 25
