# src/modules/server_status/models.py

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union


@dataclass
class Subscription:
    """
    A channel following one game server.
    Maps to the 'subscriptions' table.
    """
    guild_id: int
    channel_id: int
    message_id: int
    server_hostname: str
    id: Optional[int] = None
    created_at: Optional[datetime] = None


class FailureReason(enum.Enum):
    TIMEOUT = "timeout"
    UNREACHABLE = "unreachable"
    MALFORMED_RESPONSE = "malformed_response"


@dataclass(frozen=True)
class QuerySuccess:
    server_name: str
    map_name: str
    player_count: int
    max_players: int


@dataclass(frozen=True)
class QueryFailure:
    reason: FailureReason


QueryOutcome = Union[QuerySuccess, QueryFailure]


@dataclass
class CycleReport:
    """Summary of one pass over every subscription."""
    processed: int = 0
    updated: int = 0
    skipped_unchanged: int = 0
    query_failures: int = 0
    edit_failures: int = 0
    pruned: int = 0
    duration: float = 0.0
