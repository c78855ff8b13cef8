# src/modules/server_status/services/render_service.py

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import discord

from src.modules.server_status.models import (
    FailureReason,
    QueryFailure,
    QueryOutcome,
    QuerySuccess,
)

UNKNOWN = "Unknown"

COLOUR_ONLINE = 0x2ECC71
COLOUR_OFFLINE = 0xE74C3C
COLOUR_PENDING = 0x95A5A6

FAILURE_TEXT = {
    FailureReason.TIMEOUT: "🔴 Unreachable (timed out)",
    FailureReason.UNREACHABLE: "🔴 Unreachable",
    FailureReason.MALFORMED_RESPONSE: "🔴 Unreachable (invalid response)",
}


@dataclass(frozen=True)
class StatusPayload:
    """What a status message should show. Equal inputs give equal payloads."""
    title: str
    colour: int
    fields: tuple[tuple[str, str], ...]

    def to_embed(self, updated_at: Optional[datetime] = None) -> discord.Embed:
        embed = discord.Embed(title=self.title, colour=self.colour, timestamp=updated_at)
        for name, value in self.fields:
            embed.add_field(name=name, value=value, inline=False)
        if updated_at is not None:
            embed.set_footer(text="Updated")
        return embed


def _field_text(value: str) -> str:
    # Discord rejects empty field values
    value = value.strip()
    return value[:1024] if value else UNKNOWN


def render(address: str, outcome: Optional[QueryOutcome]) -> StatusPayload:
    """
    Build the status payload for `address`.
    `outcome=None` means the server has not been queried yet (initial post).
    Never raises: anything unexpected is rendered as unknown.
    """
    if isinstance(outcome, QuerySuccess):
        return StatusPayload(
            title="Server status",
            colour=COLOUR_ONLINE,
            fields=(
                ("Server name", _field_text(outcome.server_name)),
                ("Server address", _field_text(address)),
                ("Map", _field_text(outcome.map_name)),
                ("Players", f"{outcome.player_count}/{outcome.max_players}"),
                ("Status", "🟢 Online"),
            ),
        )

    if outcome is None:
        status, colour = "⏳ Waiting for first update", COLOUR_PENDING
    elif isinstance(outcome, QueryFailure):
        status, colour = FAILURE_TEXT.get(outcome.reason, "🔴 Unreachable"), COLOUR_OFFLINE
    else:
        status, colour = "🔴 Unreachable", COLOUR_OFFLINE

    return StatusPayload(
        title="Server status",
        colour=colour,
        fields=(
            ("Server name", UNKNOWN),
            ("Server address", _field_text(address)),
            ("Map", UNKNOWN),
            ("Players", UNKNOWN),
            ("Status", status),
        ),
    )
