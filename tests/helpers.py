"""Small fakes shared by the test modules."""

from unittest.mock import MagicMock

import discord


def http_error(cls, status: int, message: str = "error"):
    """Build a discord HTTPException subclass without a real aiohttp response."""
    response = MagicMock()
    response.status = status
    response.reason = message
    return cls(response, message)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeInfo:
    def __init__(self, server_name="Gorilla #1", map_name="Altis", player_count=12, max_players=64):
        self.server_name = server_name
        self.map_name = map_name
        self.player_count = player_count
        self.max_players = max_players


def not_found():
    return http_error(discord.NotFound, 404, "Unknown Message")


def forbidden():
    return http_error(discord.Forbidden, 403, "Missing Access")
