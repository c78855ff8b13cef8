"""Tests for retry_on_discord_error."""

import unittest
from unittest.mock import AsyncMock, patch

import discord

from helpers import http_error, not_found
from src.core.utils import retry_on_discord_error


class TestRetryOnDiscordError(unittest.IsolatedAsyncioTestCase):

    async def test_returns_result(self):
        call = AsyncMock(return_value="ok")
        self.assertEqual(await retry_on_discord_error(call, "op"), "ok")
        call.assert_awaited_once()

    @patch('src.core.utils.asyncio.sleep', new_callable=AsyncMock)
    async def test_retries_server_errors_with_backoff(self, sleep):
        call = AsyncMock(side_effect=[http_error(discord.DiscordServerError, 503), "ok"])

        result = await retry_on_discord_error(call, "op", initial_delay=1.0, backoff_factor=3.0)

        self.assertEqual(result, "ok")
        self.assertEqual(call.await_count, 2)
        sleep.assert_awaited_once_with(1.0)

    @patch('src.core.utils.asyncio.sleep', new_callable=AsyncMock)
    async def test_gives_up_after_max_retries(self, sleep):
        call = AsyncMock(side_effect=http_error(discord.DiscordServerError, 502))

        with self.assertRaises(discord.DiscordServerError):
            await retry_on_discord_error(call, "op", max_retries=3, initial_delay=1.0, backoff_factor=2.0)

        self.assertEqual(call.await_count, 3)
        self.assertEqual([c.args[0] for c in sleep.await_args_list], [1.0, 2.0])

    async def test_client_errors_are_not_retried(self):
        call = AsyncMock(side_effect=not_found())
        with self.assertRaises(discord.NotFound):
            await retry_on_discord_error(call, "op")
        call.assert_awaited_once()


    @patch('src.core.utils.asyncio.sleep', new_callable=AsyncMock)
    async def test_delay_is_capped(self, sleep):
        call = AsyncMock(side_effect=http_error(discord.DiscordServerError, 500))

        with self.assertRaises(discord.DiscordServerError):
            await retry_on_discord_error(call, "op", max_retries=4, initial_delay=2.0, backoff_factor=10.0, max_delay=5.0)

        self.assertEqual([c.args[0] for c in sleep.await_args_list], [2.0, 5.0, 5.0])

    @patch('src.core.utils.asyncio.sleep', new_callable=AsyncMock)
    async def test_retry_logs_carry_context(self, sleep):
        call = AsyncMock(side_effect=[http_error(discord.DiscordServerError, 503), "ok"])

        with self.assertLogs('src.core.utils', level='WARNING') as logs:
            await retry_on_discord_error(call, "edit status", log_context={'channel_id': 10})

        record = logs.records[0]
        self.assertEqual(record.operation, "edit status")
        self.assertEqual(record.channel_id, 10)
        self.assertEqual(record.status, 503)
        self.assertEqual(record.attempt, 1)

    async def test_zero_attempts_rejected(self):
        call = AsyncMock()
        with self.assertRaises(ValueError):
            await retry_on_discord_error(call, "op", max_retries=0)
        call.assert_not_awaited()

if __name__ == "__main__":
    unittest.main()
