# src/modules/server_status/services/sync_service.py

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import discord

from src.modules.server_status.models import (
    CycleReport,
    FailureReason,
    QueryFailure,
    Subscription,
)
from src.modules.server_status.services.query_service import QueryService
from src.modules.server_status.services.render_service import StatusPayload, render
from src.modules.server_status.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

# (channel_id, message_id, embed) -> None, raises discord errors on failure
EditMessageFunc = Callable[[int, int, discord.Embed], Awaitable[None]]


class StatusSyncService:
    """
    Keeps every status message in line with its game server.

    Each cycle takes one snapshot of the subscriptions and walks it in order:
    query the server, render, edit the message. Subscriptions are handled one
    after another, never concurrently, and a failure on one of them is logged
    and skipped. Cycles start `interval` seconds apart (start to start); a cycle
    that runs over is followed immediately by the next one.
    """

    def __init__(
        self,
        subscription_service: SubscriptionService,
        query_service: QueryService,
        edit_message: EditMessageFunc,
        interval: float,
        *,
        skip_unchanged: bool = False,
        stale_after_failures: int = 0,
        edit_timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        wait_until_ready: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.subscription_service = subscription_service
        self.query_service = query_service
        self.edit_message = edit_message
        self.interval = interval
        self.skip_unchanged = skip_unchanged
        self.stale_after_failures = stale_after_failures
        self.edit_timeout = edit_timeout
        self._clock = clock
        self._sleep = sleep
        self._wait_until_ready = wait_until_ready
        self.task: Optional[asyncio.Task] = None
        self._stopping = False
        self._cycle_running = False

        self._last_payloads: dict[int, StatusPayload] = {}
        self._not_found_counts: dict[int, int] = {}

    # ----------------------------------------------------------------
    # One cycle
    # ----------------------------------------------------------------

    async def run_cycle(self) -> Optional[CycleReport]:
        """Process every subscription once. Returns None if the snapshot could not be read."""
        started = self._clock()
        try:
            snapshot = await self.subscription_service.list_all()
        except Exception:
            logger.error("Could not read subscriptions, skipping this cycle", exc_info=True)
            return None

        report = CycleReport()
        for subscription in snapshot:
            if self._stopping:
                logger.info("Stop requested, leaving the rest of this cycle")
                break
            report.processed += 1
            try:
                await self._process_subscription(subscription, report)
            except Exception:
                # Should not happen, _process_subscription isolates its own steps
                logger.error(
                    "Unexpected error while processing subscription",
                    extra=self._log_context(subscription),
                    exc_info=True,
                )

        self._forget_missing(snapshot)
        report.duration = self._clock() - started
        logger.debug(
            f"Cycle finished: {report.processed} processed, {report.updated} updated, "
            f"{report.edit_failures} edit failures, {report.query_failures} unreachable "
            f"in {report.duration:.2f}s"
        )
        return report

    async def _process_subscription(self, subscription: Subscription, report: CycleReport):
        log_context = self._log_context(subscription)

        try:
            outcome = await self.query_service.query(subscription.server_hostname)
        except Exception:
            logger.error("Query raised instead of returning an outcome", extra=log_context, exc_info=True)
            outcome = QueryFailure(FailureReason.UNREACHABLE)
        if isinstance(outcome, QueryFailure):
            report.query_failures += 1

        payload = render(subscription.server_hostname, outcome)

        if self.skip_unchanged and self._last_payloads.get(subscription.id) == payload:
            report.skipped_unchanged += 1
            logger.debug("Status unchanged, edit skipped", extra=log_context)
            return

        embed = payload.to_embed(updated_at=datetime.now(timezone.utc))
        try:
            await asyncio.wait_for(
                self.edit_message(subscription.channel_id, subscription.message_id, embed),
                timeout=self.edit_timeout,
            )
        except asyncio.TimeoutError:
            report.edit_failures += 1
            log_context['timeout'] = self.edit_timeout
            logger.warning("Status message edit timed out", extra=log_context)
            return
        except discord.NotFound:
            report.edit_failures += 1
            logger.warning("Status message not found, it may have been deleted", extra=log_context)
            await self._record_not_found(subscription, report)
            return
        except discord.Forbidden:
            report.edit_failures += 1
            logger.warning("Missing permissions to edit status message", extra=log_context)
            return
        except discord.HTTPException as e:
            report.edit_failures += 1
            log_context['status'] = e.status
            logger.error("Discord rejected the status message edit", extra=log_context, exc_info=True)
            return
        except Exception:
            report.edit_failures += 1
            logger.error("Failed to update status message", extra=log_context, exc_info=True)
            return

        report.updated += 1
        self._not_found_counts.pop(subscription.id, None)
        if self.skip_unchanged:
            self._last_payloads[subscription.id] = payload

    async def _record_not_found(self, subscription: Subscription, report: CycleReport):
        """Count consecutive 'message not found' failures and prune if the policy allows it."""
        self._last_payloads.pop(subscription.id, None)
        if self.stale_after_failures <= 0:
            return

        count = self._not_found_counts.get(subscription.id, 0) + 1
        self._not_found_counts[subscription.id] = count
        if count < self.stale_after_failures:
            return

        log_context = self._log_context(subscription)
        log_context['failures'] = count
        try:
            await self.subscription_service.delete_by_id(subscription.id)
        except Exception:
            logger.error("Failed to remove stale subscription", extra=log_context, exc_info=True)
            return
        self._not_found_counts.pop(subscription.id, None)
        report.pruned += 1
        logger.warning("Removed subscription whose status message is gone", extra=log_context)

    def _forget_missing(self, snapshot: list[Subscription]):
        live_ids = {s.id for s in snapshot}
        for cache in (self._last_payloads, self._not_found_counts):
            for sub_id in [k for k in cache if k not in live_ids]:
                del cache[sub_id]

    @staticmethod
    def _log_context(subscription: Subscription) -> dict:
        return {
            'subscription_id': subscription.id,
            'guild_id': subscription.guild_id,
            'channel_id': subscription.channel_id,
            'message_id': subscription.message_id,
            'server_hostname': subscription.server_hostname,
        }

    # ----------------------------------------------------------------
    # Background loop
    # ----------------------------------------------------------------

    async def run_forever(self):
        if self._wait_until_ready is not None:
            await self._wait_until_ready()
        logger.info(f"Status sync loop started, interval {self.interval}s.")

        while not self._stopping:
            try:
                started = self._clock()
                self._cycle_running = True
                try:
                    await self.run_cycle()
                finally:
                    self._cycle_running = False
                if self._stopping:
                    break

                elapsed = self._clock() - started
                delay = max(0.0, self.interval - elapsed)
                if delay == 0.0:
                    logger.warning(
                        f"Sync cycle took {elapsed:.1f}s, longer than the {self.interval}s interval; "
                        "starting the next one now."
                    )
                await self._sleep(delay)
            except asyncio.CancelledError:
                logger.info("Status sync loop cancelled.")
                break
            except Exception:
                # run_cycle isolates its own failures; this guards the timing code
                logger.error("Unexpected error in status sync loop", exc_info=True)
                try:
                    await self._sleep(self.interval)
                except asyncio.CancelledError:
                    logger.info("Status sync loop cancelled while recovering.")
                    break

    @property
    def is_running(self) -> bool:
        return self.task is not None and not self.task.done()

    def start(self):
        if self.is_running:
            logger.warning("Status sync loop is already running.")
            return
        self._stopping = False
        self.task = asyncio.get_running_loop().create_task(self.run_forever())

    async def stop(self, timeout: float = 30.0):
        """
        Stop the loop and wait for it to finish.

        A cycle in progress completes the subscription it is on and leaves the
        rest; an idle loop is cancelled straight away. If the loop has not
        finished after `timeout` seconds it is cancelled.
        """
        if not self.is_running:
            return
        self._stopping = True
        if not self._cycle_running:
            self.task.cancel()

        done, _ = await asyncio.wait({self.task}, timeout=timeout)
        if not done:
            logger.warning(f"Status sync loop did not stop within {timeout}s, cancelling it.")
            self.task.cancel()
            await asyncio.gather(self.task, return_exceptions=True)
        logger.info("Status sync loop stopped.")
