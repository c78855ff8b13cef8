from datetime import datetime
import logging

from src.core.database import Database
from src.modules.server_status.models import Subscription

logger = logging.getLogger(__name__)

def _from_row(row: dict) -> Subscription:
    row = dict(row)
    # SQLite hands CURRENT_TIMESTAMP back as text
    if isinstance(row.get('created_at'), str):
        row['created_at'] = datetime.fromisoformat(row['created_at'])
    return Subscription(**row)

class SubscriptionService:
    """
    Store of (channel, server) -> status message links.
    Thin layer over Database that speaks in Subscription objects.
    """

    def __init__(self, db: Database):
        self.db = db

    async def list_all(self) -> list[Subscription]:
        """Snapshot of every subscription in a stable order (by id)."""
        rows = await self.db.get_all_subscriptions()
        return [_from_row(row) for row in rows]

    async def list_for_channel(self, channel_id: int) -> list[Subscription]:
        rows = await self.db.get_subscriptions_for_channel(channel_id)
        return [_from_row(row) for row in rows]

    async def exists(self, channel_id: int, server_hostname: str) -> bool:
        return await self.db.get_subscription(channel_id, server_hostname) is not None

    async def insert(self, guild_id: int, channel_id: int, message_id: int, server_hostname: str) -> Subscription:
        """Raises DuplicateSubscriptionError if the pair already exists."""
        row = await self.db.insert_subscription(guild_id, channel_id, message_id, server_hostname)
        subscription = _from_row(row)
        logger.info(
            "Subscription created",
            extra={'subscription_id': subscription.id, 'channel_id': channel_id, 'server_hostname': server_hostname}
        )
        return subscription

    async def delete_by_channel(self, channel_id: int) -> int:
        removed = await self.db.delete_subscriptions_by_channel(channel_id)
        logger.info("Channel subscriptions removed", extra={'channel_id': channel_id, 'removed': removed})
        return removed

    async def delete_by_id(self, subscription_id: int) -> int:
        return await self.db.delete_subscription_by_id(subscription_id)
