import aiosqlite
import asyncio
import os
import pathlib
import sqlite3
import logging
from typing import Optional

from src.modules.server_status.errors import DuplicateSubscriptionError

logger = logging.getLogger(__name__)

MIGRATIONS_PATH = pathlib.Path(__file__).parent.parent / "migrations" / "versions"


class Database:
    def __init__(self, db_name: Optional[str] = None):
        # SQLite needs a single connection, no pool
        self.conn: Optional[aiosqlite.Connection] = None
        self.db_name = db_name or os.getenv('DB_NAME', 'gorillabot.db')
        # Every statement goes through this lock so an insert or a bulk delete
        # never interleaves with the sync loop's snapshot read.
        self._lock = asyncio.Lock()

    async def connect(self):
        """Open the SQLite file and bring the schema up to date."""
        self.conn = await aiosqlite.connect(self.db_name)
        # Rows behave like dicts keyed by column name
        self.conn.row_factory = aiosqlite.Row
        await self.conn.execute("PRAGMA foreign_keys = ON")
        await self.conn.commit()
        await self._run_migrations()
        logger.info("Database connected and initialised", extra={'db_name': self.db_name})

    async def close(self):
        if self.conn is not None:
            await self.conn.close()
            self.conn = None

    async def _execute(self, query, args=None, fetch=None):
        """Shared execute helper."""
        async with self._lock:
            async with self.conn.cursor() as cursor:
                await cursor.execute(query, args or ())
                if fetch == 'one':
                    return await cursor.fetchone()
                if fetch == 'all':
                    return await cursor.fetchall()
                # INSERT, UPDATE and DELETE need an explicit commit
                await self.conn.commit()
                return cursor.rowcount

    # --- Subscription Methods ---

    async def insert_subscription(self, guild_id: int, channel_id: int, message_id: int, server_hostname: str) -> dict:
        """
        Insert a subscription and return the stored row.
        Raises DuplicateSubscriptionError if the channel already follows that server;
        nothing is written in that case.
        """
        sql = """
            INSERT INTO subscriptions (guild_id, channel_id, message_id, server_hostname)
            VALUES (?, ?, ?, ?)
        """
        async with self._lock:
            try:
                async with self.conn.cursor() as cursor:
                    await cursor.execute(sql, (guild_id, channel_id, message_id, server_hostname))
                    row_id = cursor.lastrowid
                await self.conn.commit()
            except sqlite3.IntegrityError:
                await self.conn.rollback()
                raise DuplicateSubscriptionError(channel_id, server_hostname) from None

            async with self.conn.cursor() as cursor:
                await cursor.execute("SELECT * FROM subscriptions WHERE id = ?", (row_id,))
                row = await cursor.fetchone()
        return dict(row)

    async def delete_subscriptions_by_channel(self, channel_id: int) -> int:
        """Delete every subscription of a channel. Returns how many rows went away."""
        sql = "DELETE FROM subscriptions WHERE channel_id = ?"
        return await self._execute(sql, (channel_id,))

    async def delete_subscription_by_id(self, subscription_id: int) -> int:
        sql = "DELETE FROM subscriptions WHERE id = ?"
        return await self._execute(sql, (subscription_id,))

    async def get_all_subscriptions(self) -> list[dict]:
        """All subscriptions, oldest first."""
        sql = "SELECT * FROM subscriptions ORDER BY id"
        results = await self._execute(sql, fetch='all')
        return [dict(row) for row in results] if results else []

    async def get_subscription(self, channel_id: int, server_hostname: str) -> Optional[dict]:
        sql = "SELECT * FROM subscriptions WHERE channel_id = ? AND server_hostname = ?"
        result = await self._execute(sql, (channel_id, server_hostname), fetch='one')
        return dict(result) if result else None

    async def get_subscriptions_for_channel(self, channel_id: int) -> list[dict]:
        sql = "SELECT * FROM subscriptions WHERE channel_id = ? ORDER BY id"
        results = await self._execute(sql, (channel_id,), fetch='all')
        return [dict(row) for row in results] if results else []

    async def _run_migrations(self):
        """
        Apply versioned migrations.
        Every `NNN_description.sql` file under `src/migrations/versions` whose number is
        above the database's `user_version` is executed in order, then `user_version`
        is bumped to that number.
        """
        logger.info("Checking database migrations...")

        if not MIGRATIONS_PATH.is_dir():
            logger.warning(f"Migrations directory not found, skipping: {MIGRATIONS_PATH}")
            return

        async with self.conn.cursor() as cursor:
            await cursor.execute("PRAGMA user_version")
            current_version = (await cursor.fetchone())[0]
        logger.info(f"Current database version: {current_version}")

        try:
            migration_files = sorted(
                MIGRATIONS_PATH.glob("*.sql"),
                key=lambda p: int(p.stem.split('_')[0])
            )
        except (ValueError, IndexError):
            logger.error("Migration file names must look like 'NNN_description.sql'.")
            raise

        latest_version = current_version
        for migration_file in migration_files:
            file_version = int(migration_file.stem.split('_')[0])
            if file_version <= current_version:
                continue
            try:
                logger.info(f"Applying migration v{file_version} - {migration_file.name}")
                sql_script = migration_file.read_text(encoding='utf-8')
                await self.conn.executescript(sql_script)
                await self.conn.execute(f"PRAGMA user_version = {file_version}")
                await self.conn.commit()
                latest_version = file_version
            except Exception:
                logger.error(f"Migration failed: {migration_file.name}", exc_info=True)
                await self.conn.rollback()
                # Refuse to start on a half-migrated database
                raise

        if latest_version == current_version:
            logger.info("Database schema is up to date.")
        else:
            logger.info(f"Database migrated from v{current_version} to v{latest_version}.")
