import discord
from discord.ext import commands
import asyncio
import pathlib
from dotenv import load_dotenv, find_dotenv
from src.core.config import BotConfig, ConfigError
from src.core.database import Database
from src.core.utils import retry_on_discord_error
from src.modules.server_status.services.query_service import QueryService
from src.modules.server_status.services.subscription_service import SubscriptionService
from src.modules.server_status.services.sync_service import StatusSyncService
import logging
from src.core.logging_setup import setup_logging

# find_dotenv() walks up from the working directory to find .env
load_dotenv(find_dotenv())

logger = logging.getLogger(__name__)

class GorillaBot(commands.Bot):
    def __init__(self, config: BotConfig):
        logger.info("--- ⌛ 0. Loading configuration ---")
        self.config = config
        logger.info(
            f"Poll interval {config.poll_interval}s, query timeout {config.query_timeout}s, "
            f"edit timeout {config.edit_timeout}s, "
            f"admin role '{config.admin_role_name}'."
        )

        # Prefix commands need the message content intent
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(command_prefix=config.command_prefix, intents=intents)

        self.db: Database | None = None
        self.subscription_service: SubscriptionService | None = None
        self.query_service: QueryService | None = None
        self.status_sync: StatusSyncService | None = None

    async def setup_hook(self) -> None:
        """
        Async initialisation that runs before the gateway connects.
        Only core services and cogs here; background work starts in on_ready.
        """
        logger.info("--- 🚀 1. Initialising core services ---")
        self.db = Database(self.config.db_name)
        await self.db.connect()

        self.subscription_service = SubscriptionService(self.db)
        self.query_service = QueryService(timeout=self.config.query_timeout)
        self.status_sync = StatusSyncService(
            self.subscription_service,
            self.query_service,
            self.edit_status_message,
            self.config.poll_interval,
            skip_unchanged=self.config.skip_unchanged_edits,
            stale_after_failures=self.config.stale_after_failures,
            edit_timeout=self.config.edit_timeout,
            wait_until_ready=self.wait_until_ready,
        )
        logger.info("✅ Core services ready.")

        logger.info("--- 🧩 2. Loading cogs ---")
        await self.load_all_cogs()

        self.list_loaded_commands()
        logger.info("--- 🎉 Bot core ready, waiting for the Discord connection... ---")

    async def on_ready(self):
        logger.info(f"--- ✅ Connected to Discord as {self.user} (ID: {self.user.id}) ---")

        # on_ready fires again after every reconnect; start() ignores repeat calls
        logger.info("--- 🚀 3. Starting background services ---")
        self.status_sync.start()
        logger.info("======================== Bot fully ready ========================")

    async def edit_status_message(self, channel_id: int, message_id: int, embed: discord.Embed):
        """Edit a status message in place. Discord errors propagate to the caller."""
        channel = self.get_channel(channel_id) or await self.fetch_channel(channel_id)
        await retry_on_discord_error(
            lambda: channel.get_partial_message(message_id).edit(embed=embed),
            operation_name="edit status message",
            log_context={'channel_id': channel_id, 'message_id': message_id},
        )

    async def close(self):
        """Shut down Discord first, then our own resources."""
        logger.info("Shutting down the bot...")

        if self.status_sync:
            # Let an in-flight query and edit finish before the client and database go away
            await self.status_sync.stop(timeout=self.config.query_timeout + self.config.edit_timeout)

        await super().close()
        logger.info("Discord client closed.")

        if self.db:
            await self.db.close()
            logger.info("Database connection closed.")

        logger.info("All resources released, bot stopped.")

    async def load_all_cogs(self):
        """Load every module under src/modules/*/cogs."""
        project_root = pathlib.Path(__file__).parent.parent
        modules_root = project_root / "src" / "modules"

        for path in sorted(modules_root.rglob("cogs/*.py")):
            if path.name == "__init__.py":
                continue

            # src/modules/feature/cogs/cmd.py -> src.modules.feature.cogs.cmd
            module_path = ".".join(path.relative_to(project_root).parts).removesuffix(".py")
            try:
                await self.load_extension(module_path)
                logger.info(f"✅ Loaded: {module_path}")
            except Exception:
                logger.error(f"❌ Failed to load {module_path}", exc_info=True)

    def list_loaded_commands(self):
        logger.info("--- 📋 Registered commands ---")
        if not self.commands:
            logger.info("  No commands registered.")
        for command in sorted(self.commands, key=lambda c: c.name):
            logger.info(f"  - {self.config.command_prefix}{command.name}")


async def main():
    setup_logging()

    try:
        config = BotConfig.from_env()
    except ConfigError as e:
        logger.critical(f"Invalid configuration, the bot cannot start: {e}")
        return

    bot = GorillaBot(config)

    try:
        # Runs until the bot disconnects or is closed
        await bot.start(config.discord_token)
    except discord.errors.LoginFailure:
        logger.critical("DISCORD_TOKEN was rejected by Discord. Check your .env file.")
    except Exception as e:
        logger.critical(f"Fatal error while running the bot: {e}", exc_info=True)
    finally:
        if not bot.is_closed():
            logger.info("Process is exiting, closing the bot...")
            await bot.close()


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        # main()'s finally block has already run by now
        logging.getLogger(__name__).info("Exited cleanly.")


if __name__ == "__main__":
    run()
