# src/modules/server_status/cogs/server_status.py

import discord
from discord.ext import commands
import logging
from typing import Optional, TYPE_CHECKING

from src.core.utils import retry_on_discord_error
from src.modules.server_status.errors import AddressError, DuplicateSubscriptionError
from src.modules.server_status.models import Subscription
from src.modules.server_status.services.query_service import QueryService
from src.modules.server_status.services.render_service import render
from src.modules.server_status.services.subscription_service import SubscriptionService

if TYPE_CHECKING:
    from src.bot import GorillaBot

logger = logging.getLogger(__name__)

def _jump_url(guild_id: int, channel_id: int, message_id: int) -> str:
    return f"https://discord.com/channels/{guild_id}/{channel_id}/{message_id}"

class ServerStatus(commands.Cog, name="ServerStatus"):
    """
    Text commands for following game servers in a channel.
    Only members holding the admin role can use them.
    """

    def __init__(self, bot: "GorillaBot"):
        self.bot = bot
        self.subscription_service: SubscriptionService = bot.subscription_service
        self.query_service: QueryService = bot.query_service
        self.admin_role_name: str = bot.config.admin_role_name

    async def cog_check(self, ctx: commands.Context) -> bool:
        if ctx.guild is None:
            raise commands.NoPrivateMessage()
        roles = getattr(ctx.author, 'roles', [])
        if not any(role.name == self.admin_role_name for role in roles):
            raise commands.MissingRole(self.admin_role_name)
        return True

    async def cog_command_error(self, ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.NoPrivateMessage):
            await ctx.reply("This command only works inside a server channel.")
            return
        if isinstance(error, commands.MissingRole):
            await ctx.reply(f"You need the **{self.admin_role_name}** role to use this command.")
            return

        log_context = {
            'command': ctx.command.qualified_name if ctx.command else None,
            'guild_id': ctx.guild.id if ctx.guild else None,
            'channel_id': ctx.channel.id,
            'user_id': ctx.author.id,
        }
        logger.error("Command failed", extra=log_context, exc_info=error)
        await ctx.reply("⚙️ Something went wrong, please try again later.")

    # ----------------------------------------------------------------
    # Command Logic Implementation (Internal)
    # ----------------------------------------------------------------

    async def _internal_follow(self, channel: discord.abc.Messageable, guild_id: int, address: str) -> Subscription:
        """
        Resolve the address, post the initial status message and store the subscription.
        Raises AddressError or DuplicateSubscriptionError; nothing is left behind in either case.
        """
        logger.info(f"Parsing & resolving server address: {address}")
        await self.query_service.resolve(address)

        if await self.subscription_service.exists(channel.id, address):
            raise DuplicateSubscriptionError(channel.id, address)

        embed = render(address, None).to_embed()
        message = await retry_on_discord_error(
            lambda: channel.send(embed=embed),
            operation_name=f"post initial status for {address} in channel {channel.id}"
        )

        try:
            return await self.subscription_service.insert(guild_id, channel.id, message.id, address)
        except DuplicateSubscriptionError:
            # Someone followed the same server in the meantime; drop our copy of the message
            try:
                await message.delete()
            except discord.HTTPException:
                logger.warning(
                    "Could not delete duplicate status message",
                    extra={'channel_id': channel.id, 'message_id': message.id},
                    exc_info=True
                )
            raise

    # ----------------------------------------------------------------
    # Text commands
    # ----------------------------------------------------------------

    @commands.command(name="follow_server", help="Post a live status message for <host>:<port> in this channel.")
    async def follow_server(self, ctx: commands.Context, address: Optional[str] = None):
        logger.info(
            "Received follow_server command",
            extra={'channel_id': ctx.channel.id, 'guild_id': ctx.guild.id, 'user_id': ctx.author.id}
        )

        if not address or not address.strip():
            await ctx.reply(f"Expected server address, e.g. `{ctx.clean_prefix}follow_server example.com:2303`")
            return
        address = address.strip()

        try:
            await self._internal_follow(ctx.channel, ctx.guild.id, address)
        except AddressError as e:
            logger.warning("Rejected server address", extra={'channel_id': ctx.channel.id, 'address': address, 'error': str(e)})
            await ctx.reply(f"❌ {e}")
            return
        except DuplicateSubscriptionError:
            await ctx.reply(f"🤔 This channel already follows `{address}`.")
            return

        await ctx.message.add_reaction('👍')

    @commands.command(name="unfollow_server", help="Stop every server status update in this channel.")
    async def unfollow_server(self, ctx: commands.Context):
        removed = await self.subscription_service.delete_by_channel(ctx.channel.id)
        if removed:
            await ctx.reply(f"Unsubscribed from {removed} server status update(s) :(")
        else:
            await ctx.reply("This channel was not following any server.")

    @commands.command(name="server_status", help="List the servers followed in this channel.")
    async def server_status(self, ctx: commands.Context):
        subscriptions = await self.subscription_service.list_for_channel(ctx.channel.id)
        if not subscriptions:
            await ctx.reply("This channel is not following any server.")
            return

        lines = [
            f"• `{sub.server_hostname}` → {_jump_url(sub.guild_id, sub.channel_id, sub.message_id)}"
            for sub in subscriptions
        ]
        embed = discord.Embed(
            title="Followed servers",
            description="\n".join(lines),
            colour=discord.Colour.blue()
        )
        await ctx.reply(embed=embed)


async def setup(bot: "GorillaBot"):
    await bot.add_cog(ServerStatus(bot))
