"""Discord implementation of the Notifier interface."""
import logging
from typing import Optional

import discord

from services.notifier import Message, Notifier

COLORS = {
    "blue": discord.Color.blue(),
    "green": discord.Color.green(),
    "red": discord.Color.red(),
    "gold": discord.Color.gold(),
    "orange": discord.Color.orange(),
}

def to_embed(message: Message) -> discord.Embed:
    """Render a Message as a Discord embed."""
    embed = discord.Embed(
        title=message.title[:256],
        description=message.description[:4096],
        color=COLORS.get(message.color, discord.Color.blue()),
        timestamp=discord.utils.utcnow()
    )
    for name, value, inline in message.fields:
        embed.add_field(name=name[:256], value=value[:1024], inline=inline)
    if message.footer:
        embed.set_footer(text=message.footer)
    return embed

class DiscordNotifier(Notifier):
    """Delivers messages through a discord.py client."""

    def __init__(self, bot: discord.Client):
        self.bot = bot
        self.logger = logging.getLogger(__name__)

    async def _channel(self, channel_id: str) -> discord.abc.Messageable:
        channel = self.bot.get_channel(int(channel_id))
        if channel is None:
            channel = await self.bot.fetch_channel(int(channel_id))
        return channel

    async def notify_user(self, user_id: str, message: Message) -> None:
        user = self.bot.get_user(int(user_id)) or await self.bot.fetch_user(int(user_id))
        await user.send(embed=to_embed(message))

    async def notify_channel(self, channel_id: str, message: Message) -> Optional[str]:
        channel = await self._channel(channel_id)
        sent = await channel.send(embed=to_embed(message))
        return str(sent.id)

    async def edit_message(self, channel_id: str, message_id: str, message: Message) -> bool:
        channel = await self._channel(channel_id)
        try:
            original = await channel.fetch_message(int(message_id))
        except discord.NotFound:
            self.logger.warning(f"Message {message_id} no longer exists in channel {channel_id}")
            return False
        await original.edit(embed=to_embed(message), view=None)
        return True
