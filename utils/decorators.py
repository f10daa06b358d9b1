from discord import app_commands
import discord

def is_admin():
    """Check if user has administrator permissions in the guild."""
    def predicate(interaction: discord.Interaction) -> bool:
        permissions = getattr(interaction.user, "guild_permissions", None)
        return bool(permissions and permissions.administrator)
    return app_commands.check(predicate)

def dm_only():
    """Restrict a command to the bot's direct messages."""
    def predicate(interaction: discord.Interaction) -> bool:
        return interaction.guild is None
    return app_commands.check(predicate)
