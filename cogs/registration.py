"""Member registration, referral codes and ticket summaries."""
import logging

import discord
from discord import app_commands
from discord.ext import commands

from cogs.views import RegistrationModal
from utils.decorators import dm_only
from utils.exceptions import RaffleError

class Registration(commands.Cog):
    """Commands every member uses."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.user_service = bot.user_service
        self.logger = logging.getLogger(__name__)

    async def cog_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        if isinstance(error, app_commands.CheckFailure):
            message = "This command can only be used in my DMs."
        else:
            self.logger.error(f"Unhandled command error: {error}", exc_info=True)
            message = "An error occurred while running this command."
        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)

    @app_commands.command(name="register", description="Register to take part in raffles")
    @app_commands.guild_only()
    async def register(self, interaction: discord.Interaction):
        await interaction.response.send_modal(RegistrationModal(self.user_service, self.bot))

    @app_commands.command(name="my-code", description="Show your personal referral code")
    @dm_only()
    async def my_code(self, interaction: discord.Interaction):
        await interaction.response.defer()
        try:
            code = await self.user_service.get_referral_code(str(interaction.user.id))
            await interaction.followup.send(
                "Your referral code is below. A friend using it on a qualifying purchase "
                "earns you a free ticket in that raffle."
            )
            await interaction.followup.send(code)
        except RaffleError as e:
            await interaction.followup.send(str(e))
        except Exception as e:
            self.logger.error(f"Error fetching referral code: {e}", exc_info=True)
            await interaction.followup.send("An error occurred while fetching your code.")

    @app_commands.command(name="my-tickets", description="Summary of your tickets in open raffles")
    @dm_only()
    async def my_tickets(self, interaction: discord.Interaction):
        await interaction.response.defer()
        try:
            summaries = await self.user_service.get_ticket_summary(str(interaction.user.id))
            if not summaries:
                await interaction.followup.send("You have no approved tickets in open raffles right now.")
                return

            embed = discord.Embed(
                title="My Open Raffles",
                description="Your approved tickets in raffles still running.",
                color=discord.Color.blue()
            )
            for summary in summaries[:25]:
                status = "Awaiting draw" if summary.status == "awaiting_draw" else "Active"
                embed.add_field(
                    name=f"#{summary.raffle_id}: {summary.prize_name}",
                    value=f"**{summary.ticket_count}** ticket(s) - {status}",
                    inline=False
                )
            await interaction.followup.send(embed=embed)
        except RaffleError as e:
            await interaction.followup.send(str(e))
        except Exception as e:
            self.logger.error(f"Error fetching ticket summary: {e}", exc_info=True)
            await interaction.followup.send("An error occurred while fetching your tickets.")

async def setup(bot: commands.Bot) -> None:
    """Set up the registration cog"""
    await bot.add_cog(Registration(bot))
