"""Admin review of pending purchases."""
import logging

import discord
from discord import app_commands
from discord.ext import commands

from services import messages
from services.approval_service import parse_purchase_ids
from utils.decorators import is_admin
from utils.exceptions import RaffleError

class Management(commands.Cog):
    """Pending purchase listing and batch approval/rejection."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.approval_service = bot.approval_service
        self.logger = logging.getLogger(__name__)

    async def cog_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        if isinstance(error, app_commands.CheckFailure):
            message = "You need administrator permission to use this command."
        else:
            self.logger.error(f"Unhandled command error: {error}", exc_info=True)
            message = "An error occurred while running this command."
        if interaction.response.is_done():
            await interaction.followup.send(message, ephemeral=True)
        else:
            await interaction.response.send_message(message, ephemeral=True)

    @app_commands.command(name="pending", description="List purchases waiting for approval")
    @app_commands.guild_only()
    @is_admin()
    async def pending(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        try:
            purchases = await self.approval_service.get_pending_purchases()
            if not purchases:
                await interaction.followup.send("No pending purchases. ✅", ephemeral=True)
                return

            lines = [
                f"`{p.id}` - <@{p.buyer_id}> - Raffle #{p.raffle_id} ({p.raffle.prize_name}) - "
                f"{p.quantity} ticket(s), {messages.format_price(p.quantity * p.raffle.ticket_price)}"
                for p in purchases
            ]
            description = "\n".join(lines)
            if len(description) > 4000:
                description = description[:3990] + "\n..."

            embed = discord.Embed(
                title=f"Pending Purchases ({len(purchases)})",
                description=description,
                color=discord.Color.orange()
            )
            embed.set_footer(text="Use /approve or /reject with the purchase ids.")
            await interaction.followup.send(embed=embed, ephemeral=True)
        except Exception as e:
            self.logger.error(f"Error listing pending purchases: {e}", exc_info=True)
            await interaction.followup.send("An error occurred while listing purchases.", ephemeral=True)

    @app_commands.command(name="approve", description="Approve pending purchases by id")
    @app_commands.describe(purchase_ids="Comma separated purchase ids, e.g. 12,13,20")
    @app_commands.guild_only()
    @is_admin()
    async def approve(self, interaction: discord.Interaction, purchase_ids: str):
        await interaction.response.defer(ephemeral=True)
        try:
            ids = parse_purchase_ids(purchase_ids)
            outcomes = await self.approval_service.approve_many(ids)
            await interaction.followup.send(embed=self._outcome_embed("Approval", outcomes), ephemeral=True)
        except RaffleError as e:
            await interaction.followup.send(str(e), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Error approving purchases: {e}", exc_info=True)
            await interaction.followup.send("An error occurred while approving purchases.", ephemeral=True)

    @app_commands.command(name="reject", description="Reject pending purchases by id")
    @app_commands.describe(
        purchase_ids="Comma separated purchase ids, e.g. 12,13,20",
        reason="Reason sent to the buyers"
    )
    @app_commands.guild_only()
    @is_admin()
    async def reject(self, interaction: discord.Interaction, purchase_ids: str, reason: str):
        await interaction.response.defer(ephemeral=True)
        try:
            ids = parse_purchase_ids(purchase_ids)
            outcomes = await self.approval_service.reject_many(ids, reason)
            await interaction.followup.send(embed=self._outcome_embed("Rejection", outcomes), ephemeral=True)
        except RaffleError as e:
            await interaction.followup.send(str(e), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Error rejecting purchases: {e}", exc_info=True)
            await interaction.followup.send("An error occurred while rejecting purchases.", ephemeral=True)

    def _outcome_embed(self, action: str, outcomes) -> discord.Embed:
        succeeded = [o for o in outcomes if o.success]
        failed = [o for o in outcomes if not o.success]
        embed = discord.Embed(
            title=f"Batch {action}",
            description=f"{len(succeeded)} succeeded, {len(failed)} failed",
            color=discord.Color.green() if not failed else discord.Color.orange()
        )
        if succeeded:
            embed.add_field(
                name="✅ Done",
                value="\n".join(f"`{o.purchase_id}`: {o.detail}" for o in succeeded)[:1024],
                inline=False
            )
        if failed:
            embed.add_field(
                name="❌ Failed",
                value="\n".join(f"`{o.purchase_id}`: {o.detail}" for o in failed)[:1024],
                inline=False
            )
        return embed

async def setup(bot: commands.Bot) -> None:
    """Set up the management cog"""
    await bot.add_cog(Management(bot))
