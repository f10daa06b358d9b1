"""Raffle commands: creation, purchases, draws and the lottery scheduler."""
from typing import Optional
import logging

import discord
from discord import app_commands
from discord.ext import commands, tasks

from cogs.views import CreateRaffleModal, PurchaseReviewView
from services import messages
from services.notifier import NotificationService
from services.discord_notifier import to_embed
from utils.decorators import is_admin
from utils.exceptions import RaffleError

class Raffles(commands.Cog):
    """Raffle administration and ticket purchases."""

    raffle = app_commands.Group(name="raffle", description="Manage raffles", guild_only=True)

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.raffle_service = bot.raffle_service
        self.approval_service = bot.approval_service
        self.draw_service = bot.draw_service
        self.lifecycle_service = bot.lifecycle_service
        self.notifications = NotificationService(bot.notifier)
        self.logger = logging.getLogger(__name__)

    async def cog_load(self):
        """Start the lottery sales target check."""
        self.lottery_check.change_interval(hours=self.bot.config.raffle.lottery_check_interval_hours)
        self.lottery_check.start()
        self.logger.info("Raffles cog loaded, lottery check scheduled")

    async def cog_unload(self):
        self.lottery_check.cancel()

    @tasks.loop(hours=24)
    async def lottery_check(self):
        """Move lottery raffles that reached their sales target to awaiting_draw."""
        try:
            scheduled = await self.lifecycle_service.check_lottery_thresholds()
            if scheduled:
                self.logger.info(f"Draws scheduled for raffles {scheduled}")
        except Exception as e:
            self.logger.error(f"Error checking lottery targets: {e}", exc_info=True)

    @lottery_check.before_loop
    async def before_lottery_check(self):
        await self.bot.wait_until_ready()

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

    @raffle.command(name="create", description="Create a new raffle in this channel")
    @is_admin()
    async def create(self, interaction: discord.Interaction):
        await interaction.response.send_modal(CreateRaffleModal(self.raffle_service, self.bot))

    @raffle.command(name="list", description="List raffles open for purchases")
    async def list_raffles(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        try:
            raffles = await self.raffle_service.list_open_raffles()
            if not raffles:
                await interaction.followup.send("No raffles are open right now.", ephemeral=True)
                return

            embed = discord.Embed(title="Open Raffles", color=discord.Color.gold())
            for raffle in raffles[:25]:
                sold = await self.raffle_service.get_sold_count(raffle.id)
                embed.add_field(
                    name=f"#{raffle.id}: {raffle.prize_name}",
                    value=(
                        f"{messages.format_price(raffle.ticket_price)} per ticket\n"
                        f"{sold}/{raffle.total_tickets} sold ({raffle.status})"
                    ),
                    inline=False
                )
            await interaction.followup.send(embed=embed, ephemeral=True)
        except Exception as e:
            self.logger.error(f"Error listing raffles: {e}", exc_info=True)
            await interaction.followup.send("An error occurred while listing raffles.", ephemeral=True)

    @raffle.command(name="draw", description="Draw the winner of an internal raffle")
    @app_commands.describe(raffle_id="Raffle to draw")
    @is_admin()
    async def draw(self, interaction: discord.Interaction, raffle_id: int):
        await interaction.response.defer(ephemeral=True)
        try:
            result = await self.draw_service.draw_internal(raffle_id)
            await interaction.followup.send(
                f"Raffle #{raffle_id} drawn! Ticket `{result.winning_number}` "
                f"belongs to <@{result.winner_id}>.",
                ephemeral=True
            )
        except RaffleError as e:
            await interaction.followup.send(str(e), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Error drawing raffle: {e}", exc_info=True, extra={'raffle_id': raffle_id})
            await interaction.followup.send("An error occurred while drawing the raffle.", ephemeral=True)

    @raffle.command(name="finalize-lottery", description="Finalize a lottery raffle with the announced number")
    @app_commands.describe(raffle_id="Raffle to finalize", draw_number="Number announced by the lottery")
    @is_admin()
    async def finalize_lottery(self, interaction: discord.Interaction, raffle_id: int, draw_number: str):
        await interaction.response.defer(ephemeral=True)
        try:
            result = await self.draw_service.finalize_external_lottery(raffle_id, draw_number)
            if result.has_winner:
                content = (
                    f"Raffle #{raffle_id} finalized. Ticket `{result.winning_number}` "
                    f"belongs to <@{result.winner_id}>."
                )
            else:
                content = (
                    f"Raffle #{raffle_id} finalized. Ticket `{result.winning_number}` was not sold, "
                    "so there is no winner."
                )
            await interaction.followup.send(content, ephemeral=True)
        except RaffleError as e:
            await interaction.followup.send(str(e), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Error finalizing raffle: {e}", exc_info=True, extra={'raffle_id': raffle_id})
            await interaction.followup.send("An error occurred while finalizing the raffle.", ephemeral=True)

    @raffle.command(name="cancel", description="Cancel an active raffle")
    @app_commands.describe(raffle_id="Raffle to cancel", reason="Reason shown to participants")
    @is_admin()
    async def cancel(self, interaction: discord.Interaction, raffle_id: int, reason: str):
        await interaction.response.defer(ephemeral=True)
        try:
            participants = await self.lifecycle_service.cancel_raffle(raffle_id, reason)
            await interaction.followup.send(
                f"Raffle #{raffle_id} cancelled. {len(participants)} participant(s) were asked to request refunds.",
                ephemeral=True
            )
        except RaffleError as e:
            await interaction.followup.send(str(e), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Error cancelling raffle: {e}", exc_info=True, extra={'raffle_id': raffle_id})
            await interaction.followup.send("An error occurred while cancelling the raffle.", ephemeral=True)

    @raffle.command(name="purge", description="Delete a finalized or cancelled raffle and its data")
    @app_commands.describe(raffle_id="Raffle to delete")
    @is_admin()
    async def purge(self, interaction: discord.Interaction, raffle_id: int):
        await interaction.response.defer(ephemeral=True)
        try:
            status = await self.raffle_service.purge_raffle(raffle_id)
            await interaction.followup.send(
                f"Raffle #{raffle_id} ({status}) and all its purchases and tickets were deleted.",
                ephemeral=True
            )
        except RaffleError as e:
            await interaction.followup.send(str(e), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Error purging raffle: {e}", exc_info=True, extra={'raffle_id': raffle_id})
            await interaction.followup.send("An error occurred while deleting the raffle.", ephemeral=True)

    @app_commands.command(name="buy", description="Reserve tickets for a raffle")
    @app_commands.describe(
        raffle_id="Raffle to buy tickets for",
        quantity="How many tickets",
        referral_code="Referral code of the member who invited you"
    )
    @app_commands.guild_only()
    async def buy(
        self,
        interaction: discord.Interaction,
        raffle_id: int,
        quantity: app_commands.Range[int, 1, 10000],
        referral_code: Optional[str] = None
    ):
        await interaction.response.defer(ephemeral=True)
        try:
            receipt = await self.raffle_service.create_purchase(
                raffle_id, str(interaction.user.id), quantity, referral_code
            )
        except RaffleError as e:
            await interaction.followup.send(str(e), ephemeral=True)
            return
        except Exception as e:
            self.logger.error(f"Error reserving tickets: {e}", exc_info=True, extra={'raffle_id': raffle_id})
            await interaction.followup.send("An error occurred while reserving your tickets.", ephemeral=True)
            return

        reserved = messages.purchase_reserved_message(
            receipt.raffle, receipt.purchase_id, receipt.total_price, receipt.payment_code
        )
        if await self.notifications.send_to_user(receipt.buyer_id, reserved):
            await interaction.followup.send(
                f"Reservation `{receipt.purchase_id}` registered! Check your DMs for the payment code.",
                ephemeral=True
            )
        else:
            await interaction.followup.send(embed=to_embed(reserved), ephemeral=True)

        await self._post_for_review(interaction, receipt)

    async def _post_for_review(self, interaction: discord.Interaction, receipt) -> None:
        channel_id = self.bot.config.raffle.log_channel_id
        if not channel_id:
            self.logger.warning("No log channel configured, purchase not posted for review",
                                extra={'purchase_id': receipt.purchase_id})
            return
        try:
            channel = self.bot.get_channel(int(channel_id)) or await self.bot.fetch_channel(int(channel_id))
            log_message = messages.purchase_pending_log_message(
                receipt.raffle,
                receipt.purchase_id,
                receipt.buyer_id,
                interaction.user.display_name,
                receipt.quantity,
                receipt.total_price
            )
            sent = await channel.send(
                embed=to_embed(log_message),
                view=PurchaseReviewView(self.bot)
            )
            await self.raffle_service.set_reservation_message(receipt.purchase_id, channel_id, str(sent.id))
        except Exception as e:
            self.logger.error(f"Error posting purchase for review: {e}", extra={'purchase_id': receipt.purchase_id})

async def setup(bot: commands.Bot) -> None:
    """Set up the raffles cog"""
    await bot.add_cog(Raffles(bot))
