from __future__ import annotations

import discord
from discord import ui

from services.raffle_service import RaffleService, parse_draw_method, parse_secondary_prizes
from utils.exceptions import RaffleError

class CreateRaffleModal(ui.Modal, title="Create New Raffle"):
    """Modal for creating a raffle in the current channel."""

    prize_name = ui.TextInput(
        label="Prize",
        placeholder="e.g. PlayStation 5",
        max_length=100
    )
    ticket_price = ui.TextInput(
        label="Ticket price",
        placeholder="e.g. 1.50",
        max_length=10
    )
    total_tickets = ui.TextInput(
        label="Total tickets",
        placeholder="e.g. 1000",
        max_length=7
    )
    draw_method = ui.TextInput(
        label="Draw method",
        placeholder="'internal' or 'lottery:75' (75% sales target)",
        max_length=20
    )
    secondary_prizes = ui.TextInput(
        label="Secondary prizes (optional)",
        style=discord.TextStyle.paragraph,
        placeholder="TOP 1: Gift card\nTICKET 3x: Free drink",
        required=False,
        max_length=1000
    )

    def __init__(self, service: RaffleService, bot: discord.Client):
        super().__init__()
        self.service = service
        self.logger = bot.logger.getChild('create_raffle_modal')

    async def on_submit(self, interaction: discord.Interaction) -> None:
        """Validate the form and create the raffle."""
        await interaction.response.defer(ephemeral=True)
        try:
            try:
                price = float(self.ticket_price.value.replace(",", "."))
                total = int(self.total_tickets.value)
            except ValueError:
                await interaction.followup.send(
                    "Price and total tickets must be numbers.",
                    ephemeral=True
                )
                return

            method, ratio = parse_draw_method(self.draw_method.value)
            top_prizes, instant_prizes = parse_secondary_prizes(
                self.secondary_prizes.value,
                self.service.max_instant_prizes_per_line
            )

            raffle = await self.service.create_raffle(
                prize_name=self.prize_name.value,
                ticket_price=price,
                total_tickets=total,
                draw_method=method,
                completion_threshold_ratio=ratio,
                top_buyer_prizes=top_prizes,
                instant_prizes=instant_prizes,
                channel_id=str(interaction.channel_id)
            )

            await interaction.followup.send(
                f"Raffle #{raffle.id} created with {raffle.total_tickets} tickets "
                f"and {sum(qty for qty, _ in instant_prizes)} instant prizes.",
                ephemeral=True
            )

        except RaffleError as e:
            await interaction.followup.send(str(e), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Error creating raffle: {e}", exc_info=True)
            await interaction.followup.send(
                "An error occurred while creating the raffle.",
                ephemeral=True
            )
