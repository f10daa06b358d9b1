from __future__ import annotations

import discord
from discord import ui

from services.approval_service import PurchaseApprovalService
from utils.exceptions import ConcurrencyConflictError, RaffleError

class RejectReasonModal(ui.Modal, title="Reject Purchase"):
    """Modal asking the admin why a purchase is rejected."""

    reason = ui.TextInput(
        label="Reason",
        placeholder="e.g. payment not received",
        style=discord.TextStyle.paragraph,
        max_length=500
    )

    def __init__(self, service: PurchaseApprovalService, purchase_id: int, bot: discord.Client):
        super().__init__()
        self.service = service
        self.purchase_id = purchase_id
        self.logger = bot.logger.getChild('reject_modal')

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            await self.service.reject(self.purchase_id, self.reason.value)
            await interaction.followup.send(
                f"Purchase {self.purchase_id} rejected.",
                ephemeral=True
            )
        except RaffleError as e:
            await interaction.followup.send(str(e), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Error rejecting purchase {self.purchase_id}: {e}", exc_info=True)
            await interaction.followup.send(
                "An error occurred while rejecting the purchase.",
                ephemeral=True
            )

class PurchaseReviewView(ui.View):
    """Approve/reject buttons attached to pending purchases in the log channel.

    Persistent: one instance registered with ``bot.add_view`` serves every
    review message, and the purchase is looked up from the clicked message.
    """

    def __init__(self, bot: discord.Client):
        super().__init__(timeout=None)
        self.bot = bot
        self.logger = bot.logger.getChild('purchase_review_view')

    @property
    def service(self) -> PurchaseApprovalService:
        return self.bot.approval_service

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        permissions = getattr(interaction.user, "guild_permissions", None)
        if permissions and permissions.administrator:
            return True
        await interaction.response.send_message(
            "Only administrators can review purchases.",
            ephemeral=True
        )
        return False

    @ui.button(label="Approve", style=discord.ButtonStyle.success, custom_id="purchase_review:approve")
    async def approve(self, interaction: discord.Interaction, button: ui.Button) -> None:
        await interaction.response.defer(ephemeral=True)
        purchase_id = None
        try:
            purchase_id = await self.service.purchase_id_for_reservation(interaction.message.id)
            result = await self.service.approve(purchase_id)
            await interaction.followup.send(
                f"Purchase {purchase_id} approved. Tickets: {', '.join(result.allocated_numbers)}",
                ephemeral=True
            )
        except ConcurrencyConflictError as e:
            await interaction.followup.send(f"{e}. Please try again.", ephemeral=True)
        except RaffleError as e:
            await interaction.followup.send(str(e), ephemeral=True)
        except Exception as e:
            self.logger.error(f"Error approving purchase {purchase_id}: {e}", exc_info=True)
            await interaction.followup.send(
                "An error occurred while approving the purchase.",
                ephemeral=True
            )

    @ui.button(label="Reject", style=discord.ButtonStyle.danger, custom_id="purchase_review:reject")
    async def reject(self, interaction: discord.Interaction, button: ui.Button) -> None:
        try:
            purchase_id = await self.service.purchase_id_for_reservation(interaction.message.id)
        except RaffleError as e:
            await interaction.response.send_message(str(e), ephemeral=True)
            return
        await interaction.response.send_modal(
            RejectReasonModal(self.service, purchase_id, self.bot)
        )
