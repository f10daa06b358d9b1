from __future__ import annotations

import discord
from discord import ui

from services.user_service import UserService
from utils.exceptions import RaffleError

class RegistrationModal(ui.Modal, title="Member Registration"):
    """Collects name and email for a new member."""

    name = ui.TextInput(
        label="Full name",
        max_length=100
    )
    email = ui.TextInput(
        label="Email",
        placeholder="you@example.com",
        max_length=200
    )

    def __init__(self, service: UserService, bot: discord.Client):
        super().__init__()
        self.service = service
        self.bot = bot
        self.logger = bot.logger.getChild('registration_modal')

    async def on_submit(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True)
        try:
            result = await self.service.register_user(
                str(interaction.user.id),
                self.name.value,
                self.email.value
            )
        except RaffleError as e:
            await interaction.followup.send(str(e), ephemeral=True)
            return
        except Exception as e:
            self.logger.error(f"Error registering {interaction.user.id}: {e}", exc_info=True)
            await interaction.followup.send(
                "An error occurred while saving your registration.",
                ephemeral=True
            )
            return

        await self._grant_role(interaction)

        if result.created:
            intro = f"Welcome, **{result.name}**! Your registration is complete."
        elif result.code_generated:
            intro = "You were already registered, but had no referral code. A new one was generated."
        else:
            intro = "You are already registered. Your permissions were checked."

        embed = discord.Embed(
            title="🎉 Registration" if result.created else "ℹ️ Registration Info",
            description=(
                f"{intro}\n\nShare your referral code! When a friend uses it on a qualifying "
                "purchase you earn a free ticket in that raffle."
            ),
            color=discord.Color.green() if result.created else discord.Color.blue()
        )
        try:
            await interaction.user.send(embed=embed)
            await interaction.user.send(result.referral_code)
            await interaction.followup.send("Done! ✅ I sent your referral code by DM.", ephemeral=True)
        except discord.HTTPException:
            self.logger.warning("Could not DM referral code", extra={'user_id': str(interaction.user.id)})
            await interaction.followup.send(
                f"{intro}\n**I could not DM you.** Your referral code is:\n```{result.referral_code}```",
                ephemeral=True
            )

    async def _grant_role(self, interaction: discord.Interaction) -> None:
        role_id = self.bot.config.raffle.registered_role_id
        if not role_id or interaction.guild is None:
            return
        role = interaction.guild.get_role(int(role_id))
        if role is None:
            self.logger.error(f"Registered member role {role_id} not found")
            return
        try:
            await interaction.user.add_roles(role, reason="Member registration")
        except discord.HTTPException as e:
            self.logger.error(f"Could not grant registered role: {e}", extra={'user_id': str(interaction.user.id)})
