"""Message builders for raffle status, purchases and draws."""
from typing import Dict, List, Optional, Sequence, Tuple

from database.models import DrawMethod, Raffle, RaffleStatus, ensure_utc
from services.notifier import Message

def format_price(value: float) -> str:
    return f"R$ {value:,.2f}"

def _progress(raffle: Raffle, sold: int) -> str:
    percent = (sold / raffle.total_tickets) * 100 if raffle.total_tickets else 0
    return f"**{sold} / {raffle.total_tickets}** tickets sold ({percent:.1f}%)"

def _method(raffle: Raffle) -> str:
    if raffle.draw_method == DrawMethod.EXTERNAL_LOTTERY:
        return "Drawn by the federal lottery"
    return "Drawn by the bot"

def _top_buyer_prizes(raffle: Raffle) -> Optional[str]:
    prizes = raffle.top_buyer_prize_map or {}
    if not prizes:
        return None
    return "\n".join(f"TOP {position}: {prizes[position]}" for position in sorted(prizes))

def raffle_status_message(raffle: Raffle, sold: int) -> Message:
    """Public message of an active raffle."""
    message = Message(
        title=f"Raffle #{raffle.id}: {raffle.prize_name}",
        description=f"Join the raffle and compete for **{raffle.prize_name}**!",
        color="gold",
        footer="Use the buy button to get your tickets."
    )
    message.add_field("🎟️ Progress", _progress(raffle, sold))
    message.add_field("💰 Ticket Price", format_price(raffle.ticket_price), inline=True)
    message.add_field("Method", _method(raffle), inline=True)
    message.add_field("Status", raffle.status.upper(), inline=True)
    if raffle.draw_method == DrawMethod.EXTERNAL_LOTTERY and raffle.completion_threshold_ratio:
        message.add_field(
            "Draw Target",
            f"Reach {raffle.completion_threshold_ratio * 100:.0f}% of sales.",
            inline=True
        )
    top_prizes = _top_buyer_prizes(raffle)
    if top_prizes:
        message.add_field("🏅 Top Buyer Prizes", top_prizes)
    return message

def raffle_awaiting_draw_message(raffle: Raffle, sold: int) -> Message:
    """Public message once the sales target has been hit."""
    message = Message(
        title=f"Raffle #{raffle.id}: {raffle.prize_name}",
        description="**TARGET REACHED!** The draw has been scheduled!",
        color="blue",
        footer="Good luck! Sales stay open until the draw."
    )
    if raffle.draw_date:
        message.add_field("📅 Draw Date (Federal Lottery)", f"**{format_draw_date(raffle)}**")
    message.add_field("🎟️ Progress", _progress(raffle, sold))
    message.add_field("💰 Ticket Price", format_price(raffle.ticket_price), inline=True)
    message.add_field("Status", "AWAITING DRAW", inline=True)
    return message

def raffle_winner_message(
    raffle: Raffle,
    winner_id: str,
    winner_name: str,
    winning_number: str,
    top_buyers: Sequence[Tuple[str, int]] = ()
) -> Message:
    message = Message(
        title=f"🎉 Draw Complete! Raffle #{raffle.id}: {raffle.prize_name}",
        description=f"We have a winner for **{raffle.prize_name}**!",
        color="green",
        footer="Thanks to everyone who took part!"
    )
    message.add_field("🏆 Winner", f"**{winner_name}** (<@{winner_id}>)")
    message.add_field("Winning Number", f"```{winning_number}```", inline=True)
    message.add_field("Status", "FINALIZED", inline=True)
    _add_top_buyers(message, raffle, top_buyers)
    return message

def raffle_no_winner_message(
    raffle: Raffle,
    winning_number: str,
    top_buyers: Sequence[Tuple[str, int]] = ()
) -> Message:
    message = Message(
        title=f"Draw Complete! Raffle #{raffle.id}: {raffle.prize_name}",
        description=f"The drawn number `{winning_number}` was not sold. The organisers will announce what happens next.",
        color="orange"
    )
    message.add_field("Winning Number", f"```{winning_number}```", inline=True)
    message.add_field("Status", "FINALIZED", inline=True)
    _add_top_buyers(message, raffle, top_buyers)
    return message

def _add_top_buyers(message: Message, raffle: Raffle, top_buyers: Sequence[Tuple[str, int]]) -> None:
    prizes: Dict[str, str] = raffle.top_buyer_prize_map or {}
    if not prizes or not top_buyers:
        return
    lines = []
    for position, (buyer_id, count) in enumerate(top_buyers, start=1):
        prize = prizes.get(str(position))
        if prize:
            lines.append(f"TOP {position}: <@{buyer_id}> ({count} tickets) - {prize}")
    if lines:
        message.add_field("🏅 Top Buyers", "\n".join(lines))

def raffle_cancelled_message(raffle: Raffle, reason: str) -> Message:
    message = Message(
        title=f"❌ Raffle Cancelled - #{raffle.id}: {raffle.prize_name}",
        description="This raffle was cancelled and is no longer active.",
        color="red",
        footer="New purchases are blocked."
    )
    message.add_field("Status", "CANCELLED", inline=True)
    message.add_field("Reason", reason)
    return message

def participant_cancelled_message(raffle: Raffle, reason: str) -> Message:
    message = Message(
        title=f"❌ Raffle #{raffle.id} Cancelled",
        description=(
            f"The raffle **{raffle.prize_name}** was cancelled.\n"
            "Please contact an admin to request a refund for your tickets."
        ),
        color="red"
    )
    message.add_field("Reason", reason)
    return message

def draw_scheduled_message(raffle: Raffle) -> Message:
    message = Message(
        title=f"🗓️ Draw Scheduled! (Raffle #{raffle.id})",
        description=f"The raffle **{raffle.prize_name}** hit its sales target!",
        color="blue",
        footer="Sales continue. Good luck!"
    )
    message.add_field(
        "Draw Date",
        f"The draw happens with the federal lottery on **{format_draw_date(raffle)}**."
    )
    return message

def format_draw_date(raffle: Raffle) -> str:
    if not raffle.draw_date:
        return "to be defined"
    return ensure_utc(raffle.draw_date).strftime("%d/%m/%Y")

def purchase_reserved_message(raffle: Raffle, purchase_id: int, total_price: float, payment_code: str) -> Message:
    message = Message(
        title="✅ Tickets Reserved!",
        description=(
            f"Your reservation for the raffle **{raffle.prize_name}** was registered.\n"
            f"**Purchase ID:** `{purchase_id}`\n\nTo confirm it, pay the amount below:"
        ),
        color="blue",
        footer="After payment an admin will approve your purchase."
    )
    message.add_field("Total", f"**{format_price(total_price)}**")
    message.add_field("PIX copy and paste", payment_code)
    return message

def purchase_pending_log_message(
    raffle: Raffle,
    purchase_id: int,
    buyer_id: str,
    buyer_name: str,
    quantity: int,
    total_price: float
) -> Message:
    message = Message(
        title="🔔 New Pending Purchase",
        description=f"User: <@{buyer_id}> ({buyer_name})\nRaffle: #{raffle.id} ({raffle.prize_name})",
        color="orange"
    )
    message.add_field("Purchase ID", f"`{purchase_id}`", inline=True)
    message.add_field("Quantity", str(quantity), inline=True)
    message.add_field("Amount", format_price(total_price), inline=True)
    return message

def purchase_approved_message(raffle_id: int, quantity: int, numbers: List[str], prizes_won) -> Message:
    message = Message(
        title=f"✅ Purchase Approved (Raffle #{raffle_id})",
        description=f"Your purchase of **{quantity} ticket(s)** was approved!",
        color="green"
    )
    message.add_field("Your Lucky Numbers", f"```{', '.join(numbers)}```")
    if prizes_won:
        message.add_field(
            "🎉 WINNING TICKET! 🎉",
            "\n".join(f"Your ticket `{p.ticket_number}` won: **{p.description}**!" for p in prizes_won)
        )
        message.color = "gold"
    return message

def referral_bonus_message(raffle_id: int, buyer_id: str, ticket_number: str) -> Message:
    return Message(
        title="🎟️ You earned a Bonus Ticket!",
        description=(
            f"<@{buyer_id}>, whom you referred, made a qualifying purchase in Raffle #{raffle_id}.\n\n"
            f"You earned 1 free ticket: `{ticket_number}`"
        ),
        color="green"
    )

def purchase_rejected_message(raffle_id: int, purchase_id: int, quantity: int, reason: str) -> Message:
    message = Message(
        title=f"❌ Purchase Rejected (Raffle #{raffle_id})",
        description=f"Your purchase (ID: `{purchase_id}`) of **{quantity} ticket(s)** was rejected.",
        color="red"
    )
    message.add_field("Reason", reason)
    return message

def reservation_approved_notice(purchase_id: int, numbers: List[str]) -> Message:
    return Message(
        title=f"✅ Reservation {purchase_id} APPROVED",
        description=f"Tickets: `{', '.join(numbers)}`",
        color="green"
    )

def reservation_rejected_notice(purchase_id: int, reason: str) -> Message:
    return Message(
        title=f"❌ Reservation {purchase_id} REJECTED",
        description=f"*Reason: {reason}*\n*(This message can be dismissed.)*",
        color="red"
    )

def status_message_for(raffle: Raffle, sold: int) -> Message:
    """Public message matching the raffle's current open state."""
    if raffle.status == RaffleStatus.AWAITING_DRAW:
        return raffle_awaiting_draw_message(raffle, sold)
    return raffle_status_message(raffle, sold)
