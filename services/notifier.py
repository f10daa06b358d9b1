"""Notifier interface used after commits to message users and channels."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

@dataclass
class Message:
    """Transport-agnostic rich message."""
    title: str
    description: str = ""
    color: str = "blue"
    fields: List[Tuple[str, str, bool]] = field(default_factory=list)
    footer: Optional[str] = None

    def add_field(self, name: str, value: str, inline: bool = False) -> "Message":
        self.fields.append((name, value, inline))
        return self

    def as_text(self) -> str:
        """Plain-text rendering, used for logs and text-only transports."""
        lines = [self.title]
        if self.description:
            lines.append(self.description)
        lines.extend(f"{name}: {value}" for name, value, _ in self.fields)
        if self.footer:
            lines.append(self.footer)
        return "\n".join(lines)

class Notifier(ABC):
    """Abstract interface for the chat platform."""

    @abstractmethod
    async def notify_user(self, user_id: str, message: Message) -> None:
        """Send a direct message to a user."""
        pass

    @abstractmethod
    async def notify_channel(self, channel_id: str, message: Message) -> Optional[str]:
        """Post a message to a channel, returning the new message id."""
        pass

    @abstractmethod
    async def edit_message(self, channel_id: str, message_id: str, message: Message) -> bool:
        """Replace an existing message; False if it could not be edited."""
        pass

class NotificationService:
    """Best-effort delivery on top of a Notifier.

    Every method logs and absorbs failures: a committed state change is never
    reported as failed because a message could not be delivered.
    """

    def __init__(self, notifier: Optional[Notifier]):
        self.notifier = notifier
        self.logger = logging.getLogger(__name__)

    async def send_to_user(self, user_id: str, message: Message) -> bool:
        if self.notifier is None:
            return False
        try:
            await self.notifier.notify_user(user_id, message)
            return True
        except Exception as e:
            self.logger.error(
                f"Error sending DM '{message.title}': {e}",
                extra={'user_id': user_id}
            )
            return False

    async def send_to_users(self, user_ids: Iterable[str], message: Message) -> int:
        """DM every user; returns how many deliveries succeeded."""
        delivered = 0
        for user_id in user_ids:
            if await self.send_to_user(user_id, message):
                delivered += 1
        return delivered

    async def send_to_channel(self, channel_id: Optional[str], message: Message) -> Optional[str]:
        if self.notifier is None or not channel_id:
            return None
        try:
            return await self.notifier.notify_channel(channel_id, message)
        except Exception as e:
            self.logger.error(f"Error posting '{message.title}' to channel {channel_id}: {e}")
            return None

    async def edit(self, channel_id: Optional[str], message_id: Optional[str], message: Message) -> bool:
        if self.notifier is None or not channel_id or not message_id:
            return False
        try:
            return await self.notifier.edit_message(channel_id, message_id, message)
        except Exception as e:
            self.logger.warning(f"Error editing message {message_id} in channel {channel_id}: {e}")
            return False

    async def edit_or_send(self, channel_id: Optional[str], message_id: Optional[str], message: Message) -> bool:
        """Edit a message in place, posting a new one if the original is gone."""
        if not channel_id:
            return False
        if await self.edit(channel_id, message_id, message):
            return True
        self.logger.info(f"Could not edit message {message_id}, sending a new one to channel {channel_id}")
        return await self.send_to_channel(channel_id, message) is not None
