"""Main bot file that handles core functionality and cog loading."""
import asyncio
import logging
import platform
import os
from typing import Optional
from aiohttp import web
import discord
from discord.ext import commands, tasks
from config.settings import load_config
from database.database import Database
from sqlalchemy import func, select
from database.models import Purchase, PurchaseStatus, Raffle, RaffleStatus
from services import (
    DrawService,
    PixPaymentCodeGenerator,
    PurchaseApprovalService,
    RaffleLifecycleService,
    RaffleService,
    UserService,
)
from services.discord_notifier import DiscordNotifier
from services.raffle_locks import RaffleLocks
from cogs.views import PurchaseReviewView
from utils.logging import setup_logger

class RaffleBot(commands.Bot):
    """Main bot class with core functionality."""

    def __init__(self, *args, **kwargs):
        # Load configuration first
        self.config = load_config()

        # Set up intents
        intents = discord.Intents.default()
        intents.members = True

        super().__init__(
            command_prefix=self.config.command_prefix,
            intents=intents,
            *args,
            **kwargs
        )

        # Silence noisy library loggers
        for name in ['discord', 'discord.http', 'discord.gateway',
                     'discord.client', 'aiosqlite', 'asyncio', 'aiohttp.access']:
            logging.getLogger(name).setLevel(logging.WARNING)

        # Console and file output for the bot and every package logging through it
        for name in ['services', 'cogs', 'database']:
            setup_logger(name, 'raffle_bot.log', self.config.logging.level)
        self.logger = setup_logger('raffle_bot', 'raffle_bot.log', self.config.logging.level)

        # Initialized in setup_hook
        self.database: Optional[Database] = None
        self.db_session = None
        self.notifier = DiscordNotifier(self)
        self.raffle_locks = RaffleLocks(self.config.database.transaction_max_wait_seconds)

        self.raffle_service: Optional[RaffleService] = None
        self.approval_service: Optional[PurchaseApprovalService] = None
        self.draw_service: Optional[DrawService] = None
        self.lifecycle_service: Optional[RaffleLifecycleService] = None
        self.user_service: Optional[UserService] = None

        # Health check attributes
        self.last_heartbeat = None
        self.web_app = web.Application()
        self.web_app.router.add_get("/health", self.health_check)
        self.web_app.router.add_get("/ping", self.ping)
        self.start_timestamp = None
        self._web_runner = None

        self.cog_load_order = [
            'cogs.registration',
            'cogs.raffles',
            'cogs.management'
        ]
        self.loaded_cogs = []

    async def setup_hook(self):
        """Initialize bot systems."""
        try:
            self.logger.info("Initializing bot systems...")
            self.logger.info(f"Python version: {platform.python_version()}")
            self.logger.info(f"Discord.py version: {discord.__version__}")

            self.start_timestamp = discord.utils.utcnow()

            # Start health check server first
            if self.config.web.enabled:
                try:
                    await self.start_web_server()
                    self.heartbeat.start()
                    self.logger.info("Health check system initialized")
                except Exception as e:
                    self.logger.error(f"Failed to start health check server: {e}")
                    # Continue with bot startup even if health check fails

            # Initialize database
            self.logger.info(f"Connecting to database at {self.config.database.url}")
            self.database = Database(
                self.config.database.url,
                isolation_level=self.config.database.isolation_level
            )
            await self.database.create_all()
            self.db_session = self.database.session

            # Services are shared so approvals on one raffle serialize across cogs
            self.logger.info("Initializing raffle services...")
            self.raffle_service = RaffleService.from_bot(
                self, PixPaymentCodeGenerator.from_config(self.config.payment)
            )
            self.approval_service = PurchaseApprovalService.from_bot(self)
            self.draw_service = DrawService.from_bot(self)
            self.lifecycle_service = RaffleLifecycleService.from_bot(self)
            self.user_service = UserService.from_bot(self)

            # Review buttons keep working on messages posted before a restart
            self.add_view(PurchaseReviewView(self))

            self.logger.info("Loading cogs in order...")
            for cog_name in self.cog_load_order:
                try:
                    await self.load_extension(cog_name)
                    self.loaded_cogs.append(cog_name)
                    self.logger.info(f"Loaded {cog_name}")
                except Exception as e:
                    self.logger.error(f"Failed to load {cog_name}: {e}")
                    raise

            # Sync commands with Discord
            self.logger.info("Syncing application commands...")
            synced_commands = await self.tree.sync()
            for command in synced_commands:
                self.logger.info(f"Synced command: {command.name}")
            self.logger.info(f"Synced {len(synced_commands)} application commands")

        except Exception as e:
            self.logger.error(f"Error during setup: {e}")
            raise

    @tasks.loop(seconds=30)
    async def heartbeat(self):
        """Update heartbeat timestamp."""
        try:
            self.last_heartbeat = discord.utils.utcnow()
        except Exception as e:
            self.logger.error(f"Error in heartbeat task: {e}")

    async def start_web_server(self):
        """Start the web server for health checks."""
        try:
            runner = web.AppRunner(self.web_app)
            await runner.setup()
            site = web.TCPSite(
                runner,
                host=self.config.web.host,
                port=self.config.web.port
            )
            await site.start()
            self.logger.info(
                f"Health check server started on "
                f"http://{self.config.web.host}:{self.config.web.port}/health"
            )
            # Store runner for cleanup
            self._web_runner = runner
        except Exception as e:
            self.logger.error(f"Failed to start web server: {e}")
            raise

    async def health_check(self, request: web.Request) -> web.Response:
        """Report gateway, database and raffle state."""
        uptime = (discord.utils.utcnow() - self.start_timestamp).total_seconds() if self.start_timestamp else 0

        open_raffles = None
        pending_purchases = None
        try:
            async with self.database.session() as session:
                open_raffles = await session.scalar(
                    select(func.count(Raffle.id)).where(Raffle.status.in_(RaffleStatus.OPEN_FOR_SALES))
                )
                pending_purchases = await session.scalar(
                    select(func.count(Purchase.id)).where(Purchase.status == PurchaseStatus.PENDING)
                )
        except Exception as e:
            self.logger.error(f"Database health check failed: {e}")

        db_healthy = open_raffles is not None
        return web.json_response(
            {
                "status": "healthy" if self.is_ready() and db_healthy else "unhealthy",
                "uptime_seconds": uptime,
                "latency_ms": round(self.latency * 1000, 2),
                "last_heartbeat": self.last_heartbeat.isoformat() if self.last_heartbeat else None,
                "database_healthy": db_healthy,
                "open_raffles": open_raffles,
                "pending_purchases": pending_purchases,
            },
            status=200 if db_healthy else 503
        )

    async def ping(self, request: web.Request) -> web.Response:
        """Simple ping endpoint."""
        return web.Response(text="pong")

    async def on_ready(self):
        """Handle the bot's ready event."""
        self.logger.info(f"Logged in as {self.user.name} (ID: {self.user.id})")
        self.logger.info(f"Running on: {platform.system()} {platform.release()} ({os.name})")

        await self.change_presence(
            activity=discord.Activity(
                type=discord.ActivityType.watching,
                name="the raffles"
            )
        )

    async def close(self):
        """Cleanup and close the bot."""
        try:
            self.logger.info("Starting bot shutdown sequence...")

            if self.heartbeat.is_running():
                self.heartbeat.cancel()

            # Stop health check server
            if self._web_runner is not None:
                self.logger.info("Stopping health check server...")
                await self._web_runner.cleanup()
                self.logger.info("Health check server stopped")

            # Unload cogs in reverse order
            self.logger.info("Unloading cogs...")
            for cog in reversed(self.loaded_cogs):
                await self.unload_extension(cog)
                self.logger.info(f"Unloaded cog: {cog}")
            self.loaded_cogs = []

            if self.database is not None:
                await self.database.close()
                self.logger.info("Database connection closed")

            await super().close()

        except Exception as e:
            self.logger.error(f"Error during shutdown: {e}")
            raise

def main():
    """Main entry point for the bot."""
    bot = RaffleBot()

    try:
        asyncio.run(bot.start(bot.config.token))
    except KeyboardInterrupt:
        bot.logger.info("Received keyboard interrupt, shutting down...")
    except Exception as e:
        bot.logger.error(f"Fatal error: {e}")
        raise

if __name__ == "__main__":
    main()
