"""
Courtside Signal Engine - Main Entry Point

Runs the webhook intake, trigger evaluation, signal lifecycle and the
persistence/notification sinks in one process.

Usage:
    python -m courtside.main [--dry-run] [--port PORT] [--env-file PATH]

Environment Variables:
    RECORD_STORE_API_KEY      Record store API token (required)
    RECORD_STORE_BASE_ID      Record store base id (required)
    RECORD_STORE_URL          API root (default: https://api.airtable.com/v0)
    WEBHOOK_HOST              Bind address for the webhook server (default: 0.0.0.0)
    WEBHOOK_PORT              Webhook server port (default: 8000)
    WEBHOOK_API_KEY           Shared secret for the webhook/API (optional)
    STALE_AFTER_SECONDS       Evict live games silent this long (default: 20)
    DEBOUNCE_WINDOW_SECONDS   Debounce window per game (default: 5)
    DEBOUNCE_MAX_PER_WINDOW   Updates admitted per window (default: 2)
    EXPIRY_CUTOFF_SECONDS     Q4 clock cutoff for watching signals (default: 140)
    STRATEGY_REFRESH_SECONDS  Strategy reload interval (default: 60)
    DISCORD_WEBHOOK_URL       Default Discord webhook for alerts
    TWILIO_ACCOUNT_SID        Twilio account for SMS alerts
    TWILIO_AUTH_TOKEN         Twilio auth token
    TWILIO_FROM_NUMBER        Sending number
    SMS_RECIPIENTS            Comma-separated recipient numbers
    LOG_LEVEL                 Logging level (DEBUG/INFO/WARNING/ERROR)
    DRY_RUN                   "true" logs alerts instead of sending them (default: false)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from werkzeug.serving import make_server

from courtside.core.background_tasks import BackgroundTaskConfig, BackgroundTasksManager
from courtside.core.engine import EngineConfig, SignalEngine
from courtside.ingestion.webhook import WebhookServer
from courtside.monitoring.alerting import AlertConfig, AlertManager
from courtside.storage.record_store import RecordStoreClient, RecordStoreConfig
from courtside.storage.signal_repo import SignalRepository
from courtside.storage.strategy_repo import StrategyRepository
from courtside.storage.team_stats_repo import TeamStatsRepository

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() == "true"


@dataclass
class BotConfig:
    """Complete process configuration."""

    # Record store
    record_store_api_key: str = ""
    record_store_base_id: str = ""
    record_store_url: str = "https://api.airtable.com/v0"

    # Webhook server
    webhook_host: str = "0.0.0.0"
    webhook_port: int = 8000
    webhook_api_key: Optional[str] = None

    # Engine
    stale_after_seconds: float = 20.0
    debounce_window_seconds: float = 5.0
    debounce_max_per_window: int = 2
    expiry_cutoff_seconds: int = 140
    strategy_refresh_seconds: float = 60.0

    # Alerts
    discord_webhook_url: Optional[str] = None
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_from_number: Optional[str] = None
    sms_recipients: tuple[str, ...] = ()
    dry_run: bool = False

    @classmethod
    def from_env(cls) -> "BotConfig":
        """Load configuration from environment variables."""
        recipients = os.environ.get("SMS_RECIPIENTS", "")
        return cls(
            record_store_api_key=os.environ.get("RECORD_STORE_API_KEY", ""),
            record_store_base_id=os.environ.get("RECORD_STORE_BASE_ID", ""),
            record_store_url=os.environ.get("RECORD_STORE_URL", "https://api.airtable.com/v0"),
            webhook_host=os.environ.get("WEBHOOK_HOST", "0.0.0.0"),
            webhook_port=int(os.environ.get("WEBHOOK_PORT", "8000")),
            webhook_api_key=os.environ.get("WEBHOOK_API_KEY") or None,
            stale_after_seconds=float(os.environ.get("STALE_AFTER_SECONDS", "20")),
            debounce_window_seconds=float(os.environ.get("DEBOUNCE_WINDOW_SECONDS", "5")),
            debounce_max_per_window=int(os.environ.get("DEBOUNCE_MAX_PER_WINDOW", "2")),
            expiry_cutoff_seconds=int(os.environ.get("EXPIRY_CUTOFF_SECONDS", "140")),
            strategy_refresh_seconds=float(os.environ.get("STRATEGY_REFRESH_SECONDS", "60")),
            discord_webhook_url=os.environ.get("DISCORD_WEBHOOK_URL") or None,
            twilio_account_sid=os.environ.get("TWILIO_ACCOUNT_SID") or None,
            twilio_auth_token=os.environ.get("TWILIO_AUTH_TOKEN") or None,
            twilio_from_number=os.environ.get("TWILIO_FROM_NUMBER") or None,
            sms_recipients=tuple(r.strip() for r in recipients.split(",") if r.strip()),
            dry_run=_env_bool("DRY_RUN", "false"),
        )

    def record_store_config(self) -> RecordStoreConfig:
        return RecordStoreConfig(
            api_key=self.record_store_api_key,
            base_id=self.record_store_base_id,
            base_url=self.record_store_url,
        )

    def engine_config(self) -> EngineConfig:
        return EngineConfig(
            stale_after_seconds=self.stale_after_seconds,
            debounce_window_seconds=self.debounce_window_seconds,
            debounce_max_per_window=self.debounce_max_per_window,
            expiry_cutoff_seconds=self.expiry_cutoff_seconds,
        )

    def alert_config(self) -> AlertConfig:
        return AlertConfig(
            discord_webhook_url=self.discord_webhook_url,
            twilio_account_sid=self.twilio_account_sid,
            twilio_auth_token=self.twilio_auth_token,
            twilio_from_number=self.twilio_from_number,
            sms_recipients=self.sms_recipients,
            dry_run=self.dry_run,
        )


class CourtsideBot:
    """
    Process orchestrator.

    Manages the lifecycle of all components:
    - Record store client and repositories
    - Signal engine with persistence and alert sinks
    - Background tasks (eviction, refresh, cleanup)
    - Webhook server (Flask in a thread)
    """

    def __init__(self, config: BotConfig):
        self.config = config
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized on start)
        self._store: Optional[RecordStoreClient] = None
        self._strategy_repo: Optional[StrategyRepository] = None
        self._signal_repo: Optional[SignalRepository] = None
        self._team_stats_repo: Optional[TeamStatsRepository] = None
        self._alert_manager: Optional[AlertManager] = None
        self._engine: Optional[SignalEngine] = None
        self._background_tasks: Optional[BackgroundTasksManager] = None
        self._webhook: Optional[WebhookServer] = None
        self._webhook_thread: Optional[threading.Thread] = None
        self._http_server = None

    @property
    def engine(self) -> Optional[SignalEngine]:
        return self._engine

    async def start(self) -> None:
        """Start every component and run until shutdown is requested."""
        logger.info("=" * 60)
        logger.info("COURTSIDE SIGNAL ENGINE")
        logger.info("=" * 60)
        logger.info(f"Alerts: {'DRY RUN' if self.config.dry_run else 'LIVE'}")
        logger.info("=" * 60)

        self._running = True
        self._setup_signal_handlers()

        try:
            self._init_storage()
            self._init_engine()
            await self._restore_signals()
            await self._init_background_tasks()
            self._start_webhook()

            await self._run_loop()

        except Exception as e:
            logger.exception(f"Fatal error: {e}")
            raise
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the bot gracefully."""
        if self._store is None and self._engine is None:
            return

        logger.info("Shutting down...")
        self._running = False
        self._shutdown_event.set()

        # Stop intake first so no new updates arrive
        try:
            self._stop_webhook()
        except Exception as e:
            logger.warning(f"Error stopping webhook server: {e}")

        if self._background_tasks:
            try:
                await self._background_tasks.stop()
            except Exception as e:
                logger.warning(f"Error stopping background tasks: {e}")

        if self._engine:
            try:
                await self._engine.drain()
            except Exception as e:
                logger.warning(f"Error draining deliveries: {e}")

        if self._store:
            try:
                await self._store.close()
            except Exception as e:
                logger.warning(f"Error closing record store: {e}")

        self._store = None
        self._engine = None
        logger.info("Shutdown complete")

    def _init_storage(self) -> None:
        """Create the record store client and repositories."""
        self._store = RecordStoreClient(self.config.record_store_config())
        self._strategy_repo = StrategyRepository(
            self._store, cache_ttl_seconds=self.config.strategy_refresh_seconds
        )
        self._signal_repo = SignalRepository(self._store)
        self._team_stats_repo = TeamStatsRepository(self._store)
        logger.info("Storage: Initialized")

    def _init_engine(self) -> None:
        """Create the engine with its sinks."""
        self._alert_manager = AlertManager(self.config.alert_config())
        self._engine = SignalEngine(
            self.config.engine_config(),
            sinks=[self._signal_repo, self._alert_manager],
        )
        logger.info("Engine: Initialized")

    async def _restore_signals(self) -> None:
        """Reload open signals so tracking resumes after a restart."""
        try:
            signals = await self._signal_repo.list_open()
        except Exception as e:
            logger.error(f"Could not load open signals: {e}")
            return
        restored = self._engine.restore(signals)
        logger.info(f"Restore: {restored} open signal(s)")

    async def _init_background_tasks(self) -> None:
        """Load reference data once, then start the periodic tasks."""
        self._background_tasks = BackgroundTasksManager(
            engine=self._engine,
            config=BackgroundTaskConfig(
                strategy_refresh_interval_seconds=self.config.strategy_refresh_seconds,
            ),
            strategy_loader=self._strategy_repo.get_strategies,
            team_stats_loader=self._team_stats_repo.get_all,
        )

        # Strategies are required to do anything useful; fail fast
        await self._background_tasks.refresh_strategies()
        try:
            await self._background_tasks.refresh_team_stats()
        except Exception as e:
            logger.warning(f"Team stats unavailable, continuing without: {e}")

        await self._background_tasks.start()

    def _start_webhook(self) -> None:
        """Start the Flask webhook server in a background thread.

        Flask runs in a separate thread to avoid blocking the asyncio event loop.
        """
        self._webhook = WebhookServer(
            self._engine,
            event_loop=asyncio.get_running_loop(),
            api_key=self.config.webhook_api_key,
        )

        def run_flask():
            try:
                if not self._running:
                    logger.info("Webhook: Skipping start (shutdown in progress)")
                    return

                app = self._webhook.create_app()
                self._http_server = make_server(
                    host=self.config.webhook_host,
                    port=self.config.webhook_port,
                    app=app,
                    threaded=True,
                )

                if not self._running:
                    self._http_server.server_close()
                    return

                logger.info(
                    f"Webhook: http://{self.config.webhook_host}:{self.config.webhook_port}"
                )
                self._http_server.serve_forever()

            except Exception as e:
                logger.error(f"Webhook server failed to start: {e}")

        self._webhook_thread = threading.Thread(target=run_flask, daemon=True)
        self._webhook_thread.start()

    def _stop_webhook(self) -> None:
        """Stop the webhook server gracefully."""
        if self._http_server:
            logger.info("Webhook: Shutting down...")
            self._http_server.shutdown()
            self._http_server.server_close()
            self._http_server = None

        if self._webhook_thread:
            if self._webhook_thread.is_alive():
                self._webhook_thread.join(timeout=5)
                if self._webhook_thread.is_alive():
                    logger.warning("Webhook thread did not stop cleanly")
            self._webhook_thread = None

    async def _run_loop(self) -> None:
        """Main run loop: wait for shutdown, logging stats periodically."""
        stats_interval = 60

        while self._running:
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=stats_interval)
                break  # Shutdown requested
            except asyncio.TimeoutError:
                pass

            stats = self._engine.stats
            logger.info(
                f"Stats: updates={stats.updates_processed}/{stats.updates_received}, "
                f"debounced={stats.updates_debounced}, fires={stats.triggers_fired}, "
                f"events={stats.events_emitted}, sink_errors={stats.sink_errors}, "
                f"live_games={len(self._engine.cache)}"
            )

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def handle_signal(sig):
            logger.info(f"Received signal {sig}")
            self._running = False
            self._shutdown_event.set()

        try:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass


def load_env_file(path: str = ".env") -> None:
    """Load environment variables from .env file if it exists."""
    env_path = Path(path)
    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, _, value = line.partition("=")
                    value = value.strip().strip('"').strip("'")
                    os.environ.setdefault(key.strip(), value)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Courtside Signal Engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log alerts instead of sending them",
    )
    parser.add_argument(
        "--port",
        type=int,
        help="Override WEBHOOK_PORT",
    )
    parser.add_argument(
        "--env-file",
        type=str,
        default=".env",
        help="Path to a .env file (default: .env)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level",
    )
    return parser.parse_args(argv)


async def main_async(args: argparse.Namespace) -> int:
    """Async main function."""
    config = BotConfig.from_env()

    if args.dry_run:
        config.dry_run = True
    if args.port:
        config.webhook_port = args.port

    if not config.record_store_config().is_configured:
        logger.error("RECORD_STORE_API_KEY and RECORD_STORE_BASE_ID are required")
        return 1

    bot = CourtsideBot(config)

    try:
        await bot.start()
        return 0
    except KeyboardInterrupt:
        logger.info("Shutdown requested")
        return 0
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1


def main() -> int:
    """Main entry point."""
    args = parse_args()

    load_env_file(args.env_file)

    if args.log_level:
        logging.getLogger().setLevel(getattr(logging, args.log_level))

    try:
        return asyncio.run(main_async(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
