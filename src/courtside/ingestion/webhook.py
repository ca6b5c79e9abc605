"""
Webhook server for inbound game updates.

Provides a Flask application that accepts score/odds payloads from the
scraper workflow and exposes read-only views of the engine state.

Endpoints:
    POST /webhook/game-update   - One payload object or a list of them
    GET  /api/games             - Live cache, sorted by status then start
    GET  /api/signals/active    - Open signals
    POST /api/signals/close     - Manually close a signal
    GET  /health                - Engine health snapshot

SECURITY:
- Optional API key authentication via WEBHOOK_API_KEY env var
- Bind to localhost by default

Critical Gotchas:
    - Flask runs in its own thread. Every engine call, reads included, is
      dispatched to the main loop with run_coroutine_threadsafe(). The cache,
      lifecycle and debounce maps are only touched from that loop, so a read
      never iterates a dict while an update is resizing it.
"""
from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import os
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Optional

from flask import Flask, Response, abort, current_app, jsonify, request

from .models import PayloadError

if TYPE_CHECKING:
    from courtside.core.engine import SignalEngine

logger = logging.getLogger(__name__)


def require_api_key(f: Callable) -> Callable:
    """
    Decorator to require API key authentication.

    If the server has an API key, requests must include either:
    - X-API-Key header
    - api_key query parameter

    If no key is configured, authentication is disabled.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        api_key = current_app.webhook_server.api_key  # type: ignore[attr-defined]
        if not api_key:
            return f(*args, **kwargs)

        provided_key = request.headers.get("X-API-Key") or request.args.get("api_key")

        if not provided_key or provided_key != api_key:
            logger.warning(f"Unauthorized webhook access attempt from {request.remote_addr}")
            abort(401)

        return f(*args, **kwargs)

    return decorated


class WebhookServer:
    """
    Webhook intake and read API.

    Usage:
        server = WebhookServer(engine, event_loop=asyncio.get_running_loop())
        app = server.create_app()
        make_server("0.0.0.0", 8000, app).serve_forever()
    """

    def __init__(
        self,
        engine: "SignalEngine",
        event_loop: Optional[asyncio.AbstractEventLoop] = None,
        api_key: Optional[str] = None,
        request_timeout: float = 10.0,
    ) -> None:
        """
        Initialize the webhook server.

        Args:
            engine: SignalEngine receiving the updates
            event_loop: Main asyncio event loop for dispatching engine calls
            api_key: Shared secret; defaults to WEBHOOK_API_KEY
            request_timeout: Seconds to wait for the engine per request
        """
        self._engine = engine
        self._event_loop = event_loop
        self.api_key = api_key if api_key is not None else os.environ.get("WEBHOOK_API_KEY")
        self._request_timeout = request_timeout

    def _run_async(self, coro, timeout: Optional[float] = None) -> Any:
        """
        Run an engine coroutine from the Flask thread.

        Raises:
            RuntimeError: If the event loop is not running (shutdown in progress)
            TimeoutError: If the operation times out
        """
        timeout = timeout or self._request_timeout

        if self._event_loop is None:
            # Fallback for tests without a main loop: deliveries are drained
            # before the temporary loop closes.
            loop = asyncio.new_event_loop()
            try:
                return loop.run_until_complete(self._run_and_drain(coro))
            finally:
                loop.close()

        if self._event_loop.is_closed() or not self._event_loop.is_running():
            raise RuntimeError("Event loop is not running (shutdown in progress)")

        future = asyncio.run_coroutine_threadsafe(coro, self._event_loop)
        try:
            return future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            logger.error(f"Engine call timed out after {timeout}s")
            raise TimeoutError(f"Operation timed out after {timeout}s")

    async def _run_and_drain(self, coro) -> Any:
        result = await coro
        await self._engine.drain()
        return result

    async def _process_many(self, payloads: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Process a batch; one bad item does not reject the others."""
        results = []
        for payload in payloads:
            try:
                outcome = await self._engine.process_payload(payload)
                results.append(outcome.to_dict())
            except PayloadError as e:
                logger.warning(f"Rejected payload: {e}")
                results.append({"accepted": False, "reason": "invalid", "error": str(e)})
        return results

    def create_app(self, testing: bool = False) -> Flask:
        """
        Create the Flask application.

        Args:
            testing: Whether to enable testing mode

        Returns:
            Flask application instance
        """
        app = Flask(__name__)
        app.config["TESTING"] = testing

        # Store reference for routes
        app.webhook_server = self  # type: ignore[attr-defined]

        self._register_routes(app)

        return app

    def _register_routes(self, app: Flask) -> None:
        """Register all HTTP routes."""
        server = self

        @app.route("/webhook/game-update", methods=["POST"])
        @require_api_key
        def game_update() -> Response:
            data = request.get_json(silent=True)
            if isinstance(data, dict):
                try:
                    outcome = server._run_async(server._engine.process_payload(data))
                except PayloadError as e:
                    logger.warning(f"Rejected payload: {e}")
                    return jsonify({"error": str(e)}), 400
                except Exception as e:
                    logger.error(f"Webhook processing failed: {e}", exc_info=True)
                    return jsonify({"error": str(e)}), 500
                return jsonify(outcome.to_dict())

            if isinstance(data, list) and all(isinstance(item, dict) for item in data):
                try:
                    results = server._run_async(server._process_many(data))
                except Exception as e:
                    logger.error(f"Webhook batch failed: {e}", exc_info=True)
                    return jsonify({"error": str(e)}), 500
                return jsonify({"results": results})

            return jsonify({"error": "Body must be a JSON object or a list of objects"}), 400

        @app.route("/api/games")
        @require_api_key
        def games() -> Response:
            try:
                snapshot = server._run_async(server._engine.list_games())
            except Exception as e:
                logger.error(f"Failed to list games: {e}")
                return jsonify({"games": [], "error": str(e)}), 500
            return jsonify({"games": snapshot, "count": len(snapshot)})

        @app.route("/api/signals/active")
        @require_api_key
        def active_signals() -> Response:
            game_id = request.args.get("game_id")
            try:
                signals = server._run_async(server._engine.list_open_signals(game_id))
            except Exception as e:
                logger.error(f"Failed to list signals: {e}")
                return jsonify({"signals": [], "error": str(e)}), 500
            return jsonify({"signals": signals, "count": len(signals)})

        @app.route("/api/signals/close", methods=["POST"])
        @require_api_key
        def close_signal() -> Response:
            data = request.get_json(silent=True) or {}
            strategy_id = data.get("strategy_id")
            game_id = data.get("game_id")
            if not strategy_id or not game_id:
                return jsonify({"error": "strategy_id and game_id are required"}), 400

            try:
                event = server._run_async(
                    server._engine.close_signal(
                        str(strategy_id), str(game_id), data.get("reason", "")
                    )
                )
            except Exception as e:
                logger.error(f"Close signal failed: {e}", exc_info=True)
                return jsonify({"error": str(e)}), 500

            if event is None:
                return jsonify({"error": "No open signal for that strategy and game"}), 404
            return jsonify({"closed": event.to_dict()})

        @app.route("/health")
        def health() -> Response:
            try:
                snapshot = server._run_async(server._engine.health_snapshot())
            except Exception as e:
                logger.error(f"Health check failed: {e}")
                return jsonify({"status": "unavailable", "error": str(e)}), 503
            return jsonify({"status": "ok", **snapshot})
