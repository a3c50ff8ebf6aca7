"""Relay process -- component wiring, health server and entry point."""

from __future__ import annotations

import asyncio
import logging
import signal

from aiohttp import web
from aiohttp.abc import AbstractAccessLogger

from .. import __version__
from ..agent.assistant import AssistantClient
from ..config.settings import Settings, cfg
from ..errors import AuthError
from ..messaging.dispatcher import Dispatcher
from ..messaging.telegram import TelegramGateway
from ..state.thread_store import ThreadStore
from ..state.typing_throttle import TypingThrottle
from ..util.chat_locks import ChatLocks

logger = logging.getLogger(__name__)

_QUIET_PATHS = frozenset({"/health"})


# ---------------------------------------------------------------------------
# Access logger
# ---------------------------------------------------------------------------


class QuietAccessLogger(AbstractAccessLogger):
    """Demotes health-probe log entries to DEBUG."""

    def log(self, request: web.BaseRequest, response: web.StreamResponse, time: float) -> None:
        level = logging.DEBUG if request.path in _QUIET_PATHS else logging.INFO
        self.logger.log(
            level,
            "%s %s %s %s %.3fs",
            request.remote,
            request.method,
            request.path,
            response.status,
            time,
        )


# ---------------------------------------------------------------------------
# Health route
# ---------------------------------------------------------------------------


class HealthRoutes:
    """``GET /health`` -- liveness plus a little relay state."""

    def __init__(self, gateway: TelegramGateway, threads: ThreadStore) -> None:
        self._gateway = gateway
        self._threads = threads

    def register(self, router: web.UrlDispatcher) -> None:
        router.add_get("/health", self._health)

    async def _health(self, _req: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "version": __version__,
            "threads": self._threads.count,
            "polling": self._gateway.polling,
        })


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


class Relay:
    """The wired set of components for one process."""

    def __init__(
        self,
        gateway: TelegramGateway,
        assistant: AssistantClient,
        threads: ThreadStore,
        dispatcher: Dispatcher,
    ) -> None:
        self.gateway = gateway
        self.assistant = assistant
        self.threads = threads
        self.dispatcher = dispatcher

    async def run(self) -> None:
        try:
            await self.gateway.run()
        finally:
            await self.close()

    async def close(self) -> None:
        await self.gateway.stop()
        await self.gateway.wait_idle()
        await self.gateway.close()
        await self.assistant.close()


def build_relay(settings: Settings | None = None) -> Relay:
    settings = settings or cfg
    assistant = AssistantClient(
        settings.openai_api_key,
        settings.openai_assistant_id,
        base_url=settings.openai_base_url or None,
        response_timeout=settings.response_timeout,
    )
    threads = ThreadStore(assistant)
    gateway = TelegramGateway(
        settings.telegram_token,
        api_base=settings.telegram_api_base,
        poll_timeout=settings.telegram_poll_timeout,
        retry_delay=settings.telegram_retry_delay,
    )
    dispatcher = Dispatcher(
        assistant,
        threads,
        gateway,
        throttle=TypingThrottle(settings.typing_interval_ms),
        locks=ChatLocks(),
    )
    gateway.on_message(dispatcher.handle)
    logger.info(
        "[build_relay] assistant=%s telegram=%s health_port=%s",
        settings.openai_assistant_id, settings.telegram_api_base, settings.health_port or "off",
    )
    return Relay(gateway, assistant, threads, dispatcher)


def create_app(relay: Relay) -> web.Application:
    app = web.Application()
    HealthRoutes(relay.gateway, relay.threads).register(app.router)
    return app


async def serve(relay: Relay, health_port: int = 0) -> None:
    """Poll Telegram until stopped, optionally serving ``/health`` alongside."""
    runner: web.AppRunner | None = None
    if health_port:
        runner = web.AppRunner(create_app(relay), access_log_class=QuietAccessLogger)
        await runner.setup()
        await web.TCPSite(runner, "0.0.0.0", health_port).start()
        logger.info("Health endpoint on http://0.0.0.0:%d/health", health_port)

    stop_tasks: set[asyncio.Task[None]] = set()

    def _on_sigterm() -> None:
        logger.info("SIGTERM received, stopping")
        task = asyncio.create_task(relay.gateway.stop())
        stop_tasks.add(task)
        task.add_done_callback(stop_tasks.discard)

    loop = asyncio.get_running_loop()
    handles_sigterm = True
    try:
        loop.add_signal_handler(signal.SIGTERM, _on_sigterm)
    except NotImplementedError:
        handles_sigterm = False
        logger.debug("SIGTERM handler not supported on this platform")

    try:
        await relay.run()
    finally:
        if handles_sigterm:
            loop.remove_signal_handler(signal.SIGTERM)
        if runner is not None:
            await runner.cleanup()


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s  %(name)s  %(levelname)s  %(message)s",
    )
    missing = cfg.missing()
    if missing:
        logger.error("Missing required settings: %s", ", ".join(missing))
        raise SystemExit(2)

    logger.info("Starting threadrelay %s ...", __version__)
    relay = build_relay(cfg)
    try:
        asyncio.run(serve(relay, health_port=cfg.health_port))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    except AuthError as exc:
        logger.error("Credentials rejected: %s", exc)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
