"""
FocusBoard Notifier — HTTP surface.

Endpoints used by the dashboard (settings, Telegram connect, push
subscription, client poll activation) and by the external scheduler
(the secret-protected sweep trigger).

Signed-in user identity comes from the upstream session layer as the
`X-User-Id` header; authentication itself happens there.
"""

from __future__ import annotations

import hmac
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from src.api.schemas import (
    PushSubscriptionBody,
    PushTestRequest,
    SettingsUpdate,
    TelegramSendRequest,
    settings_to_json,
)
from src.config import ConfigError, settings
from src.core.event_keys import Channel
from src.data.models import PushSubscription
from src.ports.notification_port import TransportError
from src.services import Services, build_services

logger = logging.getLogger(__name__)


# =========================================================
# DEPENDENCIES
# =========================================================


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user_id


def _require_cron_secret() -> str:
    if not settings.CRON_SECRET:
        raise ConfigError("CRON_SECRET is not configured")
    return settings.CRON_SECRET


def verify_trigger(authorization: Optional[str] = Header(None)) -> None:
    """Reject the sweep trigger before any evaluation unless the secret matches."""
    try:
        expected = _require_cron_secret()
    except ConfigError as exc:
        logger.error("Sweep trigger rejected: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc))

    header = authorization or ""
    received = header[len("Bearer "):] if header.startswith("Bearer ") else ""
    if not hmac.compare_digest(received.encode(), expected.encode()):
        logger.warning("Sweep trigger rejected: bad secret")
        raise HTTPException(status_code=401, detail="Unauthorized")


# =========================================================
# APP
# =========================================================


def create_app(services: Services | None = None) -> FastAPI:
    """Build the FastAPI app. Services are created at startup if not given."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        bot = None
        if getattr(app.state, "services", None) is None:
            from telegram import Bot

            bot = Bot(settings.TELEGRAM_BOT_TOKEN)
            await bot.initialize()
            app.state.services = build_services(bot=bot)
        try:
            yield
        finally:
            # No poll loop may outlive the process
            await app.state.services.polls.shutdown()
            if bot is not None:
                await bot.shutdown()

    app = FastAPI(title="FocusBoard Notifier", lifespan=lifespan)
    app.state.services = services

    # -----------------------------------------------------
    # Sweep trigger
    # -----------------------------------------------------

    @app.post("/api/cron/notifications", dependencies=[Depends(verify_trigger)])
    async def run_sweep(svc: Services = Depends(get_services)):
        try:
            summary = await svc.sweep.run()
        except Exception as exc:
            logger.exception("Sweep aborted")
            return JSONResponse(status_code=500, content={"error": str(exc) or "Unknown cron error"})
        return summary.as_response()

    # -----------------------------------------------------
    # Settings
    # -----------------------------------------------------

    @app.get("/api/notification-settings")
    def read_settings(
        user_id: str = Depends(get_current_user_id),
        svc: Services = Depends(get_services),
    ):
        return settings_to_json(svc.resolver.resolve(user_id))

    @app.put("/api/notification-settings")
    def write_settings(
        body: SettingsUpdate,
        user_id: str = Depends(get_current_user_id),
        svc: Services = Depends(get_services),
    ):
        return settings_to_json(svc.resolver.update(user_id, body.changes()))

    # -----------------------------------------------------
    # Telegram
    # -----------------------------------------------------

    @app.post("/api/notifications/telegram")
    async def proxy_telegram(
        body: TelegramSendRequest,
        user_id: str = Depends(get_current_user_id),
        svc: Services = Depends(get_services),
    ):
        chat_id, title, text = body.chat_id.strip(), body.title.strip(), body.body.strip()
        if not chat_id or not title or not text:
            return JSONResponse(
                status_code=400, content={"error": "chatId, title and body are required"},
            )

        notifier = svc.notifiers.get(Channel.TELEGRAM)
        if notifier is None:
            return JSONResponse(status_code=503, content={"error": "Telegram is not configured"})
        try:
            await notifier.send(chat_id, title, text)
        except TransportError as exc:
            logger.warning("Proxied Telegram send for user %s failed: %s", user_id, exc)
            return JSONResponse(
                status_code=502,
                content={"error": "Failed to send Telegram message", "details": str(exc)},
            )
        return {"success": True}

    @app.post("/api/notifications/telegram/connect")
    async def connect_telegram(
        user_id: str = Depends(get_current_user_id),
        svc: Services = Depends(get_services),
    ):
        username = settings.TELEGRAM_BOT_USERNAME
        if not username and svc.bot is not None:
            me = await svc.bot.get_me()
            username = me.username or ""
        if not username:
            return JSONResponse(status_code=500, content={"error": "Telegram bot username is unknown"})

        offer = svc.linker.create_link(user_id, username)
        return {
            "success": True,
            "deepLink": offer.deep_link,
            "appDeepLink": offer.app_deep_link,
            "botUsername": offer.bot_username,
            "expiresAt": offer.expires_at,
        }

    # -----------------------------------------------------
    # Browser push + client poll
    # -----------------------------------------------------

    @app.put("/api/notifications/push-subscription")
    def save_push_subscription(
        body: PushSubscriptionBody,
        user_id: str = Depends(get_current_user_id),
        svc: Services = Depends(get_services),
    ):
        svc.push_db.upsert(PushSubscription(
            user_id=user_id,
            endpoint=body.endpoint,
            p256dh=body.keys.p256dh,
            auth=body.keys.auth,
        ))
        return {"success": True}

    @app.post("/api/notifications/push-test")
    async def send_test_push(
        body: PushTestRequest,
        user_id: str = Depends(get_current_user_id),
        svc: Services = Depends(get_services),
    ):
        """Send a one-off browser notification. Bypasses the dedup ledger."""
        notifier = svc.notifiers.get(Channel.BROWSER)
        if notifier is None:
            return JSONResponse(status_code=503, content={"error": "Browser push is not configured"})
        if svc.push_db.get(user_id) is None:
            return JSONResponse(status_code=404, content={"error": "No push subscription"})
        try:
            await notifier.send(user_id, body.title, body.body)
        except TransportError as exc:
            logger.warning("Test push for user %s failed: %s", user_id, exc)
            return JSONResponse(
                status_code=502,
                content={"error": "Failed to send browser notification", "details": str(exc)},
            )
        return {"success": True}

    @app.post("/api/notifications/poll/start")
    async def start_poll(
        user_id: str = Depends(get_current_user_id),
        svc: Services = Depends(get_services),
    ):
        svc.polls.activate(user_id)
        return {"active": True}

    @app.post("/api/notifications/poll/stop")
    async def stop_poll(
        user_id: str = Depends(get_current_user_id),
        svc: Services = Depends(get_services),
    ):
        await svc.polls.deactivate(user_id)
        return {"active": False}

    return app


app = create_app()
