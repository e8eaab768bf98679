"""
FocusBoard Notifier — Telegram Bot.

The bot is the Telegram end of the notifier: it completes the account-link
handshake (`/start <token>`) and, unless RUN_SWEEP_IN_BOT is off, runs the
reminder sweep on its job queue every SWEEP_INTERVAL_MINUTES.

Reminder delivery itself goes through TelegramNotifier, which wraps this
application's bot.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from telegram import Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CommandHandler,
    ContextTypes,
)

from src.config import settings
from src.core.telegram_link import extract_start_token, welcome_text

if TYPE_CHECKING:
    from src.core.scheduler import SweepDriver
    from src.core.telegram_link import TelegramLinker
    from src.services import Services

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — plain welcome, or redeem a link token."""
    if update.message is None or update.effective_chat is None:
        return

    token = extract_start_token(update.message.text or "")
    if not token:
        await update.message.reply_text(welcome_text(None))
        return

    linker: TelegramLinker = context.bot_data["linker"]
    chat_id = str(update.effective_chat.id)
    try:
        outcome = linker.consume(token, chat_id)
    except Exception as exc:
        logger.error("Telegram link failed for chat %s: %s", chat_id, exc)
        await update.message.reply_text(
            "Couldn't connect your account right now. Please try again later."
        )
        return

    await update.message.reply_text(welcome_text(outcome))


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help."""
    await update.message.reply_text(
        "I send FocusBoard reminders for your habits, tasks and goals.\n"
        "Connect or change reminder times from the dashboard's Notifications panel."
    )


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def build_app(services: Services | None = None) -> Application:
    """Build and configure the Telegram Application.

    Args:
        services: Pre-built services. Defaults to services over DATABASE_PATH
                  using this application's bot for delivery.
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if services is None:
        from src.services import build_services
        services = build_services(bot=app.bot)

    app.bot_data["services"] = services
    app.bot_data["linker"] = services.linker

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))

    if settings.RUN_SWEEP_IN_BOT:
        _setup_sweep(app, services.sweep)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_sweep(app: Application, sweep: SweepDriver) -> None:
    """Register the repeating reminder sweep job."""
    interval = settings.SWEEP_INTERVAL_MINUTES * 60

    async def _sweep_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        await sweep.run()

    app.job_queue.run_repeating(
        _sweep_job_callback,
        interval=interval,
        first=0,
        name="notification_sweep",
    )

    logger.info("Reminder sweep scheduled every %d minutes", settings.SWEEP_INTERVAL_MINUTES)


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting FocusBoard notifier bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
