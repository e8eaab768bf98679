"""
FocusBoard Notifier — Entry Point.

`python main.py` starts the Telegram bot (link handshake + reminder sweep).
The HTTP surface runs separately: `uvicorn src.api.app:app`.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from src.bot.telegram_bot import main

if __name__ == "__main__":
    main()
