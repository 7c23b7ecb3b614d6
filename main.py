"""
FocusWatch — Entry Point.

Single entry point: `python main.py` starts the Telegram bot, the tick
jobs and the activity event reader.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from focuswatch.bot.telegram_bot import main

if __name__ == "__main__":
    main()
