import asyncio
import logging
import sys

from aiogram import Bot, Dispatcher
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties

from rentledger.config import config
from rentledger.errors import PersistenceError
from rentledger.handlers import common, landlord
from rentledger.middlewares.error import GlobalErrorMiddleware
from rentledger.middlewares.ledger import LedgerMiddleware
from rentledger.services.ledger import RentLedger
from rentledger.store import create_store


async def main():
    # Configure logging
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        stream=sys.stdout,
    )

    bot = Bot(
        token=config.require_bot_token(),
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )
    dp = Dispatcher()

    store = create_store(config)
    ledger = RentLedger(store, rent_due_day=config.RENT_DUE_DAY)

    # Start with the default roster if the backend is unreachable; "Refresh" retries
    try:
        await ledger.load()
    except PersistenceError as e:
        logging.error(f"Failed to load ledger: {e.describe()}")

    # Order: Error -> Ledger
    dp.update.outer_middleware(GlobalErrorMiddleware())
    dp.update.middleware(LedgerMiddleware(ledger))

    # Common first: /start, /help and /cancel must win over FSM input handlers
    dp.include_router(common.router)
    dp.include_router(landlord.router)

    logging.info("Starting bot...")
    await dp.start_polling(bot)

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logging.info("Bot stopped.")
