import logging
from typing import Callable, Dict, Any, Awaitable
from aiogram import BaseMiddleware, html
from aiogram.exceptions import TelegramAPIError
from aiogram.types import TelegramObject, Message, CallbackQuery, Update

from rentledger.errors import LedgerError, PersistenceError
from rentledger.utils.ui import UIMessages


def error_text(e: LedgerError, quote: bool = True) -> str:
    """User-facing text for a ledger failure, with the hint when there is one.

    HTML-escaped unless quote=False; callback alerts are plain text.
    """
    text = e.describe() if isinstance(e, PersistenceError) else str(e)
    return UIMessages.error(html.quote(text) if quote else text)


class GlobalErrorMiddleware(BaseMiddleware):
    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        try:
            return await handler(event, data)
        except Exception as e:
            logging.exception(f"Unhandled exception in bot update: {e}")

            if isinstance(event, Update):
                event = event.message or event.callback_query

            try:
                if isinstance(event, Message):
                    if isinstance(e, LedgerError):
                        text = error_text(e)
                    else:
                        text = UIMessages.warning("<b>Something went wrong.</b>\n\nPlease try again later.")
                    await event.answer(text)
                elif isinstance(event, CallbackQuery):
                    if isinstance(e, LedgerError):
                        text = error_text(e, quote=False)
                    else:
                        text = UIMessages.warning("Something went wrong. Please try again later.")
                    await event.answer(text[:200], show_alert=True)
            except TelegramAPIError as notify_error:
                logging.warning(f"Could not notify user about the error: {notify_error}")

            # Keep polling alive; the failure is logged above
            return None
