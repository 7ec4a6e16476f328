from typing import Callable, Dict, Any, Awaitable
from aiogram import BaseMiddleware
from aiogram.types import TelegramObject

from rentledger.services.ledger import RentLedger


class LedgerMiddleware(BaseMiddleware):
    """Injects the process-wide ledger as `ledger`"""

    def __init__(self, ledger: RentLedger):
        self.ledger = ledger

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        data["ledger"] = self.ledger
        return await handler(event, data)
