from aiogram import Router, F
from aiogram.types import Message
from aiogram.filters import CommandStart, Command
from aiogram.fsm.context import FSMContext

from rentledger.config import config
from rentledger.utils.ui import UIEmojis, UIMessages, UIKeyboards

router = Router()


def is_owner(user_id: int) -> bool:
    return user_id in config.OWNER_IDS


@router.message(CommandStart())
async def cmd_start(message: Message, state: FSMContext):
    await state.clear()

    if not is_owner(message.from_user.id):
        await message.answer(
            UIMessages.warning("This bot is private.") +
            f"\nYour Telegram ID: <code>{message.from_user.id}</code>"
        )
        return

    text = UIMessages.header("Rent Ledger", UIEmojis.HOME)
    text += "Track houses, tenants and rent payments.\n\n"
    text += "Use the menu below or /help for commands."
    await message.answer(text, reply_markup=UIKeyboards.main_reply_keyboard())


@router.message(Command("help"))
@router.message(F.text == "❔ Help")
async def cmd_help(message: Message):
    text = UIMessages.header("Help", "❔")
    text += (
        "🏠 <b>Houses</b>: dashboard with the current month status\n"
        "💳 <b>Bulk Payments</b>: record rent for every unpaid house at once\n"
        "🔄 <b>Refresh</b>: reload data from the backend\n\n"
        "/search &lt;name&gt; - find a tenant by name\n"
        "/cancel - abort the current input"
    )
    await message.answer(text)


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext):
    if await state.get_state() is None:
        await message.answer("Nothing to cancel.")
        return
    await state.clear()
    await message.answer(UIMessages.success("Cancelled."), reply_markup=UIKeyboards.main_reply_keyboard())
