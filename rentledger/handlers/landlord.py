import logging
from datetime import date
from typing import List

from aiogram import Router, F, html
from aiogram.exceptions import TelegramBadRequest
from aiogram.filters import Filter, Command, CommandObject
from aiogram.fsm.context import FSMContext
from aiogram.types import Message, CallbackQuery, InlineKeyboardMarkup, InlineKeyboardButton
from pydantic import ValidationError

from rentledger.config import config
from rentledger.errors import PartialDeletionError, PartialBatchFailure
from rentledger.schemas.validation import AmountModel, DateModel
from rentledger.services.dashboard_service import HouseView, ALL_STATUSES, bulk_total
from rentledger.services.ledger import RentLedger
from rentledger.services.reminder_service import generate_reminder_message, reminder_due_date
from rentledger.services.status_service import PaymentStatus
from rentledger.states import AddTenantState, RecordPaymentState, BulkPaymentState
from rentledger.utils.ui import (
    UIEmojis, UIMessages, UIKeyboards,
    format_amount, format_date, format_period, get_status_badge
)


class OwnerFilter(Filter):
    async def __call__(self, event) -> bool:
        # Works for both Message and CallbackQuery
        if hasattr(event, 'from_user') and event.from_user:
            return event.from_user.id in config.OWNER_IDS
        return False

router = Router()
router.message.filter(OwnerFilter())
router.callback_query.filter(OwnerFilter())

MENU_EMOJIS = ["🏠", "💳", "🔄", "❔"]


async def _show(call: CallbackQuery, text: str, kb: InlineKeyboardMarkup = None):
    """Edit the callback message in place, falling back to a new message"""
    try:
        await call.message.edit_text(text, reply_markup=kb)
    except TelegramBadRequest as e:
        if "message is not modified" in str(e):
            return
        await call.message.answer(text, reply_markup=kb)


def _is_interrupt(message: Message) -> bool:
    """Commands and menu buttons abort a running input flow"""
    text = message.text or ""
    return text.startswith("/") or any(e in text for e in MENU_EMOJIS)


# --- Dashboard ---

def _status_line(view: HouseView) -> str:
    if view.tenant is None:
        return "Vacant"
    if view.status == PaymentStatus.paid:
        return f"Paid on {format_date(view.payment.paid_date)}"
    if view.is_new_tenant:
        return f"{view.status.value} (new tenant)"
    return view.status.value


def render_dashboard(ledger: RentLedger, views: List[HouseView], status_filter: str = ALL_STATUSES, search_term: str = ""):
    today = ledger.today()
    text = UIMessages.header(f"Houses · {format_period(today.month, today.year)}", UIEmojis.HOME)

    if search_term:
        text += f"{UIEmojis.SEARCH} Search: <i>{html.quote(search_term)}</i>\n"
    if status_filter != ALL_STATUSES:
        text += f"Filter: <b>{status_filter}</b>\n"

    if not views:
        text += "\nNo houses match.\n"
    for view in views:
        badge = get_status_badge(view.status.value) if view.tenant else "⚪"
        name = html.quote(view.tenant.name) if view.tenant else "<i>no tenant</i>"
        text += f"{badge} <b>House {view.house.house_number}</b>: {name} · {_status_line(view)}\n"

    buttons = [(f"🏠 {v.house.house_number}", f"house:{v.house.id}") for v in views]
    kb = UIKeyboards.menu_grid(buttons, columns=3)

    filters_row = []
    for value, label in [(ALL_STATUSES, "All"), ("Paid", "Paid"), ("Unpaid", "Unpaid"), ("Overdue", "Overdue")]:
        mark = "• " if value == status_filter else ""
        filters_row.append(InlineKeyboardButton(text=f"{mark}{label}", callback_data=f"filter:{value}"))
    kb.inline_keyboard.append(filters_row)
    kb.inline_keyboard.append([InlineKeyboardButton(text=f"{UIEmojis.PAYMENT} Bulk Payments", callback_data="bulk")])
    return text, kb


@router.message(F.text == "🏠 Houses")
@router.message(Command("houses"))
async def show_houses(message: Message, ledger: RentLedger):
    text, kb = render_dashboard(ledger, ledger.dashboard())
    await message.answer(text, reply_markup=kb)


@router.callback_query(F.data == "dashboard")
async def back_to_dashboard(call: CallbackQuery, state: FSMContext, ledger: RentLedger):
    await state.clear()
    text, kb = render_dashboard(ledger, ledger.dashboard())
    await _show(call, text, kb)
    await call.answer()


@router.callback_query(F.data.startswith("filter:"))
async def filter_dashboard(call: CallbackQuery, ledger: RentLedger):
    status_filter = call.data.split(":", 1)[1]
    text, kb = render_dashboard(ledger, ledger.dashboard(status_filter=status_filter), status_filter)
    await _show(call, text, kb)
    await call.answer()


@router.message(Command("search"))
async def search_tenants(message: Message, command: CommandObject, ledger: RentLedger):
    term = (command.args or "").strip()
    text, kb = render_dashboard(ledger, ledger.dashboard(search_term=term), search_term=term)
    await message.answer(text, reply_markup=kb)


@router.message(F.text == "🔄 Refresh")
async def refresh_ledger(message: Message, ledger: RentLedger):
    state = await ledger.load()
    await message.answer(UIMessages.success(
        f"Loaded {len(state.houses)} houses, {len(state.tenants)} tenants and {len(state.payments)} payments."
    ))


# --- House Card ---

def _render_house(ledger: RentLedger, house_id: str):
    view = next(v for v in ledger.house_views() if v.house.id == house_id)
    house, tenant = view.house, view.tenant
    text = UIMessages.header(f"House {house.house_number}", UIEmojis.HOME)

    if tenant is None:
        text += "This house is vacant.\n"
        buttons = [[InlineKeyboardButton(text=f"{UIEmojis.ADD} Add New Tenant", callback_data=f"add_tenant:{house.id}")]]
        if ledger.unassigned_tenants():
            buttons.append([InlineKeyboardButton(text=f"{UIEmojis.LINK} Assign Existing Tenant", callback_data=f"assign:{house.id}")])
        buttons.append([InlineKeyboardButton(text=f"{UIEmojis.BACK} Back", callback_data="dashboard")])
        return text, InlineKeyboardMarkup(inline_keyboard=buttons)

    text += UIMessages.field("Tenant", html.quote(tenant.name), UIEmojis.TENANT)
    text += UIMessages.field("Rent", format_amount(tenant.rent_amount), UIEmojis.MONEY)
    text += UIMessages.field("Status", f"{get_status_badge(view.status.value)} {_status_line(view)}")

    buttons = []
    if view.status != PaymentStatus.paid:
        buttons.append([
            InlineKeyboardButton(text=f"{UIEmojis.PAYMENT} Record Payment", callback_data=f"pay:{house.id}"),
            InlineKeyboardButton(text=f"{UIEmojis.BELL} Reminder", callback_data=f"remind:{tenant.id}")
        ])
    buttons.append([InlineKeyboardButton(text="📋 Details & History", callback_data=f"details:{tenant.id}")])
    buttons.append([
        InlineKeyboardButton(text=f"{UIEmojis.UNLINK} Remove From House", callback_data=f"remove:{house.id}"),
        InlineKeyboardButton(text=f"{UIEmojis.DELETE} Delete Tenant", callback_data=f"delete:{tenant.id}")
    ])
    buttons.append([InlineKeyboardButton(text=f"{UIEmojis.BACK} Back", callback_data="dashboard")])
    return text, InlineKeyboardMarkup(inline_keyboard=buttons)


@router.callback_query(F.data.startswith("house:"))
async def show_house(call: CallbackQuery, ledger: RentLedger):
    house_id = call.data.split(":", 1)[1]
    text, kb = _render_house(ledger, ledger.get_house(house_id).id)
    await _show(call, text, kb)
    await call.answer()


@router.callback_query(F.data.startswith("assign:"))
async def choose_tenant_to_assign(call: CallbackQuery, ledger: RentLedger):
    house = ledger.get_house(call.data.split(":", 1)[1])
    tenants = ledger.unassigned_tenants()
    if not tenants:
        await call.answer("No unassigned tenants.", show_alert=True)
        return

    buttons = [(f"{UIEmojis.TENANT} {t.name}", f"assign_to:{house.id}:{t.id}") for t in tenants]
    kb = UIKeyboards.menu_grid(buttons, columns=1)
    kb.inline_keyboard.append([InlineKeyboardButton(text=f"{UIEmojis.BACK} Back", callback_data=f"house:{house.id}")])
    await _show(call, UIMessages.header(f"Assign to House {house.house_number}", UIEmojis.LINK), kb)
    await call.answer()


@router.callback_query(F.data.startswith("assign_to:"))
async def assign_tenant(call: CallbackQuery, ledger: RentLedger):
    _, house_id, tenant_id = call.data.split(":", 2)
    await ledger.assign_tenant(house_id, tenant_id)
    logging.info(f"Owner {call.from_user.id} assigned tenant {tenant_id} to house {house_id}")

    text, kb = _render_house(ledger, house_id)
    await _show(call, text, kb)
    await call.answer("Tenant assigned")


@router.callback_query(F.data.startswith("remove:"))
async def remove_tenant(call: CallbackQuery, ledger: RentLedger):
    house_id = call.data.split(":", 1)[1]
    await ledger.remove_tenant(house_id)
    logging.info(f"Owner {call.from_user.id} vacated house {house_id}")

    text, kb = _render_house(ledger, house_id)
    await _show(call, text, kb)
    await call.answer("Tenant removed from house")


@router.callback_query(F.data.startswith("remind:"))
async def show_reminder(call: CallbackQuery, ledger: RentLedger):
    tenant = ledger.get_tenant(call.data.split(":", 1)[1])
    due = reminder_due_date(ledger.today(), ledger.rent_due_day)
    reminder = generate_reminder_message(tenant.name, tenant.rent_amount, due, config.CURRENCY_SYMBOL)

    text = UIMessages.header("Reminder", UIEmojis.BELL)
    if tenant.phone:
        text += UIMessages.field("Phone", html.quote(tenant.phone), UIEmojis.PHONE)
    text += f"\n<pre>{html.quote(reminder)}</pre>"
    await call.message.answer(text)
    await call.answer()


# --- Tenant Details ---

@router.callback_query(F.data.startswith("details:"))
async def show_tenant_details(call: CallbackQuery, ledger: RentLedger):
    tenant = ledger.get_tenant(call.data.split(":", 1)[1])
    house = ledger.house_of_tenant(tenant.id)

    text = UIMessages.header(html.quote(tenant.name), UIEmojis.TENANT)
    text += UIMessages.field("Email", html.quote(tenant.email), UIEmojis.MAIL)
    text += UIMessages.field("Phone", html.quote(tenant.phone or "N/A"), UIEmojis.PHONE)
    if tenant.work_info:
        text += UIMessages.field("Work", html.quote(tenant.work_info), UIEmojis.WORK)
    text += UIMessages.field("Rent", format_amount(tenant.rent_amount), UIEmojis.MONEY)
    text += UIMessages.field("Joined", format_date(tenant.join_date), UIEmojis.CALENDAR)
    text += UIMessages.field("ID proof", "Yes" if tenant.id_proof else "No", UIEmojis.KEY)
    text += UIMessages.field("House", house.house_number if house else "Not assigned", UIEmojis.HOME)

    text += f"\n<b>{UIEmojis.HISTORY} Payment History</b>\n"
    history = ledger.tenant_history(tenant.id)
    buttons = []
    for row in history:
        line = f"{get_status_badge(row.status.value)} {format_period(row.month, row.year)}: {row.status.value}"
        if row.status == PaymentStatus.paid:
            line += f", {format_amount(row.payment.amount_paid)} on {format_date(row.payment.paid_date)}"
        else:
            buttons.append((
                f"{UIEmojis.PAYMENT} {format_period(row.month, row.year)}",
                f"pay_month:{tenant.id}:{row.year}:{row.month}"
            ))
        text += line + "\n"
    if not history:
        text += "No months to show yet.\n"

    kb = UIKeyboards.menu_grid(buttons[:12], columns=3)
    back = f"house:{house.id}" if house else "dashboard"
    kb.inline_keyboard.append([InlineKeyboardButton(text=f"{UIEmojis.BACK} Back", callback_data=back)])
    await _show(call, text, kb)
    await call.answer()


@router.callback_query(F.data.startswith("delete:"))
async def confirm_delete_tenant(call: CallbackQuery, ledger: RentLedger):
    tenant = ledger.get_tenant(call.data.split(":", 1)[1])
    text = UIMessages.warning(
        f"Delete <b>{html.quote(tenant.name)}</b> and all of their payment records?\n"
        "This cannot be undone."
    )
    kb = UIKeyboards.confirm_cancel(
        confirm_text="Delete",
        confirm_callback=f"delete_confirm:{tenant.id}",
        cancel_callback="dashboard"
    )
    await _show(call, text, kb)
    await call.answer()


@router.callback_query(F.data.startswith("delete_confirm:"))
async def delete_tenant(call: CallbackQuery, ledger: RentLedger):
    tenant = ledger.get_tenant(call.data.split(":", 1)[1])
    try:
        await ledger.delete_tenant(tenant.id)
    except PartialDeletionError as e:
        text = UIMessages.error(html.quote(e.describe()))
        text += "\n\nThe dashboard shows what was already applied. Retry the deletion once the backend is reachable."
        await call.message.answer(text, reply_markup=UIKeyboards.back_button())
        await call.answer()
        return

    logging.info(f"Owner {call.from_user.id} deleted tenant {tenant.id}")
    await _show(call, UIMessages.success(f"Tenant {html.quote(tenant.name)} deleted."), UIKeyboards.back_button())
    await call.answer()


# --- Add Tenant Flow ---

@router.callback_query(F.data.startswith("add_tenant:"))
async def start_add_tenant(call: CallbackQuery, state: FSMContext, ledger: RentLedger):
    house = ledger.get_house(call.data.split(":", 1)[1])
    await state.clear()
    await state.update_data(house_id=house.id)

    text = UIMessages.header(f"New Tenant for House {house.house_number}", UIEmojis.ADD)
    text += "Enter the tenant's full name:\n\nTo cancel: /cancel"
    await call.message.answer(text)
    await state.set_state(AddTenantState.waiting_for_name)
    await call.answer()


@router.message(AddTenantState.waiting_for_name)
async def add_tenant_name(message: Message, state: FSMContext):
    if _is_interrupt(message):
        await message.answer("❌ Adding tenant cancelled.")
        await state.clear()
        return
    if not message.text or not message.text.strip():
        await message.answer("Name cannot be empty.")
        return

    await state.update_data(name=message.text.strip())
    await message.answer(f"{UIEmojis.MAIL} Enter the email:")
    await state.set_state(AddTenantState.waiting_for_email)


@router.message(AddTenantState.waiting_for_email)
async def add_tenant_email(message: Message, state: FSMContext):
    if _is_interrupt(message):
        await message.answer("❌ Adding tenant cancelled.")
        await state.clear()
        return
    if not message.text or "@" not in message.text:
        await message.answer("❌ Enter a valid email address.")
        return

    await state.update_data(email=message.text.strip())
    await message.answer(f"{UIEmojis.PHONE} Enter the phone number, or '-' to skip:")
    await state.set_state(AddTenantState.waiting_for_phone)


@router.message(AddTenantState.waiting_for_phone)
async def add_tenant_phone(message: Message, state: FSMContext):
    if _is_interrupt(message):
        await message.answer("❌ Adding tenant cancelled.")
        await state.clear()
        return

    phone = (message.text or "").strip()
    await state.update_data(phone=None if phone == "-" else phone)
    await message.answer(f"{UIEmojis.WORK} Enter work info, or '-' to skip:")
    await state.set_state(AddTenantState.waiting_for_work_info)


@router.message(AddTenantState.waiting_for_work_info)
async def add_tenant_work_info(message: Message, state: FSMContext):
    if _is_interrupt(message):
        await message.answer("❌ Adding tenant cancelled.")
        await state.clear()
        return

    work_info = (message.text or "").strip()
    await state.update_data(work_info="" if work_info == "-" else work_info)
    await message.answer(f"{UIEmojis.MONEY} Enter the monthly rent amount ({config.CURRENCY_SYMBOL}):")
    await state.set_state(AddTenantState.waiting_for_rent_amount)


@router.message(AddTenantState.waiting_for_rent_amount)
async def add_tenant_rent(message: Message, state: FSMContext):
    if _is_interrupt(message):
        await message.answer("❌ Adding tenant cancelled.")
        await state.clear()
        return

    try:
        model = AmountModel(amount=message.text)
    except ValidationError:
        await message.answer("❌ Enter a positive number for the rent amount.")
        return

    await state.update_data(rent_amount=model.amount)
    await message.answer(f"{UIEmojis.CALENDAR} Enter the join date (YYYY-MM-DD or DD.MM.YYYY):")
    await state.set_state(AddTenantState.waiting_for_join_date)


@router.message(AddTenantState.waiting_for_join_date)
async def add_tenant_join_date(message: Message, state: FSMContext, ledger: RentLedger):
    if _is_interrupt(message):
        await message.answer("❌ Adding tenant cancelled.")
        await state.clear()
        return

    try:
        model = DateModel(value=message.text)
    except ValidationError:
        await message.answer("❌ Enter a valid date, e.g. 2024-03-01.")
        return
    if model.value > ledger.today():
        await message.answer("❌ Join date cannot be in the future.")
        return

    await state.update_data(join_date=model.value.isoformat())
    kb = InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text=f"{UIEmojis.CHECK} Yes", callback_data="id_proof:yes"),
        InlineKeyboardButton(text=f"{UIEmojis.CANCEL} No", callback_data="id_proof:no")
    ]])
    await message.answer(f"{UIEmojis.KEY} Has the tenant provided an ID proof?", reply_markup=kb)
    await state.set_state(AddTenantState.waiting_for_id_proof)


@router.callback_query(AddTenantState.waiting_for_id_proof, F.data.startswith("id_proof:"))
async def add_tenant_finish(call: CallbackQuery, state: FSMContext, ledger: RentLedger):
    data = await state.get_data()
    await state.clear()

    house_id = data.pop("house_id", None)
    data["id_proof"] = call.data == "id_proof:yes"

    tenant = await ledger.add_tenant(data, house_id=house_id)
    logging.info(f"Owner {call.from_user.id} added tenant {tenant.id} to house {house_id}")

    await call.message.answer(UIMessages.success(f"Tenant {html.quote(tenant.name)} added."))
    if house_id:
        text, kb = _render_house(ledger, house_id)
        await call.message.answer(text, reply_markup=kb)
    await call.answer()


# --- Record Payment Flow ---

async def _start_payment(call: CallbackQuery, state: FSMContext, ledger: RentLedger, tenant_id: str, month: int, year: int):
    tenant = ledger.get_tenant(tenant_id)
    await state.clear()
    await state.update_data(tenant_id=tenant.id, month=month, year=year, default_amount=tenant.rent_amount)

    text = UIMessages.header(f"Payment · {format_period(month, year)}", UIEmojis.PAYMENT)
    text += UIMessages.field("Tenant", html.quote(tenant.name), UIEmojis.TENANT)
    text += "\nEnter the amount paid, or use the rent amount.\n\nTo cancel: /cancel"
    kb = InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text=f"Use {format_amount(tenant.rent_amount)}", callback_data="pay_amount:rent")
    ]])
    await call.message.answer(text, reply_markup=kb)
    await state.set_state(RecordPaymentState.waiting_for_amount)
    await call.answer()


@router.callback_query(F.data.startswith("pay:"))
async def pay_current_month(call: CallbackQuery, state: FSMContext, ledger: RentLedger):
    house = ledger.get_house(call.data.split(":", 1)[1])
    if house.current_tenant_id is None:
        await call.answer("This house is vacant.", show_alert=True)
        return
    today = ledger.today()
    await _start_payment(call, state, ledger, house.current_tenant_id, today.month, today.year)


@router.callback_query(F.data.startswith("pay_month:"))
async def pay_past_month(call: CallbackQuery, state: FSMContext, ledger: RentLedger):
    _, tenant_id, year, month = call.data.split(":", 3)
    await _start_payment(call, state, ledger, tenant_id, int(month), int(year))


async def _ask_payment_date(message: Message, state: FSMContext):
    kb = InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text=f"{UIEmojis.CALENDAR} Today", callback_data="pay_date:today")
    ]])
    await message.answer("Enter the payment date (YYYY-MM-DD or DD.MM.YYYY):", reply_markup=kb)
    await state.set_state(RecordPaymentState.waiting_for_date)


@router.callback_query(RecordPaymentState.waiting_for_amount, F.data == "pay_amount:rent")
async def payment_default_amount(call: CallbackQuery, state: FSMContext):
    data = await state.get_data()
    await state.update_data(amount=data["default_amount"])
    await _ask_payment_date(call.message, state)
    await call.answer()


@router.message(RecordPaymentState.waiting_for_amount)
async def payment_amount(message: Message, state: FSMContext):
    if _is_interrupt(message):
        await message.answer("❌ Payment cancelled.")
        await state.clear()
        return

    try:
        model = AmountModel(amount=message.text)
    except ValidationError:
        await message.answer("❌ Enter a positive number for the amount.")
        return

    await state.update_data(amount=model.amount)
    await _ask_payment_date(message, state)


async def _finish_payment(message: Message, state: FSMContext, ledger: RentLedger, paid_date: date, user_id: int):
    data = await state.get_data()
    await state.clear()

    payment = await ledger.record_payment(
        data["tenant_id"], data["month"], data["year"], data["amount"], paid_date
    )
    logging.info(f"Owner {user_id} recorded payment {payment.id}")

    tenant = ledger.get_tenant(payment.tenant_id)
    await message.answer(UIMessages.success(
        f"Recorded {format_amount(payment.amount_paid)} from {html.quote(tenant.name)} "
        f"for {format_period(payment.month, payment.year)}, paid {format_date(payment.paid_date)}."
    ), reply_markup=UIKeyboards.back_button())


@router.callback_query(RecordPaymentState.waiting_for_date, F.data == "pay_date:today")
async def payment_date_today(call: CallbackQuery, state: FSMContext, ledger: RentLedger):
    await _finish_payment(call.message, state, ledger, ledger.today(), call.from_user.id)
    await call.answer()


@router.message(RecordPaymentState.waiting_for_date)
async def payment_date(message: Message, state: FSMContext, ledger: RentLedger):
    if _is_interrupt(message):
        await message.answer("❌ Payment cancelled.")
        await state.clear()
        return

    try:
        model = DateModel(value=message.text)
    except ValidationError:
        await message.answer("❌ Enter a valid date, e.g. 2024-03-05.")
        return

    await _finish_payment(message, state, ledger, model.value, message.from_user.id)


# --- Bulk Payments ---

def render_bulk_selection(ledger: RentLedger, selected: List[str]):
    """Candidate list with a toggle per tenant and the total of the current selection"""
    today = ledger.today()
    candidates = ledger.bulk_candidates()
    chosen = ledger.bulk_payment_items(today, tenant_ids=selected)

    text = UIMessages.header(f"Bulk Payments · {format_period(today.month, today.year)}", UIEmojis.PAYMENT)
    text += "Tap a house to include or skip it.\n\n"
    text += f"<b>Selected:</b> {len(chosen)} of {len(candidates)}\n"
    text += f"<b>Total:</b> {format_amount(bulk_total(chosen))}\n"

    buttons = []
    for view in candidates:
        mark = UIEmojis.CHECK if view.tenant.id in selected else "⬜"
        buttons.append([InlineKeyboardButton(
            text=f"{mark} House {view.house.house_number} · {view.tenant.name} · {format_amount(view.tenant.rent_amount)}",
            callback_data=f"bulk_toggle:{view.tenant.id}"
        )])
    buttons.append([
        InlineKeyboardButton(text="Select All", callback_data="bulk_select:all"),
        InlineKeyboardButton(text="Select None", callback_data="bulk_select:none")
    ])
    buttons.append([
        InlineKeyboardButton(text=f"{UIEmojis.CHECK} Continue", callback_data="bulk_next"),
        InlineKeyboardButton(text=f"{UIEmojis.CANCEL} Cancel", callback_data="dashboard")
    ])
    return text, InlineKeyboardMarkup(inline_keyboard=buttons)


async def _start_bulk(message: Message, state: FSMContext, ledger: RentLedger):
    await state.clear()
    candidates = ledger.bulk_candidates()
    if not candidates:
        today = ledger.today()
        await message.answer(UIMessages.success(f"All rent for {format_period(today.month, today.year)} is recorded."))
        return

    # Everyone starts selected
    selected = [v.tenant.id for v in candidates]
    await state.update_data(selected=selected)
    await state.set_state(BulkPaymentState.selecting)
    text, kb = render_bulk_selection(ledger, selected)
    await message.answer(text, reply_markup=kb)


@router.message(F.text == "💳 Bulk Payments")
async def bulk_from_menu(message: Message, state: FSMContext, ledger: RentLedger):
    await _start_bulk(message, state, ledger)


@router.callback_query(F.data == "bulk")
async def bulk_from_dashboard(call: CallbackQuery, state: FSMContext, ledger: RentLedger):
    await _start_bulk(call.message, state, ledger)
    await call.answer()


@router.callback_query(BulkPaymentState.selecting, F.data.startswith("bulk_toggle:"))
async def bulk_toggle(call: CallbackQuery, state: FSMContext, ledger: RentLedger):
    tenant_id = call.data.split(":", 1)[1]
    selected = (await state.get_data()).get("selected", [])
    if tenant_id in selected:
        selected = [t for t in selected if t != tenant_id]
    else:
        selected = selected + [tenant_id]

    await state.update_data(selected=selected)
    text, kb = render_bulk_selection(ledger, selected)
    await _show(call, text, kb)
    await call.answer()


@router.callback_query(BulkPaymentState.selecting, F.data.startswith("bulk_select:"))
async def bulk_select_all_or_none(call: CallbackQuery, state: FSMContext, ledger: RentLedger):
    if call.data == "bulk_select:all":
        selected = [v.tenant.id for v in ledger.bulk_candidates()]
    else:
        selected = []

    await state.update_data(selected=selected)
    text, kb = render_bulk_selection(ledger, selected)
    await _show(call, text, kb)
    await call.answer()


@router.callback_query(BulkPaymentState.selecting, F.data == "bulk_next")
async def bulk_ask_date(call: CallbackQuery, state: FSMContext, ledger: RentLedger):
    selected = (await state.get_data()).get("selected", [])
    if not ledger.bulk_payment_items(ledger.today(), tenant_ids=selected):
        await call.answer("Select at least one house.", show_alert=True)
        return

    kb = InlineKeyboardMarkup(inline_keyboard=[[
        InlineKeyboardButton(text=f"{UIEmojis.CALENDAR} Today", callback_data="bulk_date:today")
    ]])
    await call.message.answer(
        "Enter the payment date for the selected houses (YYYY-MM-DD or DD.MM.YYYY):\n\nTo cancel: /cancel",
        reply_markup=kb
    )
    await state.set_state(BulkPaymentState.waiting_for_date)
    await call.answer()


async def _confirm_bulk(message: Message, state: FSMContext, ledger: RentLedger, paid_date: date):
    selected = (await state.get_data()).get("selected", [])
    items = ledger.bulk_payment_items(paid_date, tenant_ids=selected)
    if not items:
        await state.clear()
        await message.answer(UIMessages.warning("None of the selected houses still need a payment."))
        return

    await state.update_data(paid_date=paid_date.isoformat())
    await state.set_state(BulkPaymentState.confirm)

    text = (
        f"Record {len(items)} payment(s) totalling {format_amount(bulk_total(items))}, "
        f"paid {format_date(paid_date)}?"
    )
    kb = UIKeyboards.confirm_cancel(confirm_text="Record", confirm_callback="bulk_confirm", cancel_callback="dashboard")
    await message.answer(text, reply_markup=kb)


@router.callback_query(BulkPaymentState.waiting_for_date, F.data == "bulk_date:today")
async def bulk_date_today(call: CallbackQuery, state: FSMContext, ledger: RentLedger):
    await _confirm_bulk(call.message, state, ledger, ledger.today())
    await call.answer()


@router.message(BulkPaymentState.waiting_for_date)
async def bulk_date(message: Message, state: FSMContext, ledger: RentLedger):
    if _is_interrupt(message):
        await message.answer("❌ Bulk payment cancelled.")
        await state.clear()
        return

    try:
        model = DateModel(value=message.text)
    except ValidationError:
        await message.answer("❌ Enter a valid date, e.g. 2024-03-05.")
        return

    await _confirm_bulk(message, state, ledger, model.value)


@router.callback_query(BulkPaymentState.confirm, F.data == "bulk_confirm")
async def bulk_record(call: CallbackQuery, state: FSMContext, ledger: RentLedger):
    data = await state.get_data()
    await state.clear()

    # Candidates are re-evaluated so houses paid in the meantime drop out
    items = ledger.bulk_payment_items(date.fromisoformat(data["paid_date"]), tenant_ids=data.get("selected", []))
    try:
        recorded = await ledger.record_bulk_payments(items)
    except PartialBatchFailure as e:
        text = UIMessages.warning(f"Recorded {len(e.succeeded)} payment(s), {len(e.failed)} failed:\n")
        for failed in e.failed:
            tenant = ledger.get_tenant(failed.item.tenant_id)
            text += f"• {html.quote(tenant.name)}: {html.quote(failed.reason)}\n"
        await _show(call, text, UIKeyboards.back_button())
        await call.answer()
        return

    logging.info(f"Owner {call.from_user.id} recorded {len(recorded)} bulk payment(s)")
    await _show(call, UIMessages.success(f"Recorded {len(recorded)} payment(s)."), UIKeyboards.back_button())
    await call.answer()
