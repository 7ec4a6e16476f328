from aiogram.fsm.state import State, StatesGroup

class AddTenantState(StatesGroup):
    waiting_for_name = State()
    waiting_for_email = State()
    waiting_for_phone = State()
    waiting_for_work_info = State()
    waiting_for_rent_amount = State()
    waiting_for_join_date = State()
    waiting_for_id_proof = State()

class RecordPaymentState(StatesGroup):
    waiting_for_amount = State()
    waiting_for_date = State()

class BulkPaymentState(StatesGroup):
    selecting = State()
    waiting_for_date = State()
    confirm = State()
