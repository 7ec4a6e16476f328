import asyncio
from datetime import date

import pytest

from conftest import MemoryStore, TODAY, make_tenant
from rentledger.errors import (
    ValidationError, ConflictError, PersistenceError,
    PartialDeletionError, PartialBatchFailure, FK_HINT, NETWORK_HINT
)
from rentledger.schemas.records import HouseRecord
from rentledger.services.ledger import RentLedger, LedgerState
from rentledger.services.status_service import PaymentStatus


# --- Load ---

@pytest.mark.asyncio
async def test_load_fetches_all_collections(ledger, memory_store):
    state = await ledger.load()

    assert {c[0] for c in memory_store.calls} == {"list_houses", "list_tenants", "list_payments"}
    assert len(state.houses) == 6
    assert len(state.tenants) == 3
    assert len(state.payments) == 1


@pytest.mark.asyncio
async def test_load_falls_back_to_default_roster():
    ledger = RentLedger(MemoryStore(houses=[]), rent_due_day=5, today=lambda: TODAY)
    state = await ledger.load()

    assert [h.id for h in state.houses] == ["H3", "H4", "H5", "H6", "H8", "H9"]
    assert all(h.is_vacant for h in state.houses)


@pytest.mark.asyncio
async def test_load_failure_keeps_snapshot(ledger, memory_store):
    before = ledger.state
    memory_store.fail("list_payments", "Failed to fetch")

    with pytest.raises(PersistenceError) as exc:
        await ledger.load()

    assert exc.value.hint == NETWORK_HINT
    assert ledger.state is before


# --- Queries ---

@pytest.mark.asyncio
async def test_dashboard_statuses(ledger):
    by_house = {v.house.id: v for v in ledger.dashboard()}

    assert by_house["H3"].status == PaymentStatus.overdue
    assert by_house["H4"].status == PaymentStatus.paid
    assert by_house["H5"].tenant is None


@pytest.mark.asyncio
async def test_dashboard_search(ledger):
    assert [v.house.id for v in ledger.dashboard(search_term="ali")] == ["H3"]


@pytest.mark.asyncio
async def test_unassigned_tenants(ledger):
    assert [t.id for t in ledger.unassigned_tenants()] == ["t-carol"]


@pytest.mark.asyncio
async def test_bulk_payment_items_use_rent_and_current_month(ledger):
    items = ledger.bulk_payment_items(TODAY)

    assert len(items) == 1
    item = items[0]
    assert (item.house_id, item.tenant_id) == ("H3", "t-alice")
    assert (item.month, item.year) == (3, 2024)
    assert item.amount_paid == 1000.0
    assert item.paid_date == TODAY


@pytest.mark.asyncio
async def test_bulk_payment_items_can_be_narrowed(ledger):
    assert ledger.bulk_payment_items(TODAY, tenant_ids=[]) == []


@pytest.mark.asyncio
async def test_unknown_ids_are_validation_errors(ledger):
    with pytest.raises(ValidationError):
        ledger.get_house("H7")
    with pytest.raises(ValidationError):
        ledger.get_tenant("nobody")


# --- Occupancy ---

@pytest.mark.asyncio
async def test_assign_to_vacant_house(ledger, memory_store):
    house = await ledger.assign_tenant("H5", "t-carol")

    assert house.current_tenant_id == "t-carol"
    assert ledger.house_of_tenant("t-carol").id == "H5"
    assert ledger.unassigned_tenants() == []


@pytest.mark.asyncio
async def test_assign_to_occupied_house_conflicts(ledger, memory_store):
    with pytest.raises(ConflictError):
        await ledger.assign_tenant("H3", "t-carol")
    assert memory_store.calls == []


@pytest.mark.asyncio
async def test_assign_tenant_already_housed_conflicts(ledger, memory_store):
    with pytest.raises(ConflictError):
        await ledger.assign_tenant("H5", "t-alice")
    assert memory_store.calls == []


@pytest.mark.asyncio
async def test_assign_same_occupant_is_noop(ledger, memory_store):
    house = await ledger.assign_tenant("H3", "t-alice")

    assert house.current_tenant_id == "t-alice"
    assert memory_store.calls == []


@pytest.mark.asyncio
async def test_remove_tenant_keeps_record(ledger):
    house = await ledger.remove_tenant("H3")

    assert house.is_vacant
    assert ledger.get_tenant("t-alice").name == "Alice"
    assert {t.id for t in ledger.unassigned_tenants()} == {"t-alice", "t-carol"}


@pytest.mark.asyncio
async def test_remove_from_vacant_house_is_noop(ledger, memory_store):
    await ledger.remove_tenant("H5")
    assert memory_store.calls == []


@pytest.mark.asyncio
async def test_failed_assignment_leaves_state(ledger, memory_store):
    memory_store.fail("update_house_occupant", "new row violates row-level security policy", status=403)
    before = ledger.state

    with pytest.raises(PersistenceError) as exc:
        await ledger.assign_tenant("H5", "t-carol")

    assert "Authorization" in exc.value.describe()
    assert ledger.state is before


# --- Add tenant ---

@pytest.mark.asyncio
async def test_add_tenant_into_house(ledger, memory_store):
    tenant = await ledger.add_tenant({
        "name": " Dora ",
        "email": "dora@example.com",
        "rent_amount": "1 500",
        "join_date": "01.03.2024",
    }, house_id="H5")

    assert tenant.name == "Dora"
    assert tenant.rent_amount == 1500.0
    assert ledger.state.tenants[0].id == tenant.id
    assert ledger.get_house("H5").current_tenant_id == tenant.id


@pytest.mark.asyncio
async def test_add_tenant_requires_fields(ledger, memory_store):
    with pytest.raises(ValidationError):
        await ledger.add_tenant({"name": "Eve", "email": "no-at-sign", "rent_amount": 100, "join_date": "2024-01-01"})
    with pytest.raises(ValidationError):
        await ledger.add_tenant({"name": "Eve", "email": "eve@example.com", "rent_amount": 0, "join_date": "2024-01-01"})
    with pytest.raises(ValidationError):
        await ledger.add_tenant({"name": "Eve", "email": "eve@example.com", "rent_amount": 100})
    assert memory_store.calls == []


@pytest.mark.asyncio
async def test_add_tenant_future_join_date_rejected(ledger):
    with pytest.raises(ValidationError):
        await ledger.add_tenant({
            "name": "Eve", "email": "eve@example.com", "rent_amount": 100, "join_date": date(2024, 4, 1)
        })


@pytest.mark.asyncio
async def test_add_tenant_into_occupied_house_conflicts(ledger, memory_store):
    with pytest.raises(ConflictError):
        await ledger.add_tenant({
            "name": "Eve", "email": "eve@example.com", "rent_amount": 100, "join_date": "2024-01-01"
        }, house_id="H3")
    assert memory_store.calls == []


@pytest.mark.asyncio
async def test_add_tenant_assignment_failure_keeps_created_tenant(ledger, memory_store):
    memory_store.fail("update_house_occupant", "Failed to fetch")

    with pytest.raises(PersistenceError) as exc:
        await ledger.add_tenant({
            "name": "Eve", "email": "eve@example.com", "rent_amount": 100, "join_date": "2024-01-01"
        }, house_id="H5")

    assert "was created but not assigned" in exc.value.message
    assert "Eve" in [t.name for t in ledger.unassigned_tenants()]
    assert ledger.get_house("H5").is_vacant


# --- Delete tenant ---

@pytest.mark.asyncio
async def test_delete_tenant_clears_house_and_payments(ledger, memory_store):
    await ledger.delete_tenant("t-bob")

    assert ledger.get_house("H4").current_tenant_id is None
    assert ledger.payments_for_tenant("t-bob") == []
    assert "t-bob" not in [t.id for t in ledger.state.tenants]
    assert [c[0] for c in memory_store.calls] == ["update_house_occupant", "delete_payments", "delete_tenant"]


@pytest.mark.asyncio
async def test_delete_unassigned_tenant_skips_house_step(ledger, memory_store):
    await ledger.delete_tenant("t-carol")
    assert memory_store.called("update_house_occupant") == []


@pytest.mark.asyncio
async def test_delete_fails_at_house_step(ledger, memory_store):
    memory_store.fail("update_house_occupant")
    before = ledger.state

    with pytest.raises(PersistenceError) as exc:
        await ledger.delete_tenant("t-bob")

    assert not isinstance(exc.value, PartialDeletionError)
    assert ledger.state is before


@pytest.mark.asyncio
async def test_delete_fails_after_house_cleared(ledger, memory_store):
    memory_store.fail("delete_payments", "Failed to fetch")

    with pytest.raises(PartialDeletionError) as exc:
        await ledger.delete_tenant("t-bob")

    error = exc.value
    assert error.cleared_house_id == "H4"
    assert error.failed_step == "payments"
    assert error.payments_deleted is False
    assert error.hint == NETWORK_HINT
    # Only the confirmed step is reflected
    assert ledger.get_house("H4").is_vacant
    assert len(ledger.payments_for_tenant("t-bob")) == 1
    assert ledger.get_tenant("t-bob")


@pytest.mark.asyncio
async def test_delete_fails_at_tenant_step(ledger, memory_store):
    memory_store.fail("delete_tenant", "update or delete on table \"tenants\" violates foreign key constraint")

    with pytest.raises(PartialDeletionError) as exc:
        await ledger.delete_tenant("t-bob")

    assert exc.value.failed_step == "tenant"
    assert exc.value.payments_deleted is True
    assert exc.value.hint == FK_HINT
    assert ledger.payments_for_tenant("t-bob") == []
    assert ledger.get_tenant("t-bob")

    # Retrying once the backend recovers finishes the job
    memory_store.heal("delete_tenant")
    await ledger.delete_tenant("t-bob")
    assert "t-bob" not in [t.id for t in ledger.state.tenants]


# --- Payments ---

@pytest.mark.asyncio
async def test_record_then_status_is_paid(ledger):
    payment = await ledger.record_payment("t-alice", 3, 2024, 1000, date(2024, 3, 9))

    assert payment.house_id == "H3"
    result = ledger.status_for("t-alice", 3, 2024)
    assert result.status == PaymentStatus.paid
    assert result.payment.id == payment.id


@pytest.mark.asyncio
async def test_rerecord_replaces_row_in_snapshot(ledger, memory_store):
    first = await ledger.record_payment("t-alice", 2, 2024, 1000, "2024-02-04")
    second = await ledger.record_payment("t-alice", 2, 2024, 1000, "2024-02-06")

    rows = [p for p in ledger.payments_for_tenant("t-alice") if p.month == 2]
    assert [p.id for p in rows] == [second.id]
    assert len(memory_store.payments) == 3  # store keeps both rows
    assert first.id != second.id


@pytest.mark.asyncio
async def test_record_payment_for_unassigned_tenant(ledger):
    payment = await ledger.record_payment("t-carol", 3, 2024, 500, TODAY)
    assert payment.house_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize("month, year, amount, paid_date", [
    (3, 2024, 0, TODAY),
    (3, 2024, -5, TODAY),
    (3, 2024, "inf", TODAY),
    (3, 2024, "nan", TODAY),
    (3, 2024, "1e400", TODAY),
    (3, 2024, 10 ** 10, TODAY),
    (13, 2024, 100, TODAY),
    (3, 2024, 100, None),
    (3, 2024, 100, "not a date"),
    (12, 2022, 100, TODAY),  # before Alice joined
    (4, 2024, 100, TODAY),   # future month
])
async def test_record_payment_validation(ledger, memory_store, month, year, amount, paid_date):
    with pytest.raises(ValidationError):
        await ledger.record_payment("t-alice", month, year, amount, paid_date)
    assert memory_store.calls == []


@pytest.mark.asyncio
async def test_record_payment_failure_changes_nothing(ledger, memory_store):
    memory_store.fail("create_payments", "Failed to fetch")
    before = ledger.state

    with pytest.raises(PersistenceError):
        await ledger.record_payment("t-alice", 3, 2024, 1000, TODAY)
    assert ledger.state is before


# --- Bulk ---

@pytest.fixture
def crowded_ledger():
    """Four occupied houses, all unpaid for March"""
    tenants = [make_tenant(f"t{i}", f"Tenant {i}", rent_amount=100.0 * i) for i in range(1, 5)]
    houses = [
        HouseRecord(id=f"H{i + 2}", house_number=str(i + 2), current_tenant_id=f"t{i}")
        for i in range(1, 5)
    ]
    store = MemoryStore(houses=houses, tenants=tenants)
    ledger = RentLedger(store, rent_due_day=5, today=lambda: TODAY)
    ledger.state = LedgerState(tuple(houses), tuple(tenants), ())
    return ledger, store


@pytest.mark.asyncio
async def test_bulk_all_succeed(crowded_ledger):
    ledger, store = crowded_ledger
    items = ledger.bulk_payment_items(TODAY)

    recorded = await ledger.record_bulk_payments(items)

    assert len(recorded) == 4
    assert len(store.called("create_payments")) == 4
    assert all(v.status == PaymentStatus.paid for v in ledger.house_views())


@pytest.mark.asyncio
async def test_bulk_one_failure_reflects_n_minus_one(crowded_ledger):
    ledger, store = crowded_ledger
    store.fail("create_payments", "Rejected", when=lambda fields: fields[0].tenant_id == "t3")

    with pytest.raises(PartialBatchFailure) as exc:
        await ledger.record_bulk_payments(ledger.bulk_payment_items(TODAY))

    failure = exc.value
    assert len(failure.succeeded) == 3
    assert failure.failed_tenant_ids == ["t3"]
    assert "t3" in str(failure)
    assert {p.tenant_id for p in ledger.state.payments} == {"t1", "t2", "t4"}


@pytest.mark.asyncio
async def test_bulk_all_fail(crowded_ledger):
    ledger, store = crowded_ledger
    store.fail("create_payments", "Failed to fetch")

    with pytest.raises(PersistenceError) as exc:
        await ledger.record_bulk_payments(ledger.bulk_payment_items(TODAY))

    assert not isinstance(exc.value, PartialBatchFailure)
    assert exc.value.hint == NETWORK_HINT
    assert ledger.state.payments == ()


@pytest.mark.asyncio
async def test_bulk_unexpected_error_still_reports_recorded(crowded_ledger):
    ledger, store = crowded_ledger
    original = store.create_payments

    async def flaky_create(fields):
        if fields[0].tenant_id == "t2":
            raise RuntimeError("connection reset")
        return await original(fields)

    store.create_payments = flaky_create

    with pytest.raises(PartialBatchFailure) as exc:
        await ledger.record_bulk_payments(ledger.bulk_payment_items(TODAY))

    assert len(exc.value.succeeded) == 3
    assert exc.value.failed_tenant_ids == ["t2"]
    assert isinstance(exc.value.__cause__, RuntimeError)
    assert {p.tenant_id for p in ledger.state.payments} == {"t1", "t3", "t4"}
    assert not ledger.is_submitting


@pytest.mark.asyncio
async def test_bulk_empty_makes_no_store_call(crowded_ledger):
    ledger, store = crowded_ledger
    assert await ledger.record_bulk_payments([]) == []
    assert store.calls == []


@pytest.mark.asyncio
async def test_bulk_validates_everything_first(crowded_ledger):
    ledger, store = crowded_ledger
    items = [i.model_dump() for i in ledger.bulk_payment_items(TODAY)]
    items[-1]["amount_paid"] = 0

    with pytest.raises(ValidationError):
        await ledger.record_bulk_payments(items)
    assert store.calls == []


@pytest.mark.asyncio
async def test_bulk_rejects_stale_occupant(crowded_ledger):
    ledger, store = crowded_ledger
    items = [i.model_dump() for i in ledger.bulk_payment_items(TODAY)]
    items[0]["house_id"] = "H4"

    with pytest.raises(ConflictError):
        await ledger.record_bulk_payments(items)
    assert store.calls == []


@pytest.mark.asyncio
async def test_bulk_rejects_duplicate_tenant(crowded_ledger):
    ledger, store = crowded_ledger
    items = ledger.bulk_payment_items(TODAY)

    with pytest.raises(ValidationError):
        await ledger.record_bulk_payments(items + items[:1])
    assert store.calls == []


# --- Submission gate ---

@pytest.mark.asyncio
async def test_second_mutation_while_submitting_conflicts(ledger, memory_store):
    release = asyncio.Event()
    original = memory_store.update_house_occupant

    async def slow_update(house_id, tenant_id):
        await release.wait()
        return await original(house_id, tenant_id)

    memory_store.update_house_occupant = slow_update

    first = asyncio.create_task(ledger.remove_tenant("H3"))
    await asyncio.sleep(0)
    assert ledger.is_submitting

    with pytest.raises(ConflictError):
        await ledger.remove_tenant("H4")

    release.set()
    await first
    assert not ledger.is_submitting
    assert ledger.get_house("H3").is_vacant
    assert ledger.get_house("H4").current_tenant_id == "t-bob"


@pytest.mark.asyncio
async def test_gate_released_after_failure(ledger, memory_store):
    memory_store.fail("update_house_occupant")
    with pytest.raises(PersistenceError):
        await ledger.remove_tenant("H3")

    assert not ledger.is_submitting
    memory_store.heal("update_house_occupant")
    await ledger.remove_tenant("H3")
