import pytest

from finance_tracker.errors import InvalidEntityKind, RecordValidationError
from finance_tracker.persistence import RecordGateway
from finance_tracker.store import Store


def _salary(**overrides):
    fields = {"description": "Salary", "amount": 100, "date": "2024-01-15", "category": "Work"}
    fields.update(overrides)
    return fields


def test_insert_then_get_round_trip(records) -> None:
    record_id = records.insert("income", _salary(provider="Main bank"))
    row = records.get_by_id("income", record_id)

    assert row["id"] == record_id
    assert row["description"] == "Salary"
    assert row["amount"] == 100
    assert row["date"] == "2024-01-15"
    assert row["category"] == "Work"
    assert row["provider"] == "Main bank"
    assert row["icon"] is None
    assert row["createdAt"] == row["updatedAt"]
    assert row["createdAt"].endswith("Z")


def test_caller_supplied_id_and_timestamps_are_ignored(records) -> None:
    record_id = records.insert("income", _salary(id=999, createdAt="1999-01-01"))
    assert record_id != 999
    row = records.get_by_id("income", record_id)
    assert row["createdAt"] != "1999-01-01"
    assert records.get_by_id("income", 999) is None


def test_ids_are_unique_and_never_reused(records) -> None:
    ids = [records.insert("outgoing", {"description": f"item {i}", "amount": i, "date": "2024-03-01"}) for i in range(3)]
    assert len(set(ids)) == 3
    assert ids == sorted(ids)

    assert records.delete("outgoing", ids[-1]) == 1
    new_id = records.insert("outgoing", {"description": "again", "amount": 1, "date": "2024-03-02"})
    assert new_id not in ids
    assert new_id > max(ids)


def test_list_all_newest_first(records) -> None:
    first = records.insert("income", _salary(description="first"))
    second = records.insert("income", _salary(description="second"))
    third = records.insert("income", _salary(description="third"))

    assert [row["id"] for row in records.list_all("income")] == [third, second, first]


def test_partial_update_preserves_other_fields(records) -> None:
    record_id = records.insert("income", _salary(provider="Main bank"))
    before = records.get_by_id("income", record_id)

    assert records.update("income", record_id, {"amount": 250}) == 1
    after = records.get_by_id("income", record_id)

    assert after["amount"] == 250
    assert after["description"] == before["description"]
    assert after["provider"] == "Main bank"
    assert after["category"] == "Work"
    assert after["createdAt"] == before["createdAt"]
    assert after["updatedAt"] >= before["updatedAt"]


def test_update_missing_id_returns_zero(records) -> None:
    assert records.update("income", 12345, {"amount": 1}) == 0


def test_update_rejects_clearing_required_field(records) -> None:
    record_id = records.insert("income", _salary())
    with pytest.raises(RecordValidationError):
        records.update("income", record_id, {"description": None})
    assert records.get_by_id("income", record_id)["description"] == "Salary"


def test_delete_then_get_is_not_found(records) -> None:
    record_id = records.insert("payment_providers", {"name": "Wallet", "type": "cash"})
    assert records.delete("payment_providers", record_id) == 1
    assert records.get_by_id("payment_providers", record_id) is None
    assert records.delete("payment_providers", record_id) == 0


def test_invalid_kind_is_rejected_without_storage_access(db_path) -> None:
    # The store is never opened, so any storage access would raise StorageError.
    gateway = RecordGateway(Store(db_path))
    with pytest.raises(InvalidEntityKind):
        gateway.list_all("not_a_table")
    with pytest.raises(InvalidEntityKind):
        gateway.insert("settings", {"name": "x"})
    with pytest.raises(InvalidEntityKind):
        gateway.delete("image_cache", 1)
    assert not db_path.exists()


@pytest.mark.parametrize(
    "kind,fields",
    [
        ("income", {"amount": 10, "date": "2024-01-01"}),
        ("income", {"description": "   ", "amount": 10, "date": "2024-01-01"}),
        ("income", {"description": "x", "amount": -5, "date": "2024-01-01"}),
        ("income", {"description": "x", "amount": float("inf"), "date": "2024-01-01"}),
        ("outgoing", {"description": "x", "amount": float("nan"), "date": "2024-01-01"}),
        ("outgoing", {"description": "x", "amount": 10, "date": "not-a-date"}),
        ("outgoing", {"description": "x", "amount": 10, "date": "2024-01-01", "recurring": True, "billingCycle": "daily"}),
        ("payment_providers", {"name": "x", "type": "bank_account"}),
        ("payment_providers", {"type": "bank"}),
    ],
)
def test_insert_validation_errors(records, kind, fields) -> None:
    with pytest.raises(RecordValidationError):
        records.insert(kind, fields)
    assert records.list_all(kind) == []


def test_outgoing_recurring_defaults(records) -> None:
    record_id = records.insert(
        "outgoing", {"description": "Streaming", "amount": 12.99, "date": "2024-01-31", "recurring": True}
    )
    row = records.get_by_id("outgoing", record_id)
    assert row["recurring"] is True
    assert row["billingCycle"] == "monthly"
    assert row["nextPaymentDate"] == "2024-02-29"


def test_outgoing_not_recurring_clears_schedule(records) -> None:
    record_id = records.insert(
        "outgoing",
        {
            "description": "Groceries",
            "amount": 40,
            "date": "2024-01-10",
            "billingCycle": "weekly",
            "nextPaymentDate": "2024-01-17",
        },
    )
    row = records.get_by_id("outgoing", record_id)
    assert row["recurring"] is False
    assert row["billingCycle"] is None
    assert row["nextPaymentDate"] is None


def test_turning_recurring_off_clears_schedule(records) -> None:
    record_id = records.insert(
        "outgoing",
        {"description": "Gym", "amount": 30, "date": "2024-01-05", "recurring": True, "billingCycle": "quarterly"},
    )
    assert records.get_by_id("outgoing", record_id)["nextPaymentDate"] == "2024-04-05"

    records.update("outgoing", record_id, {"recurring": False})
    row = records.get_by_id("outgoing", record_id)
    assert row["recurring"] is False
    assert row["billingCycle"] is None
    assert row["nextPaymentDate"] is None


def test_string_ids_are_accepted(records) -> None:
    record_id = records.insert("income", _salary())
    assert records.get_by_id("income", str(record_id))["id"] == record_id
    with pytest.raises(RecordValidationError):
        records.get_by_id("income", "abc")


def test_update_rejects_infinite_amount(records) -> None:
    record_id = records.insert("income", _salary())
    with pytest.raises(RecordValidationError):
        records.update("income", record_id, {"amount": float("inf")})
    assert records.get_by_id("income", record_id)["amount"] == _salary()["amount"]


@pytest.mark.parametrize("record_id", [2**63, 10**20, "99999999999999999999", 0, -1])
def test_ids_outside_storable_range_are_not_found(records, record_id) -> None:
    records.insert("income", _salary())
    assert records.get_by_id("income", record_id) is None
    assert records.update("income", record_id, {"amount": 1}) == 0
    assert records.delete("income", record_id) == 0
    assert len(records.list_all("income")) == 1


@pytest.mark.parametrize("record_id", [1.9, float("inf"), "1.9", True])
def test_non_integral_ids_are_rejected(records, record_id) -> None:
    records.insert("income", _salary())
    with pytest.raises(RecordValidationError):
        records.get_by_id("income", record_id)
    with pytest.raises(RecordValidationError):
        records.delete("income", record_id)
