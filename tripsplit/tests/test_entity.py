"""
Tests for expense record operations.
"""
from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal
import pytest
from tripsplit.core.exceptions import AlreadySettled, NotFoundError, ShareNotFound, SplitMismatch, ValidationError
from tripsplit.domain.expense import Category, ExpenseStatus, RecurringFrequency, create_expense_record
from tripsplit.domain.splits import SplitEntry, SplitType

NOW = datetime(2024, 5, 2, 12, 0, tzinfo=timezone.utc)


def make_record(amount="100.00", split_type=SplitType.EQUAL, entries=None, **attributes):
    if entries is None:
        entries = [SplitEntry(1), SplitEntry(2)]
    return create_expense_record(
        trip_id=1,
        paid_by=1,
        created_by=1,
        title="Dinner",
        amount=amount,
        category="food",
        expense_date=date(2024, 5, 2),
        split_type=split_type,
        split_entries=entries,
        **attributes
    )


def test_create_equal_split_record():
    record = make_record()
    assert record.category == Category.FOOD
    assert [s.amount for s in record.shares] == [Decimal("50.00"), Decimal("50.00")]
    assert record.is_split
    assert record.unsettled_amount == Decimal("100.00")
    assert not record.is_fully_settled


def test_create_without_participants_has_no_shares():
    record = make_record(entries=[])
    assert record.shares == []
    assert not record.is_split
    assert record.unsettled_amount == Decimal("0.00")


def test_create_rejects_unknown_category():
    with pytest.raises(ValidationError) as exc:
        create_expense_record(
            trip_id=1, paid_by=1, created_by=1, title="Dinner", amount="10",
            category="gambling", expense_date=date(2024, 5, 2),
        )
    assert exc.value.field == "category"


def test_create_rejects_blank_title():
    with pytest.raises(ValidationError) as exc:
        create_expense_record(
            trip_id=1, paid_by=1, created_by=1, title="   ", amount="10",
            category="food", expense_date=date(2024, 5, 2),
        )
    assert exc.value.field == "title"


def test_custom_split_short_by_fifty_cents_is_rejected():
    entries = [SplitEntry(1, amount=Decimal("50.00")), SplitEntry(2, amount=Decimal("49.50"))]
    with pytest.raises(SplitMismatch):
        make_record(split_type=SplitType.CUSTOM, entries=entries)


def test_settle_split_flips_only_that_share():
    record = make_record()
    settled = record.settle_split(2, NOW)

    assert settled.find_share(2).settled
    assert settled.find_share(2).settled_at == NOW
    assert not settled.find_share(1).settled
    assert settled.unsettled_amount == Decimal("50.00")
    # the original record is untouched
    assert not record.find_share(2).settled


def test_settle_split_twice():
    settled = make_record().settle_split(2, NOW)
    with pytest.raises(AlreadySettled):
        settled.settle_split(2, NOW)


def test_settle_split_unknown_user():
    with pytest.raises(ShareNotFound):
        make_record().settle_split(99, NOW)


def test_settle_split_blocked_while_shares_do_not_add_up():
    record = make_record().add_or_replace_split(2, "10.00")
    with pytest.raises(SplitMismatch):
        record.settle_split(1, NOW)


def test_add_or_replace_split_replaces_existing_share():
    record = make_record().add_or_replace_split(2, "60.00")
    assert record.split_type == SplitType.CUSTOM
    assert record.participant_ids == [1, 2]
    assert record.find_share(2).amount == Decimal("60.00")
    # sum is not checked until finalize
    with pytest.raises(SplitMismatch):
        record.finalize_splits()

    fixed = record.add_or_replace_split(1, "40.00")
    assert fixed.participant_ids == [2, 1]
    fixed.finalize_splits()


def test_add_or_replace_split_rejects_negative_amount():
    with pytest.raises(ValidationError):
        make_record().add_or_replace_split(2, "-1.00")


def test_finalize_confirms_pending_expense():
    record = make_record(status=ExpenseStatus.PENDING)
    assert record.finalize_splits().status == ExpenseStatus.CONFIRMED

    confirmed = make_record()
    assert confirmed.finalize_splits() is confirmed


def test_soft_delete_twice():
    deleted = make_record().soft_delete(NOW)
    assert deleted.is_deleted
    assert deleted.deleted_at == NOW
    with pytest.raises(NotFoundError):
        deleted.soft_delete(NOW)


def test_with_amount_recomputes_equal_split():
    record = make_record().with_amount("90.00")
    assert [s.amount for s in record.shares] == [Decimal("45.00"), Decimal("45.00")]


def test_with_amount_recomputes_percentage_split():
    entries = [SplitEntry(1, percentage=Decimal("75")), SplitEntry(2, percentage=Decimal("25"))]
    record = make_record(split_type=SplitType.PERCENTAGE, entries=entries).with_amount("200.00")
    assert [s.amount for s in record.shares] == [Decimal("150.00"), Decimal("50.00")]


def test_with_amount_keeps_custom_shares_checked():
    entries = [SplitEntry(1, amount=Decimal("70.00")), SplitEntry(2, amount=Decimal("30.00"))]
    record = make_record(split_type=SplitType.CUSTOM, entries=entries)
    with pytest.raises(SplitMismatch):
        record.with_amount("120.00")


def test_resplit_keeps_settled_flags():
    record = make_record().settle_split(2, NOW)
    resplit = record.resplit(SplitType.EQUAL, [SplitEntry(2), SplitEntry(3)])
    assert resplit.participant_ids == [2, 3]
    assert resplit.find_share(2).settled
    assert not resplit.find_share(3).settled


def test_check_split_invariant_after_manual_edit():
    record = make_record()
    broken = replace(record, amount=Decimal("120.00"))
    with pytest.raises(SplitMismatch):
        broken.validate()


def test_with_amount_reopens_changed_settled_share():
    record = make_record().settle_split(2, NOW).with_amount("300.00")
    assert record.find_share(2).amount == Decimal("150.00")
    assert not record.find_share(2).settled
    assert record.find_share(2).settled_at is None


def test_resplit_reopens_changed_settled_share():
    record = make_record().settle_split(2, NOW)
    resplit = record.resplit(SplitType.EQUAL, [SplitEntry(1), SplitEntry(2), SplitEntry(3)])
    assert resplit.find_share(2).amount == Decimal("33.33")
    assert not resplit.find_share(2).settled


def test_retotal_leaves_shares_alone():
    entries = [SplitEntry(1, amount=Decimal("60.00")), SplitEntry(2, amount=Decimal("40.00"))]
    record = make_record(split_type=SplitType.CUSTOM, entries=entries).retotal("200.00")
    assert record.amount == Decimal("200.00")
    assert record.total_split_amount == Decimal("100.00")

    resplit = record.resplit(
        SplitType.CUSTOM,
        [SplitEntry(1, amount=Decimal("120.00")), SplitEntry(2, amount=Decimal("80.00"))],
    )
    resplit.validate()


def test_recurring_expense_rules():
    with pytest.raises(ValidationError) as exc:
        make_record(is_recurring=True, recurring_frequency=RecurringFrequency.MONTHLY)
    assert exc.value.field == "recurring_pattern.end_date"

    with pytest.raises(ValidationError) as exc:
        make_record(
            is_recurring=True,
            recurring_frequency=RecurringFrequency.MONTHLY,
            recurring_end_date=date(2024, 4, 1),
        )
    assert exc.value.field == "recurring_pattern.end_date"

    record = make_record(
        is_recurring=True,
        recurring_frequency=RecurringFrequency.MONTHLY,
        recurring_end_date=date(2024, 8, 2),
    )
    assert record.recurring_frequency == RecurringFrequency.MONTHLY


def test_validate_fields_ignores_incomplete_shares():
    record = make_record().add_or_replace_split(2, "10.00")
    record.validate_fields()
    with pytest.raises(SplitMismatch):
        record.validate()
