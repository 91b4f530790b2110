from __future__ import annotations

import unittest
from datetime import date

from hrportal.errors import ApiError
from hrportal.models import ToilBalance
from hrportal.services.toil import consume_entries, expire_toil_entries, get_toil_balance, use_toil_hours


def _entry(entry_id: int, remaining: float, expires_at: date) -> ToilBalance:
    return ToilBalance(
        id=entry_id,
        user_id=3,
        hours_earned=remaining,
        hours_used=0.0,
        hours_remaining=remaining,
        earned_date=date(2026, 1, 1),
        expires_at=expires_at,
        is_expired=False,
    )


class _FakeScalars:
    def __init__(self, rows: list[object]):
        self._rows = rows

    def all(self) -> list[object]:
        return list(self._rows)


class _FakeToilDB:
    def __init__(self, entries: list[ToilBalance], total: float | None = None):
        self.entries = entries
        self.total = total
        self.statements: list[object] = []
        self.flushed = False
        self.commits = 0

    def scalar(self, statement):  # type: ignore[no-untyped-def]
        self.statements.append(statement)
        return self.total

    def scalars(self, _statement):  # type: ignore[no-untyped-def]
        return _FakeScalars(self.entries)

    def flush(self) -> None:
        self.flushed = True

    def commit(self) -> None:
        self.commits += 1


class ConsumeEntriesTests(unittest.TestCase):
    def test_hours_are_drawn_in_given_order(self) -> None:
        first = _entry(1, 2.0, date(2026, 4, 1))
        second = _entry(2, 5.0, date(2026, 5, 1))

        plan = consume_entries([first, second], 3.5)

        self.assertEqual([(entry.id, taken) for entry, taken in plan], [(1, 2.0), (2, 1.5)])

    def test_exact_balance_is_allowed(self) -> None:
        plan = consume_entries([_entry(1, 4.0, date(2026, 4, 1))], 4.0)

        self.assertEqual(len(plan), 1)
        self.assertEqual(plan[0][1], 4.0)

    def test_insufficient_balance_raises_without_mutation(self) -> None:
        entry = _entry(1, 2.0, date(2026, 4, 1))

        with self.assertRaises(ApiError) as ctx:
            consume_entries([entry], 2.5)

        self.assertEqual(ctx.exception.code, "INSUFFICIENT_TOIL")
        self.assertEqual(ctx.exception.status_code, 422)
        self.assertEqual(entry.hours_remaining, 2.0)


class UseToilHoursTests(unittest.TestCase):
    def test_use_updates_entries_and_flushes(self) -> None:
        first = _entry(1, 2.0, date(2026, 4, 1))
        second = _entry(2, 8.0, date(2026, 5, 1))
        fake_db = _FakeToilDB([first, second])

        used = use_toil_hours(fake_db, user_id=3, hours=6.0, today=date(2026, 3, 2))  # type: ignore[arg-type]

        self.assertEqual(used, 6.0)
        self.assertTrue(fake_db.flushed)
        self.assertEqual(first.hours_remaining, 0.0)
        self.assertEqual(first.hours_used, 2.0)
        self.assertEqual(second.hours_remaining, 4.0)
        self.assertEqual(second.hours_used, 4.0)

    def test_zero_hours_is_a_noop(self) -> None:
        fake_db = _FakeToilDB([])

        used = use_toil_hours(fake_db, user_id=3, hours=0.0, today=date(2026, 3, 2))  # type: ignore[arg-type]

        self.assertEqual(used, 0.0)
        self.assertFalse(fake_db.flushed)



class BalanceTests(unittest.TestCase):
    def test_balance_is_rounded_sum_of_live_entries(self) -> None:
        fake_db = _FakeToilDB([], total=7.456)

        balance = get_toil_balance(fake_db, 3, today=date(2026, 3, 2))  # type: ignore[arg-type]

        self.assertEqual(balance, 7.46)
        compiled = str(fake_db.statements[0])
        self.assertIn("toil_balance.is_expired", compiled)
        self.assertIn("toil_balance.expires_at >=", compiled)

    def test_no_entries_gives_zero(self) -> None:
        balance = get_toil_balance(_FakeToilDB([], total=None), 3, today=date(2026, 3, 2))  # type: ignore[arg-type]

        self.assertEqual(balance, 0.0)


class ExpireToilEntriesTests(unittest.TestCase):
    def test_past_entries_are_flagged_expired(self) -> None:
        stale = _entry(1, 3.0, date(2026, 2, 28))
        fake_db = _FakeToilDB([stale])

        expired = expire_toil_entries(fake_db, today=date(2026, 3, 2))  # type: ignore[arg-type]

        self.assertEqual(expired, 1)
        self.assertTrue(stale.is_expired)
        self.assertEqual(stale.hours_remaining, 3.0)
        self.assertEqual(fake_db.commits, 1)

    def test_nothing_to_expire_skips_commit(self) -> None:
        fake_db = _FakeToilDB([])

        expired = expire_toil_entries(fake_db, today=date(2026, 3, 2))  # type: ignore[arg-type]

        self.assertEqual(expired, 0)
        self.assertEqual(fake_db.commits, 0)


if __name__ == "__main__":
    unittest.main()
