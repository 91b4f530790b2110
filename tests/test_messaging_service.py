from __future__ import annotations

import unittest
from datetime import datetime, timezone

from hrportal.models import DeliveryStatus, Message, MessageDeliveryLog
from hrportal.services.messaging import update_delivery_status


class _FakeScalars:
    def __init__(self, rows: list[object]):
        self._rows = rows

    def all(self) -> list[object]:
        return list(self._rows)


class _FakeDeliveryDB:
    """Applies the read-receipt filter the way the database would."""

    def __init__(self, logs: list[MessageDeliveryLog], message: Message):
        self.logs = logs
        self.message = message
        self.statements: list[object] = []
        self.commits = 0

    def scalars(self, statement):  # type: ignore[no-untyped-def]
        self.statements.append(statement)
        rows = self.logs
        if "message_delivery_log.delivery_status !=" in str(statement):
            rows = [log for log in rows if log.delivery_status != DeliveryStatus.READ]
        return _FakeScalars(rows)

    def get(self, _model, _pk):  # type: ignore[no-untyped-def]
        return self.message

    def commit(self) -> None:
        self.commits += 1


def _log(recipient_id: int, status: DeliveryStatus) -> MessageDeliveryLog:
    return MessageDeliveryLog(
        id=recipient_id,
        message_id=77,
        recipient_id=recipient_id,
        delivery_status=status,
        attempts=0,
        last_attempt_at=datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc),
    )


def _message(status: DeliveryStatus) -> Message:
    return Message(
        id=77,
        sender_id=3,
        group_id=9,
        content="Toplanti",
        message_type="text",
        is_read=False,
        is_deleted=False,
        delivery_status=status,
    )


class UpdateDeliveryStatusTests(unittest.TestCase):
    def test_read_log_is_not_downgraded_to_delivered(self) -> None:
        read_log = _log(4, DeliveryStatus.READ)
        pending_log = _log(5, DeliveryStatus.PENDING)
        fake_db = _FakeDeliveryDB([read_log, pending_log], _message(DeliveryStatus.PENDING))

        updated = update_delivery_status(fake_db, 77, [4, 5], status=DeliveryStatus.DELIVERED)  # type: ignore[arg-type]

        self.assertEqual(updated, 1)
        self.assertEqual(read_log.delivery_status, DeliveryStatus.READ)
        self.assertEqual(read_log.attempts, 0)
        self.assertEqual(pending_log.delivery_status, DeliveryStatus.DELIVERED)
        self.assertEqual(pending_log.attempts, 1)
        self.assertIsNotNone(pending_log.delivered_at)
        self.assertEqual(fake_db.message.delivery_status, DeliveryStatus.DELIVERED)
        self.assertEqual(fake_db.commits, 1)

    def test_failed_log_can_be_delivered_on_retry(self) -> None:
        failed_log = _log(4, DeliveryStatus.FAILED)
        fake_db = _FakeDeliveryDB([failed_log], _message(DeliveryStatus.DELIVERED))

        update_delivery_status(fake_db, 77, [4], status=DeliveryStatus.DELIVERED)  # type: ignore[arg-type]

        self.assertEqual(failed_log.delivery_status, DeliveryStatus.DELIVERED)

    def test_read_message_status_is_kept(self) -> None:
        fake_db = _FakeDeliveryDB([_log(4, DeliveryStatus.PENDING)], _message(DeliveryStatus.READ))

        update_delivery_status(fake_db, 77, [4], status=DeliveryStatus.DELIVERED)  # type: ignore[arg-type]

        self.assertEqual(fake_db.message.delivery_status, DeliveryStatus.READ)

    def test_no_recipients_skips_the_database(self) -> None:
        fake_db = _FakeDeliveryDB([], _message(DeliveryStatus.PENDING))

        self.assertEqual(update_delivery_status(fake_db, 77, [], status=DeliveryStatus.DELIVERED), 0)  # type: ignore[arg-type]
        self.assertEqual(fake_db.statements, [])
        self.assertEqual(fake_db.commits, 0)


if __name__ == "__main__":
    unittest.main()
