#!/usr/bin/env python
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import create_engine, text


EXPECTED_HEAD = "0004_projects"


def load_env_if_exists() -> None:
    env_file = Path(".env")
    if not env_file.exists():
        return
    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def run() -> dict:
    load_env_if_exists()
    database_url = os.environ.get("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL not found (.env or env vars).")

    engine = create_engine(database_url)
    report: dict = {
        "generated_at_utc": datetime.now(timezone.utc).isoformat(),
        "checks": [],
    }

    def add(name: str, status: str, details: dict) -> None:
        report["checks"].append(
            {
                "name": name,
                "status": status,
                "details": details,
            }
        )

    with engine.connect() as conn:
        tables = set(
            conn.execute(
                text(
                    """
                    select table_name
                    from information_schema.tables
                    where table_schema='public'
                    """
                )
            ).scalars()
        )

        current_versions: list[str] = []
        if "alembic_version" in tables:
            current_versions = [
                row[0]
                for row in conn.execute(text("select version_num from alembic_version")).fetchall()
            ]
        add("alembic_version", "ok" if current_versions else "fail", {"current": current_versions})

        add(
            "migration_up_to_date",
            "ok" if EXPECTED_HEAD in current_versions else "warn",
            {"expected_head": EXPECTED_HEAD, "current": current_versions},
        )

        required_by_revision = {
            "0001+": ["users", "user_sessions", "audit_logs", "work_locations", "holidays", "attendance"],
            "0002+": ["leave_requests", "overtime_requests", "toil_balance"],
            "0003+": ["shifts", "chat_groups", "group_memberships", "messages", "message_delivery_log", "announcements"],
            "0004+": ["projects", "project_assignments", "project_time_entries"],
        }
        missing = {
            rev: [table for table in required if table not in tables]
            for rev, required in required_by_revision.items()
        }
        missing = {rev: tables_ for rev, tables_ in missing.items() if tables_}
        add("missing_tables_by_revision", "warn" if missing else "ok", missing)

        if "users" in tables:
            active_admins = conn.execute(
                text("select count(*) from users where role = 'admin' and is_active = true")
            ).scalar_one()
            add("active_admin_present", "ok" if active_admins else "fail", {"active_admins": active_admins})

        if "attendance" in tables:
            stale_open_records = conn.execute(
                text(
                    """
                    select id
                    from attendance
                    where check_in is not null
                      and check_out is null
                      and work_date < current_date - 1
                    order by id
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "attendance_stale_open_records",
                "warn" if stale_open_records else "ok",
                {"sample_ids": [row[0] for row in stale_open_records]},
            )

            inverted_records = conn.execute(
                text(
                    """
                    select id
                    from attendance
                    where check_out is not null and check_out < check_in
                    limit 20
                    """
                )
            ).fetchall()
            add(
                "attendance_checkout_before_checkin",
                "fail" if inverted_records else "ok",
                {"sample_ids": [row[0] for row in inverted_records]},
            )

        if "toil_balance" in tables:
            negative_toil = conn.execute(
                text("select id from toil_balance where hours_remaining < 0 limit 20")
            ).fetchall()
            add(
                "toil_negative_balance",
                "fail" if negative_toil else "ok",
                {"sample_ids": [row[0] for row in negative_toil]},
            )

        if "user_sessions" in tables:
            expired_sessions = conn.execute(
                text("select count(*) from user_sessions where expires_at < now() or revoked_at is not null")
            ).scalar_one()
            add(
                "expired_sessions_pending_cleanup",
                "warn" if expired_sessions > 1000 else "ok",
                {"count": expired_sessions},
            )

    return report


if __name__ == "__main__":
    print(json.dumps(run(), ensure_ascii=False, indent=2))
