from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Enum, MetaData, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.reflection import Inspector
from sqlalchemy.exc import SQLAlchemyError

from hrportal.models import Base

logger = logging.getLogger("hrportal.schema_guard")

EXPECTED_ALEMBIC_HEAD = "0004_projects"


@dataclass(frozen=True, slots=True)
class SchemaGuardResult:
    ok: bool
    checked_at_utc: datetime
    alembic_version: str | None = None
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "checked_at_utc": self.checked_at_utc.isoformat(),
            "alembic_version": self.alembic_version,
            "issues": list(self.issues),
            "warnings": list(self.warnings),
            "issue_count": len(self.issues),
            "warning_count": len(self.warnings),
        }


def required_table_columns(metadata: MetaData) -> dict[str, set[str]]:
    """Every mapped table with the column names the models read and write."""
    required = {table.name: {column.name for column in table.columns} for table in metadata.sorted_tables}
    required["alembic_version"] = {"version_num"}
    return required


def required_enum_values(metadata: MetaData) -> dict[str, set[str]]:
    required: dict[str, set[str]] = {}
    for table in metadata.sorted_tables:
        for column in table.columns:
            if isinstance(column.type, Enum) and column.type.name:
                required.setdefault(column.type.name, set()).update(column.type.enums)
    return required


REQUIRED_TABLE_COLUMNS = required_table_columns(Base.metadata)
REQUIRED_ENUM_VALUES = required_enum_values(Base.metadata)


def _check_columns(inspector: Inspector, issues: list[str]) -> None:
    for table_name, required_columns in REQUIRED_TABLE_COLUMNS.items():
        try:
            present = {str(item.get("name")) for item in inspector.get_columns(table_name)}
        except SQLAlchemyError as exc:
            issues.append(f"TABLE_UNREADABLE:{table_name}:{exc.__class__.__name__}")
            continue
        missing = sorted(required_columns - present)
        if missing:
            issues.append(f"MISSING_COLUMNS:{table_name}:{','.join(missing)}")


def _check_enums(inspector: Inspector, issues: list[str], warnings: list[str]) -> None:
    try:
        reflected = inspector.get_enums() or []
    except (SQLAlchemyError, NotImplementedError) as exc:
        # only postgres exposes named enum types
        warnings.append(f"ENUM_INSPECTION_FAILED:{exc.__class__.__name__}")
        return

    labels_by_name = {
        str(item["name"]): {str(label) for label in item.get("labels") or []}
        for item in reflected
        if item.get("name")
    }
    for enum_name, required_values in REQUIRED_ENUM_VALUES.items():
        labels = labels_by_name.get(enum_name)
        if labels is None:
            warnings.append(f"ENUM_NOT_FOUND:{enum_name}")
            continue
        missing = sorted(required_values - labels)
        if missing:
            issues.append(f"MISSING_ENUM_VALUES:{enum_name}:{','.join(missing)}")


def _read_alembic_version(engine: Engine, issues: list[str], warnings: list[str]) -> str | None:
    try:
        with engine.connect() as connection:
            row = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1")).scalar()
    except SQLAlchemyError as exc:
        issues.append(f"ALEMBIC_VERSION_CHECK_FAILED:{exc.__class__.__name__}")
        return None

    version = str(row).strip() if row is not None else ""
    if not version:
        issues.append("ALEMBIC_VERSION_EMPTY")
        return None
    if version != EXPECTED_ALEMBIC_HEAD:
        warnings.append(f"ALEMBIC_NOT_AT_HEAD:{version}")
    return version


def verify_runtime_schema(engine: Engine) -> SchemaGuardResult:
    """Compare the live database with the ORM models before serving traffic."""
    issues: list[str] = []
    warnings: list[str] = []
    checked_at_utc = datetime.now(timezone.utc)

    inspector = inspect(engine)
    _check_columns(inspector, issues)
    _check_enums(inspector, issues, warnings)
    version = _read_alembic_version(engine, issues, warnings)

    if issues:
        logger.warning("schema_guard_issues", extra={"issue_count": len(issues)})
    return SchemaGuardResult(
        ok=not issues,
        checked_at_utc=checked_at_utc,
        alembic_version=version,
        issues=issues,
        warnings=warnings,
    )
