from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hrportal.errors import ApiError, not_found
from hrportal.models import Attendance, Project, ProjectAssignment, ProjectTimeEntry, User, UserRole
from hrportal.schemas import (
    ProjectCreate,
    ProjectUpdate,
    TimeAllocation,
    TimeEntryCreate,
    TimeEntryUpdate,
)
from hrportal.services.attendance_calc import validate_time_allocations
from hrportal.settings import get_settings

logger = logging.getLogger("hrportal.projects")


@dataclass(frozen=True)
class DailyProjectTime:
    work_date: date
    available_hours: float
    entries: list[ProjectTimeEntry]

    @property
    def allocated_hours(self) -> float:
        return round(sum(entry.hours_spent for entry in self.entries), 2)

    @property
    def remaining_hours(self) -> float:
        return round(max(0.0, self.available_hours - self.allocated_hours), 2)


@dataclass(frozen=True)
class ProjectSummary:
    project: Project
    actual_hours: float
    billable_hours: float
    member_ids: list[int]


def get_project_or_404(db: Session, project_id: int) -> Project:
    project = db.get(Project, project_id)
    if project is None:
        raise not_found("project")
    return project


def list_projects(db: Session) -> list[Project]:
    return list(db.scalars(select(Project).order_by(Project.created_at.desc(), Project.id.desc())).all())


def list_projects_for_user(db: Session, user_id: int) -> list[Project]:
    stmt = (
        select(Project)
        .join(ProjectAssignment, ProjectAssignment.project_id == Project.id)
        .where(ProjectAssignment.user_id == user_id)
        .order_by(Project.name.asc(), Project.id.asc())
    )
    return list(db.scalars(stmt).all())


def create_project(db: Session, payload: ProjectCreate, *, created_by: User) -> Project:
    if payload.project_manager_id is not None and db.get(User, payload.project_manager_id) is None:
        raise not_found("project manager")

    project = Project(
        name=payload.name.strip(),
        description=payload.description,
        status=payload.status,
        priority=payload.priority,
        start_date=payload.start_date,
        end_date=payload.end_date,
        budget=payload.budget,
        client_name=payload.client_name,
        project_manager_id=payload.project_manager_id,
        created_by=created_by.id,
    )
    db.add(project)
    db.flush()

    for member_id in sorted(set(payload.member_ids)):
        if db.get(User, member_id) is None:
            raise not_found("user")
        db.add(ProjectAssignment(project_id=project.id, user_id=member_id))

    db.commit()
    db.refresh(project)
    logger.info("project_created", extra={"project_id": project.id, "created_by": created_by.id})
    return project


def update_project(db: Session, project_id: int, payload: ProjectUpdate) -> Project:
    project = get_project_or_404(db, project_id)
    changes = payload.model_dump(exclude_unset=True)

    start_date = changes.get("start_date", project.start_date)
    end_date = changes.get("end_date", project.end_date)
    if start_date and end_date and end_date < start_date:
        raise ApiError(
            status_code=422,
            code="INVALID_DATE_RANGE",
            message="end_date must be greater than or equal to start_date.",
        )
    if changes.get("project_manager_id") is not None and db.get(User, changes["project_manager_id"]) is None:
        raise not_found("project manager")

    for field, value in changes.items():
        if value is None and field in {"name", "status", "priority"}:
            continue
        setattr(project, field, value)
    db.commit()
    db.refresh(project)
    return project


def delete_project(db: Session, project_id: int) -> None:
    project = get_project_or_404(db, project_id)
    db.delete(project)
    db.commit()


def assign_member(db: Session, project_id: int, *, user_id: int, role: str | None = None) -> ProjectAssignment:
    get_project_or_404(db, project_id)
    if db.get(User, user_id) is None:
        raise not_found("user")

    existing = db.scalar(
        select(ProjectAssignment).where(
            ProjectAssignment.project_id == project_id,
            ProjectAssignment.user_id == user_id,
        )
    )
    if existing is not None:
        raise ApiError(status_code=409, code="ALREADY_ASSIGNED", message="User is already assigned to this project.")

    assignment = ProjectAssignment(project_id=project_id, user_id=user_id, role=role)
    db.add(assignment)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ApiError(status_code=409, code="ALREADY_ASSIGNED", message="User is already assigned to this project.") from exc
    db.refresh(assignment)
    return assignment


def unassign_member(db: Session, project_id: int, *, user_id: int) -> None:
    assignment = db.scalar(
        select(ProjectAssignment).where(
            ProjectAssignment.project_id == project_id,
            ProjectAssignment.user_id == user_id,
        )
    )
    if assignment is None:
        raise not_found("project assignment")
    db.delete(assignment)
    db.commit()


def _assigned_project_ids(db: Session, user_id: int) -> set[int]:
    return set(db.scalars(select(ProjectAssignment.project_id).where(ProjectAssignment.user_id == user_id)).all())


def _ensure_assigned(db: Session, user_id: int, project_ids: Sequence[int]) -> None:
    assigned = _assigned_project_ids(db, user_id)
    missing = sorted(set(project_ids) - assigned)
    if missing:
        raise ApiError(
            status_code=403,
            code="NOT_ASSIGNED",
            message=f"User is not assigned to project(s): {', '.join(str(item) for item in missing)}.",
        )


def available_hours_for_day(db: Session, user_id: int, day: date) -> float:
    record = db.scalar(select(Attendance).where(Attendance.user_id == user_id, Attendance.work_date == day))
    if record is None or record.check_out is None or not record.working_hours:
        return get_settings().standard_daily_hours
    return round(record.working_hours, 2)


def _raise_if_invalid(available_hours: float, allocations: Sequence[TimeAllocation]) -> None:
    errors = validate_time_allocations(available_hours, allocations)
    if errors:
        raise ApiError(
            status_code=422,
            code="INVALID_TIME_ALLOCATION",
            message=f"Time allocation rejected: {', '.join(errors)} (available {available_hours:g}h).",
        )


def list_daily_time_entries(db: Session, user_id: int, day: date) -> list[ProjectTimeEntry]:
    stmt = (
        select(ProjectTimeEntry)
        .where(ProjectTimeEntry.user_id == user_id, ProjectTimeEntry.work_date == day)
        .order_by(ProjectTimeEntry.project_id.asc(), ProjectTimeEntry.id.asc())
    )
    return list(db.scalars(stmt).all())


def get_daily_project_time(db: Session, user_id: int, day: date) -> DailyProjectTime:
    return DailyProjectTime(
        work_date=day,
        available_hours=available_hours_for_day(db, user_id, day),
        entries=list_daily_time_entries(db, user_id, day),
    )


def replace_daily_time_entries(
    db: Session,
    user: User,
    day: date,
    allocations: Sequence[TimeAllocation],
) -> DailyProjectTime:
    _ensure_assigned(db, user.id, [item.project_id for item in allocations])
    available = available_hours_for_day(db, user.id, day)
    _raise_if_invalid(available, allocations)

    db.execute(
        delete(ProjectTimeEntry).where(
            ProjectTimeEntry.user_id == user.id,
            ProjectTimeEntry.work_date == day,
        )
    )
    now = datetime.now(timezone.utc)
    for allocation in allocations:
        db.add(
            ProjectTimeEntry(
                project_id=allocation.project_id,
                user_id=user.id,
                work_date=day,
                hours_spent=round(allocation.hours_spent, 2),
                billable_hours=round(allocation.billable_hours, 2),
                description=allocation.description,
                task_type=allocation.task_type,
                created_at=now,
            )
        )
    db.commit()
    logger.info(
        "daily_project_time_saved",
        extra={"user_id": user.id, "work_date": day, "allocations": len(allocations)},
    )
    return get_daily_project_time(db, user.id, day)


def create_time_entry(db: Session, user: User, payload: TimeEntryCreate) -> ProjectTimeEntry:
    get_project_or_404(db, payload.project_id)
    _ensure_assigned(db, user.id, [payload.project_id])

    existing = list_daily_time_entries(db, user.id, payload.work_date)
    if any(entry.project_id == payload.project_id for entry in existing):
        raise ApiError(
            status_code=422,
            code="INVALID_TIME_ALLOCATION",
            message="Time allocation rejected: DUPLICATE_PROJECT.",
        )
    combined = [
        TimeAllocation(project_id=entry.project_id, hours_spent=entry.hours_spent, billable_hours=entry.billable_hours)
        for entry in existing
    ]
    combined.append(payload)
    _raise_if_invalid(available_hours_for_day(db, user.id, payload.work_date), combined)

    entry = ProjectTimeEntry(
        project_id=payload.project_id,
        user_id=user.id,
        work_date=payload.work_date,
        hours_spent=round(payload.hours_spent, 2),
        billable_hours=round(payload.billable_hours, 2),
        description=payload.description,
        task_type=payload.task_type,
        created_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def _get_owned_entry(db: Session, entry_id: int, user: User) -> ProjectTimeEntry:
    entry = db.get(ProjectTimeEntry, entry_id)
    if entry is None:
        raise not_found("time entry")
    if entry.user_id != user.id and user.role != UserRole.ADMIN:
        raise ApiError(status_code=403, code="FORBIDDEN", message="Insufficient permissions.")
    return entry


def update_time_entry(db: Session, entry_id: int, user: User, payload: TimeEntryUpdate) -> ProjectTimeEntry:
    entry = _get_owned_entry(db, entry_id, user)
    changes = payload.model_dump(exclude_unset=True)

    hours_spent = changes.get("hours_spent")
    billable_hours = changes.get("billable_hours")
    updated = TimeAllocation(
        project_id=entry.project_id,
        hours_spent=hours_spent if hours_spent is not None else entry.hours_spent,
        billable_hours=billable_hours if billable_hours is not None else entry.billable_hours,
    )
    others = [
        TimeAllocation(project_id=item.project_id, hours_spent=item.hours_spent, billable_hours=item.billable_hours)
        for item in list_daily_time_entries(db, entry.user_id, entry.work_date)
        if item.id != entry.id
    ]
    _raise_if_invalid(available_hours_for_day(db, entry.user_id, entry.work_date), [*others, updated])

    entry.hours_spent = round(updated.hours_spent, 2)
    entry.billable_hours = round(updated.billable_hours, 2)
    if "description" in changes:
        entry.description = changes["description"]
    if "task_type" in changes:
        entry.task_type = changes["task_type"]
    db.commit()
    db.refresh(entry)
    return entry


def delete_time_entry(db: Session, entry_id: int, user: User) -> None:
    entry = _get_owned_entry(db, entry_id, user)
    db.delete(entry)
    db.commit()


def get_project_summary(db: Session, project_id: int) -> ProjectSummary:
    project = get_project_or_404(db, project_id)
    actual, billable = db.execute(
        select(
            func.coalesce(func.sum(ProjectTimeEntry.hours_spent), 0.0),
            func.coalesce(func.sum(ProjectTimeEntry.billable_hours), 0.0),
        ).where(ProjectTimeEntry.project_id == project_id)
    ).one()
    member_ids = list(
        db.scalars(
            select(ProjectAssignment.user_id)
            .where(ProjectAssignment.project_id == project_id)
            .order_by(ProjectAssignment.user_id.asc())
        ).all()
    )
    return ProjectSummary(
        project=project,
        actual_hours=round(float(actual or 0.0), 2),
        billable_hours=round(float(billable or 0.0), 2),
        member_ids=member_ids,
    )
