from datetime import date

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from hrportal.audit import audit_user_action
from hrportal.db import get_db
from hrportal.models import Project, ProjectAssignment, ProjectTimeEntry, User, UserRole
from hrportal.schemas import (
    DailyProjectTimeResponse,
    DailyTimeAllocationRequest,
    DeleteResponse,
    ProjectAssignmentRead,
    ProjectCreate,
    ProjectMemberAddRequest,
    ProjectRead,
    ProjectSummaryRead,
    ProjectUpdate,
    TimeEntryCreate,
    TimeEntryRead,
    TimeEntryUpdate,
)
from hrportal.security import MANAGEMENT_ROLES, require_roles, require_user
from hrportal.services.projects import (
    DailyProjectTime,
    assign_member,
    create_project,
    create_time_entry,
    delete_project,
    delete_time_entry,
    get_daily_project_time,
    get_project_summary,
    list_projects,
    list_projects_for_user,
    replace_daily_time_entries,
    unassign_member,
    update_project,
    update_time_entry,
)

router = APIRouter(tags=["projects"])
PROJECT_WRITE_ROLES = (UserRole.ADMIN, UserRole.MANAGER)


def _daily_response(daily: DailyProjectTime) -> DailyProjectTimeResponse:
    return DailyProjectTimeResponse(
        work_date=daily.work_date,
        available_hours=daily.available_hours,
        allocated_hours=daily.allocated_hours,
        remaining_hours=daily.remaining_hours,
        entries=[TimeEntryRead.model_validate(entry) for entry in daily.entries],
    )


@router.get("/api/projects", response_model=list[ProjectRead])
def list_projects_endpoint(
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[Project]:
    if user.role in MANAGEMENT_ROLES:
        return list_projects(db)
    return list_projects_for_user(db, user.id)


@router.post("/api/projects", response_model=ProjectRead, status_code=status.HTTP_201_CREATED)
def create_project_endpoint(
    payload: ProjectCreate,
    request: Request,
    actor: User = Depends(require_roles(*PROJECT_WRITE_ROLES)),
    db: Session = Depends(get_db),
) -> Project:
    project = create_project(db, payload, created_by=actor)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="PROJECT_CREATED",
        entity_type="project",
        entity_id=project.id,
        details={"name": project.name, "members": len(payload.member_ids)},
    )
    return project


@router.get("/api/projects/{project_id}", response_model=ProjectSummaryRead)
def get_project_endpoint(
    project_id: int,
    _: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> ProjectSummaryRead:
    summary = get_project_summary(db, project_id)
    return ProjectSummaryRead(
        **ProjectRead.model_validate(summary.project).model_dump(),
        actual_hours=summary.actual_hours,
        billable_hours=summary.billable_hours,
        member_ids=summary.member_ids,
    )


@router.put("/api/projects/{project_id}", response_model=ProjectRead)
def update_project_endpoint(
    project_id: int,
    payload: ProjectUpdate,
    request: Request,
    actor: User = Depends(require_roles(*PROJECT_WRITE_ROLES)),
    db: Session = Depends(get_db),
) -> Project:
    project = update_project(db, project_id, payload)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="PROJECT_UPDATED",
        entity_type="project",
        entity_id=project.id,
        details={"fields": sorted(payload.model_fields_set)},
    )
    return project


@router.delete("/api/projects/{project_id}", response_model=DeleteResponse)
def delete_project_endpoint(
    project_id: int,
    request: Request,
    actor: User = Depends(require_roles(*PROJECT_WRITE_ROLES)),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    delete_project(db, project_id)
    audit_user_action(db, request, actor=actor, action="PROJECT_DELETED", entity_type="project", entity_id=project_id)
    return DeleteResponse(ok=True, id=project_id)


@router.post(
    "/api/projects/{project_id}/members",
    response_model=ProjectAssignmentRead,
    status_code=status.HTTP_201_CREATED,
)
def add_project_member_endpoint(
    project_id: int,
    payload: ProjectMemberAddRequest,
    request: Request,
    actor: User = Depends(require_roles(*PROJECT_WRITE_ROLES)),
    db: Session = Depends(get_db),
) -> ProjectAssignment:
    assignment = assign_member(db, project_id, user_id=payload.user_id, role=payload.role)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="PROJECT_MEMBER_ASSIGNED",
        entity_type="project",
        entity_id=project_id,
        details={"user_id": payload.user_id, "role": payload.role},
    )
    return assignment


@router.delete("/api/projects/{project_id}/members/{user_id}", response_model=DeleteResponse)
def remove_project_member_endpoint(
    project_id: int,
    user_id: int,
    request: Request,
    actor: User = Depends(require_roles(*PROJECT_WRITE_ROLES)),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    unassign_member(db, project_id, user_id=user_id)
    audit_user_action(
        db,
        request,
        actor=actor,
        action="PROJECT_MEMBER_UNASSIGNED",
        entity_type="project",
        entity_id=project_id,
        details={"user_id": user_id},
    )
    return DeleteResponse(ok=True, id=user_id)


@router.get("/api/user/projects", response_model=list[ProjectRead])
def my_projects_endpoint(
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[Project]:
    return list_projects_for_user(db, user.id)


@router.post("/api/project-time-entries", response_model=TimeEntryRead, status_code=status.HTTP_201_CREATED)
def create_time_entry_endpoint(
    payload: TimeEntryCreate,
    request: Request,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> ProjectTimeEntry:
    entry = create_time_entry(db, user, payload)
    audit_user_action(
        db,
        request,
        actor=user,
        action="PROJECT_TIME_LOGGED",
        entity_type="project_time_entry",
        entity_id=entry.id,
        details={"project_id": entry.project_id, "hours_spent": entry.hours_spent},
    )
    return entry


@router.put("/api/project-time-entries/{entry_id}", response_model=TimeEntryRead)
def update_time_entry_endpoint(
    entry_id: int,
    payload: TimeEntryUpdate,
    request: Request,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> ProjectTimeEntry:
    entry = update_time_entry(db, entry_id, user, payload)
    audit_user_action(
        db,
        request,
        actor=user,
        action="PROJECT_TIME_UPDATED",
        entity_type="project_time_entry",
        entity_id=entry.id,
        details={"fields": sorted(payload.model_fields_set)},
    )
    return entry


@router.delete("/api/project-time-entries/{entry_id}", response_model=DeleteResponse)
def delete_time_entry_endpoint(
    entry_id: int,
    request: Request,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> DeleteResponse:
    delete_time_entry(db, entry_id, user)
    audit_user_action(
        db,
        request,
        actor=user,
        action="PROJECT_TIME_DELETED",
        entity_type="project_time_entry",
        entity_id=entry_id,
    )
    return DeleteResponse(ok=True, id=entry_id)


@router.get("/api/user/daily-project-time/{day}", response_model=DailyProjectTimeResponse)
def daily_project_time_endpoint(
    day: date,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> DailyProjectTimeResponse:
    return _daily_response(get_daily_project_time(db, user.id, day))


@router.put("/api/user/daily-project-time/{day}", response_model=DailyProjectTimeResponse)
def replace_daily_project_time_endpoint(
    day: date,
    payload: DailyTimeAllocationRequest,
    request: Request,
    user: User = Depends(require_user),
    db: Session = Depends(get_db),
) -> DailyProjectTimeResponse:
    daily = replace_daily_time_entries(db, user, day, payload.allocations)
    audit_user_action(
        db,
        request,
        actor=user,
        action="DAILY_PROJECT_TIME_SAVED",
        entity_type="user",
        entity_id=user.id,
        details={"work_date": day.isoformat(), "allocated_hours": daily.allocated_hours},
    )
    return _daily_response(daily)
