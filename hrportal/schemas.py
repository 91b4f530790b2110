from datetime import date, datetime, time
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from hrportal.models import (
    AttendanceStatus,
    AuditActorType,
    CheckInMethod,
    DeliveryStatus,
    GroupRole,
    LeaveType,
    OvertimeCompensation,
    ProjectPriority,
    ProjectStatus,
    RequestStatus,
    ShiftStatus,
    UserRole,
)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    password: str = Field(min_length=1, max_length=256)


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=256)
    full_name: str = Field(min_length=1, max_length=255)


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    email: str = Field(min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=256)
    full_name: str = Field(min_length=1, max_length=255)
    role: UserRole = UserRole.EMPLOYEE
    department: str | None = Field(default=None, max_length=255)
    position: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    hire_date: date | None = None


class UserUpdate(BaseModel):
    email: str | None = Field(default=None, min_length=3, max_length=255, pattern=EMAIL_PATTERN)
    password: str | None = Field(default=None, min_length=8, max_length=256)
    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    phone: str | None = Field(default=None, max_length=64)
    role: UserRole | None = None
    department: str | None = Field(default=None, max_length=255)
    position: str | None = Field(default=None, max_length=255)
    hire_date: date | None = None


class UserActiveUpdateRequest(BaseModel):
    is_active: bool


class UserRead(BaseModel):
    id: int
    username: str
    email: str
    full_name: str
    role: UserRole
    department: str | None = None
    position: str | None = None
    phone: str | None = None
    hire_date: date | None = None
    is_active: bool
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    user: UserRead
    token: str
    expires_at: datetime


class LogoutResponse(BaseModel):
    ok: bool


class WorkLocationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    address: str | None = Field(default=None, max_length=500)
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)
    radius_m: int = Field(default=150, ge=10, le=5000)
    is_active: bool = True


class WorkLocationRead(BaseModel):
    id: int
    name: str
    address: str | None = None
    lat: float
    lon: float
    radius_m: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class AttendanceCheckinRequest(BaseModel):
    method: CheckInMethod = CheckInMethod.GPS
    lat: float | None = Field(default=None, ge=-90, le=90)
    lon: float | None = Field(default=None, ge=-180, le=180)
    accuracy_m: float | None = Field(default=None, ge=0)
    location_label: str | None = Field(default=None, max_length=255)
    biometric_verified: bool = False
    notes: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def validate_coordinates(self) -> "AttendanceCheckinRequest":
        if (self.lat is None) != (self.lon is None):
            raise ValueError("lat and lon must be provided together")
        if self.method == CheckInMethod.MANUAL:
            raise ValueError("MANUAL records are created by administrators")
        return self


class AttendanceCheckoutRequest(BaseModel):
    lat: float | None = Field(default=None, ge=-90, le=90)
    lon: float | None = Field(default=None, ge=-180, le=180)
    accuracy_m: float | None = Field(default=None, ge=0)
    location_label: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def validate_coordinates(self) -> "AttendanceCheckoutRequest":
        if (self.lat is None) != (self.lon is None):
            raise ValueError("lat and lon must be provided together")
        return self


class AttendanceAdminUpdateRequest(BaseModel):
    check_in: datetime | None = None
    check_out: datetime | None = None
    status: AttendanceStatus | None = None
    requires_approval: bool | None = None
    admin_notes: str | None = Field(default=None, max_length=1000)


class AttendanceRead(BaseModel):
    id: int
    user_id: int
    work_date: date
    check_in: datetime | None = None
    check_out: datetime | None = None
    check_in_location: str | None = None
    check_out_location: str | None = None
    check_in_notes: str | None = None
    check_out_notes: str | None = None
    check_in_method: CheckInMethod
    status: AttendanceStatus
    working_hours: float
    overtime_hours: float
    is_location_valid: bool
    requires_approval: bool
    admin_notes: str | None = None
    flags: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class AttendanceWithUserRead(AttendanceRead):
    user_name: str
    user_role: UserRole
    department: str | None = None


class DailyProjectHoursRead(BaseModel):
    work_date: date
    hours: float


class MonthlyAttendanceSummaryRead(BaseModel):
    working_days: int
    present_days: int
    late_days: int
    early_leave_days: int
    incomplete_days: int
    absent_days: int
    total_hours: float
    overtime_hours: float
    project_hours: float
    attendance_rate: float


class MonthlyAttendanceHistoryResponse(BaseModel):
    user_id: int
    year: int
    month: int
    records: list[AttendanceRead]
    project_hours: list[DailyProjectHoursRead]
    summary: MonthlyAttendanceSummaryRead


class LeaveRequestCreate(BaseModel):
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str | None = Field(default=None, max_length=1000)


class RequestReviewRequest(BaseModel):
    status: Literal["approved", "rejected"]
    admin_notes: str | None = Field(default=None, max_length=1000)


class LeaveRequestRead(BaseModel):
    id: int
    user_id: int
    leave_type: LeaveType
    start_date: date
    end_date: date
    days: int
    reason: str | None = None
    status: RequestStatus
    approved_by: int | None = None
    admin_notes: str | None = None
    submitted_at: datetime | None = None
    processed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class OvertimeRequestCreate(BaseModel):
    work_date: date
    start_time: time
    end_time: time
    reason: str | None = Field(default=None, max_length=1000)
    compensation: OvertimeCompensation = OvertimeCompensation.PAID


class OvertimeRequestRead(BaseModel):
    id: int
    user_id: int
    work_date: date
    start_time: time
    end_time: time
    hours: float
    reason: str | None = None
    compensation: OvertimeCompensation
    status: RequestStatus
    approved_by: int | None = None
    admin_notes: str | None = None
    created_at: datetime | None = None
    processed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ToilBalanceResponse(BaseModel):
    user_id: int
    hours_remaining: float


class ShiftCreate(BaseModel):
    user_id: int = Field(ge=1)
    title: str = Field(min_length=1, max_length=255)
    start_time: datetime
    end_time: datetime
    location: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=1000)


class ShiftUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    start_time: datetime | None = None
    end_time: datetime | None = None
    location: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=1000)
    status: ShiftStatus | None = None


class ShiftRead(BaseModel):
    id: int
    user_id: int
    title: str
    start_time: datetime
    end_time: datetime
    location: str | None = None
    notes: str | None = None
    status: ShiftStatus
    created_by: int | None = None

    model_config = ConfigDict(from_attributes=True)


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    recipient_id: int | None = Field(default=None, ge=1)
    group_id: int | None = Field(default=None, ge=1)
    message_type: str = Field(default="text", max_length=32)


class MessageRead(BaseModel):
    id: int
    sender_id: int
    recipient_id: int | None = None
    group_id: int | None = None
    content: str
    message_type: str
    is_read: bool
    delivery_status: DeliveryStatus
    sent_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class MarkReadRequest(BaseModel):
    message_ids: list[int] = Field(min_length=1, max_length=500)


class MarkReadResponse(BaseModel):
    updated: int


class UnreadCountResponse(BaseModel):
    count: int


class MessageDeliveryLogRead(BaseModel):
    id: int
    message_id: int
    recipient_id: int
    delivery_status: DeliveryStatus
    attempts: int
    error_message: str | None = None
    last_attempt_at: datetime | None = None
    delivered_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class ChatGroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=1000)
    member_ids: list[int] = Field(default_factory=list)


class ChatGroupRead(BaseModel):
    id: int
    name: str
    description: str | None = None
    created_by: int | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class GroupMemberAddRequest(BaseModel):
    user_id: int = Field(ge=1)
    role: GroupRole = GroupRole.MEMBER


class GroupMembershipRead(BaseModel):
    id: int
    group_id: int
    user_id: int
    role: GroupRole

    model_config = ConfigDict(from_attributes=True)


class AnnouncementCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    priority: Literal["low", "normal", "high", "urgent"] = "normal"
    expires_at: datetime | None = None


class AnnouncementRead(BaseModel):
    id: int
    title: str
    content: str
    priority: str
    created_by: int | None = None
    is_active: bool
    created_at: datetime | None = None
    expires_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class HolidayUpsert(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    holiday_date: date
    description: str | None = Field(default=None, max_length=1000)
    is_recurring: bool = False


class HolidayRead(BaseModel):
    id: int
    name: str
    holiday_date: date
    description: str | None = None
    is_recurring: bool

    model_config = ConfigDict(from_attributes=True)


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    status: ProjectStatus = ProjectStatus.PLANNING
    priority: ProjectPriority = ProjectPriority.MEDIUM
    start_date: date | None = None
    end_date: date | None = None
    budget: float | None = Field(default=None, ge=0)
    client_name: str | None = Field(default=None, max_length=255)
    project_manager_id: int | None = Field(default=None, ge=1)
    member_ids: list[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_dates(self) -> "ProjectCreate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be greater than or equal to start_date")
        return self


class ProjectUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    status: ProjectStatus | None = None
    priority: ProjectPriority | None = None
    start_date: date | None = None
    end_date: date | None = None
    budget: float | None = Field(default=None, ge=0)
    client_name: str | None = Field(default=None, max_length=255)
    project_manager_id: int | None = Field(default=None, ge=1)


class ProjectRead(BaseModel):
    id: int
    name: str
    description: str | None = None
    status: ProjectStatus
    priority: ProjectPriority
    start_date: date | None = None
    end_date: date | None = None
    budget: float | None = None
    client_name: str | None = None
    project_manager_id: int | None = None
    created_by: int | None = None

    model_config = ConfigDict(from_attributes=True)


class ProjectSummaryRead(ProjectRead):
    actual_hours: float
    billable_hours: float
    member_ids: list[int]


class ProjectMemberAddRequest(BaseModel):
    user_id: int = Field(ge=1)
    role: str | None = Field(default=None, max_length=100)


class ProjectAssignmentRead(BaseModel):
    id: int
    project_id: int
    user_id: int
    role: str | None = None

    model_config = ConfigDict(from_attributes=True)


class TimeAllocation(BaseModel):
    project_id: int = Field(ge=1)
    hours_spent: float
    billable_hours: float = 0.0
    description: str | None = Field(default=None, max_length=1000)
    task_type: str | None = Field(default=None, max_length=64)


class TimeEntryCreate(TimeAllocation):
    work_date: date


class TimeEntryUpdate(BaseModel):
    hours_spent: float | None = None
    billable_hours: float | None = None
    description: str | None = Field(default=None, max_length=1000)
    task_type: str | None = Field(default=None, max_length=64)


class TimeEntryRead(BaseModel):
    id: int
    project_id: int
    user_id: int
    work_date: date
    hours_spent: float
    billable_hours: float
    description: str | None = None
    task_type: str | None = None

    model_config = ConfigDict(from_attributes=True)


class DailyTimeAllocationRequest(BaseModel):
    allocations: list[TimeAllocation] = Field(default_factory=list, max_length=50)


class DailyProjectTimeResponse(BaseModel):
    work_date: date
    available_hours: float
    allocated_hours: float
    remaining_hours: float
    entries: list[TimeEntryRead]


class DashboardMetricsResponse(BaseModel):
    total_employees: int
    present_today: int
    attendance_rate: float
    pending_leaves: int
    pending_overtime: int
    new_hires: int


class PendingRequestsResponse(BaseModel):
    leave_requests: list[LeaveRequestRead]
    overtime_requests: list[OvertimeRequestRead]


class AttendanceTrendPoint(BaseModel):
    work_date: date
    present: int
    late: int
    early_leave: int
    incomplete: int
    absent: int


class SessionStatsResponse(BaseModel):
    total: int
    expired: int
    active: int


class MaintenanceRunResponse(BaseModel):
    job: str
    result: dict[str, int]


class AuditLogRead(BaseModel):
    id: int
    ts_utc: datetime
    actor_type: AuditActorType
    actor_id: str
    action: str
    entity_type: str | None
    entity_id: str | None
    ip: str | None
    user_agent: str | None
    success: bool
    details: dict[str, Any]

    model_config = ConfigDict(from_attributes=True)


class DeleteResponse(BaseModel):
    ok: bool
    id: int
