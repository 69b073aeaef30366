# backend/buildstate/schemas.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Optional, List

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .models import (
    InspectionStatus,
    JobStatus,
    Priority,
    PropertyStatus,
    Role,
    ServiceRequestStatus,
    UnitStatus,
)


def _to_naive_utc(v: datetime) -> datetime:
    # columns are naive UTC
    if v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


UtcDateTime = Annotated[datetime, AfterValidator(_to_naive_utc)]


def _one_of(value: Optional[str], allowed: tuple[str, ...], field: str) -> Optional[str]:
    if value is None:
        return None
    v = str(value).strip().upper()
    if v not in allowed:
        raise ValueError(f"{field} must be one of: {', '.join(allowed)}")
    return v


class ApiModel(BaseModel):
    """Wire format is camelCase; python side stays snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# -------------------- Users / auth --------------------

class UserBrief(ApiModel):
    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None


class UserOut(UserBrief):
    role: str
    is_active: bool
    subscription_status: str
    trial_end_date: Optional[datetime] = None
    created_at: datetime


class RegisterIn(ApiModel):
    email: str
    password: str = Field(min_length=8)
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: str = Role.PROPERTY_MANAGER

    @field_validator("role")
    @classmethod
    def _role(cls, v: str) -> str:
        v = _one_of(v, Role.ALL, "role")
        if v == Role.ADMIN:
            raise ValueError("role ADMIN cannot be self-registered")
        return v

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if "@" not in v:
            raise ValueError("email is invalid")
        return v


class LoginIn(ApiModel):
    email: str
    password: str


class TokenOut(ApiModel):
    token: str
    user: UserOut


# -------------------- Properties --------------------

class PropertyCreate(ApiModel):
    # required-ness is checked in the router so the error names every missing field
    name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: str = "USA"
    property_type: Optional[str] = None
    year_built: Optional[int] = None
    total_units: int = 0
    total_area: Optional[float] = None
    description: Optional[str] = None
    image_url: Optional[str] = None


class PropertyUpdate(ApiModel):
    name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    property_type: Optional[str] = None
    year_built: Optional[int] = None
    total_units: Optional[int] = None
    total_area: Optional[float] = None
    status: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _status(cls, v: Optional[str]) -> Optional[str]:
        return _one_of(v, PropertyStatus.ALL, "status")


class UnitSummaryOut(ApiModel):
    id: int
    unit_number: str
    status: str


class PropertyOwnerOut(ApiModel):
    id: int
    property_id: int
    owner_id: int
    ownership_percentage: float
    owner: UserBrief


class PropertyOut(ApiModel):
    id: int
    manager_id: int
    name: str
    address: str
    city: str
    state: str
    zip_code: str
    country: str
    property_type: str
    year_built: Optional[int] = None
    total_units: int
    total_area: Optional[float] = None
    status: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PropertyListOut(PropertyOut):
    units: List[UnitSummaryOut] = Field(default_factory=list)
    manager: Optional[UserBrief] = None
    counts: dict[str, int] = Field(default_factory=dict)


class OwnerAssignIn(ApiModel):
    owner_id: Optional[int] = None
    ownership_percentage: float = Field(default=100.0, gt=0, le=100)


# -------------------- Units / leases --------------------

class LeaseOut(ApiModel):
    id: int
    unit_id: int
    tenant_id: int
    lease_start: datetime
    lease_end: datetime
    rent_amount: float
    deposit_amount: Optional[float] = None
    is_active: bool
    tenant: UserBrief


class UnitCreate(ApiModel):
    property_id: Optional[int] = None
    unit_number: Optional[str] = None
    floor: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    area: Optional[float] = None
    rent_amount: Optional[float] = None
    status: str = UnitStatus.AVAILABLE
    description: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _status(cls, v: str) -> str:
        return _one_of(v, UnitStatus.ALL, "status")


class UnitUpdate(ApiModel):
    unit_number: Optional[str] = None
    floor: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    area: Optional[float] = None
    rent_amount: Optional[float] = None
    status: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _status(cls, v: Optional[str]) -> Optional[str]:
        return _one_of(v, UnitStatus.ALL, "status")


class UnitOut(ApiModel):
    id: int
    property_id: int
    unit_number: str
    floor: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    area: Optional[float] = None
    rent_amount: Optional[float] = None
    status: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    created_at: datetime
    active_leases: List[LeaseOut] = Field(default_factory=list)


class TenantAssignIn(ApiModel):
    tenant_id: Optional[int] = None
    lease_start: Optional[UtcDateTime] = None
    lease_end: Optional[UtcDateTime] = None
    rent_amount: Optional[float] = None
    deposit_amount: Optional[float] = None


# -------------------- Jobs --------------------

class JobCreate(ApiModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: str = Priority.MEDIUM
    property_id: Optional[int] = None
    unit_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    service_request_id: Optional[int] = None
    scheduled_date: Optional[UtcDateTime] = None
    estimated_cost: Optional[float] = None
    notes: Optional[str] = None

    @field_validator("priority")
    @classmethod
    def _priority(cls, v: str) -> str:
        return _one_of(v, Priority.ALL, "priority")


class JobUpdate(ApiModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    assigned_to_id: Optional[int] = None
    scheduled_date: Optional[UtcDateTime] = None
    estimated_cost: Optional[float] = None
    actual_cost: Optional[float] = None
    notes: Optional[str] = None
    evidence: Optional[Any] = None

    @field_validator("priority")
    @classmethod
    def _priority(cls, v: Optional[str]) -> Optional[str]:
        return _one_of(v, Priority.ALL, "priority")

    @field_validator("status")
    @classmethod
    def _status(cls, v: Optional[str]) -> Optional[str]:
        return _one_of(v, JobStatus.ALL, "status")


class JobOut(ApiModel):
    id: int
    property_id: int
    unit_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    service_request_id: Optional[int] = None
    title: str
    description: str
    status: str
    priority: str
    scheduled_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    estimated_cost: Optional[float] = None
    actual_cost: Optional[float] = None
    notes: Optional[str] = None
    evidence: Optional[Any] = None
    created_at: datetime
    updated_at: datetime
    assigned_to: Optional[UserBrief] = None


# -------------------- Inspections --------------------

class InspectionIssue(ApiModel):
    area: Optional[str] = None
    severity: str = "MEDIUM"
    note: Optional[str] = None


class InspectionCreate(ApiModel):
    title: Optional[str] = None
    type: Optional[str] = None
    scheduled_date: Optional[UtcDateTime] = None
    property_id: Optional[int] = None
    unit_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    notes: Optional[str] = None


class InspectionUpdate(ApiModel):
    title: Optional[str] = None
    type: Optional[str] = None
    scheduled_date: Optional[UtcDateTime] = None
    status: Optional[str] = None
    assigned_to_id: Optional[int] = None
    notes: Optional[str] = None
    findings: Optional[str] = None
    photos: Optional[List[str]] = None
    issues: Optional[List[InspectionIssue]] = None

    @field_validator("status")
    @classmethod
    def _status(cls, v: Optional[str]) -> Optional[str]:
        return _one_of(v, InspectionStatus.ALL, "status")


class InspectionCompleteIn(ApiModel):
    findings: Optional[str] = None
    photos: Optional[List[str]] = None
    issues: Optional[List[InspectionIssue]] = None


class InspectionReportCreate(ApiModel):
    title: Optional[str] = None
    summary: Optional[str] = None


class InspectionReportOut(ApiModel):
    id: int
    inspection_id: int
    created_by_id: int
    title: str
    summary: Optional[str] = None
    pci_score: Optional[int] = None
    created_at: datetime


class InspectionOut(ApiModel):
    id: int
    property_id: int
    unit_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    completed_by_id: Optional[int] = None
    title: str
    type: str
    status: str
    scheduled_date: datetime
    completed_date: Optional[datetime] = None
    notes: Optional[str] = None
    findings: Optional[str] = None
    photos: Optional[List[str]] = None
    issues: List[dict] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    assigned_to: Optional[UserBrief] = None
    report: Optional[InspectionReportOut] = None


# -------------------- Service requests --------------------

class ServiceRequestCreate(ApiModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    priority: str = Priority.MEDIUM
    property_id: Optional[int] = None
    unit_id: Optional[int] = None
    photos: Optional[List[str]] = None

    @field_validator("priority")
    @classmethod
    def _priority(cls, v: str) -> str:
        return _one_of(v, Priority.ALL, "priority")


class ServiceRequestUpdate(ApiModel):
    status: Optional[str] = None
    review_notes: Optional[str] = None
    priority: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _status(cls, v: Optional[str]) -> Optional[str]:
        return _one_of(v, ServiceRequestStatus.ALL, "status")

    @field_validator("priority")
    @classmethod
    def _priority(cls, v: Optional[str]) -> Optional[str]:
        return _one_of(v, Priority.ALL, "priority")


class ConvertToJobIn(ApiModel):
    assigned_to_id: Optional[int] = None
    scheduled_date: Optional[UtcDateTime] = None
    estimated_cost: Optional[float] = None


class JobBrief(ApiModel):
    id: int
    title: str
    status: str


class ServiceRequestOut(ApiModel):
    id: int
    property_id: int
    unit_id: Optional[int] = None
    requested_by_id: int
    title: str
    description: str
    category: str
    priority: str
    status: str
    photos: Optional[List[str]] = None
    review_notes: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    requested_by: Optional[UserBrief] = None
    jobs: List[JobBrief] = Field(default_factory=list)


class ConvertToJobOut(ApiModel):
    job: JobOut
    service_request: ServiceRequestOut


# -------------------- Detail views --------------------

class InspectionBrief(ApiModel):
    id: int
    title: str
    type: str
    status: str
    scheduled_date: datetime


class PropertyDetailOut(PropertyOut):
    manager: Optional[UserBrief] = None
    units: List[UnitOut] = Field(default_factory=list)
    owners: List[PropertyOwnerOut] = Field(default_factory=list)
    counts: dict[str, int] = Field(default_factory=dict)


class UnitDetailOut(UnitOut):
    leases: List[LeaseOut] = Field(default_factory=list)
    recent_jobs: List[JobBrief] = Field(default_factory=list)
    recent_inspections: List[InspectionBrief] = Field(default_factory=list)


# -------------------- Notifications --------------------

class NotificationOut(ApiModel):
    id: int
    user_id: int
    type: str
    title: str
    message: str
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class UnreadCountOut(ApiModel):
    count: int


class BulkResultOut(ApiModel):
    success: bool
    message: str
    count: Optional[int] = None


# -------------------- Generic --------------------

class MessageOut(ApiModel):
    message: str


class UploadOut(ApiModel):
    success: bool
    url: str


class UploadManyOut(ApiModel):
    success: bool
    urls: List[str]
