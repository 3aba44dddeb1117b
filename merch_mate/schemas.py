"""Request bodies accepted by the JSON endpoints.

Field names follow the wire format the web client already sends.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, EmailStr, Field, StrictBool, field_validator


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class SignupRequest(BaseModel):
    first_name: str
    middle_name: Optional[str] = None
    last_name: str
    national_id_no: int
    staff_no: int
    username: str
    email: str
    password: str
    role: str


class ChangePasswordRequest(BaseModel):
    email: EmailStr
    old_password: str
    new_password: str


class ResetPasswordRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., validation_alias=AliasChoices('password', 'new_password'))


class EditUserRequest(BaseModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)


class EditStatusRequest(BaseModel):
    status: Literal['active', 'blocked']


class EditRoleRequest(BaseModel):
    role: Literal['admin', 'merchandiser', 'manager']


class FacilityCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    location: str = Field(..., min_length=1, max_length=200)
    type: str = Field(..., min_length=1, max_length=200)


class DateRange(BaseModel):
    start_date: date
    end_date: date


class InstructionIn(BaseModel):
    id: Optional[str] = None
    facility: int
    start: datetime
    end: datetime
    instructions: Optional[str] = None
    kpi_metrics: list[str] = Field(default_factory=list, validation_alias=AliasChoices('kpi_metrics', 'kpis'))


class RoutePlanCreate(BaseModel):
    staff_no: int
    status: Literal['pending', 'complete'] = 'pending'
    date_range: DateRange
    instructions: list[InstructionIn] = Field(..., min_length=1)


class InstructionWindow(BaseModel):
    instruction_id: str = Field(..., validation_alias=AliasChoices('instruction_id', 'id'))
    start: datetime
    end: datetime


class ModifyRouteRequest(BaseModel):
    status: Optional[Literal['pending', 'complete']] = None
    instructions: list[InstructionWindow] = Field(default_factory=list)


class InstructionStatusRequest(BaseModel):
    instruction_id: str
    status: Literal['pending', 'complete']


class RoutePlanStatusRequest(BaseModel):
    status: Literal['pending', 'complete']


class ApproveResponseRequest(BaseModel):
    response_id: int
    instruction_id: str
    route_plan_id: int


class RejectResponseRequest(BaseModel):
    reason: str = Field(..., min_length=1, validation_alias=AliasChoices('reason', 'message'))


class KpiCreate(BaseModel):
    sector_name: str = Field(..., min_length=1, max_length=100)
    company_name: str = Field(..., min_length=1, max_length=100)
    performance_metric: dict[str, dict[str, StrictBool]] = Field(..., min_length=1)


class KpiUpdate(BaseModel):
    performance_metric: dict[str, dict[str, StrictBool]] = Field(..., min_length=1)


class ReplyRequest(BaseModel):
    message_id: int
    reply: str = Field(..., min_length=1)


class AssignMerchandisersRequest(BaseModel):
    manager_id: Optional[int] = None
    merchandiser_ids: list[int] = Field(
        ..., min_length=1, validation_alias=AliasChoices('merchandiser_ids', 'merchandiser_id')
    )
    month: date = Field(..., validation_alias=AliasChoices('month', 'date_time'))

    @field_validator('month', mode='before')
    @classmethod
    def _date_part(cls, value):
        # The assignment form sends "YYYY-MM-DD HH:MM:SS".
        if isinstance(value, str) and len(value) > 10:
            return value[:10]
        return value


class LocationCreate(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
