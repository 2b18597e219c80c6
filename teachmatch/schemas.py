"""Request bodies for the HTTP API."""

import uuid
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from teachmatch.utils.validation import (
    clean_string_list,
    normalize_schedule,
    sanitize_input,
    validate_email,
)


class Schedule(BaseModel):
    date: str = Field(..., description="YYYY-MM-DD")
    time: str = Field(..., description="HH:MM")

    @model_validator(mode="after")
    def check_format(self) -> "Schedule":
        try:
            normalized = normalize_schedule(self.date, self.time)
        except ValueError as e:
            raise ValueError("schedule must be {'date': 'YYYY-MM-DD', 'time': 'HH:MM'}") from e
        self.date = normalized["date"]
        self.time = normalized["time"]
        return self

    def as_dict(self) -> Dict[str, str]:
        return {"date": self.date, "time": self.time}


class _SubjectMixin(BaseModel):
    subject: str = Field(..., min_length=1, max_length=100)

    @field_validator("subject")
    @classmethod
    def strip_subject(cls, v: str) -> str:
        v = sanitize_input(v, max_length=100)
        if not v:
            raise ValueError("subject must not be empty")
        return v


class AutomatedRequestIn(_SubjectMixin):
    schedule: Schedule
    grade_level: int = Field(..., ge=0, le=20)
    minimum_rating: Optional[float] = Field(default=None, ge=0, le=5)


class DirectRequestIn(_SubjectMixin):
    teacher_id: uuid.UUID
    schedule: Schedule


class RespondIn(BaseModel):
    status: Literal["accepted", "rejected"]
    reason: Optional[str] = Field(default=None, max_length=1000)


class CancelIn(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)


class RescheduleProposalIn(BaseModel):
    new_schedule: Schedule
    reason: Optional[str] = Field(default=None, max_length=1000)


class RescheduleResponseIn(BaseModel):
    reschedule_id: uuid.UUID
    status: Literal["accepted", "rejected"]


class ReviewIn(BaseModel):
    teaching_request_id: uuid.UUID
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=2000)


class MarkReadIn(BaseModel):
    notification_ids: List[uuid.UUID] = Field(default_factory=list)
    mark_all_read: bool = False


class TeacherProfileIn(BaseModel):
    full_name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=4000)
    subjects: Optional[List[str]] = None
    qualifications: Optional[List[str]] = None
    experience_years: Optional[int] = Field(default=None, ge=0, le=80)
    teaching_grade: Optional[int] = Field(default=None, ge=0, le=20)
    availability: Optional[Dict[str, Any]] = None

    @field_validator("email")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not validate_email(v):
            raise ValueError("invalid email address")
        return v

    @field_validator("subjects", "qualifications")
    @classmethod
    def clean_lists(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return None if v is None else clean_string_list(v)


class SchoolProfileIn(BaseModel):
    school_name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = None
    address: Optional[str] = Field(default=None, max_length=500)

    @field_validator("email")
    @classmethod
    def check_email(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not validate_email(v):
            raise ValueError("invalid email address")
        return v
