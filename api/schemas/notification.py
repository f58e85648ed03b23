"""
Notification Schemas
Pydantic models for reminder preferences and scheduler control
"""

from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class ReminderPreferencesUpdate(BaseModel):
    """Schema for updating how a patient is reminded"""
    notify_email: Optional[bool] = None
    notify_push: Optional[bool] = None
    push_subscription: Optional[Dict[str, Any]] = None
    reminder_minutes: Optional[int] = Field(None, ge=1)
    late_window_minutes: Optional[int] = Field(None, ge=1, le=1440)


class ReminderPreferencesResponse(BaseModel):
    patient_id: int
    email: Optional[str] = None
    notify_email: bool
    notify_push: bool
    has_push_subscription: bool
    reminder_minutes: int
    late_window_minutes: int


class SchedulerStatus(BaseModel):
    """Reminder scheduler state"""
    running: bool
    stopping: bool
    sweep_state: Dict[str, str]
    jobs: Dict[str, Dict[str, Any]]
    dispatch_markers: int


class SweepTriggerResponse(BaseModel):
    """Result of a manually triggered sweep"""
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
