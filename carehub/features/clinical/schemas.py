"""
Request schemas for notes and tasks.
"""
from datetime import date
from pydantic import BaseModel, ConfigDict, Field, field_validator


class NoteCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_id: int = Field(..., alias="patientId")
    note: str = Field(..., min_length=1)
    type: str | None = Field(None, max_length=50)
    duration: int = Field(0, ge=0)


class TaskCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_id: int = Field(..., alias="patientId")
    title: str = Field(..., min_length=1, max_length=255)
    type: str | None = Field(None, max_length=50)
    description: str | None = None
    priority: str | None = None
    due_date: date | None = Field(None, alias="dueDate")
    duration: int = Field(0, ge=0)
    frequency: str | None = None
    frequency_type: str | None = Field(None, alias="frequencyType")
    status: str | None = None
    program_type: str | None = None
    cpt_code: str | None = None
    billing_minutes: int | None = None


class TaskUpdate(BaseModel):
    """Fields omitted from the request keep their stored value."""
    model_config = ConfigDict(populate_by_name=True)

    task_id: int = Field(..., alias="taskId")
    title: str | None = Field(None, min_length=1, max_length=255)
    type: str | None = Field(None, max_length=50)
    description: str | None = None
    priority: str | None = None
    due_date: date | None = Field(None, alias="dueDate")
    duration: int | None = Field(None, ge=0)
    frequency: str | None = None
    frequency_type: str | None = Field(None, alias="frequencyType")
    status: str | None = None

    @field_validator("title", "duration", "frequency")
    @classmethod
    def not_null(cls, v):
        """Required columns may be left out but not cleared."""
        if v is None:
            raise ValueError("may not be null")
        return v
