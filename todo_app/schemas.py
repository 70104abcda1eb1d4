from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_validator
from datetime import datetime
from typing import Optional


def _clean_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if not v.strip():
        raise ValueError('Title cannot be empty or just whitespace')
    return v.strip()


class TaskBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=200, description="Task title")
    completed: StrictBool = Field(default=False, description="Task completion status")

    @field_validator('title')
    @classmethod
    def title_must_not_be_empty(cls, v: str) -> str:
        """Validate title is not just whitespace"""
        return _clean_title(v)


class TaskCreate(TaskBase):
    """Schema for creating a task"""
    pass


class TaskReplace(BaseModel):
    """Schema for replacing a task - every writable field is required"""
    title: str = Field(..., min_length=1, max_length=200)
    completed: StrictBool

    @field_validator('title')
    @classmethod
    def title_must_not_be_empty(cls, v: str) -> str:
        return _clean_title(v)


class TaskUpdate(BaseModel):
    """Schema for updating a task - fields may be omitted but not sent as null"""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    completed: Optional[StrictBool] = None

    @field_validator('title', 'completed')
    @classmethod
    def reject_explicit_null(cls, v):
        # Only runs for fields present in the body; both columns are NOT NULL
        if v is None:
            raise ValueError('Field may be omitted but cannot be null')
        return v

    @field_validator('title')
    @classmethod
    def title_must_not_be_empty(cls, v: Optional[str]) -> Optional[str]:
        return _clean_title(v)


class Task(TaskBase):
    """Schema for returning a task"""
    id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserCredentials(BaseModel):
    username: str = Field(..., min_length=1, max_length=150)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator('username')
    @classmethod
    def username_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError('Username cannot be empty or just whitespace')
        return v.strip()


class UserRegister(UserCredentials):
    pass


class UserLogin(UserCredentials):
    pass


class UserResponse(BaseModel):
    id: int
    username: str

    model_config = ConfigDict(from_attributes=True)


class Message(BaseModel):
    message: str


class LoginResponse(Message):
    username: str
