from typing import Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator


class RegisterSchema(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=6)

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, value):
        if not value.strip():
            raise ValueError('Name is required')
        return value.strip()


class LoginSchema(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class AdminSetupSchema(BaseModel):
    email: EmailStr
    adminKey: str


class ExamSchema(BaseModel):
    """Exam definition as submitted by an administrator"""
    title: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    classLevel: int = Field(default=10, ge=1, le=12)
    description: Optional[str] = None
    totalMarks: int = Field(ge=1)
    passingMarks: int = Field(ge=0)
    duration: int = Field(ge=1)

    @model_validator(mode='after')
    def passing_within_total(self):
        if self.passingMarks > self.totalMarks:
            raise ValueError('Passing marks cannot exceed total marks')
        return self

    def to_record(self):
        return {
            'title': self.title.strip(),
            'subject': self.subject.strip(),
            'class_level': self.classLevel,
            'description': self.description or None,
            'total_marks': self.totalMarks,
            'passing_marks': self.passingMarks,
            'duration': self.duration,
        }


class CheckoutSchema(BaseModel):
    plan: Literal['1', '3', '6']

    @field_validator('plan', mode='before')
    @classmethod
    def plan_as_string(cls, value):
        return str(value) if isinstance(value, int) else value


class StartTestSchema(BaseModel):
    testId: int
