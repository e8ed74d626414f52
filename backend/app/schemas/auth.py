"""Pydantic schemas for authentication and staff management"""
from pydantic import BaseModel, EmailStr, Field
from typing import Literal, Optional


class SignupRequest(BaseModel):
    email: EmailStr
    password: str
    name: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


class InviteUserRequest(BaseModel):
    email: EmailStr
    role: Literal["admin", "staff", "user"] = "staff"
    name: Optional[str] = Field(None, max_length=255)


class UpdateRoleRequest(BaseModel):
    role: Literal["admin", "staff", "user"]
