from typing import Any, Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    username: str
    password: str


class CreateAdminRequest(BaseModel):
    name: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None


class CreateSubAdminRequest(CreateAdminRequest):
    credit: Optional[Any] = None


class CreateUserRequest(CreateSubAdminRequest):
    user_commission: Optional[Any] = None
    owner_commission: Optional[Any] = None


class UsernameChangeRequest(BaseModel):
    username: Optional[str] = None


class NameChangeRequest(BaseModel):
    name: Optional[str] = None


class PasswordChangeRequest(BaseModel):
    current_password: Optional[str] = Field(default=None, alias="currentPassword")
    new_password: Optional[str] = Field(default=None, alias="newPassword")
    confirm_password: Optional[str] = Field(default=None, alias="confirmPassword")


class CommissionChangeRequest(BaseModel):
    commission: Optional[Any] = None


class OperationResponse(BaseModel):
    success: bool
    message: Optional[str] = None
