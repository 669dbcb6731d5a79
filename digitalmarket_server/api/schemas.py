# Copyright (C) 2024 DigitalMarket Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Pydantic schemas for API request/response."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


# Auth
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserCreate(BaseModel):
    username: str
    email: str  # validated in the endpoint so errors come back localized
    password: str


class UserLogin(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    id: int
    username: str
    email: str
    is_admin: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Password reset
# Numbers from numeric form inputs (e.g. the code) are taken as strings
class ForgotPasswordRequest(BaseModel):
    email: str = ""

    model_config = ConfigDict(coerce_numbers_to_str=True)


class ResetPasswordRequest(BaseModel):
    email: str = ""
    code: str = ""
    new_password: str = ""
    confirm_password: str = ""

    model_config = ConfigDict(coerce_numbers_to_str=True)


class MessageResponse(BaseModel):
    message: str


class PurgeResponse(BaseModel):
    deleted: int
