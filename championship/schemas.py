from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ChampionshipCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=128)


class DriverCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=128)
    car: str = Field(default="", max_length=128)
    active: bool = True


class DriverUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    car: Optional[str] = Field(default=None, max_length=128)
    active: Optional[bool] = None


class RaceCreate(BaseModel):
    round_number: int = Field(ge=1)
    name: Optional[str] = Field(default=None, max_length=128)
    race_date: Optional[date] = Field(default=None, alias="date")

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class ResultUpdate(BaseModel):
    cp_before: int
    pi_before: int
    penalty_before: int
    cp_after: int
    pi_after: int
    penalty_for_next: int


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1)


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserOut(BaseModel):
    id: int
    email: str
    is_admin: bool
