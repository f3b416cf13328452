from __future__ import annotations

import datetime as dt

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from championship.database import Base


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Championship(Base):
    __tablename__ = "championships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    drivers: Mapped[list["Driver"]] = relationship(
        "Driver", back_populates="championship", cascade="all, delete-orphan"
    )
    races: Mapped[list["Race"]] = relationship(
        "Race", back_populates="championship", cascade="all, delete-orphan"
    )


class Driver(Base):
    __tablename__ = "drivers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    championship_id: Mapped[int] = mapped_column(
        ForeignKey("championships.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    car: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    championship: Mapped[Championship] = relationship("Championship", back_populates="drivers")
    results: Mapped[list["Result"]] = relationship(
        "Result", back_populates="driver", cascade="all, delete-orphan"
    )


class Race(Base):
    __tablename__ = "races"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    championship_id: Mapped[int] = mapped_column(
        ForeignKey("championships.id"), nullable=False, index=True
    )
    round_number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    championship: Mapped[Championship] = relationship("Championship", back_populates="races")
    results: Mapped[list["Result"]] = relationship(
        "Result", back_populates="race", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("championship_id", "round_number", name="uq_race_round_per_championship"),
    )


class Result(Base):
    __tablename__ = "results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    driver_id: Mapped[int] = mapped_column(ForeignKey("drivers.id"), nullable=False, index=True)
    race_id: Mapped[int] = mapped_column(ForeignKey("races.id"), nullable=False, index=True)
    cp_before: Mapped[int | None] = mapped_column(Integer, nullable=True, default=0)
    pi_before: Mapped[int | None] = mapped_column(Integer, nullable=True, default=0)
    penalty_before: Mapped[int | None] = mapped_column(Integer, nullable=True, default=0)
    # NULL after-values mean "unchanged by this race"
    cp_after: Mapped[int | None] = mapped_column(Integer, nullable=True)
    pi_after: Mapped[int | None] = mapped_column(Integer, nullable=True)
    penalty_for_next: Mapped[int | None] = mapped_column(Integer, nullable=True)

    driver: Mapped[Driver] = relationship("Driver", back_populates="results")
    race: Mapped[Race] = relationship("Race", back_populates="results")

    __table_args__ = (UniqueConstraint("driver_id", "race_id", name="uq_result_driver_race"),)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Admin(Base):
    __tablename__ = "admins"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id"), unique=True, nullable=False, index=True
    )


class RevokedToken(Base):
    __tablename__ = "revoked_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    jti: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    revoked_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
