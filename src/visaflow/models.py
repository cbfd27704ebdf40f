"""SQLAlchemy 2.x ORM models for the case-status workflow."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Declarative base for all models."""

    pass


class Company(Base):
    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="client")
    company_id: Mapped[int | None] = mapped_column(ForeignKey("companies.id"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, onupdate=_utcnow)


class Person(Base):
    __tablename__ = "people"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True, index=True)
    cpf: Mapped[str | None] = mapped_column(String(14), nullable=True, unique=True, index=True)
    birth_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    nationality: Mapped[str | None] = mapped_column(String(128), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    marital_status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, onupdate=_utcnow)


class CollectiveProcess(Base):
    __tablename__ = "collective_processes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reference_number: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    company_id: Mapped[int | None] = mapped_column(ForeignKey("companies.id"), nullable=True)
    # Removed field; kept until 0004_archive_collective_process_status has run.
    status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, onupdate=_utcnow)

    individual_processes: Mapped[list[IndividualProcess]] = relationship(
        "IndividualProcess", back_populates="collective_process"
    )


class CaseStatus(Base):
    __tablename__ = "case_statuses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_en: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    color: Mapped[str | None] = mapped_column(String(16), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    # Uniqueness among non-null values is checked in catalog.py; renumbering
    # migrations shift values through transient duplicates.
    order_number: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    fillable_fields: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    allowed_next_codes: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class IndividualProcess(Base):
    __tablename__ = "individual_processes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collective_process_id: Mapped[int | None] = mapped_column(
        ForeignKey("collective_processes.id"), nullable=True, index=True
    )
    person_id: Mapped[int] = mapped_column(ForeignKey("people.id"), nullable=False, index=True)
    case_status_id: Mapped[int | None] = mapped_column(
        ForeignKey("case_statuses.id"), nullable=True, index=True
    )
    # Legacy free-text status; dual-written with the catalog code.
    status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    protocol_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    rnm_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    rnm_deadline: Mapped[str | None] = mapped_column(String(10), nullable=True)
    dou_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    dou_section: Mapped[str | None] = mapped_column(String(32), nullable=True)
    dou_page: Mapped[str | None] = mapped_column(String(32), nullable=True)
    dou_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    mre_office_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    appointment_date_time: Mapped[str | None] = mapped_column(String(32), nullable=True)
    deadline_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    date_process: Mapped[str | None] = mapped_column(String(10), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, onupdate=_utcnow)

    person: Mapped[Person] = relationship("Person")
    case_status: Mapped[CaseStatus | None] = relationship("CaseStatus")
    collective_process: Mapped[CollectiveProcess | None] = relationship(
        "CollectiveProcess", back_populates="individual_processes"
    )
    statuses: Mapped[list[IndividualProcessStatus]] = relationship(
        "IndividualProcessStatus", back_populates="individual_process", cascade="all, delete-orphan"
    )

    __mapper_args__ = {"version_id_col": version}


class IndividualProcessStatus(Base):
    __tablename__ = "individual_process_statuses"
    __table_args__ = (
        Index(
            "uq_active_status_per_process",
            "individual_process_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    individual_process_id: Mapped[int] = mapped_column(
        ForeignKey("individual_processes.id"), nullable=False, index=True
    )
    case_status_id: Mapped[int | None] = mapped_column(
        ForeignKey("case_statuses.id"), nullable=True, index=True
    )
    status_name: Mapped[str] = mapped_column(String(255), nullable=False)
    date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    fillable_fields: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    filled_fields_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    changed_by: Mapped[str] = mapped_column(String(128), nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    individual_process: Mapped[IndividualProcess] = relationship(
        "IndividualProcess", back_populates="statuses"
    )
    case_status: Mapped[CaseStatus | None] = relationship("CaseStatus")


class ActivityLog(Base):
    __tablename__ = "activity_logs"
    __table_args__ = (Index("ix_activity_logs_entity", "entity_type", "entity_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, default="system")
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(64), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(128), nullable=False)
    details_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    correlation_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)


class DataMigration(Base):
    __tablename__ = "data_migrations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    migration_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    applied_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    summary_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
