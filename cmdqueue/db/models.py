"""
SQLAlchemy database models.
Defines the job history table.
"""

from datetime import datetime

from sqlalchemy import DateTime, Enum, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from cmdqueue.constants import JobStatus


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class JobHistory(Base):
    """
    Durable copy of a job record.

    The shared store is the source of truth while a job is live; this table
    keeps the latest known state of each job so status queries still work
    after the store's own retention removes a record. Rows are written on
    claim, cancellation and completion.
    """

    __tablename__ = "job_history"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )

    command: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )

    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            name="job_status",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        index=True,
    )

    # Lifecycle timestamps copied from the job record
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    output: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Record version at the time of the write
    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("ix_job_history_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"JobHistory(id={self.id}, status={self.status}, "
            f"version={self.version})"
        )
