"""
Guardian Shield - Database models.

This module defines SQLAlchemy ORM models for the maintenance backend.
Catalog entities use UUIDs as primary keys; protocols are keyed by the
slug of the (type, brand, model) triple they cover.
"""

import uuid
from datetime import date, datetime, UTC
from typing import Any

from sqlalchemy import (
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Client(Base):
    """
    Client model - Companies whose equipment is maintained.

    Warehouses ("almacenes") are stored inline as a JSONB list of
    {"nombre": str, "direccion": str}. Equipment.location refers to a
    warehouse by its nombre.
    """

    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    responsable: Mapped[str | None] = mapped_column(String(200), nullable=True)
    direccion: Mapped[str | None] = mapped_column(String(500), nullable=True)
    phone1: Mapped[str | None] = mapped_column(String(30), nullable=True)
    phone2: Mapped[str | None] = mapped_column(String(30), nullable=True)
    warehouses: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        comment="Array of {nombre, direccion}",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name={self.name})>"


class System(Base):
    """System model - Security system families (CCTV, access control, fire...)."""

    __tablename__ = "systems"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    color: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
        comment="Hex color used by the dashboard badges",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<System(id={self.id}, name={self.name})>"


class Equipment(Base):
    """
    Equipment model - A single installed device.

    Linkage to a protocol is derived from (type, brand, model); there is
    no foreign key. protocol_override takes precedence when set:
    "__unlinked__" detaches the device, any other value names a protocol id.
    """

    __tablename__ = "equipments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    alias: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    brand: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    model: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    type: Mapped[str] = mapped_column(String(150), nullable=False, default="")
    serial: Mapped[str | None] = mapped_column(String(100), nullable=True)
    client: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
        index=True,
        comment="Client name",
    )
    system: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="System name",
    )
    location: Mapped[str | None] = mapped_column(
        String(200),
        nullable=True,
        comment="Warehouse nombre of the owning client",
    )
    status: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default="Activo",
        comment="Activo, Inactivo or En Mantenimiento",
    )
    maintenance_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    maintenance_periodicity: Mapped[str | None] = mapped_column(String(50), nullable=True)
    image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    protocol_override: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="NULL = derived match, '__unlinked__' = detached, else protocol id",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_equipments_classification", "type", "brand", "model"),
    )

    def __repr__(self) -> str:
        return f"<Equipment(id={self.id}, name={self.name}, type={self.type})>"


class Protocol(Base):
    """
    Protocol model - Maintenance checklist shared by a (type, brand, model).

    steps is an ordered JSONB array of
    {step, priority, percentage, completion, notes, image_url}.
    """

    __tablename__ = "protocols"

    id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Slug of type + brand + model",
    )
    type: Mapped[str] = mapped_column(String(150), nullable=False)
    brand: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    steps: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("type", "brand", "model", name="uq_protocols_triple"),
    )

    def __repr__(self) -> str:
        return f"<Protocol(id={self.id}, steps={len(self.steps or [])})>"


class UploadedImage(Base):
    """
    Uploaded Image model - Metadata for step images.

    Images are stored locally in IMAGE_UPLOAD_DIR and served publicly.
    source distinguishes operator uploads from AI-generated illustrations.
    """

    __tablename__ = "uploaded_images"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    filename: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Original filename",
    )
    stored_filename: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        comment="UUID-based stored filename",
    )
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    width: Mapped[int | None] = mapped_column(Integer, nullable=True)
    height: Mapped[int | None] = mapped_column(Integer, nullable=True)
    source: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="upload",
        comment="upload or generated",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<UploadedImage(id={self.id}, filename={self.filename})>"
