"""Initial schema for Guardian Shield maintenance backend

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "clients",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("responsable", sa.String(200), nullable=True),
        sa.Column("direccion", sa.String(500), nullable=True),
        sa.Column("phone1", sa.String(30), nullable=True),
        sa.Column("phone2", sa.String(30), nullable=True),
        sa.Column(
            "warehouses",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
            comment="Array of {nombre, direccion}",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_index("ix_clients_name", "clients", ["name"])

    op.create_table(
        "systems",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("color", sa.String(20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )
    op.create_index("ix_systems_name", "systems", ["name"])

    op.create_table(
        "equipments",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("alias", sa.String(200), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("brand", sa.String(100), nullable=False, server_default=""),
        sa.Column("model", sa.String(100), nullable=False, server_default=""),
        sa.Column("type", sa.String(150), nullable=False, server_default=""),
        sa.Column("serial", sa.String(100), nullable=True),
        sa.Column("client", sa.String(200), nullable=True, comment="Client name"),
        sa.Column("system", sa.String(100), nullable=True, comment="System name"),
        sa.Column("location", sa.String(200), nullable=True),
        sa.Column("status", sa.String(30), nullable=False, server_default="Activo"),
        sa.Column("maintenance_start_date", sa.Date(), nullable=True),
        sa.Column("maintenance_periodicity", sa.String(50), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column(
            "protocol_override",
            sa.String(255),
            nullable=True,
            comment="NULL = derived match, '__unlinked__' = detached, else protocol id",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_equipments_client", "equipments", ["client"])
    op.create_index("ix_equipments_system", "equipments", ["system"])
    op.create_index("ix_equipments_classification", "equipments", ["type", "brand", "model"])

    op.create_table(
        "protocols",
        sa.Column("id", sa.String(255), nullable=False, comment="Slug of type + brand + model"),
        sa.Column("type", sa.String(150), nullable=False),
        sa.Column("brand", sa.String(100), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column(
            "steps",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("type", "brand", "model", name="uq_protocols_triple"),
    )

    op.create_table(
        "uploaded_images",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("stored_filename", sa.String(255), nullable=False),
        sa.Column("mime_type", sa.String(100), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=False),
        sa.Column("width", sa.Integer(), nullable=True),
        sa.Column("height", sa.Integer(), nullable=True),
        sa.Column("source", sa.String(20), nullable=False, server_default="upload"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stored_filename"),
    )


def downgrade() -> None:
    op.drop_table("uploaded_images")
    op.drop_table("protocols")
    op.drop_index("ix_equipments_classification", table_name="equipments")
    op.drop_index("ix_equipments_system", table_name="equipments")
    op.drop_index("ix_equipments_client", table_name="equipments")
    op.drop_table("equipments")
    op.drop_index("ix_systems_name", table_name="systems")
    op.drop_table("systems")
    op.drop_index("ix_clients_name", table_name="clients")
    op.drop_table("clients")
