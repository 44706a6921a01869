"""Users table model using SQLAlchemy Core.

Clients, veterinarians and secretaries share one party record. The role column
discriminates them and the veterinarian-only attributes stay null for the
other roles.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    String,
    Table,
    Text,
    Uuid,
    func,
    text,
)

from vetclinic.models.metadata import metadata

users = Table(
    "users",
    metadata,
    Column("id", Uuid, primary_key=True),
    Column("role", String(20), nullable=False, index=True),
    # Profile
    Column("first_name", Text, nullable=False),
    Column("last_name", Text, nullable=False),
    Column("email", Text, nullable=True, index=True),
    Column("phone", String(20), nullable=True),
    # Veterinarian attributes
    Column("specialty", Text, nullable=True),
    Column("license_number", String(100), nullable=True, unique=True),
    # Account state
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    # Audit
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "role IN ('client', 'veterinarian', 'secretary')",
        name="users_role_check",
    ),
)
