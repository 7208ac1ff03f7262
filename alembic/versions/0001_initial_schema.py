"""Initial GTC workflow schema: catalogue, points, users, conventions, onboarding, notifications.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    # -----------------------------------------------------------------------
    # 1. Catalogue
    # -----------------------------------------------------------------------

    op.create_table(
        "sectors",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_sectors_name", "sectors", ["name"], unique=True)

    op.create_table(
        "services",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("sector_id", UUID, sa.ForeignKey("sectors.id"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_services_code", "services", ["code"], unique=True)
    op.create_index("ix_services_sector_id", "services", ["sector_id"])

    # -----------------------------------------------------------------------
    # 2. Points and users
    # -----------------------------------------------------------------------

    op.create_table(
        "gtc_points",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("sector_id", UUID, sa.ForeignKey("sectors.id"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_gtc_points_email", "gtc_points", ["email"], unique=True)
    op.create_index("ix_gtc_points_sector_id", "gtc_points", ["sector_id"])

    op.create_table(
        "gtc_point_services",
        sa.Column("gtc_point_id", UUID, sa.ForeignKey("gtc_points.id"), primary_key=True),
        sa.Column("service_id", UUID, sa.ForeignKey("services.id"), primary_key=True),
        sa.Column("status", sa.Text(), nullable=False, server_default="PENDING_REQUEST"),
        *_timestamps(),
    )

    op.create_table(
        "users",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=True),
        sa.Column("password_hash", sa.Text(), nullable=True),
        sa.Column("role", sa.Text(), nullable=False),
        sa.Column("gtc_point_id", UUID, sa.ForeignKey("gtc_points.id"), nullable=True),
        sa.Column("sector_id", UUID, sa.ForeignKey("sectors.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_gtc_point_id", "users", ["gtc_point_id"])
    op.create_index("ix_users_sector_id", "users", ["sector_id"])

    # -----------------------------------------------------------------------
    # 3. Conventions
    # -----------------------------------------------------------------------

    op.create_table(
        "conventions",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("gtc_point_id", UUID, sa.ForeignKey("gtc_points.id"), nullable=False),
        sa.Column("sector_id", UUID, sa.ForeignKey("sectors.id"), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default="NEW"),
        sa.Column("internal_sales_rep", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_conventions_gtc_point_id", "conventions", ["gtc_point_id"])
    op.create_index("ix_conventions_sector_id", "conventions", ["sector_id"])
    op.create_index("ix_conventions_status", "conventions", ["status"])

    op.create_table(
        "convention_documents",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("convention_id", UUID, sa.ForeignKey("conventions.id"), nullable=False),
        sa.Column("kind", sa.Text(), nullable=False, server_default="SIGNED"),
        sa.Column("file_name", sa.Text(), nullable=False),
        sa.Column("path", sa.Text(), nullable=False),
        sa.Column("mime", sa.Text(), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("checksum", sa.Text(), nullable=False),
        sa.Column("uploaded_by_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_convention_documents_convention_id", "convention_documents", ["convention_id"])

    # -----------------------------------------------------------------------
    # 4. Onboarding
    # -----------------------------------------------------------------------

    op.create_table(
        "point_onboardings",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("sector_id", UUID, sa.ForeignKey("sectors.id"), nullable=False),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("include_services", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.Text(), nullable=False, server_default="DRAFT"),
        sa.Column("onboarding_token", sa.Text(), nullable=False),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("registration_token", sa.Text(), nullable=True),
        sa.Column("registration_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("vat_or_tax_number", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("signature_path", sa.Text(), nullable=True),
        sa.Column("signature_mime", sa.Text(), nullable=True),
        sa.Column("signature_name", sa.Text(), nullable=True),
        sa.Column("gtc_point_id", UUID, sa.ForeignKey("gtc_points.id"), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_by_id", UUID, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_point_onboardings_sector_id", "point_onboardings", ["sector_id"])
    op.create_index("ix_point_onboardings_email", "point_onboardings", ["email"])
    op.create_index("ix_point_onboardings_status", "point_onboardings", ["status"])
    op.create_index(
        "ix_point_onboardings_onboarding_token", "point_onboardings", ["onboarding_token"], unique=True
    )
    op.create_index(
        "ix_point_onboardings_registration_token", "point_onboardings", ["registration_token"], unique=True
    )

    op.create_table(
        "point_onboarding_services",
        sa.Column("onboarding_id", UUID, sa.ForeignKey("point_onboardings.id"), primary_key=True),
        sa.Column("service_id", UUID, sa.ForeignKey("services.id"), primary_key=True),
    )

    # -----------------------------------------------------------------------
    # 5. Notifications
    # -----------------------------------------------------------------------

    op.create_table(
        "notifications",
        sa.Column("id", UUID, primary_key=True),
        sa.Column("user_id", UUID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", sa.Text(), nullable=False, server_default="GENERIC"),
        sa.Column("subject", sa.Text(), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_read", "notifications", ["read"])
    op.create_index("ix_notifications_created_at", "notifications", ["created_at"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("point_onboarding_services")
    op.drop_table("point_onboardings")
    op.drop_table("convention_documents")
    op.drop_table("conventions")
    op.drop_table("users")
    op.drop_table("gtc_point_services")
    op.drop_table("gtc_points")
    op.drop_table("services")
    op.drop_table("sectors")
