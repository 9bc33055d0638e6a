"""create asset register tables

Revision ID: 3c1e9b7d52a0
Revises:
Create Date: 2026-10-17 09:12:31.518204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision: str = '3c1e9b7d52a0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema: master data, purchase batches and allocation rows."""
    op.create_table(
        "category",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_category_name", "category", ["name"], unique=True)

    op.create_table(
        "department",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("manager", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_department_name", "department", ["name"], unique=True)

    op.create_table(
        "asset",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("asset_name", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("asset_number", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("units", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("target_quantity", sa.Integer(), nullable=True),
        sa.Column("remarks", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.ForeignKeyConstraint(["category_id"], ["category.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_asset_asset_name", "asset", ["asset_name"], unique=False)
    op.create_index("ix_asset_asset_number", "asset", ["asset_number"], unique=False)
    op.create_index("ix_asset_category_id", "asset", ["category_id"], unique=False)

    op.create_table(
        "station",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("location", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("manager", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("contact_number", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("department_id", sa.Integer(), nullable=True),
        sa.Column("remarks", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.ForeignKeyConstraint(["department_id"], ["department.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_station_name", "station", ["name"], unique=False)
    op.create_index("ix_station_department_id", "station", ["department_id"], unique=False)

    op.create_table(
        "employee",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column("department_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["department_id"], ["department.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_employee_name", "employee", ["name"], unique=False)
    op.create_index("ix_employee_department_id", "employee", ["department_id"], unique=False)

    op.create_table(
        "purchase_batch",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("asset_id", sa.Integer(), nullable=False),
        sa.Column("purchase_price", sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("remaining_quantity", sa.Integer(), nullable=False),
        sa.Column("purchase_date", sa.Date(), nullable=False),
        sa.Column("batch_name", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("remarks", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_batch_quantity_positive"),
        sa.CheckConstraint(
            "remaining_quantity >= 0 AND remaining_quantity <= quantity",
            name="ck_batch_remaining_bounds",
        ),
        sa.CheckConstraint("purchase_price >= 0", name="ck_batch_price_non_negative"),
        sa.ForeignKeyConstraint(["asset_id"], ["asset.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_purchase_batch_asset_id", "purchase_batch", ["asset_id"], unique=False)
    op.create_index("ix_purchase_batch_purchase_date", "purchase_batch", ["purchase_date"], unique=False)

    op.create_table(
        "station_allocation",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("asset_id", sa.Integer(), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["asset_id"], ["asset.id"]),
        sa.ForeignKeyConstraint(["station_id"], ["station.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("asset_id", "station_id", name="uq_station_allocation_asset_station"),
    )
    op.create_index("ix_station_allocation_asset_id", "station_allocation", ["asset_id"], unique=False)
    op.create_index("ix_station_allocation_station_id", "station_allocation", ["station_id"], unique=False)

    op.create_table(
        "batch_allocation",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("station_allocation_id", sa.Integer(), nullable=False),
        sa.Column("batch_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("serial_number", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("barcode", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.CheckConstraint("quantity > 0", name="ck_batch_allocation_quantity_positive"),
        sa.ForeignKeyConstraint(["batch_id"], ["purchase_batch.id"]),
        sa.ForeignKeyConstraint(["station_allocation_id"], ["station_allocation.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_batch_allocation_batch_id", "batch_allocation", ["batch_id"], unique=False)
    op.create_index(
        "ix_batch_allocation_station_allocation_id",
        "batch_allocation",
        ["station_allocation_id"],
        unique=False,
    )

    op.create_table(
        "employee_assignment",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("batch_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("serial_number", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("barcode", sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column("assignment_date", sa.Date(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_employee_assignment_quantity_positive"),
        sa.ForeignKeyConstraint(["batch_id"], ["purchase_batch.id"]),
        sa.ForeignKeyConstraint(["employee_id"], ["employee.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_employee_assignment_batch_id", "employee_assignment", ["batch_id"], unique=False)
    op.create_index("ix_employee_assignment_employee_id", "employee_assignment", ["employee_id"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    for table in (
        "employee_assignment",
        "batch_allocation",
        "station_allocation",
        "purchase_batch",
        "employee",
        "station",
        "asset",
        "department",
        "category",
    ):
        op.drop_table(table)
