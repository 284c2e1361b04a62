"""financial foundation: clients, contracts, dfc chart of accounts and entries

Revision ID: 0101_financial_foundation
Revises: 
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0101_financial_foundation"
down_revision = None
branch_labels = None
depends_on = None


def _idx(table: str, col: str, unique: bool = False) -> None:
    op.create_index(op.f(f"ix_{table}_{col}"), table, [col], unique=unique)


def upgrade() -> None:
    op.create_table(
        "clients",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("nome", sa.String(length=160), nullable=False),
        sa.Column("cnpj", sa.String(length=20), nullable=True),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("cluster", sa.String(length=60), nullable=False),
        sa.Column("responsavel", sa.String(length=120), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("cnpj"),
    )
    for c in ["nome", "status"]:
        _idx("clients", c)

    op.create_table(
        "contracts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("servico", sa.String(length=120), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False),
        sa.Column("valor_recorrente", sa.Numeric(14, 2), nullable=False),
        sa.Column("valor_pontual", sa.Numeric(14, 2), nullable=False),
        sa.Column("squad", sa.String(length=60), nullable=False),
        sa.Column("data_inicio", sa.Date(), nullable=True),
        sa.Column("data_encerramento", sa.Date(), nullable=True),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    for c in ["client_id", "status"]:
        _idx("contracts", c)

    op.create_table(
        "dfc_categories",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("categoria_id", sa.String(length=40), nullable=False),
        sa.Column("nome", sa.String(length=160), nullable=False),
        sa.Column("tipo", sa.String(length=10), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    _idx("dfc_categories", "categoria_id", unique=True)
    _idx("dfc_categories", "tipo")

    op.create_table(
        "dfc_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("categoria_id", sa.String(length=40), nullable=False),
        sa.Column("tipo", sa.String(length=10), nullable=False),
        sa.Column("descricao", sa.String(length=255), nullable=False),
        sa.Column("valor_pago", sa.Numeric(14, 2), nullable=False),
        sa.Column("data_vencimento", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=24), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    for c in ["categoria_id", "tipo", "data_vencimento", "client_id"]:
        _idx("dfc_entries", c)


def downgrade() -> None:
    op.drop_table("dfc_entries")
    op.drop_table("dfc_categories")
    op.drop_table("contracts")
    op.drop_table("clients")
