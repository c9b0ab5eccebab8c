"""Inbox core schema (companies, pages, customers, conversations, messages).

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from pathlib import Path

from alembic import op


revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

_TABLES = (
    "messages",
    "conversations",
    "customers",
    "facebook_pages",
    "user_company_roles",
    "users",
    "companies",
)


def upgrade() -> None:
    sql_path = Path(__file__).resolve().parents[1] / "sql" / "001_initial_schema.sql"
    sql = sql_path.read_text(encoding="utf-8")
    conn = op.get_bind()
    conn.exec_driver_sql(sql)


def downgrade() -> None:
    conn = op.get_bind()
    for table in _TABLES:
        conn.exec_driver_sql(f"DROP TABLE IF EXISTS {table} CASCADE;")
