"""Database-agnostic type definitions for SQLAlchemy models.

Pricing tables run on PostgreSQL in production and on SQLite in tests, so
column types used by the models must render on both backends.
"""
from sqlalchemy import JSON, Numeric, Uuid
from sqlalchemy.dialects.postgresql import JSONB

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")

# Native UUID on PostgreSQL, CHAR(32) on SQLite
UUIDType = Uuid(as_uuid=True)

# Money columns: two decimal places, returned as Decimal
MoneyType = Numeric(10, 2, asdecimal=True)
