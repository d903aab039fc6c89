"""Event store access — SQLAlchemy async engine and ORM models."""
