from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for the loyalty ledger tables; models name their tables explicitly."""


# Register every model on Base.metadata for create_all and Alembic
try:  # pragma: no cover - import side effects only
    import loyalty_api.models  # noqa: F401,WPS433
except ImportError:  # pragma: no cover - partial imports during migrations
    pass
