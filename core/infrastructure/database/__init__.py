"""Database infrastructure - engine, ORM models, repositories, unit of work."""
from .config import close_database, create_engine, create_session_factory, init_database
from .models import Base
from .unit_of_work import UnitOfWork, create_uow

__all__ = [
    "Base",
    "UnitOfWork",
    "close_database",
    "create_engine",
    "create_session_factory",
    "create_uow",
    "init_database",
]
