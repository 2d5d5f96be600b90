"""SQLAlchemy persistence for warmspine state (reports, decisions, locks)."""

from warmspine.core.orm.base import WarmBase
from warmspine.core.orm.session import create_state_engine, init_schema, session_factory
from warmspine.core.orm.tables import CategoryLockTable, CutoverDecisionTable, WarmingReportTable

__all__ = [
    "WarmBase",
    "create_state_engine",
    "init_schema",
    "session_factory",
    "WarmingReportTable",
    "CutoverDecisionTable",
    "CategoryLockTable",
]
