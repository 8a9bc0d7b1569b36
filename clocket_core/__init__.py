"""Core persistence and business logic package for Clocket."""

from .accounts import AccountsRepository
from .budgets import BudgetsRepository
from .categories import CategoriesRepository
from .config import Settings
from .cuotas import CuotasRepository
from .events import TRANSACTIONS_CHANGED, ChangeChannel, ChangeEvent
from .exceptions import PersistenceError, RecordNotFoundError, ValidationError
from .goals import GoalCategorySynchronizer, GoalsRepository
from .investments import InvestmentsRepository
from .ledger import LedgerService
from .models import NO_SUBCATEGORY, ScopeRule
from .registry import Repositories, build_repositories
from .repository import VersionedRepository
from .settings import AppSettingsRepository
from .storage import JSONFileStore, MemoryStore, StoreAdapter
from .transactions import TransactionsRepository

__all__ = [
    "AccountsRepository",
    "AppSettingsRepository",
    "BudgetsRepository",
    "CategoriesRepository",
    "ChangeChannel",
    "ChangeEvent",
    "CuotasRepository",
    "GoalCategorySynchronizer",
    "GoalsRepository",
    "InvestmentsRepository",
    "JSONFileStore",
    "LedgerService",
    "MemoryStore",
    "NO_SUBCATEGORY",
    "PersistenceError",
    "RecordNotFoundError",
    "Repositories",
    "ScopeRule",
    "Settings",
    "StoreAdapter",
    "TRANSACTIONS_CHANGED",
    "TransactionsRepository",
    "ValidationError",
    "VersionedRepository",
    "build_repositories",
]
