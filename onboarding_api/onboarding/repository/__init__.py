from .base import OnboardingRepository, UnitOfWork
from .cassandra import CassandraOnboardingRepository
from .memory import InMemoryOnboardingRepository


__all__ = [
    "CassandraOnboardingRepository",
    "InMemoryOnboardingRepository",
    "OnboardingRepository",
    "UnitOfWork",
]
