"""Persistence contract consumed by the series engine"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Set

from obligation_engine.domain.models import Obligation


@dataclass(frozen=True)
class ObligationFilter:
    """Row predicate for bulk edits and deletes; set fields are ANDed"""

    id: Optional[str] = None
    parent_recurring_id: Optional[str] = None
    on_or_after: Optional[date] = None

    def __post_init__(self):
        if self.id is None and self.parent_recurring_id is None:
            raise ValueError("ObligationFilter needs an id or a parent_recurring_id")


class ObligationStore(ABC):
    """
    Create/read/update/delete of obligation records.

    Callers group related writes in `transaction()`: the block commits on
    success and rolls back if it raises.
    """

    @abstractmethod
    def transaction(self) -> AbstractContextManager:
        ...

    @abstractmethod
    def get(self, obligation_id: str) -> Optional[Obligation]:
        ...

    @abstractmethod
    def lock_root(self, root_id: str) -> Optional[Obligation]:
        """Fresh read of a root, holding a row lock until the transaction ends"""

    @abstractmethod
    def create(self, obligation: Obligation) -> Obligation:
        ...

    @abstractmethod
    def list_root_obligations_with_recurrence(self) -> List[Obligation]:
        ...

    @abstractmethod
    def list_instance_dates(self, root_id: str) -> Set[date]:
        """Dates already accounted for in a series: root anchor, children and exclusions"""

    @abstractmethod
    def list_series(self, root_id: str) -> List[Obligation]:
        """Children of a root, ordered by date"""

    @abstractmethod
    def list_obligations(self, kind: Optional[str] = None) -> List[Obligation]:
        ...

    @abstractmethod
    def insert_instances(self, instances: List[Obligation]) -> None:
        ...

    @abstractmethod
    def update_matching(self, predicate: ObligationFilter, fields: Dict[str, Any]) -> int:
        ...

    @abstractmethod
    def delete_matching(self, predicate: ObligationFilter) -> int:
        ...

    @abstractmethod
    def add_exclusion(self, root_id: str, excluded_on: date) -> None:
        ...

    @abstractmethod
    def clear_exclusions(self, root_id: str) -> int:
        ...
