"""
In-memory entity store

Holds the authoritative collection for each entity kind and publishes a
change notification after every write so views can re-render.
"""

import logging
from typing import Callable, Dict, Generic, Iterator, List, Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from crm.models.domain import (
    EntityKind,
    Customer,
    Staff,
    Lead,
    Quote,
    Invoice,
    Ticket,
    Subscription,
    Product,
)
from crm.models.workflow import ChangeEvent
from crm.utils.exceptions import DuplicateIdError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

Listener = Callable[[ChangeEvent], None]

# kind -> (model class, id prefix)
COLLECTION_SPECS: Dict[EntityKind, tuple] = {
    EntityKind.CUSTOMER: (Customer, "CUST"),
    EntityKind.STAFF: (Staff, "ST"),
    EntityKind.LEAD: (Lead, "L"),
    EntityKind.QUOTE: (Quote, "Q"),
    EntityKind.INVOICE: (Invoice, "INV"),
    EntityKind.TICKET: (Ticket, "TKT"),
    EntityKind.SUBSCRIPTION: (Subscription, "SUB"),
    EntityKind.PRODUCT: (Product, "PRD"),
}


class Collection(Generic[T]):
    """Insertion-ordered collection of one entity kind, keyed by id"""

    def __init__(
        self,
        kind: EntityKind,
        model: Type[T],
        prefix: str,
        notify: Optional[Callable[[EntityKind, str, str], None]] = None,
    ):
        self.kind = kind
        self.model = model
        self.prefix = prefix
        self._items: Dict[str, T] = {}
        self._sequence = 1000
        self._notify = notify

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, entity_id: str) -> bool:
        return entity_id in self._items

    def __iter__(self) -> Iterator[T]:
        return iter(self.list())

    def next_id(self, prefix: Optional[str] = None) -> str:
        """
        Generate a fresh id that has never been handed out by this collection.

        The sequence only moves forward and skips ids already present, so an
        id is never reused even when callers supply their own ids.
        """
        prefix = prefix or self.prefix
        while True:
            self._sequence += 1
            candidate = f"{prefix}-{self._sequence}"
            if candidate not in self._items:
                return candidate

    def create(self, entity: T) -> T:
        """
        Insert a new entity, assigning an id when it has none.

        Args:
            entity: Model instance of this collection's type

        Returns:
            A copy of the stored entity

        Raises:
            DuplicateIdError: If the id is already present
        """
        if not isinstance(entity, self.model):
            raise ValidationError(
                f"Expected {self.model.__name__}, got {type(entity).__name__}"
            )
        if not entity.id:
            entity = entity.model_copy(update={"id": self.next_id()})
        if entity.id in self._items:
            raise DuplicateIdError(self.kind.value, entity.id)

        self._items[entity.id] = entity.model_copy(deep=True)
        logger.debug(f"Created {self.kind.value} {entity.id}")
        self._publish(entity.id, "created")
        return self.get(entity.id)

    def update(self, entity_id: str, patch: Dict) -> T:
        """
        Merge a field patch into an existing entity.

        The merged record is re-validated through the model, so a patch that
        breaks a field constraint leaves the stored entity untouched.

        Raises:
            NotFoundError: If the id is absent
            ValidationError: If the patch changes the id or fails validation
        """
        current = self._items.get(entity_id)
        if current is None:
            raise NotFoundError(self.kind.value, entity_id)
        if "id" in patch and patch["id"] != entity_id:
            raise ValidationError("Entity id cannot be changed", field="id")

        data = current.model_dump()
        data.update(patch)
        try:
            merged = self.model.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid {self.kind.value} update: {e}") from e

        self._items[entity_id] = merged.model_copy(deep=True)
        logger.debug(f"Updated {self.kind.value} {entity_id}: {sorted(patch)}")
        self._publish(entity_id, "updated")
        return self.get(entity_id)

    def get(self, entity_id: str) -> T:
        """Return a copy of one entity or raise NotFoundError"""
        entity = self._items.get(entity_id)
        if entity is None:
            raise NotFoundError(self.kind.value, entity_id)
        return entity.model_copy(deep=True)

    def list(self) -> List[T]:
        """Return copies of all entities in insertion order"""
        return [entity.model_copy(deep=True) for entity in self._items.values()]

    def find(self, predicate: Callable[[T], bool]) -> List[T]:
        """Return copies of the entities matching a predicate"""
        return [entity.model_copy(deep=True) for entity in self._items.values() if predicate(entity)]

    def _publish(self, entity_id: str, action: str):
        if self._notify is not None:
            self._notify(self.kind, entity_id, action)


class EntityStore:
    """Entity collections plus a change subscription mechanism"""

    def __init__(self):
        self._listeners: List[Listener] = []
        self._collections: Dict[EntityKind, Collection] = {
            kind: Collection(kind, model, prefix, notify=self._publish)
            for kind, (model, prefix) in COLLECTION_SPECS.items()
        }

    def collection(self, kind: EntityKind) -> Collection:
        return self._collections[EntityKind(kind)]

    @property
    def customers(self) -> Collection[Customer]:
        return self._collections[EntityKind.CUSTOMER]

    @property
    def staff(self) -> Collection[Staff]:
        return self._collections[EntityKind.STAFF]

    @property
    def leads(self) -> Collection[Lead]:
        return self._collections[EntityKind.LEAD]

    @property
    def quotes(self) -> Collection[Quote]:
        return self._collections[EntityKind.QUOTE]

    @property
    def invoices(self) -> Collection[Invoice]:
        return self._collections[EntityKind.INVOICE]

    @property
    def tickets(self) -> Collection[Ticket]:
        return self._collections[EntityKind.TICKET]

    @property
    def subscriptions(self) -> Collection[Subscription]:
        return self._collections[EntityKind.SUBSCRIPTION]

    @property
    def products(self) -> Collection[Product]:
        return self._collections[EntityKind.PRODUCT]

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener for collection changes.

        Returns:
            A callable that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, kind: EntityKind, entity_id: str, action: str):
        event = ChangeEvent(kind=kind, entity_id=entity_id, action=action)
        for listener in list(self._listeners):
            listener(event)
