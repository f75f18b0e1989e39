"""Typed access to one store collection.

Converts between pydantic entities and the JSON dicts the store engines hold.
"""

from enum import Enum
from typing import Callable, Generic, TypeVar

from pydantic import BaseModel

from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.exceptions.EngagementErrors import NotFoundError, PersistenceError

T = TypeVar("T", bound=BaseModel)

# collection names
SIGNABLE_DOCUMENTS = "signable_documents"
SIGNATURE_FIELDS = "signature_fields"
SIGNATURE_REQUESTS = "signature_requests"
DIGITAL_SIGNATURES = "digital_signatures"
SCHEDULED_UPDATES = "scheduled_updates"
PROGRESS_UPDATES = "progress_updates"
MILESTONE_UPDATES = "milestone_updates"
UPDATE_NOTIFICATIONS = "update_notifications"


class StoreRepository(Generic[T]):

    def __init__(
        self,
        store: StoreClientInterface,
        collection: str,
        model: type[T],
        exclude: set[str] | None = None,
    ) -> None:
        self._store = store
        self.collection = collection
        self._model = model
        self._exclude = exclude or set()

    def _dump(self, entity: T) -> dict:
        return entity.model_dump(mode="json", exclude=self._exclude)

    @staticmethod
    def _plain(expected: dict) -> dict:
        return {key: value.value if isinstance(value, Enum) else value for key, value in expected.items()}

    async def get(self, entity_id: str) -> T | None:
        data = await self._store.do_get(self.collection, entity_id)
        return self._model.model_validate(data) if data is not None else None

    async def require(self, entity_id: str) -> T:
        """Like get(), but raises NotFoundError when the entity is absent."""
        entity = await self.get(entity_id)
        if entity is None:
            raise NotFoundError(self._model.__name__, entity_id)
        return entity

    async def list(self, predicate: Callable[[T], bool] | None = None) -> list[T]:
        entities = [self._model.model_validate(data) for data in await self._store.do_list(self.collection)]
        if predicate is None:
            return entities
        return [entity for entity in entities if predicate(entity)]

    async def insert(self, entity: T) -> T:
        if not await self._store.do_insert(self.collection, self._dump(entity)):
            raise PersistenceError(f"{self._model.__name__} '{entity.id}' already exists in '{self.collection}'.")
        return entity

    async def replace(self, entity: T, expected: dict | None = None) -> bool:
        """Conditional replace; see StoreClientInterface.do_replace."""
        return await self._store.do_replace(
            self.collection, self._dump(entity), self._plain(expected) if expected else None
        )

    async def delete(self, entity_id: str) -> bool:
        return await self._store.do_delete(self.collection, entity_id)
