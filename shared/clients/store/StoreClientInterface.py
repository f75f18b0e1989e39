from abc import abstractmethod
from typing import Callable

from shared.clients.ClientInterface import ClientInterface
from shared.exceptions.EngagementErrors import EngagementError, PersistenceError
from shared.helper.HelperConfig import HelperConfig

Predicate = Callable[[dict], bool]


class StoreClientInterface(ClientInterface):
    """
    Durable keyed storage for engagement entities, grouped in collections.

    Entities travel as JSON-ready dicts carrying an "id" key. The public do_* methods
    wrap backend failures in PersistenceError; engines implement the _do_* hooks.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "store"
        """
        return "store"

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_get(self, collection: str, entity_id: str) -> dict | None:
        """
        Fetches a single entity by id.

        Args:
            collection (str): The collection name, e.g. "signature_requests".
            entity_id (str): The entity id.

        Returns:
            dict | None: The stored entity, or None if it does not exist.

        Raises:
            PersistenceError: If the backend call fails.
        """
        return await self._guard("get", collection, self._do_get(collection, entity_id))

    async def do_list(self, collection: str, predicate: Predicate | None = None) -> list[dict]:
        """
        Lists all entities of a collection matching an optional predicate.

        Args:
            collection (str): The collection name.
            predicate (Callable[[dict], bool] | None): Filter applied to every stored entity.

        Returns:
            list[dict]: The matching entities.

        Raises:
            PersistenceError: If the backend call fails.
        """
        entities = await self._guard("list", collection, self._do_list(collection))
        if predicate is None:
            return entities
        return [entity for entity in entities if predicate(entity)]

    async def do_insert(self, collection: str, data: dict) -> bool:
        """
        Inserts a new entity.

        Returns:
            bool: True if inserted, False if an entity with the same id already exists.

        Raises:
            PersistenceError: If the backend call fails.
        """
        return await self._guard("insert", collection, self._do_insert(collection, data))

    async def do_replace(self, collection: str, data: dict, expected: dict | None = None) -> bool:
        """
        Replaces an existing entity, optionally only if the stored version still matches.

        This is the compare-and-swap primitive every state transition goes through: the
        write only happens if each key in expected equals the stored value.

        Args:
            collection (str): The collection name.
            data (dict): The full new entity, including its "id".
            expected (dict | None): Field values the stored entity must still carry.

        Returns:
            bool: True if replaced, False if the entity is missing or a precondition failed.

        Raises:
            PersistenceError: If the backend call fails.
        """
        return await self._guard("replace", collection, self._do_replace(collection, data, expected))

    async def do_delete(self, collection: str, entity_id: str) -> bool:
        """
        Deletes an entity by id. Idempotent.

        Returns:
            bool: True if an entity was removed, False if none existed.

        Raises:
            PersistenceError: If the backend call fails.
        """
        return await self._guard("delete", collection, self._do_delete(collection, entity_id))

    async def _guard(self, operation: str, collection: str, awaitable):
        try:
            return await awaitable
        except EngagementError:
            raise
        except Exception as exc:
            self.logging.error(
                "Store %s on '%s' failed in engine '%s': %s", operation, collection, self.get_engine_name(), exc
            )
            raise PersistenceError(f"Store {operation} on '{collection}' failed: {exc}") from exc

    ##########################################
    ############ ENGINE HOOKS ################
    ##########################################

    @abstractmethod
    async def _do_get(self, collection: str, entity_id: str) -> dict | None:
        pass

    @abstractmethod
    async def _do_list(self, collection: str) -> list[dict]:
        pass

    @abstractmethod
    async def _do_insert(self, collection: str, data: dict) -> bool:
        pass

    @abstractmethod
    async def _do_replace(self, collection: str, data: dict, expected: dict | None) -> bool:
        pass

    @abstractmethod
    async def _do_delete(self, collection: str, entity_id: str) -> bool:
        pass
