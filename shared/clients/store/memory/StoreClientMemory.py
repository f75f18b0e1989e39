import asyncio
import copy

from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class StoreClientMemory(StoreClientInterface):
    """
    In-process entity store. Used for local runs and tests.

    Every read hands out a deep copy, so callers can never mutate stored state
    without going through do_replace.
    """

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._collections: dict[str, dict[str, dict]] = {}
        self._lock = asyncio.Lock()

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_engine_name(self) -> str:
        return "Memory"

    def _get_required_config(self) -> list[EnvConfig]:
        return []

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self) -> None:
        self.logging.debug("Memory store ready (%d collections).", len(self._collections))

    async def close(self) -> None:
        pass

    async def do_healthcheck(self) -> bool:
        return True

    ##########################################
    ############ ENGINE HOOKS ################
    ##########################################

    def _bucket(self, collection: str) -> dict[str, dict]:
        return self._collections.setdefault(collection, {})

    async def _do_get(self, collection: str, entity_id: str) -> dict | None:
        entity = self._bucket(collection).get(entity_id)
        return copy.deepcopy(entity) if entity is not None else None

    async def _do_list(self, collection: str) -> list[dict]:
        return [copy.deepcopy(entity) for entity in self._bucket(collection).values()]

    async def _do_insert(self, collection: str, data: dict) -> bool:
        async with self._lock:
            bucket = self._bucket(collection)
            if data["id"] in bucket:
                return False
            bucket[data["id"]] = copy.deepcopy(data)
            return True

    async def _do_replace(self, collection: str, data: dict, expected: dict | None) -> bool:
        # check and write happen under one lock, which makes this a compare-and-swap
        async with self._lock:
            bucket = self._bucket(collection)
            current = bucket.get(data["id"])
            if current is None:
                return False
            for key, value in (expected or {}).items():
                if current.get(key) != value:
                    return False
            bucket[data["id"]] = copy.deepcopy(data)
            return True

    async def _do_delete(self, collection: str, entity_id: str) -> bool:
        async with self._lock:
            return self._bucket(collection).pop(entity_id, None) is not None
