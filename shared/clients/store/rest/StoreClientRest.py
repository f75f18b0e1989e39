import json

from shared.clients.store.StoreClientInterface import StoreClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class StoreClientRest(StoreClientInterface):
    """
    Generic JSON document store spoken to over HTTP.

    Layout expected from the backend:
        GET    /collections/{collection}/documents?page=N&page_size=M  -> {"results": [...], "next": int | null, "count": int}
        GET    /collections/{collection}/documents/{id}                -> 200 entity | 404
        POST   /collections/{collection}/documents                     -> 201 | 409 if the id exists
        PUT    /collections/{collection}/documents/{id}                -> 200 | 404 | 409/412 if a precondition failed
        DELETE /collections/{collection}/documents/{id}                -> 200/204 | 404

    Conditional writes send the expected field values as JSON in the X-If-Match-Fields header.
    """

    PRECONDITION_HEADER = "X-If-Match-Fields"

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=None, val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._page_size = int(self.get_config_val("PAGE_SIZE", default=300, val_type="number"))

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Rest"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=None),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="PAGE_SIZE", val_type="number", default=300),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        if self._api_key:
            return {"Authorization": f"Bearer {self._api_key}"}
        else:
            return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return "/health"

    def _get_endpoint_documents(self, collection: str) -> str:
        return f"/collections/{collection}/documents"

    def _get_endpoint_document_details(self, collection: str, entity_id: str) -> str:
        return f"/collections/{collection}/documents/{entity_id}"

    ##########################################
    ############ ENGINE HOOKS ################
    ##########################################

    async def _do_get(self, collection: str, entity_id: str) -> dict | None:
        resp = await self.do_request(method="GET", endpoint=self._get_endpoint_document_details(collection, entity_id))
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return resp.json()

    async def _do_list(self, collection: str) -> list[dict]:
        entities: list[dict] = []
        page = 1
        while True:
            resp = await self.do_request(
                method="GET",
                endpoint=self._get_endpoint_documents(collection),
                params={"page": page, "page_size": self._page_size},
            )
            resp.raise_for_status()
            body = resp.json()
            entities.extend(body.get("results", []))
            self.logging.debug(
                "Fetched page %d of '%s' from store, %d of %s entities so far",
                page, collection, len(entities), body.get("count"),
            )
            page = body.get("next")
            if not page:
                break
        return entities

    async def _do_insert(self, collection: str, data: dict) -> bool:
        resp = await self.do_request(method="POST", endpoint=self._get_endpoint_documents(collection), json=data)
        if resp.status_code == 409:
            return False
        resp.raise_for_status()
        return True

    async def _do_replace(self, collection: str, data: dict, expected: dict | None) -> bool:
        headers = {self.PRECONDITION_HEADER: json.dumps(expected)} if expected else None
        resp = await self.do_request(
            method="PUT",
            endpoint=self._get_endpoint_document_details(collection, data["id"]),
            json=data,
            additional_headers=headers,
        )
        if resp.status_code in (404, 409, 412):
            return False
        resp.raise_for_status()
        return True

    async def _do_delete(self, collection: str, entity_id: str) -> bool:
        resp = await self.do_request(method="DELETE", endpoint=self._get_endpoint_document_details(collection, entity_id))
        if resp.status_code == 404:
            return False
        resp.raise_for_status()
        return True
