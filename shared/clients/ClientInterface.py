from abc import ABC, abstractmethod
from typing import Any

import httpx
from httpx._types import QueryParamTypes

from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig


class ClientInterface(ABC):
    """
    Base class of every collaborator client (entity store, notifier).

    A client is identified by its type ("store") and engine ("rest"). Its settings live
    in {TYPE}_{ENGINE}_{KEY} variables, and the keys it declares in _get_required_config()
    are checked when the client is constructed. Engines talking HTTP share one pooled
    httpx.AsyncClient opened by boot(); in-process engines override boot() and
    do_healthcheck() and never open a connection.
    """

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()
        self._helper_config = helper_config
        self.timeout = helper_config.get_number_val(f"{self.get_client_type().upper()}_TIMEOUT", default=30.0)
        self._client: httpx.AsyncClient | None = None
        self.validate_full_configuration()

    ##########################################
    ############### CHECKER ##################
    ##########################################

    def validate_full_configuration(self) -> None:
        """
        Raises:
            ValueError: If a declared configuration key is missing or has the wrong type.
        """
        for config in self._get_required_config():
            self.get_config_val(raw_key=config.env_key, default=config.default, val_type=config.val_type)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def get_client_type(self) -> str:
        return self._get_client_type().lower()

    @abstractmethod
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "store"
        """
        pass

    def get_engine_name(self) -> str:
        return self._get_engine_name().lower()

    @abstractmethod
    def _get_engine_name(self) -> str:
        """
        Returns the name of the engine. E.g. "Memory", "Rest", "Webhook"
        """
        pass

    ################ CONFIG ##################
    @abstractmethod
    def _get_required_config(self) -> list[EnvConfig]:
        """
        Returns:
            list[EnvConfig]: Every configuration key the engine reads. A default of None marks it as required.
        """
        pass

    def get_config_val(self, raw_key: str, default: Any = None, val_type: str = "string") -> Any:
        """
        Reads one of the engine's own settings, e.g. raw_key "BASE_URL" -> STORE_REST_BASE_URL.

        Args:
            raw_key (str): The key without the client prefix.
            default (Any): Returned if the variable is not set. None makes the key required.
            val_type (str): "string", "number", "bool" or "list".

        Raises:
            ValueError: If the key is required but unset, or val_type is unknown.
        """
        readers = {
            "string": self._helper_config.get_string_val,
            "number": self._helper_config.get_number_val,
            "bool": self._helper_config.get_bool_val,
            "list": self._helper_config.get_list_val,
        }
        if val_type not in readers:
            raise ValueError(
                f"Unsupported config value type '{val_type}' for '{raw_key}' of {self.get_client_type()} engine '{self.get_engine_name()}'."
            )
        key = f"{self.get_client_type()}_{self.get_engine_name()}_{raw_key}".upper()
        return readers[val_type](key, default=default)

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        """
        Returns:
            dict: Headers authenticating against the engine's backend. Empty by default.
        """
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        """
        Raises:
            NotImplementedError: If the engine has no HTTP backend.
        """
        raise NotImplementedError(f"{type(self).__name__} has no HTTP backend.")

    def _get_endpoint_healthcheck(self) -> str:
        """
        Raises:
            NotImplementedError: If the engine has no HTTP backend.
        """
        raise NotImplementedError(f"{type(self).__name__} has no HTTP backend.")

    ##########################################
    ############### LIFECYCLE ################
    ##########################################

    async def boot(self) -> None:
        self._client = httpx.AsyncClient(timeout=self.timeout)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def do_healthcheck(self) -> bool:
        """
        Returns:
            bool: True if the backend's healthcheck endpoint answered with a 2xx status.
        """
        response = await self.do_request(method="GET", endpoint=self._get_endpoint_healthcheck())
        return response.is_success

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def do_request(
        self,
        method: str = "GET",
        json: dict | list | None = None,
        params: QueryParamTypes | None = None,
        endpoint: str = "",
        additional_headers: dict | None = None,
    ) -> httpx.Response:
        """Send a request to the engine's backend and return the raw response.

        Status codes are not interpreted here; engines decide which ones mean
        "missing" or "conflict" and call raise_for_status() for the rest.

        Args:
            method (str): HTTP method.
            json (dict | list | None): JSON body.
            params (QueryParamTypes | None): URL query parameters.
            endpoint (str): Path appended to the base URL, leading slash optional.
            additional_headers (dict | None): Headers merged over the auth header.

        Raises:
            RuntimeError: If boot() has not been called.
            httpx.HTTPError: On transport failures and timeouts.
        """
        if self._client is None:
            raise RuntimeError(f"{type(self).__name__} is not booted. Call boot() before making requests.")

        path = endpoint.strip().lstrip("/")
        url = f"{self._get_base_url().rstrip('/')}/{path}" if path else self._get_base_url().rstrip("/")
        headers = {**self._get_auth_header(), **(additional_headers or {})}

        kwargs: dict = {"headers": headers, "params": params, "timeout": self.timeout}
        if json is not None:
            kwargs["json"] = json

        response = await self._client.request(method, url, **kwargs)
        if not response.is_success:
            self.logging.debug("%s %s answered %d", method, url, response.status_code)
        return response
