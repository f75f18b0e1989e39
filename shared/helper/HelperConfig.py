"""Central configuration helper for the client engagement engine."""

import logging
import os
from typing import Any

import pytz
from pytz.tzinfo import BaseTzInfo

_MISSING = object()


class HelperConfig:
    """Reads every engine setting from environment variables.

    Keys are case-insensitive. An empty variable counts as unset. A getter called
    without a default raises ValueError when its variable is unset.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def _read(self, key: str, default: Any) -> tuple[str, Any]:
        """Return (normalized key, stripped raw value), or (key, _MISSING) if unset and a default exists."""
        key = key.upper()
        raw = (os.getenv(key) or "").strip()
        if raw:
            return key, raw
        if default is None:
            raise ValueError(f"Environment variable '{key}' is not set.")
        return key, _MISSING

    def get_string_val(self, key: str, default: str | None = None) -> str:
        """
        Raises:
            ValueError: If the variable is not set and no default is provided.
        """
        _, raw = self._read(key, default)
        return default if raw is _MISSING else raw

    def get_number_val(self, key: str, default: float | int | None = None) -> float | int:
        """Read an int, or a float if the value contains a decimal point.

        Raises:
            ValueError: If the variable is unset without default, or not a number.
        """
        key, raw = self._read(key, default)
        if raw is _MISSING:
            return default
        try:
            return float(raw) if "." in raw else int(raw)
        except ValueError:
            raise ValueError(f"Environment variable '{key}' is not a valid number: '{raw}'.")

    def get_bool_val(self, key: str, default: bool | None = None) -> bool:
        """"true", "1" and "yes" (any case) are True, everything else False."""
        _, raw = self._read(key, default)
        if raw is _MISSING:
            return default
        return raw.lower() in ("true", "1", "yes")

    def get_list_val(self, key: str, default: list | None = None, separator: str = ",", element_type: type = str) -> list:
        """Read a bracketed list such as "[client-1,client-2]".

        Args:
            key (str): Environment variable name.
            default (list | None): Fallback if the variable is not set.
            separator (str): Delimiter between elements.
            element_type (type): Type every element is cast to.

        Raises:
            ValueError: If the variable is unset without default, not bracketed,
                or an element cannot be cast.
        """
        key, raw = self._read(key, default)
        if raw is _MISSING:
            return default
        if not (raw.startswith("[") and raw.endswith("]")):
            raise ValueError(f"Environment variable '{key}' must look like '[a{separator}b{separator}...]', got '{raw}'.")
        try:
            return [element_type(part.strip()) for part in raw[1:-1].split(separator) if part.strip()]
        except ValueError as e:
            raise ValueError(f"Environment variable '{key}' has an element that is not {element_type.__name__}: {e}")

    def get_timezone_val(self, key: str, default: str = "UTC") -> BaseTzInfo:
        """Resolve a zone name such as "Europe/Berlin" with pytz.

        Raises:
            ValueError: If the zone name is unknown.
        """
        name = self.get_string_val(key, default=default)
        try:
            return pytz.timezone(name)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"Environment variable '{key.upper()}' is not a known timezone: '{name}'.")

    def get_logger(self) -> logging.Logger:
        return self._logger
