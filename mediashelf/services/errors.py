"""Catalog errors and identifier decoding."""
import re
from typing import Any, Dict, Optional


class CatalogError(Exception):
    """Base error for a metadata catalog."""


class CatalogDecodeError(CatalogError):
    """The catalog answered with a payload we cannot interpret."""


class CatalogNotConfiguredError(CatalogError):
    """The requested catalog has no configuration (API key)."""


_DIGITS = re.compile(r"(\d+)$")


def coerce_catalog_id(value: Any) -> Optional[int]:
    """Convertit un identifiant int / "123" / "series-123" en int, sinon None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        value = value.strip()
        if value.isdigit():
            return int(value)
        match = _DIGITS.search(value)
        if match and "-" in value:
            return int(match.group(1))
    return None


def decode_catalog_id(payload: Dict[str, Any], *keys: str) -> int:
    """Return the first usable id among ``keys``.

    Catalogs send ids as numbers, numeric strings or composite strings
    such as ``series-440284``. A payload with none of them is a decode
    error: a silent 0 would look like a real id.
    """
    for key in keys:
        catalog_id = coerce_catalog_id(payload.get(key))
        if catalog_id is not None:
            return catalog_id
    seen = {key: payload.get(key) for key in keys}
    raise CatalogDecodeError(f"Could not extract a numeric id from {seen}")


def require_field(payload: Dict[str, Any], key: str) -> Any:
    """Champ obligatoire d'une réponse catalogue."""
    value = payload.get(key)
    if value is None:
        raise CatalogDecodeError(f"Missing required field '{key}'")
    return value
