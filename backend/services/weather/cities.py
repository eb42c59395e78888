"""Static registry of supported cities."""

from __future__ import annotations

from dataclasses import dataclass

_MUNICIPAL_SUFFIXES = ("市", "町", "村")


@dataclass(frozen=True)
class CityConfig:
    """One supported city.

    ``upstream_query_name`` is what the weather provider is queried with;
    it carries region/country qualifiers where a bare name is ambiguous.
    """

    id: str
    display_name: str
    upstream_query_name: str
    ui_variant: str

    @property
    def municipal_name(self) -> str:
        """Display name with its municipal suffix (札幌 -> 札幌市, 下仁田町 stays)."""
        if self.display_name.endswith(_MUNICIPAL_SUFFIXES):
            return self.display_name
        return f"{self.display_name}市"


SUPPORTED_CITIES: tuple[CityConfig, ...] = (
    CityConfig(id="sapporo", display_name="札幌", upstream_query_name="Sapporo", ui_variant="sapporo"),
    CityConfig(id="takasaki", display_name="高崎", upstream_query_name="Takasaki,Japan", ui_variant="takasaki"),
    CityConfig(
        id="shimonita",
        display_name="下仁田町",
        upstream_query_name="Shimonita,Gunma,Japan",
        ui_variant="shimonita",
    ),
)

DEFAULT_CITY = SUPPORTED_CITIES[0]

_BY_ID: dict[str, CityConfig] = {city.id: city for city in SUPPORTED_CITIES}


def is_registered(city_id: str) -> bool:
    return _normalize_id(city_id) in _BY_ID


def resolve(city_id: str) -> CityConfig:
    """Look up a city; unknown ids resolve to ``DEFAULT_CITY``.

    Callers that need strict validation check :func:`is_registered` first.
    """
    return _BY_ID.get(_normalize_id(city_id), DEFAULT_CITY)


def _normalize_id(city_id: object) -> str:
    return str(city_id or "").strip().lower()
