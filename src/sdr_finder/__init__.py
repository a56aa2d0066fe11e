"""sdr-finder — Look up the SDR assigned to a Sales Level 6 territory."""

__version__ = "0.2.0"

TERRITORY_FIELD = "territoryKey"
OWNER_FIELD = "ownerName"
REQUIRED_FIELDS: list[str] = [TERRITORY_FIELD, OWNER_FIELD]

DEFAULT_TERRITORY_MARKER = "sales level 6"
DEFAULT_OWNER_MARKER = "sdr"
