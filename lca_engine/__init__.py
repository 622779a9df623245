"""Impact calculation engine for beverage product LCAs and corporate footprints."""

__version__ = "2.1.0"

CALCULATION_VERSION = __version__
