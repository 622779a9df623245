"""
Consumer use-phase emissions for beverages: refrigeration and carbonation.

Refrigeration is stored as energy (kWh per litre per day) and converted with
the consumer country's grid factor, so the same product sold in France and in
India gets very different use-phase results.
"""
import logging

from lca_engine.units import to_float

logger = logging.getLogger(__name__)

# Domestic A-rated fridge ~130 kWh/yr over ~100 L usable volume; open-front
# retail chillers use ~1.79x that per litre.
DOMESTIC_KWH_PER_LITRE_PER_DAY = 0.00356
RETAIL_KWH_PER_LITRE_PER_DAY = 0.00636

DEFAULT_GRID_FACTOR = 0.490  # kg CO2e/kWh, IEA 2023 global average
DEFAULT_REFRIGERATION_DAYS = 7
DEFAULT_RETAIL_SPLIT = 0.5

# kg CO2e/kWh (IEA 2023; DEFRA 2025 for GB)
GRID_FACTORS = {
    "GB": 0.207,
    "FR": 0.052,
    "DE": 0.380,
    "IE": 0.296,
    "ES": 0.150,
    "IT": 0.315,
    "NL": 0.328,
    "US": 0.367,
    "CA": 0.120,
    "AU": 0.656,
    "IN": 0.708,
    "CN": 0.581,
    "JP": 0.457,
}

# Dissolved CO2 per container; biogenic, released on opening
CARBONATION_FACTORS = {
    "beer": {"factor": 0.0025, "volume_l": 0.33},
    "sparkling_wine": {"factor": 0.0045, "volume_l": 0.75},
    "soft_drink": {"factor": 0.0035, "volume_l": 0.5},
}

# Wine and non-alcoholic drinks are left out: storage habits vary too much
REFRIGERATED_CATEGORIES = ["beer_cider", "beer & cider", "rtd_cocktails", "rtd & cocktails"]

CARBONATED_CATEGORIES = {
    "beer_cider": "beer",
    "beer & cider": "beer",
    "rtd_cocktails": "soft_drink",
    "rtd & cocktails": "soft_drink",
}


def get_grid_factor(country_code):
    """Return (factor, is_estimated) for a consumer country."""
    code = (country_code or "").strip().upper()
    if code == "UK":
        code = "GB"
    if code in GRID_FACTORS:
        return GRID_FACTORS[code], False
    return DEFAULT_GRID_FACTOR, True


def _matches(category, candidate):
    return candidate in category or category in candidate


def get_default_use_phase_config(product_category):
    """Conservative use-phase defaults for a product category."""
    category = (product_category or "").strip().lower()
    config = {
        "needs_refrigeration": False,
        "refrigeration_days": DEFAULT_REFRIGERATION_DAYS,
        "retail_refrigeration_split": DEFAULT_RETAIL_SPLIT,
        "is_carbonated": False,
        "carbonation_type": None,
    }
    # Spirits are shelf-stable
    if not category or "spirit" in category:
        return config

    config["needs_refrigeration"] = any(_matches(category, c) for c in REFRIGERATED_CATEGORIES)
    for candidate, carbonation_type in CARBONATED_CATEGORIES.items():
        if _matches(category, candidate):
            config["is_carbonated"] = True
            config["carbonation_type"] = carbonation_type
            break
    return config


def calculate_use_phase_emissions(config, volume_litres):
    """
    Calculate use-phase emissions for one functional unit.

    Args:
        config: Dict with needs_refrigeration, refrigeration_days,
            retail_refrigeration_split, is_carbonated, carbonation_type and
            optionally consumer_country_code
        volume_litres: Product volume in litres

    Returns:
        Dict with total, refrigeration and carbonation kg CO2e plus breakdown
    """
    domestic = 0.0
    retail = 0.0
    carbonation = 0.0
    grid_factor = None

    if config.get("needs_refrigeration") and volume_litres > 0:
        days = to_float(config.get("refrigeration_days")) or DEFAULT_REFRIGERATION_DAYS
        retail_split = config.get("retail_refrigeration_split")
        retail_split = DEFAULT_RETAIL_SPLIT if retail_split is None else to_float(retail_split)
        if not 0 <= retail_split <= 1:
            raise ValueError("retail_refrigeration_split must be between 0 and 1")

        grid_factor, estimated = get_grid_factor(config.get("consumer_country_code"))
        if estimated:
            logger.debug("Using global grid factor %.3f for refrigeration", grid_factor)

        domestic = volume_litres * DOMESTIC_KWH_PER_LITRE_PER_DAY * grid_factor * days * (1 - retail_split)
        retail = volume_litres * RETAIL_KWH_PER_LITRE_PER_DAY * grid_factor * days * retail_split

    carbonation_type = config.get("carbonation_type")
    if config.get("is_carbonated") and carbonation_type and volume_litres > 0:
        factor = CARBONATION_FACTORS.get(carbonation_type)
        if factor is None:
            logger.warning("Unknown carbonation type '%s', no carbonation release counted", carbonation_type)
        else:
            carbonation = volume_litres * factor["factor"] / factor["volume_l"]

    refrigeration = domestic + retail
    return {
        "total": refrigeration + carbonation,
        "refrigeration": refrigeration,
        "carbonation": carbonation,
        "grid_factor": grid_factor,
        "breakdown": {
            "domestic_refrigeration": domestic,
            "retail_refrigeration": retail,
            "carbonation_release": carbonation,
        },
    }
