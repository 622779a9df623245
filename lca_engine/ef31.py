"""
Environmental Footprint 3.1 reference data and single-score calculation.

Normalisation values are EU27+1 2010 per-person annual impacts (JRC EF 3.1).
Default weights are the official EF 3.1 weighting set and sum to 1.0.

    normalised = characterised impact / normalisation factor   (person-years)
    weighted   = normalised * weight                          (Pt)
    single score = sum(weighted)
"""
import logging

from lca_engine.errors import InvalidWeightingError, UnknownCategoryError
from lca_engine.units import to_float

logger = logging.getLogger(__name__)

METHODOLOGY_VERSION = "EF 3.1"

IMPACT_CATEGORIES = {
    "CC": {"name": "Climate change", "unit": "kg CO2 eq", "default_weight": 0.2106},
    "OD": {"name": "Ozone depletion", "unit": "kg CFC-11 eq", "default_weight": 0.0631},
    "IR": {"name": "Ionising radiation", "unit": "kBq U235 eq", "default_weight": 0.0501},
    "POF": {"name": "Photochemical ozone formation", "unit": "kg NMVOC eq", "default_weight": 0.0478},
    "PM": {"name": "Particulate matter", "unit": "disease incidence", "default_weight": 0.0896},
    "HTC": {"name": "Human toxicity, cancer", "unit": "CTUh", "default_weight": 0.0213},
    "HTNC": {"name": "Human toxicity, non-cancer", "unit": "CTUh", "default_weight": 0.0184},
    "AC": {"name": "Acidification", "unit": "mol H+ eq", "default_weight": 0.0620},
    "EUF": {"name": "Eutrophication, freshwater", "unit": "kg P eq", "default_weight": 0.0280},
    "EUM": {"name": "Eutrophication, marine", "unit": "kg N eq", "default_weight": 0.0296},
    "EUT": {"name": "Eutrophication, terrestrial", "unit": "mol N eq", "default_weight": 0.0371},
    "ETF": {"name": "Ecotoxicity, freshwater", "unit": "CTUe", "default_weight": 0.0192},
    "LU": {"name": "Land use", "unit": "pt", "default_weight": 0.0794},
    "WU": {"name": "Water use", "unit": "m3 world eq", "default_weight": 0.0851},
    "RUF": {"name": "Resource use, fossils", "unit": "MJ", "default_weight": 0.0832},
    "RUM": {"name": "Resource use, minerals and metals", "unit": "kg Sb eq", "default_weight": 0.0755},
}

NORMALISATION_FACTORS = {
    "CC": 8090,
    "OD": 0.0536,
    "IR": 4220,
    "POF": 40.6,
    "PM": 0.000594,
    "HTC": 0.0000169,
    "HTNC": 0.000233,
    "AC": 55.5,
    "EUF": 1.61,
    "EUM": 19.5,
    "EUT": 177,
    "ETF": 17500,
    "LU": 819000,
    "WU": 11500,
    "RUF": 65000,
    "RUM": 0.0636,
}

# product_lca_materials columns holding characterised EF 3.1 results
MATERIAL_COLUMNS = {
    "ef_climate_change_total": "CC",
    "ef_ozone_depletion": "OD",
    "ef_ionising_radiation": "IR",
    "ef_photochemical_ozone_formation": "POF",
    "ef_particulate_matter": "PM",
    "ef_human_toxicity_cancer": "HTC",
    "ef_human_toxicity_non_cancer": "HTNC",
    "ef_acidification": "AC",
    "ef_eutrophication_freshwater": "EUF",
    "ef_eutrophication_marine": "EUM",
    "ef_eutrophication_terrestrial": "EUT",
    "ef_ecotoxicity_freshwater": "ETF",
    "ef_land_use": "LU",
    "ef_water_use": "WU",
    "ef_resource_use_fossils": "RUF",
    "ef_resource_use_minerals_metals": "RUM",
}

WEIGHT_SUM_TOLERANCE = 0.01
MOST_RELEVANT_THRESHOLD = 80.0


def default_weights():
    return {code: meta["default_weight"] for code, meta in IMPACT_CATEGORIES.items()}


def resolve_weights(custom=None):
    """
    Return the weighting set to apply.

    Args:
        custom: Optional dict of category code -> weight. Codes left out get a
            weight of 0, so a custom set must be complete enough to sum to 1.0.

    Returns:
        Dict with a weight for every EF 3.1 category.
    """
    if not custom:
        return default_weights()

    unknown = sorted(code for code in custom if code.upper() not in IMPACT_CATEGORIES)
    if unknown:
        raise InvalidWeightingError(f"Unknown impact categories in weighting set: {', '.join(unknown)}")

    weights = {code: 0.0 for code in IMPACT_CATEGORIES}
    for code, value in custom.items():
        weight = to_float(value, None)
        if weight is None or weight < 0:
            raise InvalidWeightingError(f"Invalid weight for {code}: {value!r}")
        weights[code.upper()] = weight

    total = sum(weights.values())
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        raise InvalidWeightingError(f"Weights must sum to 1.0 (got {total:.4f})")
    return weights


def _check_codes(impacts):
    unknown = sorted(code for code in impacts if code not in IMPACT_CATEGORIES)
    if unknown:
        raise UnknownCategoryError(f"Unknown EF 3.1 impact categories: {', '.join(unknown)}")


def normalise(impacts):
    """Divide each characterised impact by its EU27+1 normalisation factor."""
    impacts = {str(code).upper(): value for code, value in impacts.items()}
    _check_codes(impacts)
    return {
        code: to_float(value) / NORMALISATION_FACTORS[code]
        for code, value in impacts.items()
    }


def calculate_single_score(impacts, weights=None):
    """
    Normalise and weight EF 3.1 impacts into a single score.

    Args:
        impacts: Dict of category code -> characterised impact (per functional unit).
        weights: Optional custom weighting set (see resolve_weights).

    Returns:
        Dict with normalised and weighted values, the single score in Pt and µPt,
        each category's share of the score and the most relevant categories.
    """
    weight_set = resolve_weights(weights)
    normalised = normalise(impacts)

    weighted = {code: value * weight_set[code] for code, value in normalised.items()}
    single_score = sum(weighted.values())

    absolute_total = sum(abs(v) for v in weighted.values())
    contributions = {
        code: (abs(value) / absolute_total * 100) if absolute_total else 0.0
        for code, value in weighted.items()
    }

    # Categories adding up to 80% of the score, largest first
    most_relevant = []
    cumulative = 0.0
    for code, share in sorted(contributions.items(), key=lambda x: x[1], reverse=True):
        if cumulative >= MOST_RELEVANT_THRESHOLD or share == 0:
            break
        most_relevant.append(code)
        cumulative += share

    missing = [code for code in IMPACT_CATEGORIES if code not in normalised]
    if missing:
        logger.debug("Single score computed without %d categories: %s", len(missing), ", ".join(missing))

    return {
        "methodology": METHODOLOGY_VERSION,
        "normalised": normalised,
        "weighted": weighted,
        "weights": weight_set,
        "single_score": single_score,
        "single_score_micropoints": single_score * 1_000_000,
        "contributions_pct": contributions,
        "most_relevant_categories": most_relevant,
        "missing_categories": missing,
    }


def aggregate_ef_impacts(materials):
    """Sum the ef_* columns over a bill of materials. Unreported categories are omitted."""
    totals = {}
    for material in materials:
        for column, code in MATERIAL_COLUMNS.items():
            value = material.get(column)
            if value is None:
                continue
            totals[code] = totals.get(code, 0.0) + to_float(value)
    return totals
