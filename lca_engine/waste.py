"""
Operational waste emissions and circularity.

Emission factors are DEFRA 2024 averages (kg CO2e per kg). Hierarchy scores
follow the EU Waste Framework Directive 2008/98/EC Article 4: reuse and
recycling 100, other recovery 50, disposal 0.
"""
import logging

from lca_engine.units import normalize_key, to_float

logger = logging.getLogger(__name__)

WASTE_EMISSION_FACTORS = {
    "landfill": 0.467,
    "recycling": 0.021,
    "composting": 0.011,
    "incineration": 0.366,
    "incineration_with_recovery": 0.366,
    "incineration_without_recovery": 0.445,
    "anaerobic_digestion": 0.005,
    "reuse": 0.005,
    "other": 0.467,
}
DEFAULT_WASTE_EMISSION_FACTOR = 0.467

WASTE_HIERARCHY_SCORES = {
    "reuse": 100,
    "recycling": 100,
    "composting": 100,
    "anaerobic_digestion": 50,
    "incineration_with_recovery": 50,
    "incineration_without_recovery": 0,
    "incineration": 0,
    "landfill": 0,
    "other": 0,
}

# Digestate spread as soil amendment counts as recycling
ANAEROBIC_DIGESTION_SCORES = {"fertilizer": 100, "energy": 50}

DIVERSION_THRESHOLDS = {"excellent": 90, "high": 70, "medium": 40}
HAZARD_THRESHOLDS = {"high": 10, "medium": 5}

TREATMENT_METHOD_LABELS = {
    "landfill": "Landfill",
    "recycling": "Recycling",
    "composting": "Composting",
    "incineration_with_recovery": "Incineration (Energy Recovery)",
    "incineration_without_recovery": "Incineration (No Recovery)",
    "incineration": "Incineration",
    "anaerobic_digestion": "Anaerobic Digestion",
    "reuse": "Reuse",
    "other": "Other",
}


def get_waste_emission_factor(method):
    return WASTE_EMISSION_FACTORS.get(normalize_key(method), DEFAULT_WASTE_EMISSION_FACTOR)


def calculate_waste_emissions(weight_kg, treatment_method):
    factor = get_waste_emission_factor(treatment_method)
    return {
        "weight_kg": weight_kg,
        "treatment_method": normalize_key(treatment_method),
        "emission_factor": factor,
        "emissions_kg_co2e": weight_kg * factor,
    }


def get_waste_hierarchy_score(method, end_use=None):
    method = normalize_key(method)
    if method == "anaerobic_digestion":
        return ANAEROBIC_DIGESTION_SCORES["fertilizer" if end_use == "fertilizer" else "energy"]
    return WASTE_HIERARCHY_SCORES.get(method, 0)


def is_circular_treatment(method, end_use=None):
    return get_waste_hierarchy_score(method, end_use) >= 100


def calculate_diversion_rate(circular_kg, total_kg):
    if total_kg <= 0:
        return 0.0
    return circular_kg / total_kg * 100


def calculate_hazardous_percentage(hazardous_kg, total_kg):
    if total_kg <= 0:
        return 0.0
    return hazardous_kg / total_kg * 100


def get_diversion_level(rate):
    for level in ("excellent", "high", "medium"):
        if rate >= DIVERSION_THRESHOLDS[level]:
            return level
    return "low"


def get_hazard_level(percentage):
    if percentage > HAZARD_THRESHOLDS["high"]:
        return "high"
    if percentage > HAZARD_THRESHOLDS["medium"]:
        return "medium"
    return "low"


def summarize_waste(entries):
    """
    Summarise facility waste entries.

    Args:
        entries: Dicts with weight_kg, treatment_method and optionally
            end_use ('fertilizer' / 'energy') and is_hazardous

    Returns:
        Dict with totals, emissions, diversion and hazard metrics and a
        per-treatment breakdown
    """
    total_kg = 0.0
    circular_kg = 0.0
    hazardous_kg = 0.0
    emissions = 0.0
    weighted_score = 0.0
    by_treatment = {}

    for entry in entries or []:
        weight = to_float(entry.get("weight_kg"))
        if weight < 0:
            raise ValueError("Waste weight must not be negative")
        method = normalize_key(entry.get("treatment_method")) or "other"
        if method not in WASTE_EMISSION_FACTORS:
            logger.warning("Unknown treatment method '%s', using default factor", method)

        result = calculate_waste_emissions(weight, method)
        score = get_waste_hierarchy_score(method, entry.get("end_use"))

        total_kg += weight
        emissions += result["emissions_kg_co2e"]
        weighted_score += weight * score
        if score >= 100:
            circular_kg += weight
        if entry.get("is_hazardous"):
            hazardous_kg += weight

        bucket = by_treatment.setdefault(method, {
            "label": TREATMENT_METHOD_LABELS.get(method, method),
            "weight_kg": 0.0,
            "emissions_kg_co2e": 0.0,
        })
        bucket["weight_kg"] += weight
        bucket["emissions_kg_co2e"] += result["emissions_kg_co2e"]

    diversion_rate = calculate_diversion_rate(circular_kg, total_kg)
    hazardous_pct = calculate_hazardous_percentage(hazardous_kg, total_kg)
    return {
        "total_waste_kg": total_kg,
        "circular_waste_kg": circular_kg,
        "hazardous_waste_kg": hazardous_kg,
        "emissions_kg_co2e": emissions,
        "diversion_rate": diversion_rate,
        "diversion_level": get_diversion_level(diversion_rate),
        "hazardous_percentage": hazardous_pct,
        "hazard_level": get_hazard_level(hazardous_pct),
        "hierarchy_score": weighted_score / total_kg if total_kg > 0 else 0.0,
        "by_treatment": by_treatment,
    }
