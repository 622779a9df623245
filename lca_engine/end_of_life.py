"""
End-of-life emission factors for packaging and organic materials.

Factors are kg CO2e per kg of material per disposal pathway. Recycling factors
are negative: the avoided-burden credit for displacing virgin material.
Sources: DEFRA 2024 waste factors, ecoinvent 3.12 recycling credits, EU
Packaging Waste Directive / EPA 2024 recycling rates.
"""
import re

from lca_engine.units import normalize_key

EOL_DATA_YEAR = 2024

PATHWAYS = ("recycling", "landfill", "incineration", "composting", "anaerobic_digestion")

EOL_FACTORS = {
    "glass": {"recycling": -0.35, "landfill": 0.01, "incineration": 0.01, "composting": 0, "anaerobic_digestion": 0},
    "aluminium": {"recycling": -1.5, "landfill": 0.01, "incineration": 0.01, "composting": 0, "anaerobic_digestion": 0},
    "pet": {"recycling": -0.04, "landfill": 0.05, "incineration": 2.3, "composting": 0, "anaerobic_digestion": 0},
    "hdpe": {"recycling": -0.06, "landfill": 0.05, "incineration": 2.5, "composting": 0, "anaerobic_digestion": 0},
    "paper": {"recycling": -0.01, "landfill": 1.0, "incineration": 0.8, "composting": 0.01, "anaerobic_digestion": 0.005},
    "steel": {"recycling": -0.8, "landfill": 0.01, "incineration": 0.01, "composting": 0, "anaerobic_digestion": 0},
    "organic": {"recycling": 0, "landfill": 0.5, "incineration": 0.1, "composting": 0.01, "anaerobic_digestion": 0.005},
    "cork": {"recycling": -0.02, "landfill": 0.3, "incineration": 0.2, "composting": 0.01, "anaerobic_digestion": 0.005},
    "other": {"recycling": -0.05, "landfill": 0.1, "incineration": 1.5, "composting": 0, "anaerobic_digestion": 0},
}

# Disposal pathway split (%) per region and material; each row sums to 100
REGIONAL_DEFAULTS = {
    "eu": {
        "glass": {"recycling": 76, "landfill": 10, "incineration": 14, "composting": 0, "anaerobic_digestion": 0},
        "aluminium": {"recycling": 75, "landfill": 10, "incineration": 15, "composting": 0, "anaerobic_digestion": 0},
        "pet": {"recycling": 40, "landfill": 25, "incineration": 35, "composting": 0, "anaerobic_digestion": 0},
        "hdpe": {"recycling": 35, "landfill": 30, "incineration": 35, "composting": 0, "anaerobic_digestion": 0},
        "paper": {"recycling": 82, "landfill": 3, "incineration": 10, "composting": 3, "anaerobic_digestion": 2},
        "steel": {"recycling": 80, "landfill": 10, "incineration": 10, "composting": 0, "anaerobic_digestion": 0},
        "organic": {"recycling": 0, "landfill": 20, "incineration": 10, "composting": 50, "anaerobic_digestion": 20},
        "cork": {"recycling": 10, "landfill": 30, "incineration": 20, "composting": 30, "anaerobic_digestion": 10},
        "other": {"recycling": 30, "landfill": 35, "incineration": 35, "composting": 0, "anaerobic_digestion": 0},
    },
    "uk": {
        "glass": {"recycling": 74, "landfill": 12, "incineration": 14, "composting": 0, "anaerobic_digestion": 0},
        "aluminium": {"recycling": 72, "landfill": 12, "incineration": 16, "composting": 0, "anaerobic_digestion": 0},
        "pet": {"recycling": 38, "landfill": 28, "incineration": 34, "composting": 0, "anaerobic_digestion": 0},
        "hdpe": {"recycling": 32, "landfill": 32, "incineration": 36, "composting": 0, "anaerobic_digestion": 0},
        "paper": {"recycling": 68, "landfill": 10, "incineration": 16, "composting": 4, "anaerobic_digestion": 2},
        "steel": {"recycling": 78, "landfill": 10, "incineration": 12, "composting": 0, "anaerobic_digestion": 0},
        "organic": {"recycling": 0, "landfill": 25, "incineration": 15, "composting": 45, "anaerobic_digestion": 15},
        "cork": {"recycling": 8, "landfill": 37, "incineration": 22, "composting": 25, "anaerobic_digestion": 8},
        "other": {"recycling": 28, "landfill": 38, "incineration": 34, "composting": 0, "anaerobic_digestion": 0},
    },
    "us": {
        "glass": {"recycling": 33, "landfill": 60, "incineration": 7, "composting": 0, "anaerobic_digestion": 0},
        "aluminium": {"recycling": 50, "landfill": 40, "incineration": 10, "composting": 0, "anaerobic_digestion": 0},
        "pet": {"recycling": 29, "landfill": 60, "incineration": 11, "composting": 0, "anaerobic_digestion": 0},
        "hdpe": {"recycling": 25, "landfill": 62, "incineration": 13, "composting": 0, "anaerobic_digestion": 0},
        "paper": {"recycling": 66, "landfill": 19, "incineration": 10, "composting": 4, "anaerobic_digestion": 1},
        "steel": {"recycling": 70, "landfill": 22, "incineration": 8, "composting": 0, "anaerobic_digestion": 0},
        "organic": {"recycling": 0, "landfill": 50, "incineration": 10, "composting": 32, "anaerobic_digestion": 8},
        "cork": {"recycling": 5, "landfill": 57, "incineration": 15, "composting": 20, "anaerobic_digestion": 3},
        "other": {"recycling": 20, "landfill": 55, "incineration": 25, "composting": 0, "anaerobic_digestion": 0},
    },
}

MATERIAL_TYPE_MAP = {
    "glass_bottle": "glass", "glass_jar": "glass", "glass": "glass",
    "aluminium_can": "aluminium", "aluminium": "aluminium", "aluminum_can": "aluminium",
    "aluminum": "aluminium", "alu_can": "aluminium",
    "pet_bottle": "pet", "pet_container": "pet", "pet": "pet", "plastic_bottle": "pet",
    "hdpe_bottle": "hdpe", "hdpe_container": "hdpe", "hdpe": "hdpe",
    "cardboard": "paper", "cardboard_box": "paper", "carton": "paper", "paper": "paper",
    "label": "paper", "paper_label": "paper",
    "steel_can": "steel", "steel": "steel", "crown_cap": "steel", "metal_cap": "steel",
    "cork": "cork", "cork_stopper": "cork",
    "organic": "organic", "ingredient": "organic",
}

# First match wins; specific plastics before the generic "plastic"
MATERIAL_NAME_KEYWORDS = [
    (re.compile(r"\bglass\b", re.I), "glass"),
    (re.compile(r"\b(aluminium|aluminum|alu)\b", re.I), "aluminium"),
    (re.compile(r"\b(hdpe|high.?density.?poly)", re.I), "hdpe"),
    (re.compile(r"\bpet\b", re.I), "pet"),
    (re.compile(r"\bplastic\b", re.I), "pet"),
    (re.compile(r"\b(cardboard|carton|corrugated)\b", re.I), "paper"),
    (re.compile(r"\b(paper|label)\b", re.I), "paper"),
    (re.compile(r"\bsteel\b", re.I), "steel"),
    (re.compile(r"\b(crown.?cap|metal.?cap|tin.?can)\b", re.I), "steel"),
    (re.compile(r"\bcork\b", re.I), "cork"),
    (re.compile(r"\b(organic|ingredient|food)\b", re.I), "organic"),
]

REGION_LABELS = {"eu": "European Union", "uk": "United Kingdom", "us": "United States"}


def get_material_factor_key(packaging_category, material_name=None):
    """Resolve a packaging category, or failing that a material name, to a factor key."""
    mapped = MATERIAL_TYPE_MAP.get(normalize_key(packaging_category))
    if mapped:
        return mapped

    if material_name:
        for pattern, key in MATERIAL_NAME_KEYWORDS:
            if pattern.search(material_name):
                return key

    return "other"


def _check_region(region):
    region = (region or "").strip().lower()
    if region not in REGIONAL_DEFAULTS:
        raise ValueError(f"Unknown end-of-life region: {region!r} (expected one of {', '.join(REGIONAL_DEFAULTS)})")
    return region


def get_regional_defaults(region, material_type):
    region = _check_region(region)
    defaults = REGIONAL_DEFAULTS[region]
    return dict(defaults.get(material_type) or defaults["other"])


def calculate_material_eol(mass_kg, material_type, region, pathway_overrides=None):
    """
    Calculate end-of-life emissions for one material.

    Args:
        mass_kg: Mass of the material in kg
        material_type: Factor key from get_material_factor_key
        region: 'eu', 'uk' or 'us'
        pathway_overrides: Optional dict of pathway -> percentage

    Returns:
        Dict with net total, avoided (recycling credit, <= 0), gross emissions
        and a per-pathway breakdown, all in kg CO2e
    """
    region = _check_region(region)
    factors = EOL_FACTORS.get(material_type) or EOL_FACTORS["other"]
    defaults = REGIONAL_DEFAULTS[region].get(material_type) or REGIONAL_DEFAULTS[region]["other"]

    overrides = pathway_overrides or {}
    split = {p: float(overrides.get(p, defaults[p])) for p in PATHWAYS}

    breakdown = {p: mass_kg * (split[p] / 100.0) * factors[p] for p in PATHWAYS}
    avoided = breakdown["recycling"]
    gross = sum(v for p, v in breakdown.items() if p != "recycling")
    net = gross + avoided

    return {
        "total": net,
        "avoided": avoided,
        "gross": gross,
        "net": net,
        "pathways": split,
        "breakdown": breakdown,
    }
