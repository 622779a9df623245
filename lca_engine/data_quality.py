"""
ISO 14044 data quality assessment.

Pedigree matrix scoring per Weidema & Wesnaes (1996) with uncertainty factors
from the ecoinvent methodology (Frischknecht et al. 2007). Scores run from
1 (best) to 5 (worst) on five dimensions.
"""
import math
from datetime import date

from lca_engine.config import settings
from lca_engine.units import to_float

DIMENSIONS = ("reliability", "completeness", "temporal", "geographical", "technological")

PEDIGREE_CRITERIA = {
    "reliability": {
        1: "Verified data based on measurements",
        2: "Verified data partly based on assumptions, or non-verified data based on measurements",
        3: "Non-verified data partly based on qualified estimates",
        4: "Qualified estimate (e.g., by industrial expert)",
        5: "Non-qualified estimate",
    },
    "completeness": {
        1: "Representative data from all sites relevant for the market, over adequate period",
        2: "Representative data from >50% of sites, over adequate period",
        3: "Representative data from <50% of sites, OR >50% but shorter periods",
        4: "Representative data from only one site, OR some sites but shorter periods",
        5: "Unknown representativeness or very limited data",
    },
    "temporal": {
        1: "Less than 3 years difference to reference year",
        2: "3-6 years difference to reference year",
        3: "6-10 years difference to reference year",
        4: "10-15 years difference to reference year",
        5: "Age unknown or more than 15 years difference",
    },
    "geographical": {
        1: "Data from area under study",
        2: "Average data from larger area in which study area is included",
        3: "Data from area with similar production conditions",
        4: "Data from area with slightly similar production conditions",
        5: "Data from unknown or distinctly different area",
    },
    "technological": {
        1: "Data from enterprises, processes and materials under study",
        2: "Data from processes and materials under study, but different enterprises",
        3: "Data from processes and materials under study, but different technology",
        4: "Data on related processes or materials",
        5: "Data on related processes at laboratory scale or different technology",
    },
}

# Basic uncertainty (sigma) by flow type
BASIC_UNCERTAINTY = {
    "combustion_emissions": 0.05,
    "process_emissions": 0.10,
    "agricultural_emissions": 0.20,
    "transport_emissions": 0.10,
    "electricity_use": 0.05,
    "material_inputs": 0.10,
    "packaging_materials": 0.10,
    "water_use": 0.15,
    "waste_generation": 0.20,
    "land_use": 0.30,
    "default": 0.15,
}

# Additional variance per pedigree score
PEDIGREE_UNCERTAINTY = {
    "reliability": {1: 0.00, 2: 0.0006, 3: 0.002, 4: 0.008, 5: 0.04},
    "completeness": {1: 0.00, 2: 0.0001, 3: 0.0006, 4: 0.002, 5: 0.008},
    "temporal": {1: 0.00, 2: 0.0002, 3: 0.002, 4: 0.008, 5: 0.04},
    "geographical": {1: 0.00, 2: 0.000025, 3: 0.0001, 4: 0.0006, 5: 0.002},
    "technological": {1: 0.00, 2: 0.0006, 3: 0.008, 4: 0.04, 5: 0.12},
}

GRADES = ("HIGH", "MEDIUM", "LOW")
SOURCE_TIERS = ("primary_verified", "secondary_modelled", "secondary_estimated")

EU_COUNTRIES = {
    "AT", "BE", "BG", "HR", "CY", "CZ", "DK", "EE", "FI", "FR", "DE", "GR", "HU", "IE",
    "IT", "LV", "LT", "LU", "MT", "NL", "PL", "PT", "RO", "SK", "SI", "ES", "SE",
}
NORTH_AMERICA = {"US", "CA", "MX"}
SOUTH_EAST_ASIA = {"TH", "VN", "ID", "MY", "PH", "SG"}


def _round_half_up(value):
    # Matches Math.round for the 0-100 scales used in reports
    return int(math.floor(value + 0.5))


def calculate_pedigree_dqi(pedigree):
    """0-100 DQI: all 1s -> 100, all 5s -> 0."""
    total = sum(pedigree[d] for d in DIMENSIONS)
    return _round_half_up(100 - ((total - 5) / 20) * 100)


def calculate_uncertainty(pedigree, flow_type="default", explicit_uncertainty_percent=None):
    """Geometric standard deviation and 95% interval multipliers for a data point."""
    if explicit_uncertainty_percent is not None and explicit_uncertainty_percent > 0:
        sigma = explicit_uncertainty_percent / 100.0
        return {
            "basic_uncertainty": sigma,
            "pedigree_uncertainty": 0.0,
            "total_uncertainty": sigma,
            "confidence_interval_95": {"lower": math.exp(-1.96 * sigma), "upper": math.exp(1.96 * sigma)},
        }

    basic_variance = BASIC_UNCERTAINTY.get(flow_type, BASIC_UNCERTAINTY["default"]) ** 2
    pedigree_variance = sum(PEDIGREE_UNCERTAINTY[d][pedigree[d]] for d in DIMENSIONS)
    total_sigma = math.sqrt(basic_variance + pedigree_variance)

    return {
        "basic_uncertainty": math.sqrt(basic_variance),
        "pedigree_uncertainty": math.sqrt(pedigree_variance),
        "total_uncertainty": total_sigma,
        "confidence_interval_95": {"lower": math.exp(-1.96 * total_sigma), "upper": math.exp(1.96 * total_sigma)},
    }


def grade_to_default_pedigree(grade):
    score = {"HIGH": 2, "MEDIUM": 3, "LOW": 4}.get(grade)
    if score is None:
        raise ValueError(f"Unknown quality grade: {grade!r}")
    return {d: score for d in DIMENSIONS}


def calculate_temporal_score(data_year, reference_year):
    """Returns (score, is_stale, is_very_stale)."""
    if not data_year:
        return 5, True, True
    diff = abs(reference_year - data_year)
    if diff < 3:
        return 1, False, False
    if diff < 6:
        return 2, False, False
    if diff < 10:
        return 3, True, False
    if diff < 15:
        return 4, True, True
    return 5, True, True


def calculate_geographical_score(data_region, study_region):
    """Returns (score, is_exact_match, is_regional_match)."""
    data = (data_region or "GLO").upper()
    study = (study_region or "GLO").upper()

    if data == study:
        return 1, True, True

    def same_region(countries):
        return data in countries and study in countries

    if (data == "EU" and study in EU_COUNTRIES) or (study == "EU" and data in EU_COUNTRIES) or same_region(EU_COUNTRIES):
        return 2, False, True
    if data == "GLO" or study == "GLO":
        return 3, False, False
    if same_region(NORTH_AMERICA) or same_region(SOUTH_EAST_ASIA):
        return 3, False, True
    return 4, False, False


def _validate_pedigree_scores(pedigree):
    for dimension, score in pedigree.items():
        if dimension not in DIMENSIONS:
            raise ValueError(f"Unknown pedigree dimension: {dimension}")
        if score not in (1, 2, 3, 4, 5):
            raise ValueError(f"Pedigree score for {dimension} must be 1-5 (got {score!r})")


def assess_material_data_quality(material, reference_year=None, study_region=None):
    """
    Assess data quality for a single material.

    Args:
        material: Dict with material_name, material_id, impact_value, impact_unit,
            data_source, data_source_tier, quality_grade and optionally
            uncertainty_percent, pedigree, data_year, data_region
        reference_year: Study reference year (defaults to the current year)
        study_region: Region under study (defaults to configuration)

    Returns:
        Dict with the resolved pedigree matrix, DQI, uncertainty and flags
    """
    reference_year = int(reference_year or material.get("reference_year") or date.today().year)
    study_region = study_region or material.get("study_region") or settings.default_study_region
    data_region = material.get("data_region") or "GLO"
    data_year = material.get("data_year")
    data_year = int(data_year) if data_year else None
    grade = (material.get("quality_grade") or "MEDIUM").upper()
    tier = material.get("data_source_tier") or "secondary_estimated"
    if tier not in SOURCE_TIERS:
        raise ValueError(f"Unknown data source tier: {tier!r}")

    temporal_score, is_stale, is_very_stale = calculate_temporal_score(data_year, reference_year)
    geo_score, is_exact, is_regional = calculate_geographical_score(data_region, study_region)

    overrides = {k: int(v) for k, v in (material.get("pedigree") or {}).items() if v is not None}
    _validate_pedigree_scores(overrides)
    defaults = grade_to_default_pedigree(grade)
    pedigree = {
        "reliability": overrides.get("reliability", defaults["reliability"]),
        "completeness": overrides.get("completeness", defaults["completeness"]),
        "temporal": overrides.get("temporal", temporal_score),
        "geographical": overrides.get("geographical", geo_score),
        "technological": overrides.get("technological", defaults["technological"]),
    }

    explicit = material.get("uncertainty_percent")
    explicit = to_float(explicit) if explicit is not None else None
    uncertainty = calculate_uncertainty(pedigree, "material_inputs", explicit)

    flags = []
    if is_very_stale:
        flags.append("DATA_VERY_STALE: Data is >6 years old")
    elif is_stale:
        flags.append("DATA_STALE: Data is >3 years old")
    if geo_score >= 4:
        flags.append("GEO_MISMATCH: Data from different geographic region")
    if grade == "LOW":
        flags.append("LOW_QUALITY: Factor has low data quality grade")
    if uncertainty["total_uncertainty"] > 0.5:
        flags.append("HIGH_UNCERTAINTY: Uncertainty exceeds 50%")

    return {
        "material_name": material.get("material_name"),
        "material_id": material.get("material_id"),
        "impact_value": to_float(material.get("impact_value")),
        "impact_unit": material.get("impact_unit", "kg CO2e"),
        "data_source": material.get("data_source"),
        "data_source_tier": tier,
        "quality_grade": grade,
        "pedigree_matrix": pedigree,
        "pedigree_dqi": calculate_pedigree_dqi(pedigree),
        "uncertainty_percent": explicit if explicit is not None else _round_half_up(uncertainty["total_uncertainty"] * 100),
        "uncertainty": uncertainty,
        "temporal_representativeness": {
            "data_year": data_year,
            "reference_year": reference_year,
            "years_difference": abs(reference_year - data_year) if data_year else None,
            "is_stale": is_stale,
            "is_very_stale": is_very_stale,
        },
        "geographic_match": {
            "data_region": data_region,
            "study_region": study_region,
            "is_exact_match": is_exact,
            "is_regional_match": is_regional,
        },
        "flags": flags,
    }


def propagate_uncertainty(assessments, total_impact):
    """Root-sum-of-squares of impact-weighted uncertainties, as a percentage."""
    if total_impact == 0:
        return 0
    variance = 0.0
    for m in assessments:
        weight = m["impact_value"] / total_impact
        variance += weight ** 2 * m["uncertainty"]["total_uncertainty"] ** 2
    return _round_half_up(math.sqrt(variance) * 100)


def _empty_aggregate():
    return {
        "overall_dqi": 0,
        "overall_confidence": "LOW",
        "weighted_uncertainty": 100,
        "data_source_breakdown": {tier: {"count": 0, "impact_share": 0} for tier in SOURCE_TIERS},
        "pedigree_aggregate": {d: 5 for d in DIMENSIONS},
        "temporal_coverage": {
            "oldest_data": None,
            "newest_data": None,
            "average_age": None,
            "stale_material_count": 0,
            "stale_impact_share": 0,
        },
        "quality_flags": [{"severity": "critical", "code": "NO_DATA", "message": "No materials to assess"}],
        "iso_compliant": False,
        "compliance_gaps": ["No materials added"],
    }


def assess_aggregate_data_quality(assessments, reference_year=None):
    """
    Impact-weighted data quality for a whole product carbon footprint.

    Args:
        assessments: Results of assess_material_data_quality
        reference_year: Study reference year (defaults to the current year)

    Returns:
        Dict with overall DQI, confidence, propagated uncertainty, source
        breakdown, pedigree averages, temporal coverage, flags and ISO gaps
    """
    if not assessments:
        return _empty_aggregate()
    reference_year = int(reference_year or date.today().year)

    total_impact = sum(abs(m["impact_value"]) for m in assessments)
    if total_impact == 0:
        # No impact to weight by: every material counts equally
        weights = [1.0 / len(assessments)] * len(assessments)
    else:
        weights = [abs(m["impact_value"]) / total_impact for m in assessments]

    overall_dqi = _round_half_up(sum(m["pedigree_dqi"] * w for m, w in zip(assessments, weights)))

    breakdown = {tier: {"count": 0, "impact_share": 0.0} for tier in SOURCE_TIERS}
    for m, w in zip(assessments, weights):
        bucket = breakdown[m["data_source_tier"]]
        bucket["count"] += 1
        bucket["impact_share"] += w
    for bucket in breakdown.values():
        bucket["impact_share"] = _round_half_up(bucket["impact_share"] * 100)

    pedigree_aggregate = {
        d: round(sum(m["pedigree_matrix"][d] * w for m, w in zip(assessments, weights)), 1)
        for d in DIMENSIONS
    }

    years = [m["temporal_representativeness"]["data_year"] for m in assessments]
    years = [y for y in years if y is not None]
    stale = [(m, w) for m, w in zip(assessments, weights) if m["temporal_representativeness"]["is_stale"]]
    stale_share = _round_half_up(sum(w for _, w in stale) * 100)
    temporal_coverage = {
        "oldest_data": min(years) if years else None,
        "newest_data": max(years) if years else None,
        "average_age": _round_half_up(sum(reference_year - y for y in years) / len(years)) if years else None,
        "stale_material_count": len(stale),
        "stale_impact_share": stale_share,
    }

    weighted_uncertainty = propagate_uncertainty(assessments, total_impact)

    flags = []
    gaps = []
    if stale_share > 20:
        flags.append({
            "severity": "warning",
            "code": "STALE_DATA",
            "message": f"{stale_share}% of impact uses data >3 years old",
            "affected_materials": [m["material_name"] for m, _ in stale],
        })
        gaps.append("ISO 14044 4.2.3.6: Temporal representativeness - significant data is outdated")

    low = [(m, w) for m, w in zip(assessments, weights) if m["quality_grade"] == "LOW"]
    low_share = _round_half_up(sum(w for _, w in low) * 100)
    if low_share > 30:
        flags.append({
            "severity": "warning",
            "code": "LOW_QUALITY_DATA",
            "message": f"{low_share}% of impact uses LOW quality data",
            "affected_materials": [m["material_name"] for m, _ in low],
        })
        gaps.append("ISO 14044 4.2.3.6: Data quality - significant reliance on low-quality estimates")

    geo_mismatch = [m["material_name"] for m in assessments if m["pedigree_matrix"]["geographical"] >= 4]
    if geo_mismatch:
        flags.append({
            "severity": "info",
            "code": "GEO_MISMATCH",
            "message": f"{len(geo_mismatch)} material(s) use data from different geographic regions",
            "affected_materials": geo_mismatch,
        })

    if weighted_uncertainty > 40:
        flags.append({
            "severity": "warning",
            "code": "HIGH_UNCERTAINTY",
            "message": f"Overall uncertainty is {weighted_uncertainty}% (recommend <40%)",
        })
        gaps.append("ISO 14044 4.5.3.3: Uncertainty analysis - overall uncertainty exceeds recommended threshold")

    primary_share = breakdown["primary_verified"]["impact_share"]
    if primary_share < 20:
        flags.append({
            "severity": "info",
            "code": "LOW_PRIMARY_DATA",
            "message": f"Only {primary_share}% of impact uses verified primary data",
        })

    if overall_dqi >= 80 and weighted_uncertainty <= 30 and primary_share >= 50:
        confidence = "HIGH"
    elif overall_dqi >= 60 and weighted_uncertainty <= 50:
        confidence = "MEDIUM"
    else:
        confidence = "LOW"

    return {
        "overall_dqi": overall_dqi,
        "overall_confidence": confidence,
        "weighted_uncertainty": weighted_uncertainty,
        "data_source_breakdown": breakdown,
        "pedigree_aggregate": pedigree_aggregate,
        "temporal_coverage": temporal_coverage,
        "quality_flags": flags,
        "iso_compliant": not gaps and overall_dqi >= 60,
        "compliance_gaps": gaps,
    }


def _interpretation(dimension, score):
    criteria = PEDIGREE_CRITERIA[dimension][min(5, max(1, _round_half_up(score)))]
    return criteria if len(criteria) <= 60 else criteria[:57] + "..."


def generate_data_quality_statement(aggregate, reference_year):
    """Markdown data quality statement for ISO 14044 section 4.2.3.6."""
    lines = [
        "## Data Quality Assessment (ISO 14044 Section 4.2.3.6)",
        "",
        f"**Overall Data Quality Index:** {aggregate['overall_dqi']}% ({aggregate['overall_confidence']} confidence)",
        f"**Propagated Uncertainty:** ±{aggregate['weighted_uncertainty']}% (95% CI)",
        "",
        "### Data Source Distribution",
    ]
    labels = {
        "primary_verified": "Primary verified data",
        "secondary_modelled": "Secondary modelled data",
        "secondary_estimated": "Estimated/proxy data",
    }
    for tier, label in labels.items():
        bucket = aggregate["data_source_breakdown"][tier]
        lines.append(f"- {label}: {bucket['count']} materials ({bucket['impact_share']}% of impact)")

    lines += [
        "",
        "### Pedigree Matrix Summary (Weighted Average)",
        "| Dimension | Score (1-5) | Interpretation |",
        "|-----------|-------------|----------------|",
    ]
    for dimension in DIMENSIONS:
        score = aggregate["pedigree_aggregate"][dimension]
        lines.append(f"| {dimension.capitalize()} | {score:.1f} | {_interpretation(dimension, score)} |")

    coverage = aggregate["temporal_coverage"]
    lines += ["", "### Temporal Coverage"]
    if coverage["oldest_data"] and coverage["newest_data"]:
        lines.append(f"- Data collection period: {coverage['oldest_data']}-{coverage['newest_data']}")
        lines.append(f"- Average data age: {coverage['average_age']} years (reference year: {reference_year})")
    if coverage["stale_material_count"] > 0:
        lines.append(
            f"- **Warning:** {coverage['stale_material_count']} materials use data >3 years old "
            f"({coverage['stale_impact_share']}% of impact)"
        )

    if aggregate["quality_flags"]:
        lines += ["", "### Quality Flags"]
        for flag in aggregate["quality_flags"]:
            lines.append(f"- [{flag['severity'].upper()}] **{flag['code']}:** {flag['message']}")

    if not aggregate["iso_compliant"] and aggregate["compliance_gaps"]:
        lines += ["", "### ISO 14044 Compliance Gaps"]
        lines += [f"- {gap}" for gap in aggregate["compliance_gaps"]]

    return "\n".join(lines)
