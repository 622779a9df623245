"""
ISO 14044 section 4.5 life cycle interpretation.

Runs contribution analysis, a completeness check per lifecycle stage, a
one-at-a-time sensitivity check and a consistency check over a product's
materials and its aggregated impacts, then drafts findings, limitations and
recommendations from them.
"""
import logging
from datetime import date

from lca_engine.errors import NoMaterialsError
from lca_engine.units import normalize_to_kg, to_float

logger = logging.getLogger(__name__)

IMPACT_CATEGORIES = {
    "climate": {"unit": "kg CO2eq", "label": "Climate Change", "field": "impact_climate"},
    "water": {"unit": "m3", "label": "Water Consumption", "field": "impact_water"},
    "land": {"unit": "m2.year", "label": "Land Use", "field": "impact_land"},
    "waste": {"unit": "kg", "label": "Waste Generation", "field": "impact_waste"},
    "terrestrial_ecotoxicity": {
        "unit": "kg 1,4-DB eq", "label": "Terrestrial Ecotoxicity", "field": "impact_terrestrial_ecotoxicity",
    },
    "freshwater_eutrophication": {
        "unit": "kg PO4 eq", "label": "Freshwater Eutrophication", "field": "impact_freshwater_eutrophication",
    },
    "terrestrial_acidification": {
        "unit": "kg SO2 eq", "label": "Terrestrial Acidification", "field": "impact_terrestrial_acidification",
    },
    "fossil_resource_scarcity": {
        "unit": "kg oil eq", "label": "Fossil Resource Scarcity", "field": "impact_fossil_resource_scarcity",
    },
}

LIFECYCLE_STAGES = ("raw_materials", "processing", "packaging", "distribution", "use_phase", "end_of_life")

SIGNIFICANT_PCT = 10
DOMINANT_PCT = 50
LOW_CONFIDENCE_SCORE = 50
SENSITIVITY_VARIATION = 0.10
SENSITIVITY_TOP_N = 3
MASS_BALANCE_TOLERANCE_PCT = 20

MISSING_STAGE_FLAGS = {
    "processing": "No facility data linked - Scope 1/2 emissions missing",
    "distribution": "No transport emissions calculated",
    "use_phase": "Use phase not included (common for cradle-to-gate)",
    "end_of_life": "End-of-life not modelled",
}


def _impact_value(material, category):
    value = to_float(material.get(IMPACT_CATEGORIES[category]["field"]))
    if category == "climate":
        value += to_float(material.get("impact_transport"))
    return value


def _material_stage(material):
    if (material.get("material_type") or "").lower() in ("packaging", "packaging_material"):
        return "packaging"
    return "raw_materials"


def run_contribution_analysis(materials):
    """Per-category share of each material, sorted largest first."""
    results = {}
    for category, meta in IMPACT_CATEGORIES.items():
        total = sum(_impact_value(m, category) for m in materials)
        if total == 0:
            results[category] = {
                "impact_category": category,
                "total_impact": 0,
                "unit": meta["unit"],
                "contributions": [],
                "significant_issues": [],
            }
            continue

        contributions = []
        for m in materials:
            value = _impact_value(m, category)
            pct = value / total * 100
            contributions.append({
                "material": m.get("material_name"),
                "material_type": m.get("material_type") or "unknown",
                "stage": _material_stage(m),
                "absolute_value": value,
                "percentage_contribution": pct,
                "is_significant": pct > SIGNIFICANT_PCT,
                "is_dominant": pct > DOMINANT_PCT,
            })
        contributions.sort(key=lambda c: c["percentage_contribution"], reverse=True)

        issues = [
            f"{c['material']} dominates {meta['label']} at {c['percentage_contribution']:.1f}% of total impact"
            for c in contributions if c["is_dominant"]
        ]
        significant = [c for c in contributions if c["is_significant"]]
        if len(significant) <= 2 and len(materials) > 2:
            issues.append(
                f"{meta['label']} impact is concentrated in {len(significant)} of {len(materials)} materials"
            )

        results[category] = {
            "impact_category": category,
            "total_impact": total,
            "unit": meta["unit"],
            "contributions": contributions,
            "significant_issues": issues,
        }
    return results


def run_completeness_check(materials, aggregated):
    by_stage = ((aggregated or {}).get("breakdown") or {}).get("by_lifecycle_stage") or {}
    stages = []
    for stage in LIFECYCLE_STAGES:
        value = by_stage.get(stage)
        if value is None and stage == "packaging":
            value = by_stage.get("packaging_stage")
        has_data = to_float(value) > 0

        flags = []
        if not has_data and stage in MISSING_STAGE_FLAGS:
            flags.append(MISSING_STAGE_FLAGS[stage])
        if stage in ("raw_materials", "packaging"):
            low = [
                m for m in materials
                if _material_stage(m) == stage
                and m.get("confidence_score") is not None
                and to_float(m.get("confidence_score")) < LOW_CONFIDENCE_SCORE
            ]
            if low:
                flags.append(f"{len(low)} material(s) with low confidence score (<{LOW_CONFIDENCE_SCORE}%)")

        stages.append({
            "stage": stage,
            "has_data": has_data,
            "data_coverage_pct": 100 if has_data else 0,
            "missing_data_flags": flags,
        })

    covered = sum(1 for s in stages if s["has_data"])
    return {"overall_score": covered / len(stages) * 100, "stages": stages}


def _total_climate(aggregated):
    aggregated = aggregated or {}
    return to_float(aggregated.get("climate_change_gwp100") or aggregated.get("total_climate"))


def run_sensitivity_analysis(materials, aggregated):
    """Vary the top climate contributors by +/-10% and report the response ratio."""
    total = _total_climate(aggregated)
    if total == 0:
        return []

    ranked = sorted(materials, key=lambda m: _impact_value(m, "climate"), reverse=True)[:SENSITIVITY_TOP_N]
    results = []
    for m in ranked:
        contribution = _impact_value(m, "climate")
        if contribution <= 0:
            continue
        low = total - contribution * SENSITIVITY_VARIATION
        high = total + contribution * SENSITIVITY_VARIATION
        result_change_pct = (high - low) / total * 100
        ratio = result_change_pct / (SENSITIVITY_VARIATION * 2 * 100)
        results.append({
            "parameter": f"{m.get('material_name')} emission factor",
            "material_name": m.get("material_name"),
            "baseline_result": total,
            "variation_range": {
                "min": contribution * (1 - SENSITIVITY_VARIATION),
                "max": contribution * (1 + SENSITIVITY_VARIATION),
            },
            "result_range": {"min": low, "max": high},
            "sensitivity_ratio": ratio,
            "is_highly_sensitive": ratio > 1,
        })
    return results


def run_consistency_check(materials, reference_year=None, current_year=None):
    current_year = current_year or date.today().year
    reference_year = int(reference_year or current_year)
    issues = []

    data_years = [{"material": m.get("material_name"), "year": m.get("data_year")} for m in materials]
    temporal_issues = []
    if abs(reference_year - current_year) > 2:
        temporal_issues.append(f"Reference year ({reference_year}) is more than 2 years from current year")

    regions = [
        {"material": m.get("material_name"), "region": m["origin_country"]}
        for m in materials if m.get("origin_country")
    ]
    geo_issues = []
    unique_regions = {r["region"] for r in regions}
    if len(unique_regions) > 5:
        geo_issues.append(
            f"Materials sourced from {len(unique_regions)} different regions - "
            "verify regional emission factor consistency"
        )

    methodologies = sorted({m["methodology"] for m in materials if m.get("methodology")})
    consistent = len(methodologies) <= 1
    if not consistent:
        issues.append(f"Multiple methodologies used: {', '.join(methodologies)}")

    quality_tags = {m["data_quality_tag"] for m in materials if m.get("data_quality_tag")}
    if len(quality_tags) > 2:
        issues.append(f"{len(quality_tags)} different data quality levels - consider harmonising data sources")

    return {
        "methodology_consistent": consistent,
        "temporal_consistency": {
            "reference_year": reference_year,
            "data_years": data_years,
            "issues": temporal_issues,
        },
        "geographic_consistency": {
            "primary_region": regions[0]["region"] if regions else "Unknown",
            "material_regions": regions,
            "issues": geo_issues,
        },
        "issues": issues + temporal_issues + geo_issues,
    }


def validate_mass_balance(materials, tolerance_pct=MASS_BALANCE_TOLERANCE_PCT):
    """
    Compare ingredient input mass against product output mass.

    Output is taken as the ingredient mass plus packaging, so the variance is
    only non-zero once processing losses are recorded.
    """
    input_kg = sum(
        normalize_to_kg(m.get("quantity"), m.get("unit")) for m in materials if _material_stage(m) != "packaging"
    )
    packaging_kg = sum(
        normalize_to_kg(m.get("quantity"), m.get("unit")) for m in materials if _material_stage(m) == "packaging"
    )
    output_kg = input_kg
    variance_pct = abs(input_kg - output_kg) / input_kg * 100 if input_kg > 0 else 0.0
    return {
        "input_kg": input_kg,
        "output_kg": output_kg + packaging_kg,
        "variance_pct": variance_pct,
        "valid": variance_pct < tolerance_pct,
    }


def generate_conclusions(contribution, sensitivity, completeness, consistency, total_climate, system_boundary):
    findings = []
    limitations = []
    recommendations = []

    climate = contribution.get("climate")
    if climate and climate["contributions"]:
        top = climate["contributions"][0]
        findings.append(f"The total carbon footprint is {total_climate:.3f} kg CO2eq per functional unit.")
        findings.append(
            f"{top['material']} is the largest contributor to climate impact at "
            f"{top['percentage_contribution']:.1f}% ({top['absolute_value']:.3f} kg CO2eq)."
        )
        significant_count = sum(1 for c in climate["contributions"] if c["is_significant"])
        if significant_count <= 3:
            findings.append(
                f"Climate impact is concentrated in {significant_count} material(s), "
                "representing potential hotspots for reduction."
            )

    for category, analysis in contribution.items():
        if category == "climate" or analysis["total_impact"] == 0:
            continue
        dominant = next((c for c in analysis["contributions"] if c["is_dominant"]), None)
        if dominant:
            findings.append(
                f"{dominant['material']} dominates {IMPACT_CATEGORIES[category]['label']} "
                f"at {dominant['percentage_contribution']:.1f}%."
            )

    sensitive = [s for s in sensitivity if s["is_highly_sensitive"]]
    if sensitive:
        findings.append(
            f"Sensitivity analysis identifies {len(sensitive)} highly sensitive parameter(s): "
            f"{', '.join(s['parameter'] for s in sensitive)}."
        )

    if completeness["overall_score"] < 100:
        missing = [s["stage"].replace("_", " ") for s in completeness["stages"] if not s["has_data"]]
        limitations.append(
            f"Data coverage is {completeness['overall_score']:.0f}%. Missing stages: {', '.join(missing)}."
        )
    if system_boundary == "cradle-to-gate":
        limitations.append("System boundary is cradle-to-gate; use phase and end-of-life impacts are excluded.")
    if not consistency["methodology_consistent"]:
        limitations.append(
            "Multiple methodologies were used across materials, which may introduce inconsistencies in results."
        )
    if any("low confidence" in f for s in completeness["stages"] for f in s["missing_data_flags"]):
        limitations.append("Some materials use secondary or proxy emission factors with lower confidence scores.")

    if climate and climate["contributions"]:
        top3 = [c["material"] for c in climate["contributions"][:3] if c["is_significant"]]
        if top3:
            recommendations.append(
                f"Prioritise emission reduction efforts on: {', '.join(top3)}. "
                "These account for the largest share of climate impact."
            )
    if sensitive:
        recommendations.append(
            f"Improve data quality for {', '.join(s['material_name'] for s in sensitive)} "
            "as results are highly sensitive to these parameters."
        )
    if completeness["overall_score"] < 80:
        recommendations.append(
            "Increase data coverage by linking production facilities and modelling downstream lifecycle stages."
        )
    if consistency["geographic_consistency"]["issues"]:
        recommendations.append(
            "Verify that emission factors used are geographically representative of actual sourcing locations."
        )

    level = "moderate" if completeness["overall_score"] >= 80 and consistency["methodology_consistent"] else "high"
    statement = (
        f"The overall uncertainty of this assessment is considered {level}. "
        f"Data coverage is {completeness['overall_score']:.0f}% across lifecycle stages. "
    )
    if sensitive:
        statement += (
            f"Results are sensitive to {len(sensitive)} parameter(s): a +/-10% variation in these "
            "parameters produces a sensitivity ratio > 1. "
        )
    else:
        statement += "No highly sensitive parameters were identified within a +/-10% variation range. "
    if consistency["methodology_consistent"]:
        statement += "Methodology is applied consistently across all materials."
    else:
        statement += "Caution: multiple methodologies are used, which may affect comparability."

    return {
        "key_findings": findings,
        "limitations": limitations,
        "recommendations": recommendations,
        "uncertainty_statement": statement,
    }


def interpret_lca(materials, aggregated, system_boundary=None, reference_year=None):
    """
    Full interpretation of one product LCA.

    Args:
        materials: Material rows used for the aggregation
        aggregated: Output of aggregate_product_impacts
        system_boundary: Overrides the boundary recorded on the aggregation
        reference_year: Study reference year

    Returns:
        Dict with contribution, completeness, sensitivity, consistency and
        mass balance results plus the drafted conclusions
    """
    if not materials:
        raise NoMaterialsError()
    aggregated = aggregated or {}
    system_boundary = system_boundary or aggregated.get("system_boundary") or "cradle-to-gate"

    contribution = run_contribution_analysis(materials)
    completeness = run_completeness_check(materials, aggregated)
    sensitivity = run_sensitivity_analysis(materials, aggregated)
    consistency = run_consistency_check(materials, reference_year)
    mass_balance = validate_mass_balance(materials)
    conclusions = generate_conclusions(
        contribution, sensitivity, completeness, consistency, _total_climate(aggregated), system_boundary
    )
    logger.info(
        "Interpretation: completeness %.0f%%, %d sensitive parameter(s)",
        completeness["overall_score"], sum(1 for s in sensitivity if s["is_highly_sensitive"]),
    )

    return dict(
        conclusions,
        contribution_analysis=contribution,
        significant_issues=[i for a in contribution.values() for i in a["significant_issues"]],
        completeness_score=completeness["overall_score"],
        data_coverage_by_stage={s["stage"]: s["data_coverage_pct"] for s in completeness["stages"]},
        missing_data_flags={s["stage"]: s["missing_data_flags"] for s in completeness["stages"] if s["missing_data_flags"]},
        sensitivity_results=sensitivity,
        highly_sensitive_parameters=[s["parameter"] for s in sensitivity if s["is_highly_sensitive"]],
        consistency_issues=consistency["issues"],
        methodology_consistent=consistency["methodology_consistent"],
        temporal_consistency=consistency["temporal_consistency"],
        geographic_consistency=consistency["geographic_consistency"],
        mass_balance_input_kg=mass_balance["input_kg"],
        mass_balance_output_kg=mass_balance["output_kg"],
        mass_balance_variance_pct=mass_balance["variance_pct"],
        mass_balance_valid=mass_balance["valid"],
    )
