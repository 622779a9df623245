import pytest

from lca_engine.aggregator import aggregate_product_impacts
from lca_engine.errors import NoMaterialsError
from lca_engine.interpretation import (
    interpret_lca,
    run_completeness_check,
    run_consistency_check,
    run_contribution_analysis,
    run_sensitivity_analysis,
    validate_mass_balance,
)

MATERIALS = [
    {"material_name": "Malt", "material_type": "ingredient", "quantity": 0.2, "impact_climate": 5.5,
     "impact_transport": 0.5, "impact_water": 2.0, "methodology": "ISO 14067"},
    {"material_name": "Bottle", "material_type": "packaging", "quantity": 0.3, "impact_climate": 3.0,
     "confidence_score": 40, "methodology": "ISO 14067"},
    {"material_name": "Hops", "material_type": "ingredient", "quantity": 0.01, "impact_climate": 1.0,
     "methodology": "ISO 14067"},
]

AGGREGATED = {
    "climate_change_gwp100": 10.0,
    "system_boundary": "cradle-to-gate",
    "breakdown": {"by_lifecycle_stage": {
        "raw_materials": 6.5, "processing": 0, "packaging_stage": 3.0,
        "distribution": 0.5, "use_phase": 0, "end_of_life": 0,
    }},
}


def test_contribution_analysis_flags_dominant_and_concentrated_impacts():
    climate = run_contribution_analysis(MATERIALS)["climate"]

    assert climate["total_impact"] == pytest.approx(10.0)
    assert [c["material"] for c in climate["contributions"]] == ["Malt", "Bottle", "Hops"]
    assert climate["contributions"][0]["is_dominant"] is True
    assert climate["contributions"][2]["is_significant"] is False
    assert climate["significant_issues"] == [
        "Malt dominates Climate Change at 60.0% of total impact",
        "Climate Change impact is concentrated in 2 of 3 materials",
    ]


def test_categories_without_impact_are_empty():
    land = run_contribution_analysis(MATERIALS)["land"]
    assert land["total_impact"] == 0
    assert land["contributions"] == []


def test_completeness_reads_lifecycle_stages():
    result = run_completeness_check(MATERIALS, AGGREGATED)
    stages = {s["stage"]: s for s in result["stages"]}

    assert result["overall_score"] == pytest.approx(50)
    assert stages["packaging"]["has_data"] is True
    assert stages["packaging"]["missing_data_flags"] == ["1 material(s) with low confidence score (<50%)"]
    assert stages["processing"]["missing_data_flags"] == ["No facility data linked - Scope 1/2 emissions missing"]


def test_sensitivity_ratio_is_share_of_total():
    results = run_sensitivity_analysis(MATERIALS, AGGREGATED)

    assert [r["material_name"] for r in results] == ["Malt", "Bottle", "Hops"]
    assert results[0]["sensitivity_ratio"] == pytest.approx(0.6)
    assert results[0]["result_range"] == {"min": pytest.approx(9.4), "max": pytest.approx(10.6)}
    assert not any(r["is_highly_sensitive"] for r in results)


def test_sensitivity_needs_a_total():
    assert run_sensitivity_analysis(MATERIALS, {}) == []


def test_consistency_check_reports_mixed_methodologies():
    materials = MATERIALS + [{"material_name": "Label", "methodology": "PEF"}]
    result = run_consistency_check(materials, reference_year=2020, current_year=2025)

    assert result["methodology_consistent"] is False
    assert "Multiple methodologies used: ISO 14067, PEF" in result["issues"]
    assert result["temporal_consistency"]["issues"]
    assert result["temporal_consistency"]["data_years"][0] == {"material": "Malt", "year": None}


def test_consistency_check_accepts_string_year():
    result = run_consistency_check(MATERIALS, reference_year="2024", current_year=2025)
    assert result["temporal_consistency"]["reference_year"] == 2024
    assert result["temporal_consistency"]["issues"] == []


def test_mass_balance_adds_packaging_to_output():
    materials = MATERIALS + [{"material_name": "Cap", "material_type": "packaging", "quantity": 2, "unit": "g"}]
    result = validate_mass_balance(materials)

    assert result["input_kg"] == pytest.approx(0.21)
    assert result["output_kg"] == pytest.approx(0.512)
    assert result["variance_pct"] == 0
    assert result["valid"] is True


def test_mass_balance_without_ingredients():
    result = validate_mass_balance([{"material_type": "packaging", "quantity": 0.3}])
    assert result == {"input_kg": 0, "output_kg": pytest.approx(0.3), "variance_pct": 0.0, "valid": True}


def test_interpret_lca_conclusions():
    result = interpret_lca(MATERIALS, AGGREGATED, reference_year=2025)

    assert result["completeness_score"] == pytest.approx(50)
    assert result["key_findings"][0] == "The total carbon footprint is 10.000 kg CO2eq per functional unit."
    assert "System boundary is cradle-to-gate; use phase and end-of-life impacts are excluded." in result["limitations"]
    assert result["recommendations"][0].startswith("Prioritise emission reduction efforts on: Malt, Bottle.")
    assert result["uncertainty_statement"].startswith("The overall uncertainty of this assessment is considered high.")
    assert result["data_coverage_by_stage"]["use_phase"] == 0
    assert result["mass_balance_input_kg"] == pytest.approx(0.21)
    assert result["mass_balance_output_kg"] == pytest.approx(0.51)
    assert result["mass_balance_valid"] is True


def test_interpret_aggregator_output():
    aggregated = aggregate_product_impacts(MATERIALS)
    result = interpret_lca(MATERIALS, aggregated)
    assert result["data_coverage_by_stage"]["packaging"] == 100
    assert result["data_coverage_by_stage"]["raw_materials"] == 100


def test_interpret_without_materials():
    with pytest.raises(NoMaterialsError):
        interpret_lca([], AGGREGATED)
