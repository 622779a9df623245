import math

import pytest

from lca_engine.data_quality import (
    assess_aggregate_data_quality,
    assess_material_data_quality,
    calculate_geographical_score,
    calculate_pedigree_dqi,
    calculate_temporal_score,
    calculate_uncertainty,
    generate_data_quality_statement,
    grade_to_default_pedigree,
)


def pedigree(score):
    return grade_to_default_pedigree("MEDIUM") if score == 3 else {
        d: score for d in ("reliability", "completeness", "temporal", "geographical", "technological")
    }


@pytest.mark.parametrize("score, expected", [(1, 100), (3, 50), (5, 0)])
def test_pedigree_dqi(score, expected):
    assert calculate_pedigree_dqi(pedigree(score)) == expected


def test_grade_defaults():
    assert set(grade_to_default_pedigree("HIGH").values()) == {2}
    assert set(grade_to_default_pedigree("LOW").values()) == {4}
    with pytest.raises(ValueError):
        grade_to_default_pedigree("EXCELLENT")


def test_uncertainty_from_pedigree():
    result = calculate_uncertainty(pedigree(1))
    assert result["total_uncertainty"] == pytest.approx(0.15)
    assert result["pedigree_uncertainty"] == 0


def test_explicit_uncertainty_overrides_pedigree():
    result = calculate_uncertainty(pedigree(5), explicit_uncertainty_percent=20)
    assert result["total_uncertainty"] == pytest.approx(0.2)
    assert result["confidence_interval_95"]["upper"] == pytest.approx(math.exp(1.96 * 0.2))


@pytest.mark.parametrize("data_year, expected", [
    (2024, (1, False, False)),
    (2021, (2, False, False)),
    (2019, (3, True, False)),
    (2012, (4, True, True)),
    (2000, (5, True, True)),
    (None, (5, True, True)),
])
def test_temporal_score(data_year, expected):
    assert calculate_temporal_score(data_year, 2025) == expected


@pytest.mark.parametrize("data_region, study_region, score", [
    ("FR", "FR", 1),
    ("EU", "DE", 2),
    ("FR", "DE", 2),
    ("GLO", "GB", 3),
    ("US", "CA", 3),
    ("CN", "GB", 4),
])
def test_geographical_score(data_region, study_region, score):
    assert calculate_geographical_score(data_region, study_region)[0] == score


def high_quality_material():
    return {
        "material_name": "Malted barley",
        "impact_value": 3.0,
        "data_source_tier": "primary_verified",
        "quality_grade": "HIGH",
        "data_year": 2024,
        "data_region": "GB",
    }


def low_quality_material():
    return {
        "material_name": "Flavouring",
        "impact_value": 1.0,
        "data_source_tier": "secondary_estimated",
        "quality_grade": "LOW",
        "data_region": "CN",
    }


def test_assess_high_quality_material():
    result = assess_material_data_quality(high_quality_material(), reference_year=2025, study_region="GB")

    assert result["pedigree_matrix"] == {
        "reliability": 2, "completeness": 2, "temporal": 1, "geographical": 1, "technological": 2,
    }
    assert result["pedigree_dqi"] == 85
    assert result["flags"] == []


def test_assess_low_quality_material_flags():
    result = assess_material_data_quality(low_quality_material(), reference_year=2025, study_region="GB")

    assert result["pedigree_dqi"] == 20
    assert result["uncertainty_percent"] == 32
    codes = [f.split(":")[0] for f in result["flags"]]
    assert codes == ["DATA_VERY_STALE", "GEO_MISMATCH", "LOW_QUALITY"]


def test_pedigree_overrides_and_validation():
    material = dict(high_quality_material(), pedigree={"reliability": 1})
    result = assess_material_data_quality(material, reference_year=2025, study_region="GB")
    assert result["pedigree_matrix"]["reliability"] == 1

    with pytest.raises(ValueError):
        assess_material_data_quality(dict(material, pedigree={"reliability": 7}), 2025, "GB")
    with pytest.raises(ValueError):
        assess_material_data_quality(dict(material, data_source_tier="hearsay"), 2025, "GB")


def test_aggregate_without_materials():
    result = assess_aggregate_data_quality([])
    assert result["overall_dqi"] == 0
    assert result["overall_confidence"] == "LOW"
    assert result["quality_flags"][0]["code"] == "NO_DATA"


def test_aggregate_is_impact_weighted():
    assessments = [
        assess_material_data_quality(high_quality_material(), 2025, "GB"),
        assess_material_data_quality(low_quality_material(), 2025, "GB"),
    ]
    result = assess_aggregate_data_quality(assessments, reference_year=2025)

    assert result["overall_dqi"] == 69
    assert result["weighted_uncertainty"] == 11
    assert result["overall_confidence"] == "MEDIUM"
    assert result["data_source_breakdown"]["primary_verified"]["impact_share"] == 75
    assert result["temporal_coverage"]["stale_impact_share"] == 25

    codes = {f["code"] for f in result["quality_flags"]}
    assert {"STALE_DATA", "GEO_MISMATCH"} <= codes
    assert "LOW_PRIMARY_DATA" not in codes
    assert result["iso_compliant"] is False

    statement = generate_data_quality_statement(result, 2025)
    assert "**Overall Data Quality Index:** 69% (MEDIUM confidence)" in statement
    assert "### ISO 14044 Compliance Gaps" in statement
