import pytest

from lca_engine.end_of_life import (
    PATHWAYS,
    REGIONAL_DEFAULTS,
    calculate_material_eol,
    get_material_factor_key,
    get_regional_defaults,
)


@pytest.mark.parametrize("category, name, expected", [
    ("glass_bottle", None, "glass"),
    ("Glass Bottle", None, "glass"),
    ("crown_cap", None, "steel"),
    (None, "Aluminium can lid", "aluminium"),
    (None, "HDPE closure", "hdpe"),
    (None, "Shrink plastic film", "pet"),
    (None, "Corrugated outer case", "paper"),
    (None, "Mystery widget", "other"),
])
def test_material_factor_key(category, name, expected):
    assert get_material_factor_key(category, name) == expected


def test_regional_splits_sum_to_one_hundred():
    for region, materials in REGIONAL_DEFAULTS.items():
        for material, split in materials.items():
            assert sum(split[p] for p in PATHWAYS) == 100, (region, material)


def test_glass_in_eu_earns_recycling_credit():
    result = calculate_material_eol(1.0, "glass", "eu")

    assert result["avoided"] == pytest.approx(0.76 * -0.35)
    assert result["gross"] == pytest.approx(0.10 * 0.01 + 0.14 * 0.01)
    assert result["net"] == pytest.approx(result["avoided"] + result["gross"])
    assert result["total"] == result["net"]
    assert result["pathways"]["recycling"] == 76


def test_pathway_overrides_replace_defaults():
    result = calculate_material_eol(
        2.0, "pet", "uk", {"recycling": 0, "landfill": 100, "incineration": 0}
    )
    assert result["avoided"] == 0
    assert result["net"] == pytest.approx(2.0 * 0.05)


def test_unknown_material_uses_other_factors():
    assert get_regional_defaults("US", "unobtainium") == REGIONAL_DEFAULTS["us"]["other"]


def test_unknown_material_eol_matches_regional_other_row():
    unknown = calculate_material_eol(100, "unobtainium", "eu")
    other = calculate_material_eol(100, "other", "eu")

    assert unknown == other
    assert unknown["pathways"]["landfill"] == REGIONAL_DEFAULTS["eu"]["other"]["landfill"]


def test_unknown_region_is_rejected():
    with pytest.raises(ValueError):
        calculate_material_eol(1.0, "glass", "mars")
