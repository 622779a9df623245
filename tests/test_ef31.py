import pytest

from lca_engine.ef31 import (
    IMPACT_CATEGORIES,
    aggregate_ef_impacts,
    calculate_single_score,
    default_weights,
    normalise,
    resolve_weights,
)
from lca_engine.errors import InvalidWeightingError, UnknownCategoryError


def test_default_weights_cover_all_categories_and_sum_to_one():
    weights = default_weights()
    assert set(weights) == set(IMPACT_CATEGORIES)
    assert len(weights) == 16
    assert sum(weights.values()) == pytest.approx(1.0)


def test_normalise_divides_by_normalisation_factor():
    assert normalise({"cc": 809}) == {"CC": pytest.approx(0.1)}


def test_normalise_rejects_unknown_category():
    with pytest.raises(UnknownCategoryError):
        normalise({"XYZ": 1.0})


def test_single_score_for_one_person_year_of_climate_change():
    result = calculate_single_score({"CC": 8090})

    assert result["methodology"] == "EF 3.1"
    assert result["normalised"]["CC"] == pytest.approx(1.0)
    assert result["single_score"] == pytest.approx(0.2106)
    assert result["single_score_micropoints"] == pytest.approx(210600)
    assert result["most_relevant_categories"] == ["CC"]
    assert len(result["missing_categories"]) == 15


def test_custom_weights_split_the_score():
    result = calculate_single_score({"CC": 8090, "WU": 11500}, {"CC": 0.5, "WU": 0.5})

    assert result["single_score"] == pytest.approx(1.0)
    assert result["contributions_pct"]["CC"] == pytest.approx(50)
    assert result["contributions_pct"]["WU"] == pytest.approx(50)
    assert sorted(result["most_relevant_categories"]) == ["CC", "WU"]


def test_most_relevant_stops_once_eighty_percent_is_reached():
    result = calculate_single_score({"CC": 8090, "WU": 115})
    assert result["most_relevant_categories"] == ["CC"]


def test_custom_weights_fill_missing_categories_with_zero():
    weights = resolve_weights({"CC": 1.0})
    assert weights["CC"] == 1.0
    assert weights["WU"] == 0.0


@pytest.mark.parametrize("weights", [
    {"CC": 0.5},
    {"CC": 0.5, "BOGUS": 0.5},
    {"CC": 1.2, "WU": -0.2},
    {"CC": "heavy"},
])
def test_invalid_weighting_sets_are_rejected(weights):
    with pytest.raises(InvalidWeightingError):
        resolve_weights(weights)


def test_aggregate_ef_impacts_skips_unreported_columns():
    materials = [
        {"ef_climate_change_total": 1.0, "ef_water_use": None},
        {"ef_climate_change_total": "2.0"},
        {"impact_climate": 5.0},
    ]
    assert aggregate_ef_impacts(materials) == {"CC": 3.0}
