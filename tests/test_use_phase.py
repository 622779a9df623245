import pytest

from lca_engine.use_phase import (
    DEFAULT_GRID_FACTOR,
    calculate_use_phase_emissions,
    get_default_use_phase_config,
    get_grid_factor,
)


def test_grid_factor_lookup():
    assert get_grid_factor("GB") == (0.207, False)
    assert get_grid_factor("uk") == (0.207, False)
    assert get_grid_factor("XX") == (DEFAULT_GRID_FACTOR, True)
    assert get_grid_factor(None) == (DEFAULT_GRID_FACTOR, True)


def test_beer_defaults_are_chilled_and_carbonated():
    config = get_default_use_phase_config("Beer & Cider")
    assert config["needs_refrigeration"] is True
    assert config["is_carbonated"] is True
    assert config["carbonation_type"] == "beer"


@pytest.mark.parametrize("category", ["Spirits", "", None, "Wine"])
def test_shelf_stable_categories_have_no_use_phase(category):
    config = get_default_use_phase_config(category)
    assert config["needs_refrigeration"] is False
    assert config["is_carbonated"] is False


def test_refrigeration_uses_consumer_grid():
    config = dict(get_default_use_phase_config("beer_cider"), consumer_country_code="FR")
    result = calculate_use_phase_emissions(config, 1.0)

    domestic = 1.0 * 0.00356 * 0.052 * 7 * 0.5
    retail = 1.0 * 0.00636 * 0.052 * 7 * 0.5
    assert result["grid_factor"] == 0.052
    assert result["breakdown"]["domestic_refrigeration"] == pytest.approx(domestic)
    assert result["breakdown"]["retail_refrigeration"] == pytest.approx(retail)
    assert result["carbonation"] == pytest.approx(0.0025 / 0.33)
    assert result["total"] == pytest.approx(domestic + retail + 0.0025 / 0.33)


def test_invalid_retail_split_is_rejected():
    config = {"needs_refrigeration": True, "retail_refrigeration_split": 1.5}
    with pytest.raises(ValueError):
        calculate_use_phase_emissions(config, 0.5)


def test_unknown_carbonation_type_adds_nothing():
    config = {"is_carbonated": True, "carbonation_type": "kombucha"}
    assert calculate_use_phase_emissions(config, 0.5)["total"] == 0
