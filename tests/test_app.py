from types import SimpleNamespace

import pytest

import app as app_module

MATERIALS = [
    {"material_name": "Malt", "material_type": "ingredient", "quantity": 0.2, "impact_climate": 0.3,
     "impact_climate_fossil": 0.3, "transport_mode": "air", "impact_transport": 0.05},
    {"material_name": "Glass bottle", "material_type": "packaging", "packaging_category": "glass_bottle",
     "quantity": 0.3, "impact_climate": 0.15, "impact_climate_fossil": 0.15},
]


class FakeMessages:
    def __init__(self, text=None, error=None):
        self.text = text
        self.error = error

    def create(self, **kwargs):
        if self.error:
            raise self.error
        return SimpleNamespace(content=[SimpleNamespace(text=self.text)])


def test_aggregate_requires_materials(client):
    response = client.post("/lca/aggregate", json={})
    assert response.status_code == 400
    assert response.get_json() == {"success": False, "error": "Missing required fields: materials"}


def test_aggregate_without_body(client):
    response = client.post("/lca/aggregate", data="not json", content_type="text/plain")
    assert response.status_code == 400


def test_aggregate_empty_bill_of_materials(client):
    response = client.post("/lca/aggregate", json={"materials": []})
    assert response.status_code == 400
    assert response.get_json()["error"] == "No materials found for this LCA"


def test_aggregate_records_history(client):
    response = client.post("/lca/aggregate", json={"product_name": "Pale Ale", "materials": MATERIALS})
    body = response.get_json()

    assert response.status_code == 200
    assert body["aggregated_impacts"]["total_carbon_footprint"] == pytest.approx(0.5)
    assert body["hotspots"][0]["material"] == "Malt"
    assert "Malt shipped by air freight" in body["issues"]
    assert "No owned production site data" in body["issues"]

    history = client.get("/history").get_json()
    assert history["count"] == 1
    assert history["submissions"][0]["product_name"] == "Pale Ale"


def test_summary_statistics(client):
    assert client.get("/summary").get_json()["total_products"] == 0

    client.post("/lca/aggregate", json={"materials": MATERIALS})
    client.post("/lca/aggregate", json={"materials": MATERIALS[1:]})
    summary = client.get("/summary").get_json()

    assert summary["total_products"] == 2
    assert summary["average_footprint"] == pytest.approx((0.5 + 0.15) / 2)
    assert summary["distribution"]["min_footprint"] == pytest.approx(0.15)
    assert summary["top_hotspots"][0] == {"material": "Glass bottle", "count": 2}
    assert summary["system_boundaries"] == {"cradle-to-gate": 2}


def test_clear(client):
    client.post("/lca/aggregate", json={"materials": MATERIALS})
    assert client.post("/clear").get_json()["success"] is True
    assert client.get("/history").get_json()["count"] == 0


def test_over_allocation_is_bad_request_when_strict(client):
    sites = [
        {"facility_id": "a", "emission_intensity_kg_co2e_per_unit": 0.1, "share_of_production": 80},
        {"facility_id": "b", "emission_intensity_kg_co2e_per_unit": 0.1, "share_of_production": 80},
    ]
    response = client.post(
        "/lca/aggregate", json={"materials": MATERIALS, "production_sites": sites, "strict_allocation": True}
    )
    assert response.status_code == 400
    assert "160.0%" in response.get_json()["error"]


def test_single_score(client):
    response = client.post("/lca/single-score", json={"impacts": {"CC": 8090}})
    assert response.status_code == 200
    assert response.get_json()["single_score"] == pytest.approx(0.2106)

    response = client.post("/lca/single-score", json={"impacts": {"CC": 1}, "weights": {"CC": 0.3}})
    assert response.status_code == 400
    assert response.get_json()["success"] is False


def test_ef31_categories(client):
    body = client.get("/ef31/categories").get_json()
    assert len(body["categories"]) == 16
    assert body["methodology"] == "EF 3.1"


def test_ef31_categories_reports_internal_errors(client, monkeypatch):
    monkeypatch.setattr(app_module, "NORMALISATION_FACTORS", {})
    response = client.get("/ef31/categories")
    assert response.status_code == 500
    assert response.get_json()["error"].startswith("Internal error:")


def test_data_quality(client):
    materials = [{"material_name": "Malt", "impact_value": 1.0, "quality_grade": "HIGH",
                  "data_source_tier": "primary_verified", "data_year": 2024, "data_region": "GB"}]
    body = client.post(
        "/lca/data-quality", json={"materials": materials, "reference_year": 2025, "study_region": "GB"}
    ).get_json()

    assert body["aggregate"]["overall_dqi"] == 85
    assert body["statement"].startswith("## Data Quality Assessment")


def test_end_of_life_resolves_material_type(client):
    body = client.post("/lca/end-of-life", json={"mass_kg": 1, "packaging_category": "aluminium_can"}).get_json()
    assert body["material_type"] == "aluminium"
    assert body["region"] == "eu"
    assert body["avoided"] == pytest.approx(0.75 * -1.5)

    response = client.post("/lca/end-of-life", json={"mass_kg": 1, "material_type": "glass", "region": "mars"})
    assert response.status_code == 400


def test_use_phase(client):
    body = client.post(
        "/lca/use-phase", json={"volume_litres": 0.33, "product_category": "Beer & Cider", "consumer_country_code": "GB"}
    ).get_json()
    assert body["grid_factor"] == 0.207
    assert body["config"]["consumer_country_code"] == "GB"


def test_interpretation(client):
    body = client.post("/lca/interpretation", json={"materials": MATERIALS}).get_json()
    assert body["success"] is True
    assert body["key_findings"]


def test_interpretation_accepts_string_reference_year(client):
    response = client.post("/lca/interpretation", json={"materials": MATERIALS, "reference_year": "2024"})
    assert response.status_code == 200
    assert response.get_json()["temporal_consistency"]["reference_year"] == 2024


def test_interpretation_rejects_bad_reference_year(client):
    response = client.post("/lca/interpretation", json={"materials": MATERIALS, "reference_year": "last year"})
    assert response.status_code == 400
    assert response.get_json()["success"] is False


def test_suggestions_fall_back_without_api_key(client):
    body = client.post("/lca/suggestions", json={"materials": MATERIALS}).get_json()
    assert body["suggestions"] == app_module.FALLBACK_SUGGESTIONS[:3]


def test_suggestions_parse_claude_bullets(client, monkeypatch):
    fake = SimpleNamespace(messages=FakeMessages(text="Here you go:\n- Use lighter glass\n- Ship malt by sea\n"))
    monkeypatch.setattr(app_module, "_get_claude_client", lambda: fake)

    body = client.post("/lca/suggestions", json={"materials": MATERIALS}).get_json()
    assert body["suggestions"] == ["Use lighter glass", "Ship malt by sea"]


def test_suggestions_fall_back_when_claude_fails(client, monkeypatch):
    fake = SimpleNamespace(messages=FakeMessages(error=RuntimeError("overloaded")))
    monkeypatch.setattr(app_module, "_get_claude_client", lambda: fake)

    body = client.post("/lca/suggestions", json={"materials": MATERIALS}).get_json()
    assert body["suggestions"] == app_module.FALLBACK_SUGGESTIONS[:3]


def test_corporate_emissions(client):
    body = client.post("/corporate/emissions", json={
        "year": 2024,
        "overheads": [{"category": "business_travel", "computed_co2e": 12.5}],
    }).get_json()
    assert body["breakdown"]["scope3"]["business_travel"] == 12.5
    assert body["has_data"] is True

    assert client.post("/corporate/emissions", json={}).status_code == 400


def test_corporate_scope3(client):
    body = client.post("/corporate/scope3", json={
        "year": 2024,
        "overheads": [{"category": "downstream_logistics", "computed_co2e": 40}],
    }).get_json()
    assert body["cat9_downstream_transport"] == 40
    assert body["year"] == 2024


def test_waste_summary(client):
    body = client.post("/waste/summary", json={"entries": [{"weight_kg": 10, "treatment_method": "recycling"}]}).get_json()
    assert body["diversion_rate"] == 100
    assert body["diversion_level"] == "excellent"


def test_water_risks(client):
    body = client.post("/water/risks", json={
        "facilities": [{"id": "f1", "location_country_code": "ES"}],
        "aware_factors": {"ES": 12.3},
    }).get_json()
    assert body["facilities"][0]["risk_level"] == "high"
    assert body["summary"]["overall_risk_level"] == "high"


def test_water_risks_skip_contract_allocations_at_owned_sites(client):
    body = client.post("/water/risks", json={
        "facilities": [{"id": "f1", "location_country_code": "GB"}],
        "production_sites": [{"facility_id": "f1", "product_name": "Lager", "production_volume": 100,
                              "aggregated_impacts": {"water_consumption": 0.02}}],
        "contract_manufacturer_allocations": [{"facility_id": "f1", "allocated_water_litres": 5000}],
    }).get_json()
    assert body["facilities"][0]["product_lca_water_m3"] == pytest.approx(2.0)
    assert body["facilities"][0]["embedded_water_source"] == "owned"
