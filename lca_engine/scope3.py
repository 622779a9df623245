"""
Scope 3 categories 4 (upstream transport), 9 (downstream transport) and
11 (use of sold products), per the GHG Protocol Scope 3 Technical Guidance.
Transport factors are DEFRA 2024 kg CO2e per tonne-km.
"""
import logging

from lca_engine.units import in_period, normalize_key, normalize_to_kg, to_float, unit_size_to_litres
from lca_engine.use_phase import calculate_use_phase_emissions, get_default_use_phase_config

logger = logging.getLogger(__name__)

TRANSPORT_EMISSION_FACTORS = {
    "road_hgv": {"factor": 0.10516, "source": "DEFRA 2024: HGV (all diesel) Average laden"},
    "road_lgv": {"factor": 0.26680, "source": "DEFRA 2024: LGV (3.5t-7.5t)"},
    "road_van": {"factor": 0.60517, "source": "DEFRA 2024: Van (up to 3.5t)"},
    "rail_freight": {"factor": 0.02768, "source": "DEFRA 2024: Rail freight"},
    "sea_container": {"factor": 0.01601, "source": "DEFRA 2024: Container ship"},
    "sea_bulk": {"factor": 0.00485, "source": "DEFRA 2024: Bulk carrier"},
    "air_freight": {"factor": 0.98495, "source": "DEFRA 2024: Air freight (domestic/short-haul)"},
    "air_freight_long": {"factor": 0.59910, "source": "DEFRA 2024: Air freight (long-haul international)"},
    "pipeline": {"factor": 0.00200, "source": "DEFRA 2024: Liquids pipeline (estimated)"},
}

TRANSPORT_MODE_ALIASES = {
    "truck": "road_hgv",
    "lorry": "road_hgv",
    "hgv": "road_hgv",
    "road": "road_hgv",
    "van": "road_van",
    "lgv": "road_lgv",
    "rail": "rail_freight",
    "train": "rail_freight",
    "sea": "sea_container",
    "ship": "sea_container",
    "container": "sea_container",
    "bulk": "sea_bulk",
    "air": "air_freight",
    "plane": "air_freight",
    "flight": "air_freight",
    "pipe": "pipeline",
}

# Downstream estimate when no distribution data exists
AVERAGE_DISTRIBUTION_KM = 300
KG_PER_LITRE_PACKED = 1.1
DEFAULT_UNIT_SIZE_L = 0.5


def normalize_transport_mode(mode):
    """Map free-text transport modes onto a DEFRA factor key, or None."""
    key = normalize_key(mode)
    if not key:
        return None
    if key in TRANSPORT_EMISSION_FACTORS:
        return key
    return TRANSPORT_MODE_ALIASES.get(key)


def calculate_transport_emissions(weight_kg, distance_km, mode):
    """
    Distance-based freight emissions.

    Args:
        weight_kg: Freight mass in kg
        distance_km: Distance travelled in km
        mode: Transport mode (DEFRA key or alias such as 'truck', 'ship')

    Returns:
        Dict with mode, weight_tonnes, distance_km, emission_factor,
        emissions_kg_co2e and source
    """
    resolved = normalize_transport_mode(mode)
    if not resolved:
        raise ValueError(f"Unknown transport mode: {mode!r}")
    if weight_kg < 0 or distance_km < 0:
        raise ValueError("Transport weight and distance must not be negative")

    factor = TRANSPORT_EMISSION_FACTORS[resolved]
    weight_tonnes = weight_kg / 1000.0
    return {
        "mode": resolved,
        "distance_km": distance_km,
        "weight_tonnes": weight_tonnes,
        "emission_factor": factor["factor"],
        "emissions_kg_co2e": weight_tonnes * distance_km * factor["factor"],
        "source": factor["source"],
    }


def _overhead_entries(overheads, category, year_start, year_end):
    entries = []
    for entry in overheads or []:
        if entry.get("category") != category:
            continue
        created = entry.get("created_at")
        if created and not in_period(created, year_start, year_end):
            continue
        entries.append(entry)
    return entries


def _spend_based(entry, source):
    return {
        "mode": "road_hgv",
        "distance_km": 0,
        "weight_tonnes": 0,
        "emission_factor": 0,
        "emissions_kg_co2e": to_float(entry.get("computed_co2e")),
        "source": source,
    }


def calculate_cat4(materials, overheads=None, year_start="0000-01-01", year_end="9999-12-31"):
    """Category 4 from material transport legs, falling back to logistics spend."""
    emissions = []
    notes = []
    data_quality = "secondary"

    for material in materials or []:
        mode = normalize_transport_mode(material.get("transport_mode"))
        distance = to_float(material.get("distance_km"))
        if not mode or distance <= 0:
            continue

        weight_kg = normalize_to_kg(material.get("quantity"), material.get("unit"))
        emissions.append(calculate_transport_emissions(weight_kg, distance, mode))
        data_quality = "primary"

    if not emissions:
        for entry in _overhead_entries(overheads, "upstream_logistics", year_start, year_end):
            emissions.append(_spend_based(entry, "Spend-based estimate from corporate overheads"))
        if emissions:
            data_quality = "spend_based"
            notes.append("Using spend-based estimation - consider adding transport distances for accuracy")

    if not emissions:
        notes.append("No upstream transport data available. Add transport distances to materials or logistics spend data.")

    return {
        "total_kg_co2e": sum(e["emissions_kg_co2e"] for e in emissions),
        "breakdown": emissions,
        "data_quality": data_quality,
        "notes": notes,
    }


def _index_products(products):
    return {str(p.get("id")): p for p in products or []}


def calculate_cat9(overheads, production_logs, products, year_start, year_end):
    """Category 9 from downstream logistics records, else an industry-average estimate."""
    emissions = []
    notes = []
    data_quality = "estimated"

    for entry in _overhead_entries(overheads, "downstream_logistics", year_start, year_end):
        emissions.append(_spend_based(entry, "From corporate overheads downstream_logistics"))
    if emissions:
        data_quality = "secondary"

    if not emissions:
        index = _index_products(products)
        total_weight_tonnes = 0.0
        for log in production_logs or []:
            if not in_period(log.get("date"), year_start, year_end):
                continue
            product = index.get(str(log.get("product_id")), {})
            unit_size_l = unit_size_to_litres(
                product.get("unit_size_value"), product.get("unit_size_unit"), DEFAULT_UNIT_SIZE_L
            )
            total_weight_tonnes += to_float(log.get("units_produced")) * unit_size_l * KG_PER_LITRE_PACKED / 1000.0

        if total_weight_tonnes > 0:
            estimate = calculate_transport_emissions(
                total_weight_tonnes * 1000.0, AVERAGE_DISTRIBUTION_KM, "road_hgv"
            )
            estimate["source"] += " - Estimated using industry average distance"
            emissions.append(estimate)
            notes.append(
                f"Estimated based on {total_weight_tonnes:.1f} tonnes distributed over average "
                f"{AVERAGE_DISTRIBUTION_KM}km. Add actual distribution data for accuracy."
            )

    if not emissions:
        notes.append("No downstream distribution data available. Add logistics data or production volumes.")

    return {
        "total_kg_co2e": sum(e["emissions_kg_co2e"] for e in emissions),
        "breakdown": emissions,
        "data_quality": data_quality,
        "notes": notes,
    }


def calculate_cat11(products, production_logs, year_start, year_end):
    """Category 11: refrigeration and carbonation of the units sold in the period."""
    units_by_product = {}
    for log in production_logs or []:
        if not in_period(log.get("date"), year_start, year_end):
            continue
        key = str(log.get("product_id"))
        units_by_product[key] = units_by_product.get(key, 0.0) + to_float(log.get("units_produced"))

    emissions = []
    notes = []
    for product in products or []:
        units = units_by_product.get(str(product.get("id")), 0.0)
        if units <= 0:
            continue

        config = product.get("use_phase_config") or get_default_use_phase_config(product.get("product_category"))
        unit_size_l = unit_size_to_litres(
            product.get("unit_size_value"), product.get("unit_size_unit"), DEFAULT_UNIT_SIZE_L
        )
        per_unit = calculate_use_phase_emissions(config, unit_size_l)
        if per_unit["total"] <= 0:
            continue

        assumptions = []
        if per_unit["refrigeration"] > 0:
            split = config.get("retail_refrigeration_split", 0.5)
            assumptions.append(
                f"{split * 100:.0f}% retail refrigeration, "
                f"{config.get('refrigeration_days', 7)} days storage"
            )
        if per_unit["carbonation"] > 0:
            assumptions.append("CO2 release from carbonation")

        emissions.append({
            "product_id": str(product.get("id")),
            "product_name": product.get("name"),
            "use_category": "refrigeration" if per_unit["refrigeration"] > 0 else "carbonation",
            "units": units,
            "emissions_kg_co2e": per_unit["total"] * units,
            "assumptions_used": assumptions,
        })

    if emissions:
        notes.append(
            f"Use phase calculated for {len(emissions)} products. "
            "Consider providing specific refrigeration and use data for accuracy."
        )
    else:
        notes.append("No use-phase emissions calculated. Products may not require refrigeration or be carbonated.")

    return {
        "total_kg_co2e": sum(e["emissions_kg_co2e"] for e in emissions),
        "breakdown": emissions,
        "notes": notes,
    }


def scope3_summary(materials, overheads, production_logs, products, year_start, year_end):
    cat4 = calculate_cat4(materials, overheads, year_start, year_end)
    cat9 = calculate_cat9(overheads, production_logs, products, year_start, year_end)
    cat11 = calculate_cat11(products, production_logs, year_start, year_end)

    notes = (
        [f"[Cat 4] {n}" for n in cat4["notes"]]
        + [f"[Cat 9] {n}" for n in cat9["notes"]]
        + [f"[Cat 11] {n}" for n in cat11["notes"]]
    )
    total = cat4["total_kg_co2e"] + cat9["total_kg_co2e"] + cat11["total_kg_co2e"]
    logger.info("Scope 3 cat 4/9/11 total: %.2f kg CO2e", total)

    return {
        "cat4_upstream_transport": cat4["total_kg_co2e"],
        "cat9_downstream_transport": cat9["total_kg_co2e"],
        "cat11_use_phase": cat11["total_kg_co2e"],
        "total": total,
        "notes": notes,
    }
