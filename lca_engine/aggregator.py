"""
Product LCA impact aggregator.

Sums material impacts and production-site allocations into the per-unit
results stored on a product carbon footprint. Methodology: ISO 14067 /
GHG Protocol Product Standard, IPCC AR6 GWP100.
"""
import logging
from datetime import datetime, timezone

from lca_engine import CALCULATION_VERSION
from lca_engine.config import settings
from lca_engine.ef31 import aggregate_ef_impacts, calculate_single_score
from lca_engine.end_of_life import calculate_material_eol, get_material_factor_key
from lca_engine.errors import AllocationError, NoMaterialsError
from lca_engine.scope3 import calculate_transport_emissions, normalize_transport_mode
from lca_engine.units import normalize_to_kg, to_float, unit_size_to_litres
from lca_engine.use_phase import calculate_use_phase_emissions, get_default_use_phase_config

logger = logging.getLogger(__name__)

IPCC_AR6_GWP = {"CO2": 1, "CH4": 27.9, "N2O": 273}

SYSTEM_BOUNDARIES = ("cradle-to-gate", "cradle-to-grave")

PACKAGING_TYPES = ("packaging", "packaging_material")

# Owned sites without a scope split: typical beverage plant fuel/electricity mix
DEFAULT_SCOPE1_SHARE = 0.35
DEFAULT_SCOPE2_SHARE = 0.65

# Share of climate impact assumed to be CH4 / N2O when no gas inventory exists
BIOGENIC_CH4_SHARE = 0.02
BIOGENIC_N2O_SHARE = 0.01
AGRICULTURAL_N2O_SHARE = 0.005

GHG_RECONCILIATION_TOLERANCE = 0.1

IMPACT_FIELDS = (
    "impact_water",
    "impact_water_scarcity",
    "impact_land",
    "impact_waste",
    "impact_terrestrial_ecotoxicity",
    "impact_freshwater_eutrophication",
    "impact_terrestrial_acidification",
    "impact_fossil_resource_scarcity",
)


def is_packaging(material):
    return (material.get("material_type") or "").lower() in PACKAGING_TYPES


def normalize_contract_allocation(allocation):
    """Convert a contract manufacturer's period totals into per-unit figures."""
    volume = to_float(allocation.get("client_production_volume")) or 1.0
    return {
        "id": allocation.get("id"),
        "facility_id": allocation.get("facility_id"),
        "allocated_emissions_kg_co2e": to_float(allocation.get("allocated_emissions_kg_co2e")) / volume,
        "allocated_water_litres": to_float(allocation.get("allocated_water_litres")) / volume,
        "allocated_waste_kg": to_float(allocation.get("allocated_waste_kg")) / volume,
        "scope1_emissions_kg_co2e": to_float(allocation.get("scope1_emissions_kg_co2e")) / volume,
        "scope2_emissions_kg_co2e": to_float(allocation.get("scope2_emissions_kg_co2e")) / volume,
        "scope3_emissions_kg_co2e": to_float(allocation.get("scope3_emissions_kg_co2e")) / volume,
        "share_of_production": to_float(allocation.get("attribution_ratio")) * 100,
        "source": "contract_manufacturer",
    }


def _share_percent(site, site_count):
    share = to_float(site.get("share_of_production"))
    if share > 0:
        return share
    ratio = to_float(site.get("attribution_ratio"))
    if ratio > 0:
        return ratio * 100
    return 100.0 if site_count == 1 else 0.0


def validate_allocation(sites, tolerance_pct=None, strict=False):
    """
    Check that production shares across all sites add up to ~100%.

    Args:
        sites: Owned and contract-manufacturer sites
        tolerance_pct: Allowed deviation from 100 (defaults to configuration)
        strict: Raise AllocationError on over-allocation instead of warning

    Returns:
        Tuple of (total percentage, per-facility details, list of warnings)
    """
    if tolerance_pct is None:
        tolerance_pct = settings.allocation_tolerance_pct

    details = [
        {
            "facility_id": site.get("facility_id") or "unknown",
            "source": site.get("source") or "unknown",
            "share": _share_percent(site, len(sites)),
        }
        for site in sites
    ]
    total = sum(d["share"] for d in details)
    warnings = []
    if not sites:
        return total, details, warnings

    if total < 100 - tolerance_pct:
        logger.warning("Under-allocation: production shares sum to %.1f%%", total)
        warnings.append({
            "type": "under_allocation",
            "message": f"Production shares sum to {total:.1f}% instead of 100%",
            "facilities": details,
        })
    elif total > 100 + tolerance_pct:
        message = f"Production shares sum to {total:.1f}% instead of 100%"
        if strict:
            raise AllocationError(message)
        logger.error("Over-allocation: %s", message)
        warnings.append({"type": "over_allocation", "message": message, "facilities": details})
    else:
        logger.debug("Allocation validation passed: %.1f%%", total)
    return total, details, warnings


def _material_transport(material):
    if material.get("impact_transport") is not None:
        return to_float(material.get("impact_transport"))

    mode = normalize_transport_mode(material.get("transport_mode"))
    distance = to_float(material.get("distance_km"))
    if not mode or distance <= 0:
        return 0.0
    weight_kg = normalize_to_kg(material.get("quantity"), material.get("unit"))
    return calculate_transport_emissions(weight_kg, distance, mode)["emissions_kg_co2e"]


class _Totals:
    """Running sums for one aggregation."""

    def __init__(self):
        self.climate = 0.0
        self.climate_fossil = 0.0
        self.climate_biogenic = 0.0
        self.climate_dluc = 0.0
        self.transport = 0.0
        self.impacts = {field: 0.0 for field in IMPACT_FIELDS}
        self.scope = {"scope1": 0.0, "scope2": 0.0, "scope3": 0.0}
        self.stage = {
            "raw_materials": 0.0,
            "processing": 0.0,
            "packaging_stage": 0.0,
            "distribution": 0.0,
            "use_phase": 0.0,
            "end_of_life": 0.0,
        }
        self.co2_fossil = 0.0
        self.co2_biogenic = 0.0
        self.ch4 = 0.0
        self.n2o = 0.0
        self.hfc_pfc = 0.0

    def add_fossil(self, kg_co2e):
        self.climate += kg_co2e
        self.climate_fossil += kg_co2e
        self.co2_fossil += kg_co2e


def _add_materials(totals, materials, by_material):
    for material in materials:
        climate = to_float(material.get("impact_climate"))
        fossil = to_float(material.get("impact_climate_fossil"))
        biogenic = to_float(material.get("impact_climate_biogenic"))
        dluc = to_float(material.get("impact_climate_dluc"))
        transport = _material_transport(material)
        quantity = to_float(material.get("quantity"))
        material_type = (material.get("material_type") or "").lower()

        totals.climate += climate + transport
        totals.climate_fossil += fossil
        totals.climate_biogenic += biogenic
        totals.climate_dluc += dluc
        totals.transport += transport
        for field in IMPACT_FIELDS:
            totals.impacts[field] += to_float(material.get(field))

        totals.scope["scope3"] += climate + transport
        if is_packaging(material):
            totals.stage["packaging_stage"] += climate
        else:
            totals.stage["raw_materials"] += climate
        totals.stage["distribution"] += transport

        totals.co2_fossil += fossil
        totals.co2_biogenic += biogenic
        if biogenic > 0 and quantity > 0:
            totals.ch4 += biogenic * BIOGENIC_CH4_SHARE / IPCC_AR6_GWP["CH4"]
            totals.n2o += biogenic * BIOGENIC_N2O_SHARE / IPCC_AR6_GWP["N2O"]
        if material_type == "ingredient" and quantity > 0:
            totals.n2o += climate * AGRICULTURAL_N2O_SHARE / IPCC_AR6_GWP["N2O"]

        name = material.get("material_name") or material.get("name") or str(material.get("id"))
        entry = by_material.setdefault(name, {
            "material_type": material_type or "unknown",
            "climate": 0.0,
            "transport": 0.0,
            "end_of_life": 0.0,
            "total": 0.0,
        })
        entry["climate"] += climate
        entry["transport"] += transport
        entry["total"] += climate + transport

        logger.debug("Material %s: climate %.4f, transport %.4f kg CO2e", name, climate, transport)


def _per_unit(value, volume):
    # Owned-site rows may hold period totals or per-unit values
    if value > 1 and volume > 1:
        return value / volume
    return value


def _add_sites(totals, sites):
    for site in sites:
        contract = site.get("source") == "contract_manufacturer"
        volume = to_float(site.get("production_volume")) or 1.0

        if contract:
            emissions_per_unit = to_float(site.get("allocated_emissions_kg_co2e"))
        else:
            intensity = to_float(site.get("emission_intensity_kg_co2e_per_unit"))
            allocated = to_float(site.get("allocated_emissions_kg_co2e"))
            if intensity > 0:
                emissions_per_unit = intensity
            elif allocated > 0 and volume > 0:
                emissions_per_unit = allocated / volume
            else:
                emissions_per_unit = 0.0

        s1 = to_float(site.get("scope1_emissions_kg_co2e"))
        s2 = to_float(site.get("scope2_emissions_kg_co2e"))
        s3 = to_float(site.get("scope3_emissions_kg_co2e"))
        if not contract and volume > 1 and (s1 > 1 or s2 > 1):
            s1, s2, s3 = s1 / volume, s2 / volume, s3 / volume

        share = to_float(site.get("share_of_production"))
        ratio = to_float(site.get("attribution_ratio"))
        share_factor = share / 100 if share > 0 else (ratio if ratio > 0 else 1.0)

        if emissions_per_unit <= 0:
            continue

        attributable = emissions_per_unit * share_factor
        if contract:
            totals.scope["scope3"] += attributable
        else:
            f1, f2, f3 = s1 * share_factor, s2 * share_factor, s3 * share_factor
            if not (f1 > 0 or f2 > 0 or f3 > 0):
                f1 = attributable * DEFAULT_SCOPE1_SHARE
                f2 = attributable * DEFAULT_SCOPE2_SHARE
                f3 = 0.0
            totals.scope["scope1"] += f1
            totals.scope["scope2"] += f2
            totals.scope["scope3"] += f3

        totals.stage["processing"] += attributable
        totals.add_fossil(attributable)

        water = to_float(site.get("allocated_water_litres"))
        waste = to_float(site.get("allocated_waste_kg"))
        if contract:
            totals.impacts["impact_water"] += water * share_factor
            totals.impacts["impact_waste"] += waste * share_factor
        else:
            totals.impacts["impact_water"] += _per_unit(water, volume) * share_factor
            totals.impacts["impact_waste"] += _per_unit(waste, volume) * share_factor

        logger.debug(
            "%s facility %s: %.4f kg CO2e attributed",
            "Contract" if contract else "Owned", site.get("facility_id"), attributable,
        )


def _eol_settings(eol_config):
    eol_config = eol_config or {}
    region = (eol_config.get("region") or settings.default_eol_region).lower()
    return region, eol_config.get("pathways") or {}


def _add_end_of_life(totals, materials, eol_config, by_material):
    region, pathways = _eol_settings(eol_config)
    for material in materials:
        if not is_packaging(material):
            continue
        mass_kg = normalize_to_kg(material.get("quantity"), material.get("unit"))
        key = get_material_factor_key(material.get("packaging_category"), material.get("material_name"))
        result = calculate_material_eol(mass_kg, key, region, pathways.get(key))

        totals.stage["end_of_life"] += result["net"]
        totals.scope["scope3"] += result["net"]
        totals.add_fossil(result["net"])

        name = material.get("material_name") or material.get("name") or str(material.get("id"))
        if name in by_material:
            by_material[name]["end_of_life"] += result["net"]
            by_material[name]["total"] += result["net"]


def _add_use_phase(totals, product, use_phase_config):
    product = product or {}
    config = use_phase_config or get_default_use_phase_config(product.get("product_category"))
    volume_l = unit_size_to_litres(product.get("unit_size_value"), product.get("unit_size_unit"))
    result = calculate_use_phase_emissions(config, volume_l)

    totals.stage["use_phase"] += result["total"]
    totals.scope["scope3"] += result["total"]
    totals.climate += result["total"]
    # Refrigeration is grid electricity; dissolved CO2 is biogenic
    totals.climate_fossil += result["refrigeration"]
    totals.co2_fossil += result["refrigeration"]
    totals.climate_biogenic += result["carbonation"]
    totals.co2_biogenic += result["carbonation"]
    return result


def packaging_recycling_rate(materials, eol_config=None):
    """Mass-weighted recycling rate (%) of the packaging in a bill of materials."""
    region, pathways = _eol_settings(eol_config)
    total_mass = 0.0
    recycled = 0.0
    for material in materials:
        if not is_packaging(material):
            continue
        mass_kg = normalize_to_kg(material.get("quantity"), material.get("unit"))
        key = get_material_factor_key(material.get("packaging_category"), material.get("material_name"))
        rate = calculate_material_eol(1.0, key, region, pathways.get(key))["pathways"]["recycling"]
        total_mass += mass_kg
        recycled += mass_kg * rate
    if total_mass <= 0:
        return None
    return recycled / total_mass


def aggregate_product_impacts(
    materials,
    production_sites=None,
    contract_manufacturer_allocations=None,
    product=None,
    system_boundary="cradle-to-gate",
    use_phase_config=None,
    eol_config=None,
    weights=None,
    strict_allocation=False,
):
    """
    Aggregate a product's bill of materials and production sites into per-unit impacts.

    Args:
        materials: product_lca_materials rows (impact_* and optional ef_* columns)
        production_sites: Owned production site rows
        contract_manufacturer_allocations: Contract manufacturer rows (period totals)
        product: Product row with unit_size_value, unit_size_unit, product_category
        system_boundary: 'cradle-to-gate' or 'cradle-to-grave'
        use_phase_config: Overrides for the use-phase defaults (cradle-to-grave)
        eol_config: {'region': 'eu', 'pathways': {material_key: {pathway: pct}}}
        weights: Optional custom EF 3.1 weighting set
        strict_allocation: Raise on over-allocated production shares

    Returns:
        Dict of aggregated impacts with scope, lifecycle stage, GHG and
        material breakdowns
    """
    if not materials:
        raise NoMaterialsError()
    if system_boundary not in SYSTEM_BOUNDARIES:
        raise ValueError(f"Unknown system boundary: {system_boundary!r}")

    sites = [dict(site, source="owned") for site in production_sites or []]
    sites += [normalize_contract_allocation(cm) for cm in contract_manufacturer_allocations or []]
    logger.info(
        "Aggregating %d materials, %d owned sites, %d contract manufacturers",
        len(materials), len(production_sites or []), len(contract_manufacturer_allocations or []),
    )

    _, allocation_details, validation_warnings = validate_allocation(sites, strict=strict_allocation)

    totals = _Totals()
    by_material = {}
    _add_materials(totals, materials, by_material)
    _add_sites(totals, sites)

    use_phase = None
    if system_boundary == "cradle-to-grave":
        use_phase = _add_use_phase(totals, product, use_phase_config)
        _add_end_of_life(totals, materials, eol_config, by_material)

    total_carbon_footprint = totals.climate

    if sum(totals.scope.values()) == 0 and total_carbon_footprint > 0:
        totals.scope["scope3"] = total_carbon_footprint

    ghg_sum = (
        totals.co2_fossil
        + totals.co2_biogenic
        + totals.ch4 * IPCC_AR6_GWP["CH4"]
        + totals.n2o * IPCC_AR6_GWP["N2O"]
        + totals.hfc_pfc
    )
    if totals.climate > 0 and abs(ghg_sum - totals.climate) > totals.climate * GHG_RECONCILIATION_TOLERANCE:
        unallocated = totals.climate - ghg_sum
        if unallocated > 0:
            totals.co2_fossil += unallocated

    impacts = totals.impacts
    result = {
        "climate_change_gwp100": total_carbon_footprint,
        "water_consumption": impacts["impact_water"],
        "water_scarcity_aware": impacts["impact_water_scarcity"],
        "land_use": impacts["impact_land"],
        "terrestrial_ecotoxicity": impacts["impact_terrestrial_ecotoxicity"],
        "freshwater_eutrophication": impacts["impact_freshwater_eutrophication"],
        "terrestrial_acidification": impacts["impact_terrestrial_acidification"],
        "fossil_resource_scarcity": impacts["impact_fossil_resource_scarcity"],
        "circularity_percentage": packaging_recycling_rate(materials, eol_config),
        "total_climate": totals.climate,
        "total_climate_fossil": totals.climate_fossil,
        "total_climate_biogenic": totals.climate_biogenic,
        "total_climate_dluc": totals.climate_dluc,
        "total_transport": totals.transport,
        "total_water": impacts["impact_water"],
        "total_water_scarcity": impacts["impact_water_scarcity"],
        "total_land": impacts["impact_land"],
        "total_waste": impacts["impact_waste"],
        "total_carbon_footprint": total_carbon_footprint,
        "breakdown": {
            "by_scope": dict(totals.scope),
            "by_lifecycle_stage": dict(totals.stage),
            "by_ghg": {
                "co2_fossil": totals.co2_fossil,
                "co2_biogenic": totals.co2_biogenic,
                "ch4": totals.ch4,
                "n2o": totals.n2o,
                "hfc_pfc": totals.hfc_pfc,
            },
            "by_resource": {
                "fossil_fuel_usage": impacts["impact_fossil_resource_scarcity"],
                "water_consumption": impacts["impact_water"],
                "land_occupation": impacts["impact_land"],
            },
            "by_material": by_material,
        },
        "ghg_breakdown": {
            "carbon_origin": {
                "fossil": totals.climate_fossil,
                "biogenic": totals.climate_biogenic,
                "land_use_change": totals.climate_dluc,
            },
            "gas_inventory": {
                "co2_fossil": totals.co2_fossil,
                "co2_biogenic": totals.co2_biogenic,
                "methane": totals.ch4,
                "nitrous_oxide": totals.n2o,
                "hfc_pfc": totals.hfc_pfc,
            },
            "gwp_factors": {
                "methane_gwp100": IPCC_AR6_GWP["CH4"],
                "n2o_gwp100": IPCC_AR6_GWP["N2O"],
                "method": "IPCC AR6",
            },
            "co2e_contributions": {
                "co2_fossil": totals.co2_fossil,
                "co2_biogenic": totals.co2_biogenic,
                "ch4_as_co2e": totals.ch4 * IPCC_AR6_GWP["CH4"],
                "n2o_as_co2e": totals.n2o * IPCC_AR6_GWP["N2O"],
                "hfc_pfc": totals.hfc_pfc,
            },
        },
        "system_boundary": system_boundary,
        "use_phase": use_phase,
        "allocation": allocation_details,
        "validation_warnings": validation_warnings,
        "bulk_volume_per_functional_unit": unit_size_to_litres(
            (product or {}).get("unit_size_value"), (product or {}).get("unit_size_unit")
        ),
        "volume_unit": "L",
        "materials_count": len(materials),
        "production_sites_count": len(sites),
        "calculated_at": datetime.now(timezone.utc).isoformat(),
        "calculation_version": CALCULATION_VERSION,
    }

    ef_impacts = aggregate_ef_impacts(materials)
    if ef_impacts:
        result["ef31"] = dict(calculate_single_score(ef_impacts, weights), impacts=ef_impacts)

    logger.info(
        "Result: %.4f kg CO2e per unit (S1 %.4f, S2 %.4f, S3 %.4f)",
        total_carbon_footprint, totals.scope["scope1"], totals.scope["scope2"], totals.scope["scope3"],
    )
    return result
