"""
Facility water risk using AWARE characterisation factors.

AWARE is relative to the world average (1.0): a factor of 10 means a cubic
metre consumed there deprives ten times more than the average.
"""
import logging

from lca_engine.units import to_float

logger = logging.getLogger(__name__)

HIGH_RISK_THRESHOLD = 10
MEDIUM_RISK_THRESHOLD = 1
DEFAULT_AWARE_FACTOR = 1.0


def calculate_risk_level(aware_factor):
    if aware_factor >= HIGH_RISK_THRESHOLD:
        return "high"
    if aware_factor >= MEDIUM_RISK_THRESHOLD:
        return "medium"
    return "low"


def calculate_scarcity_weighted(water_m3, aware_factor):
    return water_m3 * aware_factor


def calculate_overall_risk_level(high_count, medium_count, low_count=0):
    if high_count > 0:
        return "high"
    if medium_count > 0:
        return "medium"
    return "low"


def _aware(aware_factors, country_code):
    if not country_code:
        return DEFAULT_AWARE_FACTOR
    value = aware_factors.get(country_code.upper())
    return DEFAULT_AWARE_FACTOR if value is None else to_float(value, DEFAULT_AWARE_FACTOR)


def _embedded_water(production_sites, cm_allocations):
    """Raw embedded water per facility; an owned site wins over a contract manufacturer at the same facility."""
    embedded = {}
    owned = set()

    for site in production_sites or []:
        facility_id = site.get("facility_id")
        if not facility_id:
            continue
        water_per_unit = to_float((site.get("aggregated_impacts") or {}).get("water_consumption"))
        volume = to_float(site.get("production_volume"))
        share = to_float(site.get("share_of_production_percent") or 100) / 100.0
        owned.add(facility_id)

        current = embedded.setdefault(
            facility_id, {"water_m3": 0.0, "production": 0.0, "products": [], "source": "owned"}
        )
        current["water_m3"] += water_per_unit * volume * share
        current["production"] += volume * share
        name = site.get("product_name") or "Unknown"
        if name not in current["products"]:
            current["products"].append(name)

    duplicates = []
    for allocation in cm_allocations or []:
        facility_id = allocation.get("facility_id")
        if not facility_id:
            continue
        if facility_id in owned:
            duplicates.append(facility_id)
            continue

        current = embedded.setdefault(
            facility_id, {"water_m3": 0.0, "production": 0.0, "products": [], "source": "contract_manufacturer"}
        )
        current["water_m3"] += to_float(allocation.get("allocated_water_litres")) / 1000.0
        current["production"] += to_float(allocation.get("client_production_volume"))
        name = allocation.get("product_name") or "Unknown"
        if name not in current["products"]:
            current["products"].append(name)

    if duplicates:
        logger.warning(
            "Skipped %d contract manufacturer allocation(s) at owned facilities: %s",
            len(duplicates), ", ".join(str(d) for d in sorted(set(duplicates), key=str)),
        )
    return embedded


def calculate_facility_water_risks(
    facilities,
    aware_factors=None,
    activity_entries=None,
    materials=None,
    production_sites=None,
    cm_allocations=None,
):
    """
    Per-facility water risk.

    Args:
        facilities: Dicts with id, name, location_country_code and optionally
            products (list of product ids made there)
        aware_factors: Country code -> AWARE factor
        activity_entries: Dicts with facility_id, water_intake, water_discharge (m3)
        materials: LCA material rows with product_id, impact_water (m3) and
            origin_country_code; origin-weighted water is split evenly across
            the facilities making the product
        production_sites: Owned production site rows of completed LCAs with
            facility_id, product_id, product_name, production_volume,
            share_of_production_percent and aggregated_impacts.water_consumption
            (m3 per unit)
        cm_allocations: Contract manufacturer rows with facility_id,
            product_name, allocated_water_litres and client_production_volume;
            ignored for facilities already covered by an owned site

    Returns:
        List of facility risk dicts
    """
    aware_factors = {str(k).upper(): v for k, v in (aware_factors or {}).items()}

    operational = {}
    for entry in activity_entries or []:
        facility_id = entry.get("facility_id")
        if not facility_id:
            continue
        current = operational.setdefault(facility_id, {"intake": 0.0, "discharge": 0.0})
        current["intake"] += to_float(entry.get("water_intake"))
        current["discharge"] += to_float(entry.get("water_discharge"))

    embedded = _embedded_water(production_sites, cm_allocations)

    product_facilities = {}

    def link(product_id, facility_id):
        if product_id is None or not facility_id:
            return
        linked = product_facilities.setdefault(str(product_id), [])
        if facility_id not in linked:
            linked.append(facility_id)

    for site in production_sites or []:
        link(site.get("product_id"), site.get("facility_id"))
    for facility in facilities or []:
        for product_id in facility.get("products") or []:
            link(product_id, facility.get("id"))

    origin_weighted = {}
    for material in materials or []:
        water_m3 = to_float(material.get("impact_water"))
        if water_m3 <= 0:
            continue
        facility_ids = product_facilities.get(str(material.get("product_id")), [])
        if not facility_ids:
            continue
        weighted = water_m3 * _aware(aware_factors, material.get("origin_country_code"))
        for facility_id in facility_ids:
            origin_weighted[facility_id] = origin_weighted.get(facility_id, 0.0) + weighted / len(facility_ids)

    risks = []
    for facility in facilities or []:
        facility_id = facility.get("id")
        country = (facility.get("location_country_code") or "").upper() or "GLOBAL"
        aware = _aware(aware_factors, country)
        if country not in aware_factors:
            logger.debug("No AWARE factor for %s, using world average", country)

        water = operational.get(facility_id, {"intake": 0.0, "discharge": 0.0})
        net = water["intake"] - water["discharge"]
        operational_weighted = calculate_scarcity_weighted(net, aware)
        embedded_weighted = origin_weighted.get(facility_id, 0.0)
        site = embedded.get(facility_id, {})

        risks.append({
            "facility_id": facility_id,
            "facility_name": facility.get("name") or "Unknown Facility",
            "location_country_code": country,
            "water_scarcity_aware": aware,
            "risk_level": calculate_risk_level(aware),
            "operational_water_intake_m3": water["intake"],
            "operational_water_discharge_m3": water["discharge"],
            "operational_net_consumption_m3": net,
            "product_lca_water_m3": site.get("water_m3", 0.0),
            "scarcity_weighted_consumption_m3": operational_weighted,
            "embedded_water_scarcity_weighted_m3": embedded_weighted,
            "total_scarcity_weighted_m3": operational_weighted + embedded_weighted,
            "production_volume": site.get("production", 0.0),
            "products_linked": site.get("products", []),
            "embedded_water_source": site.get("source"),
            "has_operational_data": water["intake"] > 0 or water["discharge"] > 0,
        })
    return risks


def summarize_water_risks(risks):
    counts = {"high": 0, "medium": 0, "low": 0}
    for risk in risks:
        counts[risk["risk_level"]] += 1
    return {
        "high_risk_count": counts["high"],
        "medium_risk_count": counts["medium"],
        "low_risk_count": counts["low"],
        "total_facilities": len(risks),
        "overall_risk_level": calculate_overall_risk_level(counts["high"], counts["medium"], counts["low"]),
    }
