"""
Corporate GHG inventory (GHG Protocol Corporate Standard / ISO 14064-1).

Scope 1 and 2 come from facility activity data and company fleet records.
Scope 3 purchased goods use only the Scope 3 share of each product's LCA so
owned-facility emissions are not counted twice.
"""
import logging

from lca_engine.units import in_period, to_float, year_bounds

logger = logging.getLogger(__name__)

SCOPE3_CATEGORIES = (
    "products",
    "business_travel",
    "purchased_services",
    "employee_commuting",
    "capital_goods",
    "operational_waste",
    "downstream_logistics",
    "marketing_materials",
)

OVERHEAD_ROUTES = {
    "business_travel": "business_travel",
    "employee_commuting": "employee_commuting",
    "capital_goods": "capital_goods",
    "operational_waste": "operational_waste",
    "downstream_logistics": "downstream_logistics",
}

GREY_FLEET_SCOPE = "Scope 3 Cat 6"


def _within_reporting_period(row, year_start, year_end):
    start = row.get("reporting_period_start")
    end = row.get("reporting_period_end") or start
    return in_period(start, year_start, year_end) and in_period(end, year_start, year_end)


def _factor_lookup(factors):
    if isinstance(factors, dict):
        return {str(k): v for k, v in factors.items()}
    return {str(f.get("factor_id")): f.get("value") for f in factors or []}


def _activity_emissions(activity_data, factors, scope, year_start, year_end):
    lookup = _factor_lookup(factors)
    total = 0.0
    for row in activity_data or []:
        if row.get("scope") != scope or not _within_reporting_period(row, year_start, year_end):
            continue
        factor_id = row.get("emission_factor_id")
        value = lookup.get(str(factor_id)) if factor_id is not None else None
        if not value:
            logger.debug("Activity row without emission factor skipped: %s", factor_id)
            continue
        total += to_float(row.get("quantity")) * to_float(value)
    return total


def _fleet_emissions(fleet, scope, year_start, year_end):
    total = 0.0
    for row in fleet or []:
        if row.get("scope") == scope and _within_reporting_period(row, year_start, year_end):
            # Fleet records are tCO2e
            total += to_float(row.get("emissions_tco2e")) * 1000
    return total


def calculate_scope1(activity_data, factors, fleet, year_start, year_end):
    """Stationary, mobile, process and fugitive combustion plus owned fleet (kg CO2e)."""
    return (
        _activity_emissions(activity_data, factors, "Scope 1", year_start, year_end)
        + _fleet_emissions(fleet, "Scope 1", year_start, year_end)
    )


def calculate_scope2(activity_data, factors, fleet, year_start, year_end):
    """Purchased electricity, heat and steam plus owned electric fleet (kg CO2e)."""
    return (
        _activity_emissions(activity_data, factors, "Scope 2", year_start, year_end)
        + _fleet_emissions(fleet, "Scope 2", year_start, year_end)
    )


def _latest_completed_lcas(product_lcas):
    latest = {}
    for lca in product_lcas or []:
        if lca.get("status") != "completed":
            continue
        key = str(lca.get("product_id"))
        current = latest.get(key)
        if current is None or str(lca.get("updated_at") or "") > str(current.get("updated_at") or ""):
            latest[key] = lca
    return latest


def _scope3_per_unit(lca):
    impacts = (lca or {}).get("aggregated_impacts") or {}
    by_scope = (impacts.get("breakdown") or {}).get("by_scope") or {}
    return to_float(by_scope.get("scope3"))


def calculate_scope3(production_logs, product_lcas, overheads, fleet, year_start, year_end):
    """
    Scope 3 breakdown by reporting category.

    Args:
        production_logs: Rows with product_id, units_produced and date
        product_lcas: Rows with product_id, status, updated_at and aggregated_impacts
        overheads: Corporate overhead rows for the reporting year
            (category, computed_co2e, material_type)
        fleet: Fleet rows; 'Scope 3 Cat 6' (grey fleet) counts as business travel
        year_start, year_end: ISO date bounds of the reporting year

    Returns:
        Dict of category -> kg CO2e plus 'total'
    """
    breakdown = dict.fromkeys(SCOPE3_CATEGORIES, 0.0)

    lcas = _latest_completed_lcas(product_lcas)
    for log in production_logs or []:
        units = to_float(log.get("units_produced"))
        if units <= 0 or not in_period(log.get("date"), year_start, year_end):
            continue
        per_unit = _scope3_per_unit(lcas.get(str(log.get("product_id"))))
        if per_unit > 0:
            breakdown["products"] += per_unit * units

    for entry in overheads or []:
        created = entry.get("created_at")
        if created and not in_period(created, year_start, year_end):
            continue
        co2e = to_float(entry.get("computed_co2e"))
        category = entry.get("category")
        if category in OVERHEAD_ROUTES:
            breakdown[OVERHEAD_ROUTES[category]] += co2e
        elif category == "purchased_services" and entry.get("material_type"):
            breakdown["marketing_materials"] += co2e
        else:
            if category != "purchased_services":
                logger.debug("Overhead category '%s' counted as purchased services", category)
            breakdown["purchased_services"] += co2e

    breakdown["business_travel"] += _fleet_emissions(fleet, GREY_FLEET_SCOPE, year_start, year_end)

    breakdown["total"] = sum(breakdown[c] for c in SCOPE3_CATEGORIES)
    return breakdown


def calculate_corporate_emissions(
    year,
    activity_data=None,
    factors=None,
    fleet=None,
    production_logs=None,
    product_lcas=None,
    overheads=None,
):
    """Full corporate footprint for a calendar year, in kg CO2e."""
    year = int(year)
    year_start, year_end = year_bounds(year)

    scope1 = calculate_scope1(activity_data, factors, fleet, year_start, year_end)
    scope2 = calculate_scope2(activity_data, factors, fleet, year_start, year_end)
    scope3 = calculate_scope3(production_logs, product_lcas, overheads, fleet, year_start, year_end)
    total = scope1 + scope2 + scope3["total"]

    logger.info("Corporate %d: S1 %.1f, S2 %.1f, S3 %.1f kg CO2e", year, scope1, scope2, scope3["total"])
    return {
        "year": year,
        "breakdown": {
            "scope1": scope1,
            "scope2": scope2,
            "scope3": scope3,
            "total": total,
        },
        "has_data": total > 0,
    }
