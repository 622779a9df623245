"""Number and unit coercion for rows coming out of the database."""
import re

_MASS_TO_KG = {
    "g": 0.001, "gram": 0.001, "grams": 0.001,
    "mg": 0.000001,
    "t": 1000.0, "tonne": 1000.0, "tonnes": 1000.0, "ton": 1000.0, "tons": 1000.0,
    # Liquids are taken at 1 kg/L
    "ml": 0.001, "millilitres": 0.001, "milliliters": 0.001,
    "cl": 0.01,
}


def to_float(value, default=0.0):
    """Coerce a numeric-ish value (None, str, Decimal, int) to float."""
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", "").strip())
    except ValueError:
        return default


def normalize_key(text):
    key = str(text or "").strip().lower()
    key = key.replace("-", "_").replace(" ", "_")
    key = re.sub(r"[^a-z0-9_]", "", key)
    key = re.sub(r"_+", "_", key).strip("_")
    return key


def normalize_to_kg(quantity, unit):
    """Convert a material quantity to kg. Unknown units pass through unchanged."""
    qty = to_float(quantity)
    factor = _MASS_TO_KG.get(str(unit or "kg").strip().lower())
    if factor is None:
        return qty
    return qty * factor


def unit_size_to_litres(value, unit, default=1.0):
    """Convert a product unit size (e.g. 330 ml) to litres."""
    if value is None or value == "":
        return default
    size = to_float(value, default)
    unit = str(unit or "").strip().lower()
    if unit == "ml":
        return size / 1000.0
    if unit == "cl":
        return size / 100.0
    return size


def in_period(value, start, end):
    """True when an ISO date (or timestamp) string falls inside [start, end]."""
    if not value:
        return False
    day = str(value)[:10]
    return start <= day <= end


def year_bounds(year):
    return f"{int(year)}-01-01", f"{int(year)}-12-31"
