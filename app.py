from flask import Flask, request, jsonify
from flask_cors import CORS
import anthropic
from datetime import datetime
import logging
import statistics

from lca_engine.aggregator import aggregate_product_impacts
from lca_engine.config import settings
from lca_engine.corporate import calculate_corporate_emissions
from lca_engine.data_quality import (
    assess_aggregate_data_quality,
    assess_material_data_quality,
    generate_data_quality_statement,
)
from lca_engine.ef31 import (
    IMPACT_CATEGORIES,
    METHODOLOGY_VERSION,
    NORMALISATION_FACTORS,
    calculate_single_score,
)
from lca_engine.end_of_life import calculate_material_eol, get_material_factor_key
from lca_engine.interpretation import interpret_lca
from lca_engine.scope3 import scope3_summary
from lca_engine.units import to_float, year_bounds
from lca_engine.use_phase import calculate_use_phase_emissions, get_default_use_phase_config
from lca_engine.waste import summarize_waste
from lca_engine.water import calculate_facility_water_risks, summarize_water_risks

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
CORS(app)

submissions = []

HOTSPOT_SHARE_PCT = 10
LOW_RECYCLING_RATE_PCT = 50

FALLBACK_SUGGESTIONS = [
    "Source lower-carbon alternatives for the largest material hotspots",
    "Increase recycled content and recyclability of packaging",
    "Shift freight from road and air to rail or sea where possible",
    "Collect primary data from production sites to replace estimates",
]


def _get_claude_client():
    if not settings.claude_api_key:
        return None
    return anthropic.Anthropic(api_key=settings.claude_api_key)


def _missing(data, required):
    missing = [field for field in required if field not in data]
    if missing:
        return jsonify({
            "success": False,
            "error": f"Missing required fields: {', '.join(missing)}"
        }), 400
    return None


def extract_hotspots(result, limit=3):
    """Materials contributing more than 10% of the footprint, largest first."""
    total = result.get("total_carbon_footprint") or 0
    if total <= 0:
        return []
    by_material = result["breakdown"]["by_material"]
    ranked = sorted(by_material.items(), key=lambda x: x[1]["total"], reverse=True)
    return [
        {"material": name, "kg_co2e": entry["total"], "share_pct": round(entry["total"] / total * 100, 1)}
        for name, entry in ranked[:limit]
        if entry["total"] / total * 100 > HOTSPOT_SHARE_PCT
    ]


def extract_issues(materials, result):
    """Flag the usual problems in a bill of materials and its aggregation."""
    issues = []

    for mat in materials:
        mode = str(mat.get('transport_mode') or '').lower()
        if mode.startswith('air') or mode in ('plane', 'flight'):
            issues.append(f"{mat.get('material_name', 'Material')} shipped by air freight")

    circularity = result.get('circularity_percentage')
    if circularity is not None and circularity < LOW_RECYCLING_RATE_PCT:
        issues.append("Packaging recycling rate below 50%")

    for warning in result.get('validation_warnings', []):
        issues.append(warning['message'])

    if result['breakdown']['by_scope']['scope1'] + result['breakdown']['by_scope']['scope2'] == 0:
        issues.append("No owned production site data")

    return issues


def get_ai_suggestions(product_name, result, hotspots, issues):
    """Get AI-powered reduction suggestions from Claude."""
    client = _get_claude_client()
    if client is None:
        logger.info("CLAUDE_API_KEY not set, using fallback suggestions")
        return FALLBACK_SUGGESTIONS[:3]

    stages = result['breakdown']['by_lifecycle_stage']
    try:
        prompt = f"""Analyze this beverage product's life cycle assessment and provide 3-5 specific, actionable suggestions to reduce its environmental impact:

Product: {product_name}
System boundary: {result['system_boundary']}
Carbon footprint: {result['total_carbon_footprint']:.4f} kg CO2e per unit
Scope 1 / 2 / 3: {result['breakdown']['by_scope']['scope1']:.4f} / {result['breakdown']['by_scope']['scope2']:.4f} / {result['breakdown']['by_scope']['scope3']:.4f} kg CO2e
Lifecycle stages: {', '.join(f"{k} {v:.4f}" for k, v in stages.items())}
Hotspots: {', '.join(f"{h['material']} ({h['share_pct']}%)" for h in hotspots) or 'none above 10%'}
Water: {result['total_water']:.4f} m3
Packaging recycling rate: {result.get('circularity_percentage') if result.get('circularity_percentage') is not None else 'N/A'}
Known issues: {', '.join(issues) or 'none'}

Provide ONLY a bulleted list of 3-5 practical suggestions. Be concise and specific. Format as:
- Suggestion 1
- Suggestion 2
etc."""

        message = client.messages.create(
            model=settings.claude_model,
            max_tokens=500,
            messages=[{"role": "user", "content": prompt}]
        )

        suggestions_text = message.content[0].text.strip()
        suggestions = [s.strip('- ').strip() for s in suggestions_text.split('\n') if s.strip().startswith('-')]
        return suggestions[:5]

    except Exception as e:
        logger.warning("Claude suggestions failed, using fallback: %s", e)
        return FALLBACK_SUGGESTIONS[:3]


def _aggregate(data):
    return aggregate_product_impacts(
        data['materials'],
        production_sites=data.get('production_sites'),
        contract_manufacturer_allocations=data.get('contract_manufacturer_allocations'),
        product=data.get('product'),
        system_boundary=data.get('system_boundary', 'cradle-to-gate'),
        use_phase_config=data.get('use_phase_config'),
        eol_config=data.get('eol_config'),
        weights=data.get('weights'),
        strict_allocation=bool(data.get('strict_allocation', False)),
    )


def _product_name(data):
    return data.get('product_name') or (data.get('product') or {}).get('name') or 'Unnamed product'


@app.route('/lca/aggregate', methods=['POST'])
def aggregate_lca():
    """Aggregate a bill of materials into per-unit impacts."""
    try:
        data = request.get_json(silent=True) or {}
        error = _missing(data, ['materials'])
        if error:
            return error

        result = _aggregate(data)
        hotspots = extract_hotspots(result)
        issues = extract_issues(data['materials'], result)

        submissions.append({
            "product_name": _product_name(data),
            "total_carbon_footprint": result['total_carbon_footprint'],
            "system_boundary": result['system_boundary'],
            "single_score": result['ef31']['single_score'] if 'ef31' in result else None,
            "hotspots": hotspots,
            "issues": issues,
            "timestamp": datetime.now().isoformat()
        })

        return jsonify({
            "success": True,
            "product_name": _product_name(data),
            "aggregated_impacts": result,
            "hotspots": hotspots,
            "issues": issues
        }), 200

    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        logger.exception("Aggregation failed")
        return jsonify({"success": False, "error": f"Internal error: {str(e)}"}), 500


@app.route('/lca/single-score', methods=['POST'])
def single_score():
    """EF 3.1 normalisation, weighting and single score."""
    try:
        data = request.get_json(silent=True) or {}
        error = _missing(data, ['impacts'])
        if error:
            return error

        result = calculate_single_score(data['impacts'], data.get('weights'))
        return jsonify({"success": True, **result}), 200

    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        logger.exception("Single score failed")
        return jsonify({"success": False, "error": f"Internal error: {str(e)}"}), 500


@app.route('/lca/data-quality', methods=['POST'])
def data_quality():
    """ISO 14044 data quality assessment for a bill of materials."""
    try:
        data = request.get_json(silent=True) or {}
        error = _missing(data, ['materials'])
        if error:
            return error

        reference_year = int(data.get('reference_year') or datetime.now().year)
        assessments = [
            assess_material_data_quality(m, reference_year, data.get('study_region'))
            for m in data['materials']
        ]
        aggregate = assess_aggregate_data_quality(assessments, reference_year)

        return jsonify({
            "success": True,
            "materials": assessments,
            "aggregate": aggregate,
            "statement": generate_data_quality_statement(aggregate, reference_year)
        }), 200

    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        logger.exception("Data quality assessment failed")
        return jsonify({"success": False, "error": f"Internal error: {str(e)}"}), 500


@app.route('/lca/end-of-life', methods=['POST'])
def end_of_life():
    """End-of-life emissions for one packaging material."""
    try:
        data = request.get_json(silent=True) or {}
        error = _missing(data, ['mass_kg'])
        if error:
            return error

        material_type = data.get('material_type') or get_material_factor_key(
            data.get('packaging_category'), data.get('material_name')
        )
        region = data.get('region') or settings.default_eol_region
        result = calculate_material_eol(
            to_float(data['mass_kg']), material_type, region, data.get('pathways')
        )
        return jsonify({"success": True, "material_type": material_type, "region": region, **result}), 200

    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        logger.exception("End-of-life calculation failed")
        return jsonify({"success": False, "error": f"Internal error: {str(e)}"}), 500


@app.route('/lca/use-phase', methods=['POST'])
def use_phase():
    """Refrigeration and carbonation emissions for one unit."""
    try:
        data = request.get_json(silent=True) or {}
        error = _missing(data, ['volume_litres'])
        if error:
            return error

        config = data.get('config') or get_default_use_phase_config(data.get('product_category'))
        if data.get('consumer_country_code'):
            config = dict(config, consumer_country_code=data['consumer_country_code'])
        result = calculate_use_phase_emissions(config, to_float(data['volume_litres']))
        return jsonify({"success": True, "config": config, **result}), 200

    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        logger.exception("Use phase calculation failed")
        return jsonify({"success": False, "error": f"Internal error: {str(e)}"}), 500


@app.route('/lca/interpretation', methods=['POST'])
def interpretation():
    """ISO 14044 interpretation of an aggregated LCA."""
    try:
        data = request.get_json(silent=True) or {}
        error = _missing(data, ['materials'])
        if error:
            return error

        aggregated = data.get('aggregated_impacts') or _aggregate(data)
        result = interpret_lca(
            data['materials'],
            aggregated,
            system_boundary=data.get('system_boundary'),
            reference_year=int(data.get('reference_year') or datetime.now().year),
        )
        return jsonify({"success": True, **result}), 200

    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        logger.exception("Interpretation failed")
        return jsonify({"success": False, "error": f"Internal error: {str(e)}"}), 500


@app.route('/lca/suggestions', methods=['POST'])
def suggestions():
    """AI reduction suggestions for a product."""
    try:
        data = request.get_json(silent=True) or {}
        error = _missing(data, ['materials'])
        if error:
            return error

        result = _aggregate(data)
        hotspots = extract_hotspots(result)
        issues = extract_issues(data['materials'], result)

        return jsonify({
            "success": True,
            "product_name": _product_name(data),
            "total_carbon_footprint": result['total_carbon_footprint'],
            "hotspots": hotspots,
            "issues": issues,
            "suggestions": get_ai_suggestions(_product_name(data), result, hotspots, issues)
        }), 200

    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        logger.exception("Suggestions failed")
        return jsonify({"success": False, "error": f"Internal error: {str(e)}"}), 500


@app.route('/corporate/emissions', methods=['POST'])
def corporate_emissions():
    """Corporate Scope 1/2/3 footprint for a year."""
    try:
        data = request.get_json(silent=True) or {}
        error = _missing(data, ['year'])
        if error:
            return error

        result = calculate_corporate_emissions(
            data['year'],
            activity_data=data.get('activity_data'),
            factors=data.get('emission_factors'),
            fleet=data.get('fleet_activities'),
            production_logs=data.get('production_logs'),
            product_lcas=data.get('product_lcas'),
            overheads=data.get('overheads'),
        )
        return jsonify({"success": True, **result}), 200

    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        logger.exception("Corporate emissions failed")
        return jsonify({"success": False, "error": f"Internal error: {str(e)}"}), 500


@app.route('/corporate/scope3', methods=['POST'])
def corporate_scope3():
    """Scope 3 categories 4, 9 and 11 for a year."""
    try:
        data = request.get_json(silent=True) or {}
        error = _missing(data, ['year'])
        if error:
            return error

        year_start, year_end = year_bounds(data['year'])
        result = scope3_summary(
            data.get('materials'),
            data.get('overheads'),
            data.get('production_logs'),
            data.get('products'),
            year_start,
            year_end,
        )
        return jsonify({"success": True, "year": int(data['year']), **result}), 200

    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        logger.exception("Scope 3 calculation failed")
        return jsonify({"success": False, "error": f"Internal error: {str(e)}"}), 500


@app.route('/waste/summary', methods=['POST'])
def waste_summary():
    """Waste emissions, diversion and hazard metrics."""
    try:
        data = request.get_json(silent=True) or {}
        error = _missing(data, ['entries'])
        if error:
            return error

        return jsonify({"success": True, **summarize_waste(data['entries'])}), 200

    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        logger.exception("Waste summary failed")
        return jsonify({"success": False, "error": f"Internal error: {str(e)}"}), 500


@app.route('/water/risks', methods=['POST'])
def water_risks():
    """AWARE water risk per facility."""
    try:
        data = request.get_json(silent=True) or {}
        error = _missing(data, ['facilities'])
        if error:
            return error

        risks = calculate_facility_water_risks(
            data['facilities'],
            data.get('aware_factors'),
            data.get('activity_entries'),
            data.get('materials'),
            data.get('production_sites'),
            data.get('contract_manufacturer_allocations'),
        )
        return jsonify({"success": True, "facilities": risks, "summary": summarize_water_risks(risks)}), 200

    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except Exception as e:
        logger.exception("Water risk calculation failed")
        return jsonify({"success": False, "error": f"Internal error: {str(e)}"}), 500


@app.route('/ef31/categories', methods=['GET'])
def ef31_categories():
    """EF 3.1 impact categories with normalisation factors and default weights."""
    try:
        categories = [
            {
                "code": code,
                "name": meta['name'],
                "unit": meta['unit'],
                "default_weight": meta['default_weight'],
                "normalisation_factor": NORMALISATION_FACTORS[code]
            }
            for code, meta in IMPACT_CATEGORIES.items()
        ]
        return jsonify({"success": True, "methodology": METHODOLOGY_VERSION, "categories": categories}), 200

    except Exception as e:
        logger.exception("Listing EF 3.1 categories failed")
        return jsonify({"success": False, "error": f"Internal error: {str(e)}"}), 500


@app.route('/history', methods=['GET'])
def get_history():
    """Get all recent aggregations."""
    try:
        history = sorted(submissions, key=lambda x: x['timestamp'], reverse=True)
        return jsonify({
            "success": True,
            "count": len(history),
            "submissions": history
        }), 200
    except Exception as e:
        return jsonify({"success": False, "error": str(e)}), 500


@app.route('/summary', methods=['GET'])
def get_summary():
    """Get statistics across all aggregated products."""
    try:
        if not submissions:
            return jsonify({
                "success": True,
                "total_products": 0,
                "average_footprint": 0,
                "top_hotspots": [],
                "top_issues": []
            }), 200

        footprints = [s['total_carbon_footprint'] for s in submissions]

        hotspot_counts = {}
        for s in submissions:
            for h in s.get('hotspots', []):
                hotspot_counts[h['material']] = hotspot_counts.get(h['material'], 0) + 1
        top_hotspots = sorted(hotspot_counts.items(), key=lambda x: x[1], reverse=True)[:5]
        top_hotspots = [{"material": material, "count": count} for material, count in top_hotspots]

        issue_counts = {}
        for s in submissions:
            for issue in s.get('issues', []):
                issue_counts[issue] = issue_counts.get(issue, 0) + 1
        top_issues = sorted(issue_counts.items(), key=lambda x: x[1], reverse=True)[:5]
        top_issues = [{"issue": issue, "count": count} for issue, count in top_issues]

        boundaries = {}
        for s in submissions:
            boundaries[s['system_boundary']] = boundaries.get(s['system_boundary'], 0) + 1

        distribution = {
            "min_footprint": min(footprints),
            "max_footprint": max(footprints),
            "median_footprint": statistics.median(footprints),
            "std_dev": round(statistics.stdev(footprints), 4) if len(footprints) > 1 else 0
        }

        return jsonify({
            "success": True,
            "total_products": len(submissions),
            "average_footprint": round(statistics.mean(footprints), 4),
            "system_boundaries": boundaries,
            "top_hotspots": top_hotspots,
            "top_issues": top_issues,
            "distribution": distribution
        }), 200

    except Exception as e:
        return jsonify({"success": False, "error": str(e)}), 500


@app.route('/clear', methods=['POST'])
def clear_data():
    """Clear all aggregation history (for testing)."""
    global submissions
    submissions = []
    return jsonify({
        "success": True,
        "message": "All data cleared"
    }), 200


if __name__ == '__main__':
    app.run(debug=True, host='0.0.0.0', port=settings.port)
