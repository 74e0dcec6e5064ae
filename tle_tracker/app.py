"""
TLE Tracker HTTP service

Flask front end over the TLE repository, the orbit engine and the derived
geometry (orbit paths, coverage footprints, sub-solar point).
"""

import asyncio
import os
import threading
from datetime import datetime, timezone
from typing import List, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from . import __version__, program_catalog
from .config import DEFAULT_QUERY_KEYS, EARTH_RADIUS_KM, config
from .coordinates import gmst_radians
from .errors import CelesTrakError, PropagationError
from .footprint import geocentric_half_angle_from_ground_radius
from .logging_config import configure_logging, get_logger
from .models import TLE, Satellite
from .orbit_engine import OrbitEngine, SGP4OrbitEngine
from .orbit_path import build_orbit_path_vertices
from .repository import TLERepository
from .solar import scene_sun_direction, subsolar_point
from .tle_catalog import merge_results, sorted_by_name
from .tle_parser import parse_epoch, parse_norad_id
from .tracking import make_satellite, normalized_query_keys, propagate_all

logger = get_logger(__name__)


class InvalidParameter(ValueError):
    """Query parameter that cannot be used"""


def _parse_timestamp(raw: Optional[str]) -> datetime:
    if not raw:
        return datetime.now(timezone.utc)
    try:
        timestamp = datetime.fromisoformat(raw.replace('Z', '+00:00'))
    except ValueError as e:
        raise InvalidParameter(f"Invalid timestamp: {raw}") from e
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp


def _parse_number(raw: Optional[str], name: str, cast, default):
    if raw is None or raw == '':
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise InvalidParameter(f"Invalid {name}: {raw}") from e


def _query_keys() -> List[str]:
    raw = request.args.getlist('query')
    keys = normalized_query_keys(part for value in raw for part in value.split(','))
    return keys or list(DEFAULT_QUERY_KEYS)


def _tle_json(tle: TLE) -> dict:
    epoch = parse_epoch(tle.line1)
    descriptor = program_catalog.descriptor_for_tle(tle.name, tle.line1)
    return {
        "name": tle.name,
        "norad_id": parse_norad_id(tle.line1),
        "line1": tle.line1,
        "line2": tle.line2,
        "epoch": epoch.isoformat() if epoch else None,
        "program": descriptor.category.label,
        "display_name": descriptor.display_name,
    }


def create_app(repository: Optional[TLERepository] = None,
               orbit_engine: Optional[OrbitEngine] = None) -> Flask:
    """Build the Flask application around a repository and an orbit engine."""
    app = Flask(__name__)
    CORS(app)

    repository = repository or TLERepository()
    orbit_engine = orbit_engine or SGP4OrbitEngine()

    # In-flight futures in the repository belong to one loop; every request
    # thread submits its work to it
    loop = asyncio.new_event_loop()
    loop_thread = threading.Thread(target=loop.run_forever, name="tle-repository-loop", daemon=True)
    loop_thread.start()
    app.extensions['tle_tracker_loop'] = loop

    def load(keys: List[str], refresh: bool = False):
        async def run():
            handler = repository.refresh_tles if refresh else repository.get_tles
            return [await handler(key) for key in keys]

        results = asyncio.run_coroutine_threadsafe(run(), loop).result()
        return merge_results(results, datetime.now(timezone.utc))

    def find_satellite(norad_id: int) -> Optional[Satellite]:
        merged = load(_query_keys())
        for tle in merged.tles:
            if parse_norad_id(tle.line1) == norad_id:
                return make_satellite(tle)
        return None

    @app.route('/health', methods=['GET'])
    def health_check():
        """Service status and the active settings"""
        return jsonify({
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "configuration": {
                "celestrak_url": config.CELESTRAK_GP_URL,
                "stale_after_seconds": config.STALE_AFTER.total_seconds(),
                "forbidden_backoff_seconds": config.FORBIDDEN_BACKOFF.total_seconds(),
                "default_query_keys": DEFAULT_QUERY_KEYS,
            },
        }), 200

    @app.route('/tles', methods=['GET'])
    def get_tles():
        refresh = request.args.get('refresh', 'false').lower() in ('1', 'true', 'yes')
        keys = _query_keys()
        merged = load(keys, refresh=refresh)
        tles = sorted_by_name(merged.tles)
        return jsonify({
            "query_keys": keys,
            "source": merged.source.value,
            "fetched_at": merged.fetched_at.isoformat(),
            "count": len(tles),
            "tles": [_tle_json(tle) for tle in tles],
        })

    @app.route('/positions', methods=['GET'])
    def get_positions():
        """Propagate every satellite for the query keys to one instant"""
        timestamp = _parse_timestamp(request.args.get('timestamp'))
        merged = load(_query_keys())
        satellites = [make_satellite(tle) for tle in merged.tles]
        tracked = propagate_all(orbit_engine, satellites, timestamp)
        return jsonify({
            "timestamp": timestamp.isoformat(),
            "fetched_at": merged.fetched_at.isoformat(),
            "count": len(tracked),
            "satellites": [
                {
                    "norad_id": item.satellite.id,
                    "name": item.satellite.name,
                    "latitude": item.position.latitude_degrees,
                    "longitude": item.position.longitude_degrees,
                    "altitude_km": item.position.altitude_km,
                }
                for item in tracked
            ],
        })

    @app.route('/satellites/<int:norad_id>/orbit-path', methods=['GET'])
    def get_orbit_path(norad_id: int):
        timestamp = _parse_timestamp(request.args.get('timestamp'))
        samples = _parse_number(request.args.get('samples'), 'samples', int,
                                config.ORBIT_PATH_SAMPLE_COUNT)
        offset_km = _parse_number(request.args.get('offset_km'), 'offset_km', float,
                                  config.ORBIT_PATH_ALTITUDE_OFFSET_KM)
        if samples < 2:
            raise InvalidParameter("samples must be at least 2")

        satellite = find_satellite(norad_id)
        if satellite is None:
            return jsonify({"error": "Satellite not found"}), 404

        vertices = build_orbit_path_vertices(satellite, timestamp, samples, offset_km)
        return jsonify({
            "norad_id": norad_id,
            "reference_date": timestamp.isoformat(),
            # Rotate by -GMST about the scene's y axis to align with the globe
            "earth_rotation_radians": gmst_radians(timestamp),
            "vertices": vertices.tolist(),
        })

    @app.route('/satellites/<int:norad_id>/coverage', methods=['GET'])
    def get_coverage(norad_id: int):
        timestamp = _parse_timestamp(request.args.get('timestamp'))
        satellite = find_satellite(norad_id)
        if satellite is None:
            return jsonify({"error": "Satellite not found"}), 404

        try:
            position = orbit_engine.position(satellite, timestamp)
        except PropagationError as e:
            return jsonify({"error": str(e)}), 422

        descriptor = program_catalog.descriptor_for_satellite(satellite)
        radius = program_catalog.estimated_coverage_ground_radius_km(satellite, position.altitude_km)
        half_angle = (
            geocentric_half_angle_from_ground_radius(radius, EARTH_RADIUS_KM)
            if radius is not None else None
        )
        return jsonify({
            "norad_id": norad_id,
            "display_name": descriptor.display_name,
            "program": descriptor.category.label,
            "timestamp": timestamp.isoformat(),
            "latitude": position.latitude_degrees,
            "longitude": position.longitude_degrees,
            "altitude_km": position.altitude_km,
            "ground_radius_km": radius,
            "geocentric_half_angle_radians": half_angle,
            "label": program_catalog.estimated_coverage_label(satellite, position.altitude_km),
        })

    @app.route('/sun', methods=['GET'])
    def get_sun():
        timestamp = _parse_timestamp(request.args.get('timestamp'))
        latitude, longitude = subsolar_point(timestamp)
        return jsonify({
            "timestamp": timestamp.isoformat(),
            "subsolar_latitude": latitude,
            "subsolar_longitude": longitude,
            "scene_direction": scene_sun_direction(timestamp).tolist(),
        })

    @app.errorhandler(InvalidParameter)
    def handle_bad_request(error):
        return jsonify({"error": str(error)}), 400

    @app.errorhandler(CelesTrakError)
    def handle_upstream_error(error):
        logger.warning("TLE request failed", error=str(error))
        return jsonify({"error": str(error)}), 502

    @app.errorhandler(Exception)
    def handle_error(error):
        """Global error handler"""
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code
        logger.exception("Unhandled error")
        return jsonify({
            "error": "Internal server error",
            "timestamp": datetime.now(timezone.utc).isoformat()
        }), 500

    return app


def main():
    configure_logging(json_output=True)
    logger.info("Starting TLE tracker service")
    port = int(os.getenv('PORT', '5001'))
    create_app().run(host='0.0.0.0', port=port, debug=False)


if __name__ == '__main__':
    main()
