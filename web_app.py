#!/usr/bin/env python3
"""Homelab Portal - API server.

Serves host metrics, Docker state and the service link list over REST,
and starts the WebSocket hub that pushes the same data to subscribed
browsers as it changes.

Usage:
    python3 web_app.py                    # REST on :3001, WebSocket hub on :3002
    python3 web_app.py --port 8080        # Custom REST port
    python3 web_app.py --config portal.yaml
"""

__version__ = "1.2.0"

import argparse
import logging
from datetime import datetime, timezone

from docker.errors import DockerException, NotFound
from flask import Flask, jsonify, request
from flask_cors import CORS

import collectors
from config import load_config
from core.broadcast_hub import BroadcastHub
from core.registry import CHANNEL_REGISTRY
from core.server import HubServer
from core.service_store import ServiceStore

logger = logging.getLogger(__name__)


def _service_fields(data):
    """Validate a service payload. Returns (fields, error)."""
    if not isinstance(data, dict):
        return None, "Name and URL are required"
    name, url = data.get("name"), data.get("url")
    if not name or not url:
        return None, "Name and URL are required"
    return {
        "name": name,
        "url": url,
        "icon": data.get("icon", ""),
        "category": data.get("category", ""),
    }, None


def create_app(store: ServiceStore, hub_server=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    CORS(app)

    def _metric(reader, label):
        try:
            return jsonify(reader())
        except Exception as exc:
            logger.error("%s error: %s", label, exc)
            return jsonify({"error": f"Failed to fetch {label}", "message": str(exc)}), 500

    # ─── Routes: metrics ───

    @app.route("/api/metrics/system")
    def system_metrics():
        return _metric(collectors.read_system_metrics, "system metrics")

    @app.route("/api/metrics/temperature")
    def temperature():
        return _metric(collectors.read_temperature, "temperature")

    @app.route("/api/metrics/disk")
    def disk():
        return _metric(collectors.read_disk_summary, "disk metrics")

    @app.route("/api/metrics/disk/detailed")
    def disk_detailed():
        return _metric(collectors.read_detailed_disks, "detailed disk information")

    @app.route("/api/metrics/network")
    def network():
        return _metric(collectors.read_network, "network metrics")

    @app.route("/api/metrics/processes")
    def processes():
        return _metric(collectors.read_processes, "processes")

    # ─── Routes: Docker ───

    @app.route("/api/docker/containers")
    def docker_containers():
        return _metric(collectors.read_containers, "Docker containers")

    @app.route("/api/docker/info")
    def docker_info():
        return _metric(collectors.read_docker_info, "Docker info")

    @app.route("/api/docker/containers/<container_id>/<action>", methods=["POST"])
    def docker_action(container_id, action):
        if action not in collectors.docker_state.ALLOWED_ACTIONS:
            return jsonify({"error": "Invalid action"}), 400
        try:
            return jsonify(collectors.container_action(container_id, action))
        except NotFound:
            return jsonify({"error": "Container not found"}), 404
        except (DockerException, collectors.DockerUnavailable) as exc:
            logger.error("Container %s %s failed: %s", container_id, action, exc)
            return jsonify({"error": f"Failed to {action} container"}), 500

    # ─── Routes: services ───

    @app.route("/api/services")
    def list_services():
        return jsonify(store.get_all())

    @app.route("/api/services/<int:service_id>")
    def get_service(service_id):
        service = store.get(service_id)
        if not service:
            return jsonify({"error": "Service not found"}), 404
        return jsonify(service)

    @app.route("/api/services", methods=["POST"])
    def create_service():
        fields, error = _service_fields(request.get_json(silent=True))
        if error:
            return jsonify({"error": error}), 400
        return jsonify(store.create(**fields)), 201

    @app.route("/api/services/<int:service_id>", methods=["PUT"])
    def update_service(service_id):
        fields, error = _service_fields(request.get_json(silent=True))
        if error:
            return jsonify({"error": error}), 400
        service = store.update(service_id, **fields)
        if not service:
            return jsonify({"error": "Service not found"}), 404
        return jsonify(service)

    @app.route("/api/services/<int:service_id>", methods=["DELETE"])
    def delete_service(service_id):
        store.delete(service_id)
        return "", 204

    # ─── Routes: hub stats + health ───

    @app.route("/api/ws/stats")
    def ws_stats():
        """Connected clients and subscribers per channel."""
        if hub_server is None:
            return jsonify({"error": "WebSocket hub not running"}), 503
        return jsonify(hub_server.stats())

    @app.route("/health")
    def health():
        return jsonify({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
        })

    @app.errorhandler(404)
    def not_found(exc):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(500)
    def internal_error(exc):
        logger.error("Unhandled error: %s", exc)
        return jsonify({"error": "Internal server error"}), 500

    return app


def main():
    parser = argparse.ArgumentParser(description="Homelab Portal API server")
    parser.add_argument("--host", default=None, help="Bind address")
    parser.add_argument("--port", type=int, default=None, help="REST API port")
    parser.add_argument("--ws-port", type=int, default=None, help="WebSocket hub port")
    parser.add_argument("--config", default="portal.yaml", help="Config file path")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args()

    # Setup logging
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s  %(levelname)-7s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )

    settings = load_config(args.config)["server"]
    host = args.host or settings["host"]
    port = args.port or settings["port"]
    ws_port = args.ws_port or settings["ws_port"]

    logger.info("Homelab Portal v%s starting", __version__)

    store = ServiceStore(settings["db_path"], seed=settings["seed_services"])
    collectors.bind_store(store)

    hub_server = HubServer(BroadcastHub(CHANNEL_REGISTRY), host=host, port=ws_port)
    hub_server.start()

    app = create_app(store, hub_server)
    logger.info("REST API at http://%s:%d", host, port)

    try:
        app.run(host=host, port=port, threaded=True, debug=False)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        hub_server.stop()
        collectors.bind_store(None)
        store.close()
        logger.info("Shutdown complete")


if __name__ == "__main__":
    main()
