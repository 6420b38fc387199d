"""
Flask JSON API for hostwatch.

API endpoints:
  GET  /api/apps                         Configured apps and their logs
  GET  /api/metrics/host                 Current host metrics
  GET  /api/logs/files                   Files behind one (app, log) pair
  GET  /api/logs/search                  Search logs (q, app, log, file, level, limit)
  GET  /api/logs/stream                  Server-sent events: live lines of one log
  GET  /api/alerts/history               Recent alerts
  GET  /api/alerts/stats                 Alert counts per severity
  POST /api/alerts/test                  Record a test alert
  POST /api/alerts/<id>/resolve          Resolve an alert
  GET  /api/alerts/stream                Server-sent events: new/resolved alerts, rule updates,
                                         then resync if the client falls behind
  GET  /api/alerts/rules                 List rules
  POST /api/alerts/rules                 Create rule
  PUT  /api/alerts/rules/<id>            Update rule
  DELETE /api/alerts/rules/<id>          Delete rule
  POST /api/alerts/rules/<id>/toggle     Enable/disable rule
  GET  /api/settings, PUT /api/settings  Key/value settings

Started via: python main.py serve [--port 7005] [--host 0.0.0.0]
"""
import json
import queue
import logging
import threading

from flask import Flask, Response, jsonify, request

from logs.stream import stream_log
from models.enums import UPDATE_RESYNC
from utils.errors import (
    ConfigurationNotFound,
    HostwatchError,
    MetricsUnavailable,
    NotFound,
    RuleValidationError,
)

logger = logging.getLogger("hostwatch.web.app")

KEEPALIVE_SECONDS = 15


def _sse(payload) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def _error_status(error) -> int:
    if isinstance(error, (ConfigurationNotFound, NotFound)):
        return 404
    return 500


def create_app(config: dict, engines: dict) -> Flask:
    """
    Factory function. Receives initialized components from main.py.

    Args:
        config: Application config dict
        engines: dict of initialized objects (db, discovery, search, metrics,
                 alert_engine, rules, broadcaster)
    """
    app = Flask(__name__)

    db = engines["db"]
    discovery = engines["discovery"]
    search = engines["search"]
    alert_engine = engines["alert_engine"]
    rules = engines["rules"]
    broadcaster = engines["broadcaster"]
    default_limit = config.get("search", {}).get("default_limit", 500)

    # ─── Apps & Metrics ──────────────────────────────────

    @app.route("/api/apps")
    def api_apps():
        apps = [
            {
                "name": a.get("name", ""),
                "service_name": a.get("service_name", ""),
                "logs": [{"name": l.get("name", ""), "path": l.get("path", "")} for l in a.get("logs", [])],
            }
            for a in discovery.apps
        ]
        return jsonify({"apps": apps, "count": len(apps)})

    @app.route("/api/metrics/host")
    def api_host_metrics():
        try:
            return jsonify(engines["metrics"].get_host_metrics().to_dict())
        except MetricsUnavailable as e:
            return jsonify({"error": str(e)}), 503

    # ─── Logs ────────────────────────────────────────────

    @app.route("/api/logs/files")
    def api_log_files():
        app_name = request.args.get("app", "")
        log_name = request.args.get("log", "")
        if not app_name or not log_name:
            return jsonify({"files": [], "error": "app and log parameters required"}), 400
        try:
            files = discovery.list_files(app_name, log_name)
        except HostwatchError as e:
            logger.warning(f"Listing files failed: {e}")
            return jsonify({"files": [], "error": str(e)}), _error_status(e)
        return jsonify({"files": [f.to_dict() for f in files], "count": len(files)})

    @app.route("/api/logs/search")
    def api_log_search():
        limit = request.args.get("limit", default_limit, type=int)
        try:
            results = search.search(
                query=request.args.get("q", ""),
                app_filter=request.args.get("app", ""),
                log_filter=request.args.get("log", ""),
                specific_file=request.args.get("file", ""),
                level_filter=request.args.get("level", ""),
                limit=max(1, limit),
            )
        except HostwatchError as e:
            logger.warning(f"Search failed: {e}")
            return jsonify({"results": [], "error": str(e)}), _error_status(e)
        return jsonify({"results": [r.to_dict() for r in results], "count": len(results)})

    @app.route("/api/logs/stream")
    def api_log_stream():
        app_name = request.args.get("app", "")
        log_name = request.args.get("log", "")
        if not app_name or not log_name:
            return jsonify({"error": "app and log parameters required"}), 400
        try:
            path = discovery.resolve_stream_target(app_name, log_name, request.args.get("file") or None)
        except HostwatchError as e:
            return jsonify({"error": str(e)}), _error_status(e)

        stop = threading.Event()
        lines = queue.Queue(maxsize=1000)

        def _enqueue(line):
            try:
                lines.put(line, timeout=1)
            except queue.Full:
                logger.debug(f"Stream consumer for {path} is behind, dropping line")

        def _follow():
            try:
                stream_log(path, _enqueue, stop)
            except OSError as e:
                logger.warning(f"Streaming {path} failed: {e}")
                stop.set()

        worker = threading.Thread(target=_follow, name=f"stream-{app_name}-{log_name}", daemon=True)
        worker.start()
        logger.info(f"Client connected to live stream of {path}")

        def generate():
            try:
                yield _sse({"type": "connected", "file": path})
                while not stop.is_set():
                    try:
                        line = lines.get(timeout=KEEPALIVE_SECONDS)
                    except queue.Empty:
                        yield ": keepalive\n\n"
                        continue
                    yield _sse({"type": "line", "file": path, "line": line})
            finally:
                stop.set()
                logger.info(f"Client disconnected from live stream of {path}")

        return Response(generate(), mimetype="text/event-stream",
                        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"})

    # ─── Alerts ──────────────────────────────────────────

    @app.route("/api/alerts/history")
    def api_alert_history():
        limit = request.args.get("limit", 100, type=int)
        alerts = db.get_alert_history(limit=max(1, limit))
        return jsonify({"alerts": [a.to_dict() for a in alerts], "count": len(alerts)})

    @app.route("/api/alerts/stats")
    def api_alert_stats():
        days = request.args.get("days", 30, type=int)
        return jsonify({"days": days, "by_severity": db.get_alert_stats(days)})

    @app.route("/api/alerts/test", methods=["POST"])
    def api_alert_test():
        alert = alert_engine.trigger_test_alert()
        return jsonify({"status": "ok", "alert": alert.to_dict()})

    @app.route("/api/alerts/<int:alert_id>/resolve", methods=["POST"])
    def api_alert_resolve(alert_id):
        try:
            alert_engine.resolve_alert(alert_id)
        except NotFound as e:
            return jsonify({"error": str(e)}), 404
        return jsonify({"status": "resolved"})

    @app.route("/api/alerts/stream")
    def api_alert_stream():
        updates = broadcaster.subscribe()

        def generate():
            try:
                yield _sse({"type": "connected"})
                while True:
                    try:
                        update = updates.get(timeout=KEEPALIVE_SECONDS)
                    except queue.Empty:
                        yield ": keepalive\n\n"
                        continue
                    yield _sse(update)
                    if update.get("type") == UPDATE_RESYNC:
                        # Dropped as too slow; the client reconnects and refetches
                        return
            finally:
                broadcaster.unsubscribe(updates)

        return Response(generate(), mimetype="text/event-stream",
                        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"})

    # ─── Rules ───────────────────────────────────────────

    @app.route("/api/alerts/rules", methods=["GET"])
    def api_rules_list():
        return jsonify({"rules": [r.to_dict() for r in rules.list_rules()]})

    @app.route("/api/alerts/rules", methods=["POST"])
    def api_rules_create():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid request body"}), 400
        try:
            rule = rules.create_rule(data)
        except RuleValidationError as e:
            return jsonify({"error": str(e)}), 400
        return jsonify(rule.to_dict()), 201

    @app.route("/api/alerts/rules/<rule_id>", methods=["PUT"])
    def api_rules_update(rule_id):
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid request body"}), 400
        try:
            rule = rules.update_rule(rule_id, data)
        except NotFound as e:
            return jsonify({"error": str(e)}), 404
        except RuleValidationError as e:
            return jsonify({"error": str(e)}), 400
        return jsonify(rule.to_dict())

    @app.route("/api/alerts/rules/<rule_id>", methods=["DELETE"])
    def api_rules_delete(rule_id):
        try:
            rules.delete_rule(rule_id)
        except NotFound as e:
            return jsonify({"error": str(e)}), 404
        return jsonify({"status": "deleted"})

    @app.route("/api/alerts/rules/<rule_id>/toggle", methods=["POST"])
    def api_rules_toggle(rule_id):
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not isinstance(data.get("enabled"), bool):
            return jsonify({"error": "Body must be {\"enabled\": true|false}"}), 400
        try:
            rules.toggle_rule(rule_id, data["enabled"])
        except NotFound as e:
            return jsonify({"error": str(e)}), 404
        return jsonify({"status": "updated"})

    # ─── Settings ────────────────────────────────────────

    @app.route("/api/settings", methods=["GET"])
    def api_settings_get():
        return jsonify(db.get_settings())

    @app.route("/api/settings", methods=["PUT"])
    def api_settings_put():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid request body"}), 400
        db.save_settings(data)
        return jsonify(db.get_settings())

    return app
