"""Flask Web 前端 - 驾驶员状态监测系统"""

import logging
import time

from flask import Flask, Response, jsonify, render_template, request

from config.settings import load_config
from controllers.event_loop import EventLoopThread
from controllers.monitoring_system import MonitoringSystem
from models.data_models import MediaUpload, PositionUpdate
from models.errors import ValidationError

logger = logging.getLogger(__name__)

app = Flask(__name__, template_folder="web/templates", static_folder="web/static")

# 浏览器 GeolocationPositionError.PERMISSION_DENIED
GEO_PERMISSION_DENIED = 1

# 所有状态修改都提交到事件循环线程执行
runner = EventLoopThread().start()
system = MonitoringSystem(load_config())


# ---- Flask 路由 ----

@app.route("/")
def index():
    return render_template("index.html")


@app.route("/api/start", methods=["POST"])
def api_start():
    try:
        runner.run(system.start_monitoring())
    except PermissionError:
        return jsonify({"success": False, "message": system.camera_error})
    return jsonify({"success": True, "message": "Monitoring started"})


@app.route("/api/stop", methods=["POST"])
def api_stop():
    runner.call(system.stop_monitoring)
    return jsonify({"success": True, "message": "Monitoring stopped"})


@app.route("/api/data")
def api_data():
    return jsonify(runner.call(system.snapshot))


@app.route("/api/upload", methods=["POST"])
def api_upload():
    file = request.files.get("file")
    if file is None or not file.filename:
        return jsonify({"success": False, "message": "No file selected"}), 400

    upload = MediaUpload(
        filename=file.filename,
        content_type=file.mimetype or "",
        data=file.read(),
    )
    try:
        runner.call(system.load_upload, upload)
    except ValidationError as e:
        return jsonify({"success": False, "message": str(e)}), 400
    return jsonify({"success": True, "kind": upload.kind})


@app.route("/api/analyze_upload", methods=["POST"])
def api_analyze_upload():
    result = runner.run(system.analyze_upload())
    if result is None:
        return jsonify({"success": False, "message": "Analysis failed"})
    return jsonify({"success": True, "result": result.to_dict()})


@app.route("/api/clear_media", methods=["POST"])
def api_clear_media():
    runner.call(system.clear_media)
    return jsonify({"success": True})


@app.route("/api/position", methods=["POST"])
def api_position():
    data = request.get_json(force=True, silent=True) or {}
    try:
        update = PositionUpdate(
            lat=float(data["lat"]),
            lon=float(data["lon"]),
            timestamp_ms=float(data.get("timestamp") or time.time() * 1000),
            speed_mps=None if data.get("speed") is None else float(data["speed"]),
        )
    except (KeyError, TypeError, ValueError):
        return jsonify({"success": False, "message": "Invalid position"}), 400
    runner.call(system.push_position, update)
    return jsonify({"success": True})


@app.route("/api/position_error", methods=["POST"])
def api_position_error():
    data = request.get_json(force=True, silent=True) or {}
    denied = data.get("code") == GEO_PERMISSION_DENIED
    runner.call(system.report_position_error, data.get("message", "Geolocation error"), denied)
    return jsonify({"success": True})


@app.route("/api/notification_permission", methods=["POST"])
def api_notification_permission():
    data = request.get_json(force=True, silent=True) or {}
    permission = data.get("permission", "default")
    if permission not in ("default", "granted", "denied"):
        return jsonify({"success": False, "message": f"Unknown permission: {permission}"}), 400
    runner.call(system.set_notification_permission, permission)
    return jsonify({"success": True, "permission": permission})


@app.route("/api/notifications")
def api_notifications():
    since = request.args.get("since", 0, type=int)
    return jsonify({"notifications": system.notifications.pending(since)})


@app.route("/api/toasts")
def api_toasts():
    since = request.args.get("since", 0, type=int)
    toasts, last_id = system.toasts.since(since)
    return jsonify({"toasts": toasts, "last_id": last_id})


@app.route("/api/history")
def api_history():
    return jsonify({"history": system.history()})


@app.route("/video_feed")
def video_feed():
    def generate():
        while system.is_monitoring:
            frame = system.render_preview()
            if frame is not None:
                yield (b"--frame\r\nContent-Type: image/jpeg\r\n\r\n" + frame + b"\r\n")
            time.sleep(0.03)
    return Response(generate(), mimetype="multipart/x-mixed-replace; boundary=frame")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.run(host="0.0.0.0", port=5000, debug=False, threaded=True)
