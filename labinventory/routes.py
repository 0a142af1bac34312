from flask import Blueprint, current_app, jsonify, send_from_directory

bp = Blueprint("main", __name__)


# Canonical deep link encoded into every QR code
@bp.get("/system/<system_id>")
def system_detail(system_id):
    system = current_app.extensions["provisioning"].get_system(system_id)
    return jsonify(system.to_dict())


# QR images written by the local blob store
@bp.get("/qrcodes/<path:filename>")
def qr_file(filename):
    return send_from_directory(current_app.config["QR_STORAGE_DIR"], filename, mimetype="image/png")


# Small health check
@bp.get("/healthz")
def healthz():
    return jsonify({"ok": True})
