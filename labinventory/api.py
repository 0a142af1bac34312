import io
import time

from flask import Blueprint, Response, current_app, jsonify, request, send_file

from .errors import ValidationError, field_error

api = Blueprint("api", __name__)


def service():
    return current_app.extensions["provisioning"]


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError([field_error("body", "Request body must be a JSON object")])
    return data


@api.get("/labs")
def list_labs():
    return jsonify(service().lab_names)


@api.get("/systems")
def list_systems():
    systems = service().list_systems(
        lab=request.args.get("labName") or None,
        search=request.args.get("search"),
    )
    return jsonify([s.to_dict() for s in systems])


@api.get("/systems/stats")
def systems_stats():
    return jsonify(service().stats())


@api.get("/systems/<system_id>")
def get_system(system_id):
    return jsonify(service().get_system(system_id).to_dict())


@api.get("/systems/<system_id>/qr")
def get_system_qr(system_id):
    system, data = service().qr_image(system_id)
    return send_file(io.BytesIO(data), mimetype="image/png", as_attachment=True,
                     download_name=f"{system.id_code}.png")


@api.post("/systems")
def create_systems():
    data = json_body()
    created = service().create_systems(
        data.get("labName"),
        count=data.get("numberOfSystems", 1),
        description=data.get("description"),
    )
    return jsonify([s.to_dict() for s in created]), 201


@api.put("/systems/<system_id>")
def update_system(system_id):
    data = json_body()
    system = service().update_system(
        system_id,
        lab_name=data.get("labName"),
        description=data.get("description"),
    )
    return jsonify(system.to_dict())


@api.delete("/systems/<system_id>")
def delete_system(system_id):
    service().delete_system(system_id)
    return jsonify({"success": True, "message": "System deleted successfully"})


@api.post("/systems/bulk-delete")
def bulk_delete_systems():
    data = json_body()
    deleted = service().delete_systems(data.get("ids"))
    return jsonify({
        "success": True,
        "deletedCount": deleted,
        "message": f"{deleted} system(s) deleted successfully",
    })


@api.get("/systems/export/csv")
def export_csv():
    body = service().export_csv()
    filename = f"systems-export-{int(time.time() * 1000)}.csv"
    return Response(body, mimetype="text/csv",
                    headers={"Content-Disposition": f'attachment; filename="{filename}"'})


@api.get("/systems/export/qr/<lab_name>")
def export_qr_zip(lab_name):
    archive = service().export_qr_zip(lab_name)
    return send_file(io.BytesIO(archive), mimetype="application/zip", as_attachment=True,
                     download_name=f"{lab_name}-qr-codes.zip")
