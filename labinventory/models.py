"""Database models for the lab inventory.

A ``System`` is one physical computer in a lab.  ``id`` is an opaque uuid used
in URLs; ``id_code`` is the human readable ``<LAB>-<NNN>`` code printed next
to the QR sticker.  The three QR columns are filled in after the row exists
and stay null until a QR image has been rendered and uploaded.
"""

import uuid
from datetime import datetime, timezone

from flask import current_app

from . import db


def utcnow():
    return datetime.now(timezone.utc)


def new_uuid() -> str:
    return str(uuid.uuid4())


def fmt_ts(v):
    """ISO-8601 in UTC.  Drivers hand back naive values for UTC columns."""
    if not v:
        return None
    if v.tzinfo is None:
        v = v.replace(tzinfo=timezone.utc)
    return v.astimezone(timezone.utc).isoformat()


class System(db.Model):
    __tablename__ = "systems"
    id = db.Column(db.String(36), primary_key=True, default=new_uuid)
    id_code = db.Column(db.String(20), unique=True, nullable=False, index=True)
    lab_name = db.Column(db.String(10), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    qr_image_url = db.Column(db.Text)
    qr_payload = db.Column(db.Text)
    system_url = db.Column(db.Text)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "idCode": self.id_code,
            "labName": self.lab_name,
            "description": self.description or current_app.config["DEFAULT_DESCRIPTION"],
            "qrImageUrl": self.qr_image_url,
            "qrPayload": self.qr_payload,
            "systemUrl": self.system_url,
            "createdAt": fmt_ts(self.created_at),
            "updatedAt": fmt_ts(self.updated_at),
        }

    def __repr__(self):
        return f"<System {self.id_code} ({self.lab_name})>"
