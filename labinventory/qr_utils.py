"""Utility functions for building and rendering system QR codes.

The QR code carries a small JSON object (``idCode``, ``labName``,
``description``, ``systemUrl``) so that a phone scan shows the essentials
even without network access, and the URL leads to the full record.  Images
are always 512x512 PNGs with a two module quiet zone, rendered in memory;
where they end up is the blob store's business.
"""

import io
import json

import qrcode
from PIL import Image

QR_SIZE = 512
QR_BORDER = 2


def system_url(base_url: str, system_id: str) -> str:
    return f"{base_url.rstrip('/')}/system/{system_id}"


def build_payload(system, base_url: str) -> dict:
    """Build the QR payload for ``system`` (a ``System`` row).

    ``systemUrl`` is derived from ``base_url``, which comes from
    configuration and is never guessed here.
    """
    return {
        "idCode": system.id_code,
        "labName": system.lab_name,
        "description": system.description,
        "systemUrl": system_url(base_url, system.id),
    }


def serialize_payload(payload: dict) -> str:
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def render_qr(payload: dict, fill_color: str = "#000000", back_color: str = "#FFFFFF") -> bytes:
    """Encode ``payload`` as JSON into a PNG QR code and return the bytes.

    Identical input gives byte-identical output.
    """
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=1,
        border=QR_BORDER,
    )
    qr.add_data(serialize_payload(payload))
    qr.make(fit=True)

    # Render at the largest whole box size that fits, then pad to the canvas
    # so modules stay crisp.
    modules = qr.modules_count + 2 * QR_BORDER
    qr.box_size = max(1, QR_SIZE // modules)
    img = qr.make_image(fill_color=fill_color, back_color=back_color).get_image().convert("RGB")
    if img.size != (QR_SIZE, QR_SIZE):
        canvas = Image.new("RGB", (QR_SIZE, QR_SIZE), back_color)
        offset = ((QR_SIZE - img.size[0]) // 2, (QR_SIZE - img.size[1]) // 2)
        canvas.paste(img, offset)
        img = canvas

    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def qr_filename(id_code: str) -> str:
    return f"{id_code}.png"
