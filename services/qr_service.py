"""
QR code rendering for the deposit address.

Renders an SVG QR code and returns it as a `data:` URL the frontend can put
straight into an <img> tag.
"""

from __future__ import annotations

import base64
from io import BytesIO

import qrcode
import qrcode.image.svg


def render_qr_data_url(value: str, box_size: int = 10, border: int = 2) -> str:
    """
    Encode `value` as a QR code.

    Returns:
        "data:image/svg+xml;base64,..." string
    """
    if not value:
        raise ValueError("Cannot render a QR code for an empty value")

    qr = qrcode.QRCode(
        box_size=box_size,
        border=border,
        image_factory=qrcode.image.svg.SvgPathImage,
    )
    qr.add_data(value)
    qr.make(fit=True)

    buffer = BytesIO()
    qr.make_image().save(buffer)
    encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


__all__ = ["render_qr_data_url"]
