from __future__ import annotations

import base64
import io

from flask import Response, jsonify, send_file

from ..raster import Palette


def send_png(data: bytes, headers: dict | None = None):
    response = send_file(io.BytesIO(data), mimetype="image/png")
    response.headers.update(headers or {})
    return response


def send_svg(document: str, headers: dict | None = None):
    response = Response(document, mimetype="image/svg+xml")
    response.headers.update(headers or {})
    return response


def palette_payload(palette: Palette) -> list:
    return [color.hex for color in palette]


def send_result_json(session_key: str, mode: str, result):
    payload = {
        "session": session_key,
        "mode": mode,
        "palette": palette_payload(result.palette),
        "manifest": result.manifest.to_dict(),
    }
    if mode == "vector":
        payload["svg"] = result.svg
    else:
        payload["png"] = base64.b64encode(result.png).decode("ascii")
    return jsonify(payload)
