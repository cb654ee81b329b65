from __future__ import annotations

from dataclasses import asdict, fields

from flask import Flask, jsonify, request

from .config import SETTINGS, configure_logging
from .errors import DependencyUnavailable, EmptyResult, InputError, StageFailure, UnfakeError
from .infrastructure.cache import CACHE, MODES, Session
from .infrastructure.network import FETCHER
from .infrastructure.responses import send_png, send_result_json, send_svg
from .options import PipelineOptions, VectorOptions
from .processing.pipeline import process_image
from .processing.recolor import upscale_nearest
from .processing.vector import vectorize_image
from .raster import Color

APP_VERSION = "1.0.0"

# request-level keys that are not pipeline options
_CONTROL_KEYS = ("format", "source_url", "scaled", "session", "mode", "palette")

_STATUS = (
    (InputError, 400),
    (EmptyResult, 422),
    (DependencyUnavailable, 503),
    (StageFailure, 500),
)


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _collect_options() -> dict:
    merged: dict = {}
    merged.update(request.args.to_dict())
    merged.update(request.form.to_dict())
    body = _json_body()
    merged.update(body.get("options") or {})
    for key in _CONTROL_KEYS:
        merged.pop(key, None)
    return merged


def _read_source() -> bytes:
    upload = request.files.get("image")
    if upload is not None:
        return upload.read()
    source_url = request.values.get("source_url") or _json_body().get("source_url")
    if source_url:
        return FETCHER.fetch_bytes(source_url)
    if not request.is_json:
        data = request.get_data()
        if data:
            return data
    raise InputError("No image supplied: upload an 'image' file, post raw bytes, or pass source_url")


def _wants_json() -> bool:
    return (request.values.get("format") or _json_body().get("format") or "").lower() == "json"


def _wants_scaled() -> bool:
    return str(request.values.get("scaled", "")).lower() in ("1", "true", "yes", "on")


def _send(session: Session, mode: str, result):
    if _wants_json():
        return send_result_json(session.key, mode, result)
    headers = {"X-Unfake-Session": session.key, "X-Unfake-Colors": str(len(result.palette))}
    if mode == "vector":
        return send_svg(result.svg, headers)
    headers["X-Unfake-Scale"] = str(result.scale)
    png = result.png
    if _wants_scaled() and result.scale > 1:
        png = upscale_nearest(result.raster, result.scale).encode_png()
    return send_png(png, headers)


def create_app() -> Flask:
    logger = configure_logging()
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = SETTINGS.max_upload_bytes

    @app.errorhandler(UnfakeError)
    def engine_error(exc: UnfakeError):
        for error_type, status in _STATUS:
            if isinstance(exc, error_type):
                return jsonify(error=str(exc), type=type(exc).__name__), status
        return jsonify(error=str(exc), type=type(exc).__name__), 500

    @app.route("/pixel", methods=["POST"])
    def pixel():
        options = PipelineOptions.from_mapping(_collect_options())
        try:
            source = _read_source()
        except RuntimeError as exc:
            return jsonify(error=f"Source Error: {exc}"), 502
        session = Session()
        result = process_image(source, options, session=session)
        CACHE.put(session)
        return _send(session, "pixel", result)

    @app.route("/vector", methods=["POST"])
    def vector():
        options = VectorOptions.from_mapping(_collect_options())
        try:
            source = _read_source()
        except RuntimeError as exc:
            return jsonify(error=f"Source Error: {exc}"), 502
        session = Session()
        result = vectorize_image(source, options, session=session)
        CACHE.put(session)
        return _send(session, "vector", result)

    @app.route("/sessions/<key>/<mode>")
    def session_result(key: str, mode: str):
        session = CACHE.get(key)
        if session is None or session.result(mode) is None:
            return jsonify(error=f"No cached {mode} result for session {key}"), 404
        return _send(session, mode, session.result(mode))

    @app.route("/recolor", methods=["POST"])
    def recolor():
        body = _json_body()
        session = CACHE.get(str(body.get("session", "")))
        mode = str(body.get("mode") or (session.mode if session else "pixel"))
        if mode not in MODES:
            raise InputError(f"Unknown mode: {mode}")
        if session is None or session.result(mode) is None:
            return jsonify(error="Unknown or expired session"), 404
        replacement = [Color.parse(value) for value in body.get("palette") or []]
        result = session.recolor(mode, replacement)
        return _send(session, mode, result)

    @app.route("/health")
    def health():
        return jsonify(ok=True, version=APP_VERSION, cached_sessions=len(CACHE))

    @app.route("/settings", methods=["GET", "PATCH"])
    def settings_view():
        if request.method == "GET":
            return jsonify(asdict(SETTINGS))

        payload = request.get_json(silent=True) or {}
        errors: dict[str, str] = {}
        applied: dict[str, object] = {}

        for field in fields(SETTINGS):
            if field.name not in payload:
                continue

            raw_value = payload[field.name]
            try:
                if field.type is int:
                    coerced = int(raw_value)
                elif field.type is float:
                    coerced = float(raw_value)
                else:
                    coerced = str(raw_value)
            except (TypeError, ValueError):
                errors[field.name] = f"Expected {field.type.__name__}"
                continue

            if field.name == "log_level":
                coerced = str(coerced).upper()
                logger.setLevel(coerced)

            setattr(SETTINGS, field.name, coerced)
            applied[field.name] = coerced

        status = 400 if errors else 200
        return (
            jsonify(updated=applied, errors=errors, settings=asdict(SETTINGS)),
            status,
        )

    @app.route("/")
    def index():
        return jsonify(
            service="pixel-unfake",
            version=APP_VERSION,
            endpoints={
                "POST /pixel": "Clean up upscaled pixel art, returns PNG or JSON",
                "POST /vector": "Trace an image into SVG",
                "POST /recolor": "Swap palette colors of a cached result",
                "GET /sessions/<session>/<mode>": "Fetch a cached result",
                "GET /health": "Liveness check",
                "GET|PATCH /settings": "Engine settings",
            },
        )

    return app


# Expose a module-level Flask application for WSGI import paths like ``pixel_unfake.app:app``
app = create_app()
application = app
