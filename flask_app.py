"""
Flask application for the Podfy intake service.
Receives proof-of-delivery uploads and serves brand themes to the upload page.
"""

import logging
import os
from typing import Optional

from flask import Flask, current_app, jsonify, request

# Load environment variables from .env file (for local development)
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass  # dotenv not installed, assume env vars are set another way

from intake import build_processor, context_from_form, UploadedFile
from intake.config import MAX_UPLOAD_BYTES, Settings
from intake.schema import FileOutcome

# Honeypot field: hidden on the upload page, only bots fill it in
HONEYPOT_FIELD = "website"
MAX_FILES_PER_REQUEST = 10


def create_app(settings: Optional[Settings] = None, processor=None) -> Flask:
    app = Flask(__name__)
    app.logger.setLevel(logging.INFO)

    settings = settings or Settings.from_env()
    app.config["MAX_CONTENT_LENGTH"] = MAX_FILES_PER_REQUEST * MAX_UPLOAD_BYTES
    app.config["PODFY_SETTINGS"] = settings
    app.config["PODFY_PROCESSOR"] = processor or build_processor(settings)

    register_routes(app)
    return app


def _processor():
    return current_app.config["PODFY_PROCESSOR"]


def register_routes(app: Flask) -> None:

    @app.route("/api/ping")
    def ping():
        return jsonify({"ok": True, "env": os.environ.get("PODFY_ENV", "dev")})

    @app.route("/api/themes")
    def themes():
        response = jsonify(_processor().brands.themes_payload())
        response.headers["Cache-Control"] = "s-maxage=300, stale-while-revalidate=86400"
        return response

    @app.route("/api/themes/<slug>")
    def theme(slug: str):
        payload = _processor().brands.theme_payload(slug.lower())
        if payload is None:
            return "Not found", 404
        response = jsonify(payload)
        response.headers["Cache-Control"] = "s-maxage=300, stale-while-revalidate=86400"
        return response

    @app.route("/api/slug/features")
    def slug_features():
        slug = (request.args.get("slug") or "").strip().lower()
        if not slug:
            return jsonify({"error": "missing slug"}), 400
        features = _processor().brands.features(slug)
        response = jsonify({"slug": slug, "features": features.model_dump()})
        response.headers["Cache-Control"] = "no-store"
        return response

    @app.route("/api/upload", methods=["POST"])
    def upload():
        """Store one or more POD files and notify the brand."""
        if not (request.content_type or "").startswith("multipart/form-data"):
            return jsonify({"ok": False, "error": "Bad Request"}), 400
        if request.form.get(HONEYPOT_FIELD):
            app.logger.warning("🤖 Honeypot field filled in; rejecting upload")
            return jsonify({"ok": False, "error": "Bad Request"}), 400

        files = [f for f in request.files.getlist("files") + request.files.getlist("file") if f and f.filename]
        if not files:
            return jsonify({"ok": False, "error": "Missing file"}), 400
        if len(files) > MAX_FILES_PER_REQUEST:
            return jsonify({"ok": False, "error": f"At most {MAX_FILES_PER_REQUEST} files per upload"}), 400

        processor = _processor()
        ctx = context_from_form(request.form, request.headers, processor.brands, processor.settings)
        if len(files) > 1 and not processor.brands.features(ctx.brand_slug).multi_file:
            return jsonify({"ok": False, "error": "Only one file per upload is allowed"}), 400

        uploads = [UploadedFile(filename=f.filename, content_type=f.mimetype, data=f.read()) for f in files]
        results = processor.process_batch(uploads, ctx)

        stored = [r for r in results if r.outcome == FileOutcome.STORED]
        body = {
            "ok": bool(stored),
            "group_id": results[0].group_id,
            "files": [r.to_public_dict() for r in results],
        }
        if stored:
            return jsonify(body), 200
        rejected = [r for r in results if r.outcome == FileOutcome.REJECTED]
        if len(rejected) == len(results):
            # Every file refused: answer with the first file's reason
            return jsonify(body), rejected[0].reason.http_status
        return jsonify(body), 500

    @app.errorhandler(413)
    def too_large(_error):
        return jsonify({"ok": False, "error": "Upload too large"}), 413


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)))
