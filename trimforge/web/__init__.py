"""Flask application factory for the TrimForge web API."""

import os
import tempfile
from pathlib import Path

from flask import Flask, jsonify

from trimforge.errors import TrimError
from trimforge.logging_utils import get_logger

logger = get_logger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024 * 1024


def create_app(work_dir: Path | None = None) -> Flask:
    """Build the job API; uploads and trimmed outputs live under *work_dir*.

    Without *work_dir* the ``TRIMFORGE_WORK_DIR`` environment variable is
    used, falling back to a fresh temporary directory.
    """
    if work_dir is None and os.environ.get("TRIMFORGE_WORK_DIR"):
        work_dir = Path(os.environ["TRIMFORGE_WORK_DIR"])
    if work_dir is None:
        work_dir = Path(tempfile.mkdtemp(prefix="trimforge_jobs_"))
    Path(work_dir).mkdir(parents=True, exist_ok=True)

    app = Flask(__name__)
    app.config["WORK_DIR"] = Path(work_dir)
    app.config["MAX_CONTENT_LENGTH"] = MAX_UPLOAD_BYTES
    logger.info("Job files stored under %s", work_dir)

    from trimforge.web.routes import bp
    app.register_blueprint(bp)

    @app.errorhandler(413)
    def upload_too_large(error):
        return jsonify({"error": "Upload exceeds the 10 GB limit"}), 413

    @app.errorhandler(TrimError)
    def trim_error(error):
        return jsonify({"error": str(error)}), 400

    return app
