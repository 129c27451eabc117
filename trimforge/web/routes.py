"""Web API routes for TrimForge.

Jobs live in process memory: an upload creates a job, a trim request runs
``engine.process`` on a worker thread, and progress is relayed to clients as
server-sent events.
"""

import json
import queue
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path

from flask import Blueprint, Response, abort, current_app, jsonify, request, send_file

from trimforge.engine import TrimResult, process
from trimforge.errors import EngineInvocationError, InvalidRangeError, TrimError
from trimforge.logging_utils import get_logger
from trimforge.manifest import TrimManifest
from trimforge.timecode import END, ZERO, Timecode

bp = Blueprint("web", __name__)

logger = get_logger(__name__)

PROGRESS_TIMEOUT = 120


@dataclass
class TrimJob:
    job_id: str
    directory: Path
    input_path: Path
    filename: str
    status: str = "uploaded"
    error: str | None = None
    result: dict | None = None
    events: queue.Queue | None = None

    @property
    def busy(self) -> bool:
        return self.status == "processing"

    def to_json(self) -> dict:
        data = {"status": self.status, "filename": self.filename}
        if self.status == "done":
            data["result"] = self.result
        elif self.status == "error":
            data["error"] = self.error
        return data


_jobs: dict[str, TrimJob] = {}


def _job_or_404(job_id: str) -> TrimJob:
    job = _jobs.get(job_id)
    if job is None:
        abort(Response(json.dumps({"error": "Job not found"}), 404, mimetype="application/json"))
    return job


def _result_json(result: TrimResult) -> dict:
    return {
        "output_path": str(result.output_path),
        "container": result.container,
        "encode_boundary": str(result.split_point.encode_boundary),
        "remux_boundary": str(result.split_point.remux_boundary),
        "transcoded": result.transcoded,
        "copied": result.copied,
    }


def _describe_failure(error: Exception) -> str:
    if isinstance(error, EngineInvocationError) and error.stderr:
        return f"{error.program} failed: {error.stderr[-500:]}"
    return str(error)


def _run_job(job: TrimJob, manifest: TrimManifest) -> None:
    events = job.events

    def on_progress(stage: str, frac: float) -> None:
        events.put({"stage": stage, "progress": round(frac, 3)})

    try:
        job.result = _result_json(process(manifest, on_progress=on_progress))
        job.status = "done"
    except TrimError as e:
        logger.warning("Trim job %s failed: %s", job.job_id, e)
        job.error = _describe_failure(e)
        job.status = "error"
    except Exception as e:
        logger.exception("Trim job %s crashed", job.job_id)
        job.error = str(e)
        job.status = "error"
    finally:
        events.put(None)


@bp.route("/api/upload", methods=["POST"])
def upload():
    upload_file = request.files.get("file")
    if upload_file is None:
        return jsonify({"error": "No file provided"}), 400
    if not upload_file.filename:
        return jsonify({"error": "Empty filename"}), 400

    job_id = uuid.uuid4().hex[:12]
    directory = Path(current_app.config["WORK_DIR"]) / job_id
    directory.mkdir(parents=True, exist_ok=True)

    input_path = directory / ("input" + (Path(upload_file.filename).suffix or ".mp4"))
    upload_file.save(input_path)
    logger.info("Job %s: stored upload %s", job_id, upload_file.filename)

    _jobs[job_id] = TrimJob(
        job_id=job_id, directory=directory, input_path=input_path, filename=upload_file.filename
    )
    return jsonify({"job_id": job_id, "filename": upload_file.filename})


@bp.route("/api/jobs/<job_id>/trim", methods=["POST"])
def start_trim(job_id: str):
    job = _job_or_404(job_id)
    if job.busy:
        return jsonify({"error": f"Job is already {job.status}"}), 409

    body = request.get_json(silent=True)
    if body is None:
        body = {}
    if not isinstance(body, dict):
        return jsonify({"error": "Request body must be a JSON object"}), 400
    # Timecode errors propagate to the app-level TrimError handler as 400s.
    start = Timecode.parse(body["from"]) if body.get("from") is not None else ZERO
    end = Timecode.parse(body["to"]) if body.get("to") is not None else END
    if start >= end:
        raise InvalidRangeError(f"'from' ({start}) must be before 'to' ({end})")

    manifest = TrimManifest(
        input=job.input_path,
        output=job.directory / f"output{job.input_path.suffix}",
        start=start,
        end=end,
    )

    job.events = queue.Queue()
    job.status = "processing"
    job.error = None
    job.result = None
    threading.Thread(target=_run_job, args=(job, manifest), daemon=True).start()
    return jsonify({"status": "started"})


@bp.route("/api/jobs/<job_id>/progress")
def progress_stream(job_id: str):
    job = _job_or_404(job_id)
    events = job.events
    if events is None:
        return jsonify({"error": "No processing in progress"}), 409

    def generate():
        while True:
            try:
                event = events.get(timeout=PROGRESS_TIMEOUT)
            except queue.Empty:
                yield f"data: {json.dumps({'error': 'timeout'})}\n\n"
                return
            if event is None:
                break
            yield f"data: {json.dumps(event)}\n\n"

        if job.status == "error":
            final = {"error": job.error}
        else:
            final = {"stage": "complete", "progress": 1.0, "result": job.result}
        yield f"data: {json.dumps(final)}\n\n"

    return Response(generate(), mimetype="text/event-stream")


@bp.route("/api/jobs/<job_id>/status")
def job_status(job_id: str):
    return jsonify(_job_or_404(job_id).to_json())


@bp.route("/api/jobs/<job_id>/result")
def download_result(job_id: str):
    job = _job_or_404(job_id)
    if job.status != "done":
        return jsonify({"error": "Job not complete"}), 409
    return send_file(Path(job.result["output_path"]), as_attachment=False)
