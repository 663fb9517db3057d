"""
Flask Web Application for Match Screenshot Recognition
JSON API: upload results screenshots, follow the batch, answer manual prompts.
"""

import os
import threading
from flask import Flask, jsonify, request
from werkzeug.utils import secure_filename

from config import FlaskConfig, ALLOWED_EXTENSIONS, UPLOAD_FOLDER, OCRConfig, RemoteOCRConfig
from logger import get_logger
from cleanup import run_auto_cleanup, get_upload_folder_size_mb
from localizer import RowLocatorWorker
from netcache import RequestDeduplicationCache
from ocr import create_best_available_engine, create_ocr_engine
from recognition import Aborted, CancelToken, InvalidTransition, MatchObservation
from recognition.orchestrator import RecognitionOrchestrator

# Initialize logger
logger = get_logger("app")

# Create Flask app
app = Flask(__name__)
app.config["SECRET_KEY"] = FlaskConfig.SECRET_KEY
app.config["UPLOAD_FOLDER"] = FlaskConfig.UPLOAD_FOLDER
app.config["MAX_CONTENT_LENGTH"] = FlaskConfig.MAX_CONTENT_LENGTH

# Global recognition state
orchestrator = None
batch_thread = None
cancel_token = None
finalized = []
state_lock = threading.Lock()


def allowed_file(filename: str) -> bool:
    """Check if file extension is allowed."""
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def upload_label(filename: str) -> str:
    """User-facing label: the original name without any client-side path."""
    return filename.replace("\\", "/").rsplit("/", 1)[-1]


def stored_filename(item_id: str, label: str) -> str:
    """
    Disk name for an upload.

    Prefixed with the item id so equal labels never overwrite each other;
    secure_filename may strip a non-ASCII stem entirely.
    """
    stem, _, ext = label.rpartition(".")
    safe_stem = secure_filename(stem)
    ext = ext.lower()
    return f"{item_id}_{safe_stem}.{ext}" if safe_stem else f"{item_id}.{ext}"


def record_observation(owner_uid: str, observation: MatchObservation):
    """Hand-off point for finalized observations."""
    logger.info(f"Finalized match {observation.match_id} for {owner_uid or 'anonymous'}: {observation.result}")
    finalized.append({"ownerUid": owner_uid, **observation.to_dict()})


def build_orchestrator() -> RecognitionOrchestrator:
    """Create OCR engines and the row localizer worker from config."""
    kwargs = {"lang": OCRConfig.TESSERACT_LANG} if OCRConfig.ENGINE == "tesseract" else {}
    engine = create_best_available_engine(OCRConfig.ENGINE, **kwargs)
    if engine is None:
        raise RuntimeError("No OCR engine available")

    stat_engine = None
    if RemoteOCRConfig.API_KEY:
        stat_engine = create_ocr_engine("ocr_space", cache=RequestDeduplicationCache())

    return RecognitionOrchestrator(
        engine=engine,
        row_locator=RowLocatorWorker(),
        stat_engine=stat_engine,
        sink=record_observation,
    )


def get_orchestrator():
    """Get the current orchestrator instance."""
    global orchestrator
    return orchestrator


def set_orchestrator(instance):
    """Replace the orchestrator, stopping the previous worker."""
    global orchestrator
    if orchestrator is not None and hasattr(orchestrator.row_locator, "close"):
        logger.info("Stopping previous row localizer worker")
        orchestrator.row_locator.close()
    orchestrator = instance
    return orchestrator


def ensure_orchestrator():
    if get_orchestrator() is None:
        set_orchestrator(build_orchestrator())
    return get_orchestrator()


def is_batch_running() -> bool:
    return batch_thread is not None and batch_thread.is_alive()


def run_batch(orch: RecognitionOrchestrator, token: CancelToken):
    """Background thread body: process every queued item."""
    try:
        orch.process_all(token)
        logger.info("Batch finished")
    except Aborted as e:
        logger.info(f"Batch cancelled: {e}")


def start_batch(orch: RecognitionOrchestrator):
    global batch_thread, cancel_token
    cancel_token = CancelToken()
    batch_thread = threading.Thread(
        target=run_batch, args=(orch, cancel_token), name="batch", daemon=True
    )
    batch_thread.start()
    return batch_thread


def wait_for_batch(timeout: float = None) -> bool:
    """Block until the background batch ends; True when it has."""
    if batch_thread is None:
        return True
    batch_thread.join(timeout)
    return not batch_thread.is_alive()


def batch_payload(orch) -> dict:
    items = orch.items() if orch else []
    return {
        "running": is_batch_running(),
        "items": [item.to_dict() for item in items],
        "finalized": list(finalized),
    }


@app.route("/upload", methods=["POST"])
def upload_screenshots():
    """Handle screenshot upload and start recognition."""
    files = [f for f in request.files.getlist("screenshots") if f and f.filename]
    if not files:
        logger.warning("Upload attempt with no screenshots")
        return jsonify({"error": "No screenshots provided"}), 400

    invalid = [f.filename for f in files if not allowed_file(f.filename)]
    if invalid:
        logger.warning(f"Invalid file type: {', '.join(invalid)}")
        allowed = ", ".join(sorted(ALLOWED_EXTENSIONS))
        return jsonify({"error": f"Invalid file type. Allowed: {allowed}"}), 400

    with state_lock:
        if is_batch_running():
            return jsonify({"error": "A batch is already running"}), 409

        try:
            orch = ensure_orchestrator()
        except RuntimeError as e:
            logger.error(f"Failed to initialize recognition: {e}")
            return jsonify({"error": str(e)}), 503

        orch.owner_uid = request.form.get("ownerUid", orch.owner_uid)
        orch.owner_name = request.form.get("name", orch.owner_name)

        os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)
        batch = [(upload_label(file.filename), file.read()) for file in files]
        items = orch.enqueue(batch)
        for item in items:
            filename = stored_filename(item.id, item.file_label)
            filepath = os.path.join(app.config["UPLOAD_FOLDER"], filename)
            with open(filepath, "wb") as out:
                out.write(item.payload)
            logger.info(f"Saved uploaded screenshot: {filename}")

        start_batch(orch)

    return jsonify({"items": [item.to_dict() for item in items]}), 202


@app.route("/batch")
def batch():
    """Every batch item with its status."""
    return jsonify(batch_payload(get_orchestrator()))


@app.route("/batch/pending")
def pending():
    """Items waiting for a manual victory/defeat/skip decision."""
    orch = get_orchestrator()
    items = orch.pending_manual() if orch else []
    return jsonify({"items": [item.to_dict() for item in items]})


@app.route("/batch/<item_id>/resolve", methods=["POST"])
def resolve(item_id):
    """Apply a manual decision to one item."""
    orch = get_orchestrator()
    if orch is None:
        return jsonify({"error": "No batch loaded"}), 404

    data = request.get_json(silent=True)
    if not data or "decision" not in data:
        return jsonify({"error": "Decision required"}), 400

    try:
        item = orch.resolve_manually(item_id, data["decision"])
    except ValueError:
        return jsonify({"error": "Decision must be victory, defeat or skip"}), 400
    except KeyError:
        return jsonify({"error": "Unknown item"}), 404
    except InvalidTransition as e:
        logger.warning(f"Rejected manual decision: {e}")
        return jsonify({"error": str(e)}), 409

    return jsonify(item.to_dict())


@app.route("/batch/cancel", methods=["POST"])
def cancel():
    """Cancel the running batch."""
    if not is_batch_running():
        return jsonify({"cancelled": False})
    logger.info("Cancelling running batch")
    cancel_token.cancel()
    return jsonify({"cancelled": True})


@app.route("/batch/clear", methods=["POST"])
def clear():
    """Drop every batch item."""
    with state_lock:
        if is_batch_running():
            return jsonify({"error": "Cancel the running batch first"}), 409
        orch = get_orchestrator()
        if orch is not None:
            orch.clear()
        finalized.clear()
    return jsonify({"success": True})


@app.route("/health")
def health():
    """Health check endpoint."""
    orch = get_orchestrator()
    upload_size = get_upload_folder_size_mb()
    return jsonify(
        {
            "status": "healthy",
            "recognition_ready": orch is not None,
            "batch_running": is_batch_running(),
            "items": len(orch.items()) if orch else 0,
            "upload_folder_size_mb": round(upload_size, 1),
        }
    )


if __name__ == "__main__":
    # Ensure directories exist
    os.makedirs(str(UPLOAD_FOLDER), exist_ok=True)

    # Run cleanup on startup
    run_auto_cleanup()

    # Startup banner
    logger.info("=" * 60)
    logger.info("Match Screenshot Recognition Service")
    logger.info("=" * 60)
    logger.info(f"Starting server on http://{FlaskConfig.HOST}:{FlaskConfig.PORT}")
    logger.info("POST screenshots to /upload to begin...")
    logger.info("=" * 60)

    app.run(
        host=FlaskConfig.HOST,
        port=FlaskConfig.PORT,
        debug=FlaskConfig.DEBUG,
        threaded=True,
    )
