"""
Row localizer worker process.

CV work runs in a separate process so it cannot stall request handling.
The two sides talk only through queues:

    request   {"id": int, "imageData": {"width", "height", "pixelBytes"}}
    success   {"id": int, "blob": <PNG bytes of the row>, "debug": {...}}
    failure   {"id": int, "error": str}

Exactly one response is sent per request. The client tags requests with
ids and drops responses for requests it has already given up on.
"""

import itertools
import multiprocessing
import queue
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional

from config import WorkerConfig
from imaging.loader import RawImage, encode_png, load_bitmap
from logger import configure_worker_logging, get_logger
from recognition.cancellation import CancelToken, check
from recognition.errors import Aborted, CvInitTimeout, WorkerError, WorkerTimeout
from .row_locator import BoundingBox, RowLocatorParams, find_highlighted_row

logger = get_logger("worker")

ROW_NOT_FOUND = "Highlighted row not found (filtered)"


@dataclass
class RowCrop:
    """Worker answer: the row slice and where it came from."""
    box: BoundingBox
    image: RawImage
    debug: Dict[str, Any] = field(default_factory=dict)


def build_request(request_id: int, image: RawImage) -> dict:
    return {
        "id": request_id,
        "imageData": {
            "width": image.width,
            "height": image.height,
            "pixelBytes": image.tobytes(),
        },
    }


def handle_request(message: dict, params: RowLocatorParams) -> dict:
    """Answer one request. Never raises; failures become error responses."""
    request_id = message.get("id")
    try:
        data = message["imageData"]
        image = RawImage.from_bytes(data["width"], data["height"], data["pixelBytes"])
        match = find_highlighted_row(image, params)
        if match is None:
            return {"id": request_id, "error": ROW_NOT_FOUND}

        box = match.box
        row = image.region(box.x, box.y, box.width, box.height)
        return {
            "id": request_id,
            "blob": encode_png(row),
            "debug": {
                "best": asdict(match.component),
                "rowY": box.y,
                "rowH": box.height,
                "W": image.width,
                "H": image.height,
            },
        }
    except Exception as e:
        return {"id": request_id, "error": str(e) or e.__class__.__name__}


def _worker_main(requests, responses, params: RowLocatorParams) -> None:
    log = configure_worker_logging()
    # Importing OpenCV is the expensive part of start-up; it is done by now.
    responses.put({"ready": True})
    log.debug("Row localizer worker ready")

    while True:
        message = requests.get()
        if message is None:
            break
        responses.put(handle_request(message, params))

    log.debug("Row localizer worker stopped")


class RowLocatorWorker:
    """
    Client side of the row localizer worker.

    One request is outstanding at a time; concurrent callers queue on a
    lock. The process is started lazily on first use.
    """

    def __init__(
        self,
        params: Optional[RowLocatorParams] = None,
        init_timeout: float = WorkerConfig.INIT_TIMEOUT,
        response_timeout: float = WorkerConfig.RESPONSE_TIMEOUT,
        poll_interval: float = WorkerConfig.POLL_INTERVAL,
        start_method: str = WorkerConfig.START_METHOD
    ):
        self.params = params or RowLocatorParams()
        self.init_timeout = init_timeout
        self.response_timeout = response_timeout
        self.poll_interval = poll_interval
        self._context = multiprocessing.get_context(start_method)
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._process = None
        self._requests = None
        self._responses = None
        self._ready = False
        self._init_failed = False
        self._init_started = 0.0

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.is_alive()

    def start(self) -> None:
        if self._process is not None:
            return
        self._requests = self._context.Queue()
        self._responses = self._context.Queue()
        self._process = self._context.Process(
            target=_worker_main,
            args=(self._requests, self._responses, self.params),
            name="row-localizer",
            daemon=True,
        )
        self._process.start()
        self._init_started = time.monotonic()
        logger.info(f"Row localizer worker started (pid={self._process.pid})")

    def _receive(self, deadline: float, cancel: Optional[CancelToken], stage: str):
        """Next message before the deadline; None when the deadline passed."""
        while True:
            check(cancel, stage)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            if not self._process.is_alive():
                raise WorkerError(f"Row localizer worker exited (code={self._process.exitcode})")
            try:
                return self._responses.get(timeout=min(self.poll_interval, remaining))
            except queue.Empty:
                continue

    def _ensure_ready(self, cancel: Optional[CancelToken]) -> None:
        if self._ready:
            return
        if self._init_failed:
            raise CvInitTimeout("Row localizer worker never became ready")

        self.start()
        deadline = self._init_started + self.init_timeout
        while True:
            message = self._receive(deadline, cancel, "worker start-up")
            if message is None:
                self._init_failed = True
                raise CvInitTimeout(
                    f"Row localizer worker not ready after {self.init_timeout:.1f}s"
                )
            if message.get("ready"):
                self._ready = True
                return

    def locate(self, image: RawImage, cancel: Optional[CancelToken] = None) -> Optional[RowCrop]:
        """
        Find the highlighted row in the worker process.

        Returns:
            RowCrop, or None when the worker found no row

        Raises:
            Aborted: cancel was raised before or during the round trip
            CvInitTimeout: worker did not start in time
            WorkerTimeout: worker did not answer in time
            WorkerError: worker died or failed on the request
        """
        check(cancel, "row localization")
        with self._lock:
            self._ensure_ready(cancel)
            request_id = next(self._ids)
            self._requests.put(build_request(request_id, image))

            deadline = time.monotonic() + self.response_timeout
            while True:
                try:
                    message = self._receive(deadline, cancel, "row localization")
                except Aborted:
                    logger.debug(f"Request {request_id} abandoned on cancel")
                    raise
                if message is None:
                    raise WorkerTimeout(
                        f"No row localizer response within {self.response_timeout:.1f}s"
                    )
                if message.get("id") != request_id:
                    logger.debug(f"Discarding stale worker response {message.get('id')}")
                    continue
                return self._to_row_crop(message)

    @staticmethod
    def _to_row_crop(message: dict) -> Optional[RowCrop]:
        error = message.get("error")
        if error == ROW_NOT_FOUND:
            return None
        if error or not message.get("blob"):
            raise WorkerError(error or "Row localizer returned no image")

        debug = message.get("debug", {})
        box = BoundingBox(x=0, y=debug["rowY"], width=debug["W"], height=debug["rowH"])
        return RowCrop(box=box, image=load_bitmap(message["blob"]), debug=debug)

    def close(self, timeout: float = 2.0) -> None:
        """Stop the worker process."""
        if self._process is None:
            return
        try:
            if self._process.is_alive():
                self._requests.put(None)
                self._process.join(timeout)
            if self._process.is_alive():
                logger.warning("Row localizer worker did not stop, terminating")
                self._process.terminate()
                self._process.join(timeout)
        finally:
            self._requests.close()
            self._responses.close()
            self._process = None
            self._ready = False
            self._init_failed = False

    def recover(self) -> bool:
        """
        Drop a worker that failed to start or has died.

        Called between batches so one slow cold start does not disable row
        localization for the life of the server. The next locate() starts
        a fresh process with the full init timeout.

        Returns:
            True if a failed worker was discarded
        """
        with self._lock:
            if not self._init_failed and (self._process is None or self._process.is_alive()):
                return False
            logger.info("Discarding failed row localizer worker")
            self.close()
            return True

    def __enter__(self) -> "RowLocatorWorker":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False
