"""
Recognition Orchestrator - batch state machine over uploaded screenshots.

Per item:  queued -> running -> done | needsManualResult | error

    1. decode the upload, cap at 1280 px      (DecodeError -> error)
    2. result banner search, crop-major       (<= regions x thresholds OCR calls)
    3. match identifier pass
    4. highlighted row via the worker         (timeout/failure -> whole frame)
    5. stat line OCR + parse
    6. result found -> done, else needsManualResult

Only done items with a match id and a full stat line reach the sink;
the rest stay visible in the batch with published=False.

needsManualResult is left by resolve_manually() only. Cancellation is
checked before every stage and inside the worker round trip; an aborted
item goes back to queued with no observation.
"""

import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from config import OCRConfig, OCR_DEBUG_FOLDER
from imaging.loader import RawImage, downscale_for_upload, load_bitmap
from imaging.preprocess import FULL_FRAME, CropRegion, preprocess, preprocess_for_match_id
from logger import get_logger, log_duration
from ocr.base import OCREngine
from .cancellation import CancelToken, check
from .errors import Aborted, DecodeError, InvalidTransition, WorkerError
from .models import BatchItem, BatchStatus, ManualDecision, MatchObservation, StatLine
from .parsers import extract_match_id, parse_match_result, parse_stat_line
from .search import RecognitionAttempt, SearchOutcome, first_success, iter_attempts

logger = get_logger("orchestrator")

# Called with (owner_uid, observation) for every decided observation that
# carries a match id and a full stat line
ObservationSink = Callable[[str, MatchObservation], None]

DEFAULT_REGIONS = tuple(CropRegion.from_tuple(r) for r in OCRConfig.RESULT_REGIONS)


class RecognitionOrchestrator:
    """
    Drives recognition for a batch of screenshots.

    Args:
        engine: Local OCR engine for the banner and match id passes
        row_locator: Object with locate(image, cancel) -> RowCrop | None,
            usually a RowLocatorWorker; None skips row localization
        stat_engine: Engine for the stat line (defaults to engine)
        owner_uid: Identifier of the uploading player
        owner_name: Display name of the uploading player
        sink: Receives finalized observations
        regions: Result banner crops, tightest first
        thresholds: Binarization thresholds tried per crop
    """

    def __init__(
        self,
        engine: OCREngine,
        row_locator=None,
        stat_engine: Optional[OCREngine] = None,
        owner_uid: str = "",
        owner_name: str = "",
        sink: Optional[ObservationSink] = None,
        regions: Sequence[CropRegion] = DEFAULT_REGIONS,
        thresholds: Sequence[int] = OCRConfig.RESULT_THRESHOLDS,
        stat_threshold: int = OCRConfig.STAT_THRESHOLD,
        debug_folder: Optional[Union[str, Path]] = None
    ):
        self.engine = engine
        self.row_locator = row_locator
        self.stat_engine = stat_engine or engine
        self.owner_uid = owner_uid
        self.owner_name = owner_name
        self.sink = sink
        self.regions = tuple(regions)
        self.thresholds = tuple(thresholds)
        self.stat_threshold = stat_threshold
        if debug_folder is None and OCRConfig.DEBUG_SAVE:
            debug_folder = OCR_DEBUG_FOLDER
        self.debug_folder = Path(debug_folder) if debug_folder else None

        self._items: Dict[str, BatchItem] = {}
        self._lock = threading.RLock()
        # OCR engines keep per-call parameters, one caller at a time
        self._engine_lock = threading.Lock()

    @property
    def max_attempts(self) -> int:
        return len(self.regions) * len(self.thresholds)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def enqueue(self, files: Iterable[Tuple[str, bytes]]) -> List[BatchItem]:
        """Add (file_label, file_bytes) pairs as queued items."""
        added = []
        with self._lock:
            for file_label, payload in files:
                item = BatchItem(file_label=file_label, payload=payload)
                self._items[item.id] = item
                added.append(item)
        logger.info(f"Enqueued {len(added)} screenshot(s)")
        return added

    def items(self) -> List[BatchItem]:
        """All items in enqueue order."""
        with self._lock:
            return list(self._items.values())

    def get(self, item_id: str) -> Optional[BatchItem]:
        with self._lock:
            return self._items.get(item_id)

    def pending_manual(self) -> List[BatchItem]:
        """Items waiting for a victory/defeat/skip decision."""
        with self._lock:
            return [
                item for item in self._items.values()
                if item.status is BatchStatus.NEEDS_MANUAL_RESULT
            ]

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def _require(self, item_id: str) -> BatchItem:
        item = self.get(item_id)
        if item is None:
            raise KeyError(f"Unknown batch item: {item_id}")
        return item

    def _transition(self, item: BatchItem, allowed: Tuple[BatchStatus, ...], target: BatchStatus) -> None:
        with self._lock:
            if item.status not in allowed:
                raise InvalidTransition(
                    f"{item.file_label}: {item.status.value} -> {target.value}"
                )
            item.status = target

    def process_all(self, cancel: Optional[CancelToken] = None) -> List[BatchItem]:
        """
        Process every queued item in order.

        A row locator that failed to start is restarted once per batch.

        Raises:
            Aborted: cancel was raised; remaining items stay queued
        """
        recover = getattr(self.row_locator, "recover", None)
        if recover is not None:
            recover()
        queued = [item for item in self.items() if item.status is BatchStatus.QUEUED]
        for item in queued:
            self.process(item.id, cancel)
        return self.items()

    def process(self, item_id: str, cancel: Optional[CancelToken] = None) -> BatchItem:
        """
        Run one queued item through the pipeline.

        Returns:
            The item in done, needsManualResult or error state

        Raises:
            Aborted: cancel was raised; the item is back in queued
            InvalidTransition: the item was not queued
        """
        item = self._require(item_id)
        check(cancel, "decode")
        self._transition(item, (BatchStatus.QUEUED,), BatchStatus.RUNNING)
        logger.info(f"Processing {item.file_label}")

        try:
            with log_duration(logger, "recognition", item.file_label):
                observation = self.recognize(item.payload, cancel)
        except Aborted:
            with self._lock:
                item.status = BatchStatus.QUEUED
            logger.info(f"{item.file_label}: aborted")
            raise
        except DecodeError as e:
            self._fail(item, str(e))
            return item
        except Exception as e:
            logger.exception(f"{item.file_label}: recognition failed")
            self._fail(item, str(e) or e.__class__.__name__)
            return item

        with self._lock:
            item.observation = observation
            if observation.result is None:
                item.status = BatchStatus.NEEDS_MANUAL_RESULT
            else:
                item.status = BatchStatus.DONE

        if item.status is BatchStatus.DONE:
            logger.info(f"{item.file_label}: {observation.result} (match {observation.match_id})")
            self._publish(item)
        else:
            logger.info(f"{item.file_label}: result not recognized, manual decision needed")
        return item

    def _fail(self, item: BatchItem, message: str) -> None:
        with self._lock:
            item.status = BatchStatus.ERROR
            item.error_message = message
        logger.warning(f"{item.file_label}: {message}")

    def _publish(self, item: BatchItem) -> bool:
        """Hand a decided observation to the sink; partial ones are held back."""
        observation = item.observation
        if observation is None or observation.result is None:
            return False
        if observation.match_id is None:
            logger.warning(f"{item.file_label}: not saved, match id not found")
            return False
        if not observation.has_stats:
            logger.warning(f"{item.file_label}: not saved, player row not recognized")
            return False
        if self.sink is not None:
            self.sink(self.owner_uid, observation)
        with self._lock:
            item.published = True
        return True

    def resolve_manually(self, item_id: str, decision: Union[ManualDecision, str]) -> BatchItem:
        """
        Apply the user's answer to a needsManualResult item.

        Skip finishes the item with no result. Re-sending the decision that
        already resolved the item is a no-op.

        Raises:
            InvalidTransition: item is not awaiting a decision, or was
                resolved with a different one
        """
        decision = ManualDecision(decision)
        item = self._require(item_id)

        with self._lock:
            if item.decision is not None:
                if item.decision is decision:
                    return item
                raise InvalidTransition(
                    f"{item.file_label} already resolved as {item.decision.value}"
                )
            self._transition(item, (BatchStatus.NEEDS_MANUAL_RESULT,), BatchStatus.DONE)
            item.decision = decision
            base = item.observation or MatchObservation()
            item.observation = base.with_result(decision.result)

        logger.info(f"{item.file_label}: resolved manually as {decision.value}")
        if decision.result is not None:
            self._publish(item)
        return item

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def recognize(self, file_bytes: bytes, cancel: Optional[CancelToken] = None) -> MatchObservation:
        """
        Full pipeline for one screenshot.

        Raises:
            DecodeError: bytes are not an image
            Aborted: cancel was raised
        """
        check(cancel, "decode")
        image = downscale_for_upload(load_bitmap(file_bytes), OCRConfig.UPLOAD_MAX_SIDE)

        result = self.detect_match_result(image, cancel)
        match_id = self.read_match_id(image, cancel)
        stats = self.read_stats(image, cancel)
        return MatchObservation.build(match_id, result, stats)

    def _ocr(self, engine: OCREngine, binary: np.ndarray, whitelist: str) -> str:
        with self._engine_lock:
            return engine.recognize_text(binary, whitelist)

    def _attempt(self, image: RawImage, region: CropRegion, threshold: int) -> RecognitionAttempt:
        binary = preprocess(image, region, threshold, scale=OCRConfig.RESULT_UPSCALE)
        self._save_debug(f"result_{region.x:.2f}_{region.w:.2f}_{threshold}", binary)
        text = self._ocr(self.engine, binary, OCRConfig.RESULT_WHITELIST)
        return RecognitionAttempt(
            region=region,
            threshold=threshold,
            text=text,
            parsed=parse_match_result(text),
        )

    def search_match_result(self, image: RawImage, cancel: Optional[CancelToken] = None) -> SearchOutcome:
        """Banner search with the attempt log."""
        outcome = first_success(
            iter_attempts(self.regions, self.thresholds),
            lambda region, threshold: self._attempt(image, region, threshold),
            cancel,
        )
        logger.debug(
            f"Result search: {len(outcome.attempts)}/{self.max_attempts} attempts, "
            f"parsed={outcome.parsed}"
        )
        return outcome

    def detect_match_result(self, image: RawImage, cancel: Optional[CancelToken] = None) -> Optional[str]:
        """First "victory"/"defeat" found over crops and thresholds, else None."""
        return self.search_match_result(image, cancel).parsed

    def read_match_id(self, image: RawImage, cancel: Optional[CancelToken] = None) -> Optional[str]:
        check(cancel, "match id")
        binary = preprocess_for_match_id(image)
        self._save_debug("match_id", binary)
        text = self._ocr(self.engine, binary, OCRConfig.MATCH_ID_WHITELIST)
        return extract_match_id(text)

    def locate_row(self, image: RawImage, cancel: Optional[CancelToken] = None) -> RawImage:
        """
        Highlighted row of the frame, or the whole frame when the worker
        finds nothing, times out or fails.
        """
        check(cancel, "row localization")
        if self.row_locator is None:
            return image
        try:
            row = self.row_locator.locate(image, cancel)
        except WorkerError as e:
            logger.warning(f"Row localization failed, using whole frame: {e}")
            return image
        if row is None:
            logger.debug("No highlighted row, using whole frame")
            return image
        return row.image

    def read_stats(self, image: RawImage, cancel: Optional[CancelToken] = None) -> Optional[StatLine]:
        row = self.locate_row(image, cancel)
        check(cancel, "stat line")
        binary = preprocess(row, FULL_FRAME, self.stat_threshold, scale=OCRConfig.RESULT_UPSCALE)
        self._save_debug("stat_line", binary)
        text = self._ocr(self.stat_engine, binary, OCRConfig.STAT_WHITELIST)
        stats = parse_stat_line(text, self.owner_uid, self.owner_name)
        if stats is None:
            logger.debug(f"Stat line not parsed from {text!r}")
        return stats

    def _save_debug(self, label: str, binary: np.ndarray) -> None:
        if self.debug_folder is None:
            return
        self.debug_folder.mkdir(parents=True, exist_ok=True)
        path = self.debug_folder / f"{int(time.time() * 1000)}_{label}.jpg"
        cv2.imwrite(str(path), binary)
