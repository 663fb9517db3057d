"""
Pytest configuration and fixtures for Match Screenshot Recognition tests.
"""

import sys
import pytest
import tempfile
from pathlib import Path

import cv2
import numpy as np

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import OCRConfig  # noqa: E402
from ocr.base import OCREngine, OCRResult  # noqa: E402

# Screenshot geometry used by the synthetic fixtures
FRAME_W, FRAME_H = 800, 600
ROW_RECT = (40, 240, 200, 20)  # x, y, w, h of the green highlight
DARK_BGR = (30, 30, 30)
GREEN_BGR = (0, 200, 0)


class ScriptedEngine(OCREngine):
    """
    OCR engine double.

    Answers come from a per-whitelist script: a list is consumed one entry
    per call (last entry repeats), a string is returned every time.
    Every call is recorded as (whitelist, image shape).
    """

    def __init__(self, script=None):
        super().__init__(name="scripted")
        self.script = dict(script or {})
        self.calls = []
        self._initialized = True

    def initialize(self) -> bool:
        return True

    def recognize(self, image: np.ndarray) -> OCRResult:
        whitelist = self.parameters.character_whitelist
        self.calls.append((whitelist, image.shape))
        answer = self.script.get(whitelist, "")
        if isinstance(answer, list):
            answer = answer.pop(0) if len(answer) > 1 else (answer[0] if answer else "")
        return OCRResult(text=answer, engine=self.name)

    def calls_for(self, whitelist: str) -> int:
        return sum(1 for w, _ in self.calls if w == whitelist)


class StubLocator:
    """Row locator double: returns a fixed answer or raises."""

    def __init__(self, answer=None, error=None, on_call=None):
        self.answer = answer
        self.error = error
        self.on_call = on_call
        self.calls = 0

    def locate(self, image, cancel=None):
        self.calls += 1
        if self.on_call is not None:
            self.on_call()
        if cancel is not None:
            cancel.raise_if_cancelled("row localization")
        if self.error is not None:
            raise self.error
        return self.answer


def draw_results_screen(with_row: bool = True) -> np.ndarray:
    """BGR frame resembling a results screen with an optional highlighted row."""
    frame = np.full((FRAME_H, FRAME_W, 3), DARK_BGR, dtype=np.uint8)
    cv2.putText(frame, "VICTORY", (280, 70), cv2.FONT_HERSHEY_SIMPLEX, 2.0, (255, 255, 255), 4)
    if with_row:
        x, y, w, h = ROW_RECT
        cv2.rectangle(frame, (x, y), (x + w - 1, y + h - 1), GREEN_BGR, thickness=-1)
    return frame


def encode(frame: np.ndarray, ext: str = ".png") -> bytes:
    ok, buffer = cv2.imencode(ext, frame)
    assert ok
    return buffer.tobytes()


STAT_TEXT = "1234\n12/8/3\n4567\n33.5%"


@pytest.fixture
def app():
    """Create application instance for testing."""
    from app import app as flask_app

    flask_app.config["TESTING"] = True
    flask_app.config["UPLOAD_FOLDER"] = tempfile.mkdtemp()

    yield flask_app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def temp_upload_dir():
    """Create a temporary upload directory."""
    temp_dir = tempfile.mkdtemp()
    yield Path(temp_dir)
    # Cleanup after test
    import shutil

    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def screen_bgr():
    """Synthetic results screen with the player's row highlighted."""
    return draw_results_screen(with_row=True)


@pytest.fixture
def screen_png(screen_bgr):
    return encode(screen_bgr)


@pytest.fixture
def screen_image(screen_bgr):
    from imaging.loader import RawImage

    return RawImage.from_bgr(screen_bgr)


@pytest.fixture
def plain_image():
    """Results screen without any highlighted row."""
    from imaging.loader import RawImage

    return RawImage.from_bgr(draw_results_screen(with_row=False))


@pytest.fixture
def victory_engine():
    """Engine that reads a victory banner, a match id and a stat line."""
    return ScriptedEngine({
        OCRConfig.RESULT_WHITELIST: "VICTORY",
        OCRConfig.MATCH_ID_WHITELIST: "Match ID: 5f3a9c21be",
        OCRConfig.STAT_WHITELIST: STAT_TEXT,
    })
