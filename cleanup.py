"""
File cleanup utilities for the Match Screenshot Recognition service.
Removes stale screenshot uploads and trims the OCR debug crop folder.
"""

import time
from pathlib import Path
from typing import Optional, Union

import config
from config import CleanupConfig, ALLOWED_EXTENSIONS
from logger import get_logger

logger = get_logger("cleanup")

PathLike = Union[str, Path]


def get_file_age_hours(filepath: Path) -> float:
    """
    Get the age of a file in hours.

    Args:
        filepath: Path to the file

    Returns:
        Age in hours
    """
    age_seconds = time.time() - filepath.stat().st_mtime
    return age_seconds / 3600


def _is_screenshot(filepath: Path) -> bool:
    return filepath.is_file() and filepath.suffix.lower().lstrip(".") in ALLOWED_EXTENSIONS


def cleanup_old_uploads(max_age_hours: Optional[float] = None, folder: Optional[PathLike] = None) -> int:
    """
    Remove uploaded screenshots older than max_age_hours.

    Args:
        max_age_hours: Maximum age in hours (default from config)
        folder: Upload folder (default from config)

    Returns:
        Number of files removed
    """
    if max_age_hours is None:
        max_age_hours = CleanupConfig.UPLOAD_MAX_AGE_HOURS
    upload_path = Path(folder or config.UPLOAD_FOLDER)

    if not upload_path.exists():
        logger.debug("Upload folder does not exist, nothing to clean")
        return 0

    removed_count = 0
    for filepath in upload_path.iterdir():
        if not _is_screenshot(filepath):
            continue
        age = get_file_age_hours(filepath)
        if age > max_age_hours:
            try:
                filepath.unlink()
                removed_count += 1
                logger.info(f"Removed old screenshot: {filepath.name} (age: {age:.1f}h)")
            except OSError as e:
                logger.error(f"Failed to remove {filepath}: {e}")

    if removed_count > 0:
        logger.info(f"Cleanup complete: removed {removed_count} old screenshots")

    return removed_count


def cleanup_ocr_debug(max_files: Optional[int] = None, folder: Optional[PathLike] = None) -> int:
    """
    Remove old preprocessed crops, keeping only the most recent.

    Args:
        max_files: Maximum number of debug crops to keep (default from config)
        folder: Debug folder (default from config)

    Returns:
        Number of files removed
    """
    if max_files is None:
        max_files = CleanupConfig.DEBUG_MAX_FILES
    debug_path = Path(folder or config.OCR_DEBUG_FOLDER)

    if not debug_path.exists():
        return 0

    # Oldest first
    files = sorted(debug_path.glob("*.jpg"), key=lambda p: p.stat().st_mtime)
    excess = files[:max(0, len(files) - max_files)]

    removed_count = 0
    for filepath in excess:
        try:
            filepath.unlink()
            removed_count += 1
        except OSError as e:
            logger.error(f"Failed to remove debug crop {filepath}: {e}")

    if removed_count:
        logger.info(f"OCR debug cleanup: removed {removed_count} old crops")
    return removed_count


def get_upload_folder_size_mb(folder: Optional[PathLike] = None) -> float:
    """
    Get the total size of the upload folder in MB.

    Returns:
        Size in megabytes
    """
    upload_path = Path(folder or config.UPLOAD_FOLDER)
    if not upload_path.exists():
        return 0.0

    total_size = sum(f.stat().st_size for f in upload_path.iterdir() if f.is_file())
    return total_size / (1024 * 1024)


def run_auto_cleanup():
    """
    Run automatic cleanup if enabled in config.
    Called on application startup.
    """
    if not CleanupConfig.AUTO_CLEANUP:
        logger.debug("Auto cleanup is disabled")
        return

    logger.info("Running automatic cleanup...")
    cleanup_old_uploads()
    cleanup_ocr_debug()
    logger.info(f"Upload folder size: {get_upload_folder_size_mb():.1f} MB")


if __name__ == "__main__":
    # Run cleanup directly
    run_auto_cleanup()
