"""Diagnostic viewer for frames sent to the classifier.

Called from a worker thread by the monitor, so the file write and the
browser launch never block the event loop.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import webbrowser
from collections import deque
from html import escape
from pathlib import Path

logger = logging.getLogger(__name__)

MAX_KEPT_PAGES = 5

_debug_enabled = os.getenv("COLLISION_DEBUG", "").strip().lower() in {"1", "true", "yes"}

_PAGE = '<img src="{src}" style="max-width:100%"/><p>This is what the classifier sees</p>'

_pages_lock = threading.Lock()
_pages: deque[Path] = deque()


def enable_debug(enabled: bool = True) -> None:
    global _debug_enabled
    _debug_enabled = enabled


def is_debug_enabled() -> bool:
    return _debug_enabled


def show_frame_if_enabled(image: str) -> Path | None:
    """Open the frame in the default browser when debugging is on.

    Only the most recent pages are kept on disk; older ones are removed.
    """
    if not _debug_enabled:
        return None

    src = image if image.startswith("data:") else f"data:image/jpeg;base64,{image}"
    with tempfile.NamedTemporaryFile(
        "w", suffix=".html", prefix="collision-frame-", delete=False, encoding="utf-8"
    ) as handle:
        handle.write(_PAGE.format(src=escape(src, quote=True)))
        page_path = Path(handle.name)

    _remember_page(page_path)
    logger.info("Opening captured frame in viewer: %s", page_path)
    webbrowser.open(page_path.as_uri(), new=2)
    return page_path


def cleanup_pages() -> None:
    """Remove every page written by the viewer."""
    with _pages_lock:
        stale = list(_pages)
        _pages.clear()
    for path in stale:
        path.unlink(missing_ok=True)


def _remember_page(page_path: Path) -> None:
    with _pages_lock:
        _pages.append(page_path)
        stale: list[Path] = []
        while len(_pages) > MAX_KEPT_PAGES:
            stale.append(_pages.popleft())
    for path in stale:
        path.unlink(missing_ok=True)
