import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str | int = logging.INFO) -> logging.Logger:
    """Attach a single console handler to the root logger."""
    root = logging.getLogger()
    root.setLevel(level)

    if not any(getattr(h, "_collision_watch", False) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._collision_watch = True  # type: ignore[attr-defined]
        root.addHandler(handler)

    return root
