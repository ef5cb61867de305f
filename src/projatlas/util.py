"""Process setup for the CLI: logging, build tree, and the menu JSON file."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Sequence

if TYPE_CHECKING:
    from .catalog import ProjectionCatalog
    from .config import PathsConfig

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_FILE_NAME = "projatlas.log"
MENU_FILE_NAME = "projections.json"

# Rendering and I/O libraries that log per glyph, tile, or request at DEBUG.
NOISY_LOGGERS = ("matplotlib", "PIL", "fontTools", "urllib3", "pyproj")


def setup_logging(logs_dir: Path | None = None, verbose: bool = False) -> Path | None:
    """Log to the console and, when ``logs_dir`` is given, to ``projatlas.log`` there.

    Returns the log file path, if any. ``--verbose`` raises projatlas loggers
    to DEBUG; the libraries in ``NOISY_LOGGERS`` stay at WARNING either way.
    """
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_file = None
    if logs_dir is not None:
        logs_dir.mkdir(parents=True, exist_ok=True)
        log_file = logs_dir / LOG_FILE_NAME
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return log_file


def prepare_build_tree(paths: PathsConfig) -> Sequence[Path]:
    created = []
    for path in paths.build_directories:
        if not path.is_dir():
            created.append(path)
        path.mkdir(parents=True, exist_ok=True)
    return created


def write_menu_json(build_root: Path, catalog: ProjectionCatalog) -> Path:
    """Write the catalog menu rows (id, label, glyph) for external UIs."""
    path = build_root / MENU_FILE_NAME
    payload: dict[str, Any] = {"count": len(catalog), "projections": catalog.menu_entries()}
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, ensure_ascii=False)
        fh.write("\n")
    return path
