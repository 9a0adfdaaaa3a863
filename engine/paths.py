import os
from dataclasses import dataclass
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parent.parent

def _is_container_runtime():
    if os.path.exists("/.dockerenv"):
        return True
    return os.path.isdir("/data")


def _default_root_paths():
    if _is_container_runtime():
        return {
            "data": Path("/data"),
            "config": Path("/config"),
            "downloads": Path("/downloads"),
            "logs": Path("/logs"),
        }
    base = PROJECT_ROOT / "data"
    return {
        "data": base,
        "config": base / "config",
        "downloads": base / "downloads",
        "logs": base / "logs",
    }


_DEFAULTS = _default_root_paths()

DATA_DIR = Path(os.environ.get("MEDIASHELF_DATA_DIR", _DEFAULTS["data"])).resolve()
CONFIG_DIR = Path(os.environ.get("MEDIASHELF_CONFIG_DIR", _DEFAULTS["config"])).resolve()
DOWNLOADS_DIR = Path(os.environ.get("MEDIASHELF_DOWNLOADS_DIR", _DEFAULTS["downloads"])).resolve()
LOG_DIR = Path(os.environ.get("MEDIASHELF_LOG_DIR", _DEFAULTS["logs"])).resolve()


@dataclass(frozen=True)
class EnginePaths:
    data_dir: str
    downloads_dir: str
    log_dir: str
    config_path: str
    jobs_db_path: str
    collections_db_path: str
    schedules_db_path: str
    tracker_db_path: str
    download_logs_db_path: str


def ensure_dir(path):
    if path:
        os.makedirs(path, exist_ok=True)


def resolve_config_path(path):
    if not path:
        resolved = os.path.join(CONFIG_DIR, "config.json")
    elif os.path.isabs(path):
        resolved = os.path.abspath(path)
    else:
        resolved = os.path.abspath(os.path.join(CONFIG_DIR, path))
    if not _is_within_base(resolved, CONFIG_DIR):
        raise ValueError(f"Config path must be within CONFIG_DIR: {CONFIG_DIR}")
    return resolved


def _is_within_base(path, base_dir):
    real = os.path.realpath(path)
    base = os.path.realpath(base_dir)
    return os.path.commonpath([real, base]) == base


def is_path_under(path, root):
    """Return True when ``path`` equals ``root`` or lies beneath it.

    Matching is done on whole path segments, so ``/downloads/Foo`` is not a
    parent of ``/downloads/FooBar``.
    """
    if not path or not root:
        return False
    path = os.path.normpath(path)
    root = os.path.normpath(root)
    if path == root:
        return True
    prefix = root if root.endswith(os.sep) else root + os.sep
    return path.startswith(prefix)


def replace_path_prefix(path, old_root, new_root):
    """Swap ``old_root`` for ``new_root`` at the start of ``path``.

    Returns ``None`` when ``path`` is not rooted under ``old_root``.
    """
    if not is_path_under(path, old_root):
        return None
    path = os.path.normpath(path)
    remainder = os.path.relpath(path, os.path.normpath(old_root))
    if remainder == ".":
        return os.path.normpath(new_root)
    return os.path.normpath(os.path.join(new_root, remainder))


def build_engine_paths(*, data_dir=None, downloads_dir=None, log_dir=None, config_dir=None):
    data_dir = Path(data_dir or DATA_DIR).resolve()
    downloads_dir = Path(downloads_dir or DOWNLOADS_DIR).resolve()
    log_dir = Path(log_dir or LOG_DIR).resolve()
    config_dir = Path(config_dir or CONFIG_DIR).resolve()
    database_dir = data_dir / "database"

    # Ensure required directories exist
    for d in (data_dir, database_dir, downloads_dir, log_dir, config_dir):
        ensure_dir(d)

    return EnginePaths(
        data_dir=str(data_dir),
        downloads_dir=str(downloads_dir),
        log_dir=str(log_dir),
        config_path=str(config_dir / "config.json"),
        jobs_db_path=str(database_dir / "jobs.sqlite"),
        collections_db_path=str(database_dir / "collections.sqlite"),
        schedules_db_path=str(database_dir / "schedules.sqlite"),
        tracker_db_path=str(database_dir / "tracker.sqlite"),
        download_logs_db_path=str(database_dir / "download_logs.sqlite"),
    )
