import os
import sqlite3
import sys
from importlib import metadata

from yt_dlp.version import __version__ as ytdlp_version

DISTRIBUTION_NAME = "mediashelf"


def _installed_version():
    try:
        return metadata.version(DISTRIBUTION_NAME)
    except metadata.PackageNotFoundError:
        return None


def get_runtime_info(paths=None):
    """Versions of everything a mediashelf install depends on at runtime.

    When ``paths`` is given, the data and downloads roots are included so a
    bug report shows where the sqlite stores and media tree live.
    """
    info = {
        "app_version": os.environ.get("MEDIASHELF_VERSION") or _installed_version() or "0.0.0+local",
        "python_version": sys.version.split()[0],
        "sqlite_version": sqlite3.sqlite_version,
        "yt_dlp_version": ytdlp_version,
    }
    if paths is not None:
        info["data_dir"] = paths.data_dir
        info["downloads_dir"] = paths.downloads_dir
    return info
