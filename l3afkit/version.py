"""Build and version information."""

from __future__ import annotations

import platform
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

_BUILD_DATE_FORMAT = "%Y%m%d%H%M%S"


def _rfc3339(moment: datetime) -> str:
    text = moment.isoformat(timespec="seconds")
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


def _parse_build_date(value: str):
    if len(value) != 14 or not value.isdigit():
        return None
    try:
        return datetime.strptime(value, _BUILD_DATE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


@dataclass
class BuildInfo:
    """Version, tag, build date and commit of a build."""

    version: str = "2.1.0"
    suffix_tag: str = ""
    version_date: str = ""
    version_sha: str = ""

    def short_version(self):
        """The version with its suffix tag; version 0.0.0 is tagged "dev"."""
        tag = "dev" if self.version == "0.0.0" else self.suffix_tag
        if tag:
            return f"{self.version}-{tag}"
        return self.version

    def info(self):
        """A multi-line description of the build."""
        build_date = ""
        built = _parse_build_date(self.version_date)
        if built is not None:
            build_date = "built " + _rfc3339(built)
        else:
            try:
                mtime = Path(sys.executable).stat().st_mtime
            except (OSError, ValueError):
                pass
            else:
                build_date = _rfc3339(datetime.fromtimestamp(mtime).astimezone())

        sha = f"\nBuild SHA: {self.version_sha}" if self.version_sha else ""
        return (
            f"Version: {self.short_version()}\n"
            f"Python Version: {platform.python_version()}\n"
            f"Build Date: {build_date}{sha}"
        )