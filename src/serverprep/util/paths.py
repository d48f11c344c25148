from __future__ import annotations

"""Path utilities.

CONTRACT
- Inputs: strings (filenames) or paths
- Outputs:
  - safe_filename() returns sanitized string (no path separators)
  - ensure_dir() creates directory tree
  - read_template() / copy_template() read bundled resources
- Invariants:
  - safe_filename removes dangerous chars `[^A-Za-z0-9_.-]`
  - copy_template never overwrites existing files (unless `overwrite=True`)
- Failure:
  - read_template raises FileNotFoundError if the resource is missing
"""

import importlib.resources
import re
from pathlib import Path

_SAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9_.-]+")


def ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def read_template(template_name: str) -> str:
    res = importlib.resources.files("serverprep.templates").joinpath(template_name)
    return res.read_text(encoding="utf-8")


def copy_template(template_name: str, dest: Path, overwrite: bool = False) -> bool:
    # Only write if missing (avoid clobber) unless forced.
    if dest.exists() and not overwrite:
        return False
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_text(read_template(template_name), encoding="utf-8")
    return True


def safe_filename(name: str, *, default: str = "item") -> str:
    cleaned = _SAFE_FILENAME_RE.sub("_", name).strip("._-")
    return cleaned or default
