from __future__ import annotations

"""Template initializer.

CONTRACT
- Inputs: target directory
- Outputs (required):
  - Writes <dir>/plan.yaml (starter plan)
- Invariants:
  - Creates the directory if missing
  - Does not overwrite existing files (by default)
- Failure:
  - Raises OSError on permission issues
"""

from pathlib import Path

from .util.paths import copy_template, ensure_dir


def write_templates(target: Path, force: bool = False) -> list[Path]:
    ensure_dir(target)
    written = []
    dest = target / "plan.yaml"
    if copy_template("plan.yaml", dest, overwrite=force):
        written.append(dest)
    return written
