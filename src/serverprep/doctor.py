from __future__ import annotations

"""Host readiness checks.

CONTRACT
- Inputs: state directory path
- Outputs (required):
  - DoctorReport (ok=bool, items=[(name, status, details)])
- Invariants:
  - Checks: state dir writable, shell, sudo, and the tools the server recipe calls
  - Does not modify system state beyond probing the state dir
- Failure:
  - Returns DoctorReport with ok=False if critical checks fail (state dir, shell)
"""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .util.shell import which

# (binary, what needs it)
RECIPE_TOOLS = [
    ("apt", "System Update / Install Dependencies"),
    ("ufw", "Configure Firewall"),
    ("ssh-keygen", "Generate SSH Key"),
    ("psql", "Configure PostgreSQL / Create Database"),
    ("systemctl", "service management"),
    ("nginx", "Configure Nginx"),
    ("certbot", "Setup SSL"),
    ("rclone", "Setup Rclone Backup"),
    ("crontab", "Setup Rclone Backup"),
    ("pg_dump", "backup script"),
]


@dataclass(frozen=True)
class DoctorItem:
    name: str
    status: str
    details: str


@dataclass(frozen=True)
class DoctorReport:
    ok: bool
    items: list[DoctorItem]


def _state_dir_writable(state_dir: Path) -> tuple[bool, str]:
    target = state_dir if state_dir.exists() else state_dir.parent
    while not target.exists() and target != target.parent:
        target = target.parent
    try:
        with tempfile.NamedTemporaryFile(dir=target, prefix=".serverprep_probe_"):
            pass
    except OSError as e:
        return False, f"{target}: {e}"
    return True, str(state_dir)


def doctor_report(state_dir: Path) -> DoctorReport:
    items: list[DoctorItem] = []
    ok = True

    # 1. Critical: progress log location
    writable, details = _state_dir_writable(state_dir)
    if writable:
        items.append(DoctorItem("state dir", "OK", details))
    else:
        ok = False
        items.append(DoctorItem("state dir", "FAIL", f"Not writable ({details})"))

    # 2. Critical: shell for plan commands
    sh_bin = which("sh")
    if sh_bin:
        items.append(DoctorItem("sh", "OK", sh_bin))
    else:
        ok = False
        items.append(DoctorItem("sh", "FAIL", "sh not found in PATH (plan commands cannot run)"))

    # 3. Privileges
    if hasattr(os, "geteuid") and os.geteuid() == 0:
        items.append(DoctorItem("sudo", "OK", "running as root"))
    elif which("sudo"):
        items.append(DoctorItem("sudo", "OK", which("sudo") or ""))
    else:
        items.append(DoctorItem("sudo", "WARN", "sudo not found; recipe commands will fail"))

    # 4. Recipe tools (installed by the recipe itself, so only informational)
    for binary, used_by in RECIPE_TOOLS:
        path = which(binary)
        if path:
            items.append(DoctorItem(binary, "OK", path))
        else:
            items.append(DoctorItem(binary, "INFO", f"not found; needed by {used_by}"))

    return DoctorReport(ok=ok, items=items)
