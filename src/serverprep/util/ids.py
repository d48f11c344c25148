from __future__ import annotations

"""ID generation and validation.

CONTRACT
- Inputs: Run IDs, step names
- Outputs (required):
  - new_run_id() returns time-sortable string
  - validate_run_id() / validate_step_name() return the value or raise
- Invariants:
  - Run IDs match `[A-Za-z0-9][A-Za-z0-9_.-]{0,63}`
  - Step names are non-empty, at most 200 chars, without CR/LF
    (each name is one line of the progress log)
- Failure:
  - Raises ValueError on invalid IDs
"""

import datetime
import random
import re
import string

_RUN_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,63}$")
_MAX_STEP_NAME = 200


def new_run_id() -> str:
    # YYYYMMDD_HHMMSS_<rand4>
    ts = datetime.datetime.now(datetime.timezone.utc).strftime("%Y%m%d_%H%M%S")
    suffix = "".join(random.choice(string.ascii_lowercase + string.digits) for _ in range(4))
    return f"{ts}_{suffix}"


def validate_run_id(run_id: str) -> str:
    if not _RUN_ID_RE.fullmatch(run_id):
        raise ValueError(
            "Invalid run id. Use 1-64 chars: letters/digits, plus '._-'. Must start with a letter "
            "or digit."
        )
    return run_id


def validate_step_name(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Invalid step name: must be a non-empty string.")
    if "\n" in name or "\r" in name:
        raise ValueError(f"Invalid step name {name!r}: must not contain line breaks.")
    if len(name) > _MAX_STEP_NAME:
        raise ValueError(f"Invalid step name: longer than {_MAX_STEP_NAME} chars.")
    return name


if __name__ == "__main__":
    import argparse
    import sys

    parser = argparse.ArgumentParser(description="Utilities for run IDs and step names")
    parser.add_argument("--new-run-id", action="store_true", help="Generate a new run ID")
    parser.add_argument("--validate-run-id", help="Validate a run ID (returns it or fails)")
    parser.add_argument("--validate-step", help="Validate a step name (returns it or fails)")
    args = parser.parse_args()

    try:
        if args.new_run_id:
            print(new_run_id())
        elif args.validate_run_id:
            print(validate_run_id(args.validate_run_id))
        elif args.validate_step:
            print(validate_step_name(args.validate_step))
        else:
            parser.print_help()
            sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
