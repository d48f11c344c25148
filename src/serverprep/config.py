from __future__ import annotations

"""Configuration models.

CONTRACT
- Inputs: plan YAML file path (plan.yaml) or dictionary data
- Outputs (required):
  - Validated RunConfig, PlanDefaults, PlanStep, PlanFile objects
  - build_plan_steps() turns a PlanFile into runnable Steps (shell bodies)
- Invariants:
  - Step names are unique and single-line
  - Default values: 3 attempts, 2s apart, halt
- Failure:
  - Raises ValueError on invalid schema, duplicate or invalid names
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .core.step import FailurePolicy, Step
from .util.ids import validate_step_name
from .util.shell import CommandRunner

STEP_LOG_NAME = "setup_progress.log"
ERROR_LOG_NAME = "setup_errors.log"
ANSWERS_NAME = "answers.yaml"
DEFAULT_STATE_DIR = Path(".serverprep")


@dataclass(frozen=True)
class RunConfig:
    state_dir: Path
    run_id: str
    plan_file: Path | None = None
    dry_run: bool = False
    verbose: bool = False

    def step_log_path(self) -> Path:
        return self.state_dir / STEP_LOG_NAME

    def error_log_path(self) -> Path:
        return self.state_dir / ERROR_LOG_NAME

    def answers_path(self) -> Path:
        return self.state_dir / ANSWERS_NAME

    def run_dir(self) -> Path:
        return self.state_dir / "runs" / self.run_id


@dataclass(frozen=True)
class PlanDefaults:
    retries: int = 3
    retry_delay: float = 2.0
    on_failure: FailurePolicy = FailurePolicy.HALT
    timeout_s: float | None = None


@dataclass(frozen=True)
class PlanStep:
    name: str
    commands: list[str]
    retries: int
    retry_delay: float
    on_failure: FailurePolicy
    timeout_s: float | None = None
    description: str = ""
    env: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PlanFile:
    steps: list[PlanStep]
    defaults: PlanDefaults = field(default_factory=PlanDefaults)


_POLICY = {"type": "string", "enum": ["halt", "continue"]}
_RETRY_PROPS = {
    "retries": {"type": "integer", "minimum": 1},
    "retry_delay": {"type": "number", "minimum": 0},
    "on_failure": _POLICY,
    "timeout_s": {"type": ["number", "null"], "exclusiveMinimum": 0},
}

PLAN_SCHEMA = {
    "type": "object",
    "properties": {
        "defaults": {
            "type": "object",
            "properties": dict(_RETRY_PROPS),
            "additionalProperties": False,
        },
        "steps": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "description": {"type": "string"},
                    "run": {
                        "oneOf": [
                            {"type": "string", "minLength": 1},
                            {"type": "array", "items": {"type": "string", "minLength": 1}, "minItems": 1},
                        ]
                    },
                    "env": {"type": "object", "additionalProperties": {"type": ["string", "number", "boolean"]}},
                    **_RETRY_PROPS,
                },
                "required": ["name", "run"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["steps"],
}


def parse_plan(data: Any) -> PlanFile:
    import jsonschema  # lazy import

    try:
        jsonschema.validate(instance=data, schema=PLAN_SCHEMA)
    except jsonschema.ValidationError as e:
        where = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ValueError(f"Invalid plan file schema at {where}: {e.message}") from e

    d = data.get("defaults", {}) or {}
    defaults = PlanDefaults(
        retries=int(d.get("retries", 3)),
        retry_delay=float(d.get("retry_delay", 2.0)),
        on_failure=FailurePolicy(d.get("on_failure", "halt")),
        timeout_s=d.get("timeout_s"),
    )

    steps: list[PlanStep] = []
    seen: set[str] = set()
    for s in data["steps"]:
        name = validate_step_name(str(s["name"]))
        if name in seen:
            raise ValueError(f"Duplicate step name in plan: {name!r}")
        seen.add(name)
        run = s["run"]
        steps.append(
            PlanStep(
                name=name,
                commands=[run] if isinstance(run, str) else list(run),
                retries=int(s.get("retries", defaults.retries)),
                retry_delay=float(s.get("retry_delay", defaults.retry_delay)),
                on_failure=FailurePolicy(s.get("on_failure", defaults.on_failure.value)),
                timeout_s=s.get("timeout_s", defaults.timeout_s),
                description=str(s.get("description", "")),
                env={str(k): str(v) for k, v in (s.get("env") or {}).items()},
            )
        )
    return PlanFile(steps=steps, defaults=defaults)


def load_plan_file(path: Path) -> PlanFile:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid plan file {path}: {e}") from e
    return parse_plan(data)


def _shell_body(ps: PlanStep, sh: CommandRunner):
    def body() -> None:
        for i, cmd in enumerate(ps.commands, start=1):
            sh.check(cmd, label=f"{ps.name}_{i}", env=ps.env or None, timeout_s=ps.timeout_s)

    return body


def build_plan_steps(plan: PlanFile, sh: CommandRunner) -> list[Step]:
    return [
        Step(
            name=ps.name,
            body=_shell_body(ps, sh),
            retries=ps.retries,
            retry_delay=ps.retry_delay,
            on_failure=ps.on_failure,
            description=ps.description,
        )
        for ps in plan.steps
    ]


if __name__ == "__main__":
    import argparse
    import sys

    parser = argparse.ArgumentParser(description="Plan file loader")
    parser.add_argument("--plan", required=True, help="Path to plan.yaml")
    args = parser.parse_args()

    try:
        plan = load_plan_file(Path(args.plan))
        print(f"Loaded {len(plan.steps)} steps.")
        for ps in plan.steps:
            print(f"- {ps.name} [{ps.on_failure.value}, {ps.retries}x]")
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
