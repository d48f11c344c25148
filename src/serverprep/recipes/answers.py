"""Server recipe answers.

CONTRACT
- Inputs: interactive prompts (Questionnaire) or answers.yaml
- Outputs (required):
  - ServerAnswers (pydantic), persisted to <state_dir>/answers.yaml with mode 0600
- Invariants:
  - Every input a recipe step needs is collected before the steps are built
  - Secrets are excluded from repr
- Failure:
  - Raises ValueError on invalid or unreadable answers files
"""

from __future__ import annotations

import getpass
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from rich.console import Console
from rich.prompt import Confirm, IntPrompt, Prompt

DEFAULT_PORTS = [22, 80, 443, 5432, 8001]

_console = Console()


class DatabaseAnswers(BaseModel):
    user: str
    password: str = Field(repr=False)
    name: str


class NginxAnswers(BaseModel):
    domain: str
    app_port: int = Field(ge=1, le=65535)
    config_name: str
    enable_ssl: bool = False
    ssl_email: str | None = None

    @field_validator("config_name")
    @classmethod
    def _plain_name(cls, v: str) -> str:
        if not v or "/" in v or v.startswith("."):
            raise ValueError("config_name must be a plain file name")
        return v

    def certbot_email(self) -> str:
        return self.ssl_email or f"admin@{self.domain}"


class ServiceAnswers(BaseModel):
    project_path: str
    port: int = Field(ge=1, le=65535)
    run_method: Literal["runserver", "gunicorn"] = "gunicorn"
    wsgi_module: str | None = None
    workers: int = Field(default=3, ge=1)
    user: str = Field(default_factory=getpass.getuser)

    def service_name(self) -> str:
        return f"{Path(self.project_path).name}-service"


class BackupAnswers(BaseModel):
    access_key_id: str
    secret_access_key: str = Field(repr=False)
    bucket: str
    folder: str = ""
    endpoint: str
    db_name: str
    db_user: str
    db_host: str = "localhost"
    db_port: int = 5432
    db_password: str = Field(repr=False)
    backup_dir: str
    frequency: int = Field(default=1, ge=1, le=24)
    gpg_recipient: str | None = None
    remote_name: str = "mys3"


class ServerAnswers(BaseModel):
    schema_version: int = 1
    project_dir: str
    firewall_ports: list[int] = Field(default_factory=lambda: list(DEFAULT_PORTS))
    database: DatabaseAnswers
    nginx: NginxAnswers
    service: ServiceAnswers | None = None
    backup: BackupAnswers | None = None

    def secrets(self) -> list[str]:
        out = [self.database.password]
        if self.backup:
            out += [self.backup.secret_access_key, self.backup.db_password]
        return [s for s in out if s]


def save_answers(answers: ServerAnswers, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    text = yaml.safe_dump(answers.model_dump(), sort_keys=False)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(text)
    os.chmod(path, 0o600)
    return path


def load_answers(path: Path) -> ServerAnswers | None:
    if not path.exists():
        return None
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return ServerAnswers(**data)
    except (yaml.YAMLError, ValidationError, TypeError) as e:
        raise ValueError(f"Invalid answers file {path}: {e}") from e


class Questionnaire:
    """Prompt wrapper; tests substitute scripted answers."""

    def text(self, question: str, default: str | None = None) -> str:
        while True:
            value = Prompt.ask(question, default=default) or ""
            if value.strip():
                return value.strip()

    def secret(self, question: str) -> str:
        return Prompt.ask(question, password=True)

    def optional(self, question: str, default: str | None = None) -> str | None:
        value = Prompt.ask(question, default=default or "")
        return value.strip() or None

    def integer(self, question: str, default: int | None = None, *, low: int = 1, high: int = 65535) -> int:
        while True:
            value = IntPrompt.ask(question, default=default)
            if value is not None and low <= value <= high:
                return value
            _console.print(f"[red]Please enter a number between {low} and {high}.[/red]")

    def confirm(self, question: str, default: bool = False) -> bool:
        return Confirm.ask(question, default=default)

    def choice(self, question: str, choices: list[str], default: str | None = None) -> str:
        return Prompt.ask(question, choices=choices, default=default)


def collect_answers(q: Questionnaire, previous: ServerAnswers | None = None) -> ServerAnswers:
    prev = previous
    db = DatabaseAnswers(
        user=q.text("PostgreSQL username", prev.database.user if prev else None),
        password=q.secret("PostgreSQL password"),
        name=q.text("Database name", prev.database.name if prev else None),
    )
    project_dir = q.text(
        "Project directory name under /home (where CI/CD deploys the code)",
        prev.project_dir if prev else None,
    )

    enable_ssl = q.confirm("Enable SSL for this setup?", prev.nginx.enable_ssl if prev else False)
    domain = q.text("Domain name", prev.nginx.domain if prev else None)
    nginx = NginxAnswers(
        domain=domain,
        app_port=q.integer("Application port", prev.nginx.app_port if prev else 8001),
        config_name=q.text("Nginx config name", prev.nginx.config_name if prev else project_dir),
        enable_ssl=enable_ssl,
        ssl_email=q.text("Certbot email", prev.nginx.certbot_email() if prev else f"admin@{domain}")
        if enable_ssl
        else None,
    )

    service = None
    if q.confirm("Set up this project as a systemd service?", bool(prev and prev.service)):
        ps = prev.service if prev else None
        run_method = q.choice(
            "Run the application with", ["runserver", "gunicorn"], ps.run_method if ps else "gunicorn"
        )
        service = ServiceAnswers(
            project_path=q.text("Full project path", ps.project_path if ps else f"/home/{project_dir}"),
            port=q.integer("Service port", ps.port if ps else nginx.app_port),
            run_method=run_method,
            wsgi_module=q.text("WSGI module (e.g. project_name.wsgi)", ps.wsgi_module if ps else None)
            if run_method == "gunicorn"
            else None,
        )

    backup = None
    if q.confirm("Set up automatic database backups with rclone?", bool(prev and prev.backup)):
        pb = prev.backup if prev else None
        backup = BackupAnswers(
            access_key_id=q.text("Object store access key id", pb.access_key_id if pb else None),
            secret_access_key=q.secret("Object store secret access key"),
            bucket=q.text("Bucket name", pb.bucket if pb else None),
            folder=q.text("Folder path in the bucket", pb.folder if pb else "backups/database/"),
            endpoint=q.text("S3 endpoint URL", pb.endpoint if pb else None),
            db_name=q.text("Database to back up", pb.db_name if pb else db.name),
            db_user=q.text("Database user for backups", pb.db_user if pb else db.user),
            db_host=q.text("Database host", pb.db_host if pb else "localhost"),
            db_port=q.integer("Database port", pb.db_port if pb else 5432),
            db_password=q.secret("Database password for backups"),
            backup_dir=q.text(
                "Local backup directory", pb.backup_dir if pb else str(Path.home() / "rclonebackup")
            ),
            frequency=q.integer("Backups per day", pb.frequency if pb else 1, low=1, high=24),
            gpg_recipient=q.optional(
                "GPG recipient to encrypt backups (blank for none)", pb.gpg_recipient if pb else None
            ),
        )

    return ServerAnswers(project_dir=project_dir, database=db, nginx=nginx, service=service, backup=backup)
