"""Single-server provisioning recipe.

CONTRACT
- Inputs: ServerAnswers (collected and persisted beforehand), CommandRunner
- Outputs (required):
  - Ordered list of Steps named as they appear in existing setup_progress.log files
- Invariants:
  - Optional steps (SSL, systemd, backups) are registered only when requested,
    and their inputs come from the persisted answers
  - Bodies are safe to re-run: they check existing state before non-idempotent actions
- Failure:
  - Bodies raise TransientStepError on command failure; FatalStepError when
    retrying cannot help
"""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from string import Template

from loguru import logger
from rich.console import Console

from ..core.errors import FatalStepError, TransientStepError
from ..core.step import FailurePolicy, Step
from ..util.paths import read_template
from ..util.shell import CommandRunner
from .answers import ServerAnswers
from .backup import BackupSetup

_console = Console()

PACKAGES = [
    "software-properties-common", "curl", "git", "wget", "build-essential", "openssl",
    "ufw", "screen", "virtualenv", "python3", "python3-pip", "libpq-dev", "nginx",
    "certbot", "python3-certbot-nginx", "rclone", "postgresql", "postgresql-contrib",
]

PG_HBA_RULES = [
    "host    all             all             0.0.0.0/0             md5",
    "host    all             all             ::1/128               md5",
]

_PSQL_VERSION_RE = re.compile(r"\(PostgreSQL\)\s+(\d+)")


def postgres_major_version(psql_v_output: str) -> str:
    m = _PSQL_VERSION_RE.search(psql_v_output)
    if not m:
        raise FatalStepError(f"Cannot determine PostgreSQL version from {psql_v_output.strip()!r}")
    return m.group(1)


def sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def sql_ident(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def render_nginx_conf(domain: str, app_port: int) -> str:
    return Template(read_template("nginx.conf")).substitute(domain=domain, app_port=app_port)


def render_systemd_unit(service_name: str, user: str, project_path: str, exec_start: str) -> str:
    return Template(read_template("systemd.service")).substitute(
        service_name=service_name, user=user, project_path=project_path, exec_start=exec_start
    )


@dataclass
class ServerRecipe:
    answers: ServerAnswers
    sh: CommandRunner
    home: Path = field(default_factory=Path.home)
    deploy_root: Path = Path("/home")

    # -- helpers -------------------------------------------------------------

    def _psql(self, sql: str, label: str) -> None:
        self.sh.check(["sudo", "-u", "postgres", "psql", "-v", "ON_ERROR_STOP=1", "-c", sql], label=label)

    def _psql_exists(self, sql: str, label: str) -> bool:
        res = self.sh.check(["sudo", "-u", "postgres", "psql", "-tAc", sql], label=label)
        return res.read_stdout().strip() == "1"

    # -- step bodies ---------------------------------------------------------

    def system_update(self) -> None:
        self.sh.check("sudo apt update -y && sudo apt upgrade -y", label="apt_upgrade")

    def install_dependencies(self) -> None:
        self.sh.check(["sudo", "apt", "install", "-y", *PACKAGES], label="apt_install")

    def configure_firewall(self) -> None:
        self.sh.check("sudo ufw default deny incoming", label="ufw_deny_in")
        self.sh.check("sudo ufw default allow outgoing", label="ufw_allow_out")
        # One rule per call; ufw rejects multiple ports in a single `allow`.
        for port in self.answers.firewall_ports:
            self.sh.check(["sudo", "ufw", "allow", str(port)], label=f"ufw_allow_{port}")
        self.sh.check("sudo ufw allow OpenSSH", label="ufw_allow_ssh")
        self.sh.check("sudo ufw --force enable", label="ufw_enable")
        status = self.sh.run("sudo ufw status verbose", label="ufw_status")
        if status.returncode != 0:
            logger.warning("UFW status check failed")

    def generate_ssh_key(self) -> None:
        ssh_dir = self.home / ".ssh"
        key = ssh_dir / "id_rsa"
        if key.exists():
            logger.info("SSH key already exists. Skipping generation.")
            return
        self.sh.check(["mkdir", "-p", str(ssh_dir)], label="ssh_dir")
        self.sh.check(["chmod", "700", str(ssh_dir)], label="ssh_dir_mode")
        self.sh.check(["ssh-keygen", "-t", "rsa", "-b", "4096", "-f", str(key), "-N", ""], label="ssh_keygen")
        if self.sh.dry_run:
            return
        pub = key.with_name("id_rsa.pub").read_text(encoding="utf-8").strip()
        auth = ssh_dir / "authorized_keys"
        existing = auth.read_text(encoding="utf-8").splitlines() if auth.exists() else []
        if pub not in existing:
            with auth.open("a", encoding="utf-8") as f:
                f.write(pub + "\n")
        auth.chmod(0o600)
        # For the CI secret store.
        _console.print("Add the following private key to your CI secrets (e.g. SSH_PRIVATE_KEY_PROD):")
        _console.rule()
        _console.print(key.read_text(encoding="utf-8").rstrip(), markup=False, highlight=False, soft_wrap=True)
        _console.rule()

    def configure_postgresql(self) -> None:
        res = self.sh.check(["psql", "-V"], label="psql_version")
        version = "0" if self.sh.dry_run else postgres_major_version(res.read_stdout())
        conf_dir = f"/etc/postgresql/{version}/main"
        self.sh.check(
            ["sudo", "sed", "-i", "s/^#listen_addresses = .*/listen_addresses = '*'/", f"{conf_dir}/postgresql.conf"],
            label="pg_listen",
        )
        hba = f"{conf_dir}/pg_hba.conf"
        current = self.sh.run(["sudo", "cat", hba], label="pg_hba_read").read_stdout().splitlines()
        missing = [rule for rule in PG_HBA_RULES if rule not in current]
        if missing:
            self.sh.write_root_file(hba, "\n".join(missing) + "\n", append=True, label="pg_hba_append")
        self.sh.check("sudo systemctl restart postgresql", label="pg_restart")
        self.sh.check("sudo systemctl enable postgresql", label="pg_enable")

    def check_postgresql_status(self) -> None:
        if self.sh.run(["systemctl", "is-active", "--quiet", "postgresql"], label="pg_active").returncode == 0:
            return
        logger.warning("PostgreSQL is not running, trying to start it...")
        self.sh.check("sudo systemctl start postgresql", label="pg_start")

    def create_database(self) -> None:
        db = self.answers.database
        if not self._psql_exists(f"SELECT 1 FROM pg_database WHERE datname={sql_literal(db.name)}", "pg_db_exists"):
            self._psql(f"CREATE DATABASE {sql_ident(db.name)};", "pg_create_db")
        if not self._psql_exists(f"SELECT 1 FROM pg_roles WHERE rolname={sql_literal(db.user)}", "pg_role_exists"):
            self._psql(
                f"CREATE USER {sql_ident(db.user)} WITH ENCRYPTED PASSWORD {sql_literal(db.password)};",
                "pg_create_user",
            )
        self._psql(f"GRANT ALL PRIVILEGES ON DATABASE {sql_ident(db.name)} TO {sql_ident(db.user)};", "pg_grant")
        self._psql(
            f"ALTER ROLE {sql_ident(db.user)} WITH SUPERUSER CREATEDB CREATEROLE REPLICATION BYPASSRLS;",
            "pg_alter_role",
        )

    def verify_code_push(self) -> None:
        target = self.deploy_root / self.answers.project_dir
        if self.sh.dry_run:
            logger.info(f"[dry-run] would verify {target} exists")
            return
        if not target.is_dir():
            raise TransientStepError(
                f"Code push verification failed: {target} does not exist. "
                "Push the code via CI/CD; the check will be retried."
            )
        logger.info(f"Code found at {target}")

    def configure_nginx(self) -> None:
        ng = self.answers.nginx
        conf = f"/etc/nginx/conf.d/{ng.config_name}.conf"
        self.sh.write_root_file(conf, render_nginx_conf(ng.domain, ng.app_port), label="nginx_conf")
        self.sh.check("sudo nginx -t", label="nginx_test")
        self.sh.check("sudo systemctl restart nginx", label="nginx_restart")
        self.sh.check("sudo systemctl enable nginx", label="nginx_enable")

    def setup_ssl(self) -> None:
        ng = self.answers.nginx
        self.sh.check(
            ["sudo", "certbot", "--nginx", "-d", ng.domain, "--non-interactive", "--agree-tos", "-m", ng.certbot_email()],
            label="certbot",
        )

    def setup_systemd_service(self) -> None:
        svc = self.answers.service
        if svc is None:
            raise FatalStepError("No systemd service answers saved; rerun with --reconfigure")
        if svc.run_method == "runserver":
            exec_start = f"python3 {shlex.quote(svc.project_path + '/manage.py')} runserver 0.0.0.0:{svc.port}"
        else:
            if not svc.wsgi_module:
                raise FatalStepError("gunicorn needs a WSGI module (e.g. project_name.wsgi)")
            self.sh.check("pip3 install gunicorn", label="pip_gunicorn")
            exec_start = f"gunicorn --workers {svc.workers} --bind 0.0.0.0:{svc.port} {svc.wsgi_module}:application"
        name = svc.service_name()
        unit = render_systemd_unit(name, svc.user, svc.project_path, exec_start)
        self.sh.write_root_file(f"/etc/systemd/system/{name}.service", unit, label="systemd_unit")
        self.sh.check("sudo systemctl daemon-reload", label="systemd_reload")
        self.sh.check(["sudo", "systemctl", "start", name], label="systemd_start")
        self.sh.check(["sudo", "systemctl", "enable", name], label="systemd_enable")
        logger.info(f"Systemd service {name!r} running on port {svc.port}")

    # -- registry ------------------------------------------------------------

    def steps(self) -> list[Step]:
        halt, cont = FailurePolicy.HALT, FailurePolicy.CONTINUE_NEXT
        steps = [
            Step("System Update", self.system_update, on_failure=halt),
            Step("Install Dependencies", self.install_dependencies, on_failure=halt),
            Step("Configure Firewall", self.configure_firewall, on_failure=halt),
            Step("Generate SSH Key", self.generate_ssh_key, retries=1, on_failure=cont),
            Step("Configure PostgreSQL", self.configure_postgresql, on_failure=halt),
            Step("Check PostgreSQL Status", self.check_postgresql_status, on_failure=cont),
            Step("Create Database", self.create_database, on_failure=halt),
            Step("Push Code via CI/CD", self.verify_code_push, retries=5, retry_delay=30.0, on_failure=halt),
            Step("Configure Nginx", self.configure_nginx, on_failure=halt),
        ]
        if self.answers.nginx.enable_ssl:
            steps.append(Step("Setup SSL", self.setup_ssl, on_failure=cont))
        if self.answers.service is not None:
            steps.append(Step("Setup Systemd Service", self.setup_systemd_service, on_failure=halt))
        if self.answers.backup is not None:
            backup = BackupSetup(answers=self.answers.backup, sh=self.sh, home=self.home)
            steps.append(Step("Setup Rclone Backup", backup, on_failure=cont))
        return steps
