import os

import pytest
from pydantic import ValidationError

from serverprep.recipes.answers import (
    NginxAnswers,
    Questionnaire,
    ServerAnswers,
    collect_answers,
    load_answers,
    save_answers,
)


class ScriptedQuestionnaire(Questionnaire):
    """Answers questions from a dict keyed by a fragment of the question text."""

    def __init__(self, replies):
        self.replies = replies
        self.asked = []

    def _reply(self, question, default=None):
        self.asked.append(question)
        for key, value in self.replies.items():
            if key in question:
                return value
        return default

    def text(self, question, default=None):
        return self._reply(question, default)

    def secret(self, question):
        return self._reply(question)

    def optional(self, question, default=None):
        return self._reply(question, default)

    def integer(self, question, default=None, *, low=1, high=65535):
        return int(self._reply(question, default))

    def confirm(self, question, default=False):
        return bool(self._reply(question, default))

    def choice(self, question, choices, default=None):
        return self._reply(question, default)


BASE_REPLIES = {
    "PostgreSQL username": "app",
    "PostgreSQL password": "pw",
    "Database name": "appdb",
    "Project directory": "myapp",
    "Enable SSL": True,
    "Domain name": "example.com",
    "Application port": 8001,
    "Nginx config name": "myapp",
    "systemd service": False,
    "backups with rclone": False,
}


def test_collect_minimal():
    q = ScriptedQuestionnaire(BASE_REPLIES)
    answers = collect_answers(q)
    assert answers.project_dir == "myapp"
    assert answers.nginx.enable_ssl
    assert answers.nginx.ssl_email == "admin@example.com"
    assert answers.service is None and answers.backup is None
    assert answers.firewall_ports == [22, 80, 443, 5432, 8001]


def test_collect_with_service_and_backup():
    replies = dict(BASE_REPLIES)
    replies.update(
        {
            "systemd service": True,
            "Run the application with": "gunicorn",
            "Full project path": "/home/deploy/myapp",
            "Service port": 8001,
            "WSGI module": "myapp.wsgi",
            "backups with rclone": True,
            "access key id": "AKID",
            "secret access key": "SK",
            "Bucket name": "b",
            "S3 endpoint URL": "https://e",
            "Database password for backups": "pw",
            "Backups per day": 2,
        }
    )
    answers = collect_answers(ScriptedQuestionnaire(replies))
    assert answers.service.wsgi_module == "myapp.wsgi"
    assert answers.service.service_name() == "myapp-service"
    assert answers.backup.frequency == 2
    assert answers.backup.db_name == "appdb"  # defaults to the recipe database
    assert set(answers.secrets()) == {"pw", "SK"}


def test_reconfigure_offers_previous_values():
    first = collect_answers(ScriptedQuestionnaire(BASE_REPLIES))
    replies = {k: v for k, v in BASE_REPLIES.items() if k not in ("Domain name", "Database name")}
    again = collect_answers(ScriptedQuestionnaire(replies), previous=first)
    assert again.nginx.domain == "example.com"
    assert again.database.name == "appdb"


def test_save_and_load_roundtrip(tmp_path, server_answers):
    path = tmp_path / "state" / "answers.yaml"
    save_answers(server_answers, path)
    assert oct(os.stat(path).st_mode & 0o777) == "0o600"
    assert load_answers(path) == server_answers


def test_load_missing_and_invalid(tmp_path):
    assert load_answers(tmp_path / "none.yaml") is None
    bad = tmp_path / "answers.yaml"
    bad.write_text("project_dir: x\n")
    with pytest.raises(ValueError, match="Invalid answers file"):
        load_answers(bad)


def test_secrets_hidden_from_repr(server_answers):
    assert "p'w" not in repr(server_answers)
    assert "SECRETKEY" not in repr(server_answers)


def test_nginx_validation():
    with pytest.raises(ValidationError):
        NginxAnswers(domain="x", app_port=70000, config_name="x")
    with pytest.raises(ValidationError):
        NginxAnswers(domain="x", app_port=80, config_name="../etc/passwd")
