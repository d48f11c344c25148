import pytest

from serverprep.recipes.answers import (
    BackupAnswers,
    DatabaseAnswers,
    NginxAnswers,
    ServerAnswers,
    ServiceAnswers,
)


@pytest.fixture
def backup_answers(tmp_path):
    return BackupAnswers(
        access_key_id="AKID",
        secret_access_key="SECRETKEY",
        bucket="backups",
        folder="/db/daily/",
        endpoint="https://acct.r2.cloudflarestorage.com",
        db_name="appdb",
        db_user="app",
        db_password="dbpass",
        backup_dir=str(tmp_path / "rclonebackup"),
        frequency=3,
    )


@pytest.fixture
def server_answers(backup_answers):
    return ServerAnswers(
        project_dir="myapp",
        database=DatabaseAnswers(user="app", password="p'w", name="appdb"),
        nginx=NginxAnswers(domain="example.com", app_port=8001, config_name="myapp", enable_ssl=True),
        service=ServiceAnswers(
            project_path="/home/deploy/myapp", port=8001, run_method="gunicorn", wsgi_module="myapp.wsgi", user="deploy"
        ),
        backup=backup_answers,
    )
