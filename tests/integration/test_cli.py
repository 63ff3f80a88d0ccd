"""Tests for the command-line batch jobs."""

import json
import logging

import pytest

from pgmanager import main as cli
from pgmanager.config import settings
from pgmanager.models import Base
from pgmanager.services import engine


@pytest.fixture
def app_tables(tmp_path, monkeypatch):
    """Create tables on the application engine and keep log output in tmp_path."""
    monkeypatch.setattr(settings, "log_file", str(tmp_path / "server.log"))
    # Keep stdout to the JSON summary
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    root_logger = logging.getLogger()
    saved_handlers, saved_level = root_logger.handlers.copy(), root_logger.level
    Base.metadata.create_all(bind=engine)

    yield

    Base.metadata.drop_all(bind=engine)
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)
    for handler in saved_handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(saved_level)


@pytest.mark.integration
@pytest.mark.parametrize("job", ["reconcile-overdue", "refresh-dues", "cleanup-members"])
def test_job_prints_summary_and_succeeds(app_tables, capsys, job):
    exit_code = cli.main([job])

    summary = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert summary["failures"] == []


@pytest.mark.integration
def test_unknown_command_is_rejected(app_tables):
    with pytest.raises(SystemExit):
        cli.main(["rebuild-everything"])
