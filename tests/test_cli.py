# SPDX-License-Identifier: Apache-2.0
"""Admin CLI commands."""
import json

import pytest
from click.testing import CliRunner

from recboard.cli import cli


@pytest.fixture
def db_args(tmp_path):
    return ["--database-url", f"sqlite:///{tmp_path / 'cli.db'}"]


def test_init_settings_is_idempotent(db_args):
    runner = CliRunner()
    first = runner.invoke(cli, db_args + ["init-settings", "user-1"], obj={})
    assert first.exit_code == 0, first.output
    assert "created  rec_settings/user-1" in first.output
    assert "created  settings/user-1" in first.output

    second = runner.invoke(cli, db_args + ["init-settings", "user-1"], obj={})
    assert second.exit_code == 0
    assert "exists   rec_settings/user-1" in second.output
    assert "created" not in second.output


def test_init_settings_rejects_bad_id(db_args):
    result = CliRunner().invoke(cli, db_args + ["init-settings", "a/b"], obj={})
    assert result.exit_code != 0
    assert "user_id: User id must be non-empty and contain no slash" in result.output


def test_check_overdue_empty(db_args):
    result = CliRunner().invoke(cli, db_args + ["check-overdue"], obj={})
    assert result.exit_code == 0
    assert "No overdue assignments." in result.output


def test_verify_audit_empty_chain(db_args):
    result = CliRunner().invoke(cli, db_args + ["verify-audit", "P1"], obj={})
    assert result.exit_code == 0
    assert json.loads(result.output) == {"valid": True, "entries": 0, "broken_at": None}
