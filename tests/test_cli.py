"""Tests for the command-line interface."""

from datetime import timedelta

import pytest
from typer.testing import CliRunner

from sitecrew.cli import app
from sitecrew.core.config import get_settings
from sitecrew.core.utils import utc_now
from sitecrew.db.engine import get_session_factory
from sitecrew.db.models import CompanyModel, InvitationModel

runner = CliRunner()


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    """Config pointing at a throwaway SQLite file, with the process engine reset afterwards."""
    monkeypatch.setattr("sitecrew.db.engine._engine", None)
    monkeypatch.setattr("sitecrew.db.engine._SessionLocal", None)
    monkeypatch.setattr("sitecrew.utils.logging.setup_logging", lambda **kwargs: None)
    path = tmp_path / "sitecrew.yaml"
    path.write_text(f"database:\n  url: sqlite:///{tmp_path / 'cli.db'}\n")
    yield str(path)
    get_settings.cache_clear()


class TestCLI:
    """Operator commands."""

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "SiteCrew version" in result.output

    def test_init_and_create_company(self, config_file):
        assert runner.invoke(app, ["init-db", "--config", config_file]).exit_code == 0

        result = runner.invoke(
            app, ["create-company", "Acme Builders", "--max-seats", "4", "--status", "active", "-c", config_file],
        )

        assert result.exit_code == 0
        assert "Acme Builders" in result.output
        session = get_session_factory()()
        try:
            company = session.query(CompanyModel).one()
            assert company.subscription.max_seats == 4
        finally:
            session.close()

    def test_create_company_bad_status(self, config_file):
        runner.invoke(app, ["init-db", "-c", config_file])
        result = runner.invoke(app, ["create-company", "Acme", "--status", "gratis", "-c", config_file])
        assert result.exit_code == 1
        assert "Invalid subscription status" in result.output

    def test_sweep_invitations(self, config_file):
        runner.invoke(app, ["init-db", "-c", config_file])
        session = get_session_factory()()
        try:
            session.add(InvitationModel(
                email="late@x.com",
                company_id="c-1",
                company_role="member",
                token_hash="a" * 64,
                pending_key="late@x.com|c-1|-",
                status="pending",
                expires_at=utc_now() - timedelta(days=1),
            ))
            session.commit()
        finally:
            session.close()

        result = runner.invoke(app, ["sweep-invitations", "-c", config_file])

        assert result.exit_code == 0
        assert "Marked 1 invitation(s) as expired" in result.output

    def test_set_seats(self, config_file):
        from sitecrew.auth.tenancy import TenancyManager

        runner.invoke(app, ["init-db", "-c", config_file])
        company = TenancyManager().create_company(None, "Acme", max_seats=2)

        result = runner.invoke(app, ["set-seats", company["id"], "9", "-c", config_file])
        assert result.exit_code == 0
        assert "0/9 seats in use" in result.output

        missing = runner.invoke(app, ["set-seats", "no-such-company", "3", "-c", config_file])
        assert missing.exit_code == 1
        assert "Company not found" in missing.output

    def test_serve_disables_access_log(self, config_file, monkeypatch):
        """Request lines with token query strings stay out of uvicorn's own log."""
        captured = {}

        def fake_run(app_instance, **kwargs):
            captured["app"] = app_instance
            captured.update(kwargs)

        monkeypatch.setattr("uvicorn.run", fake_run)
        result = runner.invoke(app, ["serve", "--port", "9001", "-c", config_file])

        assert result.exit_code == 0
        assert captured["access_log"] is False
        assert captured["port"] == 9001
        assert captured["app"].title
