"""Tests for CLI commands."""

from unittest.mock import patch

from click.testing import CliRunner

from contact_intake.cli import main

ENV = {
    "SMTP_HOST": "smtp.example.com",
    "SMTP_PORT": "465",
    "SMTP_USER": "mailer@example.com",
    "SMTP_PASS": "s3cret",
    "CONTACT_TO": "team@example.com",
}


class TestCheckConfig:
    def test_valid_configuration(self, monkeypatch):
        for key, value in ENV.items():
            monkeypatch.setenv(key, value)
        monkeypatch.delenv("CONTACT_CONFIG", raising=False)

        result = CliRunner().invoke(main, ["check-config"])

        assert result.exit_code == 0
        assert "Configuration is valid" in result.output
        assert "smtp.example.com" in result.output
        assert "s3cret" not in result.output

    def test_missing_settings_exit_with_error(self, monkeypatch):
        for key in ENV:
            monkeypatch.delenv(key, raising=False)
        monkeypatch.delenv("CONTACT_CONFIG", raising=False)

        result = CliRunner().invoke(main, ["check-config"])

        assert result.exit_code == 1

    def test_config_file_option(self, tmp_path, monkeypatch):
        for key in ENV:
            monkeypatch.delenv(key, raising=False)
        config_file = tmp_path / "config.ini"
        config_file.write_text(
            "[smtp]\nhost = relay.internal\nport = 587\nuser = u\npassword = p\n\n[contact]\nto = t@example.com\n"
        )

        result = CliRunner().invoke(main, ["check-config", "--config", str(config_file)])

        assert result.exit_code == 0
        assert "relay.internal" in result.output


class TestClassify:
    def test_clean_message(self):
        result = CliRunner().invoke(main, ["classify", "Hello, I have a question about the course."])
        assert result.exit_code == 0
        assert "clean" in result.output

    def test_spam_message_shows_reason(self):
        result = CliRunner().invoke(
            main, ["classify", "A perfectly polite note", "--email", "bot@tempmail.com"]
        )
        assert result.exit_code == 0
        assert "spam" in result.output
        assert "suspicious_email_domain" in result.output


class TestServe:
    def test_serve_refuses_invalid_configuration(self, monkeypatch):
        for key in ENV:
            monkeypatch.delenv(key, raising=False)
        monkeypatch.delenv("CONTACT_CONFIG", raising=False)

        with patch("uvicorn.run") as run:
            result = CliRunner().invoke(main, ["serve"])

        assert result.exit_code == 1
        run.assert_not_called()

    def test_serve_starts_uvicorn(self, monkeypatch):
        for key, value in ENV.items():
            monkeypatch.setenv(key, value)
        monkeypatch.delenv("CONTACT_CONFIG", raising=False)

        with patch("uvicorn.run") as run:
            result = CliRunner().invoke(main, ["serve", "--port", "9000"])

        assert result.exit_code == 0
        run.assert_called_once()
        args, kwargs = run.call_args
        assert args[0] == "contact_intake.server:app"
        assert kwargs["port"] == 9000
