"""Tests for the command-line entry points"""

from unittest.mock import AsyncMock, MagicMock, patch

from typer.testing import CliRunner

from memrag.application.cli.app import app
from memrag.config import Settings
from memrag.domain.exceptions import ConfigurationError

runner = CliRunner()


class TestCli:
    """Exit codes and mode selection."""

    def test_configuration_error_exits_non_zero(self, tmp_path):
        settings = Settings(openai_api_key="", knowledge_base_dir=str(tmp_path))

        with patch("memrag.application.cli.app.get_settings", return_value=settings):
            result = runner.invoke(app, ["chat"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output
        assert "OPENAI_API_KEY" in result.output

    def test_demo_runs_and_closes_system(self):
        system = MagicMock()
        system.retriever.document_count = 5
        system.memory_manager.get_stats.return_value.total_count = 0

        with patch("memrag.application.cli.app.get_settings", return_value=Settings(openai_api_key="k")), \
                patch("memrag.application.cli.app.setup_system", AsyncMock(return_value=system)) as setup, \
                patch("memrag.application.cli.app.run_demo", AsyncMock()) as run_demo:
            result = runner.invoke(app, ["demo"])

        assert result.exit_code == 0
        setup.assert_awaited_once()
        assert setup.await_args.kwargs["triage"] is False
        run_demo.assert_awaited_once()
        system.close.assert_called_once()

    def test_triage_selects_phase_routed_agent(self):
        system = MagicMock()
        system.retriever.document_count = 5
        system.memory_manager.get_stats.return_value.total_count = 0

        with patch("memrag.application.cli.app.get_settings", return_value=Settings(openai_api_key="k")), \
                patch("memrag.application.cli.app.setup_system", AsyncMock(return_value=system)) as setup, \
                patch("memrag.application.cli.app.run_chat", AsyncMock()) as run_chat:
            result = runner.invoke(app, ["triage"])

        assert result.exit_code == 0
        assert setup.await_args.kwargs["triage"] is True
        run_chat.assert_awaited_once()

    def test_setup_failure_surfaces_message(self):
        with patch("memrag.application.cli.app.get_settings", return_value=Settings(openai_api_key="k")), \
                patch(
                    "memrag.application.cli.app.setup_system",
                    AsyncMock(side_effect=ConfigurationError("Knowledge base directory not found: ./kb")),
                ):
            result = runner.invoke(app, ["chat"])

        assert result.exit_code == 1
        assert "Knowledge base directory not found" in result.output
