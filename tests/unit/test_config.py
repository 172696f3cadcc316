"""Tests for environment-driven settings"""

from memrag.config import Settings


class TestSettings:
    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)

        settings = Settings()

        assert settings.openai_api_key == ""
        assert settings.max_active_memories == 10
        assert settings.memory_importance_threshold == 5.0
        assert settings.max_context_length == 4000
        assert settings.consolidation_trigger == 0.8
        assert settings.top_k_documents == 3
        assert settings.category_search_top_k == 10
        assert settings.min_questions_before_ticket == 3
        assert settings.max_questions_before_forced_ticket == 5
        assert settings.min_description_length == 100

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.setenv("max_active_memories", "4")
        monkeypatch.setenv("HIGH_URGENCY_KEYWORDS", '["asap"]')

        settings = Settings()

        assert settings.openai_api_key == "sk-test"
        assert settings.max_active_memories == 4
        assert settings.high_urgency_keywords == ["asap"]

    def test_dotenv_file(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("LLM_MODEL", raising=False)
        (tmp_path / ".env").write_text("LLM_MODEL=gpt-4o\n")

        assert Settings().llm_model == "gpt-4o"
