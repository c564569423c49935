import pytest

from summarist.config import DEFAULT_CONFIG, ConfigError, load_config


def _write(tmp_path, text):
    path = tmp_path / "config.yml"
    path.write_text(text, encoding="utf-8")
    return str(path)


def test_defaults_without_file(monkeypatch):
    monkeypatch.delenv("SM_CONFIG_PATH", raising=False)
    monkeypatch.delenv("SM_DATA_DIR", raising=False)

    cfg = load_config()

    assert cfg.jobs.max_retries == DEFAULT_CONFIG["jobs"]["max_retries"]
    assert cfg.jobs.poll_interval_seconds == 5.0
    assert cfg.jobs.error_interval_seconds == 1.0
    assert cfg.llm.max_tokens == 500
    assert cfg.llm.temperature == 0.3
    assert [provider.name for provider in cfg.llm.providers] == ["groq", "claude"]


def test_yaml_overrides_merge_over_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("SM_DATA_DIR", raising=False)
    path = _write(
        tmp_path,
        "jobs:\n  max_retries: 5\n  workers: 4\nllm:\n  temperature: 0.5\n",
    )

    cfg = load_config(path)

    assert cfg.jobs.max_retries == 5
    assert cfg.jobs.workers == 4
    assert cfg.jobs.default_priority == 5
    assert cfg.llm.temperature == 0.5
    assert cfg.llm.max_tokens == 500


def test_config_path_from_env(tmp_path, monkeypatch):
    monkeypatch.setenv("SM_CONFIG_PATH", _write(tmp_path, "app:\n  name: Test\n"))

    assert load_config().app.name == "Test"


@pytest.mark.parametrize(
    "text",
    [
        "jobs:\n  max_retries: many\n",
        "jobs:\n  unexpected: 1\n",
        "jobs:\n  max_retries: 0\n",
        "llm:\n  providers: []\n",
        "llm:\n  providers:\n    - name: x\n      type: carrier-pigeon\n      model: m\n",
    ],
)
def test_invalid_config_raises(tmp_path, text):
    with pytest.raises(ConfigError, match="Invalid config"):
        load_config(_write(tmp_path, text))


def test_missing_file_raises(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(str(tmp_path / "missing.yml"))


def test_api_keys_come_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("GROQ_API_KEY", "groq-secret")
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.setenv("CUSTOM_GEMINI_KEY", "gemini-secret")
    path = _write(
        tmp_path,
        "llm:\n"
        "  providers:\n"
        "    - name: groq\n      type: openai_compatible\n      model: llama3-8b-8192\n"
        "      base_url: https://api.groq.com/openai/v1\n      api_key_env: GROQ_API_KEY\n"
        "    - name: claude\n      type: anthropic\n      model: claude-3-haiku-20240307\n"
        "    - name: gemini\n      type: google\n      model: gemini-1.5-flash\n"
        "      api_key_env: CUSTOM_GEMINI_KEY\n",
    )

    providers = load_config(path).llm.providers

    assert providers[0].api_key == "groq-secret"
    assert providers[1].api_key is None
    assert providers[1].api_key_env == "ANTHROPIC_API_KEY"
    assert providers[2].api_key == "gemini-secret"


def test_data_dir_from_environment(tmp_path, monkeypatch):
    monkeypatch.delenv("SM_CONFIG_PATH", raising=False)
    monkeypatch.setenv("SM_DATA_DIR", str(tmp_path))

    cfg = load_config()

    assert cfg.paths.data_dir == str(tmp_path)
    assert cfg.paths.state_db == str(tmp_path / "state.sqlite3")
