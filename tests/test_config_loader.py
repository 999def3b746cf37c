"""Tests for config_loader: engine config, request files and JSON parsing."""

import json

import pytest

from rest_engine.config_loader import (
    load_engine_config,
    load_request,
    parse_request,
    parse_request_json,
)
from rest_engine.errors import ConfigurationError
from rest_engine.models import (
    DEFAULT_TIMEOUT_MS,
    DEFAULT_USER_AGENT,
    MAX_TIMEOUT_MS,
    BearerAuth,
    HttpMethod,
    OAuth2Password,
)


class TestLoadEngineConfig:
    def test_none_returns_defaults(self):
        config = load_engine_config(None)
        assert config.default_headers == {"User-Agent": DEFAULT_USER_AGENT}
        assert config.token_timeout_ms == DEFAULT_TIMEOUT_MS
        assert config.token_verify_ssl is True
        assert config.ca_bundle is None

    def test_empty_file_returns_defaults(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("")
        assert load_engine_config(path).token_timeout_ms == DEFAULT_TIMEOUT_MS

    def test_yaml_values(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(
            "default_headers:\n"
            "  User-Agent: suite/1\n"
            "  X-Env: staging\n"
            "token_timeout_ms: 999999\n"
            "token_verify_ssl: false\n"
        )

        config = load_engine_config(path)

        assert config.default_headers == {"User-Agent": "suite/1", "X-Env": "staging"}
        assert config.token_timeout_ms == MAX_TIMEOUT_MS
        assert config.token_verify_ssl is False

    def test_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ENGINE_TENANT", "acme")
        path = tmp_path / "engine.yaml"
        path.write_text("default_headers:\n  X-Tenant: ${ENGINE_TENANT}\n")

        assert load_engine_config(path).default_headers == {"X-Tenant": "acme"}

    def test_missing_env_var(self, tmp_path, monkeypatch):
        monkeypatch.delenv("ENGINE_UNSET_VAR", raising=False)
        path = tmp_path / "engine.yaml"
        path.write_text("default_headers:\n  X-Tenant: ${ENGINE_UNSET_VAR}\n")

        with pytest.raises(ConfigurationError, match="ENGINE_UNSET_VAR"):
            load_engine_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Config file not found"):
            load_engine_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("default_headers: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_engine_config(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="must be a YAML mapping"):
            load_engine_config(path)

    def test_unknown_key_rejected(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("retries: 3\n")
        with pytest.raises(ConfigurationError, match="Invalid config structure"):
            load_engine_config(path)


class TestLoadRequest:
    def test_json_file(self, tmp_path):
        path = tmp_path / "request.json"
        path.write_text(
            json.dumps(
                {
                    "baseUrl": "https://api.example.com",
                    "path": "/users",
                    "method": "post",
                    "body": {"name": "a"},
                    "auth": {"authType": "bearer", "token": "t"},
                }
            )
        )

        descriptor = load_request(path)

        assert descriptor.method is HttpMethod.POST
        assert descriptor.body == '{"name":"a"}'
        assert descriptor.auth == BearerAuth(token="t")

    def test_yaml_file_with_secret_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("API_PASSWORD", "hunter2")
        path = tmp_path / "request.yaml"
        path.write_text(
            "baseUrl: https://api.example.com\n"
            "auth:\n"
            "  authType: oauth2Password\n"
            "  tokenUrl: https://auth.example.com/token\n"
            "  clientId: cli\n"
            "  username: alice\n"
            "  password: ${API_PASSWORD}\n"
        )

        descriptor = load_request(path)

        assert isinstance(descriptor.auth, OAuth2Password)
        assert descriptor.auth.password == "hunter2"

    def test_invalid_json_file(self, tmp_path):
        path = tmp_path / "request.json"
        path.write_text("{oops")
        with pytest.raises(ConfigurationError, match="Invalid JSON in request file"):
            load_request(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Request file not found"):
            load_request(tmp_path / "missing.json")


class TestParseRequest:
    def test_null(self):
        with pytest.raises(ConfigurationError, match="cannot be null"):
            parse_request(None)

    def test_not_object(self):
        with pytest.raises(ConfigurationError, match="must be a JSON object"):
            parse_request("https://api.example.com")

    def test_validation_error_wrapped(self):
        with pytest.raises(ConfigurationError, match="Invalid request configuration"):
            parse_request({"baseUrl": "   "})

    def test_json_string(self):
        descriptor = parse_request_json('{"url": "https://api.example.com", "timeoutMs": 10}')
        assert descriptor.base_url == "https://api.example.com"
        assert descriptor.timeout_ms == 1000

    @pytest.mark.parametrize("text", [None, "", "  \n"])
    def test_blank_json(self, text):
        with pytest.raises(ConfigurationError, match="null or blank"):
            parse_request_json(text)


class TestUnreadableFiles:
    def test_directory(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Cannot read request file"):
            load_request(tmp_path)

    def test_non_utf8(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_bytes(b"default_headers:\n  X-A: \xff\n")
        with pytest.raises(ConfigurationError, match="not valid UTF-8"):
            load_engine_config(path)

    def test_yaml_date_in_request_body(self, tmp_path):
        path = tmp_path / "request.yaml"
        path.write_text("baseUrl: https://api.example.com\nbody:\n  when: 2024-01-01\n")

        assert load_request(path).body == '{"when":"2024-01-01"}'
