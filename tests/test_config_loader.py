"""
Tests for ConfigLoader

Covers the bundled configuration, local overrides, remote tables and
schema checks.
"""
import pytest
import requests
import yaml

from field_validation import load_default_error_messages
from field_validation.config_loader import ConfigLoader


def write_yaml(path, document):
    path.write_text(yaml.safe_dump(document))
    return path


@pytest.fixture
def cache_dir(tmp_path, monkeypatch):
    """Point the remote-document cache at a temporary directory."""
    cache = tmp_path / "cache"
    monkeypatch.setattr(ConfigLoader, "CACHE_DIR", cache)
    return cache


class FakeResponse:
    def __init__(self, text, status_code=200):
        self.text = text
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


class TestBundledConfig:
    """Test defaults shipped with the package."""

    def test_default_separator(self, cache_dir):
        loader = ConfigLoader()
        assert loader.get_error_separator() == "<br>"

    def test_default_messages_cover_builtin_rules(self, cache_dir):
        messages = ConfigLoader().get_error_messages()
        for rule in ("required", "minLength", "regex", "matches", "beforeDate", "boolean"):
            assert rule in messages

    def test_sanitize_section(self, cache_dir):
        sanitize = ConfigLoader().get_sanitize_config()
        assert "b" in sanitize["tags"]
        assert sanitize["strip"] is False

    def test_batch_defaults(self, cache_dir):
        loader = ConfigLoader()
        assert loader.get_batch_parallelism() is False
        assert loader.get_batch_max_workers() is None

    def test_default_messages_are_copies(self):
        messages = load_default_error_messages()
        messages["required"] = "changed"
        assert load_default_error_messages()["required"] != "changed"

    def test_config_age(self, cache_dir):
        assert ConfigLoader().get_config_age() >= 0


class TestLocalOverrides:
    """Test explicit config files."""

    def test_relative_messages_location(self, tmp_path, cache_dir):
        write_yaml(tmp_path / "messages.yaml", {"required": "{} needed"})
        config = write_yaml(tmp_path / "config.yaml", {
            "error_messages_location": "messages.yaml",
            "error_separator": "; ",
        })

        loader = ConfigLoader(str(config))

        assert loader.get_error_messages() == {"required": "{} needed"}
        assert loader.get_error_separator() == "; "

    def test_file_uri_messages_location(self, tmp_path, cache_dir):
        messages = write_yaml(tmp_path / "messages.yaml", {"email": "{} bad"})
        config = write_yaml(tmp_path / "config.yaml", {
            "error_messages_location": messages.as_uri(),
        })

        assert ConfigLoader(str(config)).get_error_messages() == {"email": "{} bad"}

    def test_empty_config_uses_bundled_messages(self, tmp_path, cache_dir):
        config = tmp_path / "config.yaml"
        config.write_text("")

        loader = ConfigLoader(str(config))
        assert loader.get_error_messages() == load_default_error_messages()
        assert loader.get_error_separator() == "<br>"

    def test_invalid_config_rejected(self, tmp_path, cache_dir):
        config = write_yaml(tmp_path / "config.yaml", {"error_separator": 5})
        with pytest.raises(ValueError):
            ConfigLoader(str(config))

    def test_invalid_messages_rejected(self, tmp_path, cache_dir):
        write_yaml(tmp_path / "messages.yaml", {"required": ["not", "a", "string"]})
        config = write_yaml(tmp_path / "config.yaml", {
            "error_messages_location": "messages.yaml",
        })
        with pytest.raises(ValueError):
            ConfigLoader(str(config))

    def test_unsupported_scheme(self, tmp_path, cache_dir):
        config = write_yaml(tmp_path / "config.yaml", {
            "error_messages_location": "ftp://example.com/messages.yaml",
        })
        with pytest.raises(ValueError):
            ConfigLoader(str(config))


class TestRemoteMessages:
    """Test http(s) error-message tables."""

    URI = "https://example.com/validation/messages.yaml"

    def test_fetched_and_cached(self, tmp_path, cache_dir, monkeypatch):
        calls = []

        def fake_get(uri, timeout):
            calls.append((uri, timeout))
            return FakeResponse("required: '{} please'\n")

        monkeypatch.setattr(requests, "get", fake_get)
        config = write_yaml(tmp_path / "config.yaml", {
            "error_messages_location": self.URI,
            "remote_timeout_seconds": 3,
        })

        first = ConfigLoader(str(config))
        second = ConfigLoader(str(config))

        assert first.get_error_messages() == {"required": "{} please"}
        assert second.get_error_messages() == {"required": "{} please"}
        assert calls == [(self.URI, 3)]
        assert any(cache_dir.iterdir())

    def test_clear_cache_forces_refetch(self, tmp_path, cache_dir, monkeypatch):
        calls = []

        def fake_get(uri, timeout):
            calls.append(uri)
            return FakeResponse("required: '{} please'\n")

        monkeypatch.setattr(requests, "get", fake_get)
        config = write_yaml(tmp_path / "config.yaml", {"error_messages_location": self.URI})

        loader = ConfigLoader(str(config))
        loader.clear_cache()
        ConfigLoader(str(config))

        assert len(calls) == 2

    def test_fetch_failure(self, tmp_path, cache_dir, monkeypatch):
        def fake_get(uri, timeout):
            return FakeResponse("", status_code=404)

        monkeypatch.setattr(requests, "get", fake_get)
        config = write_yaml(tmp_path / "config.yaml", {"error_messages_location": self.URI})

        with pytest.raises(RuntimeError):
            ConfigLoader(str(config))
