"""Unit tests for relayreader.config."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from relayreader.config import (
    DEFAULT_RELAYS,
    CacheSettings,
    FetcherSettings,
    RelaySettings,
    Settings,
    _find_config_file,
)

if TYPE_CHECKING:
    from pathlib import Path


class TestDefaults:
    def test_fetcher_defaults(self) -> None:
        settings = FetcherSettings()
        assert settings.max_retries == 3
        assert settings.max_concurrent_requests == 3
        assert settings.backoff_base_seconds == 1.0
        assert settings.coalesce_in_flight is False

    def test_cache_ttls_by_category(self) -> None:
        settings = CacheSettings()
        assert settings.metadata_ttl_seconds == 24 * 60 * 60
        assert settings.comments_ttl_seconds == 10 * 60
        assert settings.search_ttl_seconds == 10 * 60
        assert settings.listing_ttl_seconds == 5 * 60
        assert settings.default_ttl_seconds == 2 * 60
        assert settings.max_entries == 200

    def test_default_relays_include_a_body_forwarder(self) -> None:
        assert any(r.supports_body_forwarding for r in DEFAULT_RELAYS)

    def test_settings_relays_are_a_fresh_list(self) -> None:
        first = Settings()
        first.relays.clear()
        assert Settings().relays


class TestValidation:
    def test_template_requires_placeholder(self) -> None:
        with pytest.raises(ValidationError, match="must contain"):
            RelaySettings(name="bad", template="https://relay.test/")

    def test_zero_concurrency_rejected(self) -> None:
        with pytest.raises(ValidationError):
            FetcherSettings(max_concurrent_requests=0)

    def test_negative_retries_rejected(self) -> None:
        with pytest.raises(ValidationError):
            FetcherSettings(max_retries=-1)

    @pytest.mark.parametrize(("base", "jitter"), [(1.0, 2.0), (1.0, 5.0), (0.0, 0.1)])
    def test_jitter_that_could_reorder_delays_rejected(self, base: float, jitter: float) -> None:
        with pytest.raises(ValidationError, match="backoff_jitter_seconds"):
            FetcherSettings(backoff_base_seconds=base, backoff_jitter_seconds=jitter)

    @pytest.mark.parametrize(("base", "jitter"), [(1.0, 0.5), (1.0, 1.99), (30.0, 0.0), (0.0, 0.0)])
    def test_backoff_combinations_accepted(self, base: float, jitter: float) -> None:
        settings = FetcherSettings(backoff_base_seconds=base, backoff_jitter_seconds=jitter)
        assert settings.backoff_jitter_seconds == jitter

    def test_env_cannot_bypass_backoff_check(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RELAYREADER__FETCHER__BACKOFF_JITTER_SECONDS", "9")
        with pytest.raises(ValidationError):
            Settings()


class TestSources:
    def test_env_overrides_nested_field(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RELAYREADER__FETCHER__MAX_RETRIES", "5")
        monkeypatch.setenv("RELAYREADER__CACHE__LISTING_TTL_SECONDS", "60")
        settings = Settings()
        assert settings.fetcher.max_retries == 5
        assert settings.cache.listing_ttl_seconds == 60

    def test_init_args_beat_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RELAYREADER__FETCHER__MAX_RETRIES", "5")
        settings = Settings(fetcher={"max_retries": 1})
        assert settings.fetcher.max_retries == 1

    def test_classifier_key_is_secret(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RELAYREADER__CLASSIFIER__API_KEY", "sk-test")
        settings = Settings()
        assert settings.classifier.api_key is not None
        assert settings.classifier.api_key.get_secret_value() == "sk-test"
        assert "sk-test" not in repr(settings.classifier)

    def test_config_file_found_in_cwd(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (tmp_path / "relayreader.yaml").write_text("fetcher:\n  max_retries: 2\n")
        monkeypatch.chdir(tmp_path)
        assert _find_config_file() == "relayreader.yaml"
