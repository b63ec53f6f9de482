import importlib
from typing import Any

import pytest


def import_config() -> Any:
	return importlib.import_module("statefulset_affinity_injector.config")


def test_defaults(monkeypatch: pytest.MonkeyPatch):
	# Clear env to ensure defaults are used
	for k in [
		"ANNOTATION_DOMAIN",
		"LOG_LEVEL",
		"PORT",
		"ENABLE_TLS",
		"TLS_CERT_FILE",
		"TLS_KEY_FILE",
		"GRACEFUL_SHUTDOWN_SECONDS",
	]:
		monkeypatch.delenv(k, raising=False)

	conf = import_config()
	settings = conf.load()
	assert settings.annotation_domain == "hsiam261.github.io"
	assert settings.port == 8080
	assert settings.enable_tls is False
	assert settings.cert_file == "./secrets/certs/tls.crt"
	assert settings.key_file == "./secrets/certs/tls.key"
	assert settings.graceful_shutdown_seconds == 5
	assert settings.enabled_annotation == "statefulset-affinity-injector-webhook.hsiam261.github.io/enabled"
	assert settings.config_annotation == "statefulset-affinity-injector-webhook.hsiam261.github.io/config"


def test_env_overrides(monkeypatch: pytest.MonkeyPatch):
	monkeypatch.setenv("ANNOTATION_DOMAIN", "example.com")
	monkeypatch.setenv("LOG_LEVEL", "debug")  # lower-case acceptable
	monkeypatch.setenv("PORT", "9443")
	monkeypatch.setenv("ENABLE_TLS", "true")
	monkeypatch.setenv("TLS_CERT_FILE", "/tls/tls.crt")
	monkeypatch.setenv("TLS_KEY_FILE", "/tls/tls.key")
	monkeypatch.setenv("GRACEFUL_SHUTDOWN_SECONDS", "12")

	conf = import_config()
	settings = conf.load()
	assert settings.log_level == "DEBUG"
	assert settings.port == 9443
	assert settings.enable_tls is True
	assert settings.cert_file == "/tls/tls.crt"
	assert settings.key_file == "/tls/tls.key"
	assert settings.graceful_shutdown_seconds == 12
	assert settings.enabled_annotation == "statefulset-affinity-injector-webhook.example.com/enabled"
	assert settings.config_annotation == "statefulset-affinity-injector-webhook.example.com/config"


def test_tls_changes_default_port(monkeypatch: pytest.MonkeyPatch):
	monkeypatch.delenv("PORT", raising=False)
	monkeypatch.setenv("ENABLE_TLS", "1")

	settings = import_config().load()
	assert settings.enable_tls is True
	assert settings.port == 8443


def test_invalid_values_fallback(monkeypatch: pytest.MonkeyPatch):
	monkeypatch.delenv("ENABLE_TLS", raising=False)
	monkeypatch.setenv("PORT", "not-int")
	monkeypatch.setenv("GRACEFUL_SHUTDOWN_SECONDS", "-3")

	conf = import_config()
	settings = conf.load()
	assert settings.port == 8080
	assert settings.graceful_shutdown_seconds == 0
