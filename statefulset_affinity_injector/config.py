import os
from dataclasses import dataclass

ANNOTATION_PREFIX = "statefulset-affinity-injector-webhook"


def _get_env(name: str, default: str) -> str:
    val = os.getenv(name)
    return val if val is not None and val != "" else default


def _parse_int(name: str, default: int) -> int:
    val = _get_env(name, str(default))
    try:
        return int(val)
    except ValueError:
        return default


def _parse_bool(name: str, default: bool) -> bool:
    val = _get_env(name, "true" if default else "false")
    return val.lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    # Behavior
    annotation_domain: str = "hsiam261.github.io"
    log_level: str = "INFO"

    # Server
    port: int = 8080
    enable_tls: bool = False
    cert_file: str = "./secrets/certs/tls.crt"
    key_file: str = "./secrets/certs/tls.key"
    graceful_shutdown_seconds: int = 5

    @property
    def enabled_annotation(self) -> str:
        return f"{ANNOTATION_PREFIX}.{self.annotation_domain}/enabled"

    @property
    def config_annotation(self) -> str:
        return f"{ANNOTATION_PREFIX}.{self.annotation_domain}/config"


def load() -> Settings:
    enable_tls = _parse_bool("ENABLE_TLS", False)
    # TLS listens on 8443 unless PORT says otherwise
    default_port = 8443 if enable_tls else 8080
    return Settings(
        annotation_domain=_get_env("ANNOTATION_DOMAIN", "hsiam261.github.io"),
        log_level=_get_env("LOG_LEVEL", "INFO").upper(),
        port=_parse_int("PORT", default_port),
        enable_tls=enable_tls,
        cert_file=_get_env("TLS_CERT_FILE", "./secrets/certs/tls.crt"),
        key_file=_get_env("TLS_KEY_FILE", "./secrets/certs/tls.key"),
        graceful_shutdown_seconds=max(
            0, _parse_int("GRACEFUL_SHUTDOWN_SECONDS", 5)
        ),
    )


# Singleton settings for app usage (optional in tests)
settings: Settings = load()
