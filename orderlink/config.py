"""
Config system - Layered typed configuration with validation.

Sources are merged with precedence (later overrides earlier):

1. YAML / JSON config files
2. ``.env`` file (python-dotenv)
3. Environment variables (``OL_`` prefix, ``__`` separates nesting)
4. Manual overrides

The merged tree is turned into a :class:`GatewayConfig` of nested
dataclasses, with basic type checking on every field.
"""

from typing import Any, Dict, List, Optional, Type, get_type_hints, get_origin, get_args
from dataclasses import dataclass, field, fields, is_dataclass, MISSING
from pathlib import Path
import json
import os
import types

from dotenv import dotenv_values

from .faults import ConfigInvalidFault, ConfigMissingFault


# ============================================================================
# Typed sections
# ============================================================================

@dataclass
class AuthConfig:
    """Handshake token verification."""
    access_secret: str = ""
    admin_secret: str = ""
    admin_email: str = ""
    scheme: str = "Bearer"
    admin_flag: str = "x-iadmin-access"
    access_token_ttl: int = 30 * 24 * 3600
    admin_token_ttl: int = 7 * 24 * 3600
    leeway: int = 0


@dataclass
class DatabaseConfig:
    url: str = "sqlite:///orderlink.db"
    pool_size: int = 5
    echo: bool = False


@dataclass
class CacheConfig:
    """
    Cache backend selection.

    ``key_prefix`` is prepended to every key. It is empty by default so
    keys such as ``access_token:{id}`` are shared verbatim with other
    services writing to the same Redis.
    """
    backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = ""
    default_ttl: int = 300
    max_size: int = 10000


@dataclass
class SocketsConfig:
    chat_path: str = "/socket"
    location_path: str = "/location-socket"
    adapter: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    allowed_origins: Optional[List[str]] = None
    max_message_size: int = 64 * 1024


@dataclass
class ChatConfig:
    activation_ttl: int = 24 * 3600
    preview_length: int = 50


@dataclass
class LocationConfig:
    last_position_ttl: int = 3600


@dataclass
class RateLimitConfig:
    enabled: bool = True
    max_events: int = 60
    window_seconds: int = 60


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "info"
    reload: bool = False


@dataclass
class GatewayConfig:
    """Root configuration object for an OrderLink server."""
    debug: bool = False
    auth: AuthConfig = field(default_factory=AuthConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    sockets: SocketsConfig = field(default_factory=SocketsConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)
    location: LocationConfig = field(default_factory=LocationConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    def validate(self) -> "GatewayConfig":
        """Raise ConfigMissingFault for secrets required outside debug mode."""
        if self.debug:
            return self
        if not self.auth.access_secret:
            raise ConfigMissingFault("auth.access_secret")
        if not self.auth.admin_secret:
            raise ConfigMissingFault("auth.admin_secret")
        for key, value in (("cache.backend", self.cache.backend), ("sockets.adapter", self.sockets.adapter)):
            if value not in ("memory", "redis"):
                raise ConfigInvalidFault(key, f"unknown backend '{value}'")
        return self


# ============================================================================
# Loader
# ============================================================================

class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files > defaults
    """

    def __init__(self, env_prefix: str = "OL_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list[str]] = None,
        env_prefix: str = "OL_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources.

        Args:
            paths: Config file paths (``.yaml``, ``.yml`` or ``.json``)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for path in paths or []:
            loader._load_file(Path(path))

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_file(self, path: Path):
        if not path.exists():
            raise ConfigInvalidFault(str(path), "file does not exist")
        if path.suffix == ".json":
            self._load_json_file(path)
        elif path.suffix in (".yaml", ".yml"):
            self._load_yaml_file(path)
        else:
            raise ConfigInvalidFault(str(path), f"unsupported config format '{path.suffix}'")

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            data = json.load(f)
            self._merge_dict(self.config_data, data)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        import yaml
        with open(path) as f:
            data = yaml.safe_load(f)
            if data:
                self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str):
        """Load prefixed keys from a .env file."""
        if not Path(path).exists():
            return

        for key, value in dotenv_values(path).items():
            if key.startswith(self.env_prefix) and value is not None:
                self._set_nested(key, value)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert OL_AUTH__ACCESS_SECRET to {"auth": {"access_secret": ...}}."""
        key = key[len(self.env_prefix):]
        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes", "on"):
            return True
        if value.lower() in ("false", "no", "off"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current = self.config_data

        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def to_gateway_config(self) -> GatewayConfig:
        """Instantiate the typed configuration tree."""
        return self._instantiate_dataclass(GatewayConfig, self.config_data, prefix="")

    def _instantiate_dataclass(self, config_class: Type, data: dict, prefix: str):
        """Instantiate dataclass config with validation."""
        if not isinstance(data, dict):
            raise ConfigInvalidFault(prefix.rstrip(".") or "<root>", "expected a mapping")

        hints = get_type_hints(config_class)
        kwargs = {}

        for field_info in fields(config_class):
            name = field_info.name
            field_type = hints[name]
            key = f"{prefix}{name}"

            if name in data:
                value = data[name]

                if is_dataclass(field_type):
                    kwargs[name] = self._instantiate_dataclass(field_type, value, prefix=f"{key}.")
                    continue

                # Secrets and ids made only of digits arrive as numbers from env
                if field_type is str and isinstance(value, (int, float)) and not isinstance(value, bool):
                    value = str(value)

                if not self._check_type(value, field_type):
                    raise ConfigInvalidFault(
                        key,
                        f"expected {getattr(field_type, '__name__', field_type)}, got {type(value).__name__}",
                    )

                kwargs[name] = value
            elif field_info.default is not MISSING:
                kwargs[name] = field_info.default
            elif field_info.default_factory is not MISSING:
                kwargs[name] = field_info.default_factory()
            else:
                raise ConfigMissingFault(key)

        return config_class(**kwargs)

    def _check_type(self, value: Any, expected_type: Type) -> bool:
        """Basic type checking."""
        origin = get_origin(expected_type)
        if origin is types.UnionType or str(origin) == "typing.Union":
            args = get_args(expected_type)
            if value is None:
                return True
            if args:
                return self._check_type(value, args[0])

        if origin:
            return isinstance(value, origin)

        if expected_type is float and isinstance(value, int):
            return True

        try:
            return isinstance(value, expected_type)
        except TypeError:
            return True

    def to_dict(self) -> dict:
        return dict(self.config_data)


def load_config(
    paths: Optional[list[str]] = None,
    env_file: Optional[str] = ".env",
    overrides: Optional[Dict[str, Any]] = None,
) -> GatewayConfig:
    """Shortcut: load every source and return a validated GatewayConfig."""
    loader = ConfigLoader.load(paths=paths, env_file=env_file, overrides=overrides)
    return loader.to_gateway_config().validate()
