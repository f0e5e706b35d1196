# spritewrite_config.py
import json, argparse, logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple

import tomllib
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

CONFIG_BASENAME = "spritewrite"  # spritewrite.json, .toml, .yaml, .yml
CONFIG_SUFFIXES = (".json", ".toml", ".yaml", ".yml")

DEFAULT_FILES_PATH = "../frontend/dist"
DEFAULT_BIND = ":6789"
DEFAULT_TIMEOUT = 30.0

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# config-file keys that differ from the field names
_FILE_KEYS = {"serveFiles": "serve_files", "filesPath": "files_path", "logLevel": "log_level"}
_MULTIBAAS_FILE_KEYS = {"apiKey": "api_key", "hsmAddress": "hsm_address"}


class ConfigError(Exception):
    """Raised when configuration input cannot be used to start the server."""


def parse_bind(bind: str) -> Tuple[str, int]:
    """Split a Go-style bind address (":6789", "127.0.0.1:80", "[::1]:80") into host and port."""
    host, sep, port = bind.strip().rpartition(":")
    if not sep or not port.isdigit():
        raise ConfigError(f"invalid bind address: {bind!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    port_num = int(port)
    if port_num > 65535:
        raise ConfigError(f"invalid bind port: {bind!r}")
    return host or "0.0.0.0", port_num


class MultiBaasConfig(BaseModel):
    """MultiBaas deployment settings. Config files spell the keys apiKey and hsmAddress."""

    endpoint: str = ""
    api_key: str = ""
    hsm_address: str = ""
    timeout: float = Field(DEFAULT_TIMEOUT, gt=0)

    model_config = ConfigDict(frozen=True, extra="ignore")


class Config(BaseSettings):
    """Relay settings.

    Read from SW_* environment variables (SW_BIND, SW_SERVE_FILES,
    SW_MULTIBAAS__API_KEY, ...) and .env, on top of values handed in from a
    config file.
    """

    serve_files: bool = False
    files_path: str = DEFAULT_FILES_PATH
    bind: str = DEFAULT_BIND
    log_level: str = "INFO"
    multibaas: MultiBaasConfig = Field(default_factory=MultiBaasConfig)

    model_config = SettingsConfigDict(
        env_prefix="SW_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @field_validator("bind")
    def bind_has_port(cls, v: str) -> str:  # pylint: disable=E0213
        try:
            parse_bind(v)
        except ConfigError as e:
            raise ValueError(str(e)) from None
        return v

    @field_validator("log_level")
    def known_log_level(cls, v: str) -> str:  # pylint: disable=E0213
        level = v.strip().upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"unknown log level {v!r}")
        return level

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings):
        # Config-file values arrive as init kwargs and rank below the environment.
        return env_settings, dotenv_settings, init_settings


class CommandLineFlags(BaseModel):
    serve_files: Optional[bool] = None
    files_path: Optional[str] = None
    bind: Optional[str] = None


def find_config_file(directory: Optional[Path] = None) -> Optional[Path]:
    directory = Path(directory) if directory else Path.cwd()
    for suffix in CONFIG_SUFFIXES:
        candidate = directory / f"{CONFIG_BASENAME}{suffix}"
        if candidate.is_file():
            return candidate
    return None


def read_config_file(path: Path) -> Dict[str, Any]:
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}") from e
    try:
        if path.suffix == ".json":
            data = json.loads(raw)
        elif path.suffix == ".toml":
            data = tomllib.loads(raw.decode("utf-8"))
        elif path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(raw) or {}
        else:
            raise ConfigError(f"unsupported config file type: {path.suffix or path.name}")
    except (ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"malformed config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain an object at the top level")
    values = {_FILE_KEYS.get(key, key): value for key, value in data.items()}
    multibaas = values.pop("multibaas", None) or values.pop("multiBaas", None)
    if multibaas is not None:
        if not isinstance(multibaas, dict):
            raise ConfigError(f"'multibaas' in {path} must be an object")
        values["multibaas"] = {_MULTIBAAS_FILE_KEYS.get(key, key): value for key, value in multibaas.items()}
    return values


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="spritewrite", description="Sprite Write mint relay")
    parser.add_argument("-c", "--config", help="config file")
    parser.add_argument("--serveFiles", dest="serve_files", nargs="?", const="true", default=None,
                        help="enable serving frontend files")
    parser.add_argument("--filespath", dest="files_path", help="path to the web home directory")
    parser.add_argument("--bind", dest="bind", help="IP address and/or port to bind to")
    return parser


def _describe(err: ValidationError) -> str:
    return "; ".join(f"{'.'.join(str(p) for p in e['loc']) or 'config'}: {e['msg']}" for e in err.errors())


def load_config(argv: Optional[Sequence[str]] = None) -> Config:
    """Resolve configuration from defaults, config file, .env, SW_* env vars and flags.

    Later sources win. Any malformed input raises ConfigError.
    """
    args = _build_parser().parse_args(argv)

    if args.config:
        path = Path(args.config)
        if not path.is_file():
            raise ConfigError(f"config file not found: {path}")
    else:
        path = find_config_file()
    file_values = read_config_file(path) if path else {}

    try:
        cfg = Config(**file_values)
        flags = CommandLineFlags(serve_files=args.serve_files, files_path=args.files_path, bind=args.bind)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {_describe(e)}") from e
    if flags.bind is not None:
        parse_bind(flags.bind)

    if path:
        logger.info("Loaded config file '%s'", path)
    return cfg.model_copy(update=flags.model_dump(exclude_none=True))


def log_missing_settings(cfg: Config):
    for name in ("endpoint", "api_key", "hsm_address"):
        if not getattr(cfg.multibaas, name):
            logger.warning("MultiBaas %s is not configured", name)
