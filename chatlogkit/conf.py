"""Configuration files for the interactive tool and the server."""

from __future__ import annotations

import copy
import json
import logging
import os
import threading
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from typing import Any, Iterable, Mapping

logger = logging.getLogger(__name__)

APP_NAME = "chatlog"
SERVER_CONFIG_NAME = "chatlog-server"
ENV_PREFIX = "CHATLOG"
ENV_CONFIG_DIR = "CHATLOG_DIR"
DEFAULT_HTTP_ADDR = "0.0.0.0:5030"

DATA_DIR_CONFIGS = frozenset({"type", "platform", "version", "full_version", "data_key", "img_key"})

_TRUE = {"1", "t", "true"}
_FALSE = {"", "0", "f", "false"}


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return value if isinstance(value, str) else str(value)


def _as_int(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, (bool, int)):
        return int(value)
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            return int(text, 0)
        except ValueError:
            raise ValueError(f"cannot parse {value!r} as an integer") from None
    raise ValueError(f"cannot parse {value!r} as an integer")


def _as_bool(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    raise ValueError(f"cannot parse {value!r} as a boolean")


def _as_map(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"expected a mapping, got {value!r}")
    return value


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"expected a list, got {value!r}")
    return value


@dataclass
class WebhookItem:
    type: str = ""
    url: str = ""
    talker: str = ""
    sender: str = ""
    keyword: str = ""
    disabled: bool = False


@dataclass
class Webhook:
    host: str = ""
    delay_ms: int = 0
    items: list[WebhookItem] = field(default_factory=list)


def _webhook_item(data: Any) -> WebhookItem:
    d = _as_map(data)
    return WebhookItem(
        type=_as_str(d.get("type")),
        url=_as_str(d.get("url")),
        talker=_as_str(d.get("talker")),
        sender=_as_str(d.get("sender")),
        keyword=_as_str(d.get("keyword")),
        disabled=_as_bool(d.get("disabled")),
    )


def _webhook(data: Any) -> Webhook | None:
    if data is None:
        return None
    d = _as_map(data)
    return Webhook(
        host=_as_str(d.get("host")),
        delay_ms=_as_int(d.get("delay_ms")),
        items=[_webhook_item(item) for item in _as_list(d.get("items"))],
    )


@dataclass
class File:
    path: str = ""
    modified_time: int = 0
    size: int = 0


@dataclass
class ProcessConfig:
    """Settings remembered for one account."""

    type: str = ""
    account: str = ""
    platform: str = ""
    version: int = 0
    full_version: str = ""
    data_dir: str = ""
    data_key: str = ""
    img_key: str = ""
    work_dir: str = ""
    http_enabled: bool = False
    http_addr: str = ""
    last_time: int = 0
    files: list[File] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "ProcessConfig":
        d = _as_map(data)
        return cls(
            type=_as_str(d.get("type")),
            account=_as_str(d.get("account")),
            platform=_as_str(d.get("platform")),
            version=_as_int(d.get("version")),
            full_version=_as_str(d.get("full_version")),
            data_dir=_as_str(d.get("data_dir")),
            data_key=_as_str(d.get("data_key")),
            img_key=_as_str(d.get("img_key")),
            work_dir=_as_str(d.get("work_dir")),
            http_enabled=_as_bool(d.get("http_enabled")),
            http_addr=_as_str(d.get("http_addr")),
            last_time=_as_int(d.get("last_time")),
            files=[
                File(
                    path=_as_str(_as_map(f).get("path")),
                    modified_time=_as_int(_as_map(f).get("modified_time")),
                    size=_as_int(_as_map(f).get("size")),
                )
                for f in _as_list(d.get("files"))
            ],
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SupplierMapping:
    """Talker to supplier-id mappings of one account."""

    account: str = ""
    mappings: dict[str, str] = field(default_factory=dict)


@dataclass
class PostgresConfig:
    url: str = ""


@dataclass
class TUIConfig:
    """Settings of the interactive tool (``chatlog.json``)."""

    config_dir: str = ""
    last_account: str = ""
    history: list[ProcessConfig] = field(default_factory=list)
    webhook: Webhook | None = None
    postgres: PostgresConfig | None = None
    supplier_mappings: list[SupplierMapping] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> "TUIConfig":
        d = _as_map(data)
        postgres = d.get("postgres")
        return cls(
            last_account=_as_str(d.get("last_account")),
            history=[ProcessConfig.from_dict(item) for item in _as_list(d.get("history"))],
            webhook=_webhook(d.get("webhook")),
            postgres=None if postgres is None else PostgresConfig(url=_as_str(_as_map(postgres).get("url"))),
            supplier_mappings=[
                SupplierMapping(
                    account=_as_str(_as_map(sm).get("account")),
                    mappings={
                        _as_str(k): _as_str(v) for k, v in _as_map(_as_map(sm).get("mappings")).items()
                    },
                )
                for sm in _as_list(d.get("supplier_mappings"))
            ],
        )

    def parse_history(self) -> dict[str, ProcessConfig]:
        """History keyed by account; later entries win."""
        return {pc.account: pc for pc in self.history}

    def get_supplier_mappings(self, account: str) -> dict[str, str] | None:
        for sm in self.supplier_mappings:
            if sm.account == account:
                return sm.mappings
        return None


@dataclass
class ServerConfig:
    """Settings of the standalone server."""

    type: str = ""
    platform: str = ""
    version: int = 0
    full_version: str = ""
    data_dir: str = ""
    data_key: str = ""
    img_key: str = ""
    work_dir: str = ""
    http_addr: str = ""
    auto_decrypt: bool = False
    webhook: Webhook | None = None

    @classmethod
    def from_dict(cls, data: Any) -> "ServerConfig":
        d = _as_map(data)
        return cls(
            type=_as_str(d.get("type")),
            platform=_as_str(d.get("platform")),
            version=_as_int(d.get("version")),
            full_version=_as_str(d.get("full_version")),
            data_dir=_as_str(d.get("data_dir")),
            data_key=_as_str(d.get("data_key")),
            img_key=_as_str(d.get("img_key")),
            work_dir=_as_str(d.get("work_dir")),
            http_addr=_as_str(d.get("http_addr")),
            auto_decrypt=_as_bool(d.get("auto_decrypt")),
            webhook=_webhook(d.get("webhook")),
        )

    def get_http_addr(self) -> str:
        """The listen address, falling back to the default."""
        if not self.http_addr:
            self.http_addr = DEFAULT_HTTP_ADDR
        return self.http_addr


def _plain(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    return value


def _set_path(data: dict[str, Any], key: str, value: Any) -> None:
    parts = key.split(".")
    node = data
    for part in parts[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[parts[-1]] = value


def _deep_merge(dst: dict[str, Any], src: Mapping[str, Any]) -> None:
    for key, value in src.items():
        if isinstance(value, dict) and isinstance(dst.get(key), dict):
            _deep_merge(dst[key], value)
        else:
            dst[key] = value


class ConfigStore:
    """A JSON settings file with in-memory overrides and environment variables."""

    def __init__(
        self,
        app_name: str,
        path: str = "",
        name: str = "",
        env_prefix: str = "",
        writable: bool = False,
        env_keys: Iterable[str] = (),
    ) -> None:
        self.app_name = app_name
        self.path = path or os.path.join(os.path.expanduser("~"), f".{app_name}")
        self.name = name or app_name
        self.env_prefix = env_prefix
        self.writable = writable
        self._env_keys = tuple(env_keys)
        self._overrides: dict[str, Any] = {}
        self._lock = threading.RLock()

    def file_path(self) -> str:
        return os.path.join(self.path, f"{self.name}.json")

    def _read_file(self) -> dict[str, Any]:
        try:
            with open(self.file_path(), encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.file_path()}: expected a JSON object")
        return data

    def load(self) -> dict[str, Any]:
        """Settings from the file, then the environment, then values set in memory."""
        with self._lock:
            data = self._read_file()
            if self.env_prefix:
                for key in set(data) | set(self._env_keys):
                    env_value = os.environ.get(f"{self.env_prefix}_{key.upper()}")
                    if env_value:
                        data[key] = env_value
            _deep_merge(data, copy.deepcopy(self._overrides))
            return data

    def set(self, key: str, value: Any) -> None:
        """Set a dotted key; a writable store also saves it to its file."""
        value = _plain(value)
        with self._lock:
            _set_path(self._overrides, key, copy.deepcopy(value))
            if not self.writable:
                return
            data = self._read_file()
            _set_path(data, key, value)
            os.makedirs(self.path, exist_ok=True)
            target = self.file_path()
            temp = target + ".tmp"
            with open(temp, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2)
            os.replace(temp, target)


def load_tui_config(config_path: str = "") -> tuple[TUIConfig, ConfigStore]:
    """Load ``chatlog.json`` from ``config_path`` or ``$CHATLOG_DIR``."""
    if not config_path:
        config_path = os.environ.get(ENV_CONFIG_DIR, "")
    store = ConfigStore(APP_NAME, config_path, "", "", True)
    conf = TUIConfig.from_dict(store.load())
    conf.config_dir = store.path
    logger.info("tui config: %s", json.dumps(asdict(conf), ensure_ascii=False))
    return conf, store


def _merge_into(conf: ServerConfig, data: Mapping[str, Any]) -> None:
    fresh = ServerConfig.from_dict(dict(data))
    for f in fields(ServerConfig):
        if f.name in data:
            setattr(conf, f.name, getattr(fresh, f.name))


def load_service_config(
    config_path: str = "", cmd_conf: Mapping[str, Any] | None = None
) -> tuple[ServerConfig, ConfigStore]:
    """Load server settings: command options, file, TUI history and the data dir's chatlog.json."""
    if not config_path:
        config_path = os.environ.get(ENV_CONFIG_DIR, "")
    store = ConfigStore(
        APP_NAME,
        config_path,
        SERVER_CONFIG_NAME,
        ENV_PREFIX,
        False,
        env_keys=[f.name for f in fields(ServerConfig)],
    )
    for key, value in (cmd_conf or {}).items():
        store.set(key, value)

    conf = ServerConfig.from_dict(store.load())

    if not conf.data_dir:
        try:
            tui_conf, _ = load_tui_config(config_path)
        except (OSError, ValueError):
            tui_conf = None
        if tui_conf is not None:
            history = tui_conf.parse_history()
            account = tui_conf.last_account
            if not account and tui_conf.history:
                account = tui_conf.history[0].account
            pc = history.get(account)
            if pc is not None and pc.data_dir:
                conf.type = pc.type
                conf.platform = pc.platform
                conf.version = pc.version
                conf.full_version = pc.full_version
                conf.data_dir = pc.data_dir
                conf.data_key = pc.data_key
                conf.img_key = pc.img_key
                conf.work_dir = pc.work_dir
                logger.info("using account %r from TUI config", account)

    if conf.data_dir and not conf.data_key:
        try:
            with open(os.path.join(conf.data_dir, "chatlog.json"), encoding="utf-8") as fh:
                pconf = json.load(fh)
        except (OSError, ValueError):
            pconf = None
        if isinstance(pconf, dict):
            for key, value in pconf.items():
                if key in DATA_DIR_CONFIGS:
                    store.set(key, value)
        _merge_into(conf, store.load())

    logger.info("server config: %s", json.dumps(asdict(conf), ensure_ascii=False))
    return conf, store