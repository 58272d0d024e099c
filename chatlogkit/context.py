"""Runtime state of the interactive tool: the selected account and its settings."""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import asdict
from datetime import datetime, timedelta
from typing import Any

from .conf import (
    ConfigStore,
    ProcessConfig,
    SupplierMapping,
    TUIConfig,
    Webhook,
    load_tui_config,
)

logger = logging.getLogger(__name__)

DEFAULT_HTTP_ADDR = "127.0.0.1:5030"

_UNITS = ("B", "KB", "MB", "GB", "TB")


def _dir_usage(path: str) -> str:
    """Total size of the files below ``path`` as a short human-readable string."""
    total = 0
    for root, _dirs, files in os.walk(path):
        for name in files:
            try:
                total += os.path.getsize(os.path.join(root, name))
            except OSError:
                continue
    size = float(total)
    for unit in _UNITS:
        if size < 1024 or unit == _UNITS[-1]:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.2f} {unit}"
        size /= 1024
    return f"{total} B"


class Context:
    """Settings and status of the account the tool is working on.

    A running instance passed to :meth:`switch_current` is any object with the
    attributes ``name``, ``platform``, ``version``, ``full_version``, ``pid``,
    ``exe_path``, ``status``, ``key``, ``img_key`` and ``data_dir``.
    """

    def __init__(self, config_path: str = "") -> None:
        conf, store = load_tui_config(config_path)
        self._conf: TUIConfig = conf
        self._store: ConfigStore = store
        self._lock = threading.RLock()

        self.history: dict[str, ProcessConfig] = {}

        self.account = ""
        self.platform = ""
        self.version = 0
        self.full_version = ""
        self.data_dir = ""
        self.data_key = ""
        self.data_usage = ""
        self.img_key = ""

        self.work_dir = ""
        self.work_usage = ""

        self.http_enabled = False
        self.http_addr = ""

        self.auto_decrypt = False
        self.last_session: datetime | None = None

        self.auto_sync_enabled = False
        self.auto_sync_interval = timedelta(0)

        self.current: Any = None
        self.pid = 0
        self.exe_path = ""
        self.status = ""

        self.wechat_instances: list[Any] = []

        self.history = self._conf.parse_history()
        self.switch_history(self._conf.last_account)
        self.refresh()

    @property
    def webhook(self) -> Webhook | None:
        return self._conf.webhook

    @property
    def postgres_url(self) -> str:
        if self._conf.postgres is None:
            return ""
        return self._conf.postgres.url

    def switch_history(self, account: str) -> None:
        """Load the remembered settings of ``account``, or clear them if unknown."""
        with self._lock:
            self.current = None
            self.pid = 0
            self.exe_path = ""
            self.status = ""
            pc = self.history.get(account)
            if pc is None:
                pc = ProcessConfig()
            self.account = pc.account
            self.platform = pc.platform
            self.version = pc.version
            self.full_version = pc.full_version
            self.data_key = pc.data_key
            self.img_key = pc.img_key
            self.data_dir = pc.data_dir
            self.work_dir = pc.work_dir
            self.http_enabled = pc.http_enabled
            self.http_addr = pc.http_addr

    def switch_current(self, info: Any) -> None:
        """Select a running instance, starting from its remembered settings."""
        self.switch_history(info.name)
        with self._lock:
            self.current = info
            self.refresh()

    def refresh(self) -> None:
        """Copy the current instance's details and start measuring directory sizes."""
        with self._lock:
            cur = self.current
            if cur is not None:
                self.account = cur.name
                self.platform = cur.platform
                self.version = cur.version
                self.full_version = cur.full_version
                self.pid = int(cur.pid)
                self.exe_path = cur.exe_path
                self.status = cur.status
                if cur.key and cur.key != self.data_key:
                    self.data_key = cur.key
                if cur.img_key and cur.img_key != self.img_key:
                    self.img_key = cur.img_key
                if cur.data_dir and cur.data_dir != self.data_dir:
                    self.data_dir = cur.data_dir
            if not self.data_usage and self.data_dir:
                self._measure("data_usage", self.data_dir)
            if not self.work_usage and self.work_dir:
                self._measure("work_usage", self.work_dir)

    def _measure(self, attr: str, path: str) -> None:
        def run() -> None:
            setattr(self, attr, _dir_usage(path))

        threading.Thread(target=run, name=f"usage-{attr}", daemon=True).start()

    def get_http_addr(self) -> str:
        """The listen address, falling back to the default."""
        if not self.http_addr:
            self.http_addr = DEFAULT_HTTP_ADDR
        return self.http_addr

    def set_http_enabled(self, enabled: bool) -> None:
        with self._lock:
            if self.http_enabled == enabled:
                return
            self.http_enabled = enabled
            self.update_config()

    def set_http_addr(self, addr: str) -> None:
        with self._lock:
            if self.http_addr == addr:
                return
            self.http_addr = addr
            self.update_config()

    def set_work_dir(self, directory: str) -> None:
        with self._lock:
            if self.work_dir == directory:
                return
            self.work_dir = directory
            self.update_config()
            self.refresh()

    def set_data_dir(self, directory: str) -> None:
        with self._lock:
            if self.data_dir == directory:
                return
            self.data_dir = directory
            self.update_config()
            self.refresh()

    def set_img_key(self, key: str) -> None:
        with self._lock:
            if self.img_key == key:
                return
            self.img_key = key
            self.update_config()

    def set_auto_decrypt(self, enabled: bool) -> None:
        with self._lock:
            if self.auto_decrypt == enabled:
                return
            self.auto_decrypt = enabled
            self.update_config()

    def set_auto_sync(self, enabled: bool, interval: timedelta) -> None:
        with self._lock:
            self.auto_sync_enabled = enabled
            self.auto_sync_interval = interval

    def get_supplier_mappings(self) -> dict[str, str] | None:
        """Talker to supplier-id mappings of the current account."""
        with self._lock:
            return self._conf.get_supplier_mappings(self.account)

    def _save_supplier_mappings(self) -> None:
        try:
            self._store.set("supplier_mappings", self._conf.supplier_mappings)
        except (OSError, ValueError, TypeError):
            logger.exception("set supplier_mappings failed")

    def set_supplier_mapping(self, talker: str, supplier_id: str) -> None:
        """Map ``talker`` to ``supplier_id`` for the current account and save it."""
        with self._lock:
            for sm in self._conf.supplier_mappings:
                if sm.account == self.account:
                    if sm.mappings is None:
                        sm.mappings = {}
                    sm.mappings[talker] = supplier_id
                    break
            else:
                self._conf.supplier_mappings.append(
                    SupplierMapping(account=self.account, mappings={talker: supplier_id})
                )
            self._save_supplier_mappings()

    def remove_supplier_mapping(self, talker: str) -> None:
        """Drop the mapping of ``talker`` for the current account and save it."""
        with self._lock:
            for sm in self._conf.supplier_mappings:
                if sm.account == self.account:
                    if sm.mappings:
                        sm.mappings.pop(talker, None)
                    break
            self._save_supplier_mappings()

    def update_config(self) -> None:
        """Save the current account into the history and its data directory."""
        with self._lock:
            pconf = ProcessConfig(
                type="wechat",
                account=self.account,
                platform=self.platform,
                version=self.version,
                full_version=self.full_version,
                data_dir=self.data_dir,
                data_key=self.data_key,
                img_key=self.img_key,
                work_dir=self.work_dir,
                http_enabled=self.http_enabled,
                http_addr=self.http_addr,
            )

            history = self._conf.history
            for i, pc in enumerate(history):
                if pc.account == self.account:
                    history[i] = pconf
                    break
            else:
                history.append(pconf)

            try:
                self._store.set("last_account", self.account)
            except (OSError, ValueError, TypeError):
                logger.exception("set last_account failed")
                return
            try:
                self._store.set("history", history)
            except (OSError, ValueError, TypeError):
                logger.exception("set history failed")
                return

            if pconf.data_dir:
                target = os.path.join(pconf.data_dir, "chatlog.json")
                try:
                    with open(target, "w", encoding="utf-8") as fh:
                        json.dump(asdict(pconf), fh, ensure_ascii=False)
                except OSError:
                    logger.exception("save chatlog.json failed")