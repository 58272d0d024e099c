"""Application errors carrying an HTTP status code and an optional cause."""

from __future__ import annotations

import traceback
from datetime import datetime
from http import HTTPStatus
from typing import Any

_STACK_DEPTH = 32


class ChatlogError(Exception):
    """An error with a message, an optional cause and an HTTP status code."""

    def __init__(
        self,
        message: str,
        cause: Any = None,
        code: int = HTTPStatus.INTERNAL_SERVER_ERROR,
        stack: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.code = int(code)
        self.stack: list[str] = list(stack) if stack else []
        if isinstance(cause, BaseException):
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message

    def __repr__(self) -> str:
        return f"ChatlogError(message={self.message!r}, code={self.code}, cause={self.cause!r})"

    def with_stack(self) -> "ChatlogError":
        """Record the caller's stack, innermost frame first, and return self."""
        frames = traceback.extract_stack()[:-1][-_STACK_DEPTH:]
        self.stack = [
            f"{frame.filename}:{frame.lineno} {frame.name}"
            for frame in reversed(frames)
            if not frame.filename.startswith("<")
        ]
        return self


def new(cause: Any, code: int, message: str) -> ChatlogError:
    """Create an error from a cause, a status code and a message."""
    return ChatlogError(message, cause=cause, code=code)


def newf(cause: Any, code: int, fmt: str, *args: Any) -> ChatlogError:
    """Create an error whose message is ``fmt % args``."""
    message = fmt % args if args else fmt
    return ChatlogError(message, cause=cause, code=code)


def wrap(err: Any, message: str, code: int) -> ChatlogError | None:
    """Give ``err`` a new message; an existing ChatlogError keeps its code, cause and stack."""
    if err is None:
        return None
    if isinstance(err, ChatlogError):
        return ChatlogError(message, cause=err.cause, code=err.code, stack=err.stack)
    return new(err, code, message)


def _unwrap(err: Any) -> Any:
    if isinstance(err, ChatlogError):
        return err.cause
    return getattr(err, "__cause__", None)


def _chain(err: Any):
    while err is not None:
        yield err
        err = _unwrap(err)


def get_code(err: Any) -> int:
    """Status code for ``err``: 200 for none, the first ChatlogError's code in the chain, else 500."""
    if err is None:
        return int(HTTPStatus.OK)
    for item in _chain(err):
        if isinstance(item, ChatlogError):
            return item.code
    return int(HTTPStatus.INTERNAL_SERVER_ERROR)


def root_cause(err: Any) -> Any:
    """Follow the cause chain down to its last error."""
    last = err
    for item in _chain(err):
        last = item
    return last


def is_error(err: Any, target: Any) -> bool:
    """True if ``target`` is ``err`` or anywhere in its cause chain."""
    return any(item is target for item in _chain(err))


def error_response(err: Any) -> tuple[int, str]:
    """HTTP status and JSON body text for an error returned by a handler."""
    if isinstance(err, ChatlogError):
        return err.code, str(err)
    return int(HTTPStatus.INTERNAL_SERVER_ERROR), str(err)


def mcp_tool_error(err: Any) -> dict[str, Any]:
    """An MCP tool-call result reporting ``err``."""
    return {
        "content": [{"type": "text", "text": str(err)}],
        "isError": True,
    }


# HTTP errors

def invalid_arg(arg: str) -> ChatlogError:
    return newf(None, HTTPStatus.BAD_REQUEST, "invalid argument: %s", arg)


def http_shut_down(cause: Any) -> ChatlogError:
    return newf(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "http server shut down")


# OS errors

def open_file_failed(path: str, cause: Any) -> ChatlogError:
    return newf(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "failed to open file: %s", path).with_stack()


def stat_file_failed(path: str, cause: Any) -> ChatlogError:
    return newf(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "failed to stat file: %s", path).with_stack()


def read_file_failed(path: str, cause: Any) -> ChatlogError:
    return newf(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "failed to read file: %s", path).with_stack()


def incomplete_read(cause: Any) -> ChatlogError:
    return new(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "incomplete header read during decryption").with_stack()


def write_output_failed(cause: Any) -> ChatlogError:
    return new(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "failed to write output").with_stack()


# WeChat errors

ERR_ALREADY_DECRYPTED = new(None, HTTPStatus.BAD_REQUEST, "database file is already decrypted")
ERR_DECRYPT_HASH_VERIFICATION_FAILED = new(None, HTTPStatus.BAD_REQUEST, "hash verification failed during decryption")
ERR_DECRYPT_INCORRECT_KEY = new(None, HTTPStatus.BAD_REQUEST, "incorrect decryption key")
ERR_DECRYPT_OPERATION_CANCELED = new(None, HTTPStatus.BAD_REQUEST, "decryption operation was canceled")
ERR_NO_MEMORY_REGIONS_FOUND = new(None, HTTPStatus.BAD_REQUEST, "no memory regions found")
ERR_READ_MEMORY_TIMEOUT = new(None, HTTPStatus.INTERNAL_SERVER_ERROR, "read memory timeout")
ERR_WECHAT_OFFLINE = new(None, HTTPStatus.BAD_REQUEST, "WeChat is offline")
ERR_SIP_ENABLED = new(None, HTTPStatus.BAD_REQUEST, "SIP is enabled")
ERR_VALIDATOR_NOT_SET = new(None, HTTPStatus.BAD_REQUEST, "validator not set")
ERR_NO_VALID_KEY = new(None, HTTPStatus.BAD_REQUEST, "no valid key found")
ERR_WECHAT_DLL_NOT_FOUND = new(None, HTTPStatus.BAD_REQUEST, "WeChatWin.dll module not found")


def platform_unsupported(platform: str, version: int) -> ChatlogError:
    return newf(None, HTTPStatus.BAD_REQUEST, "unsupported platform: %s v%d", platform, version).with_stack()


def decrypt_create_cipher_failed(cause: Any) -> ChatlogError:
    return new(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "failed to create cipher").with_stack()


def decode_key_failed(cause: Any) -> ChatlogError:
    return new(cause, HTTPStatus.BAD_REQUEST, "failed to decode hex key").with_stack()


def create_pipe_file_failed(cause: Any) -> ChatlogError:
    return new(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "failed to create pipe file").with_stack()


def open_pipe_file_failed(cause: Any) -> ChatlogError:
    return new(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "failed to open pipe file").with_stack()


def read_pipe_file_failed(cause: Any) -> ChatlogError:
    return new(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "failed to read from pipe file").with_stack()


def run_cmd_failed(cause: Any) -> ChatlogError:
    return new(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "failed to run command").with_stack()


def read_memory_failed(cause: Any) -> ChatlogError:
    return new(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "failed to read memory").with_stack()


def open_process_failed(cause: Any) -> ChatlogError:
    return new(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "failed to open process").with_stack()


def wechat_account_not_found(name: str) -> ChatlogError:
    return newf(None, HTTPStatus.BAD_REQUEST, "WeChat account not found: %s", name).with_stack()


def wechat_account_not_online(name: str) -> ChatlogError:
    return newf(None, HTTPStatus.BAD_REQUEST, "WeChat account is not online: %s", name).with_stack()


def refresh_process_status_failed(cause: Any) -> ChatlogError:
    return new(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "failed to refresh process status").with_stack()


# Database errors

ERR_TALKER_EMPTY = new(None, HTTPStatus.BAD_REQUEST, "talker empty").with_stack()
ERR_KEY_EMPTY = new(None, HTTPStatus.BAD_REQUEST, "key empty").with_stack()
ERR_MEDIA_NOT_FOUND = new(None, HTTPStatus.NOT_FOUND, "media not found").with_stack()
ERR_KEY_LENGTH_MUST_32 = new(None, HTTPStatus.BAD_REQUEST, "key length must be 32 bytes").with_stack()


def db_file_not_found(path: str, pattern: str, cause: Any) -> ChatlogError:
    return newf(cause, HTTPStatus.NOT_FOUND, "db file not found %s: %s", path, pattern).with_stack()


def db_connect_failed(path: str, cause: Any) -> ChatlogError:
    return newf(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "db connect failed: %s", path).with_stack()


def db_init_failed(cause: Any) -> ChatlogError:
    return new(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "db init failed").with_stack()


def talker_not_found(talker: str) -> ChatlogError:
    return newf(None, HTTPStatus.NOT_FOUND, "talker not found: %s", talker).with_stack()


def db_close_failed(cause: Any) -> ChatlogError:
    return new(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "db close failed").with_stack()


def query_failed(query: str, cause: Any) -> ChatlogError:
    return newf(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "query failed: %s", query).with_stack()


def scan_row_failed(cause: Any) -> ChatlogError:
    return new(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "scan row failed").with_stack()


def time_range_not_found(start: datetime, end: datetime) -> ChatlogError:
    return newf(None, HTTPStatus.NOT_FOUND, "time range not found: %s - %s", start, end).with_stack()


def media_type_unsupported(media_type: str) -> ChatlogError:
    return newf(None, HTTPStatus.BAD_REQUEST, "unsupported media type: %s", media_type).with_stack()


def chat_room_not_found(key: str) -> ChatlogError:
    return newf(None, HTTPStatus.NOT_FOUND, "chat room not found: %s", key).with_stack()


def contact_not_found(key: str) -> ChatlogError:
    return newf(None, HTTPStatus.NOT_FOUND, "contact not found: %s", key).with_stack()


def init_cache_failed(cause: Any) -> ChatlogError:
    return new(cause, HTTPStatus.INTERNAL_SERVER_ERROR, "init cache failed").with_stack()


def file_group_not_found(name: str) -> ChatlogError:
    return newf(None, HTTPStatus.NOT_FOUND, "file group not found: %s", name).with_stack()