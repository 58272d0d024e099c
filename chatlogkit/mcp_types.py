"""MCP protocol payloads: initialize, prompts, resources and tools."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any

from .jsonrpc import ERR_INVALID_PARAMS, RpcError

METHOD_INITIALIZE = "initialize"
METHOD_PING = "ping"
PROTOCOL_VERSION = "2024-11-05"

METHOD_PROMPTS_LIST = "prompts/list"
METHOD_PROMPTS_GET = "prompts/get"

METHOD_RESOURCES_LIST = "resources/list"
METHOD_RESOURCES_TEMPLATE_LIST = "resources/templates/list"
METHOD_RESOURCES_READ = "resources/read"
METHOD_RESOURCES_SUBSCRIBE = "resources/subscribe"
METHOD_RESOURCES_UNSUBSCRIBE = "resources/unsubscribe"

NOTIFICATION_RESOURCES_LIST_CHANGED = "notifications/resources/list_changed"
NOTIFICATION_RESOURCES_UPDATED = "notifications/resources/updated"

METHOD_TOOLS_LIST = "tools/list"
METHOD_TOOLS_CALL = "tools/call"

_DEFAULT_CAPABILITIES: dict[str, Any] = {
    "experimental": {},
    "prompts": {"listChanged": False},
    "resources": {"subscribe": False, "listChanged": False},
    "tools": {"listChanged": False},
}


def default_capabilities() -> dict[str, Any]:
    """A fresh copy of the capabilities the server advertises."""
    return copy.deepcopy(_DEFAULT_CAPABILITIES)


def _json(name: str, *, omitempty: bool = False, **kwargs: Any) -> Any:
    return field(metadata={"json": name, "omitempty": omitempty}, **kwargs)


def to_dict(obj: Any) -> Any:
    """Convert a payload into JSON-ready data using the wire field names."""
    if is_dataclass(obj) and not isinstance(obj, type):
        out: dict[str, Any] = {}
        for f in fields(obj):
            value = getattr(obj, f.name)
            name = f.metadata.get("json", f.name)
            if f.metadata.get("omitempty") and not is_dataclass(value) and not value:
                continue
            out[name] = to_dict(value)
        return out
    if isinstance(obj, dict):
        return {key: to_dict(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_dict(item) for item in obj]
    return obj


def _invalid_params() -> RpcError:
    payload = ERR_INVALID_PARAMS.to_dict()
    return RpcError(payload["code"], payload["message"])


def _mapping(data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise _invalid_params()
    return data


def _str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise _invalid_params()
    return value


def _dict(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _invalid_params()
    return value


# initialize

@dataclass
class ClientInfo:
    name: str = _json("name", default="")
    version: str = _json("version", default="")


@dataclass
class InitializeRequest:
    protocol_version: str = _json("protocolVersion", default="")
    capabilities: dict[str, Any] = _json("capabilities", default_factory=dict)
    client_info: ClientInfo | None = _json("clientInfo", default=None)

    @classmethod
    def from_dict(cls, data: Any) -> "InitializeRequest":
        """Build from decoded params; raises RpcError on mismatched types."""
        data = _mapping(data)
        client = data.get("clientInfo")
        client_info = None
        if client is not None:
            client = _mapping(client)
            client_info = ClientInfo(name=_str(client, "name"), version=_str(client, "version"))
        return cls(
            protocol_version=_str(data, "protocolVersion"),
            capabilities=_dict(data, "capabilities"),
            client_info=client_info,
        )


@dataclass
class ServerInfo:
    name: str = _json("name", default="")
    version: str = _json("version", default="")


@dataclass
class InitializeResponse:
    protocol_version: str = _json("protocolVersion", default=PROTOCOL_VERSION)
    capabilities: dict[str, Any] = _json("capabilities", default_factory=default_capabilities)
    server_info: ServerInfo = _json("serverInfo", default_factory=ServerInfo)


# prompts

@dataclass
class PromptArgument:
    name: str = _json("name", default="")
    description: str = _json("description", omitempty=True, default="")
    required: bool = _json("required", omitempty=True, default=False)


@dataclass
class Prompt:
    name: str = _json("name", default="")
    description: str = _json("description", omitempty=True, default="")
    arguments: list[PromptArgument] = _json("arguments", omitempty=True, default_factory=list)


@dataclass
class PromptsListResponse:
    prompts: list[Prompt] = _json("prompts", default_factory=list)


@dataclass
class PromptsGetRequest:
    name: str = _json("name", default="")
    arguments: dict[str, Any] = _json("arguments", default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "PromptsGetRequest":
        """Build from decoded params; raises RpcError on mismatched types."""
        data = _mapping(data)
        return cls(name=_str(data, "name"), arguments=_dict(data, "arguments"))


@dataclass
class PromptContent:
    type: str = _json("type", default="")
    text: str = _json("text", omitempty=True, default="")
    resource: Any = _json("resource", omitempty=True, default=None)


@dataclass
class PromptMessage:
    role: str = _json("role", default="")
    content: PromptContent = _json("content", default_factory=PromptContent)


@dataclass
class PromptsGetResponse:
    description: str = _json("description", default="")
    messages: list[PromptMessage] = _json("messages", default_factory=list)


# resources

@dataclass
class Resource:
    uri: str = _json("uri", default="")
    name: str = _json("name", default="")
    description: str = _json("description", omitempty=True, default="")
    mime_type: str = _json("mimeType", omitempty=True, default="")


@dataclass
class ResourceTemplate:
    uri_template: str = _json("uriTemplate", default="")
    name: str = _json("name", default="")
    description: str = _json("description", omitempty=True, default="")
    mime_type: str = _json("mimeType", omitempty=True, default="")


@dataclass
class ResourcesReadRequest:
    uri: str = _json("uri", default="")

    @classmethod
    def from_dict(cls, data: Any) -> "ResourcesReadRequest":
        """Build from decoded params; raises RpcError on mismatched types."""
        return cls(uri=_str(_mapping(data), "uri"))


@dataclass
class ReadingResourceContent:
    uri: str = _json("uri", default="")
    mime_type: str = _json("mimeType", omitempty=True, default="")
    text: str = _json("text", omitempty=True, default="")
    blob: str = _json("blob", omitempty=True, default="")


@dataclass
class ReadingResource:
    contents: list[ReadingResourceContent] = _json("contents", default_factory=list)


# tools

@dataclass
class ToolSchema:
    type: str = _json("type", default="object")
    properties: dict[str, Any] = _json("properties", default_factory=dict)
    required: list[str] = _json("required", omitempty=True, default_factory=list)


@dataclass
class Tool:
    name: str = _json("name", default="")
    description: str = _json("description", omitempty=True, default="")
    input_schema: ToolSchema = _json("inputSchema", default_factory=ToolSchema)


@dataclass
class ToolsCallRequest:
    name: str = _json("name", default="")
    arguments: dict[str, Any] = _json("arguments", default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "ToolsCallRequest":
        """Build from decoded params; raises RpcError on mismatched types."""
        data = _mapping(data)
        return cls(name=_str(data, "name"), arguments=_dict(data, "arguments"))


@dataclass
class Content:
    type: str = _json("type", default="text")
    text: str = _json("text", default="")


@dataclass
class ToolsCallResponse:
    content: list[Content] = _json("content", default_factory=list)
    is_error: bool = _json("isError", default=False)