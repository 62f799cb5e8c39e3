import enum
import re
from dataclasses import dataclass, field
from typing import Any, Literal


DEFAULT_ESERVER_URL = "http://localhost:3030"

AgentStatus = Literal["pending", "completed", "error"]


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class Endpoint:
    """Where the Peer lives and how to authenticate to it."""
    base_url: str
    access_key: str

    def __post_init__(self):
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

    @property
    def ws_url(self) -> str:
        # http:// -> ws://, https:// -> wss://
        return re.sub(r"^http", "ws", self.base_url) + "/circuitry/realtime"

    def headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_key}",
            "Content-Type": "application/json",
        }


@dataclass
class MCPConfig:
    eserver_url: str = DEFAULT_ESERVER_URL
    access_key: str = ""
    configured: bool = False

    @classmethod
    def from_dict(cls, d: dict) -> "MCPConfig":
        return cls(
            eserver_url=str(d.get("eserverUrl") or DEFAULT_ESERVER_URL),
            access_key=str(d.get("accessKey") or ""),
            configured=bool(d.get("configured", False)),
        )

    def to_dict(self) -> dict:
        return {
            "eserverUrl": self.eserver_url,
            "accessKey": self.access_key,
            "configured": self.configured,
        }


@dataclass
class PeerStatus:
    running: bool
    version: str | None = None
    uptime: float | None = None
    circuitry_connected: bool | None = None

    def to_dict(self) -> dict:
        out: dict = {"running": self.running}
        if self.version is not None:
            out["version"] = self.version
        if self.uptime is not None:
            out["uptime"] = self.uptime
        if self.circuitry_connected is not None:
            out["circuitryConnected"] = self.circuitry_connected
        return out


@dataclass
class Prompt:
    id: str
    question: str
    timestamp: float = 0
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: dict) -> "Prompt":
        return cls(
            id=str(d.get("id", "")),
            question=str(d.get("question", "")),
            timestamp=d.get("timestamp") or 0,
            metadata=dict(d.get("metadata") or {}),
        )

    def to_dict(self) -> dict:
        out: dict = {"id": self.id, "question": self.question, "timestamp": self.timestamp}
        if self.metadata:
            out["metadata"] = self.metadata
        return out


@dataclass
class ApiResponse:
    """Result envelope of a generic relay call, over either transport."""
    success: bool
    result: Any = None
    error: str | None = None
    request_id: str | None = None

    @classmethod
    def from_dict(cls, d: dict) -> "ApiResponse":
        return cls(
            success=bool(d.get("success")),
            result=d.get("result"),
            error=d.get("error"),
            request_id=d.get("requestId"),
        )


@dataclass
class ConnectionResult:
    approved: bool
    message: str | None = None

    def to_dict(self) -> dict:
        return {"approved": self.approved, "message": self.message}


@dataclass
class AgentChatResult:
    chat_id: str
    status: AgentStatus = "pending"

    def to_dict(self) -> dict:
        return {"chatId": self.chat_id, "status": self.status}


@dataclass
class AgentPollResult:
    status: AgentStatus
    response: str | None = None
    created_nodes: list[str] | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        out: dict = {"status": self.status}
        if self.response is not None:
            out["response"] = self.response
        if self.created_nodes is not None:
            out["createdNodes"] = self.created_nodes
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass
class FileReadResult:
    content: str
    checksum: str
    last_modified: float

    @classmethod
    def from_dict(cls, d: dict) -> "FileReadResult":
        return cls(
            content=d.get("content", ""),
            checksum=d.get("checksum", ""),
            last_modified=d.get("lastModified") or 0,
        )


@dataclass
class CallResult:
    """
    Uniform outcome of one dispatched operation.

    Exactly one of payload (on success) or message (on failure) is meaningful.
    """
    ok: bool
    payload: Any = None
    message: str = ""

    @classmethod
    def success(cls, payload: Any = None) -> "CallResult":
        return cls(ok=True, payload=payload)

    @classmethod
    def failure(cls, message: str) -> "CallResult":
        return cls(ok=False, message=message)

    @property
    def is_error(self) -> bool:
        return not self.ok


# ── Tool argument shapes ──────────────────────────────────────
# Only operations the dispatcher interprets locally get a typed shape;
# everything else is relayed to the Peer as an opaque dict.

def _require_str(d: dict, key: str) -> str:
    value = d.get(key)
    if not isinstance(value, str) or not value:
        raise ValueError(f"{key} is required and must be a non-empty string")
    return value


def _optional_str(d: dict, key: str) -> str | None:
    value = d.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _optional_dict(d: dict, key: str) -> dict | None:
    value = d.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValueError(f"{key} must be an object")
    return value


@dataclass
class AgentChatArgs:
    message: str
    context: dict | None = None

    @classmethod
    def from_dict(cls, d: dict) -> "AgentChatArgs":
        return cls(message=_require_str(d, "message"), context=_optional_dict(d, "context"))


@dataclass
class CreateFlowchartArgs:
    description: str
    style: str | None = None

    @classmethod
    def from_dict(cls, d: dict) -> "CreateFlowchartArgs":
        return cls(description=_require_str(d, "description"), style=_optional_str(d, "style"))

    def to_message(self) -> str:
        if self.style:
            return f"Create a {self.style} flowchart: {self.description}"
        return f"Create a flowchart: {self.description}"


@dataclass
class AgentPollArgs:
    chat_id: str

    @classmethod
    def from_dict(cls, d: dict) -> "AgentPollArgs":
        return cls(chat_id=_require_str(d, "chatId"))


@dataclass
class CodeCreateArgs:
    file_path: str | None = None
    name: str | None = None
    content: str | None = None
    position: dict | None = None

    @classmethod
    def from_dict(cls, d: dict) -> "CodeCreateArgs":
        return cls(
            file_path=_optional_str(d, "filePath"),
            name=_optional_str(d, "name"),
            content=_optional_str(d, "content"),
            position=_optional_dict(d, "position"),
        )


@dataclass
class CodeCreateBatchArgs:
    file_paths: list[str]
    layout: str | None = None

    @classmethod
    def from_dict(cls, d: dict) -> "CodeCreateBatchArgs":
        paths = d.get("filePaths")
        if not isinstance(paths, list) or not all(isinstance(p, str) for p in paths):
            raise ValueError("filePaths is required and must be a list of strings")
        return cls(file_paths=list(paths), layout=_optional_str(d, "layout"))


# ── Tool catalogue entries ────────────────────────────────────

ParamType = Literal["string", "number", "boolean", "array", "object", "any"]


@dataclass(frozen=True)
class ToolParameter:
    name: str
    type: ParamType
    description: str
    required: bool = False
    enum: tuple[str, ...] | None = None
    items: dict | None = None


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: tuple[ToolParameter, ...] = ()
    returns_type: str = "any"
    returns_description: str = ""

    @property
    def namespace(self) -> str:
        return self.name.split(".", 1)[0]
