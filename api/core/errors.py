"""Error taxonomy for plugin loading, tool invocation and the chat stream.

Every error knows whether it is retryable so the UI boundary can decide
whether to offer a retry (network/timeout) or not (malformed/protocol).
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


class ChatPluginError(Exception):
    """Base class for all errors raised by the service."""

    retryable: bool = False

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for API responses and load reports."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "retryable": self.retryable,
        }


# ============================================================================
# Manifest errors (registry load, non-fatal to other plugins)
# ============================================================================

class ManifestError(ChatPluginError):
    """Base class for manifest fetch failures."""

    def __init__(self, url: str, message: str = ""):
        super().__init__(message or f"Failed to fetch manifest from {url}")
        self.url = url


class ManifestUnreachable(ManifestError):
    """Transport failure while fetching the manifest."""

    retryable = True


class ManifestHttpError(ManifestError):
    """Manifest endpoint answered with a non-2xx status."""

    def __init__(self, url: str, status: int, message: str = ""):
        super().__init__(url, message or f"HTTP {status} from {url}")
        self.status = status

    @property
    def retryable(self) -> bool:
        return self.status >= 500 or self.status == 429

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["status"] = self.status
        return data


class ManifestMalformed(ManifestError):
    """Manifest body is not JSON or misses required fields."""


# ============================================================================
# Tool errors (folded into the conversation, never raised by the proxy)
# ============================================================================

TOOL_ERROR_NETWORK = "network"
TOOL_ERROR_HTTP = "http"
TOOL_ERROR_TIMEOUT = "timeout"
TOOL_ERROR_INVALID_ARGUMENTS = "invalid-arguments"


@dataclass(frozen=True)
class ToolError:
    """Typed failure of a single tool call.

    A value, not an exception: the loop turns it into a tool result the
    model can observe.
    """

    tool_name: str
    kind: str
    message: str
    status: Optional[int] = None

    @property
    def retryable(self) -> bool:
        if self.kind in (TOOL_ERROR_NETWORK, TOOL_ERROR_TIMEOUT):
            return True
        if self.kind == TOOL_ERROR_HTTP and self.status is not None:
            return self.status >= 500 or self.status == 429
        return False

    def to_output(self) -> Dict[str, Any]:
        """JSON object placed in the ToolResultPart output."""
        output: Dict[str, Any] = {
            "error": {
                "toolName": self.tool_name,
                "kind": self.kind,
                "message": self.message,
                "retryable": self.retryable,
            }
        }
        if self.status is not None:
            output["error"]["status"] = self.status
        return output


# ============================================================================
# Model and stream errors
# ============================================================================

class ModelError(ChatPluginError):
    """The model capability failed to produce a step."""

    def __init__(self, message: str, retryable: bool = True, status: Optional[int] = None):
        super().__init__(message)
        self.retryable = retryable
        self.status = status


class StreamError(ChatPluginError):
    """Base class for streaming protocol errors."""


class StreamProtocolError(StreamError):
    """A frame could not be parsed. Logged and skipped by the consumer."""

    def __init__(self, message: str, frame: str = ""):
        super().__init__(message)
        self.frame = frame


class StreamUpstreamError(StreamError):
    """The producer sent an explicit error event."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message or "Stream error")
        self.retryable = retryable
