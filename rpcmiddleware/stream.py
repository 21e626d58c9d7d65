"""Stream abstractions and a server stream wrapper that can replace its context."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Any

from .context import Context


class EndOfStream(Exception):
    """Raised by ``recv_msg`` when the peer has no more messages."""


@dataclass
class UnaryServerInfo:
    """Details of a unary call as seen by the server."""

    full_method: str
    server: Any = None


@dataclass
class StreamServerInfo:
    """Details of a streaming call as seen by the server."""

    full_method: str
    is_client_stream: bool = False
    is_server_stream: bool = False


@dataclass
class StreamDesc:
    """Description of a streaming method."""

    stream_name: str = ""
    client_streams: bool = False
    server_streams: bool = False


class ServerStream(abc.ABC):
    """The server side of a streaming call."""

    @abc.abstractmethod
    def context(self) -> Context:
        """Return the context of the call."""

    @abc.abstractmethod
    def send_msg(self, message: Any) -> None:
        """Send a message to the client."""

    @abc.abstractmethod
    def recv_msg(self) -> Any:
        """Receive the next message; raise EndOfStream when there are none."""


class ClientStream(abc.ABC):
    """The client side of a streaming call."""

    @abc.abstractmethod
    def context(self) -> Context:
        """Return the context of the call."""

    @abc.abstractmethod
    def header(self) -> dict[str, list[str]]:
        """Return the header metadata sent by the server."""

    @abc.abstractmethod
    def trailer(self) -> dict[str, list[str]]:
        """Return the trailer metadata sent by the server."""

    @abc.abstractmethod
    def send_msg(self, message: Any) -> None:
        """Send a message to the server."""

    @abc.abstractmethod
    def recv_msg(self) -> Any:
        """Receive the next message; raise EndOfStream when there are none."""

    @abc.abstractmethod
    def close_send(self) -> None:
        """Signal that the client will send no more messages."""


class WrappedServerStream(ServerStream):
    """A server stream whose context can be replaced by assigning ``wrapped_context``."""

    def __init__(self, stream: ServerStream, wrapped_context: Context) -> None:
        self.stream = stream
        self.wrapped_context = wrapped_context

    def context(self) -> Context:
        return self.wrapped_context

    def send_msg(self, message: Any) -> None:
        self.stream.send_msg(message)

    def recv_msg(self) -> Any:
        return self.stream.recv_msg()

    def __getattr__(self, name: str) -> Any:
        if name in ("stream", "wrapped_context"):
            raise AttributeError(name)
        return getattr(self.stream, name)


def wrap_server_stream(stream: ServerStream) -> WrappedServerStream:
    """Wrap ``stream`` so its context can be replaced; an existing wrapper is reused."""
    if isinstance(stream, WrappedServerStream):
        return stream
    return WrappedServerStream(stream, stream.context())