"""
Packet envelope and its message variants.

A Packet carries a correlation id, the sender guid and at most one body:
Request, Response, Event, Command or ForwardingPacket. Request, Event and
Command are themselves unions over concrete message classes. Every concrete
class names itself on the wire through ``WIRE_NAME``, which is also the key
its payload sits under in the serialized form:

    {"id": "...", "from": "...", "event": {"match_created_event": {"match": {...}}}}
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Type, Union

from taproto.models import GameplayParameters, Match, State, User
from taproto.utils import expect_bool, expect_dict, expect_int, expect_list, expect_str, new_guid

# Sent with every Connect request; the server rejects mismatched versions.
CLIENT_VERSION = 66


def _one_of(data: Mapping[str, Any], registry: Mapping[str, Type[Any]], what: str,
            fields: tuple = ()) -> Any:
    """
    Resolve the single populated variant of a union payload.

    ``fields`` lists plain (non-variant) keys that may sit next to the
    variant. Returns None when no variant is present.
    """
    keys = [k for k in data.keys() if k not in fields]
    unknown = [k for k in keys if k not in registry]
    if unknown:
        raise ValueError(f"Unknown {what} variant(s): {sorted(unknown)}")
    present = [k for k in keys if data[k] is not None]
    if len(present) > 1:
        raise ValueError(f"{what} carries more than one variant: {sorted(present)}")
    if not present:
        return None
    name = present[0]
    return registry[name].from_dict(data[name])


def _variant_dict(body: Any) -> Dict[str, Any]:
    return {body.WIRE_NAME: body.to_dict()} if body is not None else {}


# ========================================
#           REQUESTS
# ========================================

@dataclass
class Connect:
    WIRE_NAME = "connect"

    user: User
    client_version: int = CLIENT_VERSION
    password: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"user": self.user.to_dict(), "client_version": self.client_version}
        if self.password is not None:
            result["password"] = self.password
        return result

    @classmethod
    def from_dict(cls, data: Any) -> Connect:
        data = expect_dict(data, "connect")
        password = data.get("password")
        return cls(
            user=User.from_dict(data.get("user", {})),
            client_version=expect_int(data.get("client_version", 0), "connect.client_version"),
            password=expect_str(password, "connect.password") if password is not None else None,
        )


RequestBody = Connect
REQUEST_VARIANTS: Dict[str, Type[Any]] = {Connect.WIRE_NAME: Connect}


@dataclass
class Request:
    WIRE_NAME = "request"

    body: Optional[RequestBody] = None

    def to_dict(self) -> Dict[str, Any]:
        return _variant_dict(self.body)

    @classmethod
    def from_dict(cls, data: Any) -> Request:
        return cls(body=_one_of(expect_dict(data, "request"), REQUEST_VARIANTS, "request"))


# ========================================
#           RESPONSES
# ========================================

class ResponseType(str, Enum):
    FAIL = "fail"
    SUCCESS = "success"


@dataclass
class ConnectResponse:
    WIRE_NAME = "connect"

    state: State = field(default_factory=State)
    self_guid: str = ""
    server_version: int = 0
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.to_dict(),
            "self_guid": self.self_guid,
            "server_version": self.server_version,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: Any) -> ConnectResponse:
        data = expect_dict(data, "response.connect")
        return cls(
            state=State.from_dict(data.get("state", {})),
            self_guid=expect_str(data.get("self_guid", ""), "response.connect.self_guid"),
            server_version=expect_int(data.get("server_version", 0), "response.connect.server_version"),
            message=expect_str(data.get("message", ""), "response.connect.message"),
        )


ResponseBody = ConnectResponse
RESPONSE_VARIANTS: Dict[str, Type[Any]] = {ConnectResponse.WIRE_NAME: ConnectResponse}
_RESPONSE_FIELDS = ("type", "message", "responding_to_packet_id")


@dataclass
class Response:
    WIRE_NAME = "response"

    type: ResponseType = ResponseType.FAIL
    message: str = ""
    responding_to_packet_id: str = ""
    body: Optional[ResponseBody] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "type": self.type.value,
            "message": self.message,
            "responding_to_packet_id": self.responding_to_packet_id,
        }
        result.update(_variant_dict(self.body))
        return result

    @classmethod
    def from_dict(cls, data: Any) -> Response:
        data = expect_dict(data, "response")
        return cls(
            type=ResponseType(expect_str(data.get("type", ResponseType.FAIL.value), "response.type")),
            message=expect_str(data.get("message", ""), "response.message"),
            responding_to_packet_id=expect_str(
                data.get("responding_to_packet_id", ""), "response.responding_to_packet_id"
            ),
            body=_one_of(data, RESPONSE_VARIANTS, "response", fields=_RESPONSE_FIELDS),
        )

    @property
    def connect(self) -> Optional[ConnectResponse]:
        return self.body if isinstance(self.body, ConnectResponse) else None


# ========================================
#           EVENTS
# ========================================

@dataclass
class _UserEvent:
    user: User

    def to_dict(self) -> Dict[str, Any]:
        return {"user": self.user.to_dict()}

    @classmethod
    def from_dict(cls, data: Any):
        data = expect_dict(data, cls.WIRE_NAME)  # type: ignore[attr-defined]
        return cls(user=User.from_dict(data.get("user", {})))


@dataclass
class _MatchEvent:
    match: Match

    def to_dict(self) -> Dict[str, Any]:
        return {"match": self.match.to_dict()}

    @classmethod
    def from_dict(cls, data: Any):
        data = expect_dict(data, cls.WIRE_NAME)  # type: ignore[attr-defined]
        return cls(match=Match.from_dict(data.get("match", {})))


@dataclass
class UserAddedEvent(_UserEvent):
    WIRE_NAME = "user_added_event"


@dataclass
class UserUpdatedEvent(_UserEvent):
    WIRE_NAME = "user_updated_event"


@dataclass
class UserLeftEvent(_UserEvent):
    WIRE_NAME = "user_left_event"


@dataclass
class MatchCreatedEvent(_MatchEvent):
    WIRE_NAME = "match_created_event"


@dataclass
class MatchUpdatedEvent(_MatchEvent):
    WIRE_NAME = "match_updated_event"


@dataclass
class MatchDeletedEvent(_MatchEvent):
    WIRE_NAME = "match_deleted_event"


EventBody = Union[
    UserAddedEvent, UserUpdatedEvent, UserLeftEvent,
    MatchCreatedEvent, MatchUpdatedEvent, MatchDeletedEvent,
]
EVENT_VARIANTS: Dict[str, Type[Any]] = {
    cls.WIRE_NAME: cls
    for cls in (
        UserAddedEvent, UserUpdatedEvent, UserLeftEvent,
        MatchCreatedEvent, MatchUpdatedEvent, MatchDeletedEvent,
    )
}


@dataclass
class Event:
    WIRE_NAME = "event"

    body: Optional[EventBody] = None

    def to_dict(self) -> Dict[str, Any]:
        return _variant_dict(self.body)

    @classmethod
    def from_dict(cls, data: Any) -> Event:
        return cls(body=_one_of(expect_dict(data, "event"), EVENT_VARIANTS, "event"))


# ========================================
#           COMMANDS
# ========================================

@dataclass
class ShowModal:
    WIRE_NAME = "show_modal"

    modal_id: str = ""
    message_title: str = ""
    message_text: str = ""
    can_close: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "modal_id": self.modal_id,
            "message_title": self.message_title,
            "message_text": self.message_text,
            "can_close": self.can_close,
        }

    @classmethod
    def from_dict(cls, data: Any) -> ShowModal:
        data = expect_dict(data, "show_modal")
        return cls(
            modal_id=expect_str(data.get("modal_id", ""), "show_modal.modal_id"),
            message_title=expect_str(data.get("message_title", ""), "show_modal.message_title"),
            message_text=expect_str(data.get("message_text", ""), "show_modal.message_text"),
            can_close=expect_bool(data.get("can_close", True), "show_modal.can_close"),
        )


@dataclass
class LoadSong:
    WIRE_NAME = "load_song"

    level_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"level_id": self.level_id}

    @classmethod
    def from_dict(cls, data: Any) -> LoadSong:
        data = expect_dict(data, "load_song")
        return cls(level_id=expect_str(data.get("level_id", ""), "load_song.level_id"))


@dataclass
class PlaySong:
    WIRE_NAME = "play_song"

    gameplay_parameters: GameplayParameters = field(default_factory=GameplayParameters)
    floating_scoreboard: bool = False
    stream_sync: bool = False
    disable_pause: bool = False
    disable_fail: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gameplay_parameters": self.gameplay_parameters.to_dict(),
            "floating_scoreboard": self.floating_scoreboard,
            "stream_sync": self.stream_sync,
            "disable_pause": self.disable_pause,
            "disable_fail": self.disable_fail,
        }

    @classmethod
    def from_dict(cls, data: Any) -> PlaySong:
        data = expect_dict(data, "play_song")
        return cls(
            gameplay_parameters=GameplayParameters.from_dict(data.get("gameplay_parameters", {})),
            floating_scoreboard=expect_bool(data.get("floating_scoreboard", False), "play_song.floating_scoreboard"),
            stream_sync=expect_bool(data.get("stream_sync", False), "play_song.stream_sync"),
            disable_pause=expect_bool(data.get("disable_pause", False), "play_song.disable_pause"),
            disable_fail=expect_bool(data.get("disable_fail", False), "play_song.disable_fail"),
        )


@dataclass
class ReturnToMenu:
    """Flag command; serialized as ``{"return_to_menu": true}``."""
    WIRE_NAME = "return_to_menu"

    def to_dict(self) -> bool:
        return True

    @classmethod
    def from_dict(cls, data: Any) -> ReturnToMenu:
        if data is not True:
            raise ValueError("'return_to_menu' must be true when present")
        return cls()


CommandBody = Union[ShowModal, LoadSong, PlaySong, ReturnToMenu]
COMMAND_VARIANTS: Dict[str, Type[Any]] = {
    cls.WIRE_NAME: cls for cls in (ShowModal, LoadSong, PlaySong, ReturnToMenu)
}


@dataclass
class Command:
    WIRE_NAME = "command"

    body: Optional[CommandBody] = None

    def to_dict(self) -> Dict[str, Any]:
        # return_to_menu: false is the unset state of the flag command
        return _variant_dict(self.body)

    @classmethod
    def from_dict(cls, data: Any) -> Command:
        data = dict(expect_dict(data, "command"))
        if data.get(ReturnToMenu.WIRE_NAME) is False:
            del data[ReturnToMenu.WIRE_NAME]
        return cls(body=_one_of(data, COMMAND_VARIANTS, "command"))


# ========================================
#           FORWARDING
# ========================================

@dataclass
class ForwardingPacket:
    """Asks the server to relay ``packet`` to exactly the listed guids."""
    WIRE_NAME = "forwarding_packet"

    forward_to: List[str] = field(default_factory=list)
    packet: Optional[Packet] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "forward_to": list(self.forward_to),
            "packet": self.packet.to_dict() if self.packet is not None else None,
        }

    @classmethod
    def from_dict(cls, data: Any) -> ForwardingPacket:
        data = expect_dict(data, "forwarding_packet")
        inner = data.get("packet")
        return cls(
            forward_to=[
                expect_str(t, "forwarding_packet.forward_to[]")
                for t in expect_list(data.get("forward_to", []), "forwarding_packet.forward_to")
            ],
            packet=Packet.from_dict(inner) if inner is not None else None,
        )


# ========================================
#           ENVELOPE
# ========================================

PacketBody = Union[Request, Response, Event, Command, ForwardingPacket]
PACKET_VARIANTS: Dict[str, Type[Any]] = {
    cls.WIRE_NAME: cls for cls in (Request, Response, Event, Command, ForwardingPacket)
}
_PACKET_FIELDS = ("id", "from")


@dataclass
class Packet:
    id: str = field(default_factory=new_guid)
    from_: str = ""     # sender guid, "from" on the wire (renamed to avoid keyword collision)
    body: Optional[PacketBody] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"id": self.id, "from": self.from_}
        result.update(_variant_dict(self.body))
        return result

    @classmethod
    def from_dict(cls, data: Any) -> Packet:
        data = expect_dict(data, "packet")
        return cls(
            id=expect_str(data.get("id", ""), "packet.id"),
            from_=expect_str(data.get("from", ""), "packet.from"),
            body=_one_of(data, PACKET_VARIANTS, "packet", fields=_PACKET_FIELDS),
        )

    @property
    def kind(self) -> str:
        """
        Dotted routing name: ``"event.match_created_event"``,
        ``"response.connect"``, ``"forwarding_packet"`` or ``"empty"``.
        """
        if self.body is None:
            return "empty"
        inner = getattr(self.body, "body", None)
        if inner is None:
            return self.body.WIRE_NAME
        return f"{self.body.WIRE_NAME}.{inner.WIRE_NAME}"

    @property
    def request(self) -> Optional[Request]:
        return self.body if isinstance(self.body, Request) else None

    @property
    def response(self) -> Optional[Response]:
        return self.body if isinstance(self.body, Response) else None

    @property
    def event(self) -> Optional[Event]:
        return self.body if isinstance(self.body, Event) else None

    @property
    def command(self) -> Optional[Command]:
        return self.body if isinstance(self.body, Command) else None

    @property
    def forwarding_packet(self) -> Optional[ForwardingPacket]:
        return self.body if isinstance(self.body, ForwardingPacket) else None
