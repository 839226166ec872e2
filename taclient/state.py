from __future__ import annotations
import copy
from dataclasses import dataclass
from typing import List, Optional

from taproto.log import get_logger
from taproto.models import Match, ServerSettings, State, User
from taproto.packets import (
    ConnectResponse,
    MatchCreatedEvent,
    MatchDeletedEvent,
    MatchUpdatedEvent,
    Packet,
    UserAddedEvent,
    UserLeftEvent,
    UserUpdatedEvent,
)

logger = get_logger(__name__)


def _upsert(items: list, item) -> None:
    for i, existing in enumerate(items):
        if existing.guid == item.guid:
            items[i] = item
            return
    items.append(item)


def _remove(items: list, guid: str) -> None:
    items[:] = [x for x in items if x.guid != guid]


@dataclass
class StateStore:
    """
    Local mirror of the server's users and matches.

    Overwritten wholesale by ``init`` after a successful handshake, emptied by
    ``reset`` when the transport closes, and patched by inbound events.
    """
    self_user: User
    state: Optional[State] = None
    self_guid: str = ""
    server_version: int = 0
    # events seen before init() are dropped; counted for diagnostics
    dropped_events: int = 0

    @property
    def is_initialized(self) -> bool:
        return self.state is not None

    @property
    def users(self) -> List[User]:
        return self.state.users if self.state else []

    @property
    def matches(self) -> List[Match]:
        return self.state.matches if self.state else []

    @property
    def server_settings(self) -> Optional[ServerSettings]:
        return self.state.server_settings if self.state else None

    def get_user(self, guid: str) -> Optional[User]:
        return next((u for u in self.users if u.guid == guid), None)

    def get_match(self, guid: str) -> Optional[Match]:
        return next((m for m in self.matches if m.guid == guid), None)

    def init(self, response: ConnectResponse) -> None:
        self.state = copy.deepcopy(response.state)
        self.self_guid = response.self_guid
        self.server_version = response.server_version
        logger.debug(
            "State initialised with %d user(s) and %d match(es)",
            len(self.state.users), len(self.state.matches),
            extra={"user_id": self.self_guid},
        )

    def reset(self) -> None:
        self.state = None
        self.self_guid = ""
        self.server_version = 0

    def handle_packet(self, packet: Packet) -> None:
        event = packet.event
        if event is None or event.body is None:
            return
        if self.state is None:
            self.dropped_events += 1
            return

        body = event.body
        if isinstance(body, (UserAddedEvent, UserUpdatedEvent)):
            _upsert(self.state.users, body.user)
        elif isinstance(body, UserLeftEvent):
            _remove(self.state.users, body.user.guid)
        elif isinstance(body, (MatchCreatedEvent, MatchUpdatedEvent)):
            _upsert(self.state.matches, body.match)
        elif isinstance(body, MatchDeletedEvent):
            _remove(self.state.matches, body.match.guid)
