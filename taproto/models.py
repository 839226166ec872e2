from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import Any, Dict, List, Optional

from taproto.utils import expect_bool, expect_dict, expect_int, expect_list, expect_str


class ClientType(str, Enum):
    """Declared role of a connected participant."""

    PLAYER = "player"
    COORDINATOR = "coordinator"
    TEMPORARY_CONNECTION = "temporary_connection"
    WEBSOCKET_CONNECTION = "websocket_connection"

    @classmethod
    def from_string(cls, value: str) -> ClientType:
        """Convert string to ClientType, raise ValueError if unknown."""
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown client type: {value}")


class GameOptions(IntFlag):
    NONE = 0
    NO_FAIL = 1
    NO_BOMBS = 2
    NO_ARROWS = 4
    NO_OBSTACLES = 8
    SLOW_SONG = 16
    INSTA_FAIL = 32
    FAIL_ON_CLASH = 64
    BATTERY_ENERGY = 128
    FAST_NOTES = 256
    FAST_SONG = 512
    DISAPPEARING_ARROWS = 1024
    GHOST_NOTES = 2048


class PlayerOptions(IntFlag):
    NONE = 0
    LEFT_HANDED = 1
    STATIC_LIGHTS = 2
    NO_HUD = 4
    ADVANCED_HUD = 8
    REDUCE_DEBRIS = 16


@dataclass
class User:
    guid: str
    name: str = ""
    client_type: ClientType = ClientType.PLAYER
    user_id: str = ""          # platform account id, empty for anonymous connections

    def to_dict(self) -> Dict[str, Any]:
        return {
            "guid": self.guid,
            "name": self.name,
            "client_type": self.client_type.value,
            "user_id": self.user_id,
        }

    @classmethod
    def from_dict(cls, data: Any) -> User:
        data = expect_dict(data, "user")
        return cls(
            guid=expect_str(data.get("guid", ""), "user.guid"),
            name=expect_str(data.get("name", ""), "user.name"),
            client_type=ClientType.from_string(
                expect_str(data.get("client_type", ClientType.PLAYER.value), "user.client_type")
            ),
            user_id=expect_str(data.get("user_id", ""), "user.user_id"),
        )


@dataclass
class Characteristic:
    serialized_name: str = ""
    difficulties: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"serialized_name": self.serialized_name, "difficulties": list(self.difficulties)}

    @classmethod
    def from_dict(cls, data: Any) -> Characteristic:
        data = expect_dict(data, "characteristic")
        return cls(
            serialized_name=expect_str(data.get("serialized_name", ""), "characteristic.serialized_name"),
            difficulties=[
                expect_int(d, "characteristic.difficulties[]")
                for d in expect_list(data.get("difficulties", []), "characteristic.difficulties")
            ],
        )


@dataclass
class PreviewBeatmapLevel:
    level_id: str = ""
    name: str = ""
    characteristics: List[Characteristic] = field(default_factory=list)
    loaded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level_id": self.level_id,
            "name": self.name,
            "characteristics": [c.to_dict() for c in self.characteristics],
            "loaded": self.loaded,
        }

    @classmethod
    def from_dict(cls, data: Any) -> PreviewBeatmapLevel:
        data = expect_dict(data, "selected_level")
        return cls(
            level_id=expect_str(data.get("level_id", ""), "selected_level.level_id"),
            name=expect_str(data.get("name", ""), "selected_level.name"),
            characteristics=[
                Characteristic.from_dict(c)
                for c in expect_list(data.get("characteristics", []), "selected_level.characteristics")
            ],
            loaded=expect_bool(data.get("loaded", False), "selected_level.loaded"),
        )


@dataclass
class Beatmap:
    name: str = ""
    level_id: str = ""
    characteristic: Optional[Characteristic] = None
    difficulty: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "level_id": self.level_id,
            "characteristic": self.characteristic.to_dict() if self.characteristic else None,
            "difficulty": self.difficulty,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Beatmap:
        data = expect_dict(data, "beatmap")
        characteristic = data.get("characteristic")
        return cls(
            name=expect_str(data.get("name", ""), "beatmap.name"),
            level_id=expect_str(data.get("level_id", ""), "beatmap.level_id"),
            characteristic=Characteristic.from_dict(characteristic) if characteristic is not None else None,
            difficulty=expect_int(data.get("difficulty", 0), "beatmap.difficulty"),
        )


@dataclass
class GameplayModifiers:
    options: GameOptions = GameOptions.NONE

    def to_dict(self) -> Dict[str, Any]:
        return {"options": int(self.options)}

    @classmethod
    def from_dict(cls, data: Any) -> GameplayModifiers:
        data = expect_dict(data, "gameplay_modifiers")
        return cls(options=GameOptions(expect_int(data.get("options", 0), "gameplay_modifiers.options")))


@dataclass
class PlayerSpecificSettings:
    options: PlayerOptions = PlayerOptions.NONE

    def to_dict(self) -> Dict[str, Any]:
        return {"options": int(self.options)}

    @classmethod
    def from_dict(cls, data: Any) -> PlayerSpecificSettings:
        data = expect_dict(data, "player_settings")
        return cls(options=PlayerOptions(expect_int(data.get("options", 0), "player_settings.options")))


@dataclass
class GameplayParameters:
    beatmap: Beatmap = field(default_factory=Beatmap)
    player_settings: PlayerSpecificSettings = field(default_factory=PlayerSpecificSettings)
    gameplay_modifiers: GameplayModifiers = field(default_factory=GameplayModifiers)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "beatmap": self.beatmap.to_dict(),
            "player_settings": self.player_settings.to_dict(),
            "gameplay_modifiers": self.gameplay_modifiers.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> GameplayParameters:
        data = expect_dict(data, "gameplay_parameters")
        return cls(
            beatmap=Beatmap.from_dict(data.get("beatmap", {})),
            player_settings=PlayerSpecificSettings.from_dict(data.get("player_settings", {})),
            gameplay_modifiers=GameplayModifiers.from_dict(data.get("gameplay_modifiers", {})),
        )


@dataclass
class Match:
    """
    A shared lobby. Every participant may mutate it, but changes only become
    authoritative once broadcast through a MatchUpdated event.
    """
    guid: str
    associated_users: List[str] = field(default_factory=list)
    leader: str = ""
    selected_level: Optional[PreviewBeatmapLevel] = None
    selected_characteristic: Optional[Characteristic] = None
    selected_difficulty: int = 0
    start_time: str = ""       # ISO-8601, empty until play is scheduled

    def to_dict(self) -> Dict[str, Any]:
        return {
            "guid": self.guid,
            "associated_users": list(self.associated_users),
            "leader": self.leader,
            "selected_level": self.selected_level.to_dict() if self.selected_level else None,
            "selected_characteristic": (
                self.selected_characteristic.to_dict() if self.selected_characteristic else None
            ),
            "selected_difficulty": self.selected_difficulty,
            "start_time": self.start_time,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Match:
        data = expect_dict(data, "match")
        level = data.get("selected_level")
        characteristic = data.get("selected_characteristic")
        return cls(
            guid=expect_str(data.get("guid", ""), "match.guid"),
            associated_users=[
                expect_str(u, "match.associated_users[]")
                for u in expect_list(data.get("associated_users", []), "match.associated_users")
            ],
            leader=expect_str(data.get("leader", ""), "match.leader"),
            selected_level=PreviewBeatmapLevel.from_dict(level) if level is not None else None,
            selected_characteristic=(
                Characteristic.from_dict(characteristic) if characteristic is not None else None
            ),
            selected_difficulty=expect_int(data.get("selected_difficulty", 0), "match.selected_difficulty"),
            start_time=expect_str(data.get("start_time", ""), "match.start_time"),
        )


@dataclass
class ServerSettings:
    server_name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"server_name": self.server_name}

    @classmethod
    def from_dict(cls, data: Any) -> ServerSettings:
        data = expect_dict(data, "server_settings")
        return cls(server_name=expect_str(data.get("server_name", ""), "server_settings.server_name"))


@dataclass
class State:
    """Server-authoritative snapshot delivered with a successful Connect response."""
    users: List[User] = field(default_factory=list)
    matches: List[Match] = field(default_factory=list)
    server_settings: Optional[ServerSettings] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "users": [u.to_dict() for u in self.users],
            "matches": [m.to_dict() for m in self.matches],
            "server_settings": self.server_settings.to_dict() if self.server_settings else None,
        }

    @classmethod
    def from_dict(cls, data: Any) -> State:
        data = expect_dict(data, "state")
        settings = data.get("server_settings")
        return cls(
            users=[User.from_dict(u) for u in expect_list(data.get("users", []), "state.users")],
            matches=[Match.from_dict(m) for m in expect_list(data.get("matches", []), "state.matches")],
            server_settings=ServerSettings.from_dict(settings) if settings is not None else None,
        )
