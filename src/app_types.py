from dataclasses import dataclass
from typing import Any, Dict, Optional, Union


class ConfigurationError(ValueError):
    """Caller error: wrong image size, unknown color, out-of-range sticker."""


@dataclass(frozen=True)
class Unassigned:
    pass


@dataclass(frozen=True)
class WhiteBalance:
    # faces are named by the color of their center
    face: str


@dataclass(frozen=True)
class Sticker:
    slot: int


PixelRole = Union[Unassigned, WhiteBalance, Sticker]

UNASSIGNED = Unassigned()


@dataclass
class InferenceResult:
    facelets: str
    confidence: float
    solution: Optional[str] = None


def role_to_json(role: PixelRole) -> Optional[Dict[str, Any]]:
    if isinstance(role, Sticker):
        return {'sticker': role.slot}
    if isinstance(role, WhiteBalance):
        return {'white_balance': role.face}
    return None


def role_from_json(data: Optional[Dict[str, Any]]) -> PixelRole:
    if data is None:
        return UNASSIGNED
    if 'sticker' in data:
        return Sticker(int(data['sticker']))
    if 'white_balance' in data:
        return WhiteBalance(str(data['white_balance']))
    raise ConfigurationError(f"Unknown pixel role: {data!r}")
