from __future__ import annotations

import random
import uuid
from dataclasses import dataclass
from typing import Optional

DEFAULT_SENSOR_IP = "127.0.0.1"

_ADJECTIVES = [
    "Amber", "Brave", "Cosmic", "Dizzy", "Fuzzy", "Gentle", "Jolly", "Lucky",
    "Mellow", "Nimble", "Quirky", "Rusty", "Sleepy", "Velvet", "Wobbly", "Zesty",
]
_NOUNS = [
    "Badger", "Biscuit", "Comet", "Falcon", "Goblin", "Lantern", "Marmot", "Noodle",
    "Otter", "Pebble", "Pickle", "Quokka", "Rocket", "Teapot", "Walrus", "Yeti",
]


@dataclass(frozen=True)
class SensorIdentity:
    uuid: str
    ip: str = DEFAULT_SENSOR_IP


def new_identity(ip: Optional[str] = None) -> SensorIdentity:
    """Fresh identity for this process; nothing is persisted."""
    return SensorIdentity(uuid=str(uuid.uuid1()), ip=ip or DEFAULT_SENSOR_IP)


def silly_name(rng: Optional[random.Random] = None) -> str:
    """Random two-word site name so every sensor does not share one title."""
    rng = rng or random.Random()
    return f"{rng.choice(_ADJECTIVES)} {rng.choice(_NOUNS)}"
