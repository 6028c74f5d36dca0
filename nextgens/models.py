from dataclasses import dataclass
import math
import uuid


@dataclass(frozen=True)
class Location:
    world: str | None
    x: int
    y: int
    z: int

    def has_world(self) -> bool:
        return bool(self.world)

    def serialize(self) -> str:
        return f"{self.world},{self.x},{self.y},{self.z}"

    @classmethod
    def deserialize(cls, text: str, world_resolver=None) -> "Location":
        # World names may contain commas; the coordinates never do.
        parts = [p.strip() for p in (text or "").rsplit(",", 3)]
        if len(parts) != 4:
            raise ValueError(f"Invalid location: {text!r}")
        world = parts[0] or None
        if world_resolver is not None and world is not None:
            world = world_resolver(world)
        x, y, z = (math.floor(float(v)) for v in parts[1:])
        return cls(world, x, y, z)


@dataclass
class ActiveGenerator:
    owner: uuid.UUID | str
    location: Location
    generator_id: str
    timer: float = 0.0
    corrupted: bool = False

    def to_row(self) -> tuple:
        return (
            str(self.owner),
            self.location.serialize(),
            self.generator_id,
            round(float(self.timer), 2),
            1 if self.corrupted else 0,
        )

    @classmethod
    def from_row(cls, row, world_resolver=None) -> "ActiveGenerator":
        owner, location, generator_id, timer, corrupted = row
        return cls(
            owner=_parse_owner(_text(owner)),
            location=Location.deserialize(_text(location), world_resolver),
            generator_id=_text(generator_id),
            timer=round(float(timer or 0), 2),
            corrupted=bool(int(corrupted or 0)),
        )


def _parse_owner(value) -> uuid.UUID | str:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return str(value)


def _text(value) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    return str(value)
