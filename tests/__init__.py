"""Shared helpers for the storage tests."""

from __future__ import annotations

import uuid

from nextgens.database import DatabaseManager
from nextgens.models import ActiveGenerator, Location


class LogSink:
    def __init__(self) -> None:
        self.lines: list[str] = []

    def __call__(self, message: str) -> None:
        self.lines.append(message)

    def matching(self, fragment: str) -> list[str]:
        return [line for line in self.lines if fragment in line]


def make_generator(
    x: int = 10,
    *,
    world: str | None = "world",
    owner: uuid.UUID | str | None = None,
    generator_id: str = "stone",
    timer: float = 5.0,
    corrupted: bool = False,
) -> ActiveGenerator:
    return ActiveGenerator(
        owner=owner if owner is not None else uuid.uuid4(),
        location=Location(world, x, 64, 20),
        generator_id=generator_id,
        timer=timer,
        corrupted=corrupted,
    )


def fetch_rows(manager: DatabaseManager) -> list[tuple]:
    result = manager.execute_query(
        "SELECT owner, location, generator_id, timer, is_corrupted FROM nextgens_generator ORDER BY location;",
        lambda cursor: cursor.fetchall(),
    )
    assert result.ok, result.error
    return list(result.value)
