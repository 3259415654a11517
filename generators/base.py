import random
from abc import ABC, abstractmethod
from pathlib import Path

from faker import Faker


class BaseGenerator(ABC):
    """Seeded Faker generator that persists what it builds through a service."""

    def __init__(self, seed: int | None = 42, db_path: Path | str | None = None):
        self.fake = Faker()
        self.db_path = db_path
        if seed is not None:
            Faker.seed(seed)
            random.seed(seed)

    @staticmethod
    def _weighted_choice(choices: list[tuple]):
        items, weights = zip(*choices)
        return random.choices(items, weights=weights)[0]

    @abstractmethod
    def generate_one(self):
        ...

    def generate_batch(self, count: int) -> list:
        return [self.generate_one() for _ in range(count)]

    @abstractmethod
    def save_to_db(self, records: list):
        ...
