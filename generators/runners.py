import uuid
import random
from datetime import timedelta
from .base import BaseGenerator
from db import utcnow
from models import Runner, RunnerAvailability
from services.runners import RunnerDirectory


class RunnerGenerator(BaseGenerator):
    VEHICLE_TYPES = [
        ("bike", 0.45),
        ("scooter", 0.25),
        ("walking", 0.20),
        ("car", 0.10),
    ]

    AVAILABILITY = [
        (RunnerAvailability.ONLINE, 0.55),
        (RunnerAvailability.OFFLINE, 0.45),
    ]

    def __init__(self, seed: int | None = 42, db_path=None):
        super().__init__(seed, db_path)
        self.directory = RunnerDirectory(db_path)

    def generate_one(self) -> Runner:
        # Students sign up over the last two academic years
        days_ago = random.randint(0, 730)
        created_at = utcnow() - timedelta(days=days_ago)

        return Runner(
            runner_id=str(uuid.uuid4()),
            display_name=f"{self.fake.first_name()} {self.fake.last_name()[0]}.",
            vehicle_type=self._weighted_choice(self.VEHICLE_TYPES),
            availability=self._weighted_choice(self.AVAILABILITY),
            created_at=created_at,
        )

    def save_to_db(self, records: list[Runner]):
        self.directory.save_to_db(records)
        print(f"Saved {len(records)} runners")
