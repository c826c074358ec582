"""Participant ids and treatment-group assignment for new survey sessions."""
from __future__ import annotations

import logging
import random
import string
from typing import Sequence

import redis

log = logging.getLogger(__name__)

ASSIGNMENT_COUNTER_KEY = "survey:assignment_counter"
_ALPHABET = string.ascii_uppercase + string.digits


def new_participant_id(length: int = 12, rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    return "".join(rng.choice(_ALPHABET) for _ in range(length))


class GroupAssigner:
    """Round-robin over the configured groups, counted in Redis so every worker shares the sequence."""

    def __init__(self, client: redis.Redis, groups: Sequence[str], key: str = ASSIGNMENT_COUNTER_KEY) -> None:
        if not groups:
            raise ValueError("at least one treatment group is required")
        self.redis = client
        self.groups = list(groups)
        self.key = key

    def next_group(self) -> str:
        counter = int(self.redis.incr(self.key))
        group = self.groups[(counter - 1) % len(self.groups)]
        log.info(f"GROUP_ASSIGNED | counter={counter} | group={group}")
        return group
