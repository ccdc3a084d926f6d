"""Control plane settings, read once from the environment."""
from __future__ import annotations
import os

DATABASE_URL = os.environ["DATABASE_URL"]  # postgresql+asyncpg://...
REDIS_URL = os.environ["REDIS_URL"]

KEY_PREFIX = os.environ.get("PATHGATE_KEY_PREFIX", "pathgate")
QUEUE_NAME = os.environ.get("QUEUE_NAME", f"{KEY_PREFIX}:queue")

LEASE_SECONDS = int(os.environ.get("LEASE_SECONDS", "600"))
# how long a claim blocks on an empty queue before answering 204
CLAIM_TIMEOUT_SECONDS = int(os.environ.get("CLAIM_TIMEOUT_SECONDS", "5"))
