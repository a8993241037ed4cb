"""Snapshot builders shared by analyzer, store, monitor and bot tests."""

from tests.fixtures.snapshots.builders import (
    account_payload,
    make_model,
    make_position,
    make_snapshot,
)

__all__ = ["account_payload", "make_model", "make_position", "make_snapshot"]
