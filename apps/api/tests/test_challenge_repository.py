"""Tests for the Supabase-backed challenge repository, with a mocked client."""

from datetime import datetime
from unittest.mock import MagicMock

from app.services.challenge_repository import ChallengeRepository

from fakes import make_challenge


def test_save_writes_timezone_aware_timestamp():
    client = MagicMock()
    repository = ChallengeRepository(client=client)

    repository.save_challenge(make_challenge(id="c1"))

    client.table.assert_called_with("challenges")
    payload = client.table.return_value.update.call_args.args[0]
    assert payload["status"] == "active"
    assert datetime.fromisoformat(payload["updated_at"]).tzinfo is not None
    client.table.return_value.update.return_value.eq.assert_called_with("id", "c1")
