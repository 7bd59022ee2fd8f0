from datetime import datetime, timedelta, timezone

from models import Player

T0 = datetime(2024, 11, 23, 12, 0, tzinfo=timezone.utc)


def make_player(username, minutes=0):
    return Player(
        email     = f"{username}@example.com",
        username  = username,
        avatar    = "Girl1",
        joined_at = T0 + timedelta(minutes=minutes),
    )
