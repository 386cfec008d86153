from datetime import datetime, timezone


def utcnow() -> datetime:
    # Naive UTC, the form the DateTime columns round-trip
    return datetime.now(timezone.utc).replace(tzinfo=None)


def epoch_millis(moment: datetime) -> int:
    return int(moment.replace(tzinfo=timezone.utc).timestamp() * 1000)
