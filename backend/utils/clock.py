from datetime import datetime, timezone

# Naive UTC timestamp, matching how DateTime columns are stored
def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
