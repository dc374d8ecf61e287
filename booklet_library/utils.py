import time
import uuid


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


def next_stamp(previous: int = 0) -> int:
    """Modification stamp strictly later than `previous`, even within the same millisecond."""
    return max(now_ms(), (previous or 0) + 1)
