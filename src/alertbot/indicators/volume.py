"""Volume anomaly detection."""


def volume_ratio(volumes: list[float], period: int = 20) -> float | None:
    """Latest volume divided by the trailing ``period`` average volume.

    The average window includes the latest bar. Returns None with fewer
    than ``period`` points or a zero average (e.g. forex feeds without
    volume).
    """
    if len(volumes) < period:
        return None
    avg = sum(volumes[-period:]) / period
    if not avg:
        return None
    return volumes[-1] / avg
