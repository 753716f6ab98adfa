"""Synthetic quote and candle fallback for provider entitlement gaps.

Used only when the real provider is forbidden or rate limited for a path.
Everything produced here carries ``"synthetic": True`` so consumers can
tell it apart from live market data.

The candle path is a straight line from the previous close to the current
price with no intrabar range and constant volume. Indicators computed on it
are degenerate (no volatility), which callers should keep in mind.
"""

import time

#: Fixed reference prices for well-known crypto and forex symbols.
_CRYPTO_BASES = {"BTC": 60000.0, "ETH": 3000.0, "SOL": 150.0}
_FOREX_BASES = {"USD_JPY": 150.0, "USD_CHF": 0.9, "USD_CAD": 1.35}

_DAY_SECONDS = 86_400


def symbol_base_price(symbol: str) -> float:
    """Deterministic reference price for a symbol.

    Crypto (``*USDT``) and forex (``A_B``) pairs use fixed tables; other
    symbols hash into the 40..499 range so the same symbol always maps to
    the same price.
    """
    normalized = (symbol or "").strip().upper()
    if not normalized:
        return 100.0

    if normalized.endswith("USDT"):
        for prefix, price in _CRYPTO_BASES.items():
            if normalized.startswith(prefix):
                return price
        return 100.0

    if "_" in normalized:
        return _FOREX_BASES.get(normalized, 1.1)

    h = 0
    for ch in normalized:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return float(40 + h % 460)


def synthetic_quote(symbol: str, retry_after: float = 0.0, now: float | None = None) -> dict:
    """Flat quote at the symbol's reference price."""
    price = round(symbol_base_price(symbol), 6)
    return {
        "c": price,
        "pc": price,
        "d": None,
        "dp": None,
        "h": price,
        "l": price,
        "o": price,
        "t": int(now if now is not None else time.time()),
        "synthetic": True,
        "retry_after": retry_after,
    }


def synthetic_candles(
    symbol: str,
    days: int = 260,
    end_ts: int | None = None,
    price: float | None = None,
    previous_close: float | None = None,
) -> dict:
    """Daily candle arrays interpolated linearly toward ``price``.

    Args:
        symbol: Symbol used for the reference price when ``price`` is unset.
        days: Number of daily bars.
        end_ts: Timestamp of the last bar (defaults to now).
        price: Last known price; reference price when None.
        previous_close: Starting price of the path; equals ``price`` when
            None, which makes the path flat.

    Returns:
        Provider-shaped payload (``s``, ``t``, ``o``, ``h``, ``l``, ``c``,
        ``v``) flagged with ``synthetic``.
    """
    end = int(end_ts if end_ts is not None else time.time())
    last = price if price and price > 0 else symbol_base_price(symbol)
    first = previous_close if previous_close and previous_close > 0 else last
    count = max(days, 2)

    closes = [first + (last - first) * i / (count - 1) for i in range(count)]
    times = [end - (count - 1 - i) * _DAY_SECONDS for i in range(count)]
    opens = [closes[0], *closes[:-1]]

    return {
        "s": "ok",
        "t": times,
        "o": opens,
        "h": [max(o, c) for o, c in zip(opens, closes)],
        "l": [min(o, c) for o, c in zip(opens, closes)],
        "c": closes,
        "v": [1_000_000.0] * count,
        "synthetic": True,
    }
