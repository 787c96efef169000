"""Human-readable price formatting for logs and signal reasons."""

from __future__ import annotations


def format_price(price: float) -> str:
    # Fewer decimals for expensive instruments, more for sub-cent coins.
    if price >= 1000:
        return f"{price:.2f}"
    if price >= 1:
        return f"{price:.4f}"
    if price >= 0.01:
        return f"{price:.6f}"
    return f"{price:.8f}"
