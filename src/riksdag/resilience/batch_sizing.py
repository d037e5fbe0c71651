"""Adaptive batch sizing from recent latency and error history."""
from typing import Optional

from riksdag.config import ResourceConfig

SCALE_UP = 1.5
SCALE_DOWN = 0.5


def compute_batch_size(
    resource: ResourceConfig,
    last_latency: Optional[float],
    error_count: int,
    fast_response_seconds: float = 1.0,
    slow_response_seconds: float = 5.0,
    error_floor_threshold: int = 3,
) -> int:
    """
    Next batch size for a resource type.

    Errors dominate: more than error_floor_threshold consecutive errors drops
    straight to min_batch_size, and any error blocks scaling up. Otherwise a
    fast previous response grows the default, a slow one shrinks it.
    The result is always within [min_batch_size, max_batch_size].

    Args:
        resource: ResourceConfig with default/min/max sizes.
        last_latency: Seconds the previous request took, or None if unknown.
        error_count: Consecutive failed cycles for this resource type.
    """
    low, high = resource.min_batch_size, resource.max_batch_size
    if error_count > error_floor_threshold:
        return low

    size = float(resource.default_batch_size)
    if error_count > 0:
        size /= 1 + error_count
        if last_latency is not None and last_latency >= slow_response_seconds:
            size *= SCALE_DOWN
    elif last_latency is not None:
        if last_latency <= fast_response_seconds:
            size *= SCALE_UP
        elif last_latency >= slow_response_seconds:
            size *= SCALE_DOWN

    return max(low, min(high, int(size)))


def aligned_batch_size(offset: int, size: int) -> int:
    """
    Largest page size <= size that divides offset evenly.

    The API pages by number (page = offset // size + 1), so a page only starts
    exactly at the cursor when size divides offset. Returns size unchanged at
    offset 0. May fall below a resource's min_batch_size, down to 1.
    """
    if offset <= 0 or size <= 0:
        return size
    for candidate in range(min(size, offset), 1, -1):
        if offset % candidate == 0:
            return candidate
    return 1
