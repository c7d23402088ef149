# Copyright (c) 2025 Marc Schütze <scharc@gmail.com>
# SPDX-License-Identifier: MIT
# See LICENSE file in the project root for full license information.

"""Bounded polling shared by every wait loop in construct."""

import time
from typing import Callable


def poll_until(
    predicate: Callable[[], bool],
    interval: float,
    timeout: float,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Call predicate until it returns True or the attempts run out.

    The number of attempts is timeout / interval (at least one), so a
    0.5s interval with a 10s timeout probes 20 times. The only way to
    cancel a poll is to let it time out.

    Args:
        predicate: Zero-argument check, evaluated before each sleep
        interval: Seconds between attempts
        timeout: Total budget in seconds
        sleep: Sleep function (injectable for tests)

    Returns:
        True if the predicate succeeded within the budget, False otherwise
    """
    attempts = max(1, round(timeout / interval)) if interval > 0 else 1
    for attempt in range(attempts):
        if predicate():
            return True
        if attempt < attempts - 1:
            sleep(interval)
    return False
