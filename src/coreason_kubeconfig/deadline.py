# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_kubeconfig

"""
A single run-wide deadline shared by every network call and polling loop.
"""

from collections.abc import Iterator
from contextlib import contextmanager

import anyio

from coreason_kubeconfig.exceptions import DeadlineExceededError


class Deadline:
    """
    Absolute deadline on the anyio clock.

    All waits in a resolution run go through one instance, so when it expires every
    loop stops at once, mid-sleep rather than at its next tick.

    Attributes:
        timeout (float): The total budget in seconds.
    """

    def __init__(self, timeout: float) -> None:
        """
        Initialize the Deadline. Must be called from within a running event loop.

        Args:
            timeout: The total budget in seconds, counted from now.
        """
        self.timeout = timeout
        self._started_at = anyio.current_time()
        self._expires_at = self._started_at + timeout

    def remaining(self) -> float:
        return max(0.0, self._expires_at - anyio.current_time())

    def expired(self) -> bool:
        return self.remaining() <= 0

    def remaining_str(self) -> str:
        return f"{round(self.remaining())}s"

    def elapsed(self) -> float:
        return anyio.current_time() - self._started_at

    def elapsed_str(self) -> str:
        return f"{round(self.elapsed())}s"

    @contextmanager
    def bound(self, step: str, limit: float | None = None) -> Iterator[None]:
        """
        Runs the enclosed block under the remaining budget, optionally capped by `limit`.

        Args:
            step: Human readable name of the step, used in the error message.
            limit: Optional per-call sub-timeout in seconds.

        Raises:
            DeadlineExceededError: If the block does not finish in time.
        """
        remaining = self.remaining()
        capped = limit is not None and limit < remaining
        budget = min(limit, remaining) if limit is not None else remaining
        try:
            with anyio.fail_after(budget):
                yield
        except TimeoutError as e:
            if capped:
                raise DeadlineExceededError(f"{step}: timed out after {budget:g}s") from e
            raise DeadlineExceededError(f"{step}: deadline of {self.timeout:g}s exceeded") from e
