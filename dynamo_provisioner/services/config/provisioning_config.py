from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional


class FailurePolicy(str, Enum):
    """What happens to the other tasks once one model fails.

    In every policy no further model is started after the first failure.

    RUN_TO_COMPLETION: report the first error at once; dispatched tasks keep
    running in the background until their own terminal state.
    WAIT_FOR_IN_FLIGHT: let dispatched tasks finish, then report the first error.
    CANCEL: cancel every in-flight task, then report the first error.
    """

    RUN_TO_COMPLETION = "run_to_completion"
    WAIT_FOR_IN_FLIGHT = "wait_for_in_flight"
    CANCEL = "cancel"


def _env_int(name: str, default: Optional[int], *, minimum: int) -> Optional[int]:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    if raw.lower() == "none":
        return None
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}; must be an integer") from exc
    if value < minimum:
        raise ValueError(f"Invalid {name}; must be >= {minimum}")
    return value


def _env_float(name: str, default: Optional[float], *, minimum: float, inclusive: bool = True) -> Optional[float]:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    if raw.lower() == "none":
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}; must be a number") from exc
    if value < minimum or (not inclusive and value == minimum):
        raise ValueError(f"Invalid {name}; must be {'>=' if inclusive else '>'} {minimum}")
    return value


@dataclass(frozen=True)
class ProvisioningConfig:
    """Runtime configuration for the table provisioning orchestrator.

    The wait for a freshly created table is bounded by `max_poll_attempts` and/or
    `wait_timeout_seconds`. Setting both to None gives an unbounded wait that only
    ends when the table reports ACTIVE or a status query fails.
    """

    _DEFAULT_CONCURRENCY: ClassVar[int] = 5
    _DEFAULT_POLL_INTERVAL_SECONDS: ClassVar[float] = 1.0
    _DEFAULT_WAIT_TIMEOUT_SECONDS: ClassVar[float] = 300.0

    concurrency: int = _DEFAULT_CONCURRENCY
    poll_interval_seconds: float = _DEFAULT_POLL_INTERVAL_SECONDS
    max_poll_attempts: Optional[int] = None
    wait_timeout_seconds: Optional[float] = _DEFAULT_WAIT_TIMEOUT_SECONDS
    failure_policy: FailurePolicy = FailurePolicy.RUN_TO_COMPLETION
    show_progress: bool = False

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.poll_interval_seconds < 0:
            raise ValueError("poll_interval_seconds must be >= 0")
        if self.max_poll_attempts is not None and self.max_poll_attempts < 1:
            raise ValueError("max_poll_attempts must be >= 1 (or None)")
        if self.wait_timeout_seconds is not None and self.wait_timeout_seconds <= 0:
            raise ValueError("wait_timeout_seconds must be > 0 (or None)")

    @property
    def is_unbounded(self) -> bool:
        return self.max_poll_attempts is None and self.wait_timeout_seconds is None

    @staticmethod
    def legacy() -> "ProvisioningConfig":
        """Unbounded wait, no cancellation: the historical createTables behaviour."""

        return ProvisioningConfig(max_poll_attempts=None, wait_timeout_seconds=None)

    @staticmethod
    def from_env() -> "ProvisioningConfig":
        concurrency = _env_int("TABLE_PROVISION_CONCURRENCY", ProvisioningConfig._DEFAULT_CONCURRENCY, minimum=1)
        if concurrency is None:
            raise ValueError("Invalid TABLE_PROVISION_CONCURRENCY; must be an integer")

        poll_interval = _env_float(
            "TABLE_POLL_INTERVAL_SECONDS", ProvisioningConfig._DEFAULT_POLL_INTERVAL_SECONDS, minimum=0
        )
        if poll_interval is None:
            raise ValueError("Invalid TABLE_POLL_INTERVAL_SECONDS; must be a number")

        policy_raw = (os.getenv("TABLE_FAILURE_POLICY") or "").strip().lower() or FailurePolicy.RUN_TO_COMPLETION.value
        try:
            policy = FailurePolicy(policy_raw)
        except ValueError as exc:
            allowed = ", ".join(p.value for p in FailurePolicy)
            raise ValueError(f"Invalid TABLE_FAILURE_POLICY; expected one of: {allowed}") from exc

        progress_raw = (os.getenv("TABLE_PROVISION_PROGRESS") or "").strip().lower()

        return ProvisioningConfig(
            concurrency=concurrency,
            poll_interval_seconds=poll_interval,
            max_poll_attempts=_env_int("TABLE_MAX_POLL_ATTEMPTS", None, minimum=1),
            wait_timeout_seconds=_env_float(
                "TABLE_WAIT_TIMEOUT_SECONDS",
                ProvisioningConfig._DEFAULT_WAIT_TIMEOUT_SECONDS,
                minimum=0,
                inclusive=False,
            ),
            failure_policy=policy,
            show_progress=progress_raw in {"1", "true", "yes", "on"},
        )
