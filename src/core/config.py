"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely. All
durations are in seconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class QueueConfig:
    """Admission, pacing and expiry settings for the report queue."""

    report_delay_min: float = 60.0
    report_delay_max: float = 180.0
    max_reports_per_hour: int = 10
    max_reports_per_day: int = 50
    action_ttl: float = 3600.0
    tick_interval: float = 30.0

    def __post_init__(self) -> None:
        if self.report_delay_min < 0 or self.report_delay_max < self.report_delay_min:
            raise ValueError("report delay range must satisfy 0 <= min <= max")
        if self.max_reports_per_hour < 0 or self.max_reports_per_day < 0:
            raise ValueError("report caps must not be negative")


@dataclass(frozen=True)
class PollConfig:
    """Polling fallback settings."""

    interval: float = 45.0
    page_size: int = 20
    initial_delay: float = 10.0


@dataclass(frozen=True)
class ReconnectConfig:
    """Exponential backoff settings for dropped sessions."""

    max_attempts: int = 5
    base_delay: float = 1.0

    def delay_for(self, attempt: int) -> float:
        """Return the wait before the 1-indexed ``attempt``."""

        return self.base_delay * (2 ** (attempt - 1))


@dataclass(frozen=True)
class MonitorConfig:
    queue: QueueConfig = field(default_factory=QueueConfig)
    poll: PollConfig = field(default_factory=PollConfig)
    reconnect: ReconnectConfig = field(default_factory=ReconnectConfig)
