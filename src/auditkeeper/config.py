"""Application configuration dataclasses.

Frozen dataclasses with sensible defaults for each subsystem.
No env-var loading or YAML parsing — just plain defaults that can
be overridden at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AuditConfig:
    """Write-path buffering, retention and read-path limits."""

    # Write queue / flusher
    batch_size: int = 100
    max_queue_size: int = 1000
    flush_interval_seconds: float = 5.0
    # Retention horizon (2 years)
    retention_days: int = 730
    # Query pagination
    default_page_size: int = 50
    max_page_size: int = 100
    default_statistics_days: int = 30

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.max_queue_size < self.batch_size:
            raise ValueError("max_queue_size must be >= batch_size")
        if self.flush_interval_seconds <= 0:
            raise ValueError("flush_interval_seconds must be > 0")
        if self.retention_days < 1:
            raise ValueError("retention_days must be >= 1")
        if not 1 <= self.default_page_size <= self.max_page_size:
            raise ValueError("default_page_size must be within 1..max_page_size")


@dataclass(frozen=True)
class RedisSinkConfig:
    """Settings for the Redis-backed audit sink."""

    url: str = "redis://localhost:6379"
    key_prefix: str = "auditkeeper"
    # Lifetime of scratch keys used to intersect indexes during queries
    temp_key_ttl_seconds: int = 30
