"""Configuration dataclasses for wrist gesture capture."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class CaptureConfig:
    server_url: str = "http://127.0.0.1:5001/post"
    countdown_from: int = 3
    countdown_step_s: float = 1.0  # one display tick per number
    capture_duration_s: float = 3.0  # measured from entry into capturing
    cooldown_s: float = 0.5  # "Done" shown before accepting a new trigger
    sampling_interval_s: float = 0.01  # requested, platform decides
    file_prefix: str = "gesture"
    file_ext: str = "csv"
    request_timeout_s: Optional[float] = None  # None = no client-side timeout

    def validate(self) -> "CaptureConfig":
        """Check value ranges and return self.

        Raises:
            ValueError: On a non-positive duration, a negative countdown or an
                empty file prefix/extension.
        """
        if self.countdown_from < 0:
            raise ValueError("countdown_from must be >= 0")
        for name in (
            "countdown_step_s",
            "capture_duration_s",
            "sampling_interval_s",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        if self.cooldown_s < 0:
            raise ValueError("cooldown_s must be >= 0")
        if self.request_timeout_s is not None and self.request_timeout_s <= 0:
            raise ValueError("request_timeout_s must be > 0 when set")
        if not self.file_prefix or not self.file_ext:
            raise ValueError("file_prefix and file_ext must not be empty")
        if not self.server_url.startswith(("http://", "https://")):
            raise ValueError(f"server_url must be an http(s) URL: {self.server_url}")
        return self

    @property
    def countdown_total_s(self) -> float:
        return self.countdown_from * self.countdown_step_s
