from dataclasses import replace

import pytest

from wrist_capture import build_parser, config_from_args
from wrist_capture.config import CaptureConfig


def test_defaults_match_watch_timings() -> None:
    config = CaptureConfig().validate()
    assert config.countdown_total_s == 3.0
    assert config.capture_duration_s == 3.0
    assert config.cooldown_s == 0.5
    assert config.request_timeout_s is None


@pytest.mark.parametrize(
    "changes",
    [
        {"capture_duration_s": 0},
        {"countdown_step_s": -1.0},
        {"sampling_interval_s": 0},
        {"cooldown_s": -0.1},
        {"countdown_from": -1},
        {"file_prefix": ""},
        {"request_timeout_s": 0},
        {"server_url": "ftp://collector/post"},
    ],
)
def test_invalid_values_rejected(changes: dict) -> None:
    with pytest.raises(ValueError):
        replace(CaptureConfig(), **changes).validate()


def test_cli_flags_map_to_config() -> None:
    args = build_parser().parse_args(
        [
            "--server-url",
            "http://10.0.0.5:5001/post",
            "--duration",
            "2.5",
            "--countdown",
            "5",
            "--file-prefix",
            "tap",
            "--mock",
            "--cycles",
            "2",
        ]
    )
    config = config_from_args(args)

    assert config.server_url == "http://10.0.0.5:5001/post"
    assert config.capture_duration_s == 2.5
    assert config.countdown_from == 5
    assert config.file_prefix == "tap"
    assert args.mock
    assert args.cycles == 2


def test_cli_defaults_come_from_config() -> None:
    config = config_from_args(build_parser().parse_args([]))
    assert config == CaptureConfig()


def test_log_level_defaults_to_warning() -> None:
    assert build_parser().parse_args([]).log_level == "WARNING"
