"""Unit tests for human-readable formatting helpers."""

from __future__ import annotations

import pytest

from copy_monitor import formatting


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, "0 B"),
        (0, "0 B"),
        (-5, "0 B"),
        (512, "512.00 B"),
        (1536, "1.50 KB"),
        (formatting.BYTES_PER_GB * 3, "3.00 GB"),
        (1024 ** 5, "1024.00 TB"),
    ],
)
def test_format_size(value, expected):
    assert formatting.format_size(value) == expected


def test_format_speed():
    assert formatting.format_speed(2 * 1024 * 1024) == "2.00 MB/s"
    assert formatting.format_speed(0) == "0 B/s"


@pytest.mark.parametrize(
    "seconds,expected",
    [
        (None, "--:--"),
        (0, "--:--"),
        (5, "0:05"),
        (125.9, "2:05"),
        (3725, "1:02:05"),
    ],
)
def test_format_duration(seconds, expected):
    assert formatting.format_duration(seconds) == expected


def test_bytes_to_gb():
    assert formatting.bytes_to_gb(formatting.BYTES_PER_GB // 4) == 0.25
    assert formatting.bytes_to_gb(None) == 0
