"""Tests for the typed settings builders."""

from __future__ import annotations

import dataclasses

import pytest

from certwright.config import build_settings


class TestDefaults:
    def test_scheduled_task(self):
        s = build_settings({}).scheduled_task
        assert (s.renewal_days, s.renewal_days_range, s.renewal_minimum_valid_days) == (30, 0, 7)
        assert s.renewal_disable_server_schedule is False
        assert s.execution_time_limit == 7200

    def test_validation(self):
        v = build_settings({}).validation
        assert v.disable_multithreading is True
        assert v.parallel_batch_size == 100
        assert v.prevalidate_dns is True
        assert v.prevalidate_dns_local is False
        assert v.dns_servers == ()

    def test_cache_path_follows_configuration_path(self):
        c = build_settings({"client": {"configuration_path": "/srv/cw"}}).client
        assert c.cache_path == "/srv/cw/cache"

    def test_explicit_cache_path(self):
        c = build_settings({"client": {"cache_path": "/tmp/c"}}).client
        assert c.cache_path == "/tmp/c"

    def test_none_sections(self):
        s = build_settings({"validation": None, "csr": None})
        assert s.csr.key_type == "ec"
        assert s.csr.ec_curve == "secp384r1"


class TestOverrides:
    def test_values_applied(self):
        s = build_settings(
            {
                "scheduled_task": {"renewal_days": 20, "renewal_days_range": 5},
                "validation": {"dns_servers": ["8.8.8.8"], "disable_multithreading": False},
                "logging": {"level": "DEBUG", "loggers": {"certwright.challenge": "WARNING"}},
            },
        )
        assert s.scheduled_task.renewal_days == 20
        assert s.scheduled_task.renewal_days_range == 5
        assert s.validation.dns_servers == ("8.8.8.8",)
        assert s.validation.disable_multithreading is False
        assert s.logging.loggers == {"certwright.challenge": "WARNING"}

    def test_frozen(self):
        s = build_settings({})
        with pytest.raises(dataclasses.FrozenInstanceError):
            s.validation.call_timeout = 1  # type: ignore[misc]
