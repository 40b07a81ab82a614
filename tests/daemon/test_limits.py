"""Tests for open file limit adjustment."""

from __future__ import annotations

from unittest.mock import patch

import pytest

resource = pytest.importorskip("resource")

from nmcd.daemon.limits import set_limits  # noqa: E402
from nmcd.utils.exceptions import NmcdError  # noqa: E402

pytestmark = [pytest.mark.daemon]


def test_already_high_enough_is_left_alone():
    with patch.object(resource, "getrlimit", return_value=(8192, 8192)), patch.object(
        resource, "setrlimit"
    ) as setrlimit:
        set_limits()
    setrlimit.assert_not_called()


def test_raises_soft_limit_to_wanted():
    with patch.object(resource, "getrlimit", return_value=(1024, 65536)), patch.object(
        resource, "setrlimit"
    ) as setrlimit:
        set_limits()
    setrlimit.assert_called_once_with(resource.RLIMIT_NOFILE, (4096, 65536))


def test_caps_at_hard_limit():
    with patch.object(resource, "getrlimit", return_value=(1024, 3000)), patch.object(
        resource, "setrlimit"
    ) as setrlimit:
        set_limits()
    setrlimit.assert_called_once_with(resource.RLIMIT_NOFILE, (3000, 3000))


def test_hard_limit_below_required():
    with patch.object(resource, "getrlimit", return_value=(256, 1024)), patch.object(
        resource, "setrlimit"
    ) as setrlimit:
        with pytest.raises(NmcdError, match="need at least 2048"):
            set_limits()
    setrlimit.assert_not_called()
