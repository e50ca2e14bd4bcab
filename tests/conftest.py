"""Shared fixtures."""
import os
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from processor.dates import REFERENCE_TZ


@pytest.fixture(autouse=True)
def aws_credentials():
    """Fake AWS credentials so boto3 never reaches a real account."""
    env_vars = {
        'AWS_ACCESS_KEY_ID': 'testing',
        'AWS_SECRET_ACCESS_KEY': 'testing',
        'AWS_SECURITY_TOKEN': 'testing',
        'AWS_SESSION_TOKEN': 'testing',
        'AWS_DEFAULT_REGION': 'us-east-1'
    }
    with patch.dict(os.environ, env_vars):
        yield env_vars


@pytest.fixture
def fixed_now():
    """Sunday 2024-03-10, noon Mountain Time."""
    return datetime(2024, 3, 10, 12, 0, tzinfo=REFERENCE_TZ)


# 2024-03-11 03:00 UTC is still the evening of 2024-03-10 in Denver
UTC_ROLLOVER = datetime(2024, 3, 11, 3, 0, tzinfo=timezone.utc)


class RolloverDatetime(datetime):
    """datetime whose clock is frozen at UTC_ROLLOVER."""

    @classmethod
    def now(cls, tz=None):
        if tz is None:
            return UTC_ROLLOVER.replace(tzinfo=None)
        return UTC_ROLLOVER.astimezone(tz)


@pytest.fixture
def utc_rollover():
    """Freeze the calendar clock after UTC midnight but before Mountain midnight."""
    with patch('processor.dates.datetime', RolloverDatetime):
        yield UTC_ROLLOVER
