"""Tests for surfboard/evaluate.py."""

import pytest
from surfboard.evaluate import action_description, exceeded, notification_message
from surfboard.parse import ErrorCount
from util.config import RemediationRequest, Thresholds

THRESHOLDS = Thresholds(correctable_threshold=100_000, uncorrectable_threshold=1000)


@pytest.mark.parametrize(
    "correctable,uncorrectable,expected",
    [
        (0, 0, False),
        (1500, 50, False),
        (99_999, 999, False),
        (100_000, 0, True),
        (0, 1000, True),
        (250_000, 50, True),
        (250_000, 5000, True),
    ],
)
def test_exceeded(correctable, uncorrectable, expected):
    assert exceeded(ErrorCount(correctable, uncorrectable), THRESHOLDS) is expected


def test_zero_thresholds_always_act():
    assert exceeded(ErrorCount(0, 0), Thresholds(0, 0))


def test_channels_do_not_matter():
    assert not exceeded(ErrorCount(1, 1, channels=10_000), THRESHOLDS)


class TestMessages:
    def test_reboot_message(self):
        body = notification_message(ErrorCount(250_000, 50), RemediationRequest())
        assert body == "Rebooting modem shortly: found 250000 correctable, 50 uncorrectable errors."

    def test_reset_dry_run_message(self):
        body = notification_message(ErrorCount(1, 2), RemediationRequest(reset=True, dry_run=True))
        assert body == (
            "Rebooting and resetting modem shortly: found 1 correctable, 2 uncorrectable errors"
            " (jk this is a dry run)."
        )

    @pytest.mark.parametrize(
        "request_,expected",
        [
            (RemediationRequest(), "issuing modem reboot"),
            (RemediationRequest(reset=True), "issuing modem reboot and reset"),
            (RemediationRequest(dry_run=True), "would issue modem reboot"),
            (RemediationRequest(reset=True, dry_run=True), "would issue modem reboot"),
        ],
    )
    def test_action_description(self, request_, expected):
        assert action_description(request_) == expected
