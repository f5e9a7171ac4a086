"""The one place thresholds get compared, plus the text we tell humans about it."""

from surfboard.parse import ErrorCount
from util.config import RemediationRequest, Thresholds


def exceeded(counts: ErrorCount, thresholds: Thresholds) -> bool:
    """True when either counter has reached its threshold."""
    return not (
        counts.correctable < thresholds.correctable_threshold
        and counts.uncorrectable < thresholds.uncorrectable_threshold
    )


def notification_message(counts: ErrorCount, request: RemediationRequest) -> str:
    return (
        f"Rebooting{' and resetting' if request.reset else ''} modem shortly: "
        f"found {counts.correctable} correctable, {counts.uncorrectable} uncorrectable errors"
        f"{' (jk this is a dry run)' if request.dry_run else ''}."
    )


def action_description(request: RemediationRequest) -> str:
    if request.dry_run:
        return "would issue modem reboot"
    return f"issuing modem reboot{' and reset' if request.reset else ''}"
