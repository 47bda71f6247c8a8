"""Non-fatal configuration checks."""

import warnings
from typing import Any, Dict, List


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check raw configuration for settings that are valid but probably unintended.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    messages = []

    providers = config_dict.get("providers") or {}
    if isinstance(providers, dict):
        mode = str(providers.get("mode", "mock")).lower()
        failure_rate = providers.get("mock_failure_rate", 0)
        if mode == "live" and failure_rate:
            messages.append("providers.mock_failure_rate is ignored when providers.mode is 'live'")
        if mode == "mock" and isinstance(failure_rate, (int, float)) and failure_rate > 0.5:
            messages.append(
                f"providers.mock_failure_rate ({failure_rate}) will fail most mock deliveries"
            )

    retry = config_dict.get("retry") or {}
    if isinstance(retry, dict) and retry.get("max_retries") == 0:
        messages.append("retry.max_retries is 0: transient failures will not be retried")

    notifications = config_dict.get("notifications") or {}
    if isinstance(notifications, dict):
        disabled = set(notifications.get("disabled_types") or [])
        transactional = set(notifications.get("transactional_types") or [])
        overlap = disabled & transactional
        if overlap:
            messages.append(
                f"Transactional types are disabled and will never be sent: {', '.join(sorted(overlap))}"
            )
        if notifications.get("pause_threshold") == 0:
            messages.append("notifications.pause_threshold is 0: failing types are never paused")

    interval = config_dict.get("retry_sweep_interval")
    if isinstance(interval, str) and interval.strip().lower() in ("1m", "pt1m", "60s"):
        messages.append(
            f"Short retry_sweep_interval ({interval}) is shorter than the default base retry delay"
        )

    return messages


def emit_warnings(warning_messages: List[str]) -> None:
    """Emit each message through the warnings module as a UserWarning."""
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
