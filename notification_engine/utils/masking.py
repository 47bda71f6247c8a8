"""Recipient masking for log output."""


def mask_recipient(recipient: str) -> str:
    """Mask an email address or phone number for logging.

    Keeps enough of the value to correlate log lines without writing the
    full address to log storage.

    Examples:
        >>> mask_recipient("jane.doe@example.com")
        'ja***@example.com'
        >>> mask_recipient("+16575551234")
        '***1234'
    """
    if not recipient:
        return ""

    if "@" in recipient:
        local, _, domain = recipient.partition("@")
        return f"{local[:2]}***@{domain}"

    if len(recipient) <= 4:
        return "***"
    return f"***{recipient[-4:]}"
