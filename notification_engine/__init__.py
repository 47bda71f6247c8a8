"""Notification Delivery Engine: templated email/SMS delivery with retries."""

__version__ = "1.0.0"
