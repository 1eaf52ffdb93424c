"""Email channel registry.

``EMAIL_ADAPTER`` selects ``fake`` (default) or ``smtp``.
"""

import os

from storefront.channel.email_port import EmailPort

_email_instance: EmailPort | None = None


def get_email_channel() -> EmailPort:
    """Return the configured email adapter (singleton)."""
    global _email_instance
    if _email_instance is None:
        adapter = os.environ.get("EMAIL_ADAPTER", "fake")
        if adapter == "fake":
            from storefront.channel.fake_email import FakeEmailAdapter

            _email_instance = FakeEmailAdapter()
        elif adapter == "smtp":
            from storefront.channel.smtp_email import SMTPEmailAdapter

            _email_instance = SMTPEmailAdapter()
        else:
            raise ValueError(f"Unknown email adapter: {adapter}")
    return _email_instance


def reset_email_channel() -> None:
    """Reset the email singleton (useful for testing)."""
    global _email_instance
    _email_instance = None
