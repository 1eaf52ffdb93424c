"""In-memory email adapter: keeps every delivered message for assertions."""

from uuid import uuid4

from storefront.channel.email_port import Delivery, EmailPort


class FakeEmailAdapter(EmailPort):
    def __init__(self) -> None:
        self.sent_emails: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Mailbox unavailable"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Mailbox unavailable") -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def send(self, to: str, subject: str, body: str, html_body: str | None = None) -> Delivery:
        if not self.should_succeed:
            return Delivery(error=self.failure_reason)

        message_id = f"fake-{uuid4().hex[:12]}@storefront.test"
        self.sent_emails.append(
            {"message_id": message_id, "to": to, "subject": subject, "body": body, "html_body": html_body}
        )
        return Delivery(message_id=message_id)
