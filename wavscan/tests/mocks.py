import hashlib
import hmac
import json
import time
from typing import List, Optional

from wavscan.features.mail.service import MailError, MailErrorKind, Mailer, OutgoingMail

WEBHOOK_SECRET = "whsec_test_wavscan_0123456789abcdef"


class FakeMailer(Mailer):
    """Records outgoing mail instead of talking to an SMTP server."""

    def __init__(self, fail_with: Optional[MailErrorKind] = None):
        super().__init__(host="smtp.test", port=587, sender="noreply@wavsocialscan.test")
        self.fail_with = fail_with
        self.sent: List[OutgoingMail] = []

    def send(self, mail: OutgoingMail) -> None:
        if self.fail_with is not None:
            raise MailError(self.fail_with, "simulated failure")
        self.sent.append(mail)

    def last_to(self, address: str) -> OutgoingMail:
        for mail in reversed(self.sent):
            if mail.to == address:
                return mail
        raise AssertionError(f"no mail sent to {address}")


def token_from_mail(mail: OutgoingMail) -> str:
    """Pull the `token` query value out of a verification or reset link."""
    start = mail.body.index("token=") + len("token=")
    end = start
    while end < len(mail.body) and mail.body[end] not in "&\n ":
        end += 1
    return mail.body[start:end]


def stripe_event(event_type: str, obj: dict, event_id: str = "evt_test_1") -> str:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "livemode": False,
        "data": {"object": obj},
    })


def stripe_signature(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a `stripe-signature` header the way Stripe signs deliveries."""
    ts = int(timestamp if timestamp is not None else time.time())
    signed = f"{ts}.{payload}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"
