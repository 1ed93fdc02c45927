"""
SMTP transport built on aiosmtplib.

Each ``deliver`` call opens its own connection, sends one message and
closes it, so one transport instance is safe to share between the
concurrent tasks of a batch. No retries: a failure is reported once.
"""

from __future__ import annotations

import mimetypes
from email.message import EmailMessage
from pathlib import Path

import aiosmtplib
import structlog

from ..config import config
from ..errors import wrap_smtp_error
from ..models import DeliveryJob

logger = structlog.get_logger(__name__)


def build_message(job: DeliveryJob, sender: str, copy_to_sender: bool = False) -> EmailMessage:
    """Compose the e-mail for one job, attaching the receipt when present."""
    message = EmailMessage()
    message['From'] = sender
    message['To'] = job.recipient
    if copy_to_sender and sender and sender != job.recipient:
        message['Cc'] = sender
    message['Subject'] = job.subject
    message.set_content(job.body or '')

    if job.artifact_path is not None:
        path = Path(job.artifact_path)
        mime_type, _ = mimetypes.guess_type(path.name)
        maintype, _, subtype = (mime_type or 'application/octet-stream').partition('/')
        message.add_attachment(
            path.read_bytes(),
            maintype=maintype,
            subtype=subtype,
            filename=path.name,
        )
    return message


class SmtpTransport:
    """
    Transport that sends each delivery job as its own SMTP session.

    With ``copy_to_sender`` the sender address is added as a recipient so
    the organization keeps a copy of every receipt it sends.
    """

    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool = True,
        timeout: float = 30,
        copy_to_sender: bool = True,
        sender_email: str | None = None,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.copy_to_sender = copy_to_sender
        self._sender_email = sender_email or username

    @classmethod
    def from_config(cls) -> SmtpTransport:
        """Create a transport from environment configuration."""
        return cls(
            host=config.SMTP_HOST,
            port=config.SMTP_PORT,
            username=config.SMTP_EMAIL,
            password=config.SMTP_PASSWORD,
            use_tls=config.SMTP_USE_TLS,
            timeout=config.SMTP_TIMEOUT,
            copy_to_sender=config.SMTP_COPY_TO_SENDER,
        )

    @property
    def sender_email(self) -> str:
        return self._sender_email

    def recipients_for(self, job: DeliveryJob) -> list[str]:
        recipients = [job.recipient]
        if self.copy_to_sender and self.sender_email and self.sender_email != job.recipient:
            recipients.append(self.sender_email)
        return recipients

    async def deliver(self, job: DeliveryJob) -> None:
        """
        Send one job.

        Raises:
            TransportError: Any SMTP or network failure, typed by cause
        """
        try:
            message = build_message(job, self.sender_email, self.copy_to_sender)
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                use_tls=self.use_tls,
                timeout=self.timeout,
                sender=self.sender_email,
                recipients=self.recipients_for(job),
            )
        except Exception as e:
            raise wrap_smtp_error(e, context={'recipient': job.recipient}) from e

        logger.debug('smtp.delivered', recipient=job.recipient)
