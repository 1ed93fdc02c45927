"""External service clients: SMTP transport and Postgres."""

from .postgres_client import PostgresClient
from .smtp_client import SmtpTransport, build_message

__all__ = [
    'PostgresClient',
    'SmtpTransport',
    'build_message',
]
