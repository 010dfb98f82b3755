import os
import smtplib
import ssl
import logging
from dataclasses import dataclass
from email.message import EmailMessage
from typing import List, Optional

logger = logging.getLogger(__name__)

SMTP_PREFIXES = ("SMTP_PRIMARY", "SMTP_SECONDARY")


@dataclass
class SMTPConfig:
    name: str
    host: str
    port: int
    user: Optional[str]
    password: Optional[str]
    use_tls: bool
    use_ssl: bool
    sender: str


def _bool_env(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _load_smtp(prefix: str) -> Optional[SMTPConfig]:
    host = os.environ.get(f"{prefix}_HOST")
    port_raw = os.environ.get(f"{prefix}_PORT")
    sender = os.environ.get(f"{prefix}_FROM")
    if not host or not port_raw or not sender:
        return None

    try:
        port = int(port_raw)
    except ValueError:
        raise RuntimeError(f"Invalid {prefix}_PORT: {port_raw}")

    return SMTPConfig(
        name=prefix,
        host=host,
        port=port,
        user=os.environ.get(f"{prefix}_USER"),
        password=os.environ.get(f"{prefix}_PASS"),
        use_tls=_bool_env(os.environ.get(f"{prefix}_TLS"), default=True),
        use_ssl=_bool_env(os.environ.get(f"{prefix}_SSL"), default=False),
        sender=sender,
    )


def configured_transports() -> List[SMTPConfig]:
    return [config for config in (_load_smtp(prefix) for prefix in SMTP_PREFIXES) if config]


def _build_message(sender: str, to_email: str, subject: str, html: str, text: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = sender
    message["To"] = to_email
    message["Subject"] = subject
    message.set_content(text)
    message.add_alternative(html, subtype="html")
    return message


def _deliver(config: SMTPConfig, message: EmailMessage) -> None:
    if config.use_ssl:
        context = ssl.create_default_context()
        with smtplib.SMTP_SSL(config.host, config.port, context=context, timeout=20) as server:
            if config.user and config.password:
                server.login(config.user, config.password)
            server.send_message(message)
        return

    with smtplib.SMTP(config.host, config.port, timeout=20) as server:
        server.ehlo()
        if config.use_tls:
            server.starttls(context=ssl.create_default_context())
            server.ehlo()
        if config.user and config.password:
            server.login(config.user, config.password)
        server.send_message(message)


def send_email(to_email: str, subject: str, html: str, text: str) -> None:
    """Sends through the primary SMTP relay, falling back to the secondary one."""
    transports = configured_transports()
    if not transports:
        raise RuntimeError("SMTP_PRIMARY configuration missing")

    last_error: Optional[Exception] = None
    for config in transports:
        try:
            _deliver(config, _build_message(config.sender, to_email, subject, html, text))
            if config.name != SMTP_PREFIXES[0]:
                logger.info("Email sent via %s", config.name)
            return
        except Exception as exc:
            logger.warning("%s failed for %s: %s", config.name, to_email, exc)
            last_error = exc

    raise RuntimeError("All SMTP transports failed") from last_error
