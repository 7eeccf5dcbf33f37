# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Outbound mail composition and SMTP delivery.

This module turns an accepted :class:`NormalizedMessage` into an
:class:`OutboundMail` and hands it to the SMTP relay. It provides:

- :func:`compose_mail`: builds subject, plain-text and HTML bodies; every
  user-supplied value is HTML-escaped before it enters the HTML body
- :class:`MailDispatcher`: the interface the orchestrator depends on
- :class:`SmtpMailDispatcher`: delivery through ``aiosmtplib``

Delivery is attempted exactly once per request and bounded by a timeout.
Any transport problem is raised as :class:`MailDispatchError`; the caller
decides what to reveal.

Example:
    Sending a composed message::

        dispatcher = SmtpMailDispatcher("smtp.example.com", 465, "user", "secret")
        mail = compose_mail(message, sender="site@example.com", recipient="team@example.com")
        await dispatcher.send(mail)
"""

from __future__ import annotations

import asyncio
import html
from email.message import EmailMessage
from typing import Protocol

import aiosmtplib

from .logger import get_logger
from .models import NormalizedMessage, OutboundMail

logger = get_logger(__name__)

DEFAULT_SMTP_TIMEOUT = 15.0
FORM_TITLE = "New contact form message"
SUBJECT_SUFFIX = "(Contact form)"


class MailDispatchError(RuntimeError):
    """Raised when the relay could not accept a message.

    Attributes:
        cause: The underlying transport exception, for operator logs only.
        code: Stable machine-readable error code.
    """

    def __init__(self, cause: BaseException):
        super().__init__(f"{cause.__class__.__name__}: {cause}")
        self.cause = cause
        self.code = "send_failed"


class MailDispatcher(Protocol):
    async def send(self, mail: OutboundMail) -> None:
        """Deliver ``mail`` or raise :class:`MailDispatchError`."""
        ...


def escape_html(value: str) -> str:
    """Escape ``& < > " '`` for safe embedding in HTML."""
    return html.escape(value, quote=True)


def _single_line(value: str) -> str:
    return " ".join(value.split())


def compose_mail(message: NormalizedMessage, *, sender: str, recipient: str) -> OutboundMail:
    """Build the notification sent to the site owner.

    Args:
        message: The accepted submission.
        sender: Envelope and header sender.
        recipient: Mailbox receiving contact requests.

    Returns:
        An :class:`OutboundMail` whose ``reply_to`` is the submitter.
    """
    subject = f"{message.subject} {SUBJECT_SUFFIX}" if message.subject else FORM_TITLE

    text_lines = [f"Name: {message.name}", f"Email: {message.email}"]
    if message.subject:
        text_lines.append(f"Subject: {message.subject}")
    text_lines.extend(["", message.message])

    subject_row = (
        f"<p><strong>Subject:</strong> {escape_html(message.subject)}</p>" if message.subject else ""
    )
    html_body = (
        '<div style="font-family:system-ui,-apple-system,Segoe UI,Roboto,Arial,sans-serif">\n'
        f"  <h2>{FORM_TITLE}</h2>\n"
        f"  <p><strong>Name:</strong> {escape_html(message.name)}</p>\n"
        f"  <p><strong>Email:</strong> {escape_html(message.email)}</p>\n"
        f"  {subject_row}\n"
        "  <hr />\n"
        f'  <pre style="white-space:pre-wrap;line-height:1.4">{escape_html(message.message)}</pre>\n'
        "</div>\n"
    )

    return OutboundMail(
        sender=sender,
        recipient=recipient,
        reply_to=message.email,
        subject=_single_line(subject),
        text_body="\n".join(text_lines),
        html_body=html_body,
    )


class SmtpMailDispatcher:
    """Deliver messages through an SMTP relay with ``aiosmtplib``.

    A fresh connection is opened per message; the intake volume is bounded
    by the rate limiter so pooling brings nothing.

    TLS behavior based on port and ``use_tls``:
    - Port 465 with use_tls=True: implicit TLS
    - Other ports with use_tls=True: STARTTLS
    - use_tls=False: plain SMTP

    Attributes:
        host: Relay hostname.
        port: Relay port.
        user: Username for SMTP authentication, or None.
        password: Password for SMTP authentication, or None.
        use_tls: Whether to encrypt the connection.
        timeout: Upper bound in seconds for the whole delivery.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str | None = None,
        password: str | None = None,
        *,
        use_tls: bool = True,
        timeout: float = DEFAULT_SMTP_TIMEOUT,
    ):
        self.host = host
        self.port = int(port)
        self.user = user
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    def _client(self) -> aiosmtplib.SMTP:
        if self.use_tls and self.port == 465:
            return aiosmtplib.SMTP(hostname=self.host, port=self.port, start_tls=False, use_tls=True, timeout=self.timeout)
        if self.use_tls:
            return aiosmtplib.SMTP(hostname=self.host, port=self.port, start_tls=True, use_tls=False, timeout=self.timeout)
        return aiosmtplib.SMTP(hostname=self.host, port=self.port, start_tls=False, use_tls=False, timeout=self.timeout)

    @staticmethod
    def build_message(mail: OutboundMail) -> EmailMessage:
        """Build a multipart/alternative message with text and HTML parts.

        A ``Reply-To`` value that does not parse as a single address is left
        out rather than sent with a mangled recipient list.
        """
        msg = EmailMessage()
        msg["From"] = mail.sender
        msg["To"] = mail.recipient
        msg["Reply-To"] = mail.reply_to
        if msg["Reply-To"].defects or len(msg["Reply-To"].addresses) != 1:
            logger.warning("Dropping unparseable Reply-To header")
            del msg["Reply-To"]
        msg["Subject"] = mail.subject
        msg.set_content(mail.text_body)
        msg.add_alternative(mail.html_body, subtype="html")
        return msg

    async def _deliver(self, msg: EmailMessage) -> None:
        smtp = self._client()
        await smtp.connect()
        try:
            if self.user and self.password:
                await smtp.login(self.user, self.password)
            await smtp.send_message(msg)
            await smtp.quit()
        finally:
            if smtp.is_connected:
                smtp.close()

    async def send(self, mail: OutboundMail) -> None:
        """Deliver ``mail`` once.

        Raises:
            MailDispatchError: On SMTP errors, network errors, malformed
                headers or when the relay does not finish within ``timeout``.
        """
        try:
            msg = self.build_message(mail)
            await asyncio.wait_for(self._deliver(msg), timeout=self.timeout)
        except (aiosmtplib.SMTPException, asyncio.TimeoutError, OSError, ValueError) as exc:
            raise MailDispatchError(exc) from exc
