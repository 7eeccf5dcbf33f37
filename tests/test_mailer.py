import asyncio

import aiosmtplib
import pytest

from contact_intake.mailer import (
    FORM_TITLE,
    MailDispatchError,
    SmtpMailDispatcher,
    compose_mail,
    escape_html,
)
from contact_intake.models import NormalizedMessage, OutboundMail


class DummySMTP:
    def __init__(self, hostname, port, start_tls=True, use_tls=False, timeout=None):
        self.hostname = hostname
        self.port = port
        self.start_tls = start_tls
        self.use_tls = use_tls
        self.timeout = timeout
        self.login_credentials = None
        self.is_connected = False
        self.sent = []
        self.quit_called = False
        self.closed = False
        self.send_error: Exception | None = None
        self.send_delay = 0.0

    async def connect(self):
        self.is_connected = True

    async def login(self, user, password):
        self.login_credentials = (user, password)

    async def send_message(self, message):
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.send_error:
            raise self.send_error
        self.sent.append(message)

    async def quit(self):
        self.quit_called = True
        self.is_connected = False

    def close(self):
        self.closed = True
        self.is_connected = False


@pytest.fixture
def created(monkeypatch):
    clients = []
    settings = {}

    def factory(**kwargs):
        smtp = DummySMTP(**kwargs)
        smtp.send_error = settings.get("send_error")
        smtp.send_delay = settings.get("send_delay", 0.0)
        clients.append(smtp)
        return smtp

    monkeypatch.setattr("contact_intake.mailer.aiosmtplib.SMTP", factory)
    return clients, settings


def sample_mail(**overrides):
    fields = {
        "sender": "site@example.com",
        "recipient": "team@example.com",
        "reply_to": "maria@example.com",
        "subject": "Question (Contact form)",
        "text_body": "Name: Maria\n\nHello",
        "html_body": "<p>Hello</p>",
    }
    fields.update(overrides)
    return OutboundMail(**fields)


def test_escape_html_covers_quotes():
    assert escape_html("<a href=\"x\">Tom & Jerry's</a>") == (
        "&lt;a href=&quot;x&quot;&gt;Tom &amp; Jerry&#x27;s&lt;/a&gt;"
    )


def test_compose_escapes_html_and_keeps_text_raw():
    message = NormalizedMessage(
        name="Eve <b>",
        email="eve@example.com",
        subject="Hi & bye",
        message="<script>alert('x')</script>",
    )
    mail = compose_mail(message, sender="site@example.com", recipient="team@example.com")

    assert "&lt;script&gt;alert(&#x27;x&#x27;)&lt;/script&gt;" in mail.html_body
    assert "<script>" not in mail.html_body
    assert "Eve &lt;b&gt;" in mail.html_body
    assert "Hi &amp; bye" in mail.html_body
    assert "<script>alert('x')</script>" in mail.text_body
    assert mail.text_body.splitlines()[:3] == ["Name: Eve <b>", "Email: eve@example.com", "Subject: Hi & bye"]
    assert mail.subject == "Hi & bye (Contact form)"
    assert mail.reply_to == "eve@example.com"
    assert mail.sender == "site@example.com"
    assert mail.recipient == "team@example.com"


def test_compose_without_subject_uses_default_title():
    message = NormalizedMessage(name="Al", email="al@example.com", message="A plain question here.")
    mail = compose_mail(message, sender="s@example.com", recipient="t@example.com")
    assert mail.subject == FORM_TITLE
    assert "Subject:" not in mail.text_body
    assert "Subject:" not in mail.html_body


def test_compose_flattens_subject_to_one_line():
    message = NormalizedMessage(name="Al", email="al@example.com", subject="Line one\nLine two", message="Body text here.")
    mail = compose_mail(message, sender="s@example.com", recipient="t@example.com")
    assert mail.subject == "Line one Line two (Contact form)"


def test_build_message_has_text_and_html_parts():
    msg = SmtpMailDispatcher.build_message(sample_mail())
    assert msg["From"] == "site@example.com"
    assert msg["To"] == "team@example.com"
    assert msg["Reply-To"] == "maria@example.com"
    assert msg.get_content_type() == "multipart/alternative"
    assert msg.get_body(("plain",)).get_content().strip() == "Name: Maria\n\nHello"
    assert msg.get_body(("html",)).get_content().strip() == "<p>Hello</p>"


@pytest.mark.parametrize("reply_to", ["a,b@c.d", "a:b@c.d", "[@c.d"])
def test_unparseable_reply_to_is_left_out(reply_to, caplog):
    with caplog.at_level("WARNING", logger="contact_intake.mailer"):
        msg = SmtpMailDispatcher.build_message(sample_mail(reply_to=reply_to))

    assert "Reply-To" not in msg
    assert msg["To"] == "team@example.com"
    assert "Reply-To" in caplog.text
    assert reply_to not in caplog.text


def test_plain_reply_to_is_kept():
    msg = SmtpMailDispatcher.build_message(sample_mail(reply_to="maria.ivanova+site@mail.example.co.uk"))
    assert msg["Reply-To"] == "maria.ivanova+site@mail.example.co.uk"


@pytest.mark.asyncio
async def test_send_uses_implicit_tls_on_465(created):
    clients, _ = created
    dispatcher = SmtpMailDispatcher("smtp.local", 465, "user", "pass", use_tls=True)
    await dispatcher.send(sample_mail())

    smtp = clients[0]
    assert (smtp.use_tls, smtp.start_tls) == (True, False)
    assert smtp.login_credentials == ("user", "pass")
    assert len(smtp.sent) == 1
    assert smtp.quit_called is True


@pytest.mark.asyncio
async def test_send_uses_starttls_on_other_ports(created):
    clients, _ = created
    await SmtpMailDispatcher("smtp.local", 587, "user", "pass", use_tls=True).send(sample_mail())
    assert (clients[0].use_tls, clients[0].start_tls) == (False, True)


@pytest.mark.asyncio
async def test_send_plain_without_credentials(created):
    clients, _ = created
    await SmtpMailDispatcher("smtp.local", 25, use_tls=False).send(sample_mail())
    assert (clients[0].use_tls, clients[0].start_tls) == (False, False)
    assert clients[0].login_credentials is None


@pytest.mark.asyncio
async def test_smtp_error_becomes_dispatch_error(created):
    clients, settings = created
    settings["send_error"] = aiosmtplib.SMTPRecipientsRefused([])
    dispatcher = SmtpMailDispatcher("smtp.local", 465, "user", "pass")

    with pytest.raises(MailDispatchError) as excinfo:
        await dispatcher.send(sample_mail())

    assert isinstance(excinfo.value.cause, aiosmtplib.SMTPRecipientsRefused)
    assert excinfo.value.code == "send_failed"
    assert clients[0].closed is True


@pytest.mark.asyncio
async def test_slow_relay_times_out(created):
    _, settings = created
    settings["send_delay"] = 1.0
    dispatcher = SmtpMailDispatcher("smtp.local", 465, "user", "pass", timeout=0.01)

    with pytest.raises(MailDispatchError) as excinfo:
        await dispatcher.send(sample_mail())

    assert isinstance(excinfo.value.cause, asyncio.TimeoutError)
