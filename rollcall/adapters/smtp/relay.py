"""
SMTP email sender adapter - Implements EmailSender protocol.

Delivers verification codes through an SMTP relay using the standard
library mail stack. Port 465 uses implicit TLS; any other port connects
in plain text and upgrades with STARTTLS when ``use_tls`` is set.
"""

import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

logger = logging.getLogger(__name__)

SUBJECT = "Your Rollcall verification code"

_TEXT_BODY = """\
Your Rollcall verification code is {code}.

It expires in {ttl_minutes} minutes. If you did not request this code,
you can ignore this email.
"""

_HTML_BODY = """\
<p>Your Rollcall verification code is:</p>
<p style="font-size:24px;font-weight:bold;letter-spacing:4px">{code}</p>
<p>It expires in {ttl_minutes} minutes. If you did not request this code,
you can ignore this email.</p>
"""


class SmtpEmailSender:
    """
    Implements EmailSender protocol via smtplib.

    Uses structural subtyping - no explicit inheritance from Protocol.
    Opens one connection per message; errors propagate to the caller.
    """

    def __init__(
        self,
        host: str,
        port: int,
        from_address: str,
        username: str | None = None,
        password: str | None = None,
        use_tls: bool = True,
        timeout: float = 10.0,
        ttl_minutes: int = 10,
    ) -> None:
        self.host = host
        self.port = port
        self.from_address = from_address
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout
        self.ttl_minutes = ttl_minutes

    def build_message(self, email: str, code: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = SUBJECT
        msg["From"] = self.from_address
        msg["To"] = email
        msg.attach(MIMEText(_TEXT_BODY.format(code=code, ttl_minutes=self.ttl_minutes), "plain"))
        msg.attach(MIMEText(_HTML_BODY.format(code=code, ttl_minutes=self.ttl_minutes), "html"))
        return msg

    def send_verification_code(self, email: str, code: str) -> None:
        """
        Send the verification code by email.

        Args:
            email: Recipient email address (normalized by domain layer)
            code: 6-digit verification code

        Raises:
            smtplib.SMTPException, OSError: Transport failure
        """
        msg = self.build_message(email, code)

        if self.port == 465:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(
                self.host, self.port, timeout=self.timeout, context=context
            ) as server:
                self._login(server)
                server.sendmail(self.from_address, [email], msg.as_string())
        else:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.ehlo()
                if self.use_tls:
                    server.starttls(context=ssl.create_default_context())
                    server.ehlo()
                self._login(server)
                server.sendmail(self.from_address, [email], msg.as_string())

        logger.info("Verification email sent to %s via %s:%s", email, self.host, self.port)

    def _login(self, server: smtplib.SMTP) -> None:
        if self.username:
            server.login(self.username, self.password or "")
