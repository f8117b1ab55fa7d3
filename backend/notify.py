import smtplib
from email.message import EmailMessage

import config

EMAIL_OUTBOX: list[tuple[str, str, str]] = []


def send_email(to_email: str, subject: str, message: str):
    if config.TESTING:
        EMAIL_OUTBOX.append((to_email, subject, message))
        return
    if not config.SMTP_SERVER:
        return
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = config.EMAIL_FROM
    msg["To"] = to_email
    msg.set_content(message)
    with smtplib.SMTP(config.SMTP_SERVER) as s:
        s.send_message(msg)
