import smtplib
from email.message import EmailMessage
from globalconnect.config import settings, logger


class MailDeliveryError(Exception):
    pass


def send_email(to_email: str, subject: str, html_body: str, text_body: str = None) -> bool:
    """Send a single email over SMTP.

    Raises :class:`MailDeliveryError` when no SMTP host is configured or the
    server rejects the message.
    """
    if not settings.SMTP_HOST:
        logger.error(f"SMTP not configured, email '{subject}' to {to_email} not sent")
        raise MailDeliveryError("SMTP not configured")

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = settings.EMAIL_FROM
    message["To"] = to_email
    message.set_content(text_body or "Please view this message in an HTML capable client.")
    message.add_alternative(html_body, subtype="html")

    try:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=15) as smtp:
            if settings.SMTP_USE_TLS:
                smtp.starttls()
            if settings.SMTP_USER:
                smtp.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
            smtp.send_message(message)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        raise MailDeliveryError(str(e)) from e

    logger.info(f"Email '{subject}' sent to {to_email}")
    return True


def _otp_html(heading: str, intro: str, otp: str) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 20px auto; border: 1px solid #ddd; border-radius: 10px; padding: 20px;">
      <h1 style="text-align: center; margin: 0 0 20px; font-size: 28px;">
        <span style="color: #4F46E5;">global</span><span style="color: #000000;">Connect</span>
      </h1>
      <h2 style="color: #4CAF50; text-align: center;">{heading}</h2>
      <p style="font-size: 16px; color: #333;">{intro}</p>
      <p style="font-size: 32px; font-weight: bold; text-align: center; letter-spacing: 4px;">{otp}</p>
      <p style="font-size: 14px; color: #777;">This OTP is valid for <strong>{settings.OTP_EXPIRE_MINUTES} minutes</strong>.
      If you did not request this, please ignore this email.</p>
    </div>
    """


def send_password_reset_otp(to_email: str, otp: str) -> bool:
    html = _otp_html(
        "Password Reset Request",
        "You requested to reset your password. Use the OTP below to complete the process.",
        otp,
    )
    return send_email(to_email, "Your Password Reset OTP", html, f"Your password reset OTP is {otp}")


def send_verification_otp(to_email: str, otp: str) -> bool:
    html = _otp_html("Verify your account", "Use the OTP below to verify your GlobalConnect account.", otp)
    return send_email(to_email, "Verify your GlobalConnect account", html, f"Your verification OTP is {otp}")


def send_email_update_otp(to_email: str, otp: str) -> bool:
    html = _otp_html("Email Update", "Your OTP for updating your email is:", otp)
    return send_email(to_email, "Your Email Update OTP", html, f"Your email update OTP is {otp}")
