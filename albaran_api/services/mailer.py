import smtplib
from email.message import EmailMessage
from html import escape
from typing import Optional

import structlog

from ..config import settings


logger = structlog.get_logger(__name__)


def send_email(to: str, subject: str, text: str, html: Optional[str] = None) -> bool:
    """Send one message over SMTP. Never raises; returns False when nothing was sent."""
    if not settings.smtp_host or not settings.mail_from:
        logger.info("email_skipped", to=to, subject=subject, reason="smtp_not_configured")
        return False
    try:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = settings.mail_from
        msg["To"] = to
        msg.set_content(text)
        if html:
            msg.add_alternative(html, subtype="html")
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as s:
            if settings.smtp_tls:
                s.starttls()
            if settings.smtp_username and settings.smtp_password:
                s.login(settings.smtp_username, settings.smtp_password)
            s.send_message(msg)
    except Exception as e:
        logger.warning("email_failed", to=to, subject=subject, error=str(e))
        return False
    logger.info("email_sent", to=to, subject=subject)
    return True


def _wrap(title: str, color: str, body: str) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px; border: 1px solid #ddd; border-radius: 5px;">
      <div style="background-color: {color}; color: white; padding: 10px; text-align: center; border-radius: 5px 5px 0 0;">
        <h2>{title}</h2>
      </div>
      <div style="padding: 20px;">
        {body}
        <p>Saludos,<br>El equipo de Gestión de Albaranes</p>
      </div>
      <div style="text-align: center; margin-top: 20px; font-size: 12px; color: #777;">
        <p>Este es un correo automático, por favor no responda a este mensaje.</p>
      </div>
    </div>
    """


def _code_block(code: str) -> str:
    return (
        '<div style="font-size: 24px; font-weight: bold; text-align: center; padding: 10px; '
        f'background-color: #f5f5f5; border-radius: 5px; margin: 20px 0;">{code}</div>'
    )


def send_verification_email(to: str, code: str) -> bool:
    html = _wrap(
        "Verificación de Correo Electrónico",
        "#4CAF50",
        "<p>Hola,</p>"
        "<p>Gracias por registrarte en nuestro sistema de gestión de albaranes. "
        "Para verificar tu correo electrónico, utiliza el siguiente código:</p>"
        f"{_code_block(code)}"
        "<p>Este código es válido por 24 horas. Si no has solicitado este código, ignora este correo.</p>",
    )
    return send_email(to, "Verificación de Correo Electrónico", f"Tu código de verificación es: {code}", html)


def send_password_reset_email(to: str, code: str) -> bool:
    html = _wrap(
        "Recuperación de Contraseña",
        "#2196F3",
        "<p>Hola,</p>"
        "<p>Has solicitado restablecer tu contraseña. Utiliza el siguiente código para completar el proceso:</p>"
        f"{_code_block(code)}"
        "<p>Este código es válido por 1 hora. Si no has solicitado este código, ignora este correo.</p>",
    )
    return send_email(to, "Recuperación de Contraseña", f"Tu código de recuperación es: {code}", html)


def send_invitation_email(to: str, inviter_name: str, company_name: str) -> bool:
    html = _wrap(
        "Invitación a Empresa",
        "#673AB7",
        "<p>Hola,</p>"
        f"<p><strong>{escape(inviter_name)}</strong> te ha invitado a unirte a la empresa "
        f'<span style="font-weight: bold;">{escape(company_name)}</span> en nuestro sistema de gestión de albaranes.</p>'
        "<p>Inicia sesión en tu cuenta para ver y gestionar esta invitación.</p>",
    )
    text = f"{inviter_name} te ha invitado a unirte a {company_name}. Inicia sesión para responder."
    return send_email(to, "Invitación a Empresa", text, html)
