"""
Email Service using Resend
Compiles MJML templates to responsive HTML before sending
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, RESEND_API_KEY
from .email_templates import contract_ready_template, contract_signed_notification_template

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


class EmailNotConfigured(Exception):
    pass


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        # mjml_to_html returns an object/dict with 'html' and 'errors'
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        html = getattr(result, "html", None)
        if html is not None:
            errors = getattr(result, "errors", None)
            if errors:
                logger.warning(f"MJML compilation warnings: {errors}")
            return html
        return str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise Exception(f"Failed to compile MJML template: {str(e)}") from e


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email through Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise EmailNotConfigured("Email service not configured")

    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to
    sender = from_address or EMAIL_FROM_ADDRESS

    try:
        logger.info(f"📧 Sending email via Resend to: {recipients}")
        response = resend.Emails.send(
            {
                "from": sender,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e


async def send_contract_email(
    to: str,
    client_name: str,
    contract_title: str,
    signing_link: str,
    total_value: Optional[float] = None,
    sender_name: Optional[str] = None,
) -> dict:
    """Send the signing link for a contract to its client"""
    mjml_content = contract_ready_template(
        client_name=client_name,
        contract_title=contract_title,
        signing_link=signing_link,
        total_value=total_value,
        sender_name=sender_name,
    )
    return await send_email(
        to=to,
        subject=f"Contract ready for signature: {contract_title}",
        mjml_content=mjml_content,
    )


async def send_contract_signed_notification(
    to: str,
    owner_name: str,
    client_name: str,
    contract_title: str,
    signer_name: str,
    dashboard_url: Optional[str] = None,
) -> dict:
    """Notify the contract owner when the client signs"""
    mjml_content = contract_signed_notification_template(
        owner_name=owner_name,
        client_name=client_name,
        contract_title=contract_title,
        signer_name=signer_name,
        dashboard_url=dashboard_url,
    )
    return await send_email(
        to=to,
        subject=f"Contract Signed by {client_name} - Ready to Counter-sign",
        mjml_content=mjml_content,
    )
