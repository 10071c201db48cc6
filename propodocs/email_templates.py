"""
MJML Email Templates
Contract workflow emails using MJML for responsive, cross-client compatibility
"""

from typing import Optional

from .utils.dates import format_amount
from .utils.sanitization import escape

# Brand colors - burgundy scheme shared with the PDF layout
THEME = {
    "primary": "#7A1E1E",
    "primary_dark": "#501010",
    "primary_light": "#fef3f2",
    "background": "#f3f4f6",
    "card_bg": "#ffffff",
    "text_primary": "#1f2937",
    "text_secondary": "#374151",
    "text_muted": "#6b7280",
    "border": "#e5e7eb",
    "success": "#059669",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
    is_user_email: bool = False,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{escape(cta_url)}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {escape(cta_label)}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    footer_notice = ""
    if is_user_email:
        footer_notice = """
        <mj-text align="center" font-size="12px" color="#94a3b8" padding="12px 0 0 0">
          You're receiving this because you have an account with Propodocs.
        </mj-text>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{escape(title)}</mj-title>
        <mj-preview>{escape(preview_text)}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="{THEME['primary']}" padding="40px 20px">
          <mj-column>
            <mj-text align="center" color="#ffffff" font-size="24px" font-weight="300" letter-spacing="2px">
              {escape(title)}
            </mj-text>
          </mj-column>
        </mj-section>
        <mj-section background-color="{THEME['card_bg']}" padding="40px 40px 8px 40px">
          <mj-column>
            {content_sections}
          </mj-column>
        </mj-section>
        {cta_section}
        <mj-section padding="24px 20px">
          <mj-column>
            <mj-text align="center" font-size="12px" color="{THEME['text_muted']}" padding="0">
              Sent with Propodocs
            </mj-text>
            {footer_notice}
          </mj-column>
        </mj-section>
      </mj-body>
    </mjml>
    """


def _value_box(total_value: Optional[float]) -> str:
    if not total_value:
        return ""
    return f"""
            <mj-text align="center" container-background-color="{THEME['primary_light']}" padding="16px 24px">
              <p style="margin: 0 0 4px 0; color: #991b1b; font-size: 12px; text-transform: uppercase; letter-spacing: 1px;">Contract Value</p>
              <p style="margin: 0; color: #7f1d1d; font-size: 28px; font-weight: 700;">${format_amount(total_value)}</p>
            </mj-text>
    """


def contract_ready_template(
    client_name: str,
    contract_title: str,
    signing_link: str,
    total_value: Optional[float] = None,
    sender_name: Optional[str] = None,
    message: Optional[str] = None,
) -> str:
    """Sent to the client when a contract is sent for signature"""
    message_section = ""
    if message:
        message_section = f"""
            <mj-text color="{THEME['text_muted']}" font-style="italic">
              Message from {escape(sender_name or 'the sender')}:<br/>{escape(message)}
            </mj-text>
        """

    content = f"""
            <mj-text>Hello <strong>{escape(client_name)}</strong>,</mj-text>
            <mj-text color="{THEME['text_muted']}">
              {escape(sender_name or 'Propodocs')} has prepared the contract
              <strong>{escape(contract_title)}</strong> for your review and signature.
            </mj-text>
            {_value_box(total_value)}
            {message_section}
            <mj-text font-size="13px" color="{THEME['text_muted']}">
              This signing link is personal to you. Please do not forward it.
            </mj-text>
    """
    return get_base_template(
        title="Contract Ready for Signature",
        preview_text=f"{contract_title} is ready for your signature",
        content_sections=content,
        cta_url=signing_link,
        cta_label="Review & Sign Contract",
    )


def contract_signed_notification_template(
    owner_name: str,
    client_name: str,
    contract_title: str,
    signer_name: str,
    dashboard_url: Optional[str] = None,
) -> str:
    """Sent to the contract owner after the client signs"""
    content = f"""
            <mj-text>Hi {escape(owner_name)},</mj-text>
            <mj-text>
              <strong>{escape(signer_name)}</strong> signed
              <strong>{escape(contract_title)}</strong> on behalf of {escape(client_name)}.
            </mj-text>
            <mj-text color="{THEME['text_muted']}">
              Counter-sign the contract to complete it.
            </mj-text>
    """
    return get_base_template(
        title="Contract Signed",
        preview_text=f"{client_name} signed {contract_title}",
        content_sections=content,
        cta_url=dashboard_url,
        cta_label="Review & Counter-sign" if dashboard_url else None,
        is_user_email=True,
    )
