from datetime import date
from html import escape
from typing import Optional, Tuple

SIGNATURE_TEXT = "Regards,\nUniversity Events Team\n"
SIGNATURE_HTML = "Regards,<br><strong>University Events Team</strong>"


def build_registration_email(
    name: str,
    event_title: str,
    event_date: Optional[date],
    entry_code: str,
    ticket_url: str,
) -> Tuple[str, str, str]:
    when = event_date.strftime("%d %b %Y") if event_date else "TBA"
    subject = f"Registration confirmed: {event_title}"
    text = (
        f"Hello {name},\n\n"
        f"Your registration for {event_title} on {when} is confirmed.\n"
        f"Entry code: {entry_code}\n\n"
        f"Show the QR code on your ticket at the venue:\n{ticket_url}\n\n"
        f"{SIGNATURE_TEXT}"
    )
    html = f"""
    <html>
      <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #1b1f24;">
        <div style="max-width: 560px; margin: 0 auto; padding: 24px; border: 1px solid #e6e6e6; border-radius: 12px;">
          <h2 style="margin-top: 0;">You're registered</h2>
          <p>Hello {escape(name)},</p>
          <p>Your registration for <strong>{escape(event_title)}</strong> on {when} is confirmed.</p>
          <p>Entry code: <strong>{escape(entry_code)}</strong></p>
          <p style="text-align: center; margin: 24px 0;">
            <a href="{ticket_url}" style="display:inline-block;padding:12px 18px;background:#11131a;color:#fff;text-decoration:none;border-radius:6px;">View Ticket</a>
          </p>
          <p>Show the QR code on your ticket at the venue for check-in.</p>
          <hr style="border: none; border-top: 1px solid #e6e6e6; margin: 24px 0;" />
          <p style="margin-bottom: 0;">{SIGNATURE_HTML}</p>
        </div>
      </body>
    </html>
    """
    return subject, html, text
