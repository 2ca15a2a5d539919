"""
Email notifications for received PODs.
Sends through the Resend HTTP API when configured, standard SMTP otherwise.
"""

import base64
import logging
import os
import re
import smtplib
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Dict, List, Optional
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"
PODFY_LOGO = "/logos/podfy.png"


def full_url(base: Optional[str], path: Optional[str]) -> str:
    """Make root-relative paths absolute against `base`."""
    if not path:
        return ""
    if path.lower().startswith(("http://", "https://")):
        return path
    base = (base or "").rstrip("/")
    return f"{base}{path}" if path.startswith("/") else f"{base}/{path}"


def pick_logo_url(base: Optional[str], logo: Optional[str]) -> str:
    """Some mail clients dislike SVG logos, so always point at a PNG."""
    url = logo or PODFY_LOGO
    path, sep, query = url.partition("?")
    lower = path.lower()
    if lower.endswith(".svg"):
        path = path[:-4] + ".png"
    elif not lower.endswith((".png", ".jpg", ".jpeg")):
        path = f"{path}.png"
    return full_url(base, f"{path}{sep}{query}")


def pick_from_address(slug: Optional[str], domain: str) -> str:
    safe = "".join(ch if ch.isalnum() or ch in "-_." else "-" for ch in (slug or "default").lower())
    return f"{safe or 'noreply'}@{domain}"


def build_pod_html(
    brand_name: str,
    brand_color: str,
    logo: Optional[str],
    podfy_id: str,
    date_time: str,
    location_qualifier: str,
    lat: Optional[float],
    lon: Optional[float],
    location_code: str = "",
    reference: Optional[str] = None,
    file_name: str = "",
    image_base: Optional[str] = None,
    support_email: str = "support@podfy.net",
    intro: str = "We have received a new POD for your shipment as per attached.",
) -> str:
    """Build the notification body. Inline styles throughout for Outlook/Gmail."""
    logo_url = pick_logo_url(image_base, logo)
    podfy_logo_url = full_url(image_base or "", PODFY_LOGO)
    has_coords = lat is not None and lon is not None
    coords_html = ""
    if has_coords:
        maps_href = f"https://www.google.com/maps?q={quote(f'{lat},{lon}')}"
        coords_html = (
            f'<a href="{maps_href}" target="_blank" rel="noopener" '
            f'style="color:#1D4ED8; text-decoration:underline;">{lat}, {lon}</a>'
        )
    reference_html = (
        f'<p style="margin:20px 0; line-height:1.5; color:#111827;">'
        f"The reference of this shipment is <b>{escape(reference)}</b>.</p>"
        if reference else ""
    )
    issue_href = f"mailto:{escape(support_email)}?subject={quote('Podfy Issue ' + podfy_id)}"
    name = escape(brand_name or "PODFY")

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>POD Notification - {name}</title>
</head>
<body style="margin:0; padding:20px; background:#f5f5f5; font-family: -apple-system, Segoe UI, Roboto, Helvetica, Arial, sans-serif;">
  <table role="presentation" cellspacing="0" cellpadding="0" border="0" align="center" style="width:100%; max-width:680px; margin:0 auto;">
    <tr>
      <td style="background:{escape(brand_color)}; border-radius:12px 12px 0 0; padding:14px 18px;">
        <img src="{logo_url}" alt="{name} logo" width="147" style="display:block; border:0; width:147px; height:auto;">
      </td>
    </tr>
    <tr>
      <td style="background:#ffffff; border-radius:0 0 12px 12px; padding:22px;">
        <p style="margin:0 0 20px 0; line-height:1.5; color:#111827;">Dear {name},</p>
        <p style="margin:0 0 20px 0; line-height:1.5; color:#111827;">{escape(intro)}</p>
        {reference_html}
        <table role="presentation" cellspacing="0" cellpadding="0" border="0" style="width:100%; border-collapse:collapse; margin-top:10px; font-size:14px; color:#374151;">
          <tr><td style="padding:6px 8px; width:200px;">POD upload</td><td style="padding:6px 8px;">{escape(date_time)}</td></tr>
          <tr><td style="padding:6px 8px; width:200px;">Location qualifier</td><td style="padding:6px 8px;">{escape(location_qualifier)}</td></tr>
          <tr><td style="padding:6px 8px; width:200px;">Latitude, Longitude</td><td style="padding:6px 8px;">{coords_html}</td></tr>
          <tr><td style="padding:6px 8px; width:200px;">Location code</td><td style="padding:6px 8px;">{escape(location_code)}</td></tr>
        </table>
        <div style="text-align:center; padding:16px 8px 6px; margin-top:40px;">
          <span style="font-size:10px; color:#9CA3AF; display:block; margin-bottom:10px;">This POD is provided by</span>
          <a href="https://podfy.net" target="_blank" rel="noopener" style="display:inline-block;">
            <img src="{podfy_logo_url}" alt="Podfy" width="72" style="display:block; border:0; width:72px; height:auto;">
          </a>
          <div style="margin-top:8px; font-size:10px; color:#ffffff;">{escape(file_name)}</div>
        </div>
      </td>
    </tr>
  </table>
  <table role="presentation" cellspacing="0" cellpadding="0" border="0" align="center" style="width:100%; max-width:680px; margin:0 auto; font-size:10px; color:#374151;">
    <tr>
      <td style="padding:0 22px; text-align:left;"><a href="{issue_href}" style="color:#374151;">Report an issue</a></td>
      <td style="padding:0 22px; text-align:center;"><a href="https://podfy.net/terms" style="color:#374151;">Terms &amp; Conditions</a></td>
      <td style="padding:0 22px; text-align:right;">Podfy-id: {escape(podfy_id)}</td>
    </tr>
  </table>
</body>
</html>"""


def send_via_resend(
    from_address: str,
    to_list: List[str],
    subject: str,
    html_body: str,
    attachment: Optional[Dict] = None,
    reply_to: Optional[str] = None,
) -> Optional[bool]:
    """
    Send through Resend. Returns None when Resend is not configured so the
    caller can fall back to SMTP.
    """
    api_key = os.environ.get("RESEND_API_KEY")
    if not api_key:
        return None

    payload = {
        "from": from_address if "<" in from_address else f"Podfy <{from_address}>",
        "to": to_list,
        "subject": subject,
        "html": html_body,
    }
    if reply_to:
        payload["reply_to"] = reply_to
    if attachment:
        payload["attachments"] = [{
            "filename": attachment["filename"],
            "content": base64.b64encode(attachment["content"]).decode("ascii"),
        }]

    try:
        response = requests.post(
            RESEND_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            json=payload,
            timeout=30,
        )
    except requests.RequestException as e:
        logger.error(f"❌ Resend request failed: {e}")
        return False
    if not response.ok:
        logger.error(f"❌ Resend error {response.status_code}: {response.text}")
        return False
    logger.info(f"✅ Resend accepted mail to {to_list}")
    return True


def send_smtp_email(
    from_address: str,
    to_list: List[str],
    subject: str,
    html_body: str,
    text_body: str,
    attachment: Optional[Dict] = None,
    reply_to: Optional[str] = None,
) -> bool:
    """
    Send using standard SMTP with STARTTLS. Requires SMTP_HOST; SMTP_USER and
    SMTP_PASSWORD are used for login when set.
    """
    smtp_host = os.environ.get("SMTP_HOST")
    if not smtp_host:
        logger.warning("⚠️ Email not configured. Set RESEND_API_KEY or SMTP_HOST.")
        return False
    smtp_port = int(os.environ.get("SMTP_PORT") or 587)
    smtp_user = (os.environ.get("SMTP_USER") or "").strip()
    smtp_password = (os.environ.get("SMTP_PASSWORD") or "").strip()

    msg = MIMEMultipart("mixed")
    msg["Subject"] = subject
    msg["From"] = from_address
    msg["To"] = ", ".join(to_list)
    if reply_to:
        msg["Reply-To"] = reply_to
    body = MIMEMultipart("alternative")
    body.attach(MIMEText(text_body, "plain"))
    body.attach(MIMEText(html_body, "html"))
    msg.attach(body)
    if attachment:
        part = MIMEApplication(attachment["content"], Name=attachment["filename"])
        part["Content-Disposition"] = f'attachment; filename="{attachment["filename"]}"'
        msg.attach(part)

    try:
        with smtplib.SMTP(smtp_host, smtp_port, timeout=30) as server:
            server.starttls()
            if smtp_user and smtp_password:
                server.login(smtp_user, smtp_password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"❌ Error sending SMTP email: {e}")
        return False

    logger.info(f"✅ Email sent to {to_list} via {smtp_host}")
    return True


def html_to_text(html_body: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"<[^>]+>", " ", html_body)).strip()[:10000]


def send_mail(
    from_address: str,
    to_list: List[str],
    subject: str,
    html_body: str,
    attachment: Optional[Dict] = None,
    reply_to: Optional[str] = None,
) -> bool:
    """
    Deliver one message. Returns False on delivery failure; raises ValueError
    on malformed input (no recipients, no sender).

    `attachment` is {"filename": str, "content": bytes}.
    """
    recipients = [addr for addr in (to_list or []) if addr]
    if not recipients:
        raise ValueError("send_mail needs at least one recipient")
    if not from_address:
        raise ValueError("send_mail needs a from address")

    result = send_via_resend(from_address, recipients, subject, html_body, attachment, reply_to)
    if result is not None:
        return result
    return send_smtp_email(
        from_address, recipients, subject, html_body, html_to_text(html_body), attachment, reply_to
    )
