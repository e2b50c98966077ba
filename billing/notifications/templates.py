import datetime
import re

from django.utils.html import escape

PLACEHOLDER_RE = re.compile(r'\{(\w+)\}')

STATUS_TEMPLATES = {
    'cancelled': {
        'subject': 'Invoice {invoice_number} Has Been Cancelled',
        'body': """
<p>Dear {client_name},</p>
<p>We would like to inform you that your invoice has been
<span style="background:#fee2e2;color:#dc2626;padding:4px 12px;border-radius:12px;font-weight:bold;">Cancelled</span>.</p>
<table>
  <tr><th>Invoice Number</th><td>{invoice_number}</td></tr>
  <tr><th>Project</th><td>{project_name}</td></tr>
  <tr><th>Amount</th><td>{amount}</td></tr>
  <tr><th>Remark</th><td>{remark}</td></tr>
</table>
<p>If you have any questions regarding this cancellation, please don't hesitate to contact us.</p>
<p>Best regards,<br><strong>{company_name}</strong></p>
""",
    },
    'overdue': {
        'subject': 'Reminder: Invoice {invoice_number} is Overdue',
        'body': """
<p>Dear {client_name},</p>
<p style="background:#fee2e2;border-left:4px solid #dc2626;padding:12px;">
<strong>Important:</strong> your invoice is now overdue.</p>
<p>This is a friendly reminder that payment for the following invoice is past due.
Please arrange payment at your earliest convenience.</p>
<table>
  <tr><th>Invoice Number</th><td>{invoice_number}</td></tr>
  <tr><th>Project</th><td>{project_name}</td></tr>
  <tr><th>Amount Due</th><td style="color:#dc2626;font-weight:bold;">{amount}</td></tr>
  <tr><th>Due Date</th><td style="color:#dc2626;">{due_date}</td></tr>
</table>
<p>If you have already made this payment, please disregard this notice.</p>
<p>Best regards,<br><strong>{company_name}</strong></p>
""",
    },
    'paid': {
        'subject': 'Payment Received - Invoice {invoice_number}',
        'body': """
<p>Dear {client_name},</p>
<p style="background:#d1fae5;border-left:4px solid #059669;padding:12px;">
<strong>Thank you!</strong> We have received your payment.</p>
<table>
  <tr><th>Invoice Number</th><td>{invoice_number}</td></tr>
  <tr><th>Project</th><td>{project_name}</td></tr>
  <tr><th>Amount Paid</th><td style="color:#059669;font-weight:bold;">{amount}</td></tr>
  <tr><th>Payment Date</th><td>{paid_date}</td></tr>
</table>
<p>We appreciate your prompt payment and continued business.</p>
<p>Best regards,<br><strong>{company_name}</strong></p>
""",
    },
}

BASE_LAYOUT = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <style>
    body { font-family: 'Segoe UI', Tahoma, Verdana, sans-serif; line-height: 1.6; color: #334155; background: #f1f5f9; }
    .container { max-width: 600px; margin: 20px auto; background: #ffffff; border-radius: 8px; overflow: hidden; }
    .header { padding: 24px; text-align: center; border-bottom: 1px solid #e2e8f0; }
    .content { padding: 32px 28px; }
    .footer { background: #f8fafc; padding: 16px; text-align: center; color: #64748b; font-size: 12px; }
    th { text-align: left; padding: 8px 16px 8px 0; color: #64748b; }
    td { padding: 8px 0; }
  </style>
</head>
<body>
  <div class="container">
    <div class="header"><h1>{company_name}</h1></div>
    <div class="content">{content}</div>
    <div class="footer">
      <p>&copy; {year} {company_name}. All rights reserved.</p>
      <p>{company_address}</p>
      <p>{company_website}</p>
    </div>
  </div>
</body>
</html>
"""


def substitute(text: str, context: dict) -> str:
    """Replace ``{name}`` placeholders; unknown names are left untouched."""

    def replace(match):
        key = match.group(1)
        if key not in context:
            return match.group(0)
        return str(context[key])

    return PLACEHOLDER_RE.sub(replace, text)


def wrap_body(content: str, company: dict, year: int | None = None) -> str:
    context = {
        'content': content,
        'company_name': escape(company.get('name') or 'Company Name'),
        'company_address': escape(company.get('address') or ''),
        'company_website': escape(company.get('website') or ''),
        'year': year or datetime.date.today().year,
    }
    return substitute(BASE_LAYOUT, context)


def render_status_email(status: str, context: dict, company: dict) -> tuple[str, str]:
    """Return ``(subject, html)`` for a status notification."""
    template = STATUS_TEMPLATES[status]
    safe_context = {key: escape(value) for key, value in context.items()}
    subject = substitute(template['subject'], context)
    html = wrap_body(substitute(template['body'], safe_context), company)
    return subject, html
