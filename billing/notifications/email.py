import logging
import smtplib

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.utils.html import strip_tags

from billing.documents import currency_symbol, format_date, format_money, render, snapshot_from_invoice
from billing.exceptions import RenderFailure

from .templates import STATUS_TEMPLATES, render_status_email

logger = logging.getLogger(__name__)


def build_context(invoice, status: str) -> dict:
    project = invoice.project
    client = project.client
    company = _company_details()
    symbol = currency_symbol(invoice.currency)
    amount = invoice.balance_due if status == 'overdue' else invoice.total_amount
    return {
        'client_name': client.name,
        'invoice_number': invoice.invoice_number,
        'company_name': company['name'] or 'Company Name',
        'amount': format_money(amount, symbol),
        'due_date': format_date(invoice.due_date),
        'project_name': project.name,
        'paid_date': format_date(invoice.paid_date),
        'remark': _status_remark(invoice, status) or invoice.deletion_remark or '-',
    }


def _status_remark(invoice, status: str) -> str:
    """Remark given with the latest move into ``status``."""
    entry = invoice.status_history.filter(status=status).order_by('created_at', 'id').last()
    return entry.remark if entry else ''


def _company_details() -> dict:
    from billing.models import CompanyProfile

    profile = CompanyProfile.objects.filter(singleton=True).first()
    if profile is None:
        return {'name': '', 'address': '', 'website': '', 'email': ''}
    return {
        'name': profile.name,
        'address': profile.address,
        'website': profile.website,
        'email': profile.email,
    }


def _attachment(invoice, status: str) -> bytes | None:
    try:
        return render(snapshot_from_invoice(invoice, status=status))
    except RenderFailure as exc:
        logger.warning('Sending %s email without PDF: %s', invoice.invoice_number, exc)
        return None


def send_status_email(invoice, status: str) -> tuple[bool, str | None]:
    """Email the client about a status change. Returns ``(sent, error)``."""
    if status not in STATUS_TEMPLATES:
        return False, f'No email template for status {status}'

    client = invoice.project.client
    recipient = client.billing_email
    if not recipient:
        logger.info('Email skip: client %s has no email for %s', client.pk, invoice.invoice_number)
        return False, 'Client has no email address'

    company = _company_details()
    subject, html = render_status_email(status, build_context(invoice, status), company)
    message = EmailMultiAlternatives(
        subject=subject,
        body=strip_tags(html),
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[recipient],
        reply_to=[company['email']] if company['email'] else None,
    )
    message.attach_alternative(html, 'text/html')
    pdf = _attachment(invoice, status)
    if pdf:
        message.attach(f"{invoice.invoice_number.replace('/', '-')}.pdf", pdf, 'application/pdf')

    try:
        message.send(fail_silently=False)
    except (smtplib.SMTPException, OSError) as exc:
        logger.exception('Email send failed for %s', invoice.invoice_number)
        return False, str(exc)
    return True, None
