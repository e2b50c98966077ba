import logging
import os
import re
from typing import Optional

import requests
from django.apps import apps
from django.db import DatabaseError

logger = logging.getLogger(__name__)

GRAPH_URL = 'https://graph.facebook.com/v19.0/{phone_number_id}/messages'
DEFAULT_TEMPLATE = 'invoice_available'
DEFAULT_LANGUAGE = 'en_US'


def _normalize_phone(phone: str) -> Optional[str]:
    """Return a digits/plus only phone or None."""
    if not phone:
        return None
    cleaned = re.sub(r'[^0-9+]', '', phone)
    return cleaned if cleaned else None


def _get_settings():
    """
    Prefer environment variables; fall back to enabled DB config.
    Returns dict with token, phone_number_id, language, template or None if unavailable.
    """
    env_enabled = os.environ.get('WHATSAPP_ENABLED', '0') == '1'
    env_token = os.environ.get('WHATSAPP_TOKEN')
    env_number_id = os.environ.get('WHATSAPP_PHONE_NUMBER_ID')
    if env_enabled and env_token and env_number_id:
        return {
            'token': env_token,
            'phone_number_id': env_number_id,
            'language': os.environ.get('WHATSAPP_LANGUAGE', DEFAULT_LANGUAGE),
            'template': os.environ.get('WHATSAPP_TEMPLATE', DEFAULT_TEMPLATE),
        }

    try:
        WhatsAppConfig = apps.get_model('billing', 'WhatsAppConfig')
        cfg = WhatsAppConfig.objects.filter(enabled=True).order_by('-updated_at').first()
    except DatabaseError:
        logger.exception('WhatsApp config lookup failed')
        return None
    if cfg and cfg.api_token and cfg.phone_number_id:
        return {
            'token': cfg.api_token.strip(),
            'phone_number_id': cfg.phone_number_id.strip(),
            'language': (cfg.default_language or DEFAULT_LANGUAGE).strip() or DEFAULT_LANGUAGE,
            'template': (cfg.template_name or '').strip(),
        }
    return None


def _post(settings: dict, payload: dict) -> bool:
    url = GRAPH_URL.format(phone_number_id=settings['phone_number_id'])
    headers = {
        'Authorization': f"Bearer {settings['token']}",
        'Content-Type': 'application/json',
    }
    try:
        resp = requests.post(url, headers=headers, json=payload, timeout=10)
    except requests.RequestException:
        logger.exception('WhatsApp send error')
        return False
    if resp.status_code >= 400:
        logger.warning('WhatsApp send failed %s: %s', resp.status_code, resp.text)
        return False
    return True


def send_text(to_phone: str, body: str, settings: dict | None = None) -> bool:
    """
    Send a WhatsApp text message via WhatsApp Cloud API.
    Returns True on API success, False otherwise. Safe no-op if not configured.
    """
    settings = settings or _get_settings()
    if not settings:
        return False
    to = _normalize_phone(to_phone)
    if not to:
        logger.info('WhatsApp skip: invalid phone for %s', to_phone)
        return False
    return _post(settings, {
        'messaging_product': 'whatsapp',
        'to': to,
        'type': 'text',
        'text': {'body': body[:1024]},
    })


def send_template(to_phone: str, parameters: list[str], settings: dict | None = None) -> bool:
    """Send the approved template message with positional body parameters."""
    settings = settings or _get_settings()
    if not settings:
        return False
    to = _normalize_phone(to_phone)
    if not to:
        logger.info('WhatsApp skip: invalid phone for %s', to_phone)
        return False
    return _post(settings, {
        'messaging_product': 'whatsapp',
        'to': to,
        'type': 'template',
        'template': {
            'name': settings.get('template') or DEFAULT_TEMPLATE,
            'language': {'code': settings.get('language') or DEFAULT_LANGUAGE},
            'components': [
                {
                    'type': 'body',
                    'parameters': [{'type': 'text', 'text': str(value)} for value in parameters],
                }
            ],
        },
    })


def send_invoice_update(invoice, status: str, link: str = '') -> bool:
    """Tell the client about the invoice on WhatsApp.

    Uses the configured template when there is one, plain text otherwise.
    """
    from billing.documents import currency_symbol, format_date, format_money

    settings = _get_settings()
    if not settings:
        return False
    client = invoice.project.client
    amount = format_money(invoice.total_amount, currency_symbol(invoice.currency))
    due_date = format_date(invoice.due_date)
    if settings.get('template'):
        return send_template(
            client.phone,
            [client.name, invoice.invoice_number, amount, due_date, link or '-'],
            settings=settings,
        )
    body = (
        f"Hello {client.name}, invoice {invoice.invoice_number} for {amount} "
        f"(due {due_date}) is now {status.upper()}."
    )
    if link:
        body += f" {link}"
    return send_text(client.phone, body, settings=settings)
