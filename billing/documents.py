"""Invoice PDF rendering with reportlab platypus.

Rendering works on plain snapshots rather than model instances so it can run
anywhere without touching the database. Given the same snapshot and the same
``generated_at`` the output bytes are identical.
"""

import datetime
import io
import logging
import os
from dataclasses import dataclass, field
from decimal import Decimal
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Image, KeepTogether, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from reportlab.platypus.doctemplate import LayoutError

from .calculator import to_money
from .exceptions import RenderFailure

logger = logging.getLogger(__name__)

PRIMARY = colors.Color(32 / 255, 48 / 255, 80 / 255)
SUCCESS = colors.Color(76 / 255, 175 / 255, 80 / 255)
DANGER = colors.Color(244 / 255, 67 / 255, 54 / 255)
NEUTRAL = colors.Color(158 / 255, 158 / 255, 158 / 255)
GRAND_TOTAL_FILL = colors.Color(245 / 255, 245 / 255, 245 / 255)
BORDER = colors.HexColor('#d0d5dd')

RIBBON_COLORS = {
    'paid': SUCCESS,
    'cancelled': NEUTRAL,
    'overdue': DANGER,
    'unpaid': DANGER,
    'draft': DANGER,
}
RIBBON_WIDTH = 45 * mm
RIBBON_HEIGHT = 11 * mm
RIBBON_ARROW = 6 * mm
RIBBON_TOP = 18 * mm

CURRENCY_SYMBOLS = {'INR': 'Rs.', 'USD': '$'}
DEFAULT_CURRENCY_SYMBOL = 'Rs.'

SUMMARY_ROWS = 3
PAGE_MARGIN = 15 * mm


def currency_symbol(code: str | None) -> str:
    return CURRENCY_SYMBOLS.get((code or '').upper(), DEFAULT_CURRENCY_SYMBOL)


def format_money(amount, symbol: str) -> str:
    return f"{symbol}{to_money(amount):.2f}"


def format_number(value) -> str:
    if value is None:
        return '0'
    normalized = Decimal(value).normalize()
    return f"{normalized:f}"


def format_date(value: datetime.date | None) -> str:
    return value.strftime('%d %b %Y') if value else '-'


def ribbon_label(status: str) -> str:
    # A sent invoice is still waiting on the client.
    if status == 'sent':
        return 'UNPAID'
    return (status or 'unpaid').upper()


def ribbon_color(status: str):
    return RIBBON_COLORS.get((status or '').lower(), DANGER)


@dataclass(frozen=True)
class LineSnapshot:
    description: str
    amount: Decimal
    hours: Decimal | None = None
    rate: Decimal | None = None
    team_role: str = ''


@dataclass(frozen=True)
class InvoiceSnapshot:
    invoice_number: str
    status: str
    currency: str
    issue_date: datetime.date | None
    due_date: datetime.date | None
    lines: tuple
    subtotal: Decimal
    gst_percentage: Decimal
    gst_amount: Decimal
    include_gst: bool
    total_amount: Decimal
    project_name: str = ''
    project_type: str = 'fixed_contract'
    allocation_type: str = 'overall'
    payment_method: str = 'bank_account'
    custom_payment_details: str = ''


@dataclass(frozen=True)
class ClientSnapshot:
    name: str
    address: str = ''
    email: str = ''
    gst_number: str = ''


@dataclass(frozen=True)
class BankSnapshot:
    bank_name: str
    account_type: str
    account_number: str
    ifsc_code: str
    account_holder_name: str
    swift_code: str = ''


@dataclass(frozen=True)
class CompanySnapshot:
    name: str = ''
    address: str = ''
    email: str = ''
    contact: str = ''
    gst_number: str = ''
    lut_number: str = ''
    website: str = ''
    logo_path: str | None = None
    signature_path: str | None = None


@dataclass(frozen=True)
class DocumentSnapshot:
    invoice: InvoiceSnapshot
    client: ClientSnapshot
    company: CompanySnapshot
    bank: BankSnapshot | None = None


@dataclass(frozen=True)
class Column:
    header: str
    width: float
    align: str = 'LEFT'
    wrap: bool = False


@dataclass(frozen=True)
class Layout:
    name: str
    columns: tuple = field(default_factory=tuple)

    @property
    def headers(self) -> list[str]:
        return [column.header for column in self.columns]

    def cells(self, index: int, line: LineSnapshot, symbol: str) -> list[str]:
        raise NotImplementedError


@dataclass(frozen=True)
class StandardLayout(Layout):
    name: str = 'standard'
    columns: tuple = (
        Column('Description', 0.75, wrap=True),
        Column('Amount', 0.25, 'RIGHT'),
    )

    def cells(self, index, line, symbol):
        return [line.description or f"Service {index + 1}", format_money(line.amount, symbol)]


@dataclass(frozen=True)
class EmployeeBasedLayout(Layout):
    name: str = 'employee_based'
    columns: tuple = (
        Column('Role', 0.18, wrap=True),
        Column('Description', 0.37, wrap=True),
        Column('Hours', 0.12, 'RIGHT'),
        Column('Rate', 0.15, 'RIGHT'),
        Column('Amount', 0.18, 'RIGHT'),
    )

    def cells(self, index, line, symbol):
        return [
            line.team_role or '-',
            line.description or '-',
            format_number(line.hours),
            format_money(line.rate, symbol) if line.rate else '-',
            format_money(line.amount, symbol),
        ]


EMPLOYEE_BASED_PROJECT_TYPES = {'hourly_billing', 'monthly_retainer'}


def select_layout(project_type: str, allocation_type: str) -> Layout:
    if allocation_type == 'employee_based' and project_type in EMPLOYEE_BASED_PROJECT_TYPES:
        return EmployeeBasedLayout()
    return StandardLayout()


def build_table_rows(invoice: InvoiceSnapshot, layout: Layout) -> list[list[str]]:
    """Header, one row per line item, then Sub Total / GST / Total Payable."""
    symbol = currency_symbol(invoice.currency)
    rows = [layout.headers]
    for index, line in enumerate(invoice.lines):
        rows.append(layout.cells(index, line, symbol))

    padding = [''] * (len(layout.columns) - 2)
    percentage = invoice.gst_percentage if invoice.include_gst else Decimal('0')
    rows.append(['Sub Total', *padding, format_money(invoice.subtotal, symbol)])
    rows.append([f"GST ({format_number(percentage)}%)", *padding, format_money(invoice.gst_amount, symbol)])
    rows.append(['Total Payable', *padding, format_money(invoice.total_amount, symbol)])
    return rows


def _table_style(layout: Layout, row_count: int) -> TableStyle:
    last_col = len(layout.columns) - 1
    first_summary = row_count - SUMMARY_ROWS
    commands = [
        ('BACKGROUND', (0, 0), (-1, 0), PRIMARY),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTNAME', (0, 1), (-1, -1), 'Helvetica'),
        ('FONTSIZE', (0, 0), (-1, -1), 9),
        ('VALIGN', (0, 0), (-1, -1), 'MIDDLE'),
        ('GRID', (0, 0), (-1, -1), 0.5, BORDER),
        ('TOPPADDING', (0, 0), (-1, -1), 5),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 5),
        ('ALIGN', (0, first_summary), (-1, -1), 'RIGHT'),
        ('FONTNAME', (0, first_summary), (-1, -1), 'Helvetica-Bold'),
        ('BACKGROUND', (0, row_count - 1), (-1, row_count - 1), GRAND_TOTAL_FILL),
        ('FONTSIZE', (0, row_count - 1), (-1, row_count - 1), 10),
    ]
    for index, column in enumerate(layout.columns):
        commands.append(('ALIGN', (index, 0), (index, first_summary - 1), column.align))
    if last_col > 1:
        for row in range(first_summary, row_count):
            commands.append(('SPAN', (0, row), (last_col - 1, row)))
    return TableStyle(commands)


def _styles():
    styles = getSampleStyleSheet()
    return {
        'title': ParagraphStyle('InvoiceTitle', parent=styles['Heading1'], fontSize=18, textColor=PRIMARY),
        'company': ParagraphStyle('Company', parent=styles['Normal'], fontName='Helvetica-Bold', fontSize=11),
        'body': ParagraphStyle('Body', parent=styles['Normal'], fontSize=9, leading=12),
        'cell': ParagraphStyle('Cell', parent=styles['Normal'], fontName='Helvetica', fontSize=9, leading=11),
        'label': ParagraphStyle('Label', parent=styles['Normal'], fontName='Helvetica-Bold', fontSize=11,
                                textColor=PRIMARY),
        'meta': ParagraphStyle('Meta', parent=styles['Normal'], fontSize=9, leading=13, alignment=TA_RIGHT),
        'footer_heading': ParagraphStyle('FooterHeading', parent=styles['Normal'], fontName='Helvetica-Bold',
                                         fontSize=12, textColor=PRIMARY, spaceAfter=4),
        'signature': ParagraphStyle('Signature', parent=styles['Normal'], fontSize=8, alignment=TA_CENTER),
    }


def _paragraph_lines(lines, style) -> Paragraph:
    return Paragraph('<br/>'.join(escape(line) for line in lines if line), style)


def _image(path: str | None, width: float, height: float):
    if not path or not os.path.exists(path):
        return None
    return Image(path, width=width, height=height, kind='proportional')


def _header(snapshot: DocumentSnapshot, styles) -> list:
    company = snapshot.company
    flowables = []
    logo = _image(company.logo_path, 40 * mm, 18 * mm)
    if logo is not None:
        logo.hAlign = 'LEFT'
        flowables.append(logo)
        flowables.append(Spacer(1, 3 * mm))
    flowables.append(Paragraph(escape(company.name or 'Company Name'), styles['company']))
    flowables.append(_paragraph_lines([
        company.address,
        f"Email: {company.email}" if company.email else '',
        f"Phone: {company.contact}" if company.contact else '',
        f"GSTIN: {company.gst_number}" if company.gst_number else '',
        f"LUT: {company.lut_number}" if company.lut_number else '',
    ], styles['body']))
    flowables.append(Spacer(1, 6 * mm))
    flowables.append(Paragraph('INVOICE', styles['title']))
    return flowables


def _parties(snapshot: DocumentSnapshot, styles, width: float) -> Table:
    client = snapshot.client
    invoice = snapshot.invoice
    to_block = [
        Paragraph('To,', styles['label']),
        Paragraph(escape(client.name or 'Client Name'), styles['company']),
        _paragraph_lines([
            client.address,
            client.email,
            f"GSTIN: {client.gst_number}" if client.gst_number else '',
        ], styles['body']),
    ]
    meta = Paragraph(
        '<br/>'.join([
            f"<b>INVOICE NO:</b> {escape(invoice.invoice_number)}",
            f"<b>ISSUE DATE:</b> {format_date(invoice.issue_date)}",
            f"<b>DUE DATE:</b> {format_date(invoice.due_date)}",
        ]),
        styles['meta'],
    )
    table = Table([[to_block, meta]], colWidths=[width * 0.6, width * 0.4])
    table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (0, -1), 0),
        ('RIGHTPADDING', (-1, 0), (-1, -1), 0),
    ]))
    return table


def _wrap_cells(rows: list[list[str]], layout: Layout, style) -> list[list]:
    """Turn free-text line cells into Paragraphs so they wrap inside their column."""
    body = rows[1:-SUMMARY_ROWS]
    wrapped = [
        [
            Paragraph(escape(cell), style) if column.wrap else cell
            for cell, column in zip(row, layout.columns)
        ]
        for row in body
    ]
    return [rows[0], *wrapped, *rows[-SUMMARY_ROWS:]]


def _line_table(snapshot: DocumentSnapshot, styles, width: float) -> Table:
    invoice = snapshot.invoice
    layout = select_layout(invoice.project_type, invoice.allocation_type)
    rows = _wrap_cells(build_table_rows(invoice, layout), layout, styles['cell'])
    table = Table(
        rows,
        colWidths=[width * column.width for column in layout.columns],
        repeatRows=1,
    )
    table.setStyle(_table_style(layout, len(rows)))
    return table


def _footer(snapshot: DocumentSnapshot, styles, width: float) -> KeepTogether:
    invoice = snapshot.invoice
    company = snapshot.company
    bank = snapshot.bank

    if invoice.payment_method == 'bank_account' and bank is not None:
        payment = [
            Paragraph('Bank Details:', styles['footer_heading']),
            _paragraph_lines([
                f"Bank: {bank.bank_name or '-'}",
                f"Account Type: {bank.account_type or '-'}",
                f"A/C No: {bank.account_number or '-'}",
                f"IFSC: {bank.ifsc_code or '-'}",
                f"Swift: {bank.swift_code}" if bank.swift_code else '',
                f"Holder: {bank.account_holder_name or '-'}",
            ], styles['body']),
        ]
    else:
        payment = [
            Paragraph('Payment Details:', styles['footer_heading']),
            _paragraph_lines((invoice.custom_payment_details or '-').splitlines(), styles['body']),
        ]

    signature = []
    signature_image = _image(company.signature_path, 35 * mm, 15 * mm)
    if signature_image is not None:
        signature.append(signature_image)
    signature.append(Paragraph(escape(f"For, {company.name or 'Company'}"), styles['signature']))
    signature.append(Spacer(1, 12 * mm))
    signature.append(Paragraph('Authorized Signatory', styles['signature']))

    table = Table([[payment, signature]], colWidths=[width * 0.6, width * 0.4])
    table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (0, -1), 0),
    ]))
    # Bank details and signature move to the next page together.
    return KeepTogether([Spacer(1, 8 * mm), table])


def _draw_ribbon(canvas, doc, status: str):
    page_width, page_height = doc.pagesize
    top = page_height - RIBBON_TOP
    bottom = top - RIBBON_HEIGHT
    left = page_width - RIBBON_WIDTH

    canvas.saveState()
    canvas.setFillColor(ribbon_color(status))
    path = canvas.beginPath()
    path.moveTo(page_width, top)
    path.lineTo(page_width, bottom)
    path.lineTo(left, bottom)
    path.lineTo(left - RIBBON_ARROW, bottom + RIBBON_HEIGHT / 2)
    path.lineTo(left, top)
    path.close()
    canvas.drawPath(path, fill=1, stroke=0)

    canvas.setFillColor(colors.white)
    canvas.setFont('Helvetica-Bold', 13)
    canvas.drawCentredString(
        page_width - (RIBBON_WIDTH + RIBBON_ARROW) / 2 + RIBBON_ARROW / 2,
        bottom + RIBBON_HEIGHT / 2 - 4.5,
        ribbon_label(status),
    )
    canvas.restoreState()


def _draw_generated_stamp(canvas, doc, generated_at: datetime.datetime):
    canvas.saveState()
    canvas.setFont('Helvetica', 7)
    canvas.setFillColor(colors.grey)
    page_width = doc.pagesize[0]
    canvas.drawRightString(page_width - 15 * mm, 8 * mm, f"Generated {generated_at.strftime('%d %b %Y %H:%M')}")
    canvas.restoreState()


def invoice_document(buffer, snapshot: DocumentSnapshot, template_class=SimpleDocTemplate):
    return template_class(
        buffer,
        pagesize=A4,
        leftMargin=PAGE_MARGIN,
        rightMargin=PAGE_MARGIN,
        topMargin=PAGE_MARGIN,
        bottomMargin=PAGE_MARGIN,
        title=f"Invoice {snapshot.invoice.invoice_number}",
        author=snapshot.company.name,
        invariant=1,
    )


def build_story(snapshot: DocumentSnapshot, width: float) -> list:
    """Flowables in page order; the last one is the kept-together footer."""
    styles = _styles()
    elements = _header(snapshot, styles)
    elements.append(Spacer(1, 4 * mm))
    elements.append(_parties(snapshot, styles, width))
    elements.append(Spacer(1, 6 * mm))
    elements.append(_line_table(snapshot, styles, width))
    elements.append(_footer(snapshot, styles, width))
    return elements


def render(snapshot: DocumentSnapshot, generated_at: datetime.datetime | None = None) -> bytes:
    """Render the invoice to PDF bytes."""
    buffer = io.BytesIO()
    doc = invoice_document(buffer, snapshot)

    def on_first_page(canvas, page_doc):
        _draw_ribbon(canvas, page_doc, snapshot.invoice.status)
        if generated_at is not None:
            _draw_generated_stamp(canvas, page_doc, generated_at)

    def on_later_pages(canvas, page_doc):
        if generated_at is not None:
            _draw_generated_stamp(canvas, page_doc, generated_at)

    elements = build_story(snapshot, doc.width)

    try:
        doc.build(elements, onFirstPage=on_first_page, onLaterPages=on_later_pages)
    except (LayoutError, OSError) as exc:
        logger.exception('Invoice %s failed to render', snapshot.invoice.invoice_number)
        raise RenderFailure(f"Invoice {snapshot.invoice.invoice_number} could not be rendered: {exc}") from exc
    return buffer.getvalue()


def _file_path(field_file) -> str | None:
    if not field_file:
        return None
    try:
        return field_file.path
    except (NotImplementedError, ValueError):
        return None


def snapshot_from_invoice(invoice, status: str | None = None) -> DocumentSnapshot:
    """Collect everything ``render`` needs from the database.

    ``status`` overrides the ribbon status, e.g. for an outgoing email.
    """
    from .models import BankAccount, CompanyProfile

    project = invoice.project
    client = project.client

    bank_account = invoice.bank_account
    if invoice.payment_method == invoice.PaymentMethod.BANK_ACCOUNT:
        if bank_account is None:
            bank_account = BankAccount.objects.order_by('-is_default', 'id').first()
        if bank_account is None:
            raise RenderFailure(f"No bank account configured for invoice {invoice.invoice_number}.")

    bank = None
    if bank_account is not None:
        bank = BankSnapshot(
            bank_name=bank_account.bank_name,
            account_type=bank_account.get_account_type_display(),
            account_number=bank_account.account_number,
            ifsc_code=bank_account.ifsc_code,
            account_holder_name=bank_account.account_holder_name,
            swift_code=bank_account.swift_code,
        )

    profile = CompanyProfile.objects.filter(singleton=True).first()
    if profile is not None:
        company = CompanySnapshot(
            name=profile.name,
            address=profile.address,
            email=profile.email,
            contact=profile.contact,
            gst_number=profile.gst_number,
            lut_number=profile.lut_number,
            website=profile.website,
            logo_path=_file_path(profile.logo),
            signature_path=_file_path(profile.signature),
        )
    else:
        company = CompanySnapshot()

    lines = tuple(
        LineSnapshot(
            description=line.description,
            amount=line.amount,
            hours=line.hours,
            rate=line.rate,
            team_role=line.team_role,
        )
        for line in invoice.lines.all()
    )

    return DocumentSnapshot(
        invoice=InvoiceSnapshot(
            invoice_number=invoice.invoice_number,
            status=status or invoice.status,
            currency=invoice.currency,
            issue_date=invoice.issue_date,
            due_date=invoice.due_date,
            lines=lines,
            subtotal=invoice.subtotal,
            gst_percentage=invoice.gst_percentage,
            gst_amount=invoice.gst_amount,
            include_gst=invoice.include_gst,
            total_amount=invoice.total_amount,
            project_name=project.name,
            project_type=project.project_type,
            allocation_type=project.allocation_type,
            payment_method=invoice.payment_method,
            custom_payment_details=invoice.custom_payment_details,
        ),
        client=ClientSnapshot(
            name=client.name,
            address=client.address_line,
            email=client.billing_email,
            gst_number=client.gst_number,
        ),
        company=company,
        bank=bank,
    )
