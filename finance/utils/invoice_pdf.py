"""
Invoice PDF Generator Utility
Renders an A4 invoice (fatura), paginated when the lists run long, with its payments and accrued charges using ReportLab
"""
from io import BytesIO

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from ..conf import finance_setting
from ..services.penalties import preview_charges
from .money import format_money

LEFT = 50
RIGHT_MARGIN = 50
BOTTOM = 60


def _new_page(canvas_obj, page_height):
    canvas_obj.showPage()
    canvas_obj.setFont('Helvetica', 10)
    return page_height - 50


def generate_invoice_pdf(invoice, as_of):
    """
    Generate the invoice PDF

    Args:
        invoice: Invoice instance (payments and charges are read from it)
        as_of: date used for the displayed status and charges

    Returns:
        BytesIO: PDF file buffer
    """
    buffer = BytesIO()
    page_width, page_height = A4
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle(f"Fatura {invoice.invoice_number}")
    currency = finance_setting('CURRENCY')
    right = page_width - RIGHT_MARGIN

    # Header
    c.setFont('Helvetica-Bold', 16)
    c.drawString(LEFT, page_height - 50, finance_setting('SCHOOL_NAME'))
    c.setFont('Helvetica', 10)
    c.drawString(LEFT, page_height - 66, finance_setting('SCHOOL_ADDRESS'))
    c.setFont('Helvetica-Bold', 14)
    c.drawRightString(right, page_height - 50, f"FATURA {invoice.invoice_number}")
    c.setFont('Helvetica', 10)
    c.drawRightString(right, page_height - 66, f"Emitida em {invoice.created_at:%d/%m/%Y}")
    c.setStrokeColor(colors.grey)
    c.line(LEFT, page_height - 80, right, page_height - 80)

    # Student info
    student = invoice.student
    y_pos = page_height - 105
    c.setFont('Helvetica', 11)
    for line in (
        f"Aluno: {student.full_name}",
        f"Número de Estudante: {student.student_number}",
        f"Turma: {student.class_name or '-'}",
        f"Ano Letivo: {invoice.academic_year}",
    ):
        c.drawString(LEFT, y_pos, line)
        y_pos -= 18

    # Invoice details
    y_pos -= 12
    c.setFont('Helvetica-Bold', 12)
    c.drawString(LEFT, y_pos, "Detalhes da Fatura")
    y_pos -= 22
    c.setFont('Helvetica', 10)
    status = invoice.current_status(as_of)
    details = [
        ("Tipo", invoice.get_invoice_type_display()),
        ("Descrição", invoice.description or '-'),
        ("Período", f"{invoice.month:02d}/{invoice.year}"),
        ("Data de Vencimento", f"{invoice.due_date:%d/%m/%Y}"),
        ("Estado", dict(invoice.STATUS_CHOICES).get(status, status)),
        ("Valor", f"{currency} {format_money(invoice.amount)}"),
        ("Valor Pago", f"{currency} {format_money(invoice.paid_amount)}"),
        ("Saldo", f"{currency} {format_money(invoice.balance)}"),
    ]
    for label, value in details:
        c.drawString(LEFT, y_pos, f"{label}:")
        c.drawString(LEFT + 130, y_pos, str(value))
        y_pos -= 16

    charges = preview_charges(invoice, as_of)
    if charges.total:
        y_pos -= 6
        c.drawString(LEFT, y_pos, "Multa por Atraso:")
        c.drawString(LEFT + 130, y_pos, f"{currency} {format_money(charges.late_fee)}")
        y_pos -= 16
        c.drawString(LEFT, y_pos, "Juros de Mora:")
        c.drawString(LEFT + 130, y_pos, f"{currency} {format_money(charges.interest)} ({charges.interest_days} dias)")
        y_pos -= 16

    # Payments
    payments = [p for p in invoice.payments.all() if not p.is_cancelled]
    y_pos -= 20
    c.setFont('Helvetica-Bold', 12)
    c.drawString(LEFT, y_pos, "Pagamentos")
    y_pos -= 20
    c.setFont('Helvetica', 10)

    if not payments:
        c.drawString(LEFT, y_pos, "Sem pagamentos registados.")
        y_pos -= 15

    methods = dict(payments[0].METHOD_CHOICES) if payments else {}
    for payment in payments:
        line = f"{payment.payment_date:%d/%m/%Y}  {payment.receipt_number}  {methods.get(payment.method, payment.method)}"
        c.drawString(LEFT, y_pos, line)
        c.drawRightString(right, y_pos, f"{currency} {format_money(payment.amount)}")
        y_pos -= 15
        if y_pos < BOTTOM:
            y_pos = _new_page(c, page_height)

    # Footer
    c.setFont('Helvetica-Oblique', 8)
    c.drawString(LEFT, 30, f"Documento gerado em {as_of:%d/%m/%Y}. Valores em {currency}.")

    c.save()
    buffer.seek(0)

    return buffer
