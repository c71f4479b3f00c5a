"""
Render a delivery note (albarán) to PDF bytes.

Pure function of the note and its resolved issuer company: nothing is read
from or written to the database here.
"""
import io
from datetime import datetime
from typing import Optional

import structlog
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import mm
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from xml.sax.saxutils import escape

from ..models.models import Company, DeliveryNote


logger = structlog.get_logger(__name__)

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"


def _styles():
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle("title", parent=base["Title"], fontName=FONT_BOLD, fontSize=18, alignment=TA_CENTER),
        "right": ParagraphStyle("right", parent=base["Normal"], fontName=FONT, fontSize=11, alignment=TA_RIGHT),
        "heading": ParagraphStyle("heading", parent=base["Normal"], fontName=FONT_BOLD, fontSize=11, spaceBefore=8),
        "body": ParagraphStyle("body", parent=base["Normal"], fontName=FONT, fontSize=10, leading=13),
        "total": ParagraphStyle("total", parent=base["Normal"], fontName=FONT_BOLD, fontSize=12, alignment=TA_RIGHT),
        "center": ParagraphStyle("center", parent=base["Normal"], fontName=FONT, fontSize=10, alignment=TA_CENTER),
    }


def _fmt_date(value) -> str:
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%d/%m/%Y")
        except ValueError:
            return value
    return ""


def _money(value) -> str:
    return f"{float(value or 0):.2f}€"


def _address_line(address: Optional[dict]) -> str:
    a = address or {}
    street = f"{a.get('street') or ''} {a.get('number') or ''}".strip()
    city = f"{a.get('postal') or ''} {a.get('city') or ''}".strip()
    return ", ".join(part for part in (street, city) if part)


def _p(text, style) -> Paragraph:
    return Paragraph(escape(str(text or "")), style)


def _line_table(header, rows):
    table = Table([header] + rows, colWidths=[55 * mm, 30 * mm, 25 * mm, 30 * mm, 30 * mm])
    table.setStyle(TableStyle([
        ("FONTNAME", (0, 0), (-1, 0), FONT_BOLD),
        ("FONTNAME", (0, 1), (-1, -1), FONT),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("LINEBELOW", (0, 0), (-1, 0), 0.5, colors.black),
        ("ALIGN", (2, 0), (-1, -1), "RIGHT"),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ]))
    return table


def _signature_flowable(image_bytes: bytes):
    from PIL import Image as PILImage
    pil_im = PILImage.open(io.BytesIO(image_bytes))
    if pil_im.mode in ("RGBA", "P", "LA"):
        pil_im = pil_im.convert("RGB")
    img_buf = io.BytesIO()
    pil_im.save(img_buf, format="JPEG", quality=90)
    img_buf.seek(0)
    width, height = pil_im.size
    scale = min(200.0 / width, 100.0 / height, 1.0)
    return Image(img_buf, width=width * scale, height=height * scale)


def build_delivery_note_pdf(
    note: DeliveryNote,
    company: Optional[Company] = None,
    signature_image: Optional[bytes] = None,
) -> bytes:
    s = _styles()
    buf = io.BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=18 * mm,
        rightMargin=18 * mm,
        topMargin=18 * mm,
        bottomMargin=18 * mm,
        title=f"Albarán {note.number}",
    )
    project = note.project
    client = project.client if project is not None else None
    story = [
        _p("ALBARÁN", s["title"]),
        _p(f"Número: {note.number}", s["right"]),
        _p(f"Fecha: {_fmt_date(note.date)}", s["right"]),
        Spacer(1, 6 * mm),
        _p("EMPRESA:", s["heading"]),
        _p(company.name if company else "Empresa", s["body"]),
        _p(_address_line(company.address if company else None), s["body"]),
        _p("CLIENTE:", s["heading"]),
        _p(client.name if client else "Cliente", s["body"]),
        _p(_address_line(client.address if client else None), s["body"]),
        _p(f"NIF: {(client.nif if client else None) or ''}", s["body"]),
        _p("PROYECTO:", s["heading"]),
        _p(project.name if project else "Proyecto", s["body"]),
        _p(project.description if project else "", s["body"]),
        Spacer(1, 6 * mm),
    ]

    if note.worked_hours:
        rows = []
        for entry in note.worked_hours:
            hours = float(entry.get("hours") or 0)
            rate = float(entry.get("hourly_rate") or 0)
            rows.append([
                entry.get("person") or "",
                _fmt_date(entry.get("date")),
                f"{hours:g}",
                _money(rate),
                _money(hours * rate),
            ])
        story += [
            _p("HORAS TRABAJADAS:", s["heading"]),
            Spacer(1, 2 * mm),
            _line_table(["Persona", "Fecha", "Horas", "Precio/Hora", "Subtotal"], rows),
            Spacer(1, 5 * mm),
        ]

    if note.materials:
        rows = []
        for material in note.materials:
            quantity = float(material.get("quantity") or 0)
            price = float(material.get("price") or 0)
            rows.append([
                material.get("name") or "",
                material.get("description") or "",
                f"{quantity:g}",
                _money(price),
                _money(quantity * price),
            ])
        story += [
            _p("MATERIALES:", s["heading"]),
            Spacer(1, 2 * mm),
            _line_table(["Material", "Descripción", "Cantidad", "Precio", "Subtotal"], rows),
            Spacer(1, 5 * mm),
        ]

    story += [_p(f"TOTAL: {_money(note.total_amount)}", s["total"]), Spacer(1, 8 * mm)]

    if note.observations:
        story += [_p("OBSERVACIONES:", s["heading"]), _p(note.observations, s["body"]), Spacer(1, 8 * mm)]

    if note.status == "signed" and note.signature_date:
        story += [
            _p("FIRMADO POR:", s["heading"]),
            _p(note.signature_signer, s["body"]),
            _p(f"Fecha: {_fmt_date(note.signature_date)}", s["body"]),
        ]
        flowable = None
        if signature_image:
            try:
                flowable = _signature_flowable(signature_image)
            except Exception as e:
                # Unreadable image: keep the PDF, note the signature in text
                logger.warning("signature_image_unreadable", number=note.number, error=str(e))
        story.append(flowable if flowable is not None else _p("(Firmado electrónicamente)", s["center"]))
    else:
        story += [
            _p("FIRMA DEL CLIENTE:", s["heading"]),
            Spacer(1, 25 * mm),
            _p("___________________________", s["center"]),
        ]

    doc.build(story)
    buf.seek(0)
    return buf.read()
