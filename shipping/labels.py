from io import BytesIO

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from shipping.progress import status_label
from shipping.schemas import ShipmentOut


def _fmt(d):
    return d.strftime("%a, %b %d, %Y") if d else "-"


def render_label(shipment: ShipmentOut) -> BytesIO:
    """Render a one-page shipment label as PDF."""
    buf = BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    width, height = A4

    y = height - 50
    c.setFont("Helvetica-Bold", 16)
    c.drawString(40, y, "Shipment Label")
    y -= 30
    c.setFont("Helvetica-Bold", 22)
    c.drawString(40, y, shipment.tracking_number)
    y -= 30

    sections = [
        ("Customer", [
            shipment.customer_name,
            shipment.customer_email or "",
            shipment.customer_phone or "",
        ]),
        ("From", [shipment.origin_address or "", shipment.origin_state]),
        ("To", [shipment.destination_address or "", shipment.destination_state]),
        ("Schedule", [
            f"Pickup: {_fmt(shipment.scheduled_pickup)}",
            f"Delivery: {_fmt(shipment.scheduled_delivery)}",
            f"Est. {shipment.estimated_days} days",
        ]),
        ("Status", [status_label(shipment.status)]),
    ]
    if shipment.status == "delayed" and shipment.delay_reason:
        sections.append(("Delay", [shipment.delay_reason]))
    if shipment.notes:
        sections.append(("Notes", [shipment.notes]))

    for title, lines in sections:
        c.setFont("Helvetica-Bold", 12)
        c.drawString(40, y, title)
        y -= 18
        c.setFont("Helvetica", 12)
        for line in lines:
            if not line:
                continue
            c.drawString(50, y, line)
            y -= 16
            if y < 80:
                c.showPage()
                y = height - 50
                c.setFont("Helvetica", 12)
        y -= 10

    c.showPage()
    c.save()
    buf.seek(0)
    return buf
