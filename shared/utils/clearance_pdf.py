from io import BytesIO
from reportlab.lib.pagesizes import A4
from reportlab.platypus import (
    SimpleDocTemplate, Paragraph, Table, TableStyle, Spacer
)
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib import colors

GRID_STYLE = [
    ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
    ("TOPPADDING", (0, 0), (-1, -1), 6),
    ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
]


def _money(value, currency):
    return f"{currency} {float(value or 0):,.2f}"


def generate_clearance_pdf(document: dict) -> bytes:
    """Render the clearance document and return the PDF bytes."""
    buffer = BytesIO()
    currency = document.get("currency", "SAR")

    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=40,
        leftMargin=40,
        topMargin=40,
        bottomMargin=40,
        title=document["document_number"],
    )

    styles = getSampleStyleSheet()
    styles.add(ParagraphStyle(name="Right", alignment=TA_RIGHT))
    elements = []

    # ==================================================
    # HEADER
    # ==================================================
    period = document["rental_period"]
    header = Table(
        [[
            Paragraph("<b>RENTAL CLEARANCE</b><br/>Shelf rental closeout",
                      styles["Normal"]),
            Paragraph(
                f"<b>{document['document_number']}</b><br/>"
                f"Generated: {document['generated_date']}<br/>"
                f"Rental: {document['rental_id']}<br/>"
                f"Period: {period['start']} - {period['end']}",
                styles["Right"],
            )
        ]],
        colWidths=[250, 250]
    )
    elements.append(header)
    elements.append(Spacer(1, 20))

    # ==================================================
    # PARTIES
    # ==================================================
    elements.append(Paragraph("<b>Parties</b>", styles["Heading2"]))
    parties = Table(
        [
            ["Store (host)", document["store_profile_id"]],
            ["Brand (tenant)", document["brand_profile_id"]],
        ],
        colWidths=[150, 350]
    )
    parties.setStyle(TableStyle(
        GRID_STYLE + [("BACKGROUND", (0, 0), (0, -1), colors.whitesmoke)]))
    elements.append(parties)
    elements.append(Spacer(1, 20))

    # ==================================================
    # INVENTORY RECONCILIATION
    # ==================================================
    elements.append(
        Paragraph("<b>Inventory Reconciliation</b>", styles["Heading2"]))
    rows = [["Product", "Initial", "Sold", "Returned", "Unit Price", "Sales"]]
    for item in document.get("products") or []:
        rows.append([
            item.get("product_name") or item.get("product_id"),
            item["initial_quantity"],
            item["sold_quantity"],
            item["remaining_quantity"],
            _money(item["unit_price"], currency),
            _money(item["total_sales_value"], currency),
        ])
    inventory = Table(rows, colWidths=[150, 50, 50, 60, 90, 100])
    inventory.setStyle(TableStyle(GRID_STYLE + [
        ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
        ("ALIGN", (1, 1), (-1, -1), "RIGHT"),
    ]))
    elements.append(inventory)
    elements.append(Spacer(1, 20))

    # ==================================================
    # SETTLEMENT
    # ==================================================
    settlement = document.get("settlement") or {}
    elements.append(Paragraph("<b>Settlement</b>", styles["Heading2"]))
    settlement_table = Table(
        [
            ["Total Sales (pre-tax)", _money(
                settlement.get("total_sales"), currency)],
            ["Total Sales (incl. tax)", _money(
                settlement.get("total_sales_with_tax"), currency)],
            [f"Platform Commission ({settlement.get('platform_commission_rate', 0)}%)",
             _money(settlement.get("platform_commission_amount"), currency)],
            [f"Store Commission ({settlement.get('store_commission_rate', 0)}%)",
             _money(settlement.get("store_commission_amount"), currency)],
            ["Brand Sales Revenue", _money(
                settlement.get("brand_sales_revenue"), currency)],
            ["Returned Inventory Value", _money(
                settlement.get("return_inventory_value"), currency)],
            ["BRAND TOTAL", _money(
                settlement.get("brand_total_amount"), currency)],
        ],
        colWidths=[300, 200]
    )
    settlement_table.setStyle(TableStyle(GRID_STYLE + [
        ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
        ("BACKGROUND", (0, -1), (-1, -1), colors.lightgrey),
        ("FONT", (0, -1), (-1, -1), "Helvetica-Bold"),
    ]))
    elements.append(settlement_table)
    elements.append(Spacer(1, 20))

    # ==================================================
    # RETURN SHIPMENT
    # ==================================================
    shipment = document.get("return_shipment")
    if shipment:
        elements.append(
            Paragraph("<b>Return Shipment</b>", styles["Heading2"]))
        shipment_table = Table(
            [
                ["Carrier", shipment.get("carrier") or "-"],
                ["Tracking No", shipment.get("tracking_number") or "-"],
                ["Shipped At", shipment.get("shipped_at") or "-"],
                ["Received At", shipment.get("received_at") or "-"],
                ["Condition", shipment.get("condition") or "-"],
            ],
            colWidths=[150, 350]
        )
        shipment_table.setStyle(TableStyle(
            GRID_STYLE + [("BACKGROUND", (0, 0), (0, -1), colors.whitesmoke)]))
        elements.append(shipment_table)

    # ==================================================
    doc.build(elements)
    return buffer.getvalue()
