import os
from flask import current_app
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle


def _output_path(area, filename):
    folder = os.path.join(current_app.config["UPLOAD_FOLDER"], area)
    os.makedirs(folder, exist_ok=True)
    return os.path.join(folder, filename)


def _address(prop):
    return f"{prop.street}, {prop.city}, {prop.state} {prop.zip_code}"


def _details_table(rows):
    table = Table(rows, hAlign="LEFT", colWidths=[180, 300])
    table.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
        ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
        ("BACKGROUND", (0, 0), (0, -1), colors.whitesmoke),
    ]))
    return table


def generate_payment_receipt(payment, tenant, landlord, prop):
    """Render the receipt PDF for a paid payment and return its path."""
    file_path = _output_path("receipts", f"receipt-{payment.receipt_number}.pdf")
    styles = getSampleStyleSheet()
    story = [
        Paragraph("PAYMENT RECEIPT", styles["Title"]),
        Spacer(1, 12),
        Paragraph(f"Receipt Number: {payment.receipt_number}", styles["Normal"]),
        Paragraph(f"Date: {payment.paid_date.strftime('%d %b %Y') if payment.paid_date else '-'}", styles["Normal"]),
        Spacer(1, 12),
        Paragraph(f"<b>From:</b> {landlord.name} ({landlord.email})", styles["Normal"]),
        Paragraph(f"<b>To:</b> {tenant.name} ({tenant.email})", styles["Normal"]),
        Paragraph(f"<b>Property:</b> {prop.name}, {_address(prop)}", styles["Normal"]),
        Spacer(1, 18),
    ]

    rows = [
        ["Payment Type", payment.type.replace("_", " ").upper()],
        ["Amount", f"{payment.amount:,.2f}"],
        ["Payment Method", (payment.payment_method or "-").replace("_", " ").upper()],
        ["Transaction ID", payment.transaction_id or "N/A"],
    ]
    if payment.card_last4:
        rows.append(["Card", f"{payment.card_brand} ****{payment.card_last4}"])
    if payment.description:
        rows.append(["Description", payment.description])
    story.append(_details_table(rows))
    story.append(Spacer(1, 24))
    story.append(Paragraph("Thank you for your payment.", styles["Italic"]))

    SimpleDocTemplate(file_path, pagesize=A4).build(story)
    return file_path


def generate_lease_document(lease, landlord, tenant, prop):
    """Render the signed lease agreement and return its path."""
    file_path = _output_path("leases", f"lease-{lease.id}.pdf")
    styles = getSampleStyleSheet()
    story = [
        Paragraph("RESIDENTIAL LEASE AGREEMENT", styles["Title"]),
        Spacer(1, 12),
        Paragraph(f"<b>Landlord:</b> {landlord.name} ({landlord.email})", styles["Normal"]),
        Paragraph(f"<b>Tenant:</b> {tenant.name} ({tenant.email})", styles["Normal"]),
        Paragraph(f"<b>Property:</b> {prop.name}, {_address(prop)}", styles["Normal"]),
        Spacer(1, 18),
        _details_table([
            ["Lease Term", f"{lease.start_date.isoformat()} to {lease.end_date.isoformat()}"],
            ["Monthly Rent", f"{lease.rent_amount:,.2f}"],
            ["Security Deposit", f"{(lease.deposit_amount or 0):,.2f}"],
            ["Payment Due", f"Day {lease.payment_due_day} of each month"],
        ]),
        Spacer(1, 18),
        Paragraph("Terms and Conditions", styles["Heading2"]),
        Paragraph((lease.terms or "").replace("\n", "<br/>"), styles["Normal"]),
        Spacer(1, 24),
        Paragraph("Signatures", styles["Heading2"]),
    ]

    for party, person in (("landlord", landlord), ("tenant", tenant)):
        signed_at = getattr(lease, f"{party}_signed_at")
        when = signed_at.strftime("%d %b %Y %H:%M") if signed_at else "not signed"
        story.append(Paragraph(f"{party.title()}: {person.name} - signed {when}", styles["Normal"]))

    SimpleDocTemplate(file_path, pagesize=A4).build(story)
    return file_path
