from __future__ import annotations

from datetime import datetime
from io import BytesIO
from typing import Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.ext.asyncio import AsyncSession

from bottlescan.core.clock import as_utc, utcnow
from bottlescan.services.dashboard import list_redemptions


def _fmt_dt(dt: Optional[datetime]) -> str:
    if not dt:
        return ""
    return as_utc(dt).strftime("%Y-%m-%d %H:%M UTC")


def _build_pdf(
    *,
    title: str,
    subtitle_lines: list[str],
    table_header: list[str],
    table_rows: list[list[str]],
) -> bytes:
    buf = BytesIO()
    doc = SimpleDocTemplate(
        buf,
        pagesize=A4,
        leftMargin=12 * mm,
        rightMargin=12 * mm,
        topMargin=12 * mm,
        bottomMargin=12 * mm,
        title=title,
    )

    styles = getSampleStyleSheet()
    story = [Paragraph(f"<b>{title}</b>", styles["Title"]), Spacer(1, 6)]

    for line in subtitle_lines:
        story.append(Paragraph(line, styles["Normal"]))
    story.append(Spacer(1, 10))

    tbl = Table([table_header] + table_rows, repeatRows=1)
    tbl.setStyle(
        TableStyle(
            [
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#0f766e")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, 0), 9),
                ("FONTSIZE", (0, 1), (-1, -1), 8),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.whitesmoke, colors.lightgrey]),
                ("LEFTPADDING", (0, 0), (-1, -1), 4),
                ("RIGHTPADDING", (0, 0), (-1, -1), 4),
            ]
        )
    )

    story.append(tbl)
    doc.build(story)
    return buf.getvalue()


async def generate_redemptions_pdf(
    db: AsyncSession,
    *,
    client_id: Optional[int] = None,
    limit: int = 100,
) -> bytes:
    rows = await list_redemptions(db, client_id=client_id, limit=limit)

    subtitle = [
        f"Generated at: {_fmt_dt(utcnow())}",
        f"Rows: <b>{len(rows)}</b> (latest {limit})",
    ]

    header = ["Redeemed", "Campaign", "Phone", "Coupon", "Value", "QR token"]
    table_rows = [
        [
            _fmt_dt(r["redeemed_at"]),
            (r["campaign_name"] or "")[:40],
            r["phone"],
            r["coupon_code"],
            "" if r["discount_value"] is None else str(r["discount_value"]),
            (r["qr_token"] or "")[:12],
        ]
        for r in rows
    ]

    return _build_pdf(
        title="Redemption Report",
        subtitle_lines=subtitle,
        table_header=header,
        table_rows=table_rows,
    )
