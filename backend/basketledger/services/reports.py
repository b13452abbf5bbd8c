from __future__ import annotations

from datetime import datetime

import xlsxwriter
from sqlalchemy.orm import Session

from basketledger.core.constants import FIXED_TERM
from basketledger.models.audit_log import AuditLog
from basketledger.services import basket, fixed_term, open_term
from basketledger.services.audit import ledger_events
from basketledger.services.environment import Environment
from basketledger.services.ledgers import get_active_ledger, liabilities
from basketledger.utils.dates import to_datetime


def _feed_events(s: Session, ledger_id: int) -> list[AuditLog]:
    return ledger_events(s, ledger_id, ["feed", "feed.force"])


def _num(ws, r: int, c: int, v: int, fmt) -> None:
    # xlsx numbers are doubles; keep very large amounts exact as text
    if abs(int(v)) < 2**53:
        ws.write_number(r, c, int(v), fmt)
    else:
        ws.write_string(r, c, str(v), fmt)


def build_ledger_report(s: Session, env: Environment, ledger_id: int, out_file) -> None:
    ledger = get_active_ledger(s, ledger_id)
    values = basket.vault_values(s, env, ledger)
    weights = {a.vault: a.weight for a in basket.snapshot(s, ledger.id)}
    feeds = _feed_events(s, ledger.id)

    wb = xlsxwriter.Workbook(out_file, {"in_memory": True})
    base_font = "Calibri"

    # ----------------------------
    # Formats
    # ----------------------------
    meta_label = wb.add_format({"bold": True, "font_name": base_font, "font_size": 11, "font_color": "#334155"})
    meta_value = wb.add_format({"font_name": base_font, "font_size": 11, "font_color": "#0f172a"})
    subtle = wb.add_format({"font_name": base_font, "font_size": 10, "font_color": "#64748b"})
    header = wb.add_format(
        {
            "bold": True,
            "font_name": base_font,
            "font_size": 11,
            "bg_color": "#F1F5F9",
            "border": 1,
            "align": "center",
            "valign": "vcenter",
        }
    )
    dt_fmt = wb.add_format({"font_name": base_font, "font_size": 11, "num_format": "yyyy-mm-dd hh:mm", "border": 1})
    amount = wb.add_format({"font_name": base_font, "font_size": 11, "num_format": "#,##0", "border": 1, "align": "right"})
    text_cell = wb.add_format({"font_name": base_font, "font_size": 11, "border": 1, "align": "left"})

    # ----------------------------
    # Sheet 1: Summary
    # ----------------------------
    summary = wb.add_worksheet("Summary")
    summary.set_column(0, 0, 26)
    summary.set_column(1, 1, 44)

    title = wb.add_format({"bold": True, "font_name": base_font, "font_size": 14, "font_color": "#0f172a"})
    summary.write(0, 0, "Ledger Statement", title)

    rows = [
        ("Ledger", ledger.name),
        ("Kind", ledger.kind),
        ("Custody address", ledger.address),
        ("Unit of account", ledger.token_address),
        ("Last feed", to_datetime(ledger.last_feed_time).strftime("%Y-%m-%d %H:%M UTC")),
        ("Paused", "yes" if ledger.paused else "no"),
    ]
    for i, (label, value) in enumerate(rows):
        summary.write(2 + i, 0, label, meta_label)
        summary.write(2 + i, 1, value, meta_value)

    figures = [
        ("Liabilities", liabilities(ledger)),
        ("Basket value", sum((v for _, v in values), 0)),
        ("Fees held", ledger.total_fee),
        ("Max supply", ledger.max_supply),
        ("Dust balance", ledger.dust_balance),
    ]
    if ledger.kind == FIXED_TERM:
        figures[1:1] = [("Total principal", ledger.total_principal), ("Total interest", ledger.total_interest)]
    else:
        figures[1:1] = [("Total shares", ledger.total_shares)]
    base = 3 + len(rows)
    for i, (label, value) in enumerate(figures):
        summary.write(base + i, 0, label, meta_label)
        _num(summary, base + i, 1, value, amount)

    summary.write(base + len(figures) + 1, 0, "Generated", meta_label)
    summary.write(base + len(figures) + 1, 1, datetime.now().strftime("%Y-%m-%d %H:%M"), subtle)

    # ----------------------------
    # Sheet 2: Basket
    # ----------------------------
    bws = wb.add_worksheet("Basket")
    bws.set_column(0, 0, 30)
    bws.set_column(1, 2, 18)
    for c, h in enumerate(["Vault", "Weight (ppm)", "Value"]):
        bws.write(0, c, h, header)
    for r, (vault, value) in enumerate(values, start=1):
        bws.write(r, 0, vault, text_cell)
        _num(bws, r, 1, weights.get(vault, 0), amount)
        _num(bws, r, 2, value, amount)

    # ----------------------------
    # Sheet 3: Feeds
    # ----------------------------
    fws = wb.add_worksheet("Feeds")
    fws.set_column(0, 0, 18)
    fws.set_column(1, 1, 10)
    fws.set_column(2, 3, 20)
    for c, h in enumerate(["Feed Time", "Forced", "Basket Value", "Delta"]):
        fws.write(0, c, h, header)
    fws.freeze_panes(1, 1)
    for r, ev in enumerate(feeds, start=1):
        d = ev.details or {}
        fws.write_datetime(r, 0, to_datetime(int(d.get("feed_time", 0))).replace(tzinfo=None), dt_fmt)
        fws.write(r, 1, "yes" if ev.action == "feed.force" else "no", text_cell)
        _num(fws, r, 2, int(d.get("basket_value", 0)), amount)
        _num(fws, r, 3, int(d.get("delta", 0)), amount)

    # ----------------------------
    # Sheet 4: Claims
    # ----------------------------
    cws = wb.add_worksheet("Claims")
    if ledger.kind == FIXED_TERM:
        headers = ["Certificate", "Owner", "Principal", "Interest", "Start", "Maturity", "Status"]
        cws.set_column(0, 0, 12)
        cws.set_column(1, 1, 28)
        cws.set_column(2, 3, 18)
        cws.set_column(4, 5, 18)
        for c, h in enumerate(headers):
            cws.write(0, c, h, header)
        for r, cert in enumerate(fixed_term.list_certificates(s, env, ledger.id), start=1):
            cws.write_number(r, 0, cert.token_id, text_cell)
            cws.write(r, 1, cert.owner, text_cell)
            _num(cws, r, 2, cert.principal, amount)
            _num(cws, r, 3, cert.interest, amount)
            cws.write_datetime(r, 4, to_datetime(cert.start_date).replace(tzinfo=None), dt_fmt)
            cws.write_datetime(r, 5, to_datetime(cert.maturity_date).replace(tzinfo=None), dt_fmt)
            cws.write(r, 6, cert.status, text_cell)
    else:
        cws.set_column(0, 0, 28)
        cws.set_column(1, 2, 20)
        for c, h in enumerate(["Owner", "Shares", "Value"]):
            cws.write(0, c, h, header)
        for r, pos in enumerate(open_term.list_positions(s, ledger.id), start=1):
            cws.write(r, 0, pos.owner, text_cell)
            _num(cws, r, 1, pos.shares, amount)
            _num(cws, r, 2, pos.value, amount)

    wb.close()
