import csv
import io
import logging

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from portal.utils.currency import format_cents

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

CSV_COLUMNS = [
    "protocol", "created_at", "updated_at",
    "created_by_name", "created_by_email", "created_by_matricula",
    "company", "training_operational", "request_kind", "expense_type",
    "coordination", "date_start", "date_end", "amount_brl",
    "status", "last_observation",
]

XLSX_COLUMNS = [
    "Protocolo", "Criado em", "Atualizado em",
    "Solicitante", "Email", "Matrícula",
    "Empresa", "Treinamento operacional", "Tipo", "Despesa",
    "Coordenação", "Data início", "Data fim", "Valor (R$)",
    "Status", "Observação",
]


def _apply_header_style(ws, row: int, col_count: int) -> None:
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Auto-size column widths based on content (capped at 60 chars)."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value is not None:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 12)


def _iso(value) -> str:
    return value.isoformat() if value else ""


def _row_values(r) -> list:
    return [
        r.protocol,
        _iso(r.created_at),
        _iso(r.updated_at),
        r.created_by_name or "",
        r.created_by_email or "",
        r.created_by_matricula or "",
        r.company,
        "Sim" if r.training_operational else "Não",
        r.request_kind,
        r.expense_type,
        r.coordination,
        _iso(r.date_start),
        _iso(r.date_end),
    ]


def render_csv(rows) -> str:
    """One line per request; amounts use a comma decimal separator."""
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_COLUMNS)
    for r in rows:
        writer.writerow([
            *_row_values(r),
            format_cents(r.amount_cents, ",") if r.amount_cents is not None else "",
            r.status,
            (r.last_observation or "").replace("\n", " "),
        ])
    return buf.getvalue()


def render_xlsx(rows) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Solicitacoes"
    ws.append(XLSX_COLUMNS)
    _apply_header_style(ws, 1, len(XLSX_COLUMNS))

    for r in rows:
        ws.append([
            *_row_values(r),
            r.amount_cents / 100 if r.amount_cents is not None else None,
            r.status,
            r.last_observation or "",
        ])
        for cell in ws[ws.max_row]:
            cell.border = THIN_BORDER

    amount_col = XLSX_COLUMNS.index("Valor (R$)") + 1
    for row in ws.iter_rows(min_row=2, min_col=amount_col, max_col=amount_col):
        for cell in row:
            cell.number_format = "#,##0.00"

    ws.freeze_panes = "A2"
    _auto_width(ws)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf.getvalue()
