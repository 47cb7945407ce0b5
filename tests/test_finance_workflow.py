"""
Finance request workflow tests — validation, lifecycle, permissions, export.
"""

import csv
import io
import re
from unittest.mock import patch

import openpyxl
import pytest
from sqlalchemy import func, select

from portal.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DependencyError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from portal.models import db
from portal.models.audit import AuditLog
from portal.models.auth import (
    ROLE_ADMIN,
    ROLE_COLLAB,
    ROLE_COORD,
    ROLE_FINANCE_ANALYST,
    ROLE_INVITED,
)
from portal.models.finance import (
    FinanceRequest,
    FinanceRequestAttachment,
    FinanceRequestItem,
    FinanceRequestStatusHistory,
)
from portal.services import side_effects
from portal.services.finance_export import CSV_COLUMNS
from portal.services.finance_service import (
    admin_update_finance_status,
    cancel_finance_request,
    create_finance_request,
    delete_finance_request,
    export_finance_requests,
    get_finance_request,
    list_finance_requests,
    list_my_finance_requests,
    validate_finance_payload,
)
from portal.stores import RequestStore

RECEIPT = {
    "url": "https://files.test/recibo.pdf",
    "filename": "recibo.pdf",
    "contentType": "application/pdf",
    "sizeBytes": 2048,
}


def _payload(**overrides):
    data = {
        "company": "CPFL Piratininga",
        "coordination": "Cubatão",
        "requestKind": "Reembolso",
        "trainingOperational": "Não",
        "dateStart": "2026-03-02",
        "dateEnd": "2026-03-03",
        "description": "Deslocamento para treinamento em Santos",
        "expenseType": "Transporte",
        "amountBrl": "1.234,56",
        "attachments": [dict(RECEIPT)],
    }
    data.update(overrides)
    return data


def _history(request_id):
    return RequestStore().list_history(request_id)


def _count(model):
    return db.session.execute(select(func.count()).select_from(model)).scalar_one()


@pytest.fixture()
def owner(make_profile):
    return make_profile("Maria Souza", roles=[ROLE_COLLAB])


@pytest.fixture()
def manager(make_profile):
    return make_profile("Carlos Coordenador", roles=[ROLE_COORD])


@pytest.fixture()
def created(owner):
    return create_finance_request(owner.id, _payload())


# ═════════════════════════════════════════════════════════════════════════
# Validation
# ═════════════════════════════════════════════════════════════════════════


def test_reembolso_without_amount_and_attachments_reports_both():
    with pytest.raises(ValidationError) as exc:
        validate_finance_payload(_payload(amountBrl="", attachments=[]))
    assert exc.value.details["amountBrl"] == "required"
    assert "attachments" in exc.value.details


def test_all_field_problems_reported_together():
    payload = _payload(
        company="Outra",
        coordination="Marte",
        dateStart="02/03/2026",
        description="curta",
        expenseType="Adiantamento",
        amountBrl="-10",
    )
    with pytest.raises(ValidationError) as exc:
        validate_finance_payload(payload)
    assert {"company", "coordination", "dateStart", "description", "expenseType", "amountBrl"} <= set(
        exc.value.details
    )


def test_date_end_before_start():
    with pytest.raises(ValidationError) as exc:
        validate_finance_payload(_payload(dateStart="2026-03-05", dateEnd="2026-03-01"))
    assert set(exc.value.details) == {"dateEnd"}


def test_adiantamento_forbids_amount():
    with pytest.raises(ValidationError) as exc:
        validate_finance_payload(
            _payload(requestKind="Adiantamento", expenseType="", amountBrl="100,00", attachments=[]),
        )
    assert set(exc.value.details) == {"amountBrl"}


def test_adiantamento_forbids_attachments():
    with pytest.raises(ValidationError) as exc:
        validate_finance_payload(_payload(requestKind="Adiantamento", expenseType="", amountBrl=""))
    assert exc.value.details == {"attachments": "attachments are not allowed for an advance"}


def test_adiantamento_items_forbid_attachments():
    items = [
        {"expenseType": "", "description": "Diárias em Santos"},
        {"expenseType": "Adiantamento", "attachments": [dict(RECEIPT)]},
    ]
    with pytest.raises(ValidationError) as exc:
        validate_finance_payload(
            _payload(requestKind="Adiantamento", items=items, expenseType="", amountBrl="", attachments=None),
        )
    assert set(exc.value.details) == {"items.1.attachments"}


def test_adiantamento_is_forced_and_needs_no_attachment():
    data = validate_finance_payload(
        _payload(requestKind="Adiantamento", expenseType="", amountBrl="", attachments=[]),
    )
    assert data["expense_type"] == "Adiantamento"
    assert data["amount_cents"] is None
    assert data["lines"][0]["attachments"] == []


def test_training_operational_values():
    assert validate_finance_payload(_payload(trainingOperational="Sim"))["training_operational"] is True
    assert validate_finance_payload(_payload(trainingOperational=None))["training_operational"] is False
    with pytest.raises(ValidationError) as exc:
        validate_finance_payload(_payload(trainingOperational="talvez"))
    assert "trainingOperational" in exc.value.details


def test_attachment_limit():
    with pytest.raises(ValidationError) as exc:
        validate_finance_payload(_payload(attachments=[dict(RECEIPT)] * 13))
    assert "attachments" in exc.value.details


def test_attachment_requires_http_url():
    with pytest.raises(ValidationError) as exc:
        validate_finance_payload(_payload(attachments=[{"url": "file:///etc/passwd"}]))
    assert "attachments.0.url" in exc.value.details


def test_multi_item_totals_and_expense_type():
    items = [
        {"expenseType": "Transporte", "amountBrl": "10,00", "attachments": [dict(RECEIPT)]},
        {"expenseType": "Almoço", "amountBrl": "25,50", "description": "Almoço equipe",
         "attachments": [dict(RECEIPT)]},
    ]
    data = validate_finance_payload(_payload(items=items, expenseType=None, amountBrl=None, attachments=None))
    assert data["amount_cents"] == 3550
    assert data["expense_type"] == "Múltiplos"
    assert [line["source"] for line in data["lines"]] == ["multi_item_v1", "multi_item_v1"]
    assert data["lines"][1]["description"] == "Almoço equipe"
    assert data["lines"][0]["description"] == "Deslocamento para treinamento em Santos"


def test_multi_item_single_type_keeps_it():
    items = [
        {"expenseType": "Almoço", "amountBrl": "10", "attachments": [dict(RECEIPT)]},
        {"expenseType": "Almoço", "amountBrl": "5,5", "attachments": [dict(RECEIPT)]},
    ]
    data = validate_finance_payload(_payload(items=items))
    assert data["expense_type"] == "Almoço"
    assert data["amount_cents"] == 1550


def test_multi_item_errors_are_keyed_per_item():
    items = [
        {"expenseType": "Transporte", "amountBrl": "10,00", "attachments": []},
        {"expenseType": "Almoço", "amountBrl": "abc", "attachments": [dict(RECEIPT)]},
    ]
    with pytest.raises(ValidationError) as exc:
        validate_finance_payload(_payload(items=items))
    assert set(exc.value.details) == {"items.0.attachments", "items.1.amountBrl"}


def test_item_limit():
    items = [{"expenseType": "Almoço", "amountBrl": "1", "attachments": [dict(RECEIPT)]}] * 13
    with pytest.raises(ValidationError) as exc:
        validate_finance_payload(_payload(items=items))
    assert "items" in exc.value.details


# ═════════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════════


def test_create_stores_request_items_attachments_and_history(owner, created):
    assert created["status"] == "Enviado"
    assert re.fullmatch(r"FIN-\d{8}-[A-Z0-9]{6}", created["protocol"])
    assert created["amount_cents"] == 123456
    assert created["created_by_name"] == "Maria Souza"
    assert len(created["items"]) == 1
    assert created["attachments"][0]["item_id"] == created["items"][0]["id"]
    assert created["attachments"][0]["metadata"] == {"finance_item_idx": 0}

    rows = _history(created["id"])
    assert [(h.from_status, h.to_status, h.changed_by) for h in rows] == [(None, "Enviado", owner.id)]
    audit = db.session.execute(select(AuditLog)).scalars().one()
    assert audit.action == "finance_request.create"


def test_guest_cannot_create(make_profile):
    guest = make_profile(roles=[ROLE_INVITED])
    with pytest.raises(AuthorizationError):
        create_finance_request(guest.id, _payload())

    guest_by_area = make_profile(sigla_area="CONVIDADOS")
    with pytest.raises(AuthorizationError):
        create_finance_request(guest_by_area.id, _payload())


def test_child_insert_failure_leaves_nothing(owner):
    with patch.object(RequestStore, "insert_finance_attachments", side_effect=RuntimeError("disk full")):
        with pytest.raises(DependencyError):
            create_finance_request(owner.id, _payload())
    assert _count(FinanceRequest) == 0
    assert _count(FinanceRequestItem) == 0


def test_initial_history_failure_is_tolerated(owner):
    with patch.object(RequestStore, "append_history", side_effect=RuntimeError("history down")):
        created = create_finance_request(owner.id, _payload())
    assert db.session.get(FinanceRequest, created["id"]) is not None
    assert _history(created["id"]) == []
    assert side_effects.failure_counts() == {"finance.initial_history": 1}


# ═════════════════════════════════════════════════════════════════════════
# Cancel
# ═════════════════════════════════════════════════════════════════════════


def test_cancel_by_creator(owner, created):
    result = cancel_finance_request(owner.id, created["id"])
    assert result["status"] == "Cancelado"
    assert result["last_observation"] == "Cancelado pelo usuário"
    assert [(h.from_status, h.to_status) for h in _history(created["id"])] == [
        (None, "Enviado"), ("Enviado", "Cancelado"),
    ]


def test_cancel_by_someone_else(make_profile, created):
    other = make_profile(roles=[ROLE_COLLAB])
    with pytest.raises(AuthorizationError):
        cancel_finance_request(other.id, created["id"])


def test_cancel_twice(owner, created):
    cancel_finance_request(owner.id, created["id"])
    with pytest.raises(InvalidTransitionError):
        cancel_finance_request(owner.id, created["id"])


def test_cancel_after_review_started(owner, manager, created):
    admin_update_finance_status(manager.id, created["id"], "Em análise")
    with pytest.raises(InvalidTransitionError):
        cancel_finance_request(owner.id, created["id"])


def test_cancel_missing(owner):
    with pytest.raises(NotFoundError):
        cancel_finance_request(owner.id, "nope")


# ═════════════════════════════════════════════════════════════════════════
# Admin status updates
# ═════════════════════════════════════════════════════════════════════════


def test_each_transition_adds_one_history_row(manager, created):
    admin_update_finance_status(manager.id, created["id"], "Em Análise", "Conferindo recibos")
    admin_update_finance_status(manager.id, created["id"], "aprovado")
    result = admin_update_finance_status(manager.id, created["id"], "Pago")

    assert result["status"] == "Pago"
    rows = _history(created["id"])
    assert [(h.from_status, h.to_status) for h in rows] == [
        (None, "Enviado"),
        ("Enviado", "Em análise"),
        ("Em análise", "Aprovado"),
        ("Aprovado", "Pago"),
    ]
    assert rows[1].observation == "Conferindo recibos"
    assert all(h.changed_by == manager.id for h in rows[1:])


def test_status_update_requires_manager(owner, created):
    with pytest.raises(AuthorizationError):
        admin_update_finance_status(owner.id, created["id"], "Aprovado")


def test_finance_analyst_can_update(make_profile, created):
    analyst = make_profile(roles=[ROLE_FINANCE_ANALYST])
    assert admin_update_finance_status(analyst.id, created["id"], "Reprovado")["status"] == "Reprovado"


def test_unknown_status(manager, created):
    with pytest.raises(ValidationError):
        admin_update_finance_status(manager.id, created["id"], "Arquivado")


def test_manager_cannot_cancel(manager, created):
    with pytest.raises(InvalidTransitionError):
        admin_update_finance_status(manager.id, created["id"], "Cancelado")


def test_cancelled_request_is_terminal(owner, manager, created):
    cancel_finance_request(owner.id, created["id"])
    with pytest.raises(InvalidTransitionError):
        admin_update_finance_status(manager.id, created["id"], "Aprovado")


def test_same_status_is_not_a_transition(manager, created):
    admin_update_finance_status(manager.id, created["id"], "Aprovado")
    with pytest.raises(InvalidTransitionError):
        admin_update_finance_status(manager.id, created["id"], "Aprovado")


def test_observation_too_long(manager, created):
    with pytest.raises(ValidationError):
        admin_update_finance_status(manager.id, created["id"], "Aprovado", "x" * 2001)


def test_lost_compare_and_swap(manager, created):
    with patch.object(RequestStore, "swap_finance_status", return_value=False):
        with pytest.raises(ConflictError):
            admin_update_finance_status(manager.id, created["id"], "Aprovado")
    assert len(_history(created["id"])) == 1
    assert db.session.get(FinanceRequest, created["id"]).status == "Enviado"


# ═════════════════════════════════════════════════════════════════════════
# Read
# ═════════════════════════════════════════════════════════════════════════


def test_owner_detail_and_permissions(owner, created):
    detail = get_finance_request(owner.id, created["id"])
    assert detail["request"]["id"] == created["id"]
    assert len(detail["items"]) == 1 and len(detail["attachments"]) == 1
    assert detail["permissions"] == {"can_manage": False, "can_cancel": True, "can_delete": True}
    assert detail["request"]["analyst_viewed_at"] is None


def test_stranger_cannot_read(make_profile, created):
    other = make_profile(roles=[ROLE_COLLAB])
    with pytest.raises(AuthorizationError):
        get_finance_request(other.id, created["id"])


def test_manager_read_stamps_viewed_once(manager, created):
    first = get_finance_request(manager.id, created["id"])["request"]["analyst_viewed_at"]
    second = get_finance_request(manager.id, created["id"])["request"]["analyst_viewed_at"]
    assert first is not None
    assert first == second


def test_list_my_requests(owner, make_profile):
    create_finance_request(owner.id, _payload())
    create_finance_request(owner.id, _payload(requestKind="Adiantamento", expenseType="", amountBrl="", attachments=[]))
    other = make_profile(roles=[ROLE_COLLAB])
    create_finance_request(other.id, _payload())

    mine = list_my_finance_requests(owner.id)
    assert len(mine) == 2
    assert {r["created_by"] for r in mine} == {owner.id}
    assert len(list_my_finance_requests(owner.id, {"request_kind": "Adiantamento"})) == 1


def test_admin_list_filters(owner, manager, make_profile):
    other = make_profile("João Pereira", roles=[ROLE_COLLAB])
    a = create_finance_request(owner.id, _payload())
    create_finance_request(other.id, _payload(company="CPFL Santa Cruz", dateStart="2026-04-10", dateEnd=None))
    admin_update_finance_status(manager.id, a["id"], "Aprovado")

    assert len(list_finance_requests(manager.id)) == 2
    assert [r["id"] for r in list_finance_requests(manager.id, {"status": "Aprovado"})] == [a["id"]]
    assert len(list_finance_requests(manager.id, {"status": "all"})) == 2
    assert len(list_finance_requests(manager.id, {"company": "CPFL Santa Cruz"})) == 1
    assert len(list_finance_requests(manager.id, {"date_start_from": "2026-04-01"})) == 1
    assert [r["created_by_name"] for r in list_finance_requests(manager.id, {"q": "joão"})] == ["João Pereira"]
    assert len(list_finance_requests(manager.id, {"limit": "1"})) == 1


def test_admin_list_rejects_bad_filters(manager):
    with pytest.raises(ValidationError) as exc:
        list_finance_requests(manager.id, {"date_start_from": "2026-05-01", "date_start_to": "2026-04-01"})
    assert "date_start_to" in exc.value.details
    with pytest.raises(ValidationError):
        list_finance_requests(manager.id, {"status": "Arquivado"})


def test_admin_list_requires_manager(owner):
    with pytest.raises(AuthorizationError):
        list_finance_requests(owner.id)


# ═════════════════════════════════════════════════════════════════════════
# Export
# ═════════════════════════════════════════════════════════════════════════


def test_export_csv(manager, created):
    payload, mimetype, filename = export_finance_requests(manager.id, {}, "csv")
    assert mimetype.startswith("text/csv")
    assert filename.endswith(".csv")
    rows = list(csv.reader(io.StringIO(payload)))
    assert rows[0] == CSV_COLUMNS
    assert rows[1][0] == created["protocol"]
    assert rows[1][CSV_COLUMNS.index("amount_brl")] == "1234,56"
    assert rows[1][CSV_COLUMNS.index("training_operational")] == "Não"


def test_export_xlsx(manager, created):
    payload, mimetype, _ = export_finance_requests(manager.id, {}, "xlsx")
    assert "spreadsheetml" in mimetype
    ws = openpyxl.load_workbook(io.BytesIO(payload))["Solicitacoes"]
    assert ws.cell(row=1, column=1).value == "Protocolo"
    assert ws.cell(row=2, column=1).value == created["protocol"]
    assert ws.cell(row=2, column=14).value == pytest.approx(1234.56)


def test_export_unknown_format(manager):
    with pytest.raises(ValidationError):
        export_finance_requests(manager.id, {}, "pdf")


# ═════════════════════════════════════════════════════════════════════════
# Delete
# ═════════════════════════════════════════════════════════════════════════


def test_owner_deletes_untouched_request(owner, created):
    result = delete_finance_request(owner.id, created["id"])
    assert result["protocol"] == created["protocol"]
    assert db.session.get(FinanceRequest, created["id"]) is None
    assert _count(FinanceRequestAttachment) == 0
    assert _count(FinanceRequestStatusHistory) == 0


def test_owner_cannot_delete_after_analyst_viewed(owner, manager, created):
    get_finance_request(manager.id, created["id"])
    with pytest.raises(InvalidTransitionError):
        delete_finance_request(owner.id, created["id"])


def test_owner_cannot_delete_after_review(owner, manager, created):
    admin_update_finance_status(manager.id, created["id"], "Em análise")
    with pytest.raises(InvalidTransitionError):
        delete_finance_request(owner.id, created["id"])


def test_non_owner_cannot_delete(manager, created):
    with pytest.raises(AuthorizationError):
        delete_finance_request(manager.id, created["id"])


def test_admin_purges_any_request(owner, manager, make_profile, created):
    admin = make_profile(roles=[ROLE_ADMIN])
    admin_update_finance_status(manager.id, created["id"], "Pago")
    delete_finance_request(admin.id, created["id"])
    assert db.session.get(FinanceRequest, created["id"]) is None
    audit = db.session.execute(
        select(AuditLog).where(AuditLog.action == "finance_request.delete")
    ).scalars().one()
    assert audit.after == {"purge": True}
