# tests/test_routers.py
import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from database.connection import get_db
from magic_order.models import Order
from magic_order.routers.magic_order import get_provider_factory
from magic_order.schemas.draft import OrderCard
from magic_order.services.draft_store import DraftStore
from magic_order.services.errors import AnalysisCancelled, TransportError
from main import app

DEMO_RESPONSE = json.dumps([{
    "client": {"id": "demo-c-ana", "name": "Ana", "matchConfidence": "alto"},
    "items": [{"product": {"id": "demo-p-leche", "name": "Leche"}, "quantity": 2, "status": "confirmado"}],
}])


@pytest.fixture
def provider_holder(fake_provider):
    """Proveedor que devolverá la fábrica sustituida; cada test lo reemplaza."""
    return {"provider": fake_provider(DEMO_RESPONSE)}


@pytest.fixture
def client(db, provider_holder):
    def override_get_db():
        yield db

    def override_factory():
        return lambda name, settings, model=None: provider_holder["provider"]

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_provider_factory] = override_factory
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def real_draft(db, seeded):
    """Borrador con datos reales guardado en la sesión 'real'."""
    ana = seeded.clients["Ana"]
    panales = seeded.products["Pañales"]
    card = OrderCard.model_validate({
        "client": {"id": ana.id, "name": "Ana", "matchConfidence": "alto"},
        "items": [{
            "product": {"id": panales.id, "name": "Pañales"},
            "quantity": 2,
            "status": "duda",
            "notes": "¿Qué variante de Pañales?",
        }],
    })
    DraftStore(db).save_orders("real", [card])
    return card


def _demo_mode(client, session_key):
    assert client.put(f"/magic-order/{session_key}/use-real-data", json={"use_real_data": False}).status_code == 200


# ==========================================
# ANÁLISIS
# ==========================================

def test_root_and_health(client):
    assert client.get("/").json()["status"] == "activo"
    assert client.get("/health").json() == {"status": "healthy", "service": "magic-order"}


def test_analyze_success_stores_drafts(client):
    _demo_mode(client, "a1")

    response = client.post("/magic-order/a1/analyze", json={"message": "Hola soy Ana, quiero 2 leches"})

    assert response.status_code == 200
    body = response.json()
    assert body["result"][0]["client"]["id"] == "demo-c-ana"
    assert body["phase1Response"] == DEMO_RESPONSE
    assert "elapsedTime" in body

    state = client.get("/magic-order/a1/state").json()
    assert state["message_text"] == "Hola soy Ana, quiero 2 leches"
    assert state["orders"][0]["items"][0]["quantity"] == 2
    assert state["missing_info"] == [False]
    assert client.get("/magic-order/a1/progress").json() == {"percent": 100, "phase": "done"}


def test_analyze_rejects_blank_message(client):
    assert client.post("/magic-order/a2/analyze", json={"message": "   "}).status_code == 422


def test_analyze_transport_error_is_502(client, provider_holder, fake_provider):
    provider_holder["provider"] = fake_provider(
        TransportError("Error en la API de Gemini: 500", status=500, status_text="Internal Server Error",
                       raw_body="upstream exploded")
    )
    _demo_mode(client, "a3")

    response = client.post("/magic-order/a3/analyze", json={"message": "hola"})

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["status"] == 500
    assert detail["raw"] == "upstream exploded"
    assert client.get("/magic-order/a3/progress").json()["phase"] == "errored"


def test_analyze_recovery_failure_is_422(client, provider_holder, fake_provider):
    provider_holder["provider"] = fake_provider("esto no es json", "esto tampoco")
    _demo_mode(client, "a4")

    response = client.post("/magic-order/a4/analyze", json={"message": "hola"})

    assert response.status_code == 422
    detail = response.json()["detail"]
    assert detail["phase1_response"] == "esto no es json"
    assert detail["extracted_text"] == "esto no es json"


def test_cancelled_analysis_is_not_an_error(client, db, provider_holder, fake_provider):
    provider_holder["provider"] = fake_provider(AnalysisCancelled())
    _demo_mode(client, "a5")
    DraftStore(db).save_message("a5", "mensaje previo")

    response = client.post("/magic-order/a5/analyze", json={"message": "mensaje nuevo"})

    assert response.status_code == 409
    assert response.json() == {"status": "cancelled"}
    state = client.get("/magic-order/a5/state").json()
    assert state["message_text"] == "mensaje previo"
    assert state["orders"] == []


def test_unavailable_provider_is_503(client):
    def broken_factory():
        def build(name, settings, model=None):
            raise RuntimeError("GOOGLE_API_KEY no configurada")
        return build

    app.dependency_overrides[get_provider_factory] = broken_factory

    response = client.post("/magic-order/a6/analyze", json={"message": "hola"})

    assert response.status_code == 503


def test_cancel_and_progress_when_idle(client):
    assert client.post("/magic-order/idle/cancel").json() == {"cancelled": False}
    assert client.get("/magic-order/idle/progress").json() == {"percent": 0, "phase": "idle"}


def test_progress_and_cancel_do_not_create_slots(client):
    slots = app.state.analysis_slots.slots
    before = len(slots)

    for i in range(50):
        assert client.get(f"/magic-order/random-{i}/progress").json() == {"percent": 0, "phase": "idle"}
        assert client.post(f"/magic-order/random-x{i}/cancel").json() == {"cancelled": False}

    assert len(slots) == before


def test_clear_state_keeps_data_flag(client):
    _demo_mode(client, "c1")
    client.put("/magic-order/c1/message", json={"message": "hola"})

    assert client.delete("/magic-order/c1/state").json() == {"cleared": True}

    state = client.get("/magic-order/c1/state").json()
    assert state["message_text"] == ""
    assert state["use_real_data"] is False


# ==========================================
# CORRECCIONES Y GUARDADO
# ==========================================

def test_fix_variant_then_save(client, db, seeded, real_draft):
    talla2 = seeded.variant("Pañales", "Talla 2")

    fixed = client.patch("/magic-order/real/drafts/0/items/0/variant", json={"variant_id": talla2.id})
    assert fixed.status_code == 200
    assert fixed.json()["missing_info"] is False
    assert fixed.json()["order"]["items"][0]["status"] == "confirmado"

    saved = client.post("/magic-order/real/drafts/0/save")
    assert saved.status_code == 200
    assert saved.json()["total"] == 24.00
    assert saved.json()["draft"]["status"] == "saved"

    again = client.post("/magic-order/real/drafts/0/save")
    assert again.status_code == 409


def test_save_with_missing_info_is_422(client, real_draft):
    response = client.post("/magic-order/real/drafts/0/save")
    assert response.status_code == 422
    assert response.json()["detail"] == "¿Qué variante de Pañales?"


def test_demo_drafts_cannot_be_saved(client, db):
    card = OrderCard.model_validate({
        "client": {"id": "demo-c-ana", "name": "Ana"},
        "items": [{"product": {"id": "demo-p-pan", "name": "Pan"}, "quantity": 1, "status": "confirmado"}],
    })
    DraftStore(db).save_orders("demo", [card])
    _demo_mode(client, "demo")

    assert client.post("/magic-order/demo/drafts/0/save").status_code == 409


def test_save_empty_draft_is_422(client, db, seeded):
    ana = seeded.clients["Ana"]
    empty = OrderCard.model_validate({"client": {"id": ana.id, "name": "Ana", "matchConfidence": "alto"}, "items": []})
    DraftStore(db).save_orders("vacio", [empty])

    response = client.post("/magic-order/vacio/drafts/0/save")

    assert response.status_code == 422
    assert response.json()["detail"] == "El pedido no tiene productos"
    assert client.get("/magic-order/vacio/state").json()["missing_info"] == [True]


def test_failed_draft_update_does_not_persist_order(client, db, seeded, real_draft, monkeypatch):
    talla2 = seeded.variant("Pañales", "Talla 2")
    client.patch("/magic-order/real/drafts/0/items/0/variant", json={"variant_id": talla2.id})

    def failing_stage(self, session_key, orders):
        raise OperationalError("UPDATE draft_sessions", {}, Exception("disk I/O error"))

    monkeypatch.setattr(DraftStore, "stage_orders", failing_stage)
    assert client.post("/magic-order/real/drafts/0/save").status_code == 500
    assert db.query(Order).count() == 0
    assert client.get("/magic-order/real/state").json()["orders"][0]["status"] == "pending"

    monkeypatch.undo()
    assert client.post("/magic-order/real/drafts/0/save").status_code == 200
    assert db.query(Order).count() == 1


def test_draft_edit_errors(client, real_draft):
    assert client.patch("/magic-order/real/drafts/5/client", json={"client_id": "x"}).status_code == 404
    assert client.patch("/magic-order/real/drafts/0/client", json={"client_id": "x"}).status_code == 422
    assert client.patch("/magic-order/real/drafts/0/items/3/quantity", json={"quantity": 2}).status_code == 422


def test_change_client_and_product(client, seeded, real_draft):
    juan = seeded.clients["Juan Pérez"]
    pan = seeded.products["Pan"]

    order = client.patch("/magic-order/real/drafts/0/client", json={"client_id": juan.id}).json()["order"]
    assert order["client"] == {"id": juan.id, "name": "Juan Pérez", "matchConfidence": "alto"}

    result = client.patch("/magic-order/real/drafts/0/items/0/product", json={"product_id": pan.id}).json()
    assert result["order"]["items"][0]["product"]["name"] == "Pan"
    assert result["missing_info"] is False


def test_delete_draft(client, real_draft):
    assert client.delete("/magic-order/real/drafts/0").json() == {"remaining": 0}
    assert client.get("/magic-order/real/state").json()["orders"] == []


# ==========================================
# PROMPT Y PROVEEDOR
# ==========================================

def test_prompt_endpoints(client):
    assert client.get("/magic-order/prompt").json()["is_custom"] is False

    bad = client.put("/magic-order/prompt", json={"template": "sin marcadores"})
    assert bad.status_code == 422
    assert "{messageText}" in bad.json()["detail"]["missing"]

    template = "{productsContext} {clientsContext} {messageText}"
    assert client.put("/magic-order/prompt", json={"template": template}).json() == {
        "template": template, "is_custom": True,
    }
    assert client.get("/magic-order/prompt").json()["template"] == template

    assert client.delete("/magic-order/prompt").json()["is_custom"] is False


def test_provider_endpoints(client):
    assert client.get("/magic-order/provider").json() == {"provider": "google-gemini", "model": "gemini-2.0-flash"}

    updated = client.put("/magic-order/provider", json={"provider": "openai"})
    assert updated.json() == {"provider": "openai", "model": "gpt-4o-mini"}

    assert client.put("/magic-order/provider", json={"provider": "otro"}).status_code == 422


# ==========================================
# PEDIDOS GUARDADOS
# ==========================================

@pytest.fixture
def saved_items(client, seeded, real_draft):
    talla2 = seeded.variant("Pañales", "Talla 2")
    client.patch("/magic-order/real/drafts/0/items/0/variant", json={"variant_id": talla2.id})
    order_id = client.post("/magic-order/real/drafts/0/save").json()["order_id"]
    summary = client.get(f"/orders/clients/{seeded.clients['Ana'].id}/summary").json()
    return order_id, summary


def test_client_summary_endpoint(client, seeded, saved_items):
    _, summary = saved_items
    assert summary["total"] == 24.00
    assert summary["groups"][0]["base_name"] == "Pañales"
    assert summary["groups"][0]["variants"][0]["label"] == "Talla 2"


def test_unknown_client_summary_is_404(client, db):
    assert client.get("/orders/clients/no-existe/summary").status_code == 404


def test_item_mutations(client, saved_items):
    _, summary = saved_items
    item_id = summary["orders"][0]["items"][0]["id"]

    paid = client.put(f"/orders/items/{item_id}/paid", json={"is_paid": True}).json()
    assert paid["order"]["balance"] == 0.0

    assert client.patch(f"/orders/items/{item_id}/quantity", json={"quantity": 0}).status_code == 422

    updated = client.patch(f"/orders/items/{item_id}/quantity", json={"quantity": 3}).json()
    assert updated["order"]["total"] == 36.00

    assert client.delete(f"/orders/items/{item_id}").json()["order"]["total"] == 0.0
    assert client.delete("/orders/items/no-existe").status_code == 404


def test_group_and_client_paid(client, seeded, saved_items):
    ana_id = seeded.clients["Ana"].id

    group = client.put(f"/orders/clients/{ana_id}/groups/Pañales/paid", json={"is_paid": True})
    assert group.status_code == 200
    assert len(group.json()["updated"]) == 1

    client.put(f"/orders/clients/{ana_id}/paid", json={"is_paid": False})
    assert client.get(f"/orders/clients/{ana_id}/summary").json()["balance"] == 24.00


def test_delete_order(client, saved_items):
    order_id, _ = saved_items
    assert client.delete(f"/orders/{order_id}").json() == {"order_id": order_id}
    assert client.delete(f"/orders/{order_id}").status_code == 404
