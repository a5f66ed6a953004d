# tests/test_message_analysis.py
import asyncio
import json
import threading

import pytest

from magic_order.schemas.draft import DEFAULTED_QUANTITY_NOTE, UNKNOWN_CLIENT, OrderCard
from magic_order.services.draft_reconciliation import has_missing_info
from magic_order.services.draft_store import DraftStore
from magic_order.services.errors import (
    AnalysisCancelled,
    JsonRecoveryFailure,
    MessageAnalysisError,
    TransportError,
)
from magic_order.services.message_analysis_service import (
    UNRESOLVED_PRODUCT_NOTE,
    AnalysisConfig,
    AnalysisPhase,
    AnalysisSlot,
    AnalysisSlotRegistry,
    CancelToken,
    MessageAnalysisService,
)

ANA_RESPONSE = """```json
[
  {
    "client": {"id": "demo-c-ana", "name": "Ana", "matchConfidence": "alto"},
    "items": [
      {"product": {"id": "demo-p-leche", "name": "Leche"}, "quantity": 2, "status": "confirmado", "notes": ""},
      {"product": {"id": "demo-p-pan", "name": "Pan"}, "quantity": 1, "status": "confirmado", "notes": ""}
    ],
    "pickupLocation": null
  }
]
```"""


def _demo_service(db, provider):
    return MessageAnalysisService(db, AnalysisConfig(use_real_data=False), provider=provider)


def _single_order(items, client=None):
    return json.dumps([{"client": client or {"id": "demo-c-ana", "name": "Ana"}, "items": items}])


def _analyze(service, message="mensaje", **kwargs):
    return asyncio.run(service.analyze(message, **kwargs))


def test_ana_orders_milk_and_bread(db, fake_provider):
    provider = fake_provider(ANA_RESPONSE)
    progress = []
    service = _demo_service(db, provider)

    result = _analyze(service, "Hola soy Ana, quiero 2 leches y 1 pan",
                      on_progress=lambda percent, phase: progress.append((percent, phase)))

    assert len(result.result) == 1
    card = result.result[0]
    assert card.client.id == "demo-c-ana"
    assert card.client.match_confidence == "alto"
    assert [(i.product.id, i.quantity, i.status) for i in card.items] == [
        ("demo-p-leche", 2, "confirmado"),
        ("demo-p-pan", 1, "confirmado"),
    ]
    assert not has_missing_info(card)

    assert len(provider.prompts) == 1
    assert "Hola soy Ana" in provider.prompts[0]
    assert "Producto: Leche (ID: demo-p-leche). Sin variantes" in provider.prompts[0]
    assert result.phase1_response == ANA_RESPONSE
    assert json.loads(result.phase2_response)[0]["client"]["name"] == "Ana"
    assert json.loads(result.phase3_response)[0]["items"][0]["product"]["id"] == "demo-p-leche"
    assert result.elapsed_time >= 0

    assert [p for p, _ in progress] == [10, 20, 30, 60, 80, 100]
    assert progress[-1][1] is AnalysisPhase.DONE
    assert service.phase is AnalysisPhase.DONE


def test_missing_or_zero_quantity_defaults_to_one_with_doubt(db, fake_provider):
    response = _single_order([
        {"product": {"id": "demo-p-leche", "name": "Leche"}, "status": "confirmado"},
        {"product": {"id": "demo-p-pan", "name": "Pan"}, "quantity": 0, "status": "confirmado", "notes": "urgente"},
        {"product": {"id": "demo-p-queso", "name": "Queso"}, "quantity": "3", "status": "confirmado"},
    ])
    card = _analyze(_demo_service(db, fake_provider(response))).result[0]

    leche, pan, queso = card.items
    assert (leche.quantity, leche.status, leche.notes) == (1, "duda", DEFAULTED_QUANTITY_NOTE)
    assert (pan.quantity, pan.status) == (1, "duda")
    assert pan.notes == f"urgente. {DEFAULTED_QUANTITY_NOTE}"
    assert (queso.quantity, queso.status, queso.product.name) == (3, "confirmado", "Queso fresco")


@pytest.mark.parametrize("quantity", [2.5, "1,5", "0.5"])
def test_fractional_quantity_defaults_with_doubt(db, fake_provider, quantity):
    response = _single_order([
        {"product": {"id": "demo-p-leche", "name": "Leche"}, "quantity": quantity, "status": "confirmado"},
    ])
    item = _analyze(_demo_service(db, fake_provider(response))).result[0].items[0]

    assert (item.quantity, item.status, item.notes) == (1, "duda", DEFAULTED_QUANTITY_NOTE)


def test_whole_float_quantity_is_accepted(db, fake_provider):
    response = _single_order([
        {"product": {"id": "demo-p-leche", "name": "Leche"}, "quantity": 2.0, "status": "confirmado"},
    ])
    item = _analyze(_demo_service(db, fake_provider(response))).result[0].items[0]

    assert (item.quantity, item.status) == (2, "confirmado")


def test_empty_items_order_is_not_saveable(db, fake_provider):
    response = json.dumps([{"client": {"id": "demo-c-ana", "name": "Ana"}, "items": []}])
    card = _analyze(_demo_service(db, fake_provider(response))).result[0]

    assert card.items == []
    assert has_missing_info(card)


def test_product_with_variants_requires_variant(db, fake_provider):
    response = _single_order([
        {"product": {"id": "demo-p-panales", "name": "Pañales"}, "quantity": 2, "status": "confirmado"},
        {"product": {"id": "demo-p-panales", "name": "Pañales"}, "quantity": 1, "status": "confirmado",
         "variant": {"id": "demo-v-panales-3", "name": "talla 3"}},
        {"product": {"id": "demo-p-panales", "name": "Pañales"}, "quantity": 1, "status": "confirmado",
         "variant": {"id": "demo-v-yogur-fresa", "name": "Fresa"}},
    ])
    without, with_variant, foreign = _analyze(_demo_service(db, fake_provider(response))).result[0].items

    assert without.status == "duda"
    assert without.notes == "¿Qué variante de Pañales?"
    assert with_variant.status == "confirmado"
    assert with_variant.variant.name == "Talla 3"
    assert foreign.variant is None
    assert foreign.status == "duda"


def test_unknown_ids_are_unresolved(db, fake_provider):
    response = _single_order(
        [{"product": {"id": "p-inventado", "name": "Helado"}, "quantity": 1, "status": "confirmado"}],
        client={"id": "c-inventado", "name": "Pedro", "matchConfidence": "alto"},
    )
    card = _analyze(_demo_service(db, fake_provider(response))).result[0]

    assert card.client.id is None
    assert card.client.name == "Pedro"
    assert card.client.match_confidence == "bajo"
    item = card.items[0]
    assert item.product.id is None
    assert item.product.name == "Helado"
    assert item.status == "duda"
    assert item.notes == UNRESOLVED_PRODUCT_NOTE
    assert has_missing_info(card)


def test_missing_client_and_invalid_entries_get_defaults(db, fake_provider):
    response = json.dumps([
        "texto suelto",
        {"items": [{"quantity": 1, "status": "quizás"}], "pickupLocation": "Local centro"},
    ])
    result = _analyze(_demo_service(db, fake_provider(response))).result

    assert len(result) == 1
    card = result[0]
    assert card.client.id is None
    assert card.client.name == UNKNOWN_CLIENT
    assert card.pickup_location == "Local centro"
    assert card.items[0].product.name == "Producto desconocido"
    assert card.items[0].status == "duda"


def test_empty_array_yields_no_orders(db, fake_provider):
    result = _analyze(_demo_service(db, fake_provider("[]")))
    assert result.result == []


def test_broken_json_is_repaired_once(db, fake_provider):
    repaired = _single_order([{"product": {"id": "demo-p-pan", "name": "Pan"}, "quantity": 1, "status": "confirmado"}])
    provider = fake_provider('[{"client": {"name": "Ana"}, "items": [', repaired)
    progress = []

    result = _analyze(_demo_service(db, provider), on_progress=lambda p, _: progress.append(p))

    assert len(provider.prompts) == 2
    assert "TEXTO A CORREGIR" in provider.prompts[1]
    assert '[{"client": {"name": "Ana"}, "items": [' in provider.prompts[1]
    assert result.phase2_response == repaired
    assert result.result[0].items[0].product.id == "demo-p-pan"
    assert 85 in progress


def test_non_array_json_triggers_repair(db, fake_provider):
    provider = fake_provider('{"client": "Ana"}', "[]")
    result = _analyze(_demo_service(db, provider))
    assert len(provider.prompts) == 2
    assert result.result == []


def test_repair_failure_raises_recovery_error(db, fake_provider):
    provider = fake_provider("no hay json aquí", "sigue sin haber json")

    with pytest.raises(JsonRecoveryFailure) as exc:
        _analyze(_demo_service(db, provider))

    error = exc.value
    assert error.phase1_response == "no hay json aquí"
    assert error.extracted_text == "no hay json aquí"
    assert error.repair_response == "sigue sin haber json"
    assert len(provider.prompts) == 2


def test_transport_error_propagates_without_retry(db, fake_provider):
    provider = fake_provider(TransportError("Error en la API de Gemini: 503", status=503, raw_body="overloaded"))
    service = _demo_service(db, provider)

    with pytest.raises(TransportError) as exc:
        _analyze(service)
    assert exc.value.raw_body == "overloaded"
    assert len(provider.prompts) == 1
    assert service.phase is AnalysisPhase.ERRORED


def test_unexpected_error_is_wrapped(db, fake_provider):
    provider = fake_provider(KeyError("boom"))

    with pytest.raises(MessageAnalysisError) as exc:
        _analyze(_demo_service(db, provider))
    assert type(exc.value) is MessageAnalysisError


def test_real_data_uses_database_catalog(seeded, db, fake_provider):
    ana = seeded.clients["Ana"]
    leche = seeded.products["Leche"]
    response = _single_order(
        [{"product": {"id": leche.id, "name": "leche"}, "quantity": 2, "status": "confirmado"}],
        client={"id": ana.id, "name": "Ana", "matchConfidence": "alto"},
    )
    provider = fake_provider(response)
    service = MessageAnalysisService(db, AnalysisConfig(use_real_data=True), provider=provider)

    card = _analyze(service).result[0]
    assert card.client.id == ana.id
    assert card.items[0].product.name == "Leche"
    assert f"(ID: {leche.id})" in provider.prompts[0]


# ==========================================
# CANCELACIÓN
# ==========================================

def test_cancel_aborts_in_flight_call_and_leaves_drafts_untouched(db, fake_provider):
    store = DraftStore(db)
    previous = OrderCard.model_validate({"client": {"id": "demo-c-ana", "name": "Ana"}})
    store.save_orders("s1", [previous])

    provider = fake_provider(ANA_RESPONSE, delay=5)
    service = _demo_service(db, provider)

    async def run():
        token = CancelToken()
        task = asyncio.ensure_future(service.analyze("mensaje", cancel_token=token))
        await asyncio.sleep(0.2)
        token.cancel()
        with pytest.raises(AnalysisCancelled):
            await task

    asyncio.run(run())

    assert provider.aborted
    assert service.phase is AnalysisPhase.CANCELLED
    assert [o.to_json() for o in store.load_orders("s1")] == [previous.to_json()]


def test_already_cancelled_token_skips_provider(db, fake_provider):
    provider = fake_provider(ANA_RESPONSE)
    service = _demo_service(db, provider)

    async def run():
        token = CancelToken()
        token.cancel()
        await service.analyze("mensaje", cancel_token=token)

    with pytest.raises(AnalysisCancelled):
        asyncio.run(run())
    assert provider.prompts == []


def test_slot_start_cancels_previous_run():
    slot = AnalysisSlot()
    first = slot.start()
    slot.progress_callback(first)(30, AnalysisPhase.PHASE1)
    assert slot.running

    second = slot.start()
    assert first.cancelled
    assert not second.cancelled

    # Progreso de la ejecución reemplazada se ignora
    slot.progress_callback(first)(60, AnalysisPhase.PHASE2)
    assert slot.snapshot() == {"percent": 0, "phase": "idle"}


def test_slot_cancel_only_when_running():
    slot = AnalysisSlot()
    assert slot.cancel() is False

    token = slot.start()
    slot.progress_callback(token)(30, AnalysisPhase.PHASE1)
    assert slot.cancel() is True
    assert token.cancelled

    slot.finish(token, AnalysisPhase.CANCELLED)
    assert slot.cancel() is False


def test_catalog_is_loaded_off_the_event_loop(db, fake_provider, monkeypatch):
    service = _demo_service(db, fake_provider(ANA_RESPONSE))
    load_threads = []
    real_load = service._load_context

    def recording_load():
        load_threads.append(threading.get_ident())
        return real_load()

    monkeypatch.setattr(service, "_load_context", recording_load)

    async def run():
        await service.analyze("Hola soy Ana")
        return threading.get_ident()

    loop_thread = asyncio.run(run())

    assert len(load_threads) == 1
    assert load_threads[0] != loop_thread


# ==========================================
# REGISTRO DE RANURAS
# ==========================================

def test_registry_lookups_do_not_create_slots():
    registry = AnalysisSlotRegistry()

    for i in range(50):
        assert registry.progress(f"random-{i}") == {"percent": 0, "phase": "idle"}
        assert registry.cancel(f"random-x{i}") is False

    assert len(registry.slots) == 0


def test_registry_keeps_only_recent_settled_slots():
    registry = AnalysisSlotRegistry(max_settled=2)

    for i in range(5):
        key = f"s{i}"
        token = registry.get(key).start()
        registry.finish(key, token, AnalysisPhase.DONE)

    assert list(registry.slots) == ["s3", "s4"]
    assert registry.progress("s4")["phase"] == "done"
    assert registry.progress("s0") == {"percent": 0, "phase": "idle"}


def test_registry_never_drops_a_running_slot():
    registry = AnalysisSlotRegistry(max_settled=0)
    live = registry.get("vivo")
    live_token = live.start()
    live.progress_callback(live_token)(30, AnalysisPhase.PHASE1)

    token = registry.get("terminado").start()
    registry.finish("terminado", token, AnalysisPhase.ERRORED)

    assert list(registry.slots) == ["vivo"]
    assert registry.cancel("vivo") is True
