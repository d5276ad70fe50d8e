import asyncio

import pytest

from app.domains.canvas.entities import ChangeOrigin, ChangeScope
from app.domains.canvas.store import InMemoryDocumentStore, InvalidRecordError
from conftest import make_asset, make_entity, make_view


def test_snapshot_is_a_copy():
    store = InMemoryDocumentStore([make_entity("entity:a")])

    snapshot = store.get_snapshot()
    snapshot["entity:a"]["props"]["w"] = 999

    assert store.get_entity("entity:a")["props"]["w"] == 100


def test_subscription_filters_origin_and_scope():
    store = InMemoryDocumentStore()
    user_document, remote_all, user_session = [], [], []
    store.subscribe(user_document.append, origin=ChangeOrigin.USER, scope=ChangeScope.DOCUMENT)
    store.subscribe(remote_all.append, origin=ChangeOrigin.REMOTE, scope=ChangeScope.ALL)
    store.subscribe(user_session.append, origin=ChangeOrigin.USER, scope=ChangeScope.SESSION)

    store.put([make_entity("entity:a"), make_view()])
    store.load_entities([make_entity("entity:b")])

    assert len(user_document) == 1
    assert set(user_document[0].added) == {"entity:a"}
    assert user_document[0].scope == ChangeScope.DOCUMENT
    assert len(user_session) == 1
    assert set(user_session[0].added) == {"view:camera"}
    assert len(remote_all) == 1
    assert set(remote_all[0].added) == {"entity:b"}


def test_update_and_remove_report_changes():
    store = InMemoryDocumentStore()
    changes = []
    store.subscribe(changes.append, origin=ChangeOrigin.ANY, scope=ChangeScope.ALL)

    store.put([make_entity("entity:a")])
    store.update_entity("entity:a", {"props": {"h": 250}}, origin=ChangeOrigin.USER)
    store.remove(["entity:a"])

    assert set(changes[1].updated) == {"entity:a"}
    assert changes[1].updated["entity:a"]["props"] == {"w": 100, "h": 250}
    assert set(changes[2].removed) == {"entity:a"}
    assert store.get_entity("entity:a") is None


def test_update_missing_entity_raises():
    store = InMemoryDocumentStore()

    with pytest.raises(KeyError):
        store.update_entity("entity:missing", {"props": {"h": 1}})


def test_unsubscribe_stops_notifications():
    store = InMemoryDocumentStore()
    changes = []
    unsubscribe = store.subscribe(changes.append)

    unsubscribe()
    store.put([make_entity("entity:a")])

    assert changes == []


def test_failing_listener_does_not_break_others():
    store = InMemoryDocumentStore()
    changes = []

    def broken(change):
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    store.subscribe(changes.append)
    store.put([make_entity("entity:a")])

    assert len(changes) == 1


async def test_link_reference_asset_materializes_later():
    store = InMemoryDocumentStore(asset_materialize_delay=0.02)
    store.put([make_entity("entity:link", shape_type="bookmark", url="https://example.com")])

    assert store.get_entity("entity:link")["props"]["assetId"] is None

    await asyncio.sleep(0.05)

    asset_id = store.get_entity("entity:link")["props"]["assetId"]
    asset = store.get_asset(asset_id)
    assert asset["props"]["src"] == "https://example.com"
    assert asset["meta"]["entityId"] == "entity:link"


async def test_asset_is_never_created_when_disabled():
    store = InMemoryDocumentStore(asset_materialize_delay=None)
    store.put([make_entity("entity:link", shape_type="bookmark", url="https://example.com")])

    await asyncio.sleep(0.02)

    assert store.get_entity("entity:link")["props"]["assetId"] is None


def test_existing_asset_reference_is_kept():
    store = InMemoryDocumentStore()
    store.load_assets([make_asset("asset:1", entity_id="entity:link")])
    store.load_entities([make_entity("entity:link", shape_type="bookmark", url="https://x.test", asset_id="asset:1")])

    assert store.get_entity("entity:link")["props"]["assetId"] == "asset:1"
    assert len(store) == 2


@pytest.mark.parametrize("bad_record", [{"typeName": "entity"}, "entity:b", {"id": ""}])
def test_batch_with_invalid_record_changes_nothing(bad_record):
    store = InMemoryDocumentStore()
    changes = []
    store.subscribe(changes.append)

    with pytest.raises(InvalidRecordError):
        store.put([make_entity("entity:ok"), bad_record])

    assert store.get_entity("entity:ok") is None
    assert len(store) == 0
    assert changes == []
