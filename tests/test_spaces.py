import json

import pytest

from linkspaces.spaces import (
    IMPORT_DONE,
    LINK_GONE,
    SETTINGS_SAVED,
    ErrorKind,
    SpacesStore,
)
from linkspaces.storage import SAVE_FAILED_NOTICE, PersistenceGateway


def _assert_dense(doc):
    assert [f.order for f in doc.folders] == list(range(len(doc.folders)))
    for f in doc.folders:
        assert [link.order for link in f.links] == list(range(len(f.links)))


def _persisted(kv):
    return json.loads(kv.data["spaces_v1"])


def test_first_run_seeds_and_saves(store, kv):
    doc = store.get_document()
    assert [f.name for f in doc.folders] == ["Work", "Life", "Learn"]
    assert _persisted(kv)["folders"][0]["name"] == "Work"


def test_get_document_returns_a_copy(store):
    doc = store.get_document()
    doc.folders.clear()
    assert len(store.get_document().folders) == 3


def test_create_folder_appends_and_activates(store, kv):
    res = store.create_folder("  Reading  ", "📖")
    assert res.ok and res.changed and res.saved
    doc = store.get_document()
    assert doc.folders[-1].id == res.id
    assert (doc.folders[-1].name, doc.folders[-1].emoji, doc.folders[-1].order) == ("Reading", "📖", 3)
    assert doc.active_folder_id == res.id
    assert _persisted(kv)["activeFolderId"] == res.id


def test_create_folder_rejects_blank_name(store):
    before = store.get_document()
    res = store.create_folder("   ")
    assert not res.ok
    assert res.error is ErrorKind.VALIDATION_FAILED
    assert res.field == "name"
    assert store.get_document() == before


def test_create_folder_defaults_emoji(store):
    res = store.create_folder("Plain", "   ")
    assert store.get_document().folders[-1].emoji == "📁"
    assert res.ok


def test_rename_folder_keeps_identity(store):
    work = store.get_document().folders[0]
    res = store.rename_folder(work.id, "Job", "💼")
    assert res.ok
    after = store.get_document().folders[0]
    assert (after.name, after.emoji) == ("Job", "💼")
    assert (after.id, after.created_at, after.order) == (work.id, work.created_at, work.order)
    assert [link.id for link in after.links] == [link.id for link in work.links]

    assert store.rename_folder(work.id, "").field == "name"
    assert store.rename_folder("missing", "Name").changed is False


def test_delete_active_folder_activates_new_first(store):
    doc = store.get_document()
    store.delete_folder(doc.folders[0].id)
    after = store.get_document()
    assert [f.name for f in after.folders] == ["Life", "Learn"]
    assert after.active_folder_id == after.folders[0].id
    _assert_dense(after)


def test_delete_inactive_folder_keeps_active(store):
    doc = store.get_document()
    store.set_active_folder(doc.folders[2].id)
    store.delete_folder(doc.folders[0].id)
    assert store.get_document().active_folder_id == doc.folders[2].id


def test_delete_last_folder_clears_active(empty_store):
    res = empty_store.create_folder("Only")
    empty_store.delete_folder(res.id)
    doc = empty_store.get_document()
    assert doc.folders == [] and doc.active_folder_id is None


def test_unknown_ids_are_silent_noops(store):
    before = store.get_document()
    for res in (
        store.delete_folder("nope"),
        store.set_active_folder("nope"),
        store.delete_link(None, "nope"),
        store.update_link(None, "nope", "T", "example.com"),
        store.reorder_folders("nope", before.folders[0].id),
        store.reorder_links(None, "nope", "also-nope"),
        store.reorder_links("nope", "a", "b"),
    ):
        assert res.ok and not res.changed
    assert store.get_document() == before


def test_create_link_validates_title_then_url(store):
    folder_id = store.get_document().folders[0].id
    before = store.get_document()

    res = store.create_link(folder_id, " ", "example.com")
    assert (res.ok, res.error, res.field) == (False, ErrorKind.VALIDATION_FAILED, "title")
    res = store.create_link(folder_id, "Bad", "javascript:alert(1)")
    assert (res.ok, res.error, res.field) == (False, ErrorKind.VALIDATION_FAILED, "url")
    assert store.get_document() == before


def test_create_link_appends_with_next_order(store):
    folder_id = store.get_document().folders[0].id
    res = store.create_link(folder_id, " Docs ", "docs.python.org")
    assert res.ok
    links = store.get_document().folders[0].links
    assert (links[-1].id, links[-1].title, links[-1].url, links[-1].order) == (
        res.id,
        "Docs",
        "https://docs.python.org/",
        3,
    )


def test_create_link_defaults_to_active_folder(store):
    life = store.get_document().folders[1]
    store.set_active_folder(life.id)
    store.create_link(None, "Maps", "maps.example")
    assert store.get_document().folders[1].links[-1].title == "Maps"


def test_create_link_without_folders_is_not_found(empty_store):
    res = empty_store.create_link(None, "T", "example.com")
    assert (res.ok, res.error) == (False, ErrorKind.NOT_FOUND)


def test_update_and_delete_link(store):
    folder = store.get_document().folders[0]
    target = folder.links[1]
    assert store.update_link(folder.id, target.id, "Cal", "HTTPS://Calendar.example").ok
    updated = store.get_document().folders[0].links[1]
    assert (updated.id, updated.title, updated.url, updated.created_at) == (
        target.id,
        "Cal",
        "https://calendar.example/",
        target.created_at,
    )
    assert store.update_link(folder.id, target.id, "Cal", "ftp://x").field == "url"

    store.delete_link(folder.id, target.id)
    links = store.get_document().folders[0].links
    assert target.id not in [link.id for link in links]
    assert [link.order for link in links] == [0, 1]


def test_reorder_links_moves_to_target_position(store, kv):
    folder = store.get_document().folders[0]
    l1, l2, l3 = [link.id for link in folder.links]
    assert store.reorder_links(folder.id, l1, l3).changed
    links = store.get_document().folders[0].links
    assert [link.id for link in links] == [l2, l3, l1]
    assert [link.order for link in links] == [0, 1, 2]
    assert [link["id"] for link in _persisted(kv)["folders"][0]["links"]] == [l2, l3, l1]


def test_reorder_folders(store):
    ids = [f.id for f in store.get_document().folders]
    store.reorder_folders(ids[2], ids[0])
    doc = store.get_document()
    assert [f.id for f in doc.folders] == [ids[2], ids[0], ids[1]]
    _assert_dense(doc)


def test_import_rejects_invalid_json(store, notifier):
    before = store.get_document()
    res = store.import_replace("{not json")
    assert (res.ok, res.error) == (False, ErrorKind.INVALID_JSON)
    assert store.get_document() == before
    assert IMPORT_DONE not in notifier.messages


def test_import_replaces_everything(store, notifier):
    res = store.import_replace(json.dumps({"activeFolderId": "B", "folders": [{"id": "A"}, {"id": "B", "name": "Bee"}]}))
    assert res.ok
    doc = store.get_document()
    assert [f.id for f in doc.folders] == ["A", "B"]
    assert doc.active_folder_id == "B"
    assert notifier.messages[-1] == IMPORT_DONE


def test_export_then_import_round_trips(store):
    store.create_folder("Extra", "🧪")
    store.create_link(None, "Ex", "example.com")
    exported = store.get_document().to_json_dict()
    text = store.export_snapshot()
    assert json.loads(text) == exported

    assert store.import_replace(text).ok
    assert store.get_document().to_json_dict() == exported


def test_open_all_caps_and_flags_truncation(empty_store):
    folder_id = empty_store.create_folder("Many").id
    for i in range(5):
        empty_store.create_link(folder_id, f"L{i}", f"site{i}.example")
    empty_store.update_settings(max_open_all=2)

    plan = empty_store.open_all(folder_id)
    assert plan.urls == ["https://site0.example/", "https://site1.example/"]
    assert plan.truncated is True
    assert plan.total == 5
    assert plan.prompt == 'Open 2 (capped) tabs from "Many"?'


def test_open_all_uncapped_and_unknown_folder(store):
    plan = store.open_all()
    assert len(plan.urls) == 3 and plan.truncated is False
    assert plan.folder_name == "Work"
    assert store.open_all("missing").urls == []


def test_update_settings_clamps_and_notifies(store, notifier):
    res = store.update_settings(open_mode="window", confirm_open_all=False, max_open_all=1000, open_delay_ms="-3")
    assert res.ok
    s = store.get_document().settings
    assert (s.open_mode, s.confirm_open_all, s.max_open_all, s.open_delay_ms) == ("window", False, 100, 0)
    assert notifier.messages[-1] == SETTINGS_SAVED

    store.update_settings(open_mode="bogus")
    assert store.get_document().settings.open_mode == "tabs"
    assert store.get_document().settings.max_open_all == 100


def test_search_links_matches_title_url_and_domain(store):
    assert [link.title for link in store.search_links("GIT")] == ["GitHub"]
    assert [link.title for link in store.search_links("google.com")] == ["Email", "Calendar"]
    assert len(store.search_links("  ")) == 3
    assert store.search_links("zzz") == []


def test_open_one_revalidates(store, notifier):
    assert store.open_one("example.com") == "https://example.com/"
    assert store.open_one("javascript:alert(1)") is None
    assert notifier.messages[-1] == LINK_GONE


def test_active_folder_falls_back_to_first(empty_store):
    assert empty_store.active_folder() is None
    res = empty_store.create_folder("One")
    assert empty_store.active_folder().id == res.id


def test_orders_stay_dense_across_mutations(store):
    doc = store.get_document()
    work, life = doc.folders[0].id, doc.folders[1].id
    store.create_link(life, "A", "a.example")
    store.delete_link(work, doc.folders[0].links[0].id)
    store.reorder_links(life, doc.folders[1].links[0].id, doc.folders[1].links[1].id)
    store.create_folder("New")
    store.reorder_folders(work, store.get_document().folders[-1].id)
    store.delete_folder(life)
    _assert_dense(store.get_document())


def test_save_failures_never_break_the_store(notifier, write_failing_kv):
    s = SpacesStore(PersistenceGateway(write_failing_kv, notifier=notifier))
    # The initial re-save after loading is silent.
    assert notifier.messages == []

    res = s.create_folder("Kept in memory")
    assert res.ok and res.saved is False
    assert res.error is ErrorKind.PERSISTENCE_FAILURE
    assert notifier.messages == [SAVE_FAILED_NOTICE]
    assert s.get_document().folders[-1].name == "Kept in memory"

    res = s.create_link(res.id, "Still works", "example.com")
    assert res.ok
    assert len(notifier.messages) == 2


@pytest.mark.parametrize("text", ["", "   ", "nul", None])
def test_import_rejects_blank_or_non_text(store, text):
    assert store.import_replace(text).error is ErrorKind.INVALID_JSON


def test_import_rejects_deeply_nested_json(store, notifier):
    before = store.get_document()
    res = store.import_replace("[" * 100000 + "]" * 100000)
    assert (res.ok, res.error) == (False, ErrorKind.INVALID_JSON)
    assert store.get_document() == before
    assert notifier.messages == []


def test_success_notices_are_withheld_when_the_write_fails(notifier, write_failing_kv):
    s = SpacesStore(PersistenceGateway(write_failing_kv, notifier=notifier))

    res = s.update_settings(max_open_all=5)
    assert res.saved is False
    assert s.get_document().settings.max_open_all == 5
    assert notifier.messages == [SAVE_FAILED_NOTICE]

    res = s.import_replace(json.dumps({"folders": [{"id": "A", "name": "A"}]}))
    assert res.saved is False
    assert notifier.messages == [SAVE_FAILED_NOTICE, SAVE_FAILED_NOTICE]
