"""
Tests for the persistent store: key/value backends, the namespaced
GuideStore records, reset semantics, export/import and the memory fallback.
"""
import json
import sqlite3

import pytest
from factories import FailingKeyValueStore, FlakyKeyValueStore, make_answers, make_settings, make_store

from preop_guide.storage import (
    PREFERENCES,
    RECORD_NAMES,
    SURVEY_ANSWERS,
    GuideStore,
    MemoryKeyValueStore,
    SqliteKeyValueStore,
    StorageError,
    is_storage_available,
    open_store,
)


# ─── Backends ─────────────────────────────────────────────────────────────────

class TestSqliteBackend:
    def test_set_get_roundtrip(self, tmp_path):
        kv = SqliteKeyValueStore(tmp_path / "kv.db")
        kv.set("a", "1")
        assert kv.get("a") == "1"

    def test_overwrite(self, tmp_path):
        kv = SqliteKeyValueStore(tmp_path / "kv.db")
        kv.set("a", "1")
        kv.set("a", "2")
        assert kv.get("a") == "2"
        assert kv.keys() == ["a"]

    def test_missing_key_is_none(self, tmp_path):
        assert SqliteKeyValueStore(tmp_path / "kv.db").get("nope") is None

    def test_remove_and_clear(self, tmp_path):
        kv = SqliteKeyValueStore(tmp_path / "kv.db")
        kv.set("a", "1")
        kv.set("b", "2")
        kv.remove("a")
        assert kv.keys() == ["b"]
        kv.clear()
        assert kv.keys() == []

    def test_persists_across_instances(self, tmp_path):
        SqliteKeyValueStore(tmp_path / "kv.db").set("a", "1")
        assert SqliteKeyValueStore(tmp_path / "kv.db").get("a") == "1"

    def test_unopenable_path_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        kv = SqliteKeyValueStore(blocker / "kv.db")
        with pytest.raises(StorageError):
            kv.set("a", "1")

    def test_not_a_database_raises_storage_error(self, tmp_path):
        path = tmp_path / "kv.db"
        path.write_bytes(b"this is not an sqlite file" * 40)
        with pytest.raises(StorageError):
            SqliteKeyValueStore(path).get("a")

    def test_connection_closed_when_table_setup_fails(self, tmp_path, monkeypatch):
        class BrokenConnection:
            closed = False

            def execute(self, *args):
                raise sqlite3.OperationalError("disk I/O error")

            def close(self):
                self.closed = True

        conn = BrokenConnection()
        monkeypatch.setattr(sqlite3, "connect", lambda *a, **k: conn)
        with pytest.raises(StorageError):
            SqliteKeyValueStore(tmp_path / "kv.db").set("a", "1")
        assert conn.closed


class TestAvailabilityProbe:
    def test_memory_available(self):
        assert is_storage_available(MemoryKeyValueStore())

    def test_failing_backend_unavailable(self):
        assert not is_storage_available(FailingKeyValueStore())

    def test_probe_leaves_no_key(self):
        kv = MemoryKeyValueStore()
        is_storage_available(kv)
        assert kv.keys() == []


class TestOpenStore:
    def test_force_memory(self, tmp_path):
        store = open_store(make_settings(tmp_path, force_memory=True))
        assert not store.persistent
        assert isinstance(store.backend, MemoryKeyValueStore)

    def test_sqlite_when_writable(self, tmp_path):
        store = open_store(make_settings(tmp_path, force_memory=False))
        assert store.persistent
        assert (tmp_path / "guide.db").exists()

    def test_falls_back_to_memory(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        store = open_store(make_settings(blocker, force_memory=False))
        assert not store.persistent
        assert store.save_survey_answers(make_answers()).success


# ─── GuideStore records ───────────────────────────────────────────────────────

class TestGuideStore:
    def test_keys_are_namespaced(self):
        kv = MemoryKeyValueStore()
        store = GuideStore(kv, "clinic")
        store.write_json("progress", {"x": 1})
        assert kv.keys() == ["clinic_progress"]

    def test_survey_envelope_fields(self, empty_store):
        empty_store.save_survey_answers(make_answers(age="over_65"))
        envelope = empty_store.load_survey_envelope()
        assert envelope["answers"]["age"] == "over_65"
        assert envelope["version"] == "1.0"
        assert envelope["timestamp"].endswith("Z")
        assert envelope["sessionId"].startswith("preop_")

    def test_no_survey_is_none(self, empty_store):
        assert empty_store.load_survey_answers() is None

    def test_malformed_json_reads_as_default(self):
        kv = MemoryKeyValueStore()
        kv.set("preop_survey_answers", "{not json")
        store = GuideStore(kv)
        assert store.load_survey_answers() is None
        assert store.read_json(SURVEY_ANSWERS, default="fallback") == "fallback"

    def test_envelope_without_answers_is_none(self):
        store = make_store()
        store.write_json(SURVEY_ANSWERS, {"timestamp": "x"})
        assert store.load_survey_envelope() is None

    def test_session_id_reused(self, empty_store):
        assert empty_store.session_id() == empty_store.session_id()

    def test_unserialisable_value_reports_failure(self, empty_store):
        result = empty_store.write_json("bad", {"x": object()})
        assert not result.success
        assert result.error

    def test_backend_write_failure_reports_failure(self):
        store = GuideStore(FailingKeyValueStore())
        result = store.save_preferences({"showAllContent": True})
        assert not result.success
        assert "quota" in result.error

    def test_visited_sections_deduplicated(self, empty_store):
        empty_store.mark_section_visited("movement")
        empty_store.mark_section_visited("movement")
        empty_store.mark_section_visited("nutrition")
        assert empty_store.get_visited_sections() == ["movement", "nutrition"]

    def test_progress_record_shape(self, empty_store):
        empty_store.save_progress("nutrition", ["movement", "movement", "nutrition"])
        record = empty_store.load_progress()
        assert record["currentSection"] == "nutrition"
        assert record["completedSections"] == ["movement", "nutrition"]
        assert record["totalSections"] == 5
        assert "lastUpdated" in record and "sessionId" in record

    def test_preferences_stamped(self, empty_store):
        empty_store.save_preferences({"showAllContent": True})
        prefs = empty_store.load_preferences()
        assert prefs["showAllContent"] is True
        assert "lastUpdated" in prefs

    def test_user_data_versioned(self, empty_store):
        empty_store.save_user_data({"name": "x"})
        assert empty_store.load_user_data()["version"] == "1.0"

    def test_test_results_append_only(self, empty_store):
        empty_store.append_test_result("alcohol_test_results", {"score": 3})
        empty_store.append_test_result("alcohol_test_results", {"score": 9})
        assert [r["score"] for r in empty_store.load_test_results("alcohol_test_results")] == [3, 9]


# ─── Reset / clear ────────────────────────────────────────────────────────────

class TestReset:
    def test_clear_user_profile_keeps_test_history(self):
        store = make_store(make_answers(), visited=["movement"])
        store.save_section_progress("movement_progress", {"readSections": ["elderly"]})
        store.append_test_result("smoking_test_results", {"score": 4})

        assert store.clear_user_profile(("movement_progress",)).success
        assert store.load_survey_answers() is None
        assert store.get_visited_sections() == []
        assert store.load_section_progress("movement_progress") == {}
        assert len(store.load_test_results("smoking_test_results")) == 1

    def test_clear_all_only_touches_namespace(self):
        kv = MemoryKeyValueStore()
        kv.set("other_app_key", "keep")
        store = GuideStore(kv)
        store.save_survey_answers(make_answers())
        store.append_test_result("alcohol_test_results", {"score": 1})

        assert store.clear_all().success
        assert store.names() == []
        assert kv.get("other_app_key") == "keep"

    def test_clear_all_spares_namespace_sharing_a_prefix(self):
        kv = MemoryKeyValueStore()
        mine   = GuideStore(kv, "preop")
        theirs = GuideStore(kv, "preop_x")
        mine.save_survey_answers(make_answers(age="over_65"))
        theirs.save_survey_answers(make_answers(age="under_65"))

        assert mine.clear_all().success
        assert mine.load_survey_answers() is None
        assert theirs.load_survey_answers()["age"] == "under_65"

    def test_names_ignore_unknown_keys(self):
        kv = MemoryKeyValueStore()
        kv.set("preop_x_survey_answers", "{}")
        kv.set("preop_scratch", "{}")
        store = GuideStore(kv)
        store.save_preferences({"showAllContent": True})
        assert store.names() == ["preferences"]

    def test_registry_covers_every_record(self):
        from preop_guide.progress import section_progress_keys
        from preop_guide.screening import INSTRUMENTS

        assert set(section_progress_keys()) <= set(RECORD_NAMES)
        assert {i.results_key for i in INSTRUMENTS.values()} <= set(RECORD_NAMES)

    def test_has_stored_data(self):
        store = make_store()
        assert not store.has_stored_data()
        store.save_preferences({"showAllContent": False})
        assert store.has_stored_data()


# ─── Diagnostics / backup ─────────────────────────────────────────────────────

class TestExportImport:
    def test_export_contains_records(self):
        store = make_store(make_answers(age="over_65"), visited=["nutrition"])
        ok, text = store.export_user_data()
        assert ok
        payload = json.loads(text)
        assert payload["version"] == "1.0"
        assert payload["data"]["survey_answers"]["answers"]["age"] == "over_65"
        assert payload["data"]["visited_sections"]["sections"] == ["nutrition"]

    def test_import_replaces_everything(self):
        source = make_store(make_answers(age="over_65"), visited=["movement"])
        _, text = source.export_user_data()

        target = make_store(make_answers(age="under_65"), visited=["nutrition", "substance_use"])
        target.write_json(PREFERENCES, {"showAllContent": True})
        assert target.import_user_data(text).success
        assert target.load_survey_answers()["age"] == "over_65"
        assert target.get_visited_sections() == ["movement"]
        assert target.load_preferences() is None

    def test_failed_write_restores_previous_records(self):
        source = make_store(make_answers(age="over_65"), visited=["movement"])
        _, text = source.export_user_data()

        backend = FlakyKeyValueStore()
        target = make_store(make_answers(age="under_65"), visited=["nutrition"], backend=backend)
        target.append_test_result("alcohol_test_results", {"score": 5})
        backend.fail_next.add(target.key("visited_sections"))

        result = target.import_user_data(text)
        assert not result.success
        assert target.load_survey_answers()["age"] == "under_65"
        assert target.get_visited_sections() == ["nutrition"]
        assert target.load_test_results("alcohol_test_results") == [{"score": 5}]

    def test_import_skips_unknown_records(self):
        payload = json.dumps({"data": {"preferences": {"showAllContent": True}, "x_survey_answers": {}}})
        store = make_store()
        assert store.import_user_data(payload).success
        assert store.names() == ["preferences"]

    @pytest.mark.parametrize("bad", ["not json", "[]", '{"data": 5}'])
    def test_import_rejects_bad_payload(self, bad):
        store = make_store(make_answers())
        result = store.import_user_data(bad)
        assert not result.success
        # nothing was cleared
        assert store.load_survey_answers() is not None

    def test_storage_stats(self):
        store = make_store(make_answers())
        stats = store.storage_stats()
        assert stats["individual"]["survey_answers"]["exists"]
        assert not stats["individual"]["progress"]["exists"]
        assert stats["total"]["size"] > 0
