import json

import pytest

from booklet_library.database.collections import ASSIGNMENTS, BOOKLETS, USERS
from booklet_library.importer import (
    ImportParseError,
    import_chunks,
    import_data,
    import_file,
    load_json,
    locate_root,
    merge_chunks,
    slice_payload,
    strip_invisible,
    strip_trailing_commas,
)
from booklet_library.services.library import LibraryService

from conftest import booklet_record, question_record


class TestRepairSteps:
    def test_strip_invisible(self):
        assert strip_invisible("\ufeff\u200b[1,\x002]\u200d ") == "[1,2]"

    def test_strip_invisible_keeps_whitespace_inside(self):
        assert strip_invisible('{"a":\n\t"b c"}') == '{"a":\n\t"b c"}'

    def test_locate_root_picks_first_opener(self):
        assert locate_root('xx [ {"a": 1} ]') == (3, "]")
        assert locate_root('xx {"a": [1]}') == (3, "}")

    def test_locate_root_without_json(self):
        with pytest.raises(ImportParseError, match="no JSON root"):
            locate_root("just some words")

    def test_slice_drops_surrounding_noise(self):
        assert slice_payload('Here you go: {"a": 1} hope it helps') == '{"a": 1}'

    def test_strip_trailing_commas(self):
        assert strip_trailing_commas('[{"a": 1,}, {"b": 2}, ]') == '[{"a": 1}, {"b": 2} ]'

    def test_strict_parse_reports_position_and_snippet(self):
        text = '{"booklets": [{"id": "a", "title": "x" "grade": "10"}]}'
        with pytest.raises(ImportParseError) as info:
            load_json(text)
        err = info.value
        assert err.position is not None
        assert '"grade"' in err.snippet
        assert len(err.snippet) <= 100
        assert "position" in str(err)

    def test_lenient_parse_repairs_structure(self):
        data = load_json('[{"id": "a", "title": "x" "grade": "10"}]', lenient=True)
        assert data[0]["id"] == "a"

    def test_merge_chunks(self):
        merged = merge_chunks(['[{"id": "a"}]', "  ", '[{"id": "b"},]'])
        assert json.loads(merged) == [{"id": "a"}, {"id": "b"}]


class TestImportData:
    def test_noisy_array_scenario(self, store):
        raw = (
            'noise... [{"id":"a","title":"A","grade":"10","subject":"Maths"},'
            '{"id":"b","title":"B","grade":"10","subject":"Maths"},] trailing junk'
        )
        result = import_data(store, raw)
        assert result.success
        assert result.count == 2
        assert sorted(r["id"] for r in store.get_all(BOOKLETS)) == ["a", "b"]

    def test_zero_width_and_bom(self, store):
        raw = "\ufeff{\u200b\"booklets\": [{\"id\": \"z\", \"title\": \"Z\"}]}"
        result = import_data(store, raw)
        assert result.success
        assert store.get(BOOKLETS, "z") is not None

    def test_object_root_with_all_collections(self, store):
        payload = {
            "booklets": [booklet_record("b1")],
            "users": [{"id": "u1", "email": " Teacher@School.org ", "createdAt": 5}],
            "assignments": [{"id": "a1", "bookletId": "b1", "startNum": 1, "endNum": 3}],
            "submissions": [],
        }
        result = import_data(store, json.dumps(payload))
        assert result.success
        assert result.collections == {BOOKLETS: 1, USERS: 1, ASSIGNMENTS: 1, "submissions": 0}
        assert store.get(USERS, "u1")["email"] == "teacher@school.org"

    def test_snake_case_remote_export_is_accepted(self, store):
        raw = json.dumps([{
            "id": "r1", "title": "Remote", "is_published": True,
            "updated_at": "2024-03-01T10:00:00Z", "questions": None,
        }])
        assert import_data(store, raw).success
        record = store.get(BOOKLETS, "r1")
        assert record["isPublished"] is True
        assert record["questions"] == []

    def test_import_fills_missing_numbers(self, store):
        questions = [
            question_record("q1", number=1),
            question_record("q2", number=0, created_at=5),
            question_record("q3", number=0, created_at=2),
        ]
        import_data(store, json.dumps([booklet_record("b1", questions=questions)]))
        by_id = {x["id"]: x["number"] for x in store.get(BOOKLETS, "b1")["questions"]}
        assert by_id == {"q1": 1, "q3": 2, "q2": 3}

    def test_invalid_items_are_skipped(self, store):
        raw = json.dumps({"users": [{"id": "u1", "email": "a@b.c"}, {"id": "u2"}]})
        result = import_data(store, raw)
        assert result.success
        assert result.count == 1
        assert result.skipped == 1

    def test_failure_is_returned_not_raised(self, store):
        result = import_data(store, "nothing to see here")
        assert not result.success
        assert result.count == 0
        assert "no JSON root" in result.message
        assert store.count(BOOKLETS) == 0

    def test_non_object_items_are_skipped(self, store):
        result = import_data(store, "[1, 2]")
        assert result.success
        assert result.count == 0
        assert result.skipped == 2

    def test_round_trip_through_export(self, store, tmp_path):
        payload = {
            "booklets": [booklet_record("b1", questions=[question_record("q1", number=1)]), booklet_record("b2", title="Other")],
            "users": [{"id": "u1", "email": "a@b.c", "createdAt": 1}],
            "assignments": [],
            "submissions": [],
        }
        import_data(store, json.dumps(payload))
        exported = LibraryService(store).export_data()
        assert exported["version"] == 1
        assert "exportedAt" in exported

        path = tmp_path / "export.json"
        path.write_text(json.dumps(exported))
        store.reset()
        result = import_file(store, path)
        assert result.success
        assert store.count(BOOKLETS) == 2
        assert store.count(USERS) == 1
        assert store.get(BOOKLETS, "b1")["questions"][0]["number"] == 1

    def test_missing_file(self, store, tmp_path):
        result = import_file(store, tmp_path / "nope.json")
        assert not result.success

    def test_chunks(self, store):
        result = import_chunks(store, [json.dumps([booklet_record("a")]), json.dumps([booklet_record("b")])])
        assert result.count == 2

    def test_lenient_import(self, store):
        raw = '[{"id": "t1", "title": "Missing comma" "grade": "10"}]'
        assert not import_data(store, raw).success
        result = import_data(store, raw, lenient=True)
        assert result.success
        assert store.get(BOOKLETS, "t1")["grade"] == "10"
