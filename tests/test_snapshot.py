import copy

import pydantic
import pytest

from errors import INVALID_TEST_DEFINITION, InvalidTestDefinitionError
from models import Test
from snapshot import build_snapshot, dump_snapshot, load_snapshot

SECTIONS = [
    {
        "id": "s1",
        "title": "Arithmetic",
        "questions": [
            {"id": "q1", "question_text": "2 + 2?", "options": ["3", "4"], "correct_option_index": 1, "marks": 2},
            {"id": "q2", "question_text": "10 / 2?", "options": ["5", "2"], "correct_option_index": 0, "marks": 2},
        ],
    },
    {
        "id": "s2",
        "title": "Reasoning",
        "questions": [
            {
                "id": "q3",
                "question_text": "Odd one out: 2, 4, 7, 8",
                "options": ["2", "4", "7", "8"],
                "correct_option_index": 2,
                "marks": 4,
                "negative_marks": 1,
            }
        ],
    },
]


def make_definition(**overrides):
    fields = dict(test_name="Mock Test", duration_in_seconds=1800, sections=copy.deepcopy(SECTIONS))
    fields.update(overrides)
    return Test(**fields)


def test_build_snapshot_copies_content():
    snap = build_snapshot(make_definition())

    assert snap.test_name == "Mock Test"
    assert snap.duration_in_seconds == 1800
    assert snap.total_questions == 3
    assert snap.total_marks == 8
    section, question = snap.find_question("q3")
    assert section.id == "s2"
    assert question.options == ("2", "4", "7", "8")
    assert question.correct_option_index == 2


def test_later_catalog_edits_do_not_reach_snapshot():
    definition = make_definition()
    snap = build_snapshot(definition)

    definition.sections[0]["questions"][0]["correct_option_index"] = 3
    definition.sections[0]["questions"].pop()
    definition.test_name = "Renamed"

    assert snap.test_name == "Mock Test"
    assert snap.find_question("q1")[1].correct_option_index == 1
    assert snap.find_question("q2")[1] is not None


def test_snapshot_is_immutable():
    snap = build_snapshot(make_definition())
    with pytest.raises(pydantic.ValidationError):
        snap.test_name = "changed"
    with pytest.raises(pydantic.ValidationError):
        snap.sections[0].questions[0].correct_option_index = 0


def test_missing_marks_count_as_one():
    sections = [{"id": "s", "questions": [{"id": "a", "question_text": "?"}, {"id": "b", "question_text": "?", "marks": 3}]}]
    snap = build_snapshot(make_definition(sections=sections))
    assert snap.total_marks == 4
    assert snap.sections[0].title == ""


def test_dump_and_load():
    snap = build_snapshot(make_definition(positive_marks=2, negative_marks=0.5))
    data = dump_snapshot(snap)
    assert isinstance(data["sections"][0]["questions"][0]["options"], list)
    assert load_snapshot(data) == snap


def test_unknown_question():
    snap = build_snapshot(make_definition())
    assert snap.find_question("missing") == (None, None)


@pytest.mark.parametrize(
    "overrides",
    [
        {"sections": [{"title": "no id", "questions": []}]},
        {"sections": [{"id": "s", "questions": [{"id": "q"}]}]},
        {"sections": ["not a section"]},
        {"sections": {"id": "s"}},
        {"duration_in_seconds": -60},
    ],
)
def test_malformed_definition_is_an_exam_error(overrides):
    with pytest.raises(InvalidTestDefinitionError) as exc:
        build_snapshot(make_definition(**overrides))
    assert exc.value.status_code == 500
    assert exc.value.reason == INVALID_TEST_DEFINITION
