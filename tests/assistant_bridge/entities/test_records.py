import pytest
from pydantic import ValidationError

from assistant_bridge.entities import (
    Assistant,
    AssistantEvent,
    AssistantStatus,
    CustomModel,
    FileEvent,
    FileRecord,
    FileStatus,
    KnownModel,
    decode_instructions,
    model_from_form,
    normalize_instructions,
    transition_assistant,
    transition_file,
)
from assistant_bridge.entities.errors import InvalidStatusTransition, NoModel


class TestModelFromForm:
    def test_selected_model(self):
        assert model_from_form("gpt-4o", None) == KnownModel(id="gpt-4o")

    def test_selected_model_wins_over_manual_text(self):
        assert model_from_form("gpt-4o", "ignored") == KnownModel(id="gpt-4o")

    def test_manual_sentinel(self):
        assert model_from_form("manual", "  ft:gpt-4o:acme ") == CustomModel(name="ft:gpt-4o:acme")

    def test_manual_sentinel_without_name(self):
        with pytest.raises(NoModel, match="Please enter a custom model name"):
            model_from_form("manual", "   ")

    def test_only_manual_text(self):
        assert model_from_form("", "my-model") == CustomModel(name="my-model")

    def test_nothing_selected(self):
        with pytest.raises(NoModel):
            model_from_form(None, None)

    def test_model_id(self):
        assert KnownModel(id="gpt-4o").model_id == "gpt-4o"
        assert CustomModel(name="my-model").model_id == "my-model"

    def test_selection_round_trips_through_json(self):
        assistant = Assistant(config_id=1, name="a", model=CustomModel(name="my-model"))
        restored = Assistant.model_validate_json(assistant.model_dump_json())
        assert isinstance(restored.model, CustomModel)


class TestInstructions:
    def test_line_endings_are_normalized(self):
        assert normalize_instructions("  one\r\ntwo\rthree\n ") == "one\ntwo\nthree"

    def test_none(self):
        assert normalize_instructions(None) == ""

    def test_markup_survives(self):
        text = 'Use <code>tags</code> and "quotes"'
        assert normalize_instructions(text) == text
        assert decode_instructions(text) == text

    def test_entities_are_decoded(self):
        assert decode_instructions("a &lt;b&gt; &quot;c&quot; &#39;d&#39;") == "a <b> \"c\" 'd'"


class TestAssistantTransitions:
    @pytest.mark.parametrize(
        ("current", "event", "expected"),
        [
            (AssistantStatus.PENDING, AssistantEvent.SUBMIT, AssistantStatus.CREATING),
            (AssistantStatus.ACTIVE, AssistantEvent.SUBMIT, AssistantStatus.CREATING),
            (AssistantStatus.FAILED, AssistantEvent.SUBMIT, AssistantStatus.CREATING),
            (AssistantStatus.CREATING, AssistantEvent.SUCCEED, AssistantStatus.ACTIVE),
            (AssistantStatus.CREATING, AssistantEvent.FAIL, AssistantStatus.FAILED),
            (AssistantStatus.PENDING, AssistantEvent.FAIL, AssistantStatus.FAILED),
        ],
    )
    def test_allowed(self, current, event, expected):
        assert transition_assistant(current, event) == expected

    @pytest.mark.parametrize(
        ("current", "event"),
        [
            (AssistantStatus.PENDING, AssistantEvent.SUCCEED),
            (AssistantStatus.ACTIVE, AssistantEvent.SUCCEED),
            (AssistantStatus.CREATING, AssistantEvent.SUBMIT),
        ],
    )
    def test_rejected(self, current, event):
        with pytest.raises(InvalidStatusTransition):
            transition_assistant(current, event)

    def test_with_event_records_cause(self):
        assistant = Assistant(config_id=1, name="a", model=KnownModel(id="gpt-4o"))
        failed = assistant.with_event(AssistantEvent.FAIL, cause="No vector store")

        assert (failed.status, failed.status_cause) == (AssistantStatus.FAILED, "No vector store")
        assert assistant.status == AssistantStatus.PENDING
        assert failed.with_event(AssistantEvent.SUBMIT).status_cause is None


class TestFileTransitions:
    def test_happy_path(self):
        status = FileStatus.PENDING
        for event in (FileEvent.START, FileEvent.UPLOAD, FileEvent.INDEX):
            status = transition_file(status, event)
        assert status == FileStatus.COMPLETED

    @pytest.mark.parametrize(
        "current", [FileStatus.UPLOADED, FileStatus.COMPLETED, FileStatus.FAILED, FileStatus.ERROR]
    )
    def test_resubmission_restarts_processing(self, current):
        assert transition_file(current, FileEvent.START) == FileStatus.PROCESSING

    @pytest.mark.parametrize(
        ("current", "event"),
        [
            (FileStatus.COMPLETED, FileEvent.UPLOAD),
            (FileStatus.UPLOADED, FileEvent.REJECT),
            (FileStatus.PENDING, FileEvent.INDEX),
        ],
    )
    def test_rejected(self, current, event):
        with pytest.raises(InvalidStatusTransition):
            transition_file(current, event)

    def test_with_event_applies_changes(self):
        record = FileRecord(config_id=1)
        uploaded = record.with_event(FileEvent.UPLOAD, filename="a.pdf", openai_file_id="file_1", file_size=3)

        assert uploaded.status == FileStatus.UPLOADED
        assert (uploaded.filename, uploaded.openai_file_id, uploaded.file_size) == ("a.pdf", "file_1", 3)


@pytest.mark.parametrize(
    "changes",
    [{"temperature": 2.5}, {"temperature": -0.1}, {"top_p": 1.5}, {"max_tokens": -1}],
)
def test_assistant_parameter_bounds(changes):
    with pytest.raises(ValidationError):
        Assistant(config_id=1, name="a", model=KnownModel(id="gpt-4o"), **changes)
