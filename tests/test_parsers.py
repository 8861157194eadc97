"""Tests for the Markdown, delimited-text and structured parsers."""

import json

import pytest

from conftest import SAMPLE_CSV, SAMPLE_MARKDOWN
from walkthrough_studio.core.errors import ParseError
from walkthrough_studio.core.normalizer import normalize
from walkthrough_studio.parsers import (
    ImportFormat, available_formats, format_for_filename, parse_delimited, parse_markdown,
    parse_source, parse_structured,
)
from walkthrough_studio.parsers.delimited_parser import build_header_map


class TestMarkdownParser:
    def test_sections_and_title(self):
        raw = parse_markdown(SAMPLE_MARKDOWN)
        assert raw.format == "markdown"
        assert raw.label == "Class A - East Campus"
        assert [s["section"] for s in raw.sections] == ["Engine Compartment", "In-Cab"]

    def test_step_label_and_flags(self):
        step = parse_markdown(SAMPLE_MARKDOWN).sections[0]["steps"][0]
        assert step["label"] == "Oil Level"
        assert step["script"] == "Check the dipstick."
        assert step["mustSay"] is True
        assert step["required"] is True

    def test_tags_and_continuation(self):
        step = parse_markdown(SAMPLE_MARKDOWN).sections[0]["steps"][1]
        assert step["tags"] == ["fluids", "engine"]
        assert step["script"] == (
            "Coolant is at or above the minimum mark.\nCheck the reservoir cap is tight."
        )
        assert "label" not in step

    def test_section_flags_and_numbered_steps(self):
        section = parse_markdown(SAMPLE_MARKDOWN).sections[1]
        assert section["critical"] is True
        assert section["steps"][0]["label"] == "Air Brake Check"
        assert section["steps"][0]["passFail"] is True

    def test_pass_fail_step_normalizes_to_required(self):
        script = normalize(parse_markdown(SAMPLE_MARKDOWN))
        assert script[1].steps[0].required is True

    def test_caller_label_wins(self):
        assert parse_markdown(SAMPLE_MARKDOWN, label="Mine").label == "Mine"

    def test_steps_before_heading_go_to_untitled(self):
        raw = parse_markdown("- Walk around the vehicle\n## Engine\n- Oil\n")
        assert raw.sections[0]["section"] == "Untitled"
        assert raw.sections[1]["steps"][0]["script"] == "Oil"

    def test_empty_bullet_is_dropped(self):
        raw = parse_markdown("## Engine\n- [must]\n- Oil\n")
        assert [s["script"] for s in raw.sections[0]["steps"]] == ["Oil"]

    def test_bytes_input(self):
        raw = parse_markdown("## Engine\n- Oil\n".encode("utf-8"))
        assert raw.sections[0]["section"] == "Engine"

    @pytest.mark.parametrize("text", ["", "   \n", None])
    def test_empty_input_raises(self, text):
        with pytest.raises(ParseError):
            parse_markdown(text)

    def test_heading_without_steps(self):
        raw = parse_markdown("## Engine\n\n## Cab\n- Seat belt\n")
        assert raw.sections[0]["steps"] == []
        assert normalize(raw)[0].steps[0].script == ""

    def test_req_and_passfail_aliases(self):
        raw = parse_markdown("## Brakes [passfail]\n- Check pads [req]\n- Hold the pedal [passfail]\n")
        section = raw.sections[0]
        assert section["section"] == "Brakes"
        assert section["passFail"] is True
        assert section["steps"][0] == {"required": True, "script": "Check pads"}
        assert section["steps"][1]["passFail"] is True

    def test_unknown_bracket_tokens_are_stripped(self):
        raw = parse_markdown("## Cab [note]\n- Seat belt [optional]\n")
        assert raw.sections[0]["section"] == "Cab"
        assert raw.sections[0]["steps"][0]["script"] == "Seat belt"


class TestDelimitedParser:
    def test_groups_rows_by_section(self):
        raw = parse_delimited(SAMPLE_CSV)
        assert raw.format == "csv"
        assert [s["section"] for s in raw.sections] == ["Engine Compartment", "In-Cab"]
        assert len(raw.sections[0]["steps"]) == 2

    def test_blank_script_rows_dropped(self):
        raw = parse_delimited(SAMPLE_CSV)
        assert len(raw.sections[1]["steps"]) == 1

    def test_boolean_cells(self):
        raw = parse_delimited(SAMPLE_CSV)
        oil = raw.sections[0]["steps"][0]
        assert oil["label"] == "Oil Level"
        assert oil["mustSay"] is True and oil["required"] is True
        brake = raw.sections[1]["steps"][0]
        assert brake["mustSay"] is True
        assert brake["passFail"] is True
        assert raw.sections[1]["passFail"] is True

    def test_missing_section_column_is_untitled(self):
        raw = parse_delimited("script\nCheck oil\nCheck belts\n")
        assert raw.sections[0]["section"] == "Untitled"
        assert len(raw.sections[0]["steps"]) == 2

    def test_missing_script_column_raises(self):
        with pytest.raises(ParseError, match="No script column"):
            parse_delimited("section,label\nEngine,Oil\n")

    def test_tab_delimited(self):
        raw = parse_delimited("section\tscript\tcritical\nCab\tSeat belt\tyes\n")
        assert raw.sections[0]["section"] == "Cab"
        assert raw.sections[0]["critical"] is True

    def test_byte_order_mark(self):
        raw = parse_delimited("\ufeffsection,script\nCab,Seat belt\n".encode("utf-8"))
        assert raw.sections[0]["section"] == "Cab"

    def test_tags_split(self):
        raw = parse_delimited("section,script,tags\nCab,Seat belt,safety; cab | start\n")
        assert raw.sections[0]["steps"][0]["tags"] == ["safety", "cab", "start"]

    def test_empty_input_raises(self):
        with pytest.raises(ParseError):
            parse_delimited("  ")

    def test_header_claimed_once(self):
        columns = build_header_map(["Section", "Title", "Script"])
        assert columns["section"] == 0
        assert columns["stepLabel"] == 1
        assert columns["script"] == 2

    def test_header_aliases_parse_the_same(self):
        aliased = parse_delimited("Title,Content,Req\nEngine,Check oil,yes\nCab,Seat belt,\n")
        canonical = parse_delimited("section,script,required\nEngine,Check oil,yes\nCab,Seat belt,\n")
        assert aliased.sections == canonical.sections
        assert normalize(aliased) == normalize(canonical)

    def test_title_is_section_when_alone(self):
        columns = build_header_map(["Title", "Label", "Text"])
        assert columns["section"] == 0
        assert columns["stepLabel"] == 1
        assert columns["script"] == 2


class TestStructuredParser:
    def test_bare_list(self, valid_script):
        raw = parse_structured(valid_script)
        assert raw.sections == valid_script
        assert raw.label is None

    def test_wrapper_object(self, valid_script):
        payload = {"id": "x1", "label": "Class B", "classCode": "B", "version": 4,
                   "sections": valid_script}
        raw = parse_structured(json.dumps(payload))
        assert raw.label == "Class B"
        assert raw.class_code == "B"
        assert raw.version == 4
        assert raw.id == "x1"
        assert raw.sections == valid_script

    def test_script_key_accepted(self, valid_script):
        assert parse_structured({"script": valid_script}).sections == valid_script

    def test_caller_metadata_wins(self, valid_script):
        raw = parse_structured({"label": "Theirs", "classCode": "B", "sections": valid_script},
                               label="Mine", class_code="A")
        assert raw.label == "Mine"
        assert raw.class_code == "A"

    def test_bad_version_ignored(self):
        assert parse_structured({"version": "abc", "sections": []}).version is None
        assert parse_structured({"version": 0, "sections": []}).version is None

    def test_invalid_json(self):
        with pytest.raises(ParseError, match="JSON parse error"):
            parse_structured("{not json")

    def test_wrong_type(self):
        with pytest.raises(ParseError):
            parse_structured("42")


class TestDispatch:
    def test_from_value_aliases(self):
        assert ImportFormat.from_value("md") is ImportFormat.MARKDOWN
        assert ImportFormat.from_value("JSON") is ImportFormat.STRUCTURED
        assert ImportFormat.from_value("xlsx") is ImportFormat.SPREADSHEET
        assert ImportFormat.from_value(ImportFormat.CSV) is ImportFormat.CSV
        with pytest.raises(ValueError):
            ImportFormat.from_value("docx")

    def test_format_for_filename(self):
        assert format_for_filename("walk.MD") is ImportFormat.MARKDOWN
        assert format_for_filename("walk.tsv") is ImportFormat.CSV
        assert format_for_filename("walk.yaml") is ImportFormat.STRUCTURED
        assert format_for_filename("walk.pdf") is None

    def test_parse_source_dispatch(self):
        raw = parse_source(ImportFormat.CSV, SAMPLE_CSV, class_code="A")
        assert raw.format == "csv"
        assert raw.class_code == "A"

    def test_available_formats(self):
        formats = available_formats()
        assert ImportFormat.MARKDOWN in formats
        assert ImportFormat.CSV in formats
        assert ImportFormat.STRUCTURED in formats
