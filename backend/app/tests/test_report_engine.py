# tests/test_report_engine.py
from app.models.report_models import ReferenceRange, ReportValue
from app.services.report_engine import (
    ABOVE_RANGE,
    BELOW_RANGE,
    GENERIC_QUESTION,
    interpret_report,
    parse_raw_text,
)


def test_low_hemoglobin_is_below_range():
    values = [ReportValue(name="Hemoglobin", value=9, unit="g/dL", reference_range=ReferenceRange(low=12, high=16))]

    summary, findings, uncertainty, questions = interpret_report(values=values)

    assert summary == "Found 1 value(s) outside the reference range."
    assert [(f.name, f.interpretation) for f in findings] == [("Hemoglobin", BELOW_RANGE)]
    assert uncertainty == []
    assert questions == ["What could explain Hemoglobin being below range?"]


def test_missing_range_is_uncertain_not_abnormal():
    values = [ReportValue(name="Ferritin", value=8)]

    summary, findings, uncertainty, questions = interpret_report(values=values)

    assert findings == []
    assert summary == "No values clearly outside the provided reference ranges."
    assert uncertainty == ["Ferritin: reference range missing; interpretation may be limited."]
    assert questions == [GENERIC_QUESTION]


def test_boundary_values_are_within_range():
    values = [
        ReportValue(name="Sodium", value=135, reference_range=ReferenceRange(low=135, high=145)),
        ReportValue(name="Potassium", value=5.0, reference_range=ReferenceRange(low=3.5, high=5.0)),
    ]

    _, findings, _, _ = interpret_report(values=values)

    assert findings == []


def test_one_sided_range():
    values = [ReportValue(name="LDL", value=190, reference_range=ReferenceRange(high=130))]

    _, findings, uncertainty, _ = interpret_report(values=values)

    assert [f.interpretation for f in findings] == [ABOVE_RANGE]
    assert uncertainty == []


def test_raw_text_lines_are_parsed_and_junk_skipped():
    raw = (
        "Hemoglobin: 13.1 g/dL (12-16)\n"
        "WBC: 14.2 x10^9/L (4-11)\n"
        "Notes: sample slightly hemolysed\n"
        "\n"
        "Glucose: 110 mg/dL\n"
    )

    parsed = parse_raw_text(raw)
    assert [v.name for v in parsed] == ["Hemoglobin", "WBC", "Glucose"]
    assert parsed[1].unit == "x10^9/L"
    assert parsed[1].reference_range.high == 11
    assert parsed[2].reference_range is None

    summary, findings, uncertainty, _ = interpret_report(raw_text=raw)
    assert [(f.name, f.value, f.interpretation) for f in findings] == [("WBC", 14.2, ABOVE_RANGE)]
    assert uncertainty == ["Glucose: reference range missing; interpretation may be limited."]
    assert summary.startswith("Found 1")


def test_structured_values_take_precedence_over_raw_text():
    values = [ReportValue(name="Platelets", value=90, reference_range=ReferenceRange(low=150, high=400))]

    _, findings, _, _ = interpret_report(values=values, raw_text="WBC: 20 (4-11)")

    assert [f.name for f in findings] == ["Platelets"]


def test_unreadable_report_is_flagged():
    summary, findings, uncertainty, questions = interpret_report(raw_text="please look at my results")

    assert findings == []
    assert uncertainty == ["No lab values could be read from the report."]
    assert questions == [GENERIC_QUESTION]
