from log_types import ConsumptionRecord, dict_to_record, format_records, format_table, record_to_dict


def test_format_table_aligns_columns():
    rows = [["a", "long_label", "1"], ["instruction", "b", "12345"]]
    assert format_table(rows) == [
        "a            long_label  1",
        "instruction  b           12345",
    ]


def test_format_table_keeps_spaces_inside_cells():
    assert format_table([["Swap", "two words", "5"]]) == ["Swap  two words  5"]


def test_format_table_empty():
    assert format_table([]) == []


def test_format_records_missing_instruction():
    assert format_records([ConsumptionRecord(None, "x", -2)]) == ["-  x  -2"]


def test_record_dict_conversion():
    rec = ConsumptionRecord("Swap", "compute_swap", 800)
    d = record_to_dict(rec)
    assert d == {"instruction": "Swap", "label": "compute_swap", "delta": 800}
    assert dict_to_record(d) == rec


def test_format_records_strips_label_padding():
    records = [ConsumptionRecord("Insert", " Inserting_512", 6), ConsumptionRecord("Insert", "Remove_1", 12)]
    assert format_records(records) == [
        "Insert  Inserting_512  6",
        "Insert  Remove_1       12",
    ]
