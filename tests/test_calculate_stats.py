import json

import pytest

from calculate_stats import compute_stats, format_stats, group_by_instruction_and_label, main, write_stats_json
from log_types import ConsumptionRecord


RECORDS = [
    ConsumptionRecord("Swap", "compute_swap", 800),
    ConsumptionRecord("Cancel", "cancel", 40),
    ConsumptionRecord("Swap", "compute_swap", 1000),
    ConsumptionRecord("Swap", "compute_swap", 900),
    ConsumptionRecord("Swap", "settle", -5),
]


def test_group_keeps_first_seen_order():
    grouped = group_by_instruction_and_label(RECORDS)
    assert list(grouped) == [("Swap", "compute_swap"), ("Cancel", "cancel"), ("Swap", "settle")]
    assert grouped[("Swap", "compute_swap")] == [800, 1000, 900]


def test_compute_stats_values():
    stats = compute_stats(RECORDS)
    swap = stats[0]
    assert (swap.instruction, swap.label) == ("Swap", "compute_swap")
    assert swap.count == 3
    assert swap.min == 800
    assert swap.max == 1000
    assert swap.total == 2700
    assert swap.mean == pytest.approx(900.0)
    assert swap.median == pytest.approx(900.0)
    assert swap.p66 == pytest.approx(932.0)

    settle = stats[2]
    assert settle.count == 1
    assert settle.min == settle.max == settle.total == -5


def test_compute_stats_empty():
    assert compute_stats([]) == []
    assert format_stats([]) == []


def test_format_stats_has_header():
    lines = format_stats(compute_stats(RECORDS))
    assert lines[0].split() == ["instruction", "label", "count", "min", "max", "mean", "median", "p66", "total"]
    assert lines[1].split() == ["Swap", "compute_swap", "3", "800", "1000", "900.0", "900.0", "932.0", "2700"]


def test_write_stats_json(tmp_path):
    out = write_stats_json(compute_stats(RECORDS), tmp_path / "stats.json", "records.json")
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["source"] == "records.json"
    assert data["stats"][1]["label"] == "cancel"
    assert data["stats"][1]["count"] == 1


def test_cli_from_raw_log(tmp_path, capsys):
    log = tmp_path / "run.log"
    log.write_text(
        "\n".join([
            "X DEBUG Program log: Instruction: Swap",
            "X DEBUG Program log: #compute_swap",
            "X DEBUG Program consumption: a b c d e 5000",
            "X DEBUG Program consumption: a b c d e 4200",
        ]),
        encoding="utf-8",
    )
    main([str(log)])
    lines = capsys.readouterr().out.splitlines()
    assert lines[1].split() == ["Swap", "compute_swap", "1", "800", "800", "800.0", "800.0", "800.0", "800"]


def test_cli_missing_input(tmp_path):
    with pytest.raises(SystemExit):
        main([str(tmp_path / "missing.json")])


def test_format_stats_strips_label_padding():
    lines = format_stats(compute_stats([ConsumptionRecord("Insert", " Inserting_512", 6)]))
    assert lines[1].startswith("Insert       Inserting_512  1")


def test_cli_budget_field_for_raw_log(tmp_path, capsys):
    log = tmp_path / "run.log"
    log.write_text(
        "\n".join([
            "[t DEBUG solana_runtime::message_processor::stable_log] Program log: Instruction: Insert",
            "[t DEBUG solana_runtime::message_processor::stable_log] Program log: # Inserting_512",
            "[t DEBUG solana_runtime::message_processor::stable_log] Program consumption: 1399000 units remaining",
            "[t DEBUG solana_runtime::message_processor::stable_log] Program consumption: 1398994 units remaining",
        ]),
        encoding="utf-8",
    )
    main([str(log), "--budget-field", "line:6"])
    lines = capsys.readouterr().out.splitlines()
    assert lines[1].split() == ["Insert", "Inserting_512", "1", "6", "6", "6.0", "6.0", "6.0", "6"]
