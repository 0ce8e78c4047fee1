import json
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pegex

GRAMMAR = """version 1.0
token number = \\d+
rule TOP = <number> '+' <number>
"""


def write_inputs(tmp_path, text):
    grammar_path = tmp_path / "sum.pegex"
    input_path = tmp_path / "input.txt"
    grammar_path.write_text(GRAMMAR, encoding="utf-8")
    input_path.write_text(text, encoding="utf-8")
    return str(grammar_path), str(input_path)


def test_cli_parse_writes_json(tmp_path):
    grammar_path, input_path = write_inputs(tmp_path, "12 + 30")
    output_path = tmp_path / "out.jsonl"
    status = pegex.main([grammar_path, input_path, "-o", str(output_path)])
    assert status == 0
    lines = output_path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    tree = json.loads(lines[0])
    assert tree["name"] == "TOP"
    assert tree["text"] == "12 + 30"
    assert [child["text"] for child in tree["children"]] == ["12", "30"]


def test_cli_scan_pretty_print(tmp_path):
    grammar_path, input_path = write_inputs(tmp_path, "a1 b22 c333")
    output_path = tmp_path / "out.json"
    status = pegex.main(
        [
            grammar_path,
            input_path,
            "--scan",
            "--start",
            "number",
            "--pretty-print",
            "-o",
            str(output_path),
        ]
    )
    assert status == 0
    trees = json.loads(output_path.read_text(encoding="utf-8"))
    assert [tree["text"] for tree in trees] == ["1", "22", "333"]
    assert trees[2]["start"] == 8


def test_cli_subparse(tmp_path):
    grammar_path, input_path = write_inputs(tmp_path, "42 and more")
    output_path = tmp_path / "out.jsonl"
    status = pegex.main(
        [grammar_path, input_path, "--subparse", "--start", "number", "-o", str(output_path)]
    )
    assert status == 0
    tree = json.loads(output_path.read_text(encoding="utf-8"))
    assert tree["text"] == "42"


def test_cli_parse_failure_exit_status(tmp_path):
    grammar_path, input_path = write_inputs(tmp_path, "12 - 30")
    output_path = tmp_path / "out.jsonl"
    status = pegex.main([grammar_path, input_path, "-o", str(output_path)])
    assert status == 1
    assert not output_path.exists()


def test_cli_grammar_error_exit_status(tmp_path):
    grammar_path = tmp_path / "bad.pegex"
    grammar_path.write_text("version 1.0\ntoken broken = (a\n", encoding="utf-8")
    input_path = tmp_path / "input.txt"
    input_path.write_text("a", encoding="utf-8")
    assert pegex.main([str(grammar_path), str(input_path)]) == 2


def test_cli_version(capsys):
    assert pegex.main(["--version"]) == 0
    out = capsys.readouterr().out
    assert "pegex: " + pegex.__version__ in out
    assert "DSL: 1.0" in out
