import json
import logging

import pyarrow as pa
import pyarrow.parquet as pq
import pytest

import writer
from conftest import run_writer, write_csv
from overrides import consolidate_types
from writer import Outcome, destination_paths, process


def convert(path, **directives):
    overrides, int_type, float_type = consolidate_types(**directives)
    return process(path, overrides, int_type, float_type)


def test_destination_paths(tmp_path):
    assert destination_paths(tmp_path / "x.csv") == (tmp_path / "x.parquet", tmp_path / ".tmp.x.parquet")
    assert destination_paths(tmp_path / "x.csv.gz") == (tmp_path / "x.parquet", tmp_path / ".tmp.x.parquet")
    assert destination_paths(tmp_path / "x.tsv") is None
    assert destination_paths(tmp_path / "x.gz") is None


def test_overrides_end_to_end(abc_csv):
    assert convert(abc_csv, i64=["a"], f32=["b"]) is Outcome.CONVERTED

    schema = pq.read_schema(abc_csv.with_suffix(".parquet"))
    assert schema.field("a").type == pa.int64()
    assert schema.field("b").type == pa.float32()
    assert schema.field("c").type == pa.int64()
    table = pq.read_table(abc_csv.with_suffix(".parquet"))
    assert table.column("b").to_pylist() == [10.0, 20.0, 30.0]
    assert abc_csv.exists()


def test_float_wildcard_end_to_end(tmp_path):
    path = tmp_path / "floats.csv.gz"
    write_csv(path, ["x", "y", "label"], [[1.5, 2.25, "one"], [3.5, 4.75, "two"]])
    assert convert(path, f64=["*"]) is Outcome.CONVERTED

    schema = pq.read_schema(tmp_path / "floats.parquet")
    assert schema.field("x").type == pa.float64()
    assert schema.field("y").type == pa.float64()
    assert schema.field("label").type == pa.string()


def test_int_wildcard_keeps_explicit_override(abc_csv):
    assert convert(abc_csv, i32=["*"], f64=["c"]) is Outcome.CONVERTED
    schema = pq.read_schema(abc_csv.with_suffix(".parquet"))
    assert [f.type for f in schema] == [pa.int32(), pa.int32(), pa.float64()]


def test_destination_exists(abc_csv, caplog):
    final = abc_csv.with_suffix(".parquet")
    final.write_bytes(b"old")
    before = abc_csv.read_bytes()

    with caplog.at_level(logging.WARNING):
        assert convert(abc_csv) is Outcome.DESTINATION_EXISTS
    assert "already exists -- skipping" in caplog.text
    assert final.read_bytes() == b"old"
    assert not (abc_csv.parent / ".tmp.abc.parquet").exists()
    assert abc_csv.read_bytes() == before


def test_second_run_skips(abc_csv):
    assert convert(abc_csv) is Outcome.CONVERTED
    first = abc_csv.with_suffix(".parquet").read_bytes()
    assert convert(abc_csv) is Outcome.DESTINATION_EXISTS
    assert abc_csv.with_suffix(".parquet").read_bytes() == first
    assert not (abc_csv.parent / ".tmp.abc.parquet").exists()


def test_temp_exists(abc_csv):
    tmp = abc_csv.parent / ".tmp.abc.parquet"
    tmp.write_bytes(b"in progress elsewhere")
    assert convert(abc_csv) is Outcome.TEMP_EXISTS
    assert tmp.read_bytes() == b"in progress elsewhere"
    assert not abc_csv.with_suffix(".parquet").exists()


def test_skip_conditions(tmp_path):
    assert convert(tmp_path / "missing.csv") is Outcome.NOT_FOUND
    (tmp_path / "dir.csv").mkdir()
    assert convert(tmp_path / "dir.csv") is Outcome.NOT_A_FILE
    txt = tmp_path / "notes.txt"
    txt.write_text("a,b\n1,2\n")
    assert convert(txt) is Outcome.UNSUPPORTED_SUFFIX
    assert all(o.skipped for o in (Outcome.NOT_FOUND, Outcome.NOT_A_FILE, Outcome.UNSUPPORTED_SUFFIX,
                                   Outcome.DESTINATION_EXISTS, Outcome.TEMP_EXISTS))
    assert not Outcome.CONVERTED.skipped
    assert not Outcome.SCHEMA_PRINTED.skipped


def test_print_schema(abc_csv, capsys):
    overrides, int_type, float_type = consolidate_types(i32=["a"], f64=["*"])
    # print mode never writes, so an existing destination does not matter
    abc_csv.with_suffix(".parquet").write_bytes(b"old")

    outcome = process(abc_csv, overrides, int_type, float_type, print_schema=True)

    assert outcome is Outcome.SCHEMA_PRINTED
    out = capsys.readouterr().out
    name, _, body = out.partition(":\n")
    assert name == str(abc_csv)
    schema = json.loads(body)
    assert [(f["name"], f["data_type"], f["nullable"]) for f in schema["fields"]] == [
        ("a", "int32", True), ("b", "int64", True), ("c", "int64", True)
    ]
    assert abc_csv.with_suffix(".parquet").read_bytes() == b"old"
    assert not (abc_csv.parent / ".tmp.abc.parquet").exists()


def test_remove_input(abc_csv):
    outcome = process(abc_csv, {}, remove_input=True)
    assert outcome is Outcome.CONVERTED
    assert not abc_csv.exists()
    assert abc_csv.with_suffix(".parquet").exists()


def test_remove_input_failure_is_logged(abc_csv, monkeypatch, caplog):
    def refuse(path):
        raise PermissionError("read-only")

    monkeypatch.setattr(writer.os, "remove", refuse)
    with caplog.at_level(logging.ERROR):
        assert process(abc_csv, {}, remove_input=True) is Outcome.CONVERTED
    assert "Can't remove original file" in caplog.text
    assert abc_csv.exists()


def test_failure_while_streaming_leaves_nothing(abc_csv, monkeypatch):
    def broken(batches, output):
        output.write(b"PAR1 half written")
        raise OSError("disk full")

    monkeypatch.setattr(writer, "write_parquet", broken)
    with pytest.raises(OSError, match="disk full"):
        convert(abc_csv)
    assert not abc_csv.with_suffix(".parquet").exists()
    assert not (abc_csv.parent / ".tmp.abc.parquet").exists()


def test_cli_conflict_touches_nothing(abc_csv):
    result = run_writer("--i32", "*", "--i64", "__all__", abc_csv)
    assert result.returncode == 1
    assert "can't both be the default" in result.stderr
    assert not abc_csv.with_suffix(".parquet").exists()


def test_cli_duplicate_column(abc_csv):
    result = run_writer("--i32", "a", "--i64", "b,a", abc_csv)
    assert result.returncode == 1
    assert "`a'" in result.stderr


def test_cli_print_schema(abc_csv):
    result = run_writer("-p", "--f32", "a", abc_csv)
    assert result.returncode == 0, result.stderr
    assert result.stdout.startswith(f"{abc_csv}:\n")
    assert '"data_type": "float"' in result.stdout
    assert not abc_csv.with_suffix(".parquet").exists()


def test_cli_rm_and_rerun(abc_csv):
    result = run_writer("--rm", abc_csv)
    assert result.returncode == 0, result.stderr
    assert not abc_csv.exists()
    result = run_writer(abc_csv)
    assert result.returncode == 0
    assert "not found" in result.stderr


def test_cli_usage_error():
    result = run_writer()
    assert result.returncode == 2


def test_main_in_process(abc_csv):
    assert writer.main(["--i32", "a,b", "--i32", "c", str(abc_csv)]) == 0
    schema = pq.read_schema(abc_csv.with_suffix(".parquet"))
    assert [f.type for f in schema] == [pa.int32()] * 3


def test_converted_is_logged(abc_csv, caplog):
    with caplog.at_level(logging.INFO):
        assert convert(abc_csv) is Outcome.CONVERTED
    assert f"Wrote {abc_csv.with_suffix('.parquet')} (3 rows)" in caplog.text
