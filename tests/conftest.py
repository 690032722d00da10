import csv
import gzip
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
WRITER = ROOT / "writer.py"


def write_csv(path, header, rows):
    path = str(path)
    if path.endswith(".gz"):
        f = gzip.open(path, "wt", newline='', encoding='utf-8')
    else:
        f = open(path, "w", newline='', encoding='utf-8')
    with f:
        w = csv.writer(f)
        w.writerow(header)
        w.writerows(rows)


def run_writer(*args, cwd=None):
    return subprocess.run([sys.executable, str(WRITER), *[str(a) for a in args]],
                          cwd=cwd, capture_output=True, text=True)


@pytest.fixture
def abc_csv(tmp_path):
    path = tmp_path / "abc.csv"
    write_csv(path, ["a", "b", "c"], [[1, 10, 100], [2, 20, 200], [3, 30, 300]])
    return path
