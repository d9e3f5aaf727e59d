from __future__ import annotations

import importlib.util
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]


def _load_guard():
    spec = importlib.util.spec_from_file_location('check_no_direct_datetime', ROOT / 'scripts' / 'check_no_direct_datetime.py')
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_no_direct_datetime_usage_in_package() -> None:
    violations = _load_guard().find_violations()
    assert not violations, "Direct datetime usage found:\n" + "\n".join(
        f"{path}:{line_no}: {line}" for path, line_no, line in violations
    )


def test_guard_flags_direct_clock_reads(tmp_path: Path) -> None:
    guard = _load_guard()
    package = tmp_path / 'scheduling_core'
    package.mkdir()
    (package / 'bad.py').write_text('from datetime import datetime\nstamp = datetime.utcnow()\n', encoding='utf-8')
    guard.ROOT = tmp_path
    assert [(path, line_no) for path, line_no, _ in guard.find_violations(package)] == [('scheduling_core/bad.py', 2)]
