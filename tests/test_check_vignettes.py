import importlib.util
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]


def _load_checker():
    module_path = ROOT / "scripts" / "check_vignettes.py"
    spec = importlib.util.spec_from_file_location("check_vignettes", module_path)
    module = importlib.util.module_from_spec(spec)
    assert spec is not None and spec.loader is not None
    spec.loader.exec_module(module)
    return module


checker = _load_checker()


def test_shipped_walkthroughs_run_cleanly(capsys):
    code = checker.main([str(ROOT / "docs"), "--quiet"])

    captured = capsys.readouterr()
    assert code == 0, captured.out
    assert "0 failed" in captured.out


def test_failing_walkthrough_is_reported(tmp_path, capsys):
    doc = tmp_path / "stale.md"
    doc.write_text("```python\nfrom reflect_app.no_such_module import thing\n```\n", encoding="utf-8")

    code = checker.main([str(doc)])

    captured = capsys.readouterr()
    assert code == 1
    assert "FAILED" in captured.out
    assert "ModuleNotFoundError" in captured.out


def test_document_without_examples(tmp_path, capsys):
    doc = tmp_path / "prose.md"
    doc.write_text("# Only prose\n", encoding="utf-8")

    assert checker.main([str(doc)]) == 0
    assert "No Python examples" in capsys.readouterr().out
