from reflect_app.engine.docs_check import check_directory, check_document, extract_code_blocks

DOC = """# Walkthrough

Some prose.

```python
x = 40
```

```bash
echo "not python"
```

```py
y = x + 2
```

```python skip
raise RuntimeError("never run")
```
"""


def test_extract_code_blocks_keeps_python_only():
    blocks = extract_code_blocks(DOC)

    assert [block.source for block in blocks] == ["x = 40\n", "y = x + 2\n"]
    assert [block.line for block in blocks] == [6, 14]


def test_blocks_share_a_namespace_and_run_in_the_document_folder(tmp_path):
    doc = tmp_path / "guide.md"
    doc.write_text(
        DOC + "\n```python\nfrom pathlib import Path\nPath('made.txt').write_text(str(y))\n```\n",
        encoding="utf-8",
    )

    results = check_document(doc)

    assert [result.ok for result in results] == [True, True, True]
    assert (tmp_path / "made.txt").read_text() == "42"


def test_failing_block_is_reported(tmp_path):
    doc = tmp_path / "broken.md"
    doc.write_text("```python\nvalue = 1 / 0\n```\n\n```python\nprint(value)\n```\n", encoding="utf-8")

    results = check_document(doc)

    assert [result.ok for result in results] == [False, False]
    assert results[0].line == 2
    assert "ZeroDivisionError" in results[0].error
    assert "NameError" in results[1].error


def test_check_directory_visits_every_document(tmp_path):
    (tmp_path / "a.md").write_text("```python\nassert True\n```\n", encoding="utf-8")
    (tmp_path / "b.md").write_text("```python\nassert False\n```\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("```python\nassert False\n```\n", encoding="utf-8")

    results = check_directory(tmp_path)

    assert [(result.path.endswith("a.md"), result.ok) for result in results] == [(True, True), (False, False)]
