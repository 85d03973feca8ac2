"""Software file reformatting tool."""

import json

from sill.tools.edit_software import main, reformat_software_file
from tests.factories import make_software_row


def write(path, rows):
    path.write_text(json.dumps(rows), encoding="utf-8")


def test_reformat_rewrites_in_canonical_order(tmp_path):
    path = tmp_path / "software.json"
    row = make_software_row(1, "Foo").to_json_dict()
    write(path, [dict(reversed(list(row.items())))])

    assert reformat_software_file(path) == 1

    text = path.read_text(encoding="utf-8")
    assert list(json.loads(text)[0])[:3] == ["id", "name", "function"]
    assert text.startswith('[\n    {\n        "id": 1,')


def test_unknown_field_fails_and_leaves_file_alone(tmp_path):
    path = tmp_path / "software.json"
    row = {**make_software_row(1, "Foo").to_json_dict(), "unexpected": True}
    write(path, [row])
    before = path.read_text(encoding="utf-8")

    assert main(["edit_software", str(path)]) == 1
    assert path.read_text(encoding="utf-8") == before


def test_main_returns_zero_on_success(tmp_path):
    path = tmp_path / "software.json"
    write(path, [make_software_row(1, "Foo").to_json_dict()])

    assert main(["edit_software", str(path)]) == 0
