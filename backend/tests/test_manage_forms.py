import argparse
import json

import manage_forms

FORM = {
    "id": "daily_check",
    "name": "Daily Check",
    "sections": [
        {
            "id": "s1",
            "fields": [
                {"id": "temperature", "type": "text"},
                {"id": "country", "type": "dropdown", "apiConfig": {"url": "https://api.test/countries"}},
            ],
        }
    ],
}


def test_check_valid_form(tmp_path, capsys):
    path = tmp_path / "form.json"
    path.write_text(json.dumps(FORM))

    assert manage_forms.check_command(argparse.Namespace(file=str(path))) == 0
    out = capsys.readouterr().out
    assert "Fields: 2" in out
    assert "Remote data sources: 1" in out


def test_check_reports_cycles(tmp_path, capsys):
    form = json.loads(json.dumps(FORM))
    fields = form["sections"][0]["fields"]
    fields[0]["dependency"] = {"fieldId": "country"}
    fields[1]["apiConfig"]["dependsOn"] = ["temperature"]
    path = tmp_path / "form.json"
    path.write_text(json.dumps(form))

    assert manage_forms.check_command(argparse.Namespace(file=str(path))) == 1
    assert "dependency cycle" in capsys.readouterr().out


def test_check_missing_file(tmp_path, capsys):
    assert manage_forms.check_command(argparse.Namespace(file=str(tmp_path / "nope.json"))) == 1
    assert "ERROR" in capsys.readouterr().out
