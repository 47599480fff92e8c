#!/usr/bin/env python3
"""
Tests for the command-line entry point (offline mode only).
"""
import json

import main
from scripts.smoke_demo import demo_plan


def test_offline_plan_prints_look_response(tmp_path, capsys):
    plan_file = tmp_path / "plan.json"
    plan_file.write_text(json.dumps(demo_plan()), encoding="utf-8")

    code = main.main([str(plan_file), "--offline", "--json-only"])

    out = capsys.readouterr().out
    response = json.loads(out)
    assert code == 0
    assert response["look_id"] == "demo-look-001"
    assert response["status"] == "complete"
    assert {p["slot"] for p in response["slots"]} >= {"anchor", "top", "bottom", "shoe"}


def test_invalid_plan_exits_with_validation_code(tmp_path, capsys):
    plan_file = tmp_path / "plan.json"
    plan_file.write_text(json.dumps({"look_id": "x"}), encoding="utf-8")

    assert main.main([str(plan_file), "--offline"]) == 2
    assert "Invalid style plan" in capsys.readouterr().err
