"""Tests for the command line entry point."""

import json

import pytest

from picmirror.__main__ import _query_from_args, build_parser, run


def test_config_set_show_delete(tmp_path, monkeypatch, capsys):
    config_path = tmp_path / "d1_config.json"
    monkeypatch.setenv("PICMIRROR_CONFIG", str(config_path))

    code = run(["config", "set", "--account-id", "a", "--database-id", "d", "--api-token", "secret"])
    assert code == 0
    assert json.loads(config_path.read_text())["database_id"] == "d"

    assert run(["config", "show"]) == 0
    out = capsys.readouterr().out
    assert "database_id: d" in out
    assert "secret" not in out

    assert run(["config", "delete"]) == 0
    assert run(["config", "show"]) == 1
    assert "does not exist" in capsys.readouterr().err


def test_list_filters_map_to_query():
    args = build_parser().parse_args(
        ["list", "--type", "png", "--favorite", "--all", "--order", "size_desc", "--limit", "5"]
    )
    query = _query_from_args(args)

    assert query.file_type == "png"
    assert query.is_favorite is True
    assert query.include_deleted is None
    assert query.order_by == "size_desc"
    assert query.limit == 5


def test_default_filters_list_live_pictures():
    query = _query_from_args(build_parser().parse_args(["count"]))

    assert query.include_deleted is False
    assert query.is_favorite is None


def test_no_favorite_flag_selects_non_favorites():
    query = _query_from_args(build_parser().parse_args(["list", "--no-favorite"]))

    assert query.is_favorite is False


def test_favorite_flags_are_exclusive(capsys):
    with pytest.raises(SystemExit) as excinfo:
        build_parser().parse_args(["list", "--favorite", "--no-favorite"])
    assert excinfo.value.code == 2
    assert "not allowed with" in capsys.readouterr().err
