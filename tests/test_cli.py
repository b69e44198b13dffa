"""Tests for the reverie CLI against the local backend."""

import json
from datetime import date

import pytest
from typer.testing import CliRunner

from reverie.assistant import SUGGESTIONS, WELCOME_MESSAGE, ScriptedPromptService
from reverie.cli import app

runner = CliRunner()


@pytest.fixture
def env(tmp_path, monkeypatch):
    for name in (
        "REVERIE_BACKEND", "REVERIE_SUPABASE_URL", "REVERIE_SUPABASE_KEY",
        "REVERIE_USER_ID", "REVERIE_OPENAI_API_KEY", "OPENAI_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
    return {"REVERIE_DATA_PATH": str(tmp_path)}


def invoke(env, *args):
    return runner.invoke(app, list(args), env=env)


def add_entry(env, title, *args):
    result = invoke(env, "--json", "add", title, *args)
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


class TestEntries:

    def test_add_and_list(self, env):
        first = add_entry(env, "Day 1", "--content", "hello", "--tag", "Work", "--tag", "work")
        second = add_entry(env, "Day 2")

        assert first["tags"] == ["work"]
        result = invoke(env, "--json", "list")
        assert result.exit_code == 0
        listed = json.loads(result.stdout)
        assert [e["id"] for e in listed] == [second["id"], first["id"]]

    def test_list_by_tag(self, env):
        add_entry(env, "Tagged", "-t", "travel")
        add_entry(env, "Plain")

        result = invoke(env, "list", "--tag", "Travel")
        assert "Tagged" in result.stdout
        assert "Plain" not in result.stdout

    def test_on_today(self, env):
        entry = add_entry(env, "Today")

        result = invoke(env, "--json", "on", date.today().isoformat())

        assert result.exit_code == 0
        assert json.loads(result.stdout)["id"] == entry["id"]

    def test_on_empty_day(self, env):
        add_entry(env, "Today")
        assert invoke(env, "on", "1999-01-01").exit_code == 1

    def test_on_bad_date(self, env):
        assert invoke(env, "on", "yesterday").exit_code == 1

    def test_delete_twice(self, env):
        entry = add_entry(env, "Gone")

        assert invoke(env, "delete", entry["id"]).exit_code == 0
        assert invoke(env, "delete", entry["id"]).exit_code == 1

    def test_tag_command(self, env):
        entry = add_entry(env, "Day", "-t", "work")

        result = invoke(env, "--json", "tag", entry["id"], "--add", "Home", "--remove", "WORK")

        assert result.exit_code == 0
        assert json.loads(result.stdout)["tags"] == ["home"]

    def test_media_upload(self, env, tmp_path):
        clip = tmp_path / "clip.webm"
        clip.write_bytes(b"audio-bytes")

        entry = add_entry(env, "Voice", "--type", "audio", "--media", str(clip))

        assert entry["type"] == "audio"
        assert entry["media_url"].startswith("file://")
        assert entry["media_url"].endswith(".webm")

    def test_media_needs_kind(self, env, tmp_path):
        clip = tmp_path / "clip.webm"
        clip.write_bytes(b"x")
        assert invoke(env, "add", "Voice", "--media", str(clip)).exit_code == 1

    def test_empty_title_rejected(self, env):
        assert invoke(env, "add", "  ").exit_code == 1

    def test_users_are_separate(self, env):
        add_entry(env, "Mine")
        result = invoke({**env, "REVERIE_USER_ID": "someone-else"}, "--json", "list")
        assert json.loads(result.stdout) == []


class TestAssistant:

    def test_prompt(self, env):
        result = invoke(env, "prompt")
        assert result.exit_code == 0
        assert result.stdout.strip()

    def test_summarize(self, env):
        entry = add_entry(env, "Day", "-c", "A hard but good day")

        result = invoke(env, "summarize", entry["id"])
        assert result.exit_code == 0

        shown = json.loads(invoke(env, "--json", "show", entry["id"]).stdout)
        assert shown["summary"] == result.stdout.strip()

    def test_chat(self, env):
        result = runner.invoke(
            app, ["chat"], env=env,
            input="Give me a writing prompt for today\n\nhow are you\nquit\nnot sent\n",
        )

        assert result.exit_code == 0, result.output
        assert WELCOME_MESSAGE in result.stdout
        for suggestion in SUGGESTIONS:
            assert suggestion in result.stdout
        assert result.stdout.count(ScriptedPromptService.REPLY) == 2

    def test_chat_ends_at_end_of_input(self, env):
        result = runner.invoke(app, ["chat"], env=env, input="")

        assert result.exit_code == 0, result.output
        assert ScriptedPromptService.REPLY not in result.stdout


class TestConfig:

    def test_config_json(self, env, tmp_path):
        result = invoke(env, "--json", "config")
        info = json.loads(result.stdout)
        assert info["backend"] == "local"
        assert info["path"] == str(tmp_path / "reverie.toml")
