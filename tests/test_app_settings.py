import json

import pytest

from privatepdf.app_settings import AppSettings, load_settings, reset_settings, save_settings
from privatepdf.ollama.errors import FilesystemError


def test_defaults_when_no_file(tmp_path):
    settings = load_settings(tmp_path / "settings.json")

    assert settings == AppSettings(
        theme="dark", ollama_model="gemma3:1b-it-q4_K_M", temperature=0.2, top_p=0.7
    )


def test_save_then_load(tmp_path):
    path = tmp_path / "nested" / "settings.json"
    save_settings(AppSettings(theme="light", temperature=0.5), path)

    assert json.loads(path.read_text(encoding="utf-8"))["theme"] == "light"
    loaded = load_settings(path)
    assert loaded.theme == "light"
    assert loaded.temperature == 0.5
    assert loaded.ollama_model == "gemma3:1b-it-q4_K_M"


def test_unknown_keys_are_ignored(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"theme": "light", "window": {"w": 800}}), encoding="utf-8")

    assert load_settings(path).theme == "light"


@pytest.mark.parametrize("content", ["{broken", json.dumps({"temperature": "warm"})])
def test_corrupt_file_is_filesystem_error(tmp_path, content):
    path = tmp_path / "settings.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(FilesystemError, match="Failed to parse settings"):
        load_settings(path)


def test_reset_writes_defaults(tmp_path):
    path = tmp_path / "settings.json"
    save_settings(AppSettings(theme="light"), path)

    defaults = reset_settings(path)

    assert defaults == AppSettings()
    assert load_settings(path) == AppSettings()
