from pathlib import Path

import pytest

from bookkeeping.config import DEFAULT_EXCHANGE_RATES, Settings, load_settings
from bookkeeping.errors import SettingsLoadError


def test_missing_file_gives_defaults(tmp_path):
    assert load_settings(tmp_path / "absent.yaml") == Settings()


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "bookkeeping.yaml"
    path.write_text("", encoding="utf-8")
    assert load_settings(path) == Settings()


def test_values_are_loaded(tmp_path):
    path = tmp_path / "bookkeeping.yaml"
    path.write_text(
        "docstore_url: https://db.example.com\n"
        "orders_fetch_limit: 500\n"
        "seed_path: other/seed.json\n"
        "default_month: 2025-12\n"
        "exchange_rates:\n"
        "  US: 25500\n",
        encoding="utf-8",
    )
    settings = load_settings(path)
    assert settings.docstore_url == "https://db.example.com"
    assert settings.orders_fetch_limit == 500
    assert settings.seed_path == Path("other/seed.json")
    assert settings.default_month == "2025-12"
    assert settings.exchange_rates["US"] == 25500
    assert settings.exchange_rates["JPY"] == DEFAULT_EXCHANGE_RATES["JPY"]


def test_env_var_selects_file(tmp_path, monkeypatch):
    path = tmp_path / "custom.yaml"
    path.write_text("orders_fetch_limit: 10\n", encoding="utf-8")
    monkeypatch.setenv("BOOKKEEPING_CONFIG", str(path))
    assert load_settings().orders_fetch_limit == 10


@pytest.mark.parametrize("content", [
    "docstore_url: [unclosed\n",
    "- just\n- a list\n",
    "colour: blue\n",
    "exchange_rates:\n  US: lots\n",
    "exchange_rates: 5\n",
])
def test_bad_files_raise(tmp_path, content):
    path = tmp_path / "bookkeeping.yaml"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(SettingsLoadError):
        load_settings(path)
