from datetime import time

import pytest

from garagedesk.config import ConfigError, load_config

BASE = """
[app]
name = "Shop"
log_level = "debug"

[db]
host = "localhost"
name = "garagedesk"
user = "u"
password = "p"
"""


def _write(tmp_path, text):
    path = tmp_path / "config.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_when_business_section_missing(tmp_path):
    cfg = load_config(_write(tmp_path, BASE))

    assert cfg.log_level == "DEBUG"
    assert cfg.db.port == 5432
    assert cfg.business.default_hours.start == time(8, 0)
    assert cfg.business.default_hours.end == time(17, 0)
    assert cfg.business.default_hours.working_days == frozenset({1, 2, 3, 4, 5, 6})
    assert cfg.business.slot_minutes == 30


def test_business_section(tmp_path):
    text = BASE + '\n[business]\nstart = "09:00"\nend = "13:00"\nworking_days = [1, 3, 5]\nslot_minutes = 20\n'

    cfg = load_config(_write(tmp_path, text))

    assert cfg.business.default_hours.start == time(9, 0)
    assert cfg.business.default_hours.working_days == frozenset({1, 3, 5})
    assert cfg.business.slot_minutes == 20


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "nope.toml")


def test_missing_db_key(tmp_path):
    with pytest.raises(ConfigError, match="Missing config key"):
        load_config(_write(tmp_path, '[app]\nname = "x"\n[db]\nhost = "h"\n'))


def test_bad_toml(tmp_path):
    with pytest.raises(ConfigError, match="TOML"):
        load_config(_write(tmp_path, "[app\n"))


@pytest.mark.parametrize(
    "business",
    [
        '[business]\nstart = "17:00"\nend = "08:00"\n',
        "[business]\nworking_days = [0, 7]\n",
        '[business]\nstart = "8am"\n',
        "[business]\nslot_minutes = 0\n",
    ],
)
def test_invalid_business_hours(tmp_path, business):
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path, BASE + "\n" + business))
