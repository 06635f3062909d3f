import json
from pathlib import Path
import sys
import time

import pytest

# allow importing usagestats without installing
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from usagestats import credentials, tuning


def test_get_credentials(tmp_path: Path):
    store = tmp_path / ".qfsd_cred"
    assert credentials.get_credentials(str(store)) is None

    store.write_text("")
    assert credentials.get_credentials(str(store)) is None

    store.write_text(json.dumps({"bearer_token": "session-v1:abc"}))
    assert credentials.get_credentials(str(store)) == "session-v1:abc"

    store.write_text(json.dumps({"bearer_token": 5}))
    assert credentials.get_credentials(str(store)) is None

    store.write_text("{broken")
    assert credentials.get_credentials(str(store)) is None


def test_credential_store_filename(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    assert credentials.credential_store_filename() == str(tmp_path / ".qfsd_cred")
    assert credentials.credential_store_filename("/etc/creds") == "/etc/creds"


def test_identity_cache_round_trip_and_expiry(tmp_path: Path):
    cache_file = str(tmp_path / "identities")
    credentials.save_identity_cache({"100": {"name": "alice"}}, cache_file=cache_file)
    assert credentials.load_identity_cache(cache_file=cache_file) == {"100": {"name": "alice"}}

    stale = {"200": {"identity": {"name": "old"}, "timestamp": int(time.time()) - credentials.IDENTITY_CACHE_TTL - 5}}
    Path(cache_file).write_text(json.dumps(stale))
    assert credentials.load_identity_cache(cache_file=cache_file) == {}


def test_identity_cache_missing_or_corrupt(tmp_path: Path):
    assert credentials.load_identity_cache(cache_file=str(tmp_path / "none")) == {}
    broken = tmp_path / "broken"
    broken.write_text("not json")
    assert credentials.load_identity_cache(cache_file=str(broken)) == {}


def test_recommended_settings_respect_caps():
    small = tuning.calculate_recommended_settings(cpu_count=1, fd_limit=1024, profile="conservative")
    assert small == {"max_workers": 2, "max_concurrent": 40, "connector_limit": 40}

    big = tuning.calculate_recommended_settings(cpu_count=128, fd_limit=100000, profile="aggressive")
    assert big == tuning.PROFILE_CAPS["aggressive"]

    fd_bound = tuning.calculate_recommended_settings(cpu_count=64, fd_limit=120, profile="balanced")
    assert fd_bound["max_concurrent"] == 70
    assert fd_bound["connector_limit"] == 70


def test_profile_save_load(tmp_path: Path):
    profile_path = tmp_path / tuning.PROFILE_FILENAME
    profile = tuning.generate_tuning_profile("balanced")
    assert tuning.save_tuning_profile(profile, profile_path)

    loaded = tuning.load_tuning_profile(profile_path)
    assert loaded["profile"] == "balanced"
    assert tuning.effective_settings(loaded) == loaded["recommended"]
    assert "max_workers" in tuning.format_profile_summary(loaded)


def test_profile_rejected_on_version_mismatch(tmp_path: Path):
    profile_path = tmp_path / tuning.PROFILE_FILENAME
    profile_path.write_text(json.dumps({"version": 99, "platform": {}, "recommended": {}, "profile": "x"}))
    assert tuning.load_tuning_profile(profile_path) is None
    assert tuning.load_tuning_profile(tmp_path / "missing") is None
    assert tuning.effective_settings(None) == tuning.DEFAULT_SETTINGS


def test_package_metadata_is_self_contained():
    tomllib = pytest.importorskip("tomllib")
    with open(Path(__file__).resolve().parents[1] / "pyproject.toml", "rb") as f:
        project = tomllib.load(f)["project"]
    assert "readme" not in project
    assert {"aiohttp>=3.8", "ujson>=5.0"} <= set(project["dependencies"])
