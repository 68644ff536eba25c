"""
Unit tests for backend/config.py
No Modal, no network required.
"""
import sys
from pathlib import Path

import pytest

BACKEND = str(Path(__file__).parent.parent)
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

import config  # noqa: E402
from config import GatewayConfig, load_config, read_account_slots  # noqa: E402


class TestDefaults:
    def test_generation_defaults(self):
        assert config.DEFAULT_STEPS == 25
        assert config.DEFAULT_WIDTH == 1024
        assert config.DEFAULT_HEIGHT == 1024
        assert config.MAX_INPUT_IMAGES == 4
        assert config.MAX_ACCOUNTS == 10

    def test_model_id(self):
        assert config.FLUX_MODEL_ID == "@cf/black-forest-labs/flux-2-dev"
        assert config.FLUX_MODEL_ID in config.IMAGE_MODELS

    def test_empty_environment(self):
        cfg = load_config({})
        assert cfg.api_master_key == "1"
        assert cfg.auth_enabled is False
        assert cfg.model == config.FLUX_MODEL_ID
        assert cfg.api_base_url == config.CF_API_BASE_URL
        assert cfg.account_slots == {}
        assert cfg.cors_origins == ("*",)
        assert cfg.enable_docs is False


class TestMasterKey:
    def test_master_key_enables_auth(self):
        cfg = load_config({"API_MASTER_KEY": "sk-test"})
        assert cfg.api_master_key == "sk-test"
        assert cfg.auth_enabled is True

    def test_blank_master_key_falls_back_to_sentinel(self):
        cfg = load_config({"API_MASTER_KEY": "   "})
        assert cfg.api_master_key == "1"
        assert cfg.auth_enabled is False


class TestAccountSlots:
    def test_numbered_slots(self):
        env = {
            "CF_API_TOKEN_1": "t1", "CF_ACCOUNT_ID_1": "a1",
            "CF_API_TOKEN_3": "t3", "CF_ACCOUNT_ID_3": "a3",
        }
        assert read_account_slots(env) == {1: ("t1", "a1"), 3: ("t3", "a3")}

    def test_partial_slot_is_kept_raw(self):
        assert read_account_slots({"CF_API_TOKEN_2": "t2"}) == {2: ("t2", None)}

    def test_unsuffixed_variables_fill_slot_one(self):
        env = {"CF_API_TOKEN": "legacy-t", "CF_ACCOUNT_ID": "legacy-a"}
        assert read_account_slots(env) == {1: ("legacy-t", "legacy-a")}

    def test_numbered_slot_one_wins_over_unsuffixed(self):
        env = {
            "CF_API_TOKEN": "legacy-t", "CF_ACCOUNT_ID": "legacy-a",
            "CF_API_TOKEN_1": "t1", "CF_ACCOUNT_ID_1": "a1",
        }
        assert read_account_slots(env) == {1: ("t1", "a1")}

    def test_slots_above_max_are_not_read(self):
        env = {"CF_API_TOKEN_11": "t11", "CF_ACCOUNT_ID_11": "a11"}
        assert read_account_slots(env, max_accounts=10) == {}


class TestOverrides:
    def test_upstream_overrides(self):
        cfg = load_config({
            "CF_FLUX_MODEL": "@cf/custom/model",
            "CF_API_BASE_URL": "http://localhost:9000/client/v4/",
            "UPSTREAM_TIMEOUT_SECONDS": "30",
        })
        assert cfg.model == "@cf/custom/model"
        assert cfg.api_base_url == "http://localhost:9000/client/v4"
        assert cfg.upstream_timeout_seconds == 30.0

    def test_invalid_timeout_uses_default(self):
        assert load_config({"UPSTREAM_TIMEOUT_SECONDS": "soon"}).upstream_timeout_seconds == config.UPSTREAM_TIMEOUT_SECONDS
        assert load_config({"UPSTREAM_TIMEOUT_SECONDS": "-1"}).upstream_timeout_seconds == config.UPSTREAM_TIMEOUT_SECONDS

    def test_cors_and_docs(self):
        cfg = load_config({"CORS_ORIGINS": "https://a.example, https://b.example,", "ENABLE_DOCS": "true"})
        assert cfg.cors_origins == ("https://a.example", "https://b.example")
        assert cfg.enable_docs is True

    def test_reads_process_environment_by_default(self, monkeypatch):
        monkeypatch.setenv("CF_API_TOKEN_2", "env-t2")
        monkeypatch.setenv("CF_ACCOUNT_ID_2", "env-a2")
        cfg = load_config()
        assert cfg.account_slots.get(2) == ("env-t2", "env-a2")


class TestAccountSlotsAreReadOnly:
    def test_slots_cannot_be_mutated_through_config(self):
        cfg = GatewayConfig(account_slots={1: ("t1", "a1")})
        with pytest.raises(TypeError):
            cfg.account_slots[2] = ("t2", "a2")
        assert dict(cfg.account_slots) == {1: ("t1", "a1")}

    def test_later_edits_to_source_dict_do_not_leak(self):
        slots = {1: ("t1", "a1")}
        cfg = GatewayConfig(account_slots=slots)
        slots[2] = ("t2", "a2")
        assert 2 not in cfg.account_slots

    def test_loaded_config_slots_are_read_only(self):
        cfg = load_config({"CF_API_TOKEN_1": "t1", "CF_ACCOUNT_ID_1": "a1"})
        with pytest.raises(TypeError):
            cfg.account_slots[1] = ("x", "y")
