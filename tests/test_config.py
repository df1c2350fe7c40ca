from __future__ import annotations

from pathlib import Path

import pytest

from monadoring.config import (
    DEFAULT_UPTIME_APIS,
    RpcEndpoint,
    apply_env_overrides,
    build_config,
    extract_name_from_url,
    load_config,
    parse_list,
    parse_rpcs,
)
from monadoring.errors import ConfigError
from monadoring.events import Network

EXAMPLE = Path(__file__).resolve().parent.parent / "config-example.yaml"


def test_parse_list():
    assert parse_list("1, 2,,3 ") == ("1", "2", "3")
    assert parse_list([12, "34"]) == ("12", "34")
    assert parse_list(None) == ()
    assert parse_list("") == ()


def test_extract_name_from_url():
    assert extract_name_from_url("https://rpc.monad.xyz") == "Monad"
    assert extract_name_from_url("https://rpc-mainnet.monadinfra.com/v1") == "Monadinfra"
    assert extract_name_from_url("http://localhost:8080") == "Localhost"
    assert extract_name_from_url("not a url") == "not a url"


def test_parse_rpcs_keeps_order_and_names():
    rpcs = parse_rpcs("Huginn:https://a.huginn.tech, https://rpc.monad.xyz ,,My Node:http://10.0.0.1:8545")
    assert rpcs == (
        RpcEndpoint("https://a.huginn.tech", "Huginn"),
        RpcEndpoint("https://rpc.monad.xyz", "Monad"),
        RpcEndpoint("http://10.0.0.1:8545", "My Node"),
    )


def test_network_overrides_global_defaults():
    config = build_config(
        {
            "global": {"missed_block_interval": 45, "rpc_alerts": "on"},
            "networks": {
                "mainnet": {"validators": "1,2", "rpcs": "https://rpc.monad.xyz"},
                "testnet": {"missed_block_interval": 90, "uptime_api": "https://uptime.example/"},
            },
        }
    )
    mainnet = config.network("mainnet")
    testnet = config.network("testnet")

    assert mainnet.validators == ("1", "2")
    assert mainnet.missed_block_interval == 45
    assert mainnet.failover_threshold == 30
    assert mainnet.rpc_alerts is True
    assert mainnet.uptime_api == DEFAULT_UPTIME_APIS[Network.MAINNET]
    assert mainnet.rpc_urls == ("https://rpc.monad.xyz",)
    assert testnet.missed_block_interval == 90
    assert testnet.uptime_api == "https://uptime.example"
    assert testnet.rpcs == ()
    assert config.network("devnet") is None


def test_alert_and_ingress_sections():
    config = build_config(
        {
            "networks": {"mainnet": {}},
            "alerts": {"telegram_token": "t", "telegram_chat_id": 123, "pagerduty_threshold": "3"},
            "ingress": {"enabled": True, "port": "8080"},
        }
    )
    assert config.alerts.telegram_enabled
    assert config.alerts.telegram_chat_id == "123"
    assert not config.alerts.discord_enabled
    assert not config.alerts.pagerduty_enabled
    assert config.alerts.pagerduty_threshold == 3
    assert config.ingress.enabled
    assert config.ingress.port == 8080
    assert config.ingress.host == "127.0.0.1"
    assert config.log_file == "./log/monadoring.log"


@pytest.mark.parametrize(
    "data",
    [
        {"networks": {"devnet": {}}},
        {"networks": ["mainnet"]},
        {"networks": {"mainnet": {"rpc_health_interval": 0}}},
        {"networks": {"mainnet": {"failover_threshold": "many"}}},
        {"networks": {"mainnet": {"history_limit": 0}}},
        {"networks": {"mainnet": {}}, "alerts": {"pagerduty_threshold": 0}},
    ],
)
def test_invalid_config_is_rejected(data):
    with pytest.raises(ConfigError):
        build_config(data)


def test_env_overrides_file_values():
    data = {
        "global": {"rpc_alerts": False},
        "networks": {"mainnet": {"validators": "1"}},
        "alerts": {"telegram_token": "file-token"},
    }
    environ = {
        "MAINNET_VALIDATORS": "7,8",
        "TESTNET_RPCS": "https://testnet-rpc.monad.xyz",
        "TELEGRAM_BOT_TOKEN": "env-token",
        "DISCORD_WEBHOOK_URL": "   ",
        "RPC_ALERTS": "on",
        "PORT": "4000",
    }
    merged = apply_env_overrides(data, environ)
    config = build_config(merged)

    assert config.network("mainnet").validators == ("7", "8")
    assert config.network("testnet").rpcs[0].name == "Monad"
    assert config.network("mainnet").rpc_alerts is True
    assert config.alerts.telegram_token == "env-token"
    assert config.alerts.discord_webhook_url == ""
    assert config.ingress.port == 4000
    assert data["alerts"]["telegram_token"] == "file-token"
    assert data["networks"]["mainnet"]["validators"] == "1"


def test_rpc_alerts_env_off():
    merged = apply_env_overrides({"global": {"rpc_alerts": True}, "networks": {"mainnet": {}}}, {"RPC_ALERTS": "off"})
    assert build_config(merged).network("mainnet").rpc_alerts is False


def test_load_example_config():
    config = build_config(load_config(EXAMPLE))
    mainnet = config.network("mainnet")
    assert [r.name for r in mainnet.rpcs] == ["Huginn", "Monad", "Monad Infra"]
    assert config.network("testnet").validators == ()
    assert config.network("testnet").missed_block_interval == 60


def test_empty_config_file_is_fatal(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")
    with pytest.raises(SystemExit):
        load_config(path)
