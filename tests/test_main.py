import pytest

import config
import main
from core.wallet_deriver import WalletDeriver

MASTER = "0x" + "11" * 32


@pytest.fixture(autouse=True)
def env(monkeypatch):
    monkeypatch.setattr(config, "_ENV_LOADED", True)
    monkeypatch.setenv("MASTER_PRIVATE_KEY", MASTER)
    for name in ("CAMPAIGN_ID", "WALLET_COUNT", "TARGET_TOKEN", "ARB_TARGETS_FILE", "STATE_VIEW_ADDRESS"):
        monkeypatch.delenv(name, raising=False)


def test_derive_prints_sub_wallets(capsys):
    main.main(["derive", "--campaign", "campaign-1", "--count", "2"])

    out = capsys.readouterr().out
    deriver = WalletDeriver(MASTER)
    for wallet in deriver.sub_wallets("campaign-1", 2):
        assert wallet.address.checksum in out
    assert str(deriver.master_address) in out


def test_scan_requires_contract_addresses():
    with pytest.raises(SystemExit, match="STATE_VIEW_ADDRESS"):
        main.main(["scan"])


def test_pool_requires_a_target(monkeypatch):
    monkeypatch.setenv("STATE_VIEW_ADDRESS", "0x2222222222222222222222222222222222222222")
    with pytest.raises(SystemExit, match="no arb targets"):
        main.main(["pool"])
