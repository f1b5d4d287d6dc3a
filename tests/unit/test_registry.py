"""
test_registry.py - Unit tests for TokenMetadata and LeveragedTokenRegistry
"""

import pytest

from levmarket import (
    WAD, MAX_UINT256, DEFAULT_FEE_RATE, DEFAULT_MIN_LEVERAGE_RATIO,
    DEFAULT_MAX_LEVERAGE_RATIO, DEFAULT_REBALANCING_STEP, DEFAULT_REBALANCE_INTERVAL,
    TokenMetadata, LeveragedTokenRegistry, StaticPriceOracle, NotRegistered, to_wad,
)


def make_metadata(token_id="ETH2X", **overrides):
    fields = dict(
        token_id=token_id,
        collateral="WETH",
        oracle=StaticPriceOracle(to_wad(4000)),
        venue=object(),
        initial_price=to_wad(100),
    )
    fields.update(overrides)
    return TokenMetadata(**fields)


@pytest.fixture
def registry():
    reg = LeveragedTokenRegistry()
    reg.register(make_metadata())
    return reg


class TestTokenMetadata:

    def test_defaults(self):
        meta = make_metadata()
        assert meta.fee_rate == DEFAULT_FEE_RATE
        assert meta.min_leverage_ratio == DEFAULT_MIN_LEVERAGE_RATIO == 17 * WAD // 10
        assert meta.max_leverage_ratio == DEFAULT_MAX_LEVERAGE_RATIO == 23 * WAD // 10
        assert meta.rebalancing_step == DEFAULT_REBALANCING_STEP
        assert meta.max_rebalancing_notional == MAX_UINT256
        assert meta.rebalance_interval == DEFAULT_REBALANCE_INTERVAL
        assert meta.is_partial_rebalance_pending is False

    def test_net_collateral(self):
        meta = make_metadata(total_collateral=to_wad(2), total_pending_fees=to_wad("0.1"))
        assert meta.net_collateral == to_wad("1.9")

    def test_target_leverage_ratio(self):
        assert make_metadata().target_leverage_ratio == 2 * WAD

    @pytest.mark.parametrize("overrides", [
        {"token_id": ""},
        {"collateral": ""},
        {"initial_price": 0},
        {"fee_rate": WAD},
        {"fee_rate": -1},
        {"min_leverage_ratio": WAD},
        {"min_leverage_ratio": 3 * WAD},
        {"rebalancing_step": 0},
        {"max_rebalancing_notional": 0},
        {"rebalance_interval": -1},
        {"total_collateral": 0, "total_pending_fees": 1},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            make_metadata(**overrides)


class TestRegistry:

    def test_get(self, registry):
        assert registry.get("ETH2X").collateral == "WETH"
        assert registry.is_registered("ETH2X")
        assert registry.list_tokens() == ["ETH2X"]

    def test_get_unknown(self, registry):
        with pytest.raises(NotRegistered):
            registry.get("BTC2X")

    def test_duplicate(self, registry):
        with pytest.raises(ValueError):
            registry.register(make_metadata())

    def test_set_parameters(self, registry):
        updated = registry.set_parameters("ETH2X", fee_rate=to_wad("0.002"),
                                          max_rebalancing_notional=to_wad(1000))
        assert updated.fee_rate == to_wad("0.002")
        assert registry.get("ETH2X").max_rebalancing_notional == to_wad(1000)

    def test_set_parameters_keeps_accounting(self, registry):
        registry.get("ETH2X").total_collateral = to_wad(5)
        registry.set_parameters("ETH2X", rebalancing_step=to_wad("0.1"))
        assert registry.get("ETH2X").total_collateral == to_wad(5)

    def test_set_immutable_field(self, registry):
        with pytest.raises(ValueError):
            registry.set_parameters("ETH2X", total_collateral=to_wad(1))
        with pytest.raises(ValueError):
            registry.set_parameters("ETH2X", collateral="WBTC")

    def test_set_inverted_band(self, registry):
        with pytest.raises(ValueError):
            registry.set_parameters("ETH2X", min_leverage_ratio=to_wad("2.5"))
        assert registry.get("ETH2X").min_leverage_ratio == DEFAULT_MIN_LEVERAGE_RATIO

    def test_set_unknown_token(self, registry):
        with pytest.raises(NotRegistered):
            registry.set_parameters("BTC2X", fee_rate=0)

    def test_set_parameters_updates_held_record(self, registry):
        held = registry.get("ETH2X")
        registry.set_parameters("ETH2X", rebalancing_step=to_wad("0.1"))
        assert held.rebalancing_step == to_wad("0.1")
        assert registry.get("ETH2X") is held

    def test_snapshot_restore(self, registry):
        snap = registry.snapshot()
        registry.get("ETH2X").total_collateral = to_wad(3)
        registry.register(make_metadata("BTC2X", collateral="WBTC"))

        registry.restore(snap)
        assert registry.get("ETH2X").total_collateral == 0
        assert not registry.is_registered("BTC2X")

    def test_restore_keeps_held_record(self, registry):
        held = registry.get("ETH2X")
        oracle = held.oracle
        snap = registry.snapshot()
        held.total_collateral = to_wad(3)
        held.is_partial_rebalance_pending = True

        registry.restore(snap)
        assert registry.get("ETH2X") is held
        assert held.total_collateral == 0
        assert held.is_partial_rebalance_pending is False
        assert held.oracle is oracle
