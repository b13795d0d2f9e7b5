import pytest
from eth_abi import encode as abi_encode

from core.base_types import NATIVE, Address, PoolKey
from router.actions import (
    SETTLE,
    SWAP_EXACT_IN,
    TAKE,
    V4_SWAP,
    PathKey,
    Settle,
    SwapExactIn,
    Take,
    UnknownActionError,
    decode_actions,
    encode_actions,
)
from router.encoder import (
    EXECUTE_SELECTOR,
    EncodingError,
    SwapEncoder,
    SwapPlan,
    decode_router_calldata,
    decode_v4_swap_input,
    summarize,
    validate_actions,
)

TOKEN = Address("0x1111111111111111111111111111111111111111")
OTHER = Address("0x9999999999999999999999999999999999999999")
RECIPIENT = Address("0x000000000000000000000000000000000000dEaD")


def _key():
    return PoolKey.for_pair(TOKEN, NATIVE, 10_000, 200)


def _plan(**overrides):
    defaults = dict(
        token_in=TOKEN,
        token_out=NATIVE,
        amount_in=1000,
        min_amount_out=990,
        pool_key=_key(),
        recipient=RECIPIENT,
    )
    defaults.update(overrides)
    return SwapPlan(**defaults)


class TestEncodeSwap:
    def test_sell_token_for_native_round_trip(self):
        encoded = SwapEncoder().encode_swap(_plan())

        assert encoded.action_bytes == bytes([SWAP_EXACT_IN, SETTLE, TAKE])
        assert len(encoded.params) == 3
        assert encoded.value == 0
        assert encoded.approval_token == TOKEN

        swap, settle, take = decode_v4_swap_input(encoded.v4_swap_input())
        assert swap == SwapExactIn(
            currency_in=TOKEN,
            path=(PathKey(NATIVE, 10_000, 200),),
            amount_in=1000,
            amount_out_minimum=990,
        )
        assert settle == Settle(TOKEN, 1000, payer_is_user=True)
        assert take == Take(NATIVE, RECIPIENT, 990)

    def test_sell_native_pays_with_value(self):
        encoded = SwapEncoder().encode_swap(_plan(token_in=NATIVE, token_out=TOKEN))
        assert encoded.value == 1000
        assert encoded.approval_token is None
        swap = encoded.actions[0]
        assert swap.currency_in == NATIVE
        assert swap.currency_out == TOKEN

    def test_zero_for_one_follows_currency_order(self):
        assert _plan(token_in=NATIVE, token_out=TOKEN).zero_for_one
        assert not _plan().zero_for_one

    def test_router_calldata_wraps_one_v4_swap(self):
        encoded = SwapEncoder().encode_swap(_plan())
        calldata = encoded.router_calldata(deadline=1_700_000_000)

        assert calldata[:4] == EXECUTE_SELECTOR
        commands, inputs, deadline = decode_router_calldata(calldata)
        assert commands == bytes([V4_SWAP])
        assert inputs == [encoded.v4_swap_input()]
        assert deadline == 1_700_000_000

    def test_default_deadline_is_in_the_future(self, monkeypatch):
        monkeypatch.setattr("router.encoder.time.time", lambda: 1_000)
        calldata = SwapEncoder().encode_swap(_plan()).router_calldata()
        _, _, deadline = decode_router_calldata(calldata)
        assert deadline == 1_600

    def test_summarize_reads_back_the_swap(self):
        calldata = SwapEncoder().encode_swap(_plan()).router_calldata(deadline=5)
        summary = summarize(calldata)
        assert summary.currency_in == TOKEN
        assert summary.currency_out == NATIVE
        assert summary.amount_in == 1000
        assert summary.min_amount_out == 990
        assert summary.recipient == RECIPIENT
        assert summary.payer_is_user is True
        assert summary.deadline == 5


class TestPlanChecks:
    @pytest.mark.parametrize(
        "overrides, message",
        [
            (dict(token_out=TOKEN), "must differ"),
            (dict(token_in=OTHER), "not a currency"),
            (dict(amount_in=0), "amount_in out of range"),
            (dict(amount_in=2**128), "amount_in out of range"),
            (dict(min_amount_out=-1), "min_amount_out out of range"),
            (dict(recipient=NATIVE), "zero address"),
        ],
    )
    def test_rejects_bad_plans(self, overrides, message):
        with pytest.raises(EncodingError, match=message):
            SwapEncoder().encode_swap(_plan(**overrides))


class TestValidateActions:
    def _swap(self):
        return SwapExactIn(TOKEN, (PathKey(NATIVE, 10_000, 200),), 1000, 990)

    def test_valid_stream(self):
        validate_actions([self._swap(), Settle(TOKEN, 1000), Take(NATIVE, RECIPIENT, 990)])

    def test_settle_currency_must_match_swap_input(self):
        with pytest.raises(EncodingError, match="SETTLE currency"):
            validate_actions([self._swap(), Settle(NATIVE, 1000), Take(NATIVE, RECIPIENT)])

    def test_take_currency_must_match_swap_output(self):
        with pytest.raises(EncodingError, match="TAKE currency"):
            validate_actions([self._swap(), Settle(TOKEN, 1000), Take(TOKEN, RECIPIENT)])

    def test_swap_must_come_first(self):
        with pytest.raises(EncodingError, match="first action"):
            validate_actions([Settle(TOKEN, 1000), self._swap(), Take(NATIVE, RECIPIENT)])

    def test_settle_and_take_required(self):
        with pytest.raises(EncodingError, match="both SETTLE and TAKE"):
            validate_actions([self._swap(), Settle(TOKEN, 1000)])

    def test_single_swap_only(self):
        with pytest.raises(EncodingError, match="only one"):
            validate_actions([self._swap(), self._swap(), Settle(TOKEN, 1000)])


class TestDecodeActions:
    def test_unknown_opcode(self):
        blob = abi_encode(["uint256"], [1])
        with pytest.raises(UnknownActionError) as exc:
            decode_actions(bytes([0x42]), [blob])
        assert exc.value.opcode == 0x42

    def test_count_mismatch(self):
        action_bytes, params = encode_actions([Settle(TOKEN, 1)])
        with pytest.raises(ValueError, match="parameter blobs"):
            decode_actions(action_bytes + bytes([TAKE]), params)

    def test_summarize_rejects_foreign_calldata(self):
        with pytest.raises(ValueError, match="not an execute"):
            summarize(b"\xde\xad\xbe\xef" + b"\x00" * 32)
