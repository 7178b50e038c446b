"""
Tests for commitment and deposit id resolution.

Run with: pytest tests/test_resolver.py -v
"""
import pytest

from veilbridge.datasources.base import TransactionInfo
from veilbridge.services.resolver import (
    DEPOSIT_ID_OFFSET,
    CallDataStrategy,
    FixedOffsetCallDecoder,
    IdentifierResolver,
    StructuredCallDecoder,
)

from conftest import DEPOSITOR, DOMAIN, ctx, hex32, initiate_call_data

DEPOSIT_ID = hex32(0xD1)
TRANSFER_ID = hex32(0x71)
COMMITMENT = hex32(0xC1)


class ConstantDecoder(CallDataStrategy):
    name = "constant"

    def __init__(self, value):
        self.value = value

    def supports(self, call_data):
        return True

    def extract_deposit_id(self, call_data):
        return self.value


class TestCallDataStrategies:
    """Deposit id extraction from initiateTransfer call data"""

    def test_structured_decoder(self):
        data = bytes.fromhex(initiate_call_data(DEPOSIT_ID)[2:])
        assert StructuredCallDecoder().extract_deposit_id(data) == DEPOSIT_ID

    def test_structured_decoder_rejects_other_selector(self):
        data = bytes.fromhex("12345678" + initiate_call_data(DEPOSIT_ID)[10:])
        with pytest.raises(ValueError):
            StructuredCallDecoder().extract_deposit_id(data)

    def test_fixed_offset_ignores_selector(self):
        data = bytes.fromhex("12345678" + initiate_call_data(DEPOSIT_ID)[10:])
        assert FixedOffsetCallDecoder().extract_deposit_id(data) == DEPOSIT_ID

    def test_fixed_offset_needs_full_word(self):
        decoder = FixedOffsetCallDecoder()
        assert decoder.supports(bytes(DEPOSIT_ID_OFFSET + 31)) is False
        with pytest.raises(ValueError):
            decoder.extract_deposit_id(bytes(DEPOSIT_ID_OFFSET + 31))


class TestDecodeDepositId:
    """Agreement rules across strategies"""

    def test_well_formed_call(self, resolver):
        assert resolver.decode_deposit_id(initiate_call_data(DEPOSIT_ID)) == DEPOSIT_ID

    def test_unknown_selector_falls_back_to_offset(self, resolver):
        call_data = "0x12345678" + initiate_call_data(DEPOSIT_ID)[10:]
        assert resolver.decode_deposit_id(call_data) == DEPOSIT_ID

    @pytest.mark.parametrize("call_data", ["0x", "0xdeadbeef", "not hex", "0x" + "00" * 68])
    def test_undecodable_input(self, resolver, call_data):
        assert resolver.decode_deposit_id(call_data) is None

    def test_zero_deposit_id_is_unresolved(self, resolver):
        assert resolver.decode_deposit_id(initiate_call_data(hex32(0))) is None

    def test_disagreeing_strategies(self, ingress):
        resolver = IdentifierResolver(
            ingress,
            DOMAIN,
            strategies=[StructuredCallDecoder(), ConstantDecoder(hex32(0xEE))],
        )
        assert resolver.decode_deposit_id(initiate_call_data(DEPOSIT_ID)) is None


class TestResolve:
    """Full identifier resolution for a received commitment"""

    @pytest.mark.asyncio
    async def test_resolved_from_contract_and_call_data(self, resolver, ingress):
        ingress.register(COMMITMENT, TRANSFER_ID, sender="0x" + "cc" * 20, domain=5)

        resolution = await resolver.resolve(COMMITMENT, ctx(10, call_data=initiate_call_data(DEPOSIT_ID)))

        assert resolution.transfer_id == TRANSFER_ID
        assert resolution.sender == "0x" + "cc" * 20
        assert resolution.destination_domain == 5
        assert resolution.deposit_id == DEPOSIT_ID
        assert resolution.complete is True

    @pytest.mark.asyncio
    async def test_unmapped_commitment(self, resolver):
        resolution = await resolver.resolve(COMMITMENT, ctx(10))

        assert resolution.transfer_id is None
        assert resolution.complete is False

    @pytest.mark.asyncio
    async def test_rpc_failure_is_unmapped_not_raised(self, resolver, ingress):
        ingress.register(COMMITMENT, TRANSFER_ID)
        ingress.fail_reads = True

        assert await resolver.resolve_transfer_id(COMMITMENT) is None

    @pytest.mark.asyncio
    async def test_metadata_failure_uses_fallbacks(self, resolver, ingress):
        ingress.register(COMMITMENT, TRANSFER_ID, sender="0x" + "cc" * 20, domain=5)
        ingress.fail_metadata = True

        resolution = await resolver.resolve(COMMITMENT, ctx(10, call_data=initiate_call_data(DEPOSIT_ID)))

        assert resolution.transfer_id == TRANSFER_ID
        assert resolution.sender == DEPOSITOR
        assert resolution.destination_domain == DOMAIN
        assert resolution.deposit_id == DEPOSIT_ID
        assert resolution.complete is False

    @pytest.mark.asyncio
    async def test_call_data_fetched_when_not_in_context(self, resolver, ingress):
        ingress.register(COMMITMENT, TRANSFER_ID)
        context = ctx(10)
        ingress.transactions[context.transaction_hash] = TransactionInfo(DEPOSITOR, initiate_call_data(DEPOSIT_ID))

        resolution = await resolver.resolve(COMMITMENT, context)

        assert resolution.deposit_id == DEPOSIT_ID

    @pytest.mark.asyncio
    async def test_missing_transaction_leaves_deposit_unknown(self, resolver, ingress):
        ingress.register(COMMITMENT, TRANSFER_ID)

        resolution = await resolver.resolve(COMMITMENT, ctx(10))

        assert resolution.transfer_id == TRANSFER_ID
        assert resolution.deposit_id is None
        assert resolution.complete is False
