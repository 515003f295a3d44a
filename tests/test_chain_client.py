import pytest
from unittest.mock import Mock, patch
from web3.exceptions import TimeExhausted, TransactionNotFound

from limit_engine.core.errors import ChainError, ChainTimeout, TransactionReverted
from limit_engine.models import WalletRef
from limit_engine.services.chain import NATIVE_TOKEN, ChainClient, TxRequest

from factories import PENGU, PRIVATE_KEY, ROUTER, WALLET_ADDRESS

TX_HASH = "0x" + "cd" * 32


@pytest.fixture
def web3_mocks():
    """Patch Web3 and Account in the chain module."""
    with patch("limit_engine.services.chain.Web3") as mock_web3_class, \
            patch("limit_engine.services.chain.Account") as mock_account_class:
        w3 = Mock()
        w3.eth.get_transaction_count.return_value = 7
        w3.eth.estimate_gas.return_value = 150000
        w3.eth.gas_price = 25_000_000
        w3.eth.send_raw_transaction.return_value = b"\xcd" * 32
        w3.eth.wait_for_transaction_receipt.return_value = {"status": 1, "blockNumber": 99, "gasUsed": 120000}

        mock_web3_class.return_value = w3
        mock_web3_class.HTTPProvider = Mock()
        mock_web3_class.to_checksum_address = lambda x: x
        mock_web3_class.to_hex = lambda b: TX_HASH

        signer = Mock()
        signer.sign_transaction.return_value = Mock(raw_transaction=b"signed")
        mock_account_class.from_key.return_value = signer

        yield w3, mock_account_class, signer


@pytest.fixture
def client(web3_mocks, vault):
    return ChainClient("http://localhost:8545", vault, chain_id=2741, confirmation_timeout=3, poll_latency=0.1)


@pytest.fixture
def wallet(vault):
    return WalletRef(WALLET_ADDRESS, vault.encrypt(PRIVATE_KEY))


class TestSignAndSend:
    def test_success(self, client, web3_mocks, wallet):
        """Test a transaction is signed with the decrypted key, broadcast and confirmed"""
        # Arrange
        w3, mock_account_class, signer = web3_mocks
        on_submitted = Mock()

        # Act
        receipt = client.sign_and_send(wallet, TxRequest(to=ROUTER, data="0xdeadbeef", value=5), on_submitted)

        # Assert
        mock_account_class.from_key.assert_called_once_with(PRIVATE_KEY)
        tx = signer.sign_transaction.call_args[0][0]
        assert tx["from"] == WALLET_ADDRESS
        assert tx["to"] == ROUTER
        assert tx["nonce"] == 7
        assert tx["chainId"] == 2741
        assert tx["gas"] == 150000
        assert tx["gasPrice"] == 25_000_000
        assert tx["value"] == 5
        w3.eth.get_transaction_count.assert_called_once_with(WALLET_ADDRESS, "pending")
        w3.eth.send_raw_transaction.assert_called_once_with(b"signed")
        on_submitted.assert_called_once_with(TX_HASH)
        assert receipt.tx_hash == TX_HASH
        assert receipt.block_number == 99
        assert receipt.succeeded

    def test_plan_gas_skips_estimation(self, client, web3_mocks, wallet):
        w3, _, signer = web3_mocks

        client.sign_and_send(wallet, TxRequest(to=ROUTER, gas=300000, gas_price=1))

        w3.eth.estimate_gas.assert_not_called()
        tx = signer.sign_transaction.call_args[0][0]
        assert tx["gas"] == 300000
        assert tx["gasPrice"] == 1

    def test_broadcast_failure(self, client, web3_mocks, wallet):
        w3, _, _ = web3_mocks
        w3.eth.send_raw_transaction.side_effect = ValueError("nonce too low")
        on_submitted = Mock()

        with pytest.raises(ChainError):
            client.sign_and_send(wallet, TxRequest(to=ROUTER), on_submitted)
        on_submitted.assert_not_called()

    def test_confirmation_timeout(self, client, web3_mocks, wallet):
        w3, _, _ = web3_mocks
        w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted()
        on_submitted = Mock()

        with pytest.raises(ChainTimeout) as exc_info:
            client.sign_and_send(wallet, TxRequest(to=ROUTER), on_submitted)

        assert exc_info.value.tx_hash == TX_HASH
        on_submitted.assert_called_once_with(TX_HASH)

    def test_reverted(self, client, web3_mocks, wallet):
        w3, _, _ = web3_mocks
        w3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "blockNumber": 99, "gasUsed": 1}

        with pytest.raises(TransactionReverted) as exc_info:
            client.sign_and_send(wallet, TxRequest(to=ROUTER))
        assert exc_info.value.tx_hash == TX_HASH

    def test_secret_not_in_errors(self, client, web3_mocks, wallet):
        w3, _, _ = web3_mocks
        w3.eth.estimate_gas.side_effect = ValueError("execution reverted")

        with pytest.raises(ChainError) as exc_info:
            client.sign_and_send(wallet, TxRequest(to=ROUTER))
        assert PRIVATE_KEY not in str(exc_info.value)


class TestReads:
    def test_get_receipt_unmined(self, client, web3_mocks):
        w3, _, _ = web3_mocks
        w3.eth.get_transaction_receipt.side_effect = TransactionNotFound("not found")
        assert client.get_receipt(TX_HASH) is None

    def test_get_receipt_mined(self, client, web3_mocks):
        w3, _, _ = web3_mocks
        w3.eth.get_transaction_receipt.return_value = {"status": 1, "blockNumber": 5, "gasUsed": 10}

        receipt = client.get_receipt(TX_HASH)

        assert receipt.succeeded
        assert receipt.block_number == 5

    def test_get_receipt_rpc_error(self, client, web3_mocks):
        w3, _, _ = web3_mocks
        w3.eth.get_transaction_receipt.side_effect = ValueError("rate limited")
        with pytest.raises(ChainError):
            client.get_receipt(TX_HASH)

    def test_is_known(self, client, web3_mocks):
        w3, _, _ = web3_mocks
        assert client.is_known(TX_HASH) is True

        w3.eth.get_transaction.side_effect = TransactionNotFound("dropped")
        assert client.is_known(TX_HASH) is False

    def test_native_balance(self, client, web3_mocks, wallet):
        w3, _, _ = web3_mocks
        w3.eth.get_balance.return_value = 10**18

        assert client.balance_of(wallet, NATIVE_TOKEN) == 10**18
        w3.eth.contract.assert_not_called()

    def test_token_balance(self, client, web3_mocks, wallet):
        w3, _, _ = web3_mocks
        contract = Mock()
        contract.functions.balanceOf.return_value.call.return_value = 42
        w3.eth.contract.return_value = contract

        assert client.balance_of(wallet, PENGU) == 42
        contract.functions.balanceOf.assert_called_once_with(WALLET_ADDRESS)

    def test_is_connected_swallows_rpc_errors(self, client, web3_mocks):
        w3, _, _ = web3_mocks
        w3.is_connected.side_effect = ValueError("refused")
        assert client.is_connected() is False
