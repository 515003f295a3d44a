from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import requests
from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted, TransactionNotFound, Web3Exception

from limit_engine.core.errors import ChainError, ChainTimeout, TransactionReverted
from limit_engine.services.vault import SecretVault

logger = logging.getLogger(__name__)

NATIVE_TOKEN = "0x0000000000000000000000000000000000000000"

ERC20_ABI = [
    {
        "inputs": [{"internalType": "address", "name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# web3 surfaces JSON-RPC errors as ValueError on older releases
RPC_ERRORS = (Web3Exception, requests.RequestException, ValueError)


class WalletLike(Protocol):
    @property
    def address(self) -> str: ...

    @property
    def encrypted_secret(self) -> str: ...


@dataclass(frozen=True)
class TxRequest:
    to: str
    data: str = "0x"
    value: int = 0
    gas: Optional[int] = None
    gas_price: Optional[int] = None


@dataclass(frozen=True)
class TxReceipt:
    tx_hash: str
    block_number: int
    gas_used: int
    status: int

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class ChainClient:
    def __init__(
        self,
        rpc_url: str,
        vault: SecretVault,
        chain_id: int,
        confirmation_timeout: float = 120.0,
        poll_latency: float = 1.0,
        request_timeout: float = 10.0,
    ) -> None:
        self.w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout}))
        self.vault = vault
        self.chain_id = chain_id
        self.confirmation_timeout = confirmation_timeout
        self.poll_latency = poll_latency

    def is_connected(self) -> bool:
        try:
            return bool(self.w3.is_connected())
        except RPC_ERRORS:
            return False

    def balance_of(self, wallet: WalletLike, token: str) -> int:
        """Balance in base units; the zero address means the native asset."""
        owner = Web3.to_checksum_address(wallet.address)
        try:
            if token.lower() == NATIVE_TOKEN:
                return int(self.w3.eth.get_balance(owner))
            contract = self.w3.eth.contract(address=Web3.to_checksum_address(token), abi=ERC20_ABI)
            return int(contract.functions.balanceOf(owner).call())
        except RPC_ERRORS as e:
            raise ChainError(f"balance lookup failed for {owner}: {e}") from e

    def sign_and_send(
        self,
        wallet: WalletLike,
        request: TxRequest,
        on_submitted: Callable[[str], None] | None = None,
    ) -> TxReceipt:
        """
        Sign ``request`` with the wallet's key, broadcast it and block until
        it is mined.

        The key is decrypted only for the signing call. ``on_submitted`` is
        invoked with the tx hash right after broadcast so callers can journal
        it before the (possibly long) confirmation wait.

        Raises:
            ChainError: RPC failure before or during broadcast
            ChainTimeout: broadcast succeeded but no receipt within the timeout
            TransactionReverted: mined with status 0
        """
        sender = Web3.to_checksum_address(wallet.address)
        try:
            tx = {
                "from": sender,
                "to": Web3.to_checksum_address(request.to),
                "data": request.data or "0x",
                "value": int(request.value),
                "nonce": self.w3.eth.get_transaction_count(sender, "pending"),
                "chainId": self.chain_id,
            }
            tx["gas"] = request.gas if request.gas is not None else self.w3.eth.estimate_gas(tx)
            tx["gasPrice"] = request.gas_price if request.gas_price is not None else self.w3.eth.gas_price

            with self.vault.unlocked(wallet.encrypted_secret) as private_key:
                signed = Account.from_key(private_key).sign_transaction(tx)

            tx_hash = Web3.to_hex(self.w3.eth.send_raw_transaction(signed.raw_transaction))
        except RPC_ERRORS as e:
            raise ChainError(f"failed to submit transaction from {sender}: {e}") from e

        logger.info("Submitted tx %s from %s to %s", tx_hash, sender, request.to)
        if on_submitted is not None:
            on_submitted(tx_hash)

        try:
            raw_receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.confirmation_timeout, poll_latency=self.poll_latency
            )
        except TimeExhausted as e:
            raise ChainTimeout(f"tx {tx_hash} not confirmed after {self.confirmation_timeout}s", tx_hash) from e
        except RPC_ERRORS as e:
            raise ChainError(f"receipt polling failed for {tx_hash}: {e}") from e

        receipt = self._to_receipt(tx_hash, raw_receipt)
        if not receipt.succeeded:
            raise TransactionReverted(f"tx {tx_hash} reverted", tx_hash)
        logger.info("Confirmed tx %s in block %s", tx_hash, receipt.block_number)
        return receipt

    def get_receipt(self, tx_hash: str) -> TxReceipt | None:
        """Receipt for an earlier broadcast, or None while it is still unmined."""
        try:
            raw_receipt = self.w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None
        except RPC_ERRORS as e:
            raise ChainError(f"receipt lookup failed for {tx_hash}: {e}") from e
        return self._to_receipt(tx_hash, raw_receipt)

    def is_known(self, tx_hash: str) -> bool:
        """False once a node no longer has the transaction (dropped from the mempool)."""
        try:
            self.w3.eth.get_transaction(tx_hash)
        except TransactionNotFound:
            return False
        except RPC_ERRORS as e:
            raise ChainError(f"transaction lookup failed for {tx_hash}: {e}") from e
        return True

    @staticmethod
    def _to_receipt(tx_hash: str, raw_receipt) -> TxReceipt:
        return TxReceipt(
            tx_hash=tx_hash,
            block_number=int(raw_receipt.get("blockNumber") or 0),
            gas_used=int(raw_receipt.get("gasUsed") or 0),
            status=int(raw_receipt.get("status", 0)),
        )
