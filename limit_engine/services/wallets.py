"""
Wallet Service
Imports user private keys, stores them encrypted, and reads balances.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from typing import List

from eth_account import Account
from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session, sessionmaker

from limit_engine.core.errors import InvalidOrderInput
from limit_engine.models.user import User, Wallet
from limit_engine.services.chain import ChainClient
from limit_engine.services.vault import SecretVault

logger = logging.getLogger(__name__)


class WalletService:
    def __init__(self, session_factory: sessionmaker[Session], vault: SecretVault, chain: ChainClient):
        self.session_factory = session_factory
        self.vault = vault
        self.chain = chain

    def register_wallet(self, owner_id: int, private_key: str) -> Wallet:
        """
        Derive the address for ``private_key`` and store the key encrypted.

        Raises:
            InvalidOrderInput: malformed key, or wallet already registered
        """
        try:
            address = Account.from_key(private_key.strip()).address
        except Exception as e:
            # eth_keys raises its own ValidationError; the key itself must never end up in the message
            raise InvalidOrderInput("invalid private key") from e

        with self.session_factory() as db:
            user = db.get(User, owner_id)
            if user is None:
                user = User(id=owner_id)
                db.add(user)
            elif any(w.address == address for w in user.wallets):
                raise InvalidOrderInput(f"wallet {address} already registered")

            wallet = Wallet(address=address, encrypted_secret=self.vault.encrypt(private_key.strip()))
            user.wallets.append(wallet)
            db.commit()
            db.refresh(wallet)

        logger.info("Registered wallet %s for owner %s", address, owner_id)
        return wallet

    def list_wallets(self, owner_id: int) -> List[Wallet]:
        stmt = select(Wallet).where(Wallet.user_id == owner_id).order_by(Wallet.created_at.asc())
        with self.session_factory() as db:
            return list(db.scalars(stmt).all())

    def get_wallet(self, owner_id: int, address: str) -> Wallet:
        stmt = select(Wallet).where(
            and_(Wallet.user_id == owner_id, func.lower(Wallet.address) == address.lower())
        )
        with self.session_factory() as db:
            wallet = db.scalar(stmt)
        if wallet is None:
            raise InvalidOrderInput(f"wallet {address} is not registered for this user")
        return wallet

    def balance_of(self, owner_id: int, address: str, token: str) -> int:
        return self.chain.balance_of(self.get_wallet(owner_id, address), token)

    def amount_for_fraction(self, owner_id: int, address: str, token: str, fraction: Decimal) -> int:
        """floor(balance * fraction), e.g. 0.5 to sell half of a token balance."""
        fraction = Decimal(str(fraction))
        if fraction <= 0 or fraction > 1:
            raise InvalidOrderInput("fraction must be in (0, 1]")

        balance = self.balance_of(owner_id, address, token)
        if balance == 0:
            raise InvalidOrderInput(f"wallet {address} holds no {token}")
        numerator, denominator = fraction.as_integer_ratio()
        return balance * numerator // denominator
