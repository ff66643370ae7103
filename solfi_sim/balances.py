"""Read token balances, mints and decimals out of an execution environment."""
from __future__ import annotations

from typing import Optional

from solders.account import Account
from solders.pubkey import Pubkey

from .exceptions import DecodeError
from .svm import ExecutionEnvironment
from .token_accounts import TokenAccount, TokenStandard, decode_mint, decode_token_account


def _require_account(env: ExecutionEnvironment, address: Pubkey, what: str) -> Account:
    account = env.get_account(address)
    if account is None:
        raise DecodeError(f"missing {what} {address}")
    return account


def decode_token_account_any(data: bytes, address: Pubkey) -> TokenAccount:
    """Try the legacy layout, then the extended one."""
    errors = []
    for standard in (TokenStandard.LEGACY, TokenStandard.EXTENDED):
        try:
            return decode_token_account(data, standard)
        except DecodeError as exc:
            errors.append(str(exc))
    raise DecodeError(f"could not decode token account {address}: {'; '.join(errors)}")


def read_token_account(
    env: ExecutionEnvironment, address: Pubkey, standard: Optional[TokenStandard] = None
) -> TokenAccount:
    data = bytes(_require_account(env, address, "token account").data)
    if standard is None:
        return decode_token_account_any(data, address)
    try:
        return decode_token_account(data, standard)
    except DecodeError as exc:
        raise DecodeError(f"token account {address}: {exc}") from exc


def token_balance(
    env: ExecutionEnvironment, address: Pubkey, standard: Optional[TokenStandard] = None
) -> int:
    return read_token_account(env, address, standard).amount


def read_token_account_mint(env: ExecutionEnvironment, address: Pubkey) -> Pubkey:
    return read_token_account(env, address).mint


def read_mint_decimals(env: ExecutionEnvironment, mint: Pubkey, standard: TokenStandard) -> int:
    data = bytes(_require_account(env, mint, "mint account").data)
    try:
        return decode_mint(data, standard).decimals
    except DecodeError as exc:
        raise DecodeError(f"mint {mint}: {exc}") from exc


def account_token_standard(env: ExecutionEnvironment, address: Pubkey) -> TokenStandard:
    owner = _require_account(env, address, "account").owner
    try:
        return TokenStandard.from_program_id(owner)
    except DecodeError as exc:
        raise DecodeError(f"account {address}: {exc}") from exc
