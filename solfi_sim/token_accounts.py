"""Token account layouts for SPL Token and Token-2022, plus synthesis helpers.

Accounts built here are written straight into the execution environment, so
the bytes must match the on-chain ``Pack`` layout field for field:

    offset  size  field
         0    32  mint
        32    32  owner
        64     8  amount (u64 LE)
        72     4  delegate option tag
        76    32  delegate
       108     1  state (0 uninitialized, 1 initialized, 2 frozen)
       109     4  is_native option tag
       113     8  is_native (rent-exempt reserve)
       121     8  delegated amount
       129     4  close authority option tag
       133    32  close authority

Token-2022 shares the base layout. Extension-bearing Token-2022 accounts
append an account-type byte at offset 165 followed by TLV data; only the
base fields are decoded.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional

from construct import Bytes, ConstructError, Int8ul, Int32ul, Int64ul, Struct
from solders.account import Account
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID

from .config import WSOL_MINT
from .exceptions import DecodeError

TOKEN_ACCOUNT_LAYOUT = Struct(
    "mint" / Bytes(32),
    "owner" / Bytes(32),
    "amount" / Int64ul,
    "delegate_option" / Int32ul,
    "delegate" / Bytes(32),
    "state" / Int8ul,
    "is_native_option" / Int32ul,
    "is_native" / Int64ul,
    "delegated_amount" / Int64ul,
    "close_authority_option" / Int32ul,
    "close_authority" / Bytes(32),
)

MINT_LAYOUT = Struct(
    "mint_authority_option" / Int32ul,
    "mint_authority" / Bytes(32),
    "supply" / Int64ul,
    "decimals" / Int8ul,
    "is_initialized" / Int8ul,
    "freeze_authority_option" / Int32ul,
    "freeze_authority" / Bytes(32),
)

ACCOUNT_LEN = TOKEN_ACCOUNT_LAYOUT.sizeof()  # 165
MINT_LEN = MINT_LAYOUT.sizeof()  # 82
MULTISIG_LEN = 355

# Token-2022 account-type discriminator stored right after the base account
ACCOUNT_TYPE_OFFSET = ACCOUNT_LEN
ACCOUNT_TYPE_MINT = 1
ACCOUNT_TYPE_ACCOUNT = 2

# Deterministic rent model (solana_program::rent::Rent::default)
ACCOUNT_STORAGE_OVERHEAD = 128
LAMPORTS_PER_BYTE_YEAR = 3480
EXEMPTION_THRESHOLD = 2

RENT_EXEMPT_RENT_EPOCH = 2**64 - 1

_ZERO_KEY = bytes(32)


class AccountState(IntEnum):
    UNINITIALIZED = 0
    INITIALIZED = 1
    FROZEN = 2


@dataclass(frozen=True)
class TokenLayout:
    """Fixed-size layout descriptor for one token-account binary standard."""

    name: str
    program_id: Pubkey
    account_len: int = ACCOUNT_LEN
    mint_len: int = MINT_LEN
    allows_extensions: bool = False


class TokenStandard(Enum):
    LEGACY = TokenLayout("spl-token", TOKEN_PROGRAM_ID)
    EXTENDED = TokenLayout("spl-token-2022", TOKEN_2022_PROGRAM_ID, allows_extensions=True)

    @property
    def layout(self) -> TokenLayout:
        return self.value

    @property
    def program_id(self) -> Pubkey:
        return self.value.program_id

    @classmethod
    def from_program_id(cls, program_id: Pubkey) -> "TokenStandard":
        for standard in cls:
            if standard.program_id == program_id:
                return standard
        raise DecodeError(f"unsupported token program: {program_id}")


@dataclass(frozen=True)
class TokenAccount:
    mint: Pubkey
    owner: Pubkey
    amount: int
    state: AccountState = AccountState.INITIALIZED
    delegate: Optional[Pubkey] = None
    is_native: Optional[int] = None
    delegated_amount: int = 0
    close_authority: Optional[Pubkey] = None


@dataclass(frozen=True)
class MintInfo:
    decimals: int
    supply: int
    mint_authority: Optional[Pubkey] = None
    freeze_authority: Optional[Pubkey] = None


def rent_exempt_minimum(data_len: int) -> int:
    return (ACCOUNT_STORAGE_OVERHEAD + data_len) * LAMPORTS_PER_BYTE_YEAR * EXEMPTION_THRESHOLD


def _option_bytes(value: Optional[Pubkey]) -> tuple:
    if value is None:
        return 0, _ZERO_KEY
    return 1, bytes(value)


def _read_option(tag: int, raw: bytes, field: str) -> Optional[Pubkey]:
    if tag == 0:
        return None
    if tag == 1:
        return Pubkey.from_bytes(raw)
    raise DecodeError(f"invalid option tag {tag} for {field}")


def encode_token_account(account: TokenAccount) -> bytes:
    delegate_option, delegate = _option_bytes(account.delegate)
    close_option, close_authority = _option_bytes(account.close_authority)
    return TOKEN_ACCOUNT_LAYOUT.build(
        dict(
            mint=bytes(account.mint),
            owner=bytes(account.owner),
            amount=account.amount,
            delegate_option=delegate_option,
            delegate=delegate,
            state=int(account.state),
            is_native_option=0 if account.is_native is None else 1,
            is_native=account.is_native or 0,
            delegated_amount=account.delegated_amount,
            close_authority_option=close_option,
            close_authority=close_authority,
        )
    )


def _check_length(data: bytes, base_len: int, account_type: int, layout: TokenLayout, what: str) -> None:
    if len(data) == base_len:
        return
    if (
        layout.allows_extensions
        and len(data) > ACCOUNT_TYPE_OFFSET
        and len(data) != MULTISIG_LEN
        and data[ACCOUNT_TYPE_OFFSET] == account_type
    ):
        return
    raise DecodeError(f"{what} data is {len(data)} bytes, not a {layout.name} {what}")


def decode_token_account(data: bytes, standard: TokenStandard = TokenStandard.LEGACY) -> TokenAccount:
    """Decode a token account, rejecting wrong lengths and uninitialized state."""
    layout = standard.layout
    _check_length(data, layout.account_len, ACCOUNT_TYPE_ACCOUNT, layout, "token account")
    try:
        parsed = TOKEN_ACCOUNT_LAYOUT.parse(data[: layout.account_len])
    except ConstructError as exc:
        raise DecodeError(f"malformed {layout.name} token account: {exc}") from exc

    if parsed.state not in (AccountState.INITIALIZED, AccountState.FROZEN):
        raise DecodeError(f"{layout.name} token account is not initialized (state={parsed.state})")
    if parsed.is_native_option not in (0, 1):
        raise DecodeError(f"invalid option tag {parsed.is_native_option} for is_native")

    return TokenAccount(
        mint=Pubkey.from_bytes(parsed.mint),
        owner=Pubkey.from_bytes(parsed.owner),
        amount=parsed.amount,
        state=AccountState(parsed.state),
        delegate=_read_option(parsed.delegate_option, parsed.delegate, "delegate"),
        is_native=parsed.is_native if parsed.is_native_option else None,
        delegated_amount=parsed.delegated_amount,
        close_authority=_read_option(
            parsed.close_authority_option, parsed.close_authority, "close_authority"
        ),
    )


def decode_mint(data: bytes, standard: TokenStandard = TokenStandard.LEGACY) -> MintInfo:
    layout = standard.layout
    _check_length(data, layout.mint_len, ACCOUNT_TYPE_MINT, layout, "mint")
    try:
        parsed = MINT_LAYOUT.parse(data[: layout.mint_len])
    except ConstructError as exc:
        raise DecodeError(f"malformed {layout.name} mint: {exc}") from exc
    if parsed.is_initialized != 1:
        raise DecodeError(f"{layout.name} mint is not initialized")
    return MintInfo(
        decimals=parsed.decimals,
        supply=parsed.supply,
        mint_authority=_read_option(
            parsed.mint_authority_option, parsed.mint_authority, "mint_authority"
        ),
        freeze_authority=_read_option(
            parsed.freeze_authority_option, parsed.freeze_authority, "freeze_authority"
        ),
    )


def _to_ledger_account(data: bytes, standard: TokenStandard) -> Account:
    return Account(
        lamports=rent_exempt_minimum(len(data)),
        data=data,
        owner=standard.program_id,
        executable=False,
        rent_epoch=RENT_EXEMPT_RENT_EPOCH,
    )


def make_token_account(
    mint: Pubkey,
    owner: Pubkey,
    amount: int = 0,
    standard: TokenStandard = TokenStandard.LEGACY,
) -> Account:
    """Build an initialized, rent-exempt token account holding ``amount`` atomic units."""
    data = encode_token_account(TokenAccount(mint=mint, owner=owner, amount=amount))
    return _to_ledger_account(data, standard)


def make_native_wrapper_account(owner: Pubkey) -> Account:
    """Empty WSOL account flagged native so ``sync_native`` picks up transferred lamports."""
    data = encode_token_account(TokenAccount(mint=WSOL_MINT, owner=owner, amount=0, is_native=0))
    return _to_ledger_account(data, TokenStandard.LEGACY)
