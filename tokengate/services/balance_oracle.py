# tokengate/services/balance_oracle.py
from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import aiohttp

from ..utils.config import Config
from ..utils.errors import OracleError, ValidationError

logger = logging.getLogger(__name__)

# Solana addresses: base58 alphabet (no 0, O, I, l), 32-44 characters
_BASE58_ADDRESS = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


def is_valid_address(address: Optional[str]) -> bool:
    return bool(address) and bool(_BASE58_ADDRESS.match(address))


def validate_address(address: Optional[str], label: str = "wallet address") -> str:
    if not is_valid_address(address):
        raise ValidationError(f"Invalid {label} format")
    return address


class RateLimiter:
    """
    Enforces a minimum spacing between outbound calls.

    Holds only the time of the last call; it is not a token bucket. Waiters are
    serialized so concurrent callers cannot interleave inside the interval.
    """

    def __init__(
        self,
        min_interval_ms: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.min_interval = max(0, min_interval_ms) / 1000.0
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None
        self._lock = asyncio.Lock()

    async def wait_turn(self) -> None:
        async with self._lock:
            if self._last_call is not None:
                elapsed = self._clock() - self._last_call
                if elapsed < self.min_interval:
                    await self._sleep(self.min_interval - elapsed)
            self._last_call = self._clock()


@dataclass(frozen=True)
class AssetHolding:
    """One item of a getAssetsByOwner response"""
    asset_id: str
    quantity: Optional[float]  # token_info.balance, absent for NFTs
    collections: Tuple[str, ...] = ()

    def matches(self, mint: str) -> bool:
        return self.asset_id == mint or mint in self.collections

    @property
    def balance(self) -> float:
        # No quantity means a unit holding (NFT or collection member).
        # TODO: revisit once collection-gated groups need per-item counts instead of 1.
        return self.quantity if self.quantity is not None else 1.0

    @classmethod
    def from_item(cls, item: Any) -> "AssetHolding":
        if not isinstance(item, dict) or not item.get("id"):
            raise OracleError("Malformed asset entry in getAssetsByOwner response")

        quantity = None
        token_info = _mapping(item.get("token_info"), "token_info")
        if token_info.get("balance") is not None:
            quantity = _to_float(token_info["balance"], "token_info.balance")

        collections = tuple(
            g.get("group_value")
            for g in _sequence(item.get("grouping"), "grouping")
            if isinstance(g, dict) and g.get("group_key") == "collection" and g.get("group_value")
        )
        return cls(asset_id=item["id"], quantity=quantity, collections=collections)


@dataclass(frozen=True)
class TokenAccountAmount:
    """One entry of a getTokenAccountsByOwner (jsonParsed) response"""
    mint: Optional[str]
    ui_amount: float

    @classmethod
    def from_entry(cls, entry: Any) -> "TokenAccountAmount":
        try:
            info = entry["account"]["data"]["parsed"]["info"]
        except (KeyError, TypeError):
            raise OracleError("Malformed token account in getTokenAccountsByOwner response")

        info = _mapping(info, "token account info")
        token_amount = _mapping(info.get("tokenAmount"), "tokenAmount")
        if token_amount.get("uiAmount") is not None:
            amount = _to_float(token_amount["uiAmount"], "uiAmount")
        elif token_amount.get("uiAmountString"):
            amount = _to_float(token_amount["uiAmountString"], "uiAmountString")
        else:
            amount = 0.0
        return cls(mint=info.get("mint"), ui_amount=amount)


def _mapping(value: Any, field_name: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise OracleError(f"Unexpected {field_name} in response: {type(value).__name__}")
    return value


def _sequence(value: Any, field_name: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise OracleError(f"Unexpected {field_name} in response: {type(value).__name__}")
    return value


def _to_float(value: Any, field_name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise OracleError(f"Unparseable {field_name}: {value!r}")


@dataclass
class BalanceResult:
    balance: float
    ok: bool
    error: Optional[str] = None
    wallet_address: Optional[str] = None
    token_mint: Optional[str] = None


class BalanceOracle:
    """
    Resolves a wallet's holding of one token through the Helius JSON-RPC API.
    Docs: https://docs.helius.dev/compression-and-das-api/digital-asset-standard-das-api

    resolve() never raises; failures come back as BalanceResult(ok=False).
    """

    ASSET_PAGE_LIMIT = 1000

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        rate_limiter: Optional[RateLimiter] = None,
        rate_limit_ms: int = 100,
        timeout_seconds: float = 30,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key.strip()
        self.rate_limiter = rate_limiter or RateLimiter(rate_limit_ms)
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_config(cls, config: Config) -> "BalanceOracle":
        return cls(
            config.helius_rpc_url,
            config.helius_api_key,
            rate_limit_ms=config.rate_limit_ms,
            timeout_seconds=config.oracle_timeout_seconds,
        )

    async def resolve(self, wallet_address: str, token_mint: str) -> BalanceResult:
        try:
            validate_address(wallet_address, "wallet address")
            validate_address(token_mint, "token mint address")
        except ValidationError as e:
            return BalanceResult(0.0, False, str(e), wallet_address, token_mint)

        try:
            balance = await self._resolve_balance(wallet_address, token_mint)
        except OracleError as e:
            logger.warning(f"Balance lookup failed for {wallet_address} / {token_mint}: {e}")
            return BalanceResult(0.0, False, str(e), wallet_address, token_mint)

        logger.debug(f"Balance of {token_mint} for {wallet_address}: {balance}")
        return BalanceResult(balance, True, None, wallet_address, token_mint)

    async def _resolve_balance(self, wallet_address: str, token_mint: str) -> float:
        for asset in await self.get_assets_by_owner(wallet_address):
            if asset.matches(token_mint):
                return asset.balance

        accounts = await self.get_token_accounts(wallet_address, token_mint)
        return sum(account.ui_amount for account in accounts)

    async def get_assets_by_owner(self, wallet_address: str) -> List[AssetHolding]:
        result = await self._rpc(
            "getAssetsByOwner",
            {"ownerAddress": wallet_address, "page": 1, "limit": self.ASSET_PAGE_LIMIT},
            request_id="tokengate-assets",
        )
        items = _sequence(result.get("items"), "getAssetsByOwner items")
        return [AssetHolding.from_item(item) for item in items]

    async def get_token_accounts(self, wallet_address: str, token_mint: str) -> List[TokenAccountAmount]:
        result = await self._rpc(
            "getTokenAccountsByOwner",
            [wallet_address, {"mint": token_mint}, {"encoding": "jsonParsed"}],
            request_id="tokengate-fungible",
        )
        entries = _sequence(result.get("value"), "getTokenAccountsByOwner value")
        return [TokenAccountAmount.from_entry(entry) for entry in entries]

    async def _rpc(self, method: str, params: Any, *, request_id: str) -> Dict[str, Any]:
        """POST one JSON-RPC call; every call waits its turn on the rate limiter."""
        await self.rate_limiter.wait_turn()

        payload = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    f"{self.base_url}/",
                    params={"api-key": self.api_key},
                    json=payload,
                    headers={"Content-Type": "application/json"},
                ) as resp:
                    resp.raise_for_status()
                    data = await resp.json(content_type=None)
        except asyncio.TimeoutError:
            logger.debug(f"{method} exceeded {self.timeout_seconds}s")
            raise OracleError("timeout")
        except aiohttp.ClientError as e:
            raise OracleError(f"{method} request failed: {e}")
        except ValueError as e:
            raise OracleError(f"{method} returned invalid JSON: {e}")

        if not isinstance(data, dict):
            raise OracleError(f"{method} returned an unexpected payload")

        error = data.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise OracleError(f"Helius API error: {message or 'unknown error'}")

        result = data.get("result")
        if result is not None and not isinstance(result, dict):
            raise OracleError(f"{method} returned an unexpected result")
        return result or {}
