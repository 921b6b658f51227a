from __future__ import annotations

"""Asset custodian.

The custodian escrows the staked asset. The engine only uses the
AssetCustodian protocol:

  transfer_in(from, amount)  moves exactly `amount` into custody or raises
  transfer_out(to, amount)   pays min(amount, balance()) and returns the paid amount
  balance()                  custody holdings of the staked asset

InMemoryCustodian is the reference implementation: a small token ledger of
holder wallets plus the custody account, able to hold foreign tokens that
were sent to it by mistake.
"""

import threading
from typing import Any, Dict, List, Protocol, Set, Tuple

from lockstake.ledger.fixed_point import checked_add
from lockstake.runtime.errors import InsufficientBalance, InvalidInput

Json = Dict[str, Any]
BalanceKey = Tuple[str, str, str]  # (scope, holder, token); scope is "wallet" or "custody"


class AssetCustodian(Protocol):
    asset_symbol: str

    def transfer_in(self, sender: str, amount: int) -> None: ...

    def transfer_out(self, recipient: str, amount: int) -> int: ...

    def balance(self) -> int: ...


def _require_amount(amount: Any) -> int:
    if isinstance(amount, bool):
        raise InvalidInput("invalid_input", "amount_not_int", {"amount": amount})
    try:
        a = int(amount)
    except (TypeError, ValueError):
        raise InvalidInput("invalid_input", "amount_not_int", {"amount": amount}) from None
    if a <= 0:
        raise InvalidInput("invalid_input", "amount_must_be_positive", {"amount": a})
    return a


def _require_holder(holder: Any) -> str:
    h = str(holder or "").strip()
    if not h:
        raise InvalidInput("invalid_input", "missing_account", {})
    return h


class InMemoryCustodian:
    def __init__(self, *, asset_symbol: str) -> None:
        sym = str(asset_symbol or "").strip()
        if not sym:
            raise ValueError("asset_symbol must be a non-empty string")
        self.asset_symbol = sym
        self._lock = threading.RLock()
        self._wallets: Dict[str, Dict[str, int]] = {}
        self._custody: Dict[str, int] = {}
        self._changed: Set[BalanceKey] = set()

    # ---- wallet helpers ----

    def _wallet(self, holder: str) -> Dict[str, int]:
        w = self._wallets.get(holder)
        if w is None:
            w = {}
            self._wallets[holder] = w
        return w

    def wallet_balance(self, holder: str, token: str | None = None) -> int:
        tok = token or self.asset_symbol
        with self._lock:
            return int(self._wallets.get(holder, {}).get(tok, 0))

    def custody_balance(self, token: str) -> int:
        with self._lock:
            return int(self._custody.get(token, 0))

    def mint(self, holder: str, amount: int, *, token: str | None = None) -> None:
        """Credit a wallet out of thin air (genesis allocations, dev faucet, tests)."""
        h = _require_holder(holder)
        a = _require_amount(amount)
        tok = token or self.asset_symbol
        with self._lock:
            w = self._wallet(h)
            w[tok] = checked_add(w.get(tok, 0), a)
            self._changed.add(("wallet", h, tok))

    # ---- AssetCustodian ----

    def balance(self) -> int:
        return self.custody_balance(self.asset_symbol)

    def transfer_in(self, sender: str, amount: int) -> None:
        self.receive(sender, amount, token=self.asset_symbol)

    def transfer_out(self, recipient: str, amount: int) -> int:
        return self.release(recipient, amount, token=self.asset_symbol)

    # ---- token-generic moves ----

    def receive(self, sender: str, amount: int, *, token: str) -> None:
        h = _require_holder(sender)
        a = _require_amount(amount)
        with self._lock:
            have = int(self._wallets.get(h, {}).get(token, 0))
            if have < a:
                raise InsufficientBalance(
                    "invalid_input",
                    "insufficient_wallet_balance",
                    {"account": h, "token": token, "have": have, "need": a},
                )
            self._wallet(h)[token] = have - a
            self._custody[token] = checked_add(self._custody.get(token, 0), a)
            self._changed.update({("wallet", h, token), ("custody", "", token)})

    def release(self, recipient: str, amount: int, *, token: str) -> int:
        """Pay out at most `amount`; a short custody balance pays what is held."""
        h = _require_holder(recipient)
        want = int(amount)
        if want <= 0:
            return 0
        with self._lock:
            held = int(self._custody.get(token, 0))
            pay = want if want <= held else held
            if pay <= 0:
                return 0
            self._custody[token] = held - pay
            w = self._wallet(h)
            w[token] = checked_add(w.get(token, 0), pay)
            self._changed.update({("wallet", h, token), ("custody", "", token)})
            return pay

    def burn(self, holder: str, amount: int, *, token: str | None = None) -> None:
        """Remove `amount` from a wallet (reverses a mint)."""
        h = _require_holder(holder)
        a = _require_amount(amount)
        tok = token or self.asset_symbol
        with self._lock:
            have = int(self._wallets.get(h, {}).get(tok, 0))
            if have < a:
                raise InsufficientBalance(
                    "invalid_input",
                    "insufficient_wallet_balance",
                    {"account": h, "token": tok, "have": have, "need": a},
                )
            w = self._wallet(h)
            if have == a:
                # Undo of a first mint leaves no empty entries behind.
                w.pop(tok, None)
                if not w:
                    del self._wallets[h]
            else:
                w[tok] = have - a
            self._changed.add(("wallet", h, tok))

    # ---- change tracking ----

    def changed_balances(self) -> List[Tuple[str, str, str, int]]:
        """(scope, holder, token, amount) for every balance touched since clear_changes()."""
        with self._lock:
            out = []
            for scope, holder, token in sorted(self._changed):
                if scope == "custody":
                    amt = int(self._custody.get(token, 0))
                else:
                    amt = int(self._wallets.get(holder, {}).get(token, 0))
                out.append((scope, holder, token, amt))
            return out

    def clear_changes(self) -> None:
        with self._lock:
            self._changed.clear()

    # ---- JSON interop ----

    def to_dict(self) -> Json:
        with self._lock:
            return {
                "asset_symbol": self.asset_symbol,
                "custody": {k: int(v) for k, v in sorted(self._custody.items())},
                "wallets": {
                    h: {k: int(v) for k, v in sorted(w.items())} for h, w in sorted(self._wallets.items())
                },
            }

    @classmethod
    def from_dict(cls, d: Any) -> "InMemoryCustodian":
        if not isinstance(d, dict):
            raise ValueError("custodian snapshot must be a JSON object")
        c = cls(asset_symbol=str(d.get("asset_symbol") or ""))
        custody = d.get("custody") or {}
        wallets = d.get("wallets") or {}
        if not isinstance(custody, dict) or not isinstance(wallets, dict):
            raise ValueError("custodian snapshot has malformed custody/wallets")
        c._custody = {str(k): int(v) for k, v in custody.items()}
        c._wallets = {
            str(h): {str(k): int(v) for k, v in (w or {}).items()} for h, w in wallets.items()
        }
        return c


__all__ = ["AssetCustodian", "InMemoryCustodian"]
