"""
Transaction classifier: raw getTransaction payload to TransactionRecord.

Diffs the tracked address's pre/post lamport balance: a positive delta is a
receive, a negative one a send. The counterparty is the first other account
whose balance moved the opposite way. That first-match rule is a heuristic;
with fee payers or several parties changing balance it can name the wrong
account, so counterparty is best-effort metadata.
"""

from __future__ import annotations

from typing import Any

from sol_tracker.database.models import Direction, TransactionRecord
from sol_tracker.solana_listener.models import SignatureInfo
from sol_tracker.tracker_logging import get_logger

logger = get_logger(__name__)


def _get_account_keys(
    message: dict[str, Any],
    meta: dict[str, Any] | None = None,
) -> list[str]:
    """
    Resolve accountKeys to a list of base58 strings (handles json vs jsonParsed).
    For versioned transactions, appends meta.loadedAddresses (writable + readonly).
    """
    keys = message.get("accountKeys")
    if not keys or not isinstance(keys, list):
        return []
    out: list[str] = []
    for k in keys:
        if isinstance(k, str):
            out.append(k)
        elif isinstance(k, dict):
            out.append(str(k.get("pubkey", "")))
        else:
            out.append("")
    loaded = (meta or {}).get("loadedAddresses")
    if not isinstance(loaded, dict):
        loaded = {}
    # jsonParsed already lists loaded addresses inside accountKeys
    if keys and isinstance(keys[0], str):
        for role in ("writable", "readonly"):
            for addr in loaded.get(role) or []:
                out.append(addr if isinstance(addr, str) else "")
    return out


def _get_message_and_meta(raw: dict[str, Any]) -> tuple[dict[str, Any] | None, dict[str, Any] | None]:
    """Return (transaction.message, meta) from getTransaction-style result."""
    tx_obj = raw.get("transaction")
    if not tx_obj or not isinstance(tx_obj, dict):
        return None, None
    message = tx_obj.get("message")
    if not message or not isinstance(message, dict):
        return None, None
    meta = raw.get("meta")
    if not isinstance(meta, dict):
        meta = None
    return message, meta


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _first_counterparty(
    account_keys: list[str],
    pre: list[int],
    post: list[int],
    tracked_index: int,
    *,
    want_decrease: bool,
) -> str | None:
    for i, key in enumerate(account_keys):
        if i == tracked_index:
            continue
        delta = post[i] - pre[i]
        if (want_decrease and delta < 0) or (not want_decrease and delta > 0):
            return key or None
    return None


class TransactionClassifier:
    """Classifies transactions relative to one tracked wallet address."""

    def __init__(self, tracked_address: str) -> None:
        if not tracked_address or not tracked_address.strip():
            raise ValueError("tracked_address must be non-empty")
        self._address = tracked_address.strip()

    @property
    def tracked_address(self) -> str:
        return self._address

    def classify(self, signature: str, raw: dict[str, Any] | None) -> TransactionRecord | None:
        """
        Turn one getTransaction result into a record.

        Returns None for failed transactions (meta.err set) and for payloads
        missing meta, account keys or balance arrays. A transaction that does
        not move the tracked balance, or does not list the tracked address,
        comes back as direction=unknown with a zero amount.
        """
        if not isinstance(raw, dict):
            return None
        message, meta = _get_message_and_meta(raw)
        if message is None or meta is None:
            logger.debug("classifier_missing_structure", signature=signature)
            return None
        if meta.get("err") is not None:
            logger.debug("classifier_failed_transaction", signature=signature)
            return None

        account_keys = _get_account_keys(message, meta)
        pre = meta.get("preBalances")
        post = meta.get("postBalances")
        if (
            not account_keys
            or not isinstance(pre, list)
            or not isinstance(post, list)
            or len(pre) < len(account_keys)
            or len(post) < len(account_keys)
        ):
            logger.debug("classifier_missing_balances", signature=signature)
            return None
        pre = [_as_int(v) for v in pre]
        post = [_as_int(v) for v in post]

        block_time = raw.get("blockTime")
        base = dict(
            signature=signature,
            block_time=_as_int(block_time) if block_time is not None else None,
            slot=_as_int(raw.get("slot")),
            fee_lamports=_as_int(meta.get("fee")),
        )

        try:
            idx = account_keys.index(self._address)
        except ValueError:
            return TransactionRecord(direction=Direction.UNKNOWN, lamports=0, **base)

        diff = post[idx] - pre[idx]
        if diff > 0:
            return TransactionRecord(
                direction=Direction.RECEIVED,
                lamports=diff,
                counterparty=_first_counterparty(account_keys, pre, post, idx, want_decrease=True),
                **base,
            )
        if diff < 0:
            return TransactionRecord(
                direction=Direction.SENT,
                lamports=-diff,
                counterparty=_first_counterparty(account_keys, pre, post, idx, want_decrease=False),
                **base,
            )
        return TransactionRecord(direction=Direction.UNKNOWN, lamports=0, **base)

    def from_signature(self, info: SignatureInfo) -> TransactionRecord | None:
        """
        Placeholder record from a signature entry alone (no detail fetch).

        Used by the fast profile; marked detailed=False so a later full run
        fetches and replaces it. Failed entries return None.
        """
        if info.failed:
            return None
        return TransactionRecord(
            signature=info.signature,
            block_time=info.block_time,
            slot=info.slot,
            direction=Direction.UNKNOWN,
            lamports=0,
            detailed=False,
        )
