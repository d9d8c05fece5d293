"""Signing helpers for the EPay payment gateway.

EPay (易支付) aggregates Alipay, WeChat Pay and QQ wallet behind a single
merchant key.  Every request and every asynchronous notification carries a
``sign`` computed as follows:

1. Drop the ``sign`` and ``sign_type`` fields and every field with an empty
   value.
2. Sort the remaining parameters by name (ASCII order).
3. Join them as ``key=value`` pairs with ``&``.  Values are **not**
   URL-encoded.
4. Append the merchant key directly, without a separator.
5. Compute the MD5 digest and output the hex string in lowercase.

Verification recomputes the signature and compares it case-insensitively.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Mapping
from urllib.parse import urlencode

SIGN_KEY = "sign"
SIGN_TYPE_KEY = "sign_type"
RESERVED_SIGN_KEYS = frozenset({SIGN_KEY, SIGN_TYPE_KEY})

SIGN_TYPE_MD5 = "MD5"


def filter_params(params: Mapping[str, str]) -> dict[str, str]:
    """Return a copy of ``params`` without empty values or reserved keys."""
    return {
        k: v for k, v in params.items() if v != "" and k not in RESERVED_SIGN_KEYS
    }


def canonical_query(params: Mapping[str, str]) -> str:
    """Join ``params`` as ``a=1&b=2`` in key order, values left verbatim."""
    return "&".join(f"{k}={params[k]}" for k in sorted(params))


def urlencoded_query(params: Mapping[str, str]) -> str:
    """Same ordering as :func:`canonical_query` but with encoded values.

    Used for query strings and form bodies on the wire, never for signing.
    """
    return urlencode([(k, params[k]) for k in sorted(params)])


class Signer:
    """Produce and check signatures with a fixed merchant key.

    Parameters
    ----------
    key:
        The merchant key issued by the gateway.  It is only ever appended to
        the canonical query locally and never leaves this object.
    algorithm:
        Any fixed-length digest accepted by :func:`hashlib.new`.  The gateway
        protocol uses MD5; other gateway generations may need something else.
    sign_type:
        Value written to ``sign_type`` by :meth:`sign_with_params`.
    """

    __slots__ = ("_key", "_algorithm", "_sign_type")

    def __init__(
        self, key: str, algorithm: str = "md5", sign_type: str = SIGN_TYPE_MD5
    ) -> None:
        # unknown names raise here; SHAKE digests need a length and are refused
        if hashlib.new(algorithm).digest_size == 0:
            raise ValueError(f"variable-length digest not supported: {algorithm}")
        self._key = key
        self._algorithm = algorithm
        self._sign_type = sign_type

    def __repr__(self) -> str:
        return f"Signer(algorithm={self._algorithm!r}, key=***)"

    @property
    def sign_type(self) -> str:
        return self._sign_type

    def sign(self, params: Mapping[str, str]) -> str:
        """Return the lowercase hex signature of ``params``."""
        raw = canonical_query(filter_params(params)) + self._key
        return hashlib.new(self._algorithm, raw.encode("utf-8")).hexdigest()

    def verify(self, params: Mapping[str, str], candidate: str | None) -> bool:
        """Return ``True`` when ``candidate`` matches the signature of ``params``.

        The comparison ignores case since the gateway may send uppercase hex.
        """
        expected = self.sign(params)
        received = (candidate or "").lower()
        return hmac.compare_digest(
            expected.encode("utf-8"), received.encode("utf-8")
        )

    def sign_with_params(self, params: Mapping[str, str]) -> dict[str, str]:
        """Return a new mapping with ``sign`` and ``sign_type`` attached."""
        signed = dict(params)
        signed[SIGN_KEY] = self.sign(params)
        signed[SIGN_TYPE_KEY] = self._sign_type
        return signed


__all__ = [
    "RESERVED_SIGN_KEYS",
    "SIGN_KEY",
    "SIGN_TYPE_KEY",
    "SIGN_TYPE_MD5",
    "Signer",
    "canonical_query",
    "filter_params",
    "urlencoded_query",
]
