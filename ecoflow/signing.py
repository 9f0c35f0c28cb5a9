# ecoflow/signing.py
from __future__ import annotations

import time
import hmac
import random
import hashlib
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ecoflow.errors import SigningError
from ecoflow.params import to_param_str

PARAM_ACCESS_KEY = "accessKey"
PARAM_NONCE = "nonce"
PARAM_TIMESTAMP = "timestamp"

HEADER_ACCESS_KEY = PARAM_ACCESS_KEY
HEADER_NONCE = PARAM_NONCE
HEADER_TIMESTAMP = PARAM_TIMESTAMP
HEADER_SIGNATURE = "sign"

NONCE_UPPER = 999999


@dataclass(frozen=True)
class Signature:
    hash: str
    nonce: str
    timestamp: str


def new_nonce() -> str:
    return str(random.randrange(NONCE_UPPER))


def new_timestamp() -> str:
    # UTC epoch, миллисекунды
    return str(int(time.time() * 1000))


def build_payload(params: List[str], access_key: str, nonce: str, timestamp: str) -> str:
    # auth-поля добавляются в конец, без пересортировки
    return "&".join([
        *params,
        to_param_str(PARAM_ACCESS_KEY, access_key),
        to_param_str(PARAM_NONCE, nonce),
        to_param_str(PARAM_TIMESTAMP, timestamp),
    ])


def _hmac_sha256_hex(secret_key: str, payload: str) -> str:
    try:
        h = hmac.new(secret_key.encode("utf-8"), digestmod=hashlib.sha256)
        h.update(payload.encode("utf-8"))
    except (AttributeError, TypeError, ValueError) as e:
        raise SigningError(f"hash payload: {e}") from e
    return h.hexdigest()


def calc_signature(params: List[str],
                   access_key: str,
                   secret_key: str,
                   nonce: Optional[str] = None,
                   timestamp: Optional[str] = None) -> Signature:
    n = new_nonce() if nonce is None else nonce
    t = new_timestamp() if timestamp is None else timestamp
    payload = build_payload(params, access_key, n, t)
    return Signature(hash=_hmac_sha256_hex(secret_key, payload), nonce=n, timestamp=t)


def signature_headers(access_key: str, sig: Signature) -> Dict[str, str]:
    return {
        HEADER_ACCESS_KEY: access_key,
        HEADER_NONCE: sig.nonce,
        HEADER_TIMESTAMP: sig.timestamp,
        HEADER_SIGNATURE: sig.hash,
    }


class Signer:
    """
    Подписывает канонический список параметров ключами приложения.
    Источники nonce/timestamp подменяются в тестах.
    """

    def __init__(self,
                 access_key: str,
                 secret_key: str,
                 nonce_source: Callable[[], str] = new_nonce,
                 clock: Callable[[], str] = new_timestamp):
        self.access_key = access_key
        self._secret_key = secret_key
        self._nonce_source = nonce_source
        self._clock = clock

    def sign(self, params: List[str]) -> Signature:
        return calc_signature(params, self.access_key, self._secret_key,
                              nonce=self._nonce_source(), timestamp=self._clock())
