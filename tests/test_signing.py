import hashlib
import hmac
import time
import types

import pytest

from ecoflow.errors import SigningError
from ecoflow.signing import (
    NONCE_UPPER,
    Signature,
    Signer,
    build_payload,
    calc_signature,
    new_nonce,
    new_timestamp,
    signature_headers,
)

ACCESS_KEY = "Fp4SvIprYSDPXtYJidEtUAd1o"
SECRET_KEY = "WIbFEKre0s6sLnh4ei7SPUeYnptHG6V"
NONCE = "345164"
TIMESTAMP = "1671171709428"
PARAMS = ["params.cmdSet=11", "params.eps=0", "params.id=24", "sn=123456789"]
# HMAC-SHA256 of the payload below, computed outside of this package
ORACLE_SIGN = "07c13b65e037faf3b153d51613638fa80003c4c38d2407379a7f52851af1473e"


def test_build_payload_appends_auth_fields_unsorted():
    payload = build_payload(["z=1", "a=2"], "ak", "7", "100")
    assert payload == "z=1&a=2&accessKey=ak&nonce=7&timestamp=100"


def test_build_payload_without_params():
    assert build_payload([], "ak", "1", "2") == "accessKey=ak&nonce=1&timestamp=2"


def test_calc_signature_oracle():
    sig = calc_signature(PARAMS, ACCESS_KEY, SECRET_KEY, nonce=NONCE, timestamp=TIMESTAMP)
    assert sig == Signature(hash=ORACLE_SIGN, nonce=NONCE, timestamp=TIMESTAMP)


def test_calc_signature_empty_params_oracle():
    sig = calc_signature([], "ak", "sk", nonce="1", timestamp="2")
    assert sig.hash == "6c2c0c46fb200a6b0d2fc6471163e0aa19d8746e6939837b1fbc5a39bcaca947"


def test_calc_signature_matches_stdlib_hmac():
    sig = calc_signature(["a=1"], "ak", "sk", nonce="5", timestamp="6")
    expected = hmac.new(b"sk", b"a=1&accessKey=ak&nonce=5&timestamp=6", hashlib.sha256).hexdigest()
    assert sig.hash == expected


def test_calc_signature_deterministic():
    a = calc_signature(PARAMS, ACCESS_KEY, SECRET_KEY, nonce=NONCE, timestamp=TIMESTAMP)
    b = calc_signature(PARAMS, ACCESS_KEY, SECRET_KEY, nonce=NONCE, timestamp=TIMESTAMP)
    assert a == b
    c = calc_signature(PARAMS, ACCESS_KEY, SECRET_KEY, nonce="345165", timestamp=TIMESTAMP)
    assert c.hash != a.hash


def test_calc_signature_does_not_mutate_params():
    params = list(PARAMS)
    calc_signature(params, ACCESS_KEY, SECRET_KEY, nonce=NONCE, timestamp=TIMESTAMP)
    assert params == PARAMS


def test_calc_signature_generates_nonce_and_timestamp():
    sig = calc_signature(PARAMS, ACCESS_KEY, SECRET_KEY)
    assert sig.nonce.isdigit()
    assert sig.timestamp.isdigit()
    assert len(sig.hash) == 64
    assert sig.hash == sig.hash.lower()


def test_calc_signature_bad_secret():
    with pytest.raises(SigningError, match="^hash payload: "):
        calc_signature(PARAMS, ACCESS_KEY, None, nonce=NONCE, timestamp=TIMESTAMP)


def test_new_nonce_range(monkeypatch):
    seen = []
    monkeypatch.setattr("ecoflow.signing.random.randrange", lambda n: seen.append(n) or n - 1)
    assert new_nonce() == "999998"
    assert seen == [NONCE_UPPER]
    monkeypatch.undo()
    for _ in range(200):
        assert 0 <= int(new_nonce()) < NONCE_UPPER


def test_new_timestamp_is_epoch_millis(monkeypatch):
    monkeypatch.setattr("ecoflow.signing.time", types.SimpleNamespace(time=lambda: 1671171709.4281))
    assert new_timestamp() == TIMESTAMP


def test_new_timestamp_close_to_now():
    assert abs(int(new_timestamp()) - int(time.time() * 1000)) < 5000


def test_signature_headers():
    sig = Signature(hash=ORACLE_SIGN, nonce=NONCE, timestamp=TIMESTAMP)
    assert signature_headers(ACCESS_KEY, sig) == {
        "accessKey": ACCESS_KEY,
        "nonce": NONCE,
        "timestamp": TIMESTAMP,
        "sign": ORACLE_SIGN,
    }


def test_signer_uses_injected_sources():
    signer = Signer(ACCESS_KEY, SECRET_KEY, nonce_source=lambda: NONCE, clock=lambda: TIMESTAMP)
    assert signer.sign(PARAMS).hash == ORACLE_SIGN
