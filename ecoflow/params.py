# ecoflow/params.py
from __future__ import annotations

import re
import json
import functools
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlsplit, parse_qsl

import httpx
import requests

from ecoflow.errors import MissingBodyError, BodyReadError, JSONParseError

HEADER_CONTENT_TYPE = "content-type"
CONTENT_TYPE_JSON = "application/json"

# \uXXXX-escape без пары: json.loads пропускает, в UTF-8 не кодируется
_LONE_SURROGATE = re.compile("[\ud800-\udfff]")


def to_param_str(key: str, value: str) -> str:
    return f"{key}={value}"


def ascii_compare(a: str, b: str) -> int:
    """
    Побайтовое сравнение (UTF-8), без учёта локали.
    Если общий префикс совпадает — короче та строка, что меньше.
    """
    if a == b:
        return 0
    ab, bb = a.encode("utf-8"), b.encode("utf-8")
    for x, y in zip(ab, bb):
        if x < y:
            return -1
        if x > y:
            return 1
    return -1 if len(ab) < len(bb) else 1


def ascii_sorted(items: Iterable[str]) -> List[str]:
    return sorted(items, key=functools.cmp_to_key(ascii_compare))


def is_json_content_type(headers: Any) -> bool:
    ct = (headers or {}).get(HEADER_CONTENT_TYPE) or ""
    return CONTENT_TYPE_JSON in ct.lower()


# ---------- query mode ----------

def parse_query_params(url: str) -> List[str]:
    grouped: Dict[str, List[str]] = {}
    for k, v in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        grouped.setdefault(k, []).append(v)

    params = []
    for k, vs in grouped.items():
        if len(vs) > 1:
            vs = ascii_sorted(vs)
        params.append(to_param_str(k, ",".join(vs)))
    return ascii_sorted(params)


# ---------- JSON mode ----------

def valid_text(s: str) -> str:
    return _LONE_SURROGATE.sub("\ufffd", s)


def format_scalar(value: Any) -> str:
    # natural JSON text: true/false/null, integral floats without ".0"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    if isinstance(value, str):
        return valid_text(value)
    return str(value)


def _element_to_kvs(key: str, el: Any) -> List[str]:
    if isinstance(el, dict):
        return _object_to_kvs(key, el)
    if isinstance(el, list):
        return _list_to_kvs(key, el)
    return [to_param_str(key, format_scalar(el))]


def _list_to_kvs(key: str, items: List[Any]) -> List[str]:
    params: List[str] = []
    for i, el in enumerate(items):
        params.extend(_element_to_kvs(f"{key}[{i}]", el))
    return params


def _object_to_kvs(key: str, obj: Dict[str, Any]) -> List[str]:
    params: List[str] = []
    for k, v in obj.items():
        k = valid_text(k)
        inner = f"{key}.{k}" if key else k
        params.extend(_element_to_kvs(inner, v))
    return params


def flatten_json(obj: Dict[str, Any]) -> List[str]:
    """Разворачивает JSON-объект в пары `a.b[0].c=value` (порядок не гарантирован)."""
    return _object_to_kvs("", obj)


def read_body(body: Any) -> Optional[bytes]:
    """
    Читает тело запроса целиком: bytes | str | file-like | iterable чанков.
    None или пустое тело -> None.
    """
    if body is None:
        return None
    try:
        if isinstance(body, (bytes, bytearray)):
            raw = bytes(body)
        elif isinstance(body, str):
            raw = body.encode("utf-8", "surrogatepass")
        elif hasattr(body, "read"):
            data = body.read()
            raw = data.encode("utf-8", "surrogatepass") if isinstance(data, str) else bytes(data)
        else:
            raw = b"".join(c.encode("utf-8", "surrogatepass") if isinstance(c, str) else bytes(c) for c in body)
    except OSError as e:
        raise BodyReadError(f"read request body: {e}") from e
    return raw or None


def parse_json_params(body: Any) -> List[str]:
    raw = read_body(body)
    if raw is None:
        raise MissingBodyError("invalid request: must contain a non-nil body since content-type is JSON")

    try:
        parsed = json.loads(raw.decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        raise JSONParseError(f"parse JSON request body: {e}") from e

    if parsed is None:
        return []
    if not isinstance(parsed, dict):
        raise JSONParseError(
            f"parse JSON request body: expected a JSON object, got {type(parsed).__name__}"
        )
    return ascii_sorted(flatten_json(parsed))


# ---------- request dispatch ----------

def _requests_body(req: requests.PreparedRequest) -> Optional[bytes]:
    body = req.body
    raw = read_body(body)
    if raw is not None and not isinstance(body, (bytes, str)):
        # поток уже прочитан: возвращаем байты обратно, иначе уйдёт пустое тело
        req.body = raw
        req.headers.pop("Transfer-Encoding", None)
        req.prepare_content_length(raw)
    return raw


def _httpx_body(req: httpx.Request) -> Optional[bytes]:
    try:
        raw = req.read()
    except OSError as e:
        raise BodyReadError(f"read request body: {e}") from e
    return raw or None


def parse_params(req: Any) -> List[str]:
    """
    Канонический список параметров запроса для подписи.
    Поддерживаются requests.PreparedRequest и httpx.Request.
    """
    if isinstance(req, httpx.Request):
        url, headers, body_fn = str(req.url), req.headers, _httpx_body
    elif isinstance(req, requests.PreparedRequest):
        url, headers, body_fn = req.url or "", req.headers, _requests_body
    else:
        raise TypeError(f"unsupported request type: {type(req).__name__}")

    if is_json_content_type(headers):
        return parse_json_params(body_fn(req))
    return parse_query_params(url)
