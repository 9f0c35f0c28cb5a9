# ecoflow/http.py
from __future__ import annotations

import re
import logging
import posixpath
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx
import requests

from ecoflow.errors import ParamsError, SigningError, URLBuildError
from ecoflow.params import parse_params
from ecoflow.signing import Signer, new_nonce, new_timestamp, signature_headers

log = logging.getLogger(__name__)

_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*:")


@dataclass(frozen=True)
class ClientConfig:
    # Базовый URL OpenPlatform, напр. "https://api-e.ecoflow.com"
    host: str
    # Ключи, выданные приложению
    access_key: str = ""
    secret_key: str = ""

    def __repr__(self) -> str:
        return f"ClientConfig(host={self.host!r}, access_key={self.access_key!r}, secret_key='***')"


def new_session() -> requests.Session:
    """Сессия с пулом соединений (keep-alive), без встроенных ретраев."""
    s = requests.Session()
    adapter = requests.adapters.HTTPAdapter(pool_connections=10, pool_maxsize=10, max_retries=0)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


# ---------- URL ----------

def _parse_base(host: str):
    if not _SCHEME_RE.match(host):
        first_segment = host.split("/", 1)[0]
        if ":" in first_segment:
            raise ValueError("first path segment in URL cannot contain colon")
        raise ValueError("missing protocol scheme")
    parts = urlsplit(host)
    parts.port  # raises ValueError on a malformed port
    if not parts.netloc:
        raise ValueError("missing host")
    return parts


def join_url(host: str, path: str) -> str:
    """
    host + path: сегменты склеиваются, "."/".." и двойные слэши вычищаются,
    завершающий "/" у path и query сохраняются.
    """
    try:
        base = _parse_base(host)
    except ValueError as e:
        raise URLBuildError(f'build request url: parse "{host}": {e}') from e

    rel_path, _, rel_query = path.partition("?")
    segments = [s for s in f"{base.path}/{rel_path}".split("/") if s]
    if segments:
        joined = posixpath.normpath("/" + "/".join(segments))
    else:
        # пустой path не добавляет "/" к голому host
        joined = "/" if (base.path + rel_path).startswith("/") else ""
    if rel_path.endswith("/") and joined != "/":
        joined += "/"

    query = "&".join(q for q in (base.query, rel_query) if q)
    return urlunsplit((base.scheme, base.netloc, joined, query, base.fragment))


def add_header(headers: Any, name: str, value: str) -> None:
    # "добавить", а не заменить: повтор поля == значения через запятую
    current = headers.get(name)
    headers[name] = value if current is None else f"{current}, {value}"


# ---------- client ----------

class Client:
    """
    HTTP-клиент EcoFlow OpenPlatform: строит URL от host из ClientConfig
    и подписывает каждый запрос (accessKey/nonce/timestamp/sign).

    transport: requests.Session (по умолчанию), httpx.Client или любой
    объект с методом send(request, **kwargs).
    """

    def __init__(self,
                 conf: ClientConfig,
                 transport: Any = None,
                 nonce_source: Callable[[], str] = new_nonce,
                 clock: Callable[[], str] = new_timestamp):
        self.conf = conf
        self._owns_transport = transport is None
        self._transport = transport if transport is not None else new_session()
        self._signer = Signer(conf.access_key, conf.secret_key, nonce_source, clock)

    @property
    def transport(self) -> Any:
        return self._transport

    def new_request(self,
                    method: str,
                    path: str,
                    data: Any = None,
                    json: Any = None,
                    params: Optional[Dict[str, Any]] = None,
                    headers: Optional[Dict[str, str]] = None):
        url = join_url(self.conf.host, path)
        if isinstance(self._transport, httpx.Client):
            body_kw = {"data": data} if isinstance(data, dict) else {"content": data}
            return self._transport.build_request(method.upper(), url, json=json,
                                                 params=params, headers=headers, **body_kw)
        return requests.Request(method=method.upper(), url=url, data=data, json=json,
                                params=params, headers=headers)

    def _prepare(self, req: Any) -> Any:
        if isinstance(req, requests.Request):
            if isinstance(self._transport, requests.Session):
                return self._transport.prepare_request(req)
            return req.prepare()
        return req

    def _check_transport(self, req: Any) -> None:
        if isinstance(self._transport, httpx.Client) and not isinstance(req, httpx.Request):
            raise TypeError("httpx transport requires an httpx.Request")
        if isinstance(self._transport, requests.Session) and not isinstance(req, requests.PreparedRequest):
            raise TypeError("requests transport requires a requests.Request or PreparedRequest")

    def do(self, req: Any, **send_kwargs: Any):
        """
        Подписывает запрос и отправляет через transport.send().
        Ошибки параметров/подписи прерывают отправку; ошибки транспорта
        пробрасываются как есть.
        """
        req = self._prepare(req)
        self._check_transport(req)

        try:
            params = parse_params(req)
        except ParamsError as e:
            raise type(e)(f"parse request parameters: {e}") from e

        try:
            sig = self._signer.sign(params)
        except SigningError as e:
            raise SigningError(f"calculate signature: {e}") from e

        for name, value in signature_headers(self.conf.access_key, sig).items():
            add_header(req.headers, name, value)

        log.debug("signed %s %s nonce=%s timestamp=%s", req.method, req.url, sig.nonce, sig.timestamp)
        return self._transport.send(req, **send_kwargs)

    def close(self) -> None:
        if self._owns_transport:
            self._transport.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
