# config.py
import os
import logging
from dotenv import load_dotenv

from ecoflow.errors import ConfigurationError
from ecoflow.http import ClientConfig

load_dotenv()

log = logging.getLogger(__name__)

# =========================
# Конфигурация EcoFlow OpenPlatform из окружения/.env:
#   ECOFLOW_HOST         (по умолчанию EU-эндпоинт)
#   ECOFLOW_ACCESS_KEY
#   ECOFLOW_SECRET_KEY
#   REQ_TIMEOUT          (секунды, пробрасывается в transport.send)
# Ядро (ecoflow.*) окружение не читает — только этот модуль.
# =========================

DEFAULT_HOST = "https://api-e.ecoflow.com"

HOST        = os.getenv("ECOFLOW_HOST", "").strip() or DEFAULT_HOST
ACCESS_KEY  = os.getenv("ECOFLOW_ACCESS_KEY", "").strip()
SECRET_KEY  = os.getenv("ECOFLOW_SECRET_KEY", "").strip()
REQ_TIMEOUT = int(os.getenv("REQ_TIMEOUT", "12"))


def get_client_config(host: str | None = None,
                      access_key: str | None = None,
                      secret_key: str | None = None) -> ClientConfig:
    """
    Соберёт ClientConfig; явные аргументы важнее переменных окружения.
    Бросит ConfigurationError, если ключи не заданы.
    """
    conf = ClientConfig(
        host=(host or HOST).strip(),
        access_key=(access_key if access_key is not None else ACCESS_KEY).strip(),
        secret_key=(secret_key if secret_key is not None else SECRET_KEY).strip(),
    )
    if not conf.access_key or not conf.secret_key:
        raise ConfigurationError("config: ECOFLOW_ACCESS_KEY and ECOFLOW_SECRET_KEY must be set")
    log.debug("ecoflow host: %s", conf.host)
    return conf
