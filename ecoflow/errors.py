# ecoflow/errors.py
from __future__ import annotations


class EcoFlowClientError(RuntimeError):
    pass


class ConfigurationError(EcoFlowClientError):
    pass


class URLBuildError(EcoFlowClientError):
    pass


class ParamsError(EcoFlowClientError):
    """Базовая ошибка извлечения параметров запроса для подписи."""


class MissingBodyError(ParamsError):
    pass


class BodyReadError(ParamsError):
    pass


class JSONParseError(ParamsError):
    pass


class SigningError(EcoFlowClientError):
    pass
