from __future__ import annotations

from importlib import import_module as _import_module

_engine_module = _import_module(".engine", package=__name__)
ClassificationEngine = _engine_module.ClassificationEngine
MagicEngine = _engine_module.MagicEngine

_pipeline_module = _import_module(".pipeline", package=__name__)
ContentClassifier = _pipeline_module.ContentClassifier

_types_module = _import_module(".types", package=__name__)
ClassificationOutcome = _types_module.ClassificationOutcome
ClassificationRequest = _types_module.ClassificationRequest
EngineVerdict = _types_module.EngineVerdict
MimeType = _types_module.MimeType

__all__: list[str] = [
    "ClassificationEngine",
    "MagicEngine",
    "ContentClassifier",
    "ClassificationOutcome",
    "ClassificationRequest",
    "EngineVerdict",
    "MimeType",
]
