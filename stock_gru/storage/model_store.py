# stock_gru/storage/model_store.py

import copy
import re
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

import torch
from loguru import logger

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def _check_name(name: str) -> str:
    if not _NAME_RE.match(name or ""):
        raise ValueError(f"Invalid model name: {name!r}")
    return name


class ModelStore(ABC):
    """Named, versionless slots for model artifacts. load() on an empty slot returns None."""

    @abstractmethod
    def save(self, name: str, artifact: Dict[str, Any]) -> None: ...

    @abstractmethod
    def load(self, name: str) -> Optional[Dict[str, Any]]: ...

    @abstractmethod
    def delete(self, name: str) -> bool: ...

    def exists(self, name: str) -> bool:
        return self.load(name) is not None


class LocalModelStore(ModelStore):
    """One `<name>.pt` file per slot under `directory`, written with torch.save."""

    def __init__(self, directory: Union[str, Path] = "models"):
        self.directory = Path(directory)

    def _path(self, name: str) -> Path:
        return self.directory / f"{_check_name(name)}.pt"

    def save(self, name: str, artifact: Dict[str, Any]) -> None:
        path = self._path(name)
        self.directory.mkdir(parents=True, exist_ok=True)
        payload = dict(artifact)
        payload.setdefault("timestamp", datetime.now().isoformat())
        tmp = path.with_suffix(".pt.tmp")
        torch.save(payload, tmp)
        tmp.replace(path)
        logger.info(f"模型已保存: {path}")

    def load(self, name: str) -> Optional[Dict[str, Any]]:
        path = self._path(name)
        if not path.exists():
            logger.info(f"模型不存在: {path}")
            return None
        artifact = torch.load(path, map_location="cpu", weights_only=True)
        logger.info(f"模型已加载: {path}")
        return artifact

    def exists(self, name: str) -> bool:
        return self._path(name).exists()

    def delete(self, name: str) -> bool:
        path = self._path(name)
        if path.exists():
            path.unlink()
            return True
        return False


class InMemoryModelStore(ModelStore):
    def __init__(self):
        self._slots: Dict[str, Dict[str, Any]] = {}

    def save(self, name: str, artifact: Dict[str, Any]) -> None:
        self._slots[_check_name(name)] = copy.deepcopy(artifact)

    def load(self, name: str) -> Optional[Dict[str, Any]]:
        artifact = self._slots.get(_check_name(name))
        return copy.deepcopy(artifact) if artifact is not None else None

    def delete(self, name: str) -> bool:
        return self._slots.pop(_check_name(name), None) is not None
