"""
Evaluation of loaded module source.

An evaluator receives the source text and the Module record prepared by the
dispatcher, runs the source, and returns the module's exports. Which
evaluator runs is decided by the module's file extension.
"""

from __future__ import annotations

import builtins
import posixpath
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from modreq.modreq_datatypes import Module
from modreq.modreq_serialize import deserialize, format_for_extension


class Evaluator(ABC):
    @abstractmethod
    def evaluate(self, source: str, module: Module) -> Any:
        raise NotImplementedError


class PythonEvaluator(Evaluator):
    """
    Executes Python source in a fresh CommonJS-style module scope.

    The scope exposes `module`, `exports`, `require`, `__filename` and
    `__dirname`. The result is `module.exports` after the body has run, which
    is the original exports object unless the module replaced it.
    """

    def namespace_for(self, module: Module) -> Dict[str, Any]:
        return {
            "__name__": module.id,
            "__file__": module.filename,
            "__builtins__": builtins,
            "module": module,
            "exports": module.exports,
            "require": module.require,
            "__filename": module.filename,
            "__dirname": module.dirname,
        }

    def evaluate(self, source: str, module: Module) -> Any:
        code = compile(source, module.filename or module.id, "exec")
        exec(code, self.namespace_for(module))
        module.loaded = True
        return module.exports


class DataEvaluator(Evaluator):
    """Data modules: the exports are the parsed document."""

    def __init__(self, fmt: Optional[str] = None):
        self.fmt = fmt

    def evaluate(self, source: str, module: Module) -> Any:
        fmt = self.fmt or format_for_extension(posixpath.splitext(module.filename or module.id)[1])
        module.exports = deserialize(source, fmt=fmt)
        module.loaded = True
        return module.exports


class EvaluatorTable:
    """Extension -> Evaluator, with a default for everything else."""

    def __init__(self, default: Optional[Evaluator] = None):
        self.default = default or PythonEvaluator()
        self._by_extension: Dict[str, Evaluator] = {}

    def register(self, extension: str, evaluator: Evaluator):
        if not extension.startswith("."):
            extension = "." + extension
        self._by_extension[extension.lower()] = evaluator

    def for_module(self, module: Module) -> Evaluator:
        name = module.filename or module.id
        ext = posixpath.splitext(name)[1].lower()
        return self._by_extension.get(ext, self.default)

    def extensions(self):
        return sorted(self._by_extension)


def default_evaluators() -> EvaluatorTable:
    table = EvaluatorTable(PythonEvaluator())
    table.register(".py", table.default)
    data = DataEvaluator()
    for ext in (".json", ".yaml", ".yml", ".toml", ".xml"):
        table.register(ext, data)
    return table
