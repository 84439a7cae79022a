from __future__ import annotations

import asyncio
import logging
import os
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Literal, Mapping, Optional, Tuple

from modreq.modreq_cache import ModuleCache
from modreq.modreq_classifier import canonical_id, classify
from modreq.modreq_config import RuntimeConfig
from modreq.modreq_datatypes import (
    Descriptor,
    EvaluationFailure,
    LoaderFailure,
    Module,
    NoBareLoader,
    RequireError,
    UnsupportedProtocol,
    CyclicRequireError,
)
from modreq.modreq_evaluators import EvaluatorTable, default_evaluators
from modreq.modreq_file import FileLoader, SearchPathLoader
from modreq.modreq_http import HttpLoader
from modreq.modreq_registry import Loader, LoaderRegistry
from modreq.modreq_serialize import decode_text

LOGGER = logging.getLogger("modreq.runtime")

# A builtin module factory receives its Module and may either fill
# module.exports or return the exports value.
BuiltinFactory = Callable[[Module], Any]


@dataclass
class ExecutionResult:
    """The structured result of running a script or main module."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error: Optional[BaseException] = None
    module: Optional[Module] = None

    def format_error(self) -> str:
        if self.status != 'error':
            return ""
        return str(self.error_message or "Unknown error")


class Require:
    """The `require` callable exposed to scripts, bound to the requiring module."""

    def __init__(self, context: 'ModuleContext', parent: Optional[Module] = None):
        self.context = context
        self.parent = parent

    def __call__(self, name: str) -> Any:
        return self.context._require(name, self.parent)

    def resolve(self, name: str) -> str:
        """The canonical id `name` would load under, without loading it."""
        return self.context.resolve(name, self.parent)[3]

    @property
    def cache(self) -> ModuleCache:
        return self.context.cache

    @property
    def main(self) -> Optional[Module]:
        return self.context.main

    def __repr__(self):
        parent = self.parent.id if self.parent is not None else None
        return f"<require parent={parent!r}>"


class ModuleContext:
    """
    One isolated module system: loaders, evaluators, builtins and the cache.

    Contexts share nothing, so two contexts load the same identifier
    independently. Discarding the context discards its cached modules.
    """

    def __init__(self, config: Optional[RuntimeConfig] = None, *,
                 registry: Optional[LoaderRegistry] = None,
                 cache: Optional[ModuleCache] = None,
                 evaluators: Optional[EvaluatorTable] = None):
        self.config = config or RuntimeConfig()
        self.registry = registry or LoaderRegistry()
        self.cache = cache or ModuleCache()
        self.evaluators = evaluators or default_evaluators()
        self.builtins: Dict[str, BuiltinFactory] = {}
        self.modules: Dict[str, Module] = {}
        self.main: Optional[Module] = None
        self.require = Require(self)
        self._script_namespace: Optional[Dict[str, Any]] = None

    # --- Setup ---

    def register(self, protocol: str, loader: Loader) -> 'ModuleContext':
        self.registry.register(protocol, loader)
        return self

    def register_bare(self, loader: Optional[Loader]) -> 'ModuleContext':
        self.registry.register_bare(loader)
        return self

    def define(self, name: str, factory: BuiltinFactory) -> 'ModuleContext':
        """Register a builtin module. The first definition of a name wins."""
        if name in self.builtins:
            LOGGER.debug("builtin %s already defined, ignoring", name)
            return self
        self.builtins[name] = factory
        return self

    # --- Resolution ---

    def resolve(self, raw: str, parent: Optional[Module] = None) -> Tuple[Descriptor, Loader, str, str]:
        """classify -> registry lookup -> loader resolution -> canonical id."""
        desc = classify(raw)
        LOGGER.debug("classified %r as %s", raw, desc)
        loader = self.registry.resolve(desc.protocol, desc.id)
        try:
            resolved = loader.resolve(desc.id, parent)
        except RequireError:
            raise
        except Exception as e:
            raise LoaderFailure(desc.canonical, e) from e
        return desc, loader, resolved, canonical_id(desc.protocol, resolved)

    # --- Require ---

    def _require(self, raw: str, parent: Optional[Module] = None, *, main: bool = False) -> Any:
        if not isinstance(raw, str) or not raw:
            raise TypeError(f"require: string expected, got {raw!r}")

        factory = self.builtins.get(raw)
        if factory is not None:
            module = self._new_module(raw, None, parent)
            return self.cache.get_or_load(
                raw,
                lambda: self._load_builtin(factory, module),
                partial=lambda: module.exports,
            )

        desc, loader, resolved, canonical = self.resolve(raw, parent)
        filename = resolved if desc.protocol in (None, "file") else canonical
        module = self._new_module(canonical, filename, parent)
        if main:
            # An already loaded module stays the record require.main reports
            self.main = self.modules.get(canonical, module)
        return self.cache.get_or_load(
            canonical,
            lambda: self._load(loader, resolved, module),
            partial=lambda: module.exports,
        )

    def _new_module(self, id: str, filename: Optional[str], parent: Optional[Module]) -> Module:
        module = Module(id=id, filename=filename, parent=parent)
        module.require = Require(self, module)
        return module

    def _attach(self, module: Module):
        self.modules[module.id] = module
        if module.parent is not None:
            module.parent.children.append(module)

    def _load(self, loader: Loader, resolved: str, module: Module) -> Any:
        LOGGER.debug("loading %s via %r", module.id, loader)
        try:
            source = loader.load(resolved)
        except RequireError:
            raise
        except Exception as e:
            raise LoaderFailure(module.id, e) from e
        if isinstance(source, (bytes, bytearray)):
            source = decode_text(source)

        self._attach(module)
        evaluator = self.evaluators.for_module(module)
        try:
            return evaluator.evaluate(source, module)
        except RequireError:
            raise
        except Exception as e:
            raise EvaluationFailure(module.id, e) from e

    def _load_builtin(self, factory: BuiltinFactory, module: Module) -> Any:
        self._attach(module)
        try:
            result = factory(module)
        except RequireError:
            raise
        except Exception as e:
            raise EvaluationFailure(module.id, e) from e
        if result is not None:
            module.exports = result
        module.loaded = True
        return module.exports

    async def arequire(self, name: str) -> Any:
        """`require` for async hosts: the blocking load runs in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.require, name)

    # --- Script entry points ---

    def format_error(self, e: BaseException) -> str:
        match e:
            case UnsupportedProtocol() as up:
                return f"UnsupportedProtocol: {up.protocol}"
            case NoBareLoader() as nb:
                return f"NoBareLoader: {nb.id}"
            case CyclicRequireError() as cy:
                return f"CyclicRequireError: {cy.id}"
            case LoaderFailure() as lf:
                return f"LoaderFailure: {lf.id}\n{type(lf.cause).__name__}: {lf.cause}"
            case EvaluationFailure() as ef:
                tb = "".join(traceback.format_exception(type(ef.cause), ef.cause, ef.cause.__traceback__))
                return f"EvaluationFailure: {ef.id}\n{tb.rstrip()}"
            case SyntaxError():
                return f"SyntaxError: {e.msg} (line {e.lineno}, col {e.offset})"
            case _:
                return f"{type(e).__name__}: {e}"

    async def run_main(self, path: str | Path) -> ExecutionResult:
        """Load `path` as the main module and report its exports."""
        abs_path = os.path.abspath(str(path))
        loop = asyncio.get_running_loop()
        try:
            value = await loop.run_in_executor(None, lambda: self._require(abs_path, main=True))
        except Exception as e:
            return ExecutionResult(status='error', error_message=self.format_error(e), error=e, module=self.main)
        return ExecutionResult(status='success', value=value, module=self.main)

    def _namespace(self) -> Dict[str, Any]:
        if self._script_namespace is None:
            script = self._new_module("<script>", None, None)
            self._script_namespace = {
                "__name__": "__main__",
                "module": script,
                "exports": script.exports,
                "require": self.require,
            }
        return self._script_namespace

    def _run_source(self, source: str, filename: str) -> Any:
        ns = self._namespace()
        try:
            code = compile(source, filename, "eval")
        except SyntaxError:
            exec(compile(source, filename, "exec"), ns)
            return None
        return eval(code, ns)

    async def handle_script(self, source: str, filename: str = "<script>") -> ExecutionResult:
        """Run ad-hoc source against a persistent namespace with `require` bound.

        A single expression reports its value; statements report None.
        """
        loop = asyncio.get_running_loop()
        try:
            value = await loop.run_in_executor(None, self._run_source, source, filename)
        except Exception as e:
            return ExecutionResult(status='error', error_message=self.format_error(e), error=e)
        return ExecutionResult(status='success', value=value)

    def __repr__(self):
        return f"<ModuleContext protocols={self.registry.protocols()!r} cached={len(self.cache)}>"


def create_context(config: RuntimeConfig | Mapping[str, Any] | str | Path | None = None) -> ModuleContext:
    """Build a context with the default loaders for `config`.

    `config` may be a RuntimeConfig, a kebab-case mapping, or a path to a
    JSON / YAML / TOML config file.
    """
    match config:
        case RuntimeConfig():
            cfg = config
        case None:
            cfg = RuntimeConfig()
        case str() | Path():
            cfg = RuntimeConfig.from_file(config)
        case _:
            cfg = RuntimeConfig.from_mapping(config)

    ctx = ModuleContext(cfg)
    for protocol in cfg.protocols:
        match protocol:
            case "file":
                ctx.register("file", FileLoader(cfg.base_dir, cfg.extensions))
            case "http" | "https":
                ctx.register(protocol, HttpLoader(protocol, cfg.http))
    if cfg.module_paths:
        ctx.register_bare(SearchPathLoader(cfg.module_paths, cfg.extensions))
    LOGGER.debug("created %r", ctx)
    return ctx
