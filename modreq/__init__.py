from modreq.modreq_classifier import classify, canonical_id
from modreq.modreq_registry import Loader, LoaderRegistry
from modreq.modreq_cache import ModuleCache
from modreq.modreq_config import RuntimeConfig
from modreq.modreq_datatypes import (
    Descriptor,
    Module,
    EntryState,
    RequireError,
    UnsupportedProtocol,
    NoBareLoader,
    LoaderFailure,
    EvaluationFailure,
    CyclicRequireError,
)
from modreq.modreq_evaluators import Evaluator, PythonEvaluator, DataEvaluator, EvaluatorTable
from modreq.modreq_file import FileLoader, MemoryLoader, SearchPathLoader
from modreq.modreq_http import HttpLoader
from modreq.modreq_runtime import ModuleContext, Require, ExecutionResult, create_context
