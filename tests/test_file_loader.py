import os

import pytest

from modreq import FileLoader, LoaderFailure, MemoryLoader, Module, SearchPathLoader, create_context


def test_file_loader_resolves_relative_to_base(tmp_path):
    loader = FileLoader(base_dir=str(tmp_path))
    (tmp_path / "a.py").write_text("exports.a = 1\n", encoding="utf-8")
    assert loader.resolve("./a.py") == str(tmp_path / "a.py")
    assert loader.resolve("a.py") == str(tmp_path / "a.py")
    assert loader.resolve("./sub/../a.py") == str(tmp_path / "a.py")
    assert loader.load(loader.resolve("./a.py")) == "exports.a = 1\n"


def test_file_loader_resolves_relative_to_parent_module(tmp_path):
    sub = tmp_path / "sub"
    sub.mkdir()
    (sub / "x.py").write_text("", encoding="utf-8")
    parent = Module(id="file://" + str(sub / "m.py"), filename=str(sub / "m.py"))
    loader = FileLoader(base_dir=str(tmp_path))
    assert loader.resolve("./x.py", parent) == str(sub / "x.py")
    assert loader.resolve("../sub/x.py", parent) == str(sub / "x.py")


def test_file_loader_probes_extensions_and_index(tmp_path):
    (tmp_path / "util.py").write_text("", encoding="utf-8")
    (tmp_path / "data.json").write_text("{}", encoding="utf-8")
    pkg = tmp_path / "pkg"
    pkg.mkdir()
    (pkg / "index.py").write_text("", encoding="utf-8")
    loader = FileLoader(base_dir=str(tmp_path))
    assert loader.resolve("./util") == str(tmp_path / "util.py")
    assert loader.resolve("./data") == str(tmp_path / "data.json")
    assert loader.resolve("./pkg") == str(pkg / "index.py")


def test_file_loader_unresolved_path_fails_at_load(tmp_path):
    loader = FileLoader(base_dir=str(tmp_path))
    path = loader.resolve("./missing")
    assert path == str(tmp_path / "missing")
    with pytest.raises(FileNotFoundError):
        loader.load(path)


def test_memory_loader_counts_loads():
    loader = MemoryLoader({"/a.py": "x"})
    assert loader.resolve("./a") == "/a.py"
    assert loader.load("/a.py") == "x"
    with pytest.raises(FileNotFoundError):
        loader.load("/b.py")
    assert loader.loads == 2


def test_require_from_disk(tmp_path):
    (tmp_path / "mod.py").write_text("exports.greeting = 'hello'\n", encoding="utf-8")
    (tmp_path / "lib").mkdir()
    (tmp_path / "lib" / "data.yaml").write_text("answer: 42\n", encoding="utf-8")
    (tmp_path / "lib" / "index.py").write_text("exports.data = require('./data.yaml')\n", encoding="utf-8")

    ctx = create_context({"base-dir": str(tmp_path)})
    assert ctx.require("./mod.py").greeting == "hello"
    # Absolute spelling of the same file is the same module
    assert ctx.require(str(tmp_path / "mod.py")) is ctx.require("./mod")
    assert ctx.require("./lib").data == {"answer": 42}


def test_require_missing_file_from_disk(tmp_path):
    ctx = create_context({"base-dir": str(tmp_path)})
    with pytest.raises(LoaderFailure) as ei:
        ctx.require("./nope.py")
    assert isinstance(ei.value.cause, FileNotFoundError)
    assert ei.value.id == "file://" + str(tmp_path / "nope.py")


def test_search_path_loader_for_bare_ids(tmp_path):
    mods = tmp_path / "mods"
    (mods / "pkg").mkdir(parents=True)
    (mods / "leftpad.py").write_text("exports.pad = lambda s, n: s.rjust(n)\n", encoding="utf-8")
    (mods / "pkg" / "index.py").write_text("exports.helper = require('./helper.py')\n", encoding="utf-8")
    (mods / "pkg" / "helper.py").write_text("exports.name = 'helper'\n", encoding="utf-8")

    ctx = create_context({"base-dir": str(tmp_path), "module-paths": [str(mods)]})
    assert ctx.require("leftpad").pad("a", 3) == "  a"
    assert ctx.require("leftpad") is ctx.require("leftpad")
    assert ctx.require("pkg").helper.name == "helper"
    # Bare modules are keyed by the file they resolved to
    assert str(mods / "leftpad.py") in ctx.cache


def test_search_path_loader_not_found(tmp_path):
    loader = SearchPathLoader([str(tmp_path)])
    assert loader.resolve("ghost") == "ghost"
    ctx = create_context({"base-dir": str(tmp_path), "module-paths": [str(tmp_path)]})
    with pytest.raises(LoaderFailure) as ei:
        ctx.require("ghost")
    assert isinstance(ei.value.cause, FileNotFoundError)
    assert ei.value.id == "ghost"
