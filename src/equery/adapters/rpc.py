"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Adapter turning RPC-style callers into keyed fetcher definitions.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any

from ..keys import stable_serialize
from ..types import FetchContext, FetcherDefinition

_NO_INPUT = object()


def create_rpc_adapter(caller: Any) -> "RpcNamespace":
    """
    Mirror `caller` so that calling a procedure yields a ``FetcherDefinition``.

    `caller` may be an object or a mapping, nested to any depth. Calling a
    leaf does not invoke it; it returns a definition keyed by the dotted
    procedure path plus the stable serialization of the call input, so equal
    calls are shared by a ``FetchClient``::

        rpc = create_rpc_adapter(api)
        client.use_fetch(rpc.user.by_id({"id": 1}))   # key 'user.by_id.{"id":1}'
    """
    return RpcNamespace(caller, ())


class RpcNamespace:
    """Attribute (or item) view over one level of the caller tree."""

    __slots__ = ("_target", "_path")

    def __init__(self, target: Any, path: Sequence[str]) -> None:
        self._target = target
        self._path = tuple(path)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("__"):
            raise AttributeError(name)
        return self._wrap(name, self._lookup(name))

    def __getitem__(self, name: str) -> Any:
        try:
            return self._wrap(name, self._lookup(name))
        except AttributeError as exc:
            raise KeyError(name) from exc

    def _lookup(self, name: str) -> Any:
        target = self._target
        if isinstance(target, Mapping):
            if name not in target:
                raise AttributeError(f"{'.'.join((*self._path, name))} is not defined")
            return target[name]
        return getattr(target, name)

    def _wrap(self, name: str, value: Any) -> Any:
        path = (*self._path, name)
        if callable(value):
            return RpcProcedure(value, path)
        if isinstance(value, (str, bytes, int, float, bool)) or value is None:
            return value
        return RpcNamespace(value, path)

    def __repr__(self) -> str:
        return f"RpcNamespace({'.'.join(self._path) or '<root>'})"


class RpcProcedure:
    """Leaf procedure; calling it builds a keyed fetcher definition."""

    __slots__ = ("_fn", "_path")

    def __init__(self, fn: Callable[..., Any], path: Sequence[str]) -> None:
        self._fn = fn
        self._path = tuple(path)

    @property
    def path(self) -> str:
        return ".".join(self._path)

    def __call__(self, *args: Any, **kwargs: Any) -> FetcherDefinition:
        parts = list(self._path)
        call_input = _call_input(args, kwargs)
        if call_input is not _NO_INPUT:
            parts.append(stable_serialize(call_input))

        fn = self._fn

        def fetch(_ctx: FetchContext) -> Any:
            return fn(*args, **kwargs)

        return FetcherDefinition(key=".".join(part for part in parts if part), fn=fetch)

    def __repr__(self) -> str:
        return f"RpcProcedure({self.path})"


def _call_input(args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
    if not args and not kwargs:
        return _NO_INPUT
    if len(args) == 1 and not kwargs:
        return args[0]
    if not args:
        return kwargs
    return {"args": list(args), "kwargs": kwargs}
