import functools
import inspect
import re
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any, Callable, Dict, Optional

from phpunveil.detection import array_access_pattern, function_call_pattern
from phpunveil.errors import ConfigurationError, RegistryError
from phpunveil.log import get_logger
from phpunveil.utils import render_value

logger = get_logger("resolvers")

MISSING = object()

# Builtins that are pure for a single argument. Every other builtin and every
# class is refused: a registry entry must never reach eval, open, os.system...
SAFE_BUILTINS = frozenset({chr, ord, abs, len, hex, oct, bin, str, int, float})


def _freeze(name: str, values: Any):
    if isinstance(values, Mapping):
        try:
            return MappingProxyType({int(key): value for key, value in values.items()})
        except (TypeError, ValueError):
            raise ConfigurationError(f"array {name!r} has a non-integer index") from None
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        raise ConfigurationError(f"array {name!r} must be a sequence or an index mapping")
    return tuple(values)


def _lookup(values: Any, index: int) -> Any:
    if isinstance(values, Mapping):
        return values.get(index, MISSING)
    if 0 <= index < len(values):
        return values[index]
    return MISSING


class GlobalTable:
    """Read-only name -> ordered values table used for $GLOBALS-style lookups."""

    def __init__(self, arrays: Optional[Mapping] = None) -> None:
        self._arrays = MappingProxyType(
            {str(name): _freeze(name, values) for name, values in (arrays or {}).items()}
        )

    def __contains__(self, name: str) -> bool:
        return name in self._arrays

    def __len__(self) -> int:
        return len(self._arrays)

    def lookup(self, name: str, index: int) -> Any:
        values = self._arrays.get(name, MISSING)
        if values is MISSING:
            return MISSING
        return _lookup(values, index)


class TableLookup:
    """Pure helper function ``f(N) -> values[N]``."""

    def __init__(self, values: Any) -> None:
        self.values = _freeze("lookup", values)

    def __call__(self, index: int) -> Any:
        value = _lookup(self.values, index)
        if value is MISSING:
            raise KeyError(index)
        return value

    def __repr__(self) -> str:
        return f"TableLookup({len(self.values)} values)"


def _check_callable(name: str, func: Any) -> None:
    if not callable(func):
        raise RegistryError(f"registry entry {name!r} is not callable")
    while isinstance(func, functools.partial):
        func = func.func
    try:
        if func in SAFE_BUILTINS:
            return
    except TypeError:
        pass
    if inspect.isclass(func):
        raise RegistryError(f"registry entry {name!r} is a class, not a pure function")
    if inspect.isbuiltin(func) or inspect.ismethoddescriptor(func):
        raise RegistryError(
            f"registry entry {name!r} exposes host builtin {getattr(func, '__name__', func)!r}"
        )


class CallableRegistry:
    """Closed allow-list of helper functions reachable from ``name(N)`` calls."""

    def __init__(self, functions: Optional[Mapping] = None) -> None:
        checked: Dict[str, Callable[[int], Any]] = {}
        for name, func in (functions or {}).items():
            if not isinstance(name, str):
                raise RegistryError(f"registry key {name!r} is not a function name")
            _check_callable(name, func)
            checked[name] = func
        self._functions = MappingProxyType(checked)

    def __contains__(self, name: str) -> bool:
        return name in self._functions

    def __len__(self) -> int:
        return len(self._functions)

    def call(self, name: str, argument: int) -> Any:
        return self._functions[name](argument)


class Environment:
    def __init__(self, arrays: Optional[Mapping] = None, functions: Any = None) -> None:
        self.globals = arrays if isinstance(arrays, GlobalTable) else GlobalTable(arrays)
        self.functions = (
            functions if isinstance(functions, CallableRegistry) else CallableRegistry(functions)
        )

    @classmethod
    def from_dict(cls, data: Mapping) -> "Environment":
        """Build from decoded JSON: function entries become table lookups."""
        if not isinstance(data, Mapping):
            raise ConfigurationError("environment must be a JSON object")
        arrays = data.get("globals", {})
        tables = data.get("functions", {})
        if not isinstance(arrays, Mapping) or not isinstance(tables, Mapping):
            raise ConfigurationError("'globals' and 'functions' must be JSON objects")
        functions = {name: TableLookup(values) for name, values in tables.items()}
        return cls(arrays=arrays, functions=functions)


def _render(match: re.Match, value: Any) -> str:
    if value is MISSING:
        return match.group(0)
    try:
        rendered = render_value(value)
    except (TypeError, ValueError):
        rendered = None
    return match.group(0) if rendered is None else rendered


def resolve_array(code: str, name: str, table: GlobalTable) -> str:
    if name not in table:
        return code

    def replace(match: re.Match) -> str:
        index = match.group(2) or match.group(3) or match.group(5)
        return _render(match, table.lookup(name, int(index)))

    return array_access_pattern(name).sub(replace, code)


def resolve_function(code: str, name: str, registry: CallableRegistry) -> str:
    if name not in registry:
        return code

    def replace(match: re.Match) -> str:
        try:
            value = registry.call(name, int(match.group(1)))
        except Exception as e:
            logger.debug(f"{name}({match.group(1)}) left unresolved: {e}")
            return match.group(0)
        return _render(match, value)

    return function_call_pattern(name).sub(replace, code)
