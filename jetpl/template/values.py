"""
Динамическая модель значений.

Значения шаблона — обычные объекты Python. Модуль классифицирует их
по ValueKind и реализует операции, нужные вычислителю: истинность,
преобразование в строку, арифметику, сравнения, доступ к полям и индексам,
итерацию для range. Объекты без схемы доступны через HostBridge.
"""

from __future__ import annotations

import enum
import inspect
import math
from collections.abc import Mapping, Sequence
from typing import Any, Iterator, Set, Tuple

from ..errors import EvalError, NotIterable, TypeMismatch, UndefinedField


class _NotFound:
    """Сигнальное значение «имя не найдено» (отличается от None/nil)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_FOUND"


NOT_FOUND = _NotFound()


class ValueKind(enum.Enum):
    """Вид значения шаблона."""
    NIL = "nil"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    STRING = "string"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    OBJECT = "object"


_NUMERIC = (ValueKind.INT, ValueKind.FLOAT)


def kind_of(value: Any) -> ValueKind:
    """Определяет вид значения."""
    if value is None:
        return ValueKind.NIL
    # bool проверяется раньше int: в Python bool — подкласс int
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, int):
        return ValueKind.INT
    if isinstance(value, float):
        return ValueKind.FLOAT
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, Mapping):
        return ValueKind.MAPPING
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return ValueKind.SEQUENCE
    return ValueKind.OBJECT


def describe(value: Any) -> str:
    """Короткое имя типа для сообщений об ошибках."""
    kind = kind_of(value)
    if kind == ValueKind.OBJECT:
        return type(value).__name__
    return kind.value


# ---------------------------------------------------------------------------
# Истинность и строковое представление
# ---------------------------------------------------------------------------

def is_truthy(value: Any) -> bool:
    """
    Истинность значения.

    Ложны: nil, false, нулевые числа, пустые строки, последовательности
    и отображения. Всё остальное истинно.
    """
    kind = kind_of(value)
    if kind == ValueKind.NIL:
        return False
    if kind in (ValueKind.BOOL, ValueKind.INT, ValueKind.FLOAT):
        return value != 0
    if kind in (ValueKind.STRING, ValueKind.SEQUENCE, ValueKind.MAPPING):
        return len(value) > 0
    return True


def format_float(value: float) -> str:
    """
    Кратчайшее десятичное представление float.

    Целые значения печатаются без дробной части (25.0 → "25").
    """
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    return repr(value)


def to_string(value: Any) -> str:
    """
    Преобразует значение в текст для вывода.

    Последовательности печатаются как `[a b]`, отображения как `map[k:v]`,
    элементы преобразуются по тем же правилам.
    """
    return _to_string(value, set())


def _to_string(value: Any, active: Set[int]) -> str:
    kind = kind_of(value)
    if kind == ValueKind.NIL:
        return ""
    if kind == ValueKind.BOOL:
        return "true" if value else "false"
    if kind == ValueKind.FLOAT:
        return format_float(value)
    if kind == ValueKind.STRING:
        return value
    if kind not in (ValueKind.SEQUENCE, ValueKind.MAPPING):
        return str(value)

    # Контейнер, содержащий сам себя
    if id(value) in active:
        return "[...]"
    active.add(id(value))
    try:
        if kind == ValueKind.SEQUENCE:
            return "[" + " ".join(_to_string(item, active) for item in value) + "]"
        items = (f"{_to_string(k, active)}:{_to_string(v, active)}" for k, v in value.items())
        return "map[" + " ".join(items) + "]"
    finally:
        active.discard(id(value))


# ---------------------------------------------------------------------------
# Арифметика
# ---------------------------------------------------------------------------

def negate(value: Any) -> Any:
    """Унарный минус."""
    if kind_of(value) not in _NUMERIC:
        raise TypeMismatch(f"cannot negate {describe(value)}")
    return -value


def arithmetic(operator: str, left: Any, right: Any) -> Any:
    """
    Применяет арифметический оператор (+ - * / %).

    Int и Float в смеси дают Float. Деление Int на Int отбрасывает дробную
    часть (к нулю), остаток имеет знак делимого.

    Raises:
        TypeMismatch: Операция не определена для видов операндов
        EvalError: Деление или остаток по модулю на ноль, переполнение при переходе к Float
    """
    left_kind = kind_of(left)
    right_kind = kind_of(right)

    if operator == "+" and left_kind == ValueKind.STRING and right_kind == ValueKind.STRING:
        return left + right

    if left_kind not in _NUMERIC or right_kind not in _NUMERIC:
        raise TypeMismatch(
            f"invalid operation: {describe(left)} {operator} {describe(right)}"
        )

    try:
        return _apply_numeric(operator, left, right, left_kind, right_kind)
    except OverflowError as e:
        # Int, не представимый как float, в смеси с Float
        raise EvalError(
            f"numeric overflow: {describe(left)} {operator} {describe(right)}"
        ) from e


def _apply_numeric(operator: str, left: Any, right: Any, left_kind: ValueKind, right_kind: ValueKind) -> Any:
    if operator == "+":
        return left + right
    if operator == "-":
        return left - right
    if operator == "*":
        return left * right

    if right == 0:
        raise EvalError("division by zero" if operator == "/" else "modulo by zero")

    both_int = left_kind == ValueKind.INT and right_kind == ValueKind.INT
    if operator == "/":
        if both_int:
            quotient = abs(left) // abs(right)
            return quotient if (left < 0) == (right < 0) else -quotient
        return left / right
    if operator == "%":
        if both_int:
            remainder = abs(left) % abs(right)
            return -remainder if left < 0 else remainder
        return math.fmod(left, right)

    raise EvalError(f"Unknown arithmetic operator: {operator}")


# ---------------------------------------------------------------------------
# Сравнения
# ---------------------------------------------------------------------------

def equals(left: Any, right: Any) -> bool:
    """
    Равенство значений.

    Разные виды всегда не равны, кроме Int/Float, сравниваемых по значению.
    Последовательности и отображения сравниваются поэлементно.
    """
    left_kind = kind_of(left)
    right_kind = kind_of(right)

    if left_kind in _NUMERIC and right_kind in _NUMERIC:
        return left == right
    if left_kind != right_kind:
        return False
    if left_kind == ValueKind.NIL:
        return True
    if left_kind == ValueKind.SEQUENCE:
        return len(left) == len(right) and all(equals(a, b) for a, b in zip(left, right))
    if left_kind == ValueKind.MAPPING:
        if len(left) != len(right):
            return False
        return all(key in right and equals(value, right[key]) for key, value in left.items())
    return bool(left == right)


def compare(operator: str, left: Any, right: Any) -> bool:
    """
    Применяет оператор сравнения.

    Упорядочивающие операторы определены только для чисел и строк.

    Raises:
        TypeMismatch: Упорядочивание несравнимых видов
    """
    if operator == "==":
        return equals(left, right)
    if operator == "!=":
        return not equals(left, right)

    left_kind = kind_of(left)
    right_kind = kind_of(right)
    comparable = (
        (left_kind in _NUMERIC and right_kind in _NUMERIC)
        or (left_kind == ValueKind.STRING and right_kind == ValueKind.STRING)
    )
    if not comparable:
        raise TypeMismatch(
            f"cannot compare {describe(left)} {operator} {describe(right)}"
        )

    if operator == "<":
        return left < right
    if operator == "<=":
        return left <= right
    if operator == ">":
        return left > right
    if operator == ">=":
        return left >= right
    raise EvalError(f"Unknown comparison operator: {operator}")


# ---------------------------------------------------------------------------
# Доступ к объектам
# ---------------------------------------------------------------------------

def _is_method(attr: Any) -> bool:
    return inspect.ismethod(attr) or inspect.isbuiltin(attr)


class ReflectionBridge:
    """
    HostBridge на основе getattr.

    Полем считается любой публичный атрибут, кроме связанных методов;
    методом — связанный метод объекта. Имена с подчёркиванием не видны.
    """

    def _attribute(self, obj: Any, name: str) -> Any:
        if name.startswith("_"):
            return NOT_FOUND
        return getattr(obj, name, NOT_FOUND)

    def resolve_field(self, obj: Any, name: str) -> Any:
        attr = self._attribute(obj, name)
        if attr is NOT_FOUND or _is_method(attr):
            return NOT_FOUND
        return attr

    def resolve_method(self, obj: Any, name: str) -> Any:
        attr = self._attribute(obj, name)
        if attr is NOT_FOUND or not _is_method(attr):
            return NOT_FOUND
        return attr

    def invoke_method(self, obj, name, args, kwargs):
        method = self.resolve_method(obj, name)
        if method is NOT_FOUND:
            raise UndefinedField(name, owner=describe(obj))
        return method(*args, **kwargs)


DEFAULT_BRIDGE = ReflectionBridge()


def get_field(value: Any, name: str, bridge=DEFAULT_BRIDGE, prefer_method: bool = False) -> Any:
    """
    Читает поле `value.name`.

    Для отображений — ключ, для объектов — поле или метод через bridge.
    При prefer_method (доступ сразу перед вызовом) метод объекта
    выигрывает у одноимённого поля.

    Raises:
        UndefinedField: Поле не найдено или вид значения не имеет полей
    """
    kind = kind_of(value)

    if kind == ValueKind.MAPPING:
        return _map_lookup(value, name, name)

    if kind != ValueKind.OBJECT:
        raise UndefinedField(name, owner=describe(value))

    lookups = (bridge.resolve_method, bridge.resolve_field)
    if not prefer_method:
        lookups = lookups[::-1]
    for resolve in lookups:
        found = resolve(value, name)
        if found is not NOT_FOUND:
            return found
    raise UndefinedField(name, owner=describe(value))


def _map_lookup(mapping: Mapping, key: Any, display: str) -> Any:
    try:
        if key in mapping:
            return mapping[key]
    except TypeError as e:
        # Нехэшируемый ключ
        raise TypeMismatch(f"invalid map key {describe(key)}") from e
    raise UndefinedField(display, owner="map")


def get_index(value: Any, index: Any) -> Any:
    """
    Индексация `value[index]`.

    Raises:
        UndefinedField: Ключ отсутствует или индекс вне диапазона
        TypeMismatch: Вид значения не индексируется или индекс не целый (или нехэшируемый ключ)
    """
    kind = kind_of(value)

    if kind == ValueKind.MAPPING:
        return _map_lookup(value, index, to_string(index))

    if kind == ValueKind.SEQUENCE:
        if kind_of(index) != ValueKind.INT:
            raise TypeMismatch(f"sequence index must be int, got {describe(index)}")
        if index < 0 or index >= len(value):
            raise UndefinedField(str(index), owner=f"sequence of length {len(value)}")
        return value[index]

    if kind == ValueKind.NIL:
        raise UndefinedField(to_string(index), owner="nil")

    raise TypeMismatch(f"cannot index {describe(value)}")


def iterate(value: Any) -> Iterator[Tuple[Any, Any]]:
    """
    Итерация для range: пары (ключ, значение).

    Для последовательностей ключ — индекс. Элементы отображения
    фиксируются до начала обхода, порядок стабилен в пределах одного range.

    Raises:
        NotIterable: Значение не последовательность и не отображение
    """
    kind = kind_of(value)
    if kind == ValueKind.SEQUENCE:
        return iter(enumerate(value))
    if kind == ValueKind.MAPPING:
        return iter(list(value.items()))
    raise NotIterable(f"cannot range over {describe(value)}")


__all__ = [
    "NOT_FOUND",
    "ValueKind",
    "kind_of",
    "describe",
    "is_truthy",
    "format_float",
    "to_string",
    "negate",
    "arithmetic",
    "equals",
    "compare",
    "ReflectionBridge",
    "DEFAULT_BRIDGE",
    "get_field",
    "get_index",
    "iterate",
]
