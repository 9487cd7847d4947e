"""
Restricted script engine for custom_script bot tools

Scripts are single Python expressions evaluated by walking the AST, never
with eval(). Names resolve against the tool parameters; only literals,
arithmetic, comparisons, boolean logic, conditionals, containers,
subscripts and a small set of builtins are available.

    engine = ScriptEngine()
    engine.execute("{'total': price * qty, 'big': price * qty > 100}", {"price": 20, "qty": 7})
"""
import ast
import operator
from typing import Any, Callable, Dict

MAX_DEPTH = 50
MAX_POWER_EXPONENT = 100
MAX_SEQUENCE_LENGTH = 10000

_BIN_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS: Dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
}

_COMPARE_OPS: Dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}


class ScriptError(ValueError):
    """Script could not be parsed or evaluated"""


class ScriptEngine:
    """Expression evaluator with a whitelisted builtin set"""

    def __init__(self):
        self._allowed_builtins: Dict[str, Callable] = {
            'abs': abs,
            'min': min,
            'max': max,
            'round': round,
            'len': len,
            'sum': sum,
            'sorted': sorted,
            'str': str,
            'int': int,
            'float': float,
            'bool': bool,
            'list': list,
            'dict': dict,
            'upper': lambda s: str(s).upper(),
            'lower': lambda s: str(s).lower(),
        }

    def execute(self, script: str, context: Dict[str, Any]) -> Any:
        """
        Evaluate a script

        Args:
            script: expression source
            context: variables visible to the script; also bound as `params`

        Returns:
            Expression result

        Raises:
            ScriptError: syntax error, disallowed construct or runtime failure
        """
        if not script or not script.strip():
            raise ScriptError("Script is empty")

        try:
            tree = ast.parse(script.strip(), mode="eval")
        except SyntaxError as e:
            raise ScriptError(f"Invalid script syntax: {e.msg}") from e

        variables = dict(context or {})
        variables.setdefault("params", dict(context or {}))

        try:
            return self._eval(tree.body, variables, 0)
        except ScriptError:
            raise
        except Exception as e:
            raise ScriptError(f"{type(e).__name__}: {e}") from e

    def _eval(self, node: ast.AST, variables: Dict[str, Any], depth: int) -> Any:
        if depth > MAX_DEPTH:
            raise ScriptError("Script nesting too deep")
        depth += 1

        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.Name):
            if node.id in variables:
                return variables[node.id]
            if node.id in ("True", "False", "None"):
                return {"True": True, "False": False, "None": None}[node.id]
            raise ScriptError(f"Unknown name: {node.id}")

        if isinstance(node, ast.BinOp):
            op = _BIN_OPS.get(type(node.op))
            if op is None:
                raise ScriptError(f"Operator not allowed: {type(node.op).__name__}")
            left = self._eval(node.left, variables, depth)
            right = self._eval(node.right, variables, depth)
            if isinstance(node.op, ast.Pow) and isinstance(right, (int, float)) and abs(right) > MAX_POWER_EXPONENT:
                raise ScriptError("Exponent too large")
            if isinstance(node.op, ast.Mult) and _repeat_length(left, right) > MAX_SEQUENCE_LENGTH:
                raise ScriptError("Sequence repetition too large")
            return op(left, right)

        if isinstance(node, ast.UnaryOp):
            op = _UNARY_OPS.get(type(node.op))
            if op is None:
                raise ScriptError(f"Operator not allowed: {type(node.op).__name__}")
            return op(self._eval(node.operand, variables, depth))

        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                result = True
                for value in node.values:
                    result = self._eval(value, variables, depth)
                    if not result:
                        return result
                return result
            result = False
            for value in node.values:
                result = self._eval(value, variables, depth)
                if result:
                    return result
            return result

        if isinstance(node, ast.Compare):
            left = self._eval(node.left, variables, depth)
            for op_node, comparator in zip(node.ops, node.comparators):
                right = self._eval(comparator, variables, depth)
                if not _COMPARE_OPS[type(op_node)](left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.IfExp):
            if self._eval(node.test, variables, depth):
                return self._eval(node.body, variables, depth)
            return self._eval(node.orelse, variables, depth)

        if isinstance(node, ast.Dict):
            if any(key is None for key in node.keys):
                raise ScriptError("Dict unpacking is not allowed")
            return {
                self._eval(key, variables, depth): self._eval(value, variables, depth)
                for key, value in zip(node.keys, node.values)
            }

        if isinstance(node, (ast.List, ast.Tuple)):
            items = [self._eval(element, variables, depth) for element in node.elts]
            return items if isinstance(node, ast.List) else tuple(items)

        if isinstance(node, ast.Subscript):
            container = self._eval(node.value, variables, depth)
            return container[self._eval(node.slice, variables, depth)]

        if isinstance(node, ast.Slice):
            return slice(
                self._eval(node.lower, variables, depth) if node.lower else None,
                self._eval(node.upper, variables, depth) if node.upper else None,
                self._eval(node.step, variables, depth) if node.step else None,
            )

        if isinstance(node, ast.JoinedStr):
            return "".join(str(self._eval(value, variables, depth)) for value in node.values)

        if isinstance(node, ast.FormattedValue):
            return self._eval(node.value, variables, depth)

        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in self._allowed_builtins:
                raise ScriptError("Only builtin functions may be called")
            if node.keywords:
                raise ScriptError("Keyword arguments are not allowed")
            args = [self._eval(arg, variables, depth) for arg in node.args]
            return self._allowed_builtins[node.func.id](*args)

        raise ScriptError(f"Construct not allowed: {type(node).__name__}")


def _repeat_length(left: Any, right: Any) -> int:
    """Length of `left * right` when it repeats a sequence, else 0"""
    for sequence, count in ((left, right), (right, left)):
        if isinstance(sequence, (str, bytes, list, tuple)) and isinstance(count, int):
            return len(sequence) * max(count, 0)
    return 0
