from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class Fixed:
    text: str


@dataclass(frozen=True)
class Variable:
    pass


PathComponent = Union[Fixed, Variable]


@dataclass(frozen=True)
class PathPattern:
    """
    OpenAPI style path template compiled into Fixed/Variable tokens.

      /users/{id}/posts -> Fixed("/users/"), Variable(), Fixed("/posts")

    Variable names are not kept; only the position of a variable matters.
    Equality covers both the source text and the token sequence.
    """

    source: str
    components: tuple[PathComponent, ...]

    @classmethod
    def compile(cls, source: str) -> "PathPattern":
        """
        Tokenize a path template. Never fails:
          - an unterminated "{..." is kept as literal text
          - a "}" outside a variable is literal text
        """
        components: list[PathComponent] = []
        literal = ""
        pending = ""  # literal seen before the currently open "{"
        name = ""
        in_variable = False

        for ch in source:
            if in_variable and ch == "}":
                in_variable = False
                if pending:
                    components.append(Fixed(pending))
                    pending = ""
                components.append(Variable())
                name = ""
            elif not in_variable and ch == "{":
                in_variable = True
                pending = literal
                literal = ""
                name = ""
            elif in_variable:
                name += ch
            else:
                literal += ch

        if in_variable:
            tail = f"{pending}{{{name}"
            if tail:
                components.append(Fixed(tail))
        elif literal:
            components.append(Fixed(literal))

        return cls(source=source, components=tuple(components))

    @property
    def has_variables(self) -> bool:
        return any(isinstance(c, Variable) for c in self.components)

    def encompasses(self, candidate: str) -> bool:
        """
        True if the concrete path `candidate` matches this template in full.

        A variable consumes characters until the next "/", until the literal
        that directly follows it in the template, or until the end. It can
        match an empty span. Two adjacent variables are resolved strictly left
        to right: the first one takes the whole segment, the second one
        matches the empty span.
        """
        if not self.has_variables:
            # literal tokens concatenate back to the source
            return candidate == self.source

        cursor = 0
        end = len(candidate)

        for index, component in enumerate(self.components):
            if isinstance(component, Fixed):
                if not candidate.startswith(component.text, cursor):
                    return False
                cursor += len(component.text)
                continue

            stop = self._literal_after(index)
            while cursor < end:
                if candidate[cursor] == "/":
                    break
                if stop is not None and candidate.startswith(stop, cursor):
                    break
                cursor += 1

        return cursor == end

    def encompasses_pattern(self, other: "PathPattern") -> bool:
        return self.encompasses(other.source)

    def _literal_after(self, index: int) -> Optional[str]:
        if index + 1 >= len(self.components):
            return None
        nxt = self.components[index + 1]
        return nxt.text if isinstance(nxt, Fixed) else None

    def __str__(self) -> str:
        return self.source
