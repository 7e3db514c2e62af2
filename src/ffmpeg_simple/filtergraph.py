"""
Filter-graph builder for ffmpeg ``-filter_complex`` expressions.

Nodes are appended in order. A node pushed without inputs is wired to the
previous node's outputs (the graph's cursor), or to the graph's first
input when nothing was pushed yet. Outputs are auto-named when omitted.
"""

import random
import string
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Set, Union

Label = str
InputRef = Union[str, int, "FilterGraph", Sequence]

SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


@dataclass
class FilterNode:
    """One filter stage: ``[in][in]filter[out]``."""

    filter: str
    inputs: Optional[List[Label]] = None
    outputs: List[Label] = field(default_factory=list)

    def __str__(self) -> str:
        ins = "".join(f"[{label}]" for label in self.inputs or [])
        outs = "".join(f"[{label}]" for label in self.outputs)
        return f"{ins}{self.filter}{outs}"


class FilterGraph:
    """
    Ordered, append-only sequence of FilterNodes.

    Attributes:
        first_input: Labels used by the first node when it has no inputs
            (a label, a list of labels or another FilterGraph).
        cursor: Outputs of the last pushed node.
    """

    def __init__(self, first_input: Optional[InputRef] = None, rng: Optional[random.Random] = None):
        self.first_input = first_input
        self.cursor: List[Label] = []
        self._nodes: List[Optional[FilterNode]] = []
        self._labels: Set[Label] = set()
        self._rng = rng or random.Random()

    def _random_label(self, name: str) -> Label:
        base = name.split("=", 1)[0]
        while True:
            suffix = "".join(self._rng.choice(SUFFIX_ALPHABET) for _ in range(6))
            label = f"{base}-{suffix}"
            if label not in self._labels:
                return label

    def push(
        self,
        node: Union[str, FilterNode],
        inputs: Union[InputRef, bool, None] = None,
        outputs: Union[Label, List[Label], None] = None,
    ) -> List[Label]:
        """
        Append a node and return its output labels.

        Args:
            node: Filter string or FilterNode.
            inputs: Explicit inputs. ``False`` disables implicit wiring.
            outputs: Explicit output labels.
        """
        if isinstance(node, FilterNode):
            filter_str = node.filter
            if inputs is None and node.inputs is not None:
                inputs = node.inputs
            if outputs is None and node.outputs:
                outputs = node.outputs
        else:
            filter_str = node

        if inputs is None:
            if self.cursor:
                inputs = self.cursor
            elif self.first_input is not None:
                inputs = self.first_input

        resolved: Optional[List[Label]] = None
        if inputs is not None and inputs is not False:
            resolved = [label for label in resolve_input(inputs) if label]
            if not resolved:
                resolved = None

        if outputs is None:
            out_labels = [self._random_label(filter_str)]
        elif isinstance(outputs, str):
            out_labels = [outputs]
        else:
            out_labels = list(outputs)

        self._nodes.append(FilterNode(filter_str, resolved, out_labels))
        self._labels.update(out_labels)
        self.cursor = out_labels
        return out_labels

    def skip(self) -> None:
        """Leave a hole (conditional construction); iteration ignores it."""
        self._nodes.append(None)

    @property
    def last_node(self) -> Optional[FilterNode]:
        for node in reversed(self._nodes):
            if node is not None:
                return node
        return None

    @property
    def last_output(self) -> List[Label]:
        return list(self.cursor)

    def __iter__(self) -> Iterator[FilterNode]:
        for node in self._nodes:
            if node is not None:
                yield node

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __bool__(self) -> bool:
        return len(self) > 0

    def to_strings(self) -> List[str]:
        return [str(node) for node in self]

    def __str__(self) -> str:
        return ";".join(self.to_strings())


def resolve_input(ref: InputRef) -> List[Label]:
    """
    Flatten an input reference into labels.

    A nested graph resolves to its last output, or to its own first input
    when it has no nodes yet.
    """
    if isinstance(ref, FilterGraph):
        if ref.cursor:
            return list(ref.cursor)
        if ref.first_input is not None:
            return resolve_input(ref.first_input)
        return []
    if isinstance(ref, bool):
        raise TypeError(f"Invalid filter input: {ref!r}")
    if isinstance(ref, str):
        return [ref]
    if isinstance(ref, int):
        return [str(ref)]
    if isinstance(ref, (list, tuple)):
        labels: List[Label] = []
        for item in ref:
            labels.extend(resolve_input(item))
        return labels
    raise TypeError(f"Invalid filter input: {ref!r}")


def unique(items: Sequence[str]) -> List[str]:
    """Drop duplicates, keeping first occurrences in order."""
    return list(dict.fromkeys(items))
