from typing import Dict, Iterable, List, Mapping, Set, Tuple

import networkx as nx

Listing = Tuple[str, str, int]


class ReferenceAnalyzer:
    """Graph of the entities found by the last detection pass.

    Array nodes point at one node per referenced index, so an array's size
    is its out-degree. Function nodes carry how often ``name(N)`` occurred;
    variable nodes carry the length of their bound literal.
    """

    def __init__(self) -> None:
        self.graph = nx.DiGraph()

    def build_graph(
        self,
        arrays: Mapping[str, Set[int]],
        functions: Mapping[str, int],
        variables: Mapping[str, str],
    ) -> nx.DiGraph:
        graph = nx.DiGraph()
        for name, indices in arrays.items():
            graph.add_node(("array", name), kind="array", name=name)
            for index in sorted(indices):
                graph.add_edge(("array", name), ("index", name, index))
        for name, count in functions.items():
            graph.add_node(("function", name), kind="function", name=name, multiplicity=count)
        for name, value in variables.items():
            graph.add_node(("variable", name), kind="variable", name=name, size=len(value))
        self.graph = graph
        return graph

    def listings(self) -> List[Listing]:
        rows = []
        for node, data in self.graph.nodes(data=True):
            kind = data.get("kind")
            if kind == "array":
                rows.append((kind, data["name"], self.graph.out_degree(node)))
            elif kind == "function":
                rows.append((kind, data["name"], data["multiplicity"]))
            elif kind == "variable":
                rows.append((kind, data["name"], data["size"]))
        return rows

    def report(self, statistics: Dict[str, object]) -> str:
        rows = self.listings()

        def section(kind: str, unit: str) -> Iterable[str]:
            return [f"{name}: {size} {unit}" for row_kind, name, size in rows if row_kind == kind] or ["none"]

        report_sections = [
            ("Statistics", [f"{k.replace('_', ' ').title()}: {v}" for k, v in statistics.items()]),
            ("Arrays", section("array", "indices")),
            ("Functions", section("function", "calls")),
            ("Variables", section("variable", "chars")),
        ]
        return "\n".join(
            line
            for title, content in report_sections
            for line in [f"=== {title} ==="] + list(content)
        )
