"""Body registry: the arena that owns every body of a simulated system.

Bodies are stored once, keyed by id, in insertion order. Parent/child
relations are plain id lookups (`Body.parent_id`); children are derived by
filtering instead of being stored on the parent, so there is no second copy
of the relation that could drift out of sync.

Iteration order is stable (insertion order) and is the documented tie-break
for every "first encountered" rule in the selection code.
"""

from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from hierarchy.bodies import Body, BodyKind


class HierarchyInvariantError(AssertionError):
    """Raised when the parent graph violates a structural invariant.

    This signals a programming error (cycle, two main stars, dangling
    parent), not a recoverable runtime condition.
    """


class BodyRegistry:
    """Insertion-ordered collection of bodies keyed by id.

    Examples
    --------
    >>> reg = BodyRegistry()
    >>> reg.add(Body("sun", BodyKind.STAR, is_main_star=True))
    >>> reg.add(Body("earth", BodyKind.PLANET, parent_id="sun"))
    >>> [b.id for b in reg.children_of("sun")]
    ['earth']
    >>> reg.ancestors("earth")
    ['sun']
    """

    def __init__(self, bodies: Optional[Iterable[Body]] = None):
        self._bodies: Dict[str, Body] = {}
        for body in bodies or ():
            self.add(body)

    # ------------------------------------------------------------------
    # Container protocol
    # ------------------------------------------------------------------

    def add(self, body: Body) -> None:
        if body.id in self._bodies:
            raise ValueError(f"Duplicate body id '{body.id}'")
        self._bodies[body.id] = body

    def get(self, body_id: Optional[str]) -> Optional[Body]:
        if body_id is None:
            return None
        return self._bodies.get(body_id)

    def __getitem__(self, body_id: str) -> Body:
        return self._bodies[body_id]

    def __contains__(self, body_id) -> bool:
        return body_id in self._bodies

    def __iter__(self) -> Iterator[Body]:
        return iter(list(self._bodies.values()))

    def __len__(self) -> int:
        return len(self._bodies)

    def ids(self) -> List[str]:
        return list(self._bodies)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def active(self, kinds: Optional[Sequence[BodyKind]] = None) -> List[Body]:
        """Active bodies, optionally restricted to the given kinds."""
        return [
            b for b in self._bodies.values()
            if b.is_active and (kinds is None or b.kind in kinds)
        ]

    def stars(self, active_only: bool = True) -> List[Body]:
        return [
            b for b in self._bodies.values()
            if b.is_star and (b.is_active or not active_only)
        ]

    def children_of(self, parent_id: str, active_only: bool = False) -> List[Body]:
        """Bodies whose `parent_id` is `parent_id`, in registry order."""
        return [
            b for b in self._bodies.values()
            if b.parent_id == parent_id and (b.is_active or not active_only)
        ]

    def main_star(self) -> Optional[Body]:
        """The first Active star flagged `is_main_star`, if any."""
        for body in self._bodies.values():
            if body.is_star and body.is_active and body.is_main_star:
                return body
        return None

    def ancestors(self, body_id: str) -> List[str]:
        """Ids from the body's parent up to its root.

        Raises
        ------
        HierarchyInvariantError
            If the parent chain loops back on itself.
        """
        chain: List[str] = []
        seen = {body_id}
        current = self._bodies[body_id].parent_id
        while current is not None:
            if current in seen:
                raise HierarchyInvariantError(
                    f"Cycle in parent chain of '{body_id}': {' -> '.join([body_id] + chain + [current])}"
                )
            chain.append(current)
            seen.add(current)
            parent = self._bodies.get(current)
            if parent is None:
                break
            current = parent.parent_id
        return chain

    def parent_links(self) -> Dict[str, Optional[str]]:
        """Snapshot of `id -> parent_id` for every body."""
        return {b.id: b.parent_id for b in self._bodies.values()}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_parent(self, child_id: str, parent_id: Optional[str]) -> Optional[str]:
        """Point `child_id` at `parent_id` and return the previous parent id.

        Raises
        ------
        KeyError
            If either id is unknown.
        HierarchyInvariantError
            If the assignment would make the child its own ancestor.
        """
        child = self._bodies[child_id]
        if parent_id is not None:
            if parent_id not in self._bodies:
                raise KeyError(f"Unknown parent id '{parent_id}'")
            if parent_id == child_id:
                raise HierarchyInvariantError(f"Body '{child_id}' cannot be its own parent")
            if child_id in self.ancestors(parent_id):
                raise HierarchyInvariantError(
                    f"Assigning '{child_id}' to '{parent_id}' would create a cycle"
                )
        old = child.parent_id
        child.parent_id = parent_id
        return old

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    def check_invariants(self, require_main_star: bool = False,
                         ignore_ids: Iterable[str] = ()) -> List[str]:
        """Return a list of human-readable invariant violations.

        Checks:
        1. No cycles in the parent graph.
        2. At most one Active main star; exactly one when
           `require_main_star` is set and any Active star exists.
        3. Every Active body with a parent points at an Active body.

        Bodies in `ignore_ids` count as gone for checks 2 and 3, whatever
        their status says.
        """
        ignored = set(ignore_ids)
        problems: List[str] = []

        for body in self._bodies.values():
            try:
                self.ancestors(body.id)
            except HierarchyInvariantError as e:
                problems.append(str(e))

        live = [b for b in self._bodies.values() if b.is_active and b.id not in ignored]
        mains = [b.id for b in live if b.is_star and b.is_main_star]
        if len(mains) > 1:
            problems.append(f"Multiple main stars: {', '.join(mains)}")
        if require_main_star and not mains and any(b.is_star for b in live):
            problems.append("Active stars exist but none is the main star")

        for body in live:
            if body.parent_id is None:
                continue
            parent = self._bodies.get(body.parent_id)
            if parent is None:
                problems.append(f"Body '{body.id}' points at unknown parent '{body.parent_id}'")
            elif not parent.is_active:
                problems.append(
                    f"Body '{body.id}' points at {parent.status.value} parent '{parent.id}'"
                )

        return problems

    def assert_invariants(self, require_main_star: bool = False,
                          ignore_ids: Iterable[str] = ()) -> None:
        problems = self.check_invariants(require_main_star=require_main_star,
                                         ignore_ids=ignore_ids)
        if problems:
            raise HierarchyInvariantError("; ".join(problems))

    def __repr__(self) -> str:
        return f"BodyRegistry({len(self)} bodies)"
