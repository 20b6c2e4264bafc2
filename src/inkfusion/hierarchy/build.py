"""
Containment hierarchy over fused elements.
"""

from inkfusion.config import HierarchyConfig
from inkfusion.tracer import get_tracer, trace


def contains(element, container, area_ratio=0.9):
    """
    True when element's center lies inside container's box (inclusive)
    and element is smaller than area_ratio of the container.

    Zero-area containers never contain anything.
    """
    inner = element.bounding_box
    outer = container.bounding_box
    if inner is None or outer is None or outer.area <= 0:
        return False
    return outer.contains_point(inner.center_x, inner.center_y) and inner.area < area_ratio * outer.area


@trace(label="build_hierarchy")
def build_hierarchy(elements, config=None):
    """
    Assign parent/child links by containment.

    Every element lists all elements it contains as children (input order).
    Its parent is the smallest-area element containing it, ties going to the
    earlier element. Returns fresh copies; the input is untouched.
    """
    tracer = get_tracer()
    config = config or HierarchyConfig()

    children = [[] for _ in elements]
    parents = [None] * len(elements)

    for i, element in enumerate(elements):
        for j, container in enumerate(elements):
            if i == j or not contains(element, container, config.child_area_ratio):
                continue
            children[j].append(element.id)
            best = parents[i]
            if best is None or container.bounding_box.area < elements[best].bounding_box.area:
                parents[i] = j

    result = []
    for i, element in enumerate(elements):
        parent = parents[i]
        result.append(element.model_copy(deep=True, update={
            "parent_id": elements[parent].id if parent is not None else None,
            "children": children[i],
            "is_container": bool(children[i]),
            "is_child": parent is not None,
        }))

    containers = sum(1 for e in result if e.is_container)
    tracer.event(f"Hierarchy: {containers} containers over {len(result)} elements")
    return result
