"""
Consistency checks on normalized capabilities

Normalization never invents tasks or flow steps, so a wrapper can be
structurally complete and still contradict itself. These checks report
such contradictions as warnings; they never raise.
"""

from typing import List

from capregistry.core.models import CapabilityWrapper


def check_consistency(wrapper: CapabilityWrapper) -> List[str]:
    """
    Report atomic/composite and flow contradictions

    Rules:
    - atomic capabilities carry tasks and a single-step flow over them
    - composite capabilities carry no tasks
    - every flow step names a capability

    Returns:
        Warning messages, empty when the wrapper is consistent
    """
    details = wrapper.protocol_details
    steps = details.flow.steps
    warnings: List[str] = []

    if details.type == "atomic":
        if not details.tasks:
            warnings.append("tasks: atomic capability has no tasks")
        if len(steps) > 1:
            warnings.append(f"flow.steps: atomic capability has {len(steps)} steps, expected 1")
        task_ids = {task.id for task in details.tasks}
        for index, step in enumerate(steps):
            if task_ids and step.capability and step.capability not in task_ids:
                warnings.append(
                    f"flow.steps[{index}].capability: '{step.capability}' does not reference a task"
                )
    elif details.tasks:
        warnings.append(f"tasks: composite capability declares {len(details.tasks)} task(s)")

    for index, step in enumerate(steps):
        if not step.capability:
            warnings.append(f"flow.steps[{index}].capability: empty capability reference")

    if wrapper.is_atomic != bool(details.tasks):
        warnings.append("isAtomic: does not match presence of tasks")

    return warnings
