"""Map a shipment status onto the five-stage progress bar shown to customers.

Percentages are fixed per status and are not position / 4: most statuses sit
halfway between their stage and the next one, ``delayed`` stops at 50 and
``cancelled`` resets to 0. Unknown statuses fall back to the first stage.
"""
import re

from shipping.schemas import ProgressOut, StageOut

STAGES = (
    ("processing", "Processing"),
    ("picked_up", "Picked Up"),
    ("in_transit", "In Transit"),
    ("out_for_delivery", "Out for Delivery"),
    ("delivered", "Delivered"),
)

# status -> (stage position, percentage, delayed)
STATUS_PROGRESS = {
    "Pickup Pending": (0, 12.5, False),
    "Pick-up-complete": (1, 37.5, False),
    "in_transit": (2, 62.5, False),
    "Out for Delivery": (3, 87.5, False),
    "delivered": (4, 100.0, False),
    "delayed": (2, 50.0, True),
    "cancelled": (0, 0.0, False),
}
DEFAULT_PROGRESS = (0, 12.5, False)


def map_progress(status: str) -> ProgressOut:
    position, percentage, delayed = STATUS_PROGRESS.get(status, DEFAULT_PROGRESS)
    stages = [
        StageOut(
            id=stage_id,
            label=label,
            position=i,
            is_completed=i < position,
            is_current=i == position,
            is_pending=i > position,
        )
        for i, (stage_id, label) in enumerate(STAGES)
    ]
    return ProgressOut(stages=stages, current_position=position,
                       progress_percentage=percentage, is_delayed=delayed)


def status_label(status: str) -> str:
    """``in_transit`` -> ``In Transit``."""
    return re.sub(r"(^\w|\s\w)", lambda m: m.group(0).upper(), status.replace("_", " "))
