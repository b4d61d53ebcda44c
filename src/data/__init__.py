"""Historical transition datasets."""

from src.data.transition_loader import (
    dataset_loader_for,
    load_transitions_from_csv,
    parse_transition_record,
    save_transitions_to_csv,
)

__all__ = [
    "dataset_loader_for",
    "load_transitions_from_csv",
    "parse_transition_record",
    "save_transitions_to_csv",
]
