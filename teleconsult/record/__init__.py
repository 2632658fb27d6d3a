from .sections import HISTORY_SECTIONS, SECTION_ACTIONS, filter_proposals, is_valid_section

__all__ = ["HISTORY_SECTIONS", "SECTION_ACTIONS", "filter_proposals", "is_valid_section"]
