from .model import Passage, Story, read_bracketed_list  # noqa: F401
from .parser import load_story, parse_store_area, parse_twee  # noqa: F401
