# Report text parsers
# Each module should expose:
# - extract(text) -> List[Dict]   # ordered records sharing one key set
