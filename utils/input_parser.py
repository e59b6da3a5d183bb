"""
Parse the symbol universe from input.txt or CLI arguments.
"""

import os


BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_INPUT_FILE = os.path.join(BASE_DIR, "input.txt")


def normalize_symbols(symbols) -> list[str]:
    """Uppercase, strip and de-duplicate symbols, keeping first-seen order."""
    seen = []
    for s in symbols:
        s = s.strip().upper()
        if s and s not in seen:
            seen.append(s)
    return seen


def parse_input_file(path: str = DEFAULT_INPUT_FILE) -> list[str]:
    """
    Read symbols from a text file: one or more per line, comma or whitespace
    separated, # starts a comment, blank lines ignored.
    """
    symbols = []
    with open(path, 'r') as f:
        for line in f:
            line = line.split("#")[0].strip()
            if line:
                symbols.extend(line.replace(",", " ").split())
    return normalize_symbols(symbols)
