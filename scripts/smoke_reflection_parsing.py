#!/usr/bin/env python3
"""
Minimal smoke test for reflection parsing (regex-based extraction).

Runs the extractor directly against representative model outputs.
No HTTP, no frameworks, no external services.
"""

import sys
from pathlib import Path

# Ensure repo root is on PYTHONPATH BEFORE importing chat_relay
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from chat_relay.reflections import parse_reflections


CASES = [
    # (input, expected [(type, content), ...])
    ("Just a plain answer.", []),
    (
        "Answer.\nDETAILED REFLECTION 1: first\nDETAILED REFLECTION 2: second\n####",
        [("DETAILED REFLECTION 1", "first"), ("DETAILED REFLECTION 2", "second")],
    ),
    ("Reflection: I learned X.\n####", [("BRIEF REFLECTION", "I learned X.")]),
    ("Reflection: one\n####\nReflection: two", [("BRIEF REFLECTION", "one")]),
    (
        "Reflection: brief first\n####\nDETAILED REFLECTION 7: deep",
        [("DETAILED REFLECTION 7", "deep"), ("BRIEF REFLECTION", "brief first")],
    ),
    (
        "detailed reflection 3 :  spaced label  \nReflection: tail",
        [("detailed reflection 3", "spaced label"), ("BRIEF REFLECTION", "tail")],
    ),
]


def run_tests():
    failures = []
    for text, expected in CASES:
        got = [(r.type, r.content) for r in parse_reflections(text)]
        if got != expected:
            failures.append((text, f"expected {expected!r}, got {got!r}"))

    if failures:
        for text, reason in failures:
            print(f"[FAIL] {text!r} -> {reason}")
        return 2

    print("[PASS] all reflection parsing smoke tests")
    return 0


if __name__ == "__main__":
    raise SystemExit(run_tests())
