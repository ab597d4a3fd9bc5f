import os
import sys

TESTS_DIR = os.path.dirname(__file__)

# Engine modules and scripts import each other by bare module name.
for sub in ("backend", "scripts"):
    sys.path.insert(0, os.path.join(TESTS_DIR, "..", sub))
