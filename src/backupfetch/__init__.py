"""
backupfetch: confidential backup retrieval.

Pulls the newest encrypted backup off a remote host when it changed,
decrypts and expands it on demand, and shreds every plaintext
intermediate on the way out.
"""

import os

__version__ = "0.1.0"

BACKUPFETCH_HOME = os.environ.get("BACKUPFETCH_HOME", "~/.backupfetch")
